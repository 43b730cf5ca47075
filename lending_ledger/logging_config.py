"""
Structured Logging Configuration Module

Ledger events (payments, renewals, lend-more, agreement transitions) are
logged with the loan they touch and an optional correlation id supplied by
the caller, rendered as one JSON object per line or as plain text.
"""

import logging
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .config import get_config

PACKAGE_LOGGER = "lending_ledger"

# Attributes log_action sets on a record, in output order
STRUCTURED_FIELDS = ("correlation_id", "loan_id", "action", "resource", "extra")

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _structured(record: logging.LogRecord) -> Dict[str, Any]:
    values = {name: getattr(record, name, None) for name in STRUCTURED_FIELDS}
    return {name: value for name, value in values.items() if value is not None}


class JSONFormatter(logging.Formatter):
    """Renders a record and its ledger fields as a single JSON line"""

    def format(self, record):
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_structured(record))

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


def _build_handler(log_format: str) -> logging.Handler:
    handler = logging.StreamHandler()
    if log_format == "json":
        handler.setFormatter(JSONFormatter())
    elif log_format == "text":
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))
    else:
        raise ValueError(f"Unsupported log format: {log_format}")
    return handler


def setup_logging(level: Optional[str] = None, logger_name: str = PACKAGE_LOGGER) -> logging.Logger:
    """
    Attach a single stream handler to the ledger logger.

    Calling it again replaces the handler instead of stacking a second one.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL; defaults to LEDGER_LOG_LEVEL
        logger_name: Logger to configure

    Returns:
        The configured logger
    """
    settings = get_config()
    logger = logging.getLogger(logger_name)

    for existing in list(logger.handlers):
        logger.removeHandler(existing)

    logger.addHandler(_build_handler(settings.log_format))
    logger.setLevel((level or settings.log_level).upper())
    logger.propagate = False

    return logger


def get_logger(name: str = PACKAGE_LOGGER) -> logging.Logger:
    return logging.getLogger(name)


def log_action(logger: logging.Logger, level: str, message: str,
               loan_id: Optional[str] = None, action: Optional[str] = None,
               resource: Optional[str] = None, correlation_id: Optional[str] = None,
               extra: Optional[dict] = None):
    """
    Log a ledger event with structured fields.

    Args:
        logger: Logger instance
        level: Level name (info, warning, error, ...)
        message: Human-readable message
        loan_id: Loan the event applies to
        action: What happened (payment, lend_more, create_agreement, ...)
        resource: What was changed (installment, loan, agreement)
        correlation_id: Caller's request id
        extra: Amounts and ids specific to the event
    """
    levelno = logging.getLevelName(level.upper())
    if not logger.isEnabledFor(levelno):
        return

    fields = {
        "loan_id": loan_id,
        "action": action,
        "resource": resource,
        "correlation_id": correlation_id,
        "extra": extra,
    }
    record = logger.makeRecord(logger.name, levelno, __name__, 0, message, (), None)
    for name, value in fields.items():
        if value:
            setattr(record, name, value)

    logger.handle(record)
