"""
Ledger Settings

Calculation constants that operators may tune per deployment, read from
LEDGER_* environment variables or a local .env file.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class LedgerConfig(BaseSettings):
    """Lending ledger settings"""

    # Money
    settlement_tolerance: str = "0.05"  # Remainders at or below this are settled
    agreement_payment_tolerance: str = "0.10"  # Slack when settling agreement installments
    money_decimal_places: int = 2

    # Calendar
    due_soon_days: int = 3  # Alert window for "Faltam N dias"
    renewal_period_days: int = 30
    default_fixed_term_days: int = 15

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # "json" or "text"

    model_config = SettingsConfigDict(env_prefix="LEDGER_", env_file=".env", case_sensitive=False)


config = LedgerConfig()


def get_config() -> LedgerConfig:
    """Current settings"""
    return config


def reload_config() -> LedgerConfig:
    """Re-read settings from the environment, e.g. after changing LEDGER_* variables"""
    global config
    config = LedgerConfig()
    return config
