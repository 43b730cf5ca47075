"""
Due Date Classification Module

Maps the distance between a due date and a reference date to the status
buckets shown to borrowers and operators (overdue, due today, due soon,
on time).
"""

from datetime import date
from dataclasses import dataclass
from typing import Iterable, Optional
from enum import Enum

from .config import get_config
from .dates import DateInput, parse_date, days_between
from .models import Installment, InstallmentStatus


class DueVariant(Enum):
    """Due-date status buckets"""
    OVERDUE = "OVERDUE"
    DUE_TODAY = "DUE_TODAY"
    DUE_SOON = "DUE_SOON"
    OK = "OK"
    PAID = "PAID"
    NONE = "NONE"    # No open installment to report on


@dataclass(frozen=True)
class DueLabel:
    """Label/variant pair for a due date"""
    label: str
    variant: DueVariant
    days_until_due: int = 0
    due_date: Optional[date] = None


def _plural_days(n: int) -> str:
    return f"{n} dia" if n == 1 else f"{n} dias"


def days_until_due(due_date: DateInput, reference_date: DateInput) -> int:
    """Calendar days from the reference date to the due date (negative when overdue)"""
    return days_between(reference_date, due_date)


def classify_due_date(days_until: int, alert_days: Optional[int] = None) -> DueLabel:
    """
    Classify a due date by the number of days left until it

    Args:
        days_until: Days until the due date; negative means overdue by that many days
        alert_days: Window, in days, reported as "due soon" (defaults to config)

    Returns:
        DueLabel with the borrower-facing label and its variant
    """
    if alert_days is None:
        alert_days = get_config().due_soon_days

    if days_until < 0:
        return DueLabel(f"Vencido há {_plural_days(-days_until)}", DueVariant.OVERDUE, days_until)
    if days_until == 0:
        return DueLabel("Vence hoje", DueVariant.DUE_TODAY, days_until)
    if days_until <= alert_days:
        return DueLabel(f"Faltam {_plural_days(days_until)}", DueVariant.DUE_SOON, days_until)
    return DueLabel("Em dia", DueVariant.OK, days_until)


def classify_installment(installment: Installment, reference_date: DateInput,
                         alert_days: Optional[int] = None) -> DueLabel:
    """Classify one installment, reporting settled installments as paid"""
    if installment.status == InstallmentStatus.PAID:
        return DueLabel("Pago", DueVariant.PAID, 0, installment.due_date)

    days = days_until_due(installment.due_date, reference_date)
    result = classify_due_date(days, alert_days)
    return DueLabel(result.label, result.variant, days, installment.due_date)


def pick_relevant_installment(installments: Iterable[Installment],
                              reference_date: DateInput) -> Optional[Installment]:
    """
    Pick the installment that matters most right now

    The most overdue open installment wins; otherwise the nearest upcoming one.
    """
    reference = parse_date(reference_date)
    open_installments = [i for i in installments if i.status != InstallmentStatus.PAID]
    if not open_installments:
        return None

    overdue = [i for i in open_installments if i.due_date < reference]
    if overdue:
        return min(overdue, key=lambda i: i.due_date)

    return min(open_installments, key=lambda i: i.due_date)


def contract_due_label(installments: Iterable[Installment], reference_date: DateInput,
                       alert_days: Optional[int] = None) -> DueLabel:
    """Due label for a whole contract, based on its most relevant installment"""
    installment = pick_relevant_installment(installments, reference_date)
    if installment is None:
        return DueLabel("Sem parcelas", DueVariant.NONE)
    return classify_installment(installment, reference_date, alert_days)


def user_facing_status(installment: Installment, reference_date: DateInput) -> str:
    """Short operator-facing status text for an installment card"""
    if installment.status == InstallmentStatus.PAID:
        return "Quitado"

    days_late = days_between(installment.due_date, reference_date)
    if days_late == 0:
        return "Vence Hoje"
    if days_late > 0:
        return f"{days_late} dias vencidos"
    return "Em dia"
