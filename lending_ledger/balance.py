"""
Balance and Loan Status Module

Aggregates installment balances into loan totals and derives the loan's
lifecycle state from them.
"""

from decimal import Decimal
from dataclasses import dataclass
from typing import Optional
import logging

from .dates import DateInput, days_between
from .models import Loan, Installment, InstallmentStatus, LoanStatus, AgreementStatus
from .money import ZERO, round_money, clamp, is_settled

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Balance:
    """Outstanding amounts, per debt component"""
    principal_remaining: Decimal
    interest_remaining: Decimal
    late_fee_remaining: Decimal
    is_cycle_paid: bool = False   # Interest and late fee of the current cycle cleared
    days_in_cycle: int = 0        # Days since the oldest open installment fell due

    @property
    def total_remaining(self) -> Decimal:
        return self.principal_remaining + self.interest_remaining + self.late_fee_remaining

    @property
    def is_paid(self) -> bool:
        return is_settled(self.total_remaining)


def installment_balance(installment: Installment) -> Balance:
    """Balance snapshot of a single installment"""
    return Balance(
        principal_remaining=clamp(installment.principal_remaining),
        interest_remaining=clamp(installment.interest_remaining),
        late_fee_remaining=clamp(installment.late_fee_accrued),
        is_cycle_paid=installment.interest_remaining <= ZERO and installment.late_fee_accrued <= ZERO
    )


def compute_remaining_balance(loan: Loan, reference_date: Optional[DateInput] = None) -> Balance:
    """
    Sum the remaining balances across all installments

    Args:
        loan: Loan snapshot
        reference_date: When given, also reports how many days the oldest
            open installment is into its cycle

    Returns:
        Balance with each component clamped to zero
    """
    principal = sum((clamp(i.principal_remaining) for i in loan.installments), ZERO)
    interest = sum((clamp(i.interest_remaining) for i in loan.installments), ZERO)
    late_fee = sum((clamp(i.late_fee_accrued) for i in loan.installments), ZERO)

    open_installments = [i for i in loan.installments if i.status != InstallmentStatus.PAID]
    current = min(open_installments, key=lambda i: i.due_date) if open_installments else None

    is_cycle_paid = False
    days_in_cycle = 0
    if current is not None:
        is_cycle_paid = current.interest_remaining <= ZERO and current.late_fee_accrued <= ZERO
        if reference_date is not None:
            days_in_cycle = days_between(current.due_date, reference_date)

    return Balance(
        principal_remaining=round_money(principal),
        interest_remaining=round_money(interest),
        late_fee_remaining=round_money(late_fee),
        is_cycle_paid=is_cycle_paid,
        days_in_cycle=days_in_cycle
    )


def installment_status(installment: Installment, reference_date: DateInput) -> InstallmentStatus:
    """Derive an installment's status from its balances and due date"""
    if is_settled(installment.principal_remaining + installment.interest_remaining):
        return InstallmentStatus.PAID
    if days_between(installment.due_date, reference_date) > 0:
        return InstallmentStatus.LATE
    if installment.paid_total > ZERO:
        return InstallmentStatus.PARTIAL
    return InstallmentStatus.PENDING


def compute_loan_status(loan: Loan, reference_date: DateInput) -> LoanStatus:
    """
    Derive the loan's lifecycle state

    Evaluated in strict order: archived contracts are CLOSED; a settled
    balance or a fully paid agreement is PAID (new debt such as LEND_MORE
    reopens it); an ACTIVE agreement means LEGAL; any late installment means
    OVERDUE; otherwise ACTIVE.

    A PAID agreement reports the loan PAID even while the original
    installments still show a balance. Settling those installments is left
    to the caller that closes out the agreement; until it does, the agreement
    status is what marks the debt as settled.
    """
    if loan.is_archived:
        return LoanStatus.CLOSED

    balance = compute_remaining_balance(loan)
    agreement = loan.active_agreement
    if balance.is_paid:
        return LoanStatus.PAID
    # A settled agreement settles the loan it replaced
    if agreement is not None and agreement.status == AgreementStatus.PAID:
        return LoanStatus.PAID

    if agreement is not None and agreement.status == AgreementStatus.ACTIVE:
        return LoanStatus.LEGAL

    if any(installment_status(i, reference_date) == InstallmentStatus.LATE for i in loan.installments):
        return LoanStatus.OVERDUE

    return LoanStatus.ACTIVE


def is_legally_actionable(loan: Loan, reference_date: DateInput) -> bool:
    """Whether collaborators may start legal or collection actions on the loan"""
    status = compute_loan_status(loan, reference_date)
    balance = compute_remaining_balance(loan)
    actionable = status in (LoanStatus.OVERDUE, LoanStatus.LEGAL) and not balance.is_paid
    logger.debug("Loan %s status=%s actionable=%s", loan.id, status.value, actionable)
    return actionable
