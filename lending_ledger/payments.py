"""
Payment Processing Module

Turns an operator's payment choice (payoff, renewal, amortization or a daily
receipt) into an allocation, applies it to the installment, moves the
installment into its next cycle where the payment renews it, and produces
the ledger entry the caller persists.
"""

from decimal import Decimal
from dataclasses import dataclass, replace
from typing import Optional
from enum import Enum

from .allocation import Allocation, allocate, apply_allocation
from .balance import Balance
from .dates import DateInput, parse_date
from .debt import DebtBreakdown, compute_debt, outstanding_late_fee, parse_forgiveness
from .ledger import ledger_entry_for
from .logging_config import get_logger, log_action
from .models import (
    Loan, Installment, InstallmentStatus, BillingCycle, ForgivenessMode, LedgerEntry,
    LedgerEntryType
)
from .money import ZERO, Amount, InvalidInputError, to_decimal, round_money, clamp
from .renewal import RenewalResult, renew, reschedule, apply_renewal

logger = get_logger(__name__)


class PaymentType(Enum):
    """What the borrower is paying for"""
    FULL = "FULL"                      # Payoff: everything owed
    RENEW_INTEREST = "RENEW_INTEREST"  # Interest + late fee, principal rolls over
    RENEW_AV = "RENEW_AV"              # Capital amortization
    CUSTOM = "CUSTOM"                  # Free amount, e.g. daily receipts

    @classmethod
    def parse(cls, value) -> 'PaymentType':
        if isinstance(value, cls):
            return value
        tag = str(value).strip().upper()
        if tag in cls.__members__:
            return cls[tag]
        raise InvalidInputError(f"Unsupported payment type: {value!r}")


_ENTRY_TYPES = {
    PaymentType.FULL: LedgerEntryType.PAYMENT_FULL,
    PaymentType.RENEW_INTEREST: LedgerEntryType.PAYMENT_INTEREST_ONLY,
    PaymentType.RENEW_AV: LedgerEntryType.PAYMENT_PARTIAL,
    PaymentType.CUSTOM: LedgerEntryType.PAYMENT_PARTIAL,
}


@dataclass(frozen=True)
class PaymentPlan:
    """Amount and split of a payment before it is applied"""
    payment_type: PaymentType
    amount_to_pay: Decimal
    allocation: Allocation
    debt: DebtBreakdown
    note: str


@dataclass(frozen=True)
class PaymentResult:
    """Everything a processed payment changed"""
    loan: Loan
    installment: Installment
    allocation: Allocation
    ledger_entry: LedgerEntry
    renewal: Optional[RenewalResult] = None


def _required_amount(amount: Optional[Amount], payment_type: PaymentType) -> Decimal:
    if amount is None:
        raise InvalidInputError(f"{payment_type.value} payments need an amount")
    value = round_money(to_decimal(amount, "amount"))
    if value <= ZERO:
        raise InvalidInputError(f"Payment amount must be greater than zero, got {value}")
    return value


def plan_payment(
    loan: Loan,
    installment: Installment,
    payment_type,
    reference_date: DateInput,
    forgiveness: Optional[ForgivenessMode] = ForgivenessMode.NONE,
    amount: Optional[Amount] = None
) -> PaymentPlan:
    """
    Work out how much a payment is and how it splits

    Args:
        loan: Loan the installment belongs to
        installment: Installment being paid
        payment_type: FULL, RENEW_INTEREST, RENEW_AV or CUSTOM
        reference_date: Payment date
        forgiveness: Late-fee parts waived for this payment
        amount: Amount received; required for RENEW_AV and CUSTOM, ignored
            otherwise

    Returns:
        PaymentPlan with the amount due and its allocation

    Raises:
        InvalidInputError: On a missing or non-positive amount
    """
    payment_type = PaymentType.parse(payment_type)
    debt = compute_debt(loan, installment, reference_date, forgiveness)
    balance = Balance(
        principal_remaining=debt.principal,
        interest_remaining=debt.interest,
        late_fee_remaining=outstanding_late_fee(debt, installment)
    )

    if payment_type == PaymentType.FULL:
        amount_to_pay = round_money(balance.total_remaining)
        allocation = allocate(amount_to_pay, balance)
        note = "Quitação Total do Contrato"
    elif payment_type == PaymentType.RENEW_INTEREST:
        allocation = renew(balance)
        amount_to_pay = allocation.total_paid
        if amount_to_pay <= ZERO:
            raise InvalidInputError(
                f"Installment {installment.id} has no interest or late fee to renew"
            )
        note = "Pagamento de Juros / Renovação"
    elif payment_type == PaymentType.RENEW_AV:
        # Amortization goes straight to capital
        amount_to_pay = _required_amount(amount, payment_type)
        paid_principal = min(amount_to_pay, balance.principal_remaining)
        allocation = Allocation(
            paid_principal=paid_principal,
            paid_interest=ZERO,
            paid_late_fee=ZERO,
            unallocated=round_money(amount_to_pay - paid_principal)
        )
        note = f"Amortização de Capital (R$ {amount_to_pay})"
    elif payment_type == PaymentType.CUSTOM:
        amount_to_pay = _required_amount(amount, payment_type)
        allocation = allocate(amount_to_pay, balance)
        note = "Recebimento de Diária(s)"
    else:
        raise ValueError(f"Unsupported payment type: {payment_type}")

    return PaymentPlan(
        payment_type=payment_type,
        amount_to_pay=amount_to_pay,
        allocation=allocation,
        debt=debt,
        note=note
    )


def accrue_installment(installment: Installment, debt: DebtBreakdown,
                       reference_date: DateInput) -> Installment:
    """
    Fold the debt accrued up to the reference date into the installment

    Daily interest is added to both the scheduled and the remaining interest
    and the accrual marker moves to the reference date; the late fee accrued
    becomes what is still owed for the current cycle.
    """
    accrued_interest = clamp(debt.interest - installment.interest_remaining)
    updated = replace(
        installment,
        scheduled_interest=installment.scheduled_interest + accrued_interest,
        interest_remaining=debt.interest,
        late_fee_accrued=outstanding_late_fee(debt, installment)
    )
    if accrued_interest > ZERO:
        updated = replace(updated, accrued_until=parse_date(reference_date, "reference_date"))
    return updated


def _renews(loan: Loan, payment_type: PaymentType, new_due_date: Optional[DateInput]) -> bool:
    """Whether a payment moves the installment into a new cycle"""
    if payment_type == PaymentType.FULL:
        return False
    if loan.billing_cycle == BillingCycle.DAILY_FIXED_TERM:
        # Closed term: only an explicit extension opens a new cycle
        return new_due_date is not None
    if payment_type == PaymentType.CUSTOM:
        # Daily receipts buy days; other partial payments keep the cycle
        return loan.billing_cycle == BillingCycle.DAILY_FREE or new_due_date is not None
    return True


def process_payment(
    loan: Loan,
    installment_id: str,
    payment_type,
    reference_date: DateInput,
    forgiveness: Optional[ForgivenessMode] = ForgivenessMode.NONE,
    amount: Optional[Amount] = None,
    new_due_date: Optional[DateInput] = None,
    entry_id: Optional[str] = None,
    correlation_id: Optional[str] = None
) -> PaymentResult:
    """
    Apply a payment to one installment of a loan

    Args:
        loan: Loan snapshot
        installment_id: Installment being paid
        payment_type: FULL, RENEW_INTEREST, RENEW_AV or CUSTOM
        reference_date: Payment date
        forgiveness: Late-fee parts waived for this payment
        amount: Amount received; required for RENEW_AV and CUSTOM
        new_due_date: Operator-chosen due date for the next cycle
        entry_id: ID for the ledger entry; a new UUID when omitted
        correlation_id: Correlation ID for request tracing

    Returns:
        PaymentResult with the updated loan, installment and ledger entry

    Raises:
        InvalidInputError: On bad amounts, unknown installments, settled
            installments or loans under an active agreement
    """
    payment_type = PaymentType.parse(payment_type)
    forgiveness = parse_forgiveness(forgiveness)
    paid_on = parse_date(reference_date, "reference_date")

    if loan.active_agreement is not None and loan.active_agreement.is_active:
        raise InvalidInputError(
            f"Loan {loan.id} is under agreement {loan.active_agreement.id}; "
            "pay the agreement installments instead"
        )

    installment = loan.get_installment(installment_id)
    if installment.status == InstallmentStatus.PAID:
        raise InvalidInputError(f"Installment {installment_id} is already paid")

    plan = plan_payment(loan, installment, payment_type, paid_on, forgiveness, amount)
    accrued = accrue_installment(installment, plan.debt, paid_on)
    updated = apply_allocation(accrued, plan.allocation, paid_on)

    renewal = None
    if updated.status != InstallmentStatus.PAID and _renews(loan, payment_type, new_due_date):
        renewal = reschedule(loan, updated, plan.allocation, paid_on, new_due_date)
        updated = apply_renewal(updated, renewal, paid_on)

    entry = ledger_entry_for(
        _ENTRY_TYPES[payment_type],
        plan.allocation,
        paid_on,
        installment_id=installment.id,
        notes=plan.note,
        entry_id=entry_id
    )

    log_action(
        logger, "info", f"Processed {payment_type.value} payment on loan {loan.id}",
        loan_id=loan.id,
        action="payment",
        resource="installment",
        correlation_id=correlation_id,
        extra={
            "installment_id": installment.id,
            "amount": str(plan.amount_to_pay),
            "paid_principal": str(plan.allocation.paid_principal),
            "paid_interest": str(plan.allocation.paid_interest),
            "paid_late_fee": str(plan.allocation.paid_late_fee),
            "unallocated": str(plan.allocation.unallocated),
            "forgiveness": forgiveness.value,
            "new_due_date": renewal.new_due_date.isoformat() if renewal else None,
            "status": updated.status.value
        }
    )

    return PaymentResult(
        loan=loan.with_installment(updated).with_ledger_entry(entry),
        installment=updated,
        allocation=plan.allocation,
        ledger_entry=entry,
        renewal=renewal
    )
