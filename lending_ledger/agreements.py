"""
Renegotiation Agreements Module

Simulates the restructuring of a defaulted debt into a new installment
schedule and tracks the resulting agreement through payment, settlement
and breach. While an agreement is ACTIVE it supersedes the loan's original
schedule.
"""

from decimal import Decimal
from datetime import date, datetime
from dataclasses import dataclass, replace
from typing import List, Optional, Tuple
import uuid

from .config import get_config
from .dates import DateInput, parse_date, add_days
from .debt import summarize_debt
from .logging_config import get_logger, log_action
from .models import (
    Loan, Agreement, AgreementInstallment, AgreementType, AgreementFrequency,
    AgreementStatus, AgreementInstallmentStatus, LedgerEntry, LedgerEntryType
)
from .money import (
    ZERO, ONE_HUNDRED, Amount, InvalidInputError, to_decimal, optional_decimal,
    round_money, require_non_negative
)

logger = get_logger(__name__)

# Months covered by one installment, and days between due dates
_MONTHS_PER_INSTALLMENT = {
    AgreementFrequency.WEEKLY: Decimal('0.25'),
    AgreementFrequency.BIWEEKLY: Decimal('0.5'),
    AgreementFrequency.MONTHLY: Decimal('1'),
}

_DAYS_BETWEEN_INSTALLMENTS = {
    AgreementFrequency.WEEKLY: 7,
    AgreementFrequency.BIWEEKLY: 15,
    AgreementFrequency.MONTHLY: 30,
}


@dataclass(frozen=True)
class AgreementParams:
    """Terms proposed for a renegotiation"""
    total_debt: Decimal
    type: AgreementType
    installments_count: int
    first_due_date: date
    frequency: AgreementFrequency = AgreementFrequency.MONTHLY
    interest_rate: Decimal = ZERO    # Monthly %, only used with interest

    def __post_init__(self):
        total_debt = to_decimal(self.total_debt, "total_debt")
        if total_debt <= ZERO:
            raise InvalidInputError(f"total_debt must be greater than zero, got {total_debt}")
        object.__setattr__(self, 'total_debt', round_money(total_debt))

        if isinstance(self.installments_count, bool) or not isinstance(self.installments_count, int):
            raise InvalidInputError(f"installments_count must be an integer, got {self.installments_count!r}")
        if self.installments_count <= 0:
            raise InvalidInputError(
                f"installments_count must be greater than zero, got {self.installments_count}"
            )
        object.__setattr__(self, 'interest_rate', require_non_negative(
            optional_decimal(self.interest_rate, "interest_rate"), "interest_rate"))
        object.__setattr__(self, 'first_due_date', parse_date(self.first_due_date, "first_due_date"))

        try:
            if not isinstance(self.type, AgreementType):
                object.__setattr__(self, 'type', AgreementType(str(self.type).upper()))
            if not isinstance(self.frequency, AgreementFrequency):
                object.__setattr__(self, 'frequency', AgreementFrequency(str(self.frequency).upper()))
        except ValueError as e:
            raise InvalidInputError(str(e)) from None


@dataclass(frozen=True)
class AgreementSimulation:
    """Proposed agreement schedule"""
    installments: Tuple[AgreementInstallment, ...]
    negotiated_total: Decimal

    @property
    def installment_amount(self) -> Decimal:
        return self.installments[0].amount if self.installments else ZERO


def negotiated_total(params: AgreementParams) -> Decimal:
    """
    Total owed under an agreement

    With interest, simple monthly interest applies over the agreement's
    length in months (weeks count as a quarter month, fortnights as half).
    """
    if params.type == AgreementType.PARCELADO_SEM_JUROS:
        return params.total_debt
    elif params.type == AgreementType.PARCELADO_COM_JUROS:
        months = _MONTHS_PER_INSTALLMENT[params.frequency] * Decimal(params.installments_count)
        return round_money(params.total_debt * (1 + params.interest_rate / ONE_HUNDRED * months))
    else:
        raise ValueError(f"Unsupported agreement type: {params.type}")


def simulate_agreement(params: AgreementParams) -> AgreementSimulation:
    """
    Split a negotiated debt into installments

    Every installment is the negotiated total divided by the count, rounded
    to cents; the rounding residual goes to the last installment so the
    schedule adds up to the negotiated total exactly. Identical params give
    identical simulations.

    Args:
        params: Validated agreement terms

    Returns:
        AgreementSimulation with PENDING installments

    Raises:
        InvalidInputError: When the debt cannot cover one cent per installment
    """
    total = negotiated_total(params)
    count = params.installments_count
    value = round_money(total / Decimal(count))
    last_value = total - value * (count - 1)
    if last_value < ZERO:
        raise InvalidInputError(
            f"Debt of {total} is too small to split into {count} installments"
        )
    step = _DAYS_BETWEEN_INSTALLMENTS[params.frequency]

    installments: List[AgreementInstallment] = []
    due = params.first_due_date
    for number in range(1, count + 1):
        installments.append(AgreementInstallment(
            number=number,
            due_date=due,
            amount=last_value if number == count else value
        ))
        due = add_days(due, step)

    return AgreementSimulation(installments=tuple(installments), negotiated_total=total)


def negotiation_debt(loan: Loan, reference_date: DateInput) -> Decimal:
    """Total debt of a loan as of the negotiation date, frozen into the agreement"""
    return summarize_debt(loan, reference_date).total_due


def create_agreement(
    loan_id: str,
    params: AgreementParams,
    simulation: AgreementSimulation,
    created_at: Optional[datetime] = None,
    agreement_id: Optional[str] = None
) -> Agreement:
    """Build an ACTIVE agreement from accepted terms and their simulation"""
    agreement = Agreement(
        id=agreement_id or str(uuid.uuid4()),
        loan_id=loan_id,
        type=params.type,
        total_debt_at_negotiation=params.total_debt,
        negotiated_total=simulation.negotiated_total,
        installments_count=params.installments_count,
        frequency=params.frequency,
        status=AgreementStatus.ACTIVE,
        installments=simulation.installments,
        interest_rate=params.interest_rate,
        created_at=created_at
    )

    log_action(
        logger, "info", f"Created agreement {agreement.id} for loan {loan_id}",
        loan_id=loan_id,
        action="create_agreement",
        resource="agreement",
        extra={
            "agreement_id": agreement.id,
            "type": agreement.type.value,
            "total_debt": str(agreement.total_debt_at_negotiation),
            "negotiated_total": str(agreement.negotiated_total),
            "installments": agreement.installments_count
        }
    )
    return agreement


def open_agreement(
    loan: Loan,
    type: AgreementType,
    installments_count: int,
    first_due_date: DateInput,
    reference_date: DateInput,
    frequency: AgreementFrequency = AgreementFrequency.MONTHLY,
    interest_rate: Optional[Amount] = None,
    created_at: Optional[datetime] = None,
    agreement_id: Optional[str] = None
) -> Loan:
    """
    Renegotiate a loan's current debt and attach the agreement to it

    Raises:
        InvalidInputError: If the loan already has an ACTIVE agreement or owes nothing
    """
    if loan.active_agreement is not None and loan.active_agreement.is_active:
        raise InvalidInputError(f"Loan {loan.id} already has active agreement {loan.active_agreement.id}")

    params = AgreementParams(
        total_debt=negotiation_debt(loan, reference_date),
        type=type,
        installments_count=installments_count,
        first_due_date=first_due_date,
        frequency=frequency,
        interest_rate=interest_rate
    )
    agreement = create_agreement(loan.id, params, simulate_agreement(params), created_at, agreement_id)
    return replace(loan, active_agreement=agreement)


def record_agreement_payment(agreement: Agreement, number: int, amount: Amount,
                             paid_at: DateInput) -> Agreement:
    """
    Record a payment against one agreement installment

    The installment is PAID once what was paid reaches its amount less the
    agreement tolerance, PARTIAL otherwise. The agreement becomes PAID when
    every installment is.

    Raises:
        InvalidInputError: On a non-ACTIVE agreement, unknown installment or
            non-positive amount
    """
    if agreement.status != AgreementStatus.ACTIVE:
        raise InvalidInputError(
            f"Agreement {agreement.id} is {agreement.status.value}; payments need an ACTIVE agreement"
        )
    amount = round_money(to_decimal(amount, "amount"))
    if amount <= ZERO:
        raise InvalidInputError(f"Payment amount must be greater than zero, got {amount}")
    paid_on = parse_date(paid_at, "paid_at")
    tolerance = Decimal(get_config().agreement_payment_tolerance)

    installments = []
    found = False
    for installment in agreement.installments:
        if installment.number != number:
            installments.append(installment)
            continue

        found = True
        paid_amount = installment.paid_amount + amount
        if paid_amount >= installment.amount - tolerance:
            status = AgreementInstallmentStatus.PAID
        else:
            status = AgreementInstallmentStatus.PARTIAL
        installments.append(replace(
            installment, paid_amount=paid_amount, status=status, paid_date=paid_on
        ))

    if not found:
        raise InvalidInputError(f"Agreement {agreement.id} has no installment {number}")

    status = agreement.status
    if all(i.status == AgreementInstallmentStatus.PAID for i in installments):
        status = AgreementStatus.PAID

    return replace(agreement, installments=tuple(installments), status=status)


@dataclass(frozen=True)
class AgreementPaymentResult:
    """Loan and agreement after an agreement payment"""
    loan: Loan
    agreement: Agreement
    ledger_entry: LedgerEntry


def pay_agreement(loan: Loan, number: int, amount: Amount, paid_at: DateInput,
                  entry_id: Optional[str] = None) -> AgreementPaymentResult:
    """
    Pay an installment of the loan's agreement and record it on the ledger

    The ledger entry carries no principal or interest deltas: agreement
    money is accounted for separately from the original installments.
    """
    agreement = loan.active_agreement
    if agreement is None:
        raise InvalidInputError(f"Loan {loan.id} has no agreement")

    updated = record_agreement_payment(agreement, number, amount, paid_at)
    entry = LedgerEntry(
        id=entry_id or str(uuid.uuid4()),
        date=paid_at,
        type=LedgerEntryType.AGREEMENT_PAYMENT,
        amount=amount,
        notes=f"Pagamento Acordo {number}/{updated.installments_count}"
    )

    log_action(
        logger, "info", f"Agreement {updated.id} installment {number} paid",
        loan_id=loan.id,
        action="agreement_payment",
        resource="agreement",
        extra={
            "agreement_id": updated.id,
            "installment": number,
            "amount": str(entry.amount),
            "agreement_status": updated.status.value
        }
    )

    return AgreementPaymentResult(
        loan=replace(loan, active_agreement=updated).with_ledger_entry(entry),
        agreement=updated,
        ledger_entry=entry
    )


def break_agreement(agreement: Agreement) -> Agreement:
    """
    Mark an agreement as broken by the borrower

    Raises:
        InvalidInputError: If the agreement is not ACTIVE
    """
    if agreement.status != AgreementStatus.ACTIVE:
        raise InvalidInputError(
            f"Only ACTIVE agreements can be broken; {agreement.id} is {agreement.status.value}"
        )

    log_action(
        logger, "warning", f"Agreement {agreement.id} broken",
        loan_id=agreement.loan_id,
        action="break_agreement",
        resource="agreement",
        extra={"agreement_id": agreement.id, "paid_amount": str(agreement.paid_amount)}
    )
    return replace(agreement, status=AgreementStatus.BROKEN)
