"""
Loan Origination Module

Builds the initial installment schedule for each billing cycle and records
new capital lent on an existing contract.
"""

from dataclasses import replace
from typing import Optional, Tuple
import uuid

from .config import get_config
from .dates import DateInput, parse_date, add_days
from .ledger import ledger_entry_for
from .allocation import Allocation
from .balance import installment_status
from .logging_config import get_logger, log_action
from .models import Loan, Installment, BillingCycle, LedgerEntryType
from .money import ZERO, Amount, InvalidInputError, to_decimal, round_money, percent

logger = get_logger(__name__)


def originate_installments(
    principal: Amount,
    interest_rate: Amount,
    billing_cycle,
    start_date: DateInput,
    duration_days: Optional[int] = None,
    skip_weekends: bool = False,
    installment_id: Optional[str] = None
) -> Tuple[Installment, ...]:
    """
    Generate the opening schedule for a loan

    Args:
        principal: Capital lent
        interest_rate: Monthly rate in percent
        billing_cycle: Billing cycle (legacy tags accepted)
        start_date: Contract start
        duration_days: Term of a DAILY_FIXED_TERM loan (defaults to config)
        skip_weekends: Push a fixed-term maturity off Saturdays and Sundays
        installment_id: ID for the generated installment; a new UUID when omitted

    Returns:
        Tuple with the single opening installment

    Raises:
        InvalidInputError: On non-positive principal, negative rate or term
    """
    principal = to_decimal(principal, "principal")
    if principal <= ZERO:
        raise InvalidInputError(f"principal must be greater than zero, got {principal}")
    rate = to_decimal(interest_rate, "interest_rate")
    if rate < ZERO:
        raise InvalidInputError(f"interest_rate must not be negative, got {rate}")

    cycle = BillingCycle.parse(billing_cycle)
    start = parse_date(start_date, "start_date")

    if cycle == BillingCycle.MONTHLY:
        # Simple interest for one month, due a renewal period later
        interest = principal * percent(rate)
        due = add_days(start, get_config().renewal_period_days)
    elif cycle == BillingCycle.DAILY_FREE:
        # Nothing pre-charged; interest accrues from the start date
        interest = ZERO
        due = start
    elif cycle == BillingCycle.DAILY_FIXED_TERM:
        # Flat fee for the whole term, whatever its length
        term = duration_days if duration_days is not None else get_config().default_fixed_term_days
        if term <= 0:
            raise InvalidInputError(f"duration_days must be greater than zero, got {term}")
        interest = principal * percent(rate)
        due = add_days(start, term, skip_weekends=skip_weekends)
    else:
        raise ValueError(f"Unsupported billing cycle: {cycle}")

    installment = Installment(
        id=installment_id or str(uuid.uuid4()),
        number=1,
        due_date=due,
        scheduled_principal=round_money(principal),
        scheduled_interest=round_money(interest)
    )
    return (installment,)


def originate_loan(
    loan_id: str,
    principal: Amount,
    interest_rate: Amount,
    billing_cycle,
    start_date: DateInput,
    fine_percent: Optional[Amount] = None,
    daily_interest_percent: Optional[Amount] = None,
    duration_days: Optional[int] = None,
    skip_weekends: bool = False
) -> Loan:
    """Create a loan with its opening schedule"""
    loan = Loan(
        id=loan_id,
        principal=principal,
        interest_rate=interest_rate,
        billing_cycle=billing_cycle,
        start_date=start_date,
        fine_percent=fine_percent,
        daily_interest_percent=daily_interest_percent,
        installments=originate_installments(
            principal, interest_rate, billing_cycle, start_date,
            duration_days=duration_days, skip_weekends=skip_weekends
        )
    )

    log_action(
        logger, "info", f"Originated loan {loan.id}",
        loan_id=loan.id,
        action="originate",
        resource="loan",
        extra={
            "principal": str(loan.principal),
            "billing_cycle": loan.billing_cycle.value,
            "due_date": loan.installments[0].due_date.isoformat()
        }
    )
    return loan


def lend_more(
    loan: Loan,
    amount: Amount,
    lent_at: DateInput,
    installment_id: Optional[str] = None,
    entry_id: Optional[str] = None,
    new_due_date: Optional[DateInput] = None
) -> Loan:
    """
    Add new capital to an existing contract

    The amount is added to the scheduled and remaining principal of the
    target installment (the oldest open one when not given), which reopens a
    settled loan. new_due_date re-dates that installment.

    Raises:
        InvalidInputError: On a non-positive amount or a loan without installments
    """
    amount = round_money(to_decimal(amount, "amount"))
    if amount <= ZERO:
        raise InvalidInputError(f"amount must be greater than zero, got {amount}")
    if not loan.installments:
        raise InvalidInputError(f"Loan {loan.id} has no installments to lend on")

    if installment_id is not None:
        installment = loan.get_installment(installment_id)
    else:
        open_installments = [i for i in loan.installments if not i.is_paid]
        candidates = open_installments or list(loan.installments)
        installment = min(candidates, key=lambda i: i.due_date)

    updated = replace(
        installment,
        scheduled_principal=installment.scheduled_principal + amount,
        principal_remaining=installment.principal_remaining + amount,
        paid_date=None
    )
    if new_due_date is not None:
        updated = replace(updated, due_date=parse_date(new_due_date, "new_due_date"))
    lent_on = parse_date(lent_at, "lent_at")
    updated = replace(updated, status=installment_status(updated, lent_on))

    entry = ledger_entry_for(
        LedgerEntryType.LEND_MORE,
        Allocation(paid_principal=amount, paid_interest=ZERO, paid_late_fee=ZERO),
        lent_on,
        installment_id=installment.id,
        notes=f"Novo Aporte (+ R$ {amount})",
        entry_id=entry_id
    )

    log_action(
        logger, "info", f"Lent {amount} more on loan {loan.id}",
        loan_id=loan.id,
        action="lend_more",
        resource="installment",
        extra={"installment_id": installment.id, "amount": str(amount)}
    )
    return replace(loan, principal=loan.principal + amount).with_installment(updated).with_ledger_entry(entry)
