"""
Renewal Module

Handles "pay to extend" renewals: interest and late fee are cleared, the
principal stays outstanding, and the installment's due date moves forward.
"""

from decimal import Decimal
from datetime import date
from dataclasses import dataclass, replace
from typing import Optional
import logging

from .allocation import Allocation
from .balance import Balance, installment_status
from .config import get_config
from .dates import DateInput, parse_date, add_days, days_between
from .debt import daily_interest_cost
from .models import Loan, Installment, BillingCycle
from .money import ZERO, round_money, clamp, percent

logger = logging.getLogger(__name__)


def renew(balance: Balance) -> Allocation:
    """Allocation for a renewal: all interest and late fee, no principal"""
    return Allocation(
        paid_principal=ZERO,
        paid_interest=round_money(clamp(balance.interest_remaining)),
        paid_late_fee=round_money(clamp(balance.late_fee_remaining))
    )


@dataclass(frozen=True)
class RenewalResult:
    """New cycle for an installment after a renewal payment"""
    new_start_date: date
    new_due_date: date
    new_principal_remaining: Decimal
    new_interest_remaining: Decimal
    next_cycle_interest: Decimal   # Interest newly charged for the new cycle

    @property
    def new_amount(self) -> Decimal:
        return self.new_principal_remaining + self.new_interest_remaining


def _renew_monthly(loan: Loan, installment: Installment, allocation: Allocation,
                   reference: date, new_due_date: Optional[date]) -> RenewalResult:
    current_due = installment.due_date
    period = get_config().renewal_period_days

    if new_due_date is not None:
        base = current_due
        due = new_due_date
    elif days_between(current_due, reference) > 0 and allocation.paid_principal > ZERO:
        # Paying capital while late restarts the cycle from the payment date
        base = reference
        due = add_days(reference, period)
    else:
        # Keep the original day of the cycle, paying late or early
        base = current_due
        due = add_days(current_due, period)

    next_interest = round_money(installment.principal_remaining * percent(loan.interest_rate))
    return RenewalResult(
        new_start_date=base,
        new_due_date=due,
        new_principal_remaining=installment.principal_remaining,
        new_interest_remaining=installment.interest_remaining + next_interest,
        next_cycle_interest=next_interest
    )


def _renew_daily_free(loan: Loan, installment: Installment, allocation: Allocation,
                      reference: date, new_due_date: Optional[date]) -> RenewalResult:
    paid_until = installment.due_date
    principal_before = installment.principal_remaining + allocation.paid_principal
    due = paid_until

    if allocation.paid_interest <= ZERO and allocation.paid_principal > ZERO:
        # Pure amortization: a stale marker moves to the payment date
        if paid_until < reference:
            due = reference
    else:
        # Interest paid buys whole days
        daily_cost = daily_interest_cost(principal_before, loan.interest_rate)
        if daily_cost > ZERO:
            days_bought = int(allocation.paid_interest // daily_cost)
            if days_bought > 0:
                due = add_days(paid_until, days_bought)
        if new_due_date is not None:
            due = new_due_date

    # Unpaid days re-accrue from the new marker, so pending interest resets
    return RenewalResult(
        new_start_date=due,
        new_due_date=due,
        new_principal_remaining=installment.principal_remaining,
        new_interest_remaining=ZERO,
        next_cycle_interest=ZERO
    )


def _renew_daily_fixed_term(loan: Loan, installment: Installment, allocation: Allocation,
                            reference: date, new_due_date: Optional[date]) -> RenewalResult:
    # Closed term: dates only move when the caller says so
    return RenewalResult(
        new_start_date=loan.start_date,
        new_due_date=new_due_date or installment.due_date,
        new_principal_remaining=installment.principal_remaining,
        new_interest_remaining=installment.interest_remaining,
        next_cycle_interest=ZERO
    )


def reschedule(loan: Loan, installment: Installment, allocation: Allocation,
               reference_date: DateInput, new_due_date: Optional[DateInput] = None) -> RenewalResult:
    """
    Compute the next cycle of an installment after a payment

    Args:
        loan: Loan the installment belongs to
        installment: Installment with the payment already applied
        allocation: Allocation that was applied
        reference_date: Payment date
        new_due_date: Due date chosen by the operator; wins over the cycle rules

    Returns:
        RenewalResult for the installment's new cycle
    """
    reference = parse_date(reference_date, "reference_date")
    manual = parse_date(new_due_date, "new_due_date") if new_due_date is not None else None

    if loan.billing_cycle == BillingCycle.MONTHLY:
        result = _renew_monthly(loan, installment, allocation, reference, manual)
    elif loan.billing_cycle == BillingCycle.DAILY_FREE:
        result = _renew_daily_free(loan, installment, allocation, reference, manual)
    elif loan.billing_cycle == BillingCycle.DAILY_FIXED_TERM:
        result = _renew_daily_fixed_term(loan, installment, allocation, reference, manual)
    else:
        raise ValueError(f"Unsupported billing cycle: {loan.billing_cycle}")

    logger.debug(
        "Rescheduled installment %s of loan %s: %s -> %s",
        installment.id, loan.id, installment.due_date, result.new_due_date
    )
    return result


def apply_renewal(installment: Installment, renewal: RenewalResult,
                  reference_date: DateInput) -> Installment:
    """
    Move an installment into its new cycle

    Scheduled interest moves with the remaining interest: new-cycle interest is
    added, and daily interest dropped for re-accrual is taken back out, so
    paid + remaining still matches what was ever charged. Late fees start over.
    """
    interest_change = renewal.new_interest_remaining - installment.interest_remaining
    updated = replace(
        installment,
        due_date=renewal.new_due_date,
        principal_remaining=renewal.new_principal_remaining,
        interest_remaining=renewal.new_interest_remaining,
        scheduled_interest=clamp(installment.scheduled_interest + interest_change),
        renewal_count=installment.renewal_count + 1,
        accrued_until=None,
        cycle_late_fee_paid=ZERO
    )
    return replace(updated, status=installment_status(updated, reference_date))
