"""
Debt Calculation Module

Computes what an installment owes as of a reference date: outstanding
principal, contractual interest for the loan's billing cycle, and the two
independently forgivable late-fee parts (fixed fine and daily mora).
"""

from decimal import Decimal
from datetime import date
from dataclasses import dataclass
from typing import Optional, Tuple
import logging

from .config import get_config
from .dates import DateInput, parse_date, days_between, add_days
from .models import (
    Loan, Installment, InstallmentStatus, BillingCycle, ForgivenessMode
)
from .money import (
    ZERO, Amount, InvalidInputError, to_decimal, optional_decimal, round_money,
    clamp, percent, require_non_negative
)

logger = logging.getLogger(__name__)

DAYS_PER_MONTH = Decimal('30')


@dataclass(frozen=True)
class DebtBreakdown:
    """What one installment owes as of a reference date"""
    principal: Decimal
    interest: Decimal
    fine: Decimal            # Fixed penalty, charged once when late
    daily_mora: Decimal      # Penalty interest, per day late
    days_late: int
    base_for_fine: Decimal = ZERO

    @property
    def late_fee(self) -> Decimal:
        return self.fine + self.daily_mora

    @property
    def total(self) -> Decimal:
        return self.principal + self.interest + self.fine + self.daily_mora


def parse_forgiveness(value) -> ForgivenessMode:
    """Read a forgiveness mode; None means nothing is waived"""
    if value is None:
        return ForgivenessMode.NONE
    if isinstance(value, ForgivenessMode):
        return value
    try:
        return ForgivenessMode(str(value).strip().upper())
    except ValueError:
        raise InvalidInputError(f"Unsupported forgiveness mode: {value!r}") from None


def apply_forgiveness(fine: Decimal, daily_mora: Decimal,
                      forgiveness: ForgivenessMode) -> Tuple[Decimal, Decimal]:
    """
    Zero the late-fee parts the operator waived

    INTEREST_ONLY refers to penalty interest (the daily mora), never to
    contractual interest.
    """
    if forgiveness == ForgivenessMode.NONE:
        return fine, daily_mora
    elif forgiveness == ForgivenessMode.FINE_ONLY:
        return ZERO, daily_mora
    elif forgiveness == ForgivenessMode.INTEREST_ONLY:
        return fine, ZERO
    elif forgiveness == ForgivenessMode.BOTH:
        return ZERO, ZERO
    else:
        raise ValueError(f"Unsupported forgiveness mode: {forgiveness}")


def late_fee_amount(base: Decimal, days_late: int, fine_amount: Decimal,
                    daily_rate: Decimal) -> Decimal:
    """
    Late fee for a number of days overdue

    Args:
        base: Amount the daily mora is charged on
        days_late: Whole days overdue
        fine_amount: Fixed fine, charged once
        daily_rate: Mora as a fraction per day (0.02 for 2%)

    Returns:
        fine_amount + base * daily_rate * days_late, or zero when not late
    """
    if days_late <= 0:
        return ZERO
    return round_money(fine_amount + base * daily_rate * Decimal(days_late))


def daily_interest_cost(principal: Decimal, monthly_rate: Decimal) -> Decimal:
    """One day of contractual interest: principal * (monthly rate / 30)"""
    return round_money(principal * percent(monthly_rate) / DAYS_PER_MONTH)


def accrual_days(installment: Installment, reference_date: DateInput) -> int:
    """Days of daily interest not yet folded into the installment's balance"""
    marker = installment.due_date
    if installment.accrued_until is not None and installment.accrued_until > marker:
        marker = installment.accrued_until
    return max(0, days_between(marker, reference_date))


def outstanding_late_fee(debt: DebtBreakdown, installment: Installment) -> Decimal:
    """Late fee still owed for the current cycle, net of what was already paid"""
    return round_money(clamp(debt.late_fee - installment.cycle_late_fee_paid))


def _penalty_parts(loan: Loan, base: Decimal, days_late: int) -> Tuple[Decimal, Decimal]:
    """Gross fixed fine and daily mora on a base amount"""
    if days_late <= 0 or base <= ZERO:
        return ZERO, ZERO

    fine = round_money(base * percent(loan.fine_percent))
    daily_mora = round_money(base * percent(loan.daily_interest_percent) * Decimal(days_late))
    return fine, daily_mora


def _monthly_debt(loan: Loan, installment: Installment, days_late: int) -> DebtBreakdown:
    # Interest is scheduled at origination; interest_remaining is already net of payments
    principal = installment.principal_remaining
    fine, daily_mora = _penalty_parts(loan, principal, days_late)
    return DebtBreakdown(
        principal=principal,
        interest=installment.interest_remaining,
        fine=fine,
        daily_mora=daily_mora,
        days_late=days_late,
        base_for_fine=principal
    )


def _daily_free_debt(loan: Loan, installment: Installment, days_late: int,
                     days_accrued: int) -> DebtBreakdown:
    # The due date marks "paid until"; each day past it accrues one daily cost
    principal = installment.principal_remaining
    accrued = round_money(Decimal(days_accrued) * daily_interest_cost(principal, loan.interest_rate))
    return DebtBreakdown(
        principal=principal,
        interest=installment.interest_remaining + accrued,
        fine=ZERO,
        daily_mora=ZERO,
        days_late=days_late
    )


def _daily_fixed_term_debt(loan: Loan, installment: Installment, days_late: int,
                           days_accrued: int) -> DebtBreakdown:
    # The flat fee covers the term; interest keeps accruing daily after maturity
    principal = installment.principal_remaining
    accrued = round_money(Decimal(days_accrued) * daily_interest_cost(principal, loan.interest_rate))
    fine, daily_mora = _penalty_parts(loan, principal, days_late)
    return DebtBreakdown(
        principal=principal,
        interest=installment.interest_remaining + accrued,
        fine=fine,
        daily_mora=daily_mora,
        days_late=days_late,
        base_for_fine=principal
    )


def compute_debt(loan: Loan, installment: Installment, reference_date: DateInput,
                 forgiveness: Optional[ForgivenessMode] = ForgivenessMode.NONE) -> DebtBreakdown:
    """
    Compute an installment's outstanding debt as of a reference date

    Args:
        loan: Loan the installment belongs to (rates and billing cycle)
        installment: Installment snapshot
        reference_date: Date the debt is valued at
        forgiveness: Late-fee parts waived by the operator

    Returns:
        DebtBreakdown with every component rounded half-up to cents
    """
    forgiveness = parse_forgiveness(forgiveness)
    days_late = max(0, days_between(installment.due_date, reference_date))

    if loan.billing_cycle == BillingCycle.MONTHLY:
        gross = _monthly_debt(loan, installment, days_late)
    elif loan.billing_cycle == BillingCycle.DAILY_FREE:
        gross = _daily_free_debt(loan, installment, days_late, accrual_days(installment, reference_date))
    elif loan.billing_cycle == BillingCycle.DAILY_FIXED_TERM:
        gross = _daily_fixed_term_debt(loan, installment, days_late,
                                       accrual_days(installment, reference_date))
    else:
        raise ValueError(f"Unsupported billing cycle: {loan.billing_cycle}")

    fine, daily_mora = apply_forgiveness(gross.fine, gross.daily_mora, forgiveness)

    debt = DebtBreakdown(
        principal=round_money(clamp(gross.principal)),
        interest=round_money(clamp(gross.interest)),
        fine=round_money(clamp(fine)),
        daily_mora=round_money(clamp(daily_mora)),
        days_late=days_late,
        base_for_fine=round_money(gross.base_for_fine)
    )

    logger.debug(
        "Computed debt for installment %s of loan %s: total=%s days_late=%s forgiveness=%s",
        installment.id, loan.id, debt.total, days_late, forgiveness.value
    )
    return debt


@dataclass(frozen=True)
class LoanQuote:
    """Standalone simulator quote for a single-term loan"""
    principal: Decimal
    interest: Decimal
    late_fee: Decimal
    total: Decimal
    days_elapsed: int
    days_overdue: int
    is_due_today: bool
    is_overdue: bool
    next_due_date: date


def quote_loan(
    principal: Amount,
    daily_rate: Amount,
    start_date: DateInput,
    due_date: DateInput,
    reference_date: DateInput,
    late_fee_fixed: Optional[Amount] = None,
    late_fee_daily: Optional[Amount] = None,
    forgiveness: Optional[ForgivenessMode] = ForgivenessMode.NONE
) -> LoanQuote:
    """
    Quote a loan for the simulator screen

    Args:
        principal: Capital lent
        daily_rate: Contractual interest as a fraction per day (0.05 for 5%)
        start_date: Start of the loan
        due_date: Maturity date
        reference_date: Date the quote is valued at
        late_fee_fixed: Absolute fixed fine once overdue
        late_fee_daily: Mora as a fraction of principal per day overdue
        forgiveness: Late-fee parts waived

    Raises:
        InvalidInputError: On non-positive principal, negative rates or start >= due
    """
    principal = to_decimal(principal, "principal")
    if principal <= ZERO:
        raise InvalidInputError(f"principal must be greater than zero, got {principal}")
    daily_rate = require_non_negative(to_decimal(daily_rate, "daily_rate"), "daily_rate")
    fine_amount = require_non_negative(optional_decimal(late_fee_fixed, "late_fee_fixed"), "late_fee_fixed")
    mora_rate = require_non_negative(optional_decimal(late_fee_daily, "late_fee_daily"), "late_fee_daily")

    start = parse_date(start_date, "start_date")
    due = parse_date(due_date, "due_date")
    reference = parse_date(reference_date, "reference_date")
    if start >= due:
        raise InvalidInputError(f"start_date {start} must be before due_date {due}")

    days_elapsed = abs(days_between(start, reference))
    days_to_due = days_between(reference, due)
    days_overdue = max(0, -days_to_due)

    interest = round_money(principal * daily_rate * Decimal(days_elapsed))

    # Waiving the mora rate waives the whole daily part
    fine_amount, mora_rate = apply_forgiveness(fine_amount, mora_rate, parse_forgiveness(forgiveness))
    late_fee = late_fee_amount(principal, days_overdue, fine_amount, mora_rate)

    return LoanQuote(
        principal=round_money(principal),
        interest=interest,
        late_fee=late_fee,
        total=round_money(principal + interest + late_fee),
        days_elapsed=days_elapsed,
        days_overdue=days_overdue,
        is_due_today=days_to_due == 0,
        is_overdue=days_overdue > 0,
        next_due_date=add_days(due, get_config().renewal_period_days)
    )


@dataclass(frozen=True)
class DebtSummary:
    """Debt across all open installments of a loan"""
    total_due: Decimal
    next_due_date: Optional[date]
    pending_count: int
    has_late_installments: bool
    max_days_late: int


def summarize_debt(loan: Loan, reference_date: DateInput,
                   forgiveness: Optional[ForgivenessMode] = ForgivenessMode.NONE) -> DebtSummary:
    """Sum the debt of every unpaid installment as of a reference date"""
    pending = sorted(
        (i for i in loan.installments if i.status != InstallmentStatus.PAID),
        key=lambda i: i.due_date
    )

    total_due = ZERO
    max_days_late = 0
    for installment in pending:
        debt = compute_debt(loan, installment, reference_date, forgiveness)
        total_due += debt.principal + debt.interest + outstanding_late_fee(debt, installment)
        max_days_late = max(max_days_late, debt.days_late)

    return DebtSummary(
        total_due=round_money(total_due),
        next_due_date=pending[0].due_date if pending else None,
        pending_count=len(pending),
        has_late_installments=max_days_late > 0,
        max_days_late=max_days_late
    )


@dataclass(frozen=True)
class PaymentOptions:
    """Amounts offered to the borrower for one installment"""
    total_to_pay: Decimal     # Payoff: principal + interest + late fee
    renew_to_pay: Decimal     # Renewal: interest + late fee, principal stays
    principal: Decimal
    interest: Decimal
    late_fee: Decimal
    can_renew: bool
    days_late: int
    due_date: date


def payment_options(loan: Loan, installment: Installment, reference_date: DateInput,
                    forgiveness: Optional[ForgivenessMode] = ForgivenessMode.NONE) -> PaymentOptions:
    """Payoff and renewal amounts for an installment"""
    debt = compute_debt(loan, installment, reference_date, forgiveness)
    late_fee = outstanding_late_fee(debt, installment)
    renew_to_pay = debt.interest + late_fee

    return PaymentOptions(
        total_to_pay=debt.principal + renew_to_pay,
        renew_to_pay=renew_to_pay,
        principal=debt.principal,
        interest=debt.interest,
        late_fee=late_fee,
        # Only principal left means payoff, not renewal
        can_renew=renew_to_pay > ZERO,
        days_late=debt.days_late,
        due_date=installment.due_date
    )
