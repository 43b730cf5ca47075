"""
Test suite for renewal module

Tests renewal allocations and how each billing cycle moves an installment
into its next cycle.
"""

from decimal import Decimal
from datetime import date
from dataclasses import replace

from lending_ledger.allocation import Allocation
from lending_ledger.balance import Balance
from lending_ledger.models import Loan, Installment, BillingCycle, InstallmentStatus
from lending_ledger.renewal import renew, reschedule, apply_renewal

ZERO = Decimal('0')


def interest_paid(amount):
    return Allocation(paid_principal=ZERO, paid_interest=Decimal(amount), paid_late_fee=ZERO)


class TestRenew:
    """Test the renewal allocation"""

    def test_clears_interest_and_late_fee(self):
        allocation = renew(Balance(Decimal('1000'), Decimal('100'), Decimal('30')))
        assert allocation.paid_principal == ZERO
        assert allocation.paid_interest == Decimal('100.00')
        assert allocation.paid_late_fee == Decimal('30.00')
        assert allocation.unallocated == ZERO


class TestMonthlyReschedule:
    """Test MONTHLY renewals"""

    def setup_method(self):
        # Installment after its interest was paid
        self.installment = Installment(
            id="i1", due_date="2024-02-01", scheduled_principal="1000",
            scheduled_interest="100", interest_remaining="0", paid_interest="100",
            paid_total="100"
        )
        self.loan = Loan(id="L1", principal="1000", interest_rate="10",
                         billing_cycle=BillingCycle.MONTHLY, start_date="2024-01-02",
                         installments=(self.installment,))

    def test_on_time_keeps_cycle_day(self):
        result = reschedule(self.loan, self.installment, interest_paid('100'), "2024-01-30")
        assert result.new_start_date == date(2024, 2, 1)
        assert result.new_due_date == date(2024, 3, 2)
        assert result.next_cycle_interest == Decimal('100.00')
        assert result.new_interest_remaining == Decimal('100.00')
        assert result.new_principal_remaining == Decimal('1000.00')
        assert result.new_amount == Decimal('1100.00')

    def test_late_interest_only_keeps_cycle_day(self):
        result = reschedule(self.loan, self.installment, interest_paid('100'), "2024-02-10")
        assert result.new_due_date == date(2024, 3, 2)

    def test_late_amortization_restarts_from_payment(self):
        """Test paying capital while late restarts the cycle on the payment date"""
        installment = replace(self.installment, principal_remaining=Decimal('800'),
                              paid_principal=Decimal('200'))
        allocation = Allocation(paid_principal=Decimal('200'), paid_interest=Decimal('100'),
                                paid_late_fee=ZERO)
        result = reschedule(self.loan, installment, allocation, "2024-02-10")
        assert result.new_start_date == date(2024, 2, 10)
        assert result.new_due_date == date(2024, 3, 11)
        assert result.next_cycle_interest == Decimal('80.00')

    def test_manual_date_wins(self):
        result = reschedule(self.loan, self.installment, interest_paid('100'), "2024-02-10",
                            new_due_date="15/04/2024")
        assert result.new_due_date == date(2024, 4, 15)


class TestDailyFreeReschedule:
    """Test DAILY_FREE renewals"""

    def setup_method(self):
        self.installment = Installment(id="i1", due_date="2024-01-01", scheduled_principal="1000")
        self.loan = Loan(id="L2", principal="1000", interest_rate="30",
                         billing_cycle=BillingCycle.DAILY_FREE, start_date="2024-01-01",
                         installments=(self.installment,))

    def test_interest_buys_whole_days(self):
        result = reschedule(self.loan, self.installment, interest_paid('50'), "2024-01-11")
        assert result.new_due_date == date(2024, 1, 6)
        assert result.new_start_date == date(2024, 1, 6)
        assert result.new_interest_remaining == ZERO

        partial_day = reschedule(self.loan, self.installment, interest_paid('55'), "2024-01-11")
        assert partial_day.new_due_date == date(2024, 1, 6)

    def test_pure_amortization_moves_stale_marker(self):
        installment = replace(self.installment, principal_remaining=Decimal('900'),
                              paid_principal=Decimal('100'))
        allocation = Allocation(paid_principal=Decimal('100'), paid_interest=ZERO, paid_late_fee=ZERO)
        result = reschedule(self.loan, installment, allocation, "2024-01-20")
        assert result.new_due_date == date(2024, 1, 20)
        assert result.new_principal_remaining == Decimal('900.00')

    def test_days_priced_on_principal_before_payment(self):
        installment = replace(self.installment, principal_remaining=Decimal('500'),
                              paid_principal=Decimal('500'))
        allocation = Allocation(paid_principal=Decimal('500'), paid_interest=Decimal('30'),
                                paid_late_fee=ZERO)
        result = reschedule(self.loan, installment, allocation, "2024-01-11")
        assert result.new_due_date == date(2024, 1, 4)


class TestFixedTermReschedule:
    """Test DAILY_FIXED_TERM renewals"""

    def setup_method(self):
        self.installment = Installment(id="i1", due_date="2024-01-16", scheduled_principal="1000",
                                       scheduled_interest="200")
        self.loan = Loan(id="L3", principal="1000", interest_rate="20",
                         billing_cycle=BillingCycle.DAILY_FIXED_TERM, start_date="2024-01-01",
                         installments=(self.installment,))

    def test_dates_are_fixed(self):
        result = reschedule(self.loan, self.installment, interest_paid('100'), "2024-01-10")
        assert result.new_due_date == date(2024, 1, 16)
        assert result.new_start_date == date(2024, 1, 1)
        assert result.next_cycle_interest == ZERO

    def test_explicit_extension(self):
        result = reschedule(self.loan, self.installment, interest_paid('100'), "2024-01-10",
                            new_due_date="2024-01-31")
        assert result.new_due_date == date(2024, 1, 31)


class TestApplyRenewal:
    """Test moving an installment into its next cycle"""

    def test_monthly_cycle_adds_interest(self):
        installment = Installment(
            id="i1", due_date="2024-02-01", scheduled_principal="1000",
            scheduled_interest="100", interest_remaining="0", paid_interest="100",
            paid_total="100", cycle_late_fee_paid="20"
        )
        loan = Loan(id="L1", principal="1000", interest_rate="10", billing_cycle="MONTHLY",
                    start_date="2024-01-02", installments=(installment,))

        renewal = reschedule(loan, installment, interest_paid('100'), "2024-01-30")
        renewed = apply_renewal(installment, renewal, "2024-01-30")

        assert renewed.due_date == date(2024, 3, 2)
        assert renewed.scheduled_interest == Decimal('200.00')
        assert renewed.paid_interest + renewed.interest_remaining == renewed.scheduled_interest
        assert renewed.renewal_count == 1
        assert renewed.cycle_late_fee_paid == ZERO
        assert renewed.status == InstallmentStatus.PARTIAL

    def test_dropped_daily_interest_leaves_schedule(self):
        """Test unpaid daily interest is taken out of the schedule for re-accrual"""
        installment = Installment(
            id="i1", due_date="2024-01-01", scheduled_principal="1000",
            scheduled_interest="100", interest_remaining="45", paid_interest="55",
            paid_total="55", accrued_until="2024-01-11"
        )
        loan = Loan(id="L2", principal="1000", interest_rate="30", billing_cycle="DAILY_FREE",
                    start_date="2024-01-01", installments=(installment,))

        renewal = reschedule(loan, installment, interest_paid('55'), "2024-01-11")
        renewed = apply_renewal(installment, renewal, "2024-01-11")

        assert renewed.due_date == date(2024, 1, 6)
        assert renewed.interest_remaining == ZERO
        assert renewed.scheduled_interest == Decimal('55.00')
        assert renewed.accrued_until is None
        assert renewed.status == InstallmentStatus.LATE
