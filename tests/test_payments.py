"""
Test suite for payments module

Tests payoffs, renewals, amortizations and daily receipts end to end:
planning, accrual, allocation, rescheduling and the ledger entry produced.
"""

import pytest
from decimal import Decimal
from datetime import date
from dataclasses import replace

from lending_ledger.balance import compute_loan_status, compute_remaining_balance
from lending_ledger.debt import compute_debt
from lending_ledger.models import (
    Loan, Installment, Agreement, BillingCycle, InstallmentStatus, LoanStatus,
    LedgerEntryType, ForgivenessMode
)
from lending_ledger.money import InvalidInputError
from lending_ledger.payments import PaymentType, plan_payment, process_payment


def monthly_loan():
    installment = Installment(id="i1", due_date="2024-01-31", scheduled_principal="1000",
                              scheduled_interest="100")
    return Loan(id="L1", principal="1000", interest_rate="10", billing_cycle=BillingCycle.MONTHLY,
                start_date="2024-01-01", fine_percent="2", daily_interest_percent="1",
                installments=(installment,))


class TestPlanPayment:
    """Test payment amounts and splits before they are applied"""

    def setup_method(self):
        self.loan = monthly_loan()
        self.installment = self.loan.installments[0]

    def test_full_is_everything_owed(self):
        plan = plan_payment(self.loan, self.installment, "FULL", "2024-02-05")
        assert plan.amount_to_pay == Decimal('1170.00')
        assert plan.allocation.paid_principal == Decimal('1000.00')
        assert plan.note == "Quitação Total do Contrato"

    def test_full_ignores_amount(self):
        plan = plan_payment(self.loan, self.installment, PaymentType.FULL, "2024-02-05", amount=10)
        assert plan.amount_to_pay == Decimal('1170.00')

    def test_full_with_forgiveness(self):
        plan = plan_payment(self.loan, self.installment, PaymentType.FULL, "2024-02-05",
                            forgiveness=ForgivenessMode.BOTH)
        assert plan.amount_to_pay == Decimal('1100.00')

    def test_renew_interest(self):
        plan = plan_payment(self.loan, self.installment, "renew_interest", "2024-02-05")
        assert plan.amount_to_pay == Decimal('170.00')
        assert plan.allocation.paid_interest == Decimal('100.00')
        assert plan.allocation.paid_late_fee == Decimal('70.00')
        assert plan.allocation.paid_principal == Decimal('0')

    def test_renew_av_goes_to_capital(self):
        plan = plan_payment(self.loan, self.installment, PaymentType.RENEW_AV, "2024-02-05",
                            amount="300")
        assert plan.allocation.paid_principal == Decimal('300.00')
        assert plan.allocation.paid_interest == Decimal('0')
        assert plan.note == "Amortização de Capital (R$ 300.00)"

        excess = plan_payment(self.loan, self.installment, PaymentType.RENEW_AV, "2024-02-05",
                              amount="1200")
        assert excess.allocation.paid_principal == Decimal('1000.00')
        assert excess.allocation.unallocated == Decimal('200.00')

    def test_amount_validation(self):
        with pytest.raises(InvalidInputError, match="need an amount"):
            plan_payment(self.loan, self.installment, PaymentType.CUSTOM, "2024-02-05")
        with pytest.raises(InvalidInputError, match="greater than zero"):
            plan_payment(self.loan, self.installment, PaymentType.RENEW_AV, "2024-02-05", amount=0)
        with pytest.raises(InvalidInputError, match="Unsupported payment type"):
            plan_payment(self.loan, self.installment, "PIX", "2024-02-05")

    def test_nothing_to_renew(self):
        installment = replace(self.installment, interest_remaining=Decimal('0'))
        with pytest.raises(InvalidInputError, match="no interest or late fee to renew"):
            plan_payment(self.loan, installment, PaymentType.RENEW_INTEREST, "2024-01-20")


class TestMonthlyPayments:
    """Test processing payments on MONTHLY loans"""

    def setup_method(self):
        self.loan = monthly_loan()

    def test_renew_interest_moves_cycle(self):
        result = process_payment(self.loan, "i1", PaymentType.RENEW_INTEREST, "2024-02-05",
                                 entry_id="e1")
        installment = result.installment

        assert installment.due_date == date(2024, 3, 1)
        assert installment.principal_remaining == Decimal('1000.00')
        assert installment.interest_remaining == Decimal('100.00')
        assert installment.scheduled_interest == Decimal('200.00')
        assert installment.late_fee_accrued == Decimal('0')
        assert installment.cycle_late_fee_paid == Decimal('0')
        assert installment.renewal_count == 1
        assert installment.status == InstallmentStatus.PARTIAL

        entry = result.ledger_entry
        assert entry.id == "e1"
        assert entry.type == LedgerEntryType.PAYMENT_INTEREST_ONLY
        assert entry.amount == Decimal('170.00')
        assert entry.interest_delta == Decimal('100.00')
        assert entry.late_fee_delta == Decimal('70.00')
        assert result.loan.ledger == (entry,)
        assert compute_loan_status(result.loan, "2024-02-05") == LoanStatus.ACTIVE

    def test_full_payment_settles_loan(self):
        result = process_payment(self.loan, "i1", "FULL", "2024-02-05")
        assert result.installment.status == InstallmentStatus.PAID
        assert result.installment.paid_date == date(2024, 2, 5)
        assert result.installment.paid_total == Decimal('1170.00')
        assert result.renewal is None
        assert result.ledger_entry.type == LedgerEntryType.PAYMENT_FULL
        assert compute_remaining_balance(result.loan).is_paid
        assert compute_loan_status(result.loan, "2024-02-05") == LoanStatus.PAID

    def test_overpayment_leaves_excess_unallocated(self):
        result = process_payment(self.loan, "i1", PaymentType.CUSTOM, "2024-01-20", amount="2000")
        assert result.allocation.unallocated == Decimal('900.00')
        assert result.ledger_entry.amount == Decimal('1100.00')
        assert result.installment.status == InstallmentStatus.PAID

    def test_amortization_renews_on_reduced_capital(self):
        result = process_payment(self.loan, "i1", PaymentType.RENEW_AV, "2024-01-20", amount="300")
        installment = result.installment
        assert installment.principal_remaining == Decimal('700.00')
        assert installment.due_date == date(2024, 3, 1)
        assert result.renewal.next_cycle_interest == Decimal('70.00')
        assert result.ledger_entry.type == LedgerEntryType.PAYMENT_PARTIAL

    def test_custom_partial_keeps_cycle(self):
        result = process_payment(self.loan, "i1", PaymentType.CUSTOM, "2024-01-20", amount="50")
        assert result.renewal is None
        assert result.installment.due_date == date(2024, 1, 31)
        assert result.installment.interest_remaining == Decimal('50.00')

    def test_original_loan_untouched(self):
        process_payment(self.loan, "i1", "FULL", "2024-02-05")
        assert self.loan.installments[0].status == InstallmentStatus.PENDING
        assert self.loan.ledger == ()


class TestPaymentGuards:
    """Test payments that must be rejected"""

    def setup_method(self):
        self.loan = monthly_loan()

    def test_unknown_installment(self):
        with pytest.raises(InvalidInputError, match="not found"):
            process_payment(self.loan, "missing", "FULL", "2024-02-05")

    def test_already_paid(self):
        paid = process_payment(self.loan, "i1", "FULL", "2024-02-05").loan
        with pytest.raises(InvalidInputError, match="already paid"):
            process_payment(paid, "i1", PaymentType.CUSTOM, "2024-02-06", amount=10)

    def test_active_agreement_blocks_payments(self):
        agreement = Agreement(id="A1", loan_id="L1", type="PARCELADO_SEM_JUROS",
                              total_debt_at_negotiation="1170", negotiated_total="1170",
                              installments_count=3, frequency="MONTHLY")
        loan = replace(self.loan, active_agreement=agreement)
        with pytest.raises(InvalidInputError, match="under agreement"):
            process_payment(loan, "i1", "FULL", "2024-02-05")


class TestDailyPayments:
    """Test daily receipts on daily-interest loans"""

    def setup_method(self):
        installment = Installment(id="i1", due_date="2024-01-01", scheduled_principal="1000")
        self.loan = Loan(id="L2", principal="1000", interest_rate="30",
                         billing_cycle=BillingCycle.DAILY_FREE, start_date="2024-01-01",
                         installments=(installment,))

    def test_receipt_buys_days(self):
        result = process_payment(self.loan, "i1", PaymentType.CUSTOM, "2024-01-11", amount="100")
        installment = result.installment
        assert installment.due_date == date(2024, 1, 11)
        assert installment.interest_remaining == Decimal('0')
        assert installment.scheduled_interest == Decimal('100.00')
        assert installment.status == InstallmentStatus.PARTIAL
        assert result.ledger_entry.notes == "Recebimento de Diária(s)"

        debt = compute_debt(result.loan, installment, "2024-01-11")
        assert debt.interest == Decimal('0')

    def test_partial_day_reaccrues(self):
        """Test unpaid days accrue again from the new marker"""
        result = process_payment(self.loan, "i1", PaymentType.CUSTOM, "2024-01-11", amount="55")
        installment = result.installment
        assert installment.due_date == date(2024, 1, 6)
        assert installment.scheduled_interest == Decimal('55.00')
        assert installment.paid_interest == Decimal('55.00')
        assert installment.status == InstallmentStatus.LATE

        debt = compute_debt(result.loan, installment, "2024-01-11")
        assert debt.interest == Decimal('50.00')

    def test_fixed_term_partial_payment_after_maturity(self):
        installment = Installment(id="i1", due_date="2024-01-16", scheduled_principal="1000",
                                  scheduled_interest="200")
        loan = Loan(id="L3", principal="1000", interest_rate="20",
                    billing_cycle=BillingCycle.DAILY_FIXED_TERM, start_date="2024-01-01",
                    fine_percent="2", daily_interest_percent="1", installments=(installment,))

        result = process_payment(loan, "i1", PaymentType.CUSTOM, "2024-01-19", amount="100")
        updated = result.installment
        assert result.renewal is None
        assert updated.due_date == date(2024, 1, 16)
        assert updated.interest_remaining == Decimal('120.01')
        assert updated.accrued_until == date(2024, 1, 19)
        assert updated.late_fee_accrued == Decimal('50.00')

        assert compute_debt(result.loan, updated, "2024-01-19").interest == Decimal('120.01')
        assert compute_debt(result.loan, updated, "2024-01-20").interest == Decimal('126.68')
