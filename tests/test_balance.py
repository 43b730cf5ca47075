"""
Test suite for balance module

Tests remaining-balance aggregation and the loan lifecycle status rules.
"""

from decimal import Decimal
from dataclasses import replace

from lending_ledger.balance import (
    Balance, compute_remaining_balance, installment_balance, installment_status,
    compute_loan_status, is_legally_actionable
)
from lending_ledger.models import (
    Loan, Installment, Agreement, InstallmentStatus, LoanStatus, AgreementStatus
)


def make_agreement(status=AgreementStatus.ACTIVE):
    return Agreement(
        id="A1",
        loan_id="L1",
        type="PARCELADO_SEM_JUROS",
        total_debt_at_negotiation="1170",
        negotiated_total="1170",
        installments_count=1,
        frequency="MONTHLY",
        status=status
    )


class TestRemainingBalance:
    """Test balance aggregation"""

    def setup_method(self):
        self.first = Installment(id="i1", number=1, due_date="2024-02-01",
                                 scheduled_principal="500", scheduled_interest="50",
                                 late_fee_accrued="12.50")
        self.second = Installment(id="i2", number=2, due_date="2024-03-02",
                                  scheduled_principal="500", scheduled_interest="50")
        self.loan = Loan(id="L1", principal="1000", interest_rate="10",
                         billing_cycle="MONTHLY", start_date="2024-01-02",
                         installments=(self.first, self.second))

    def test_sums_components(self):
        balance = compute_remaining_balance(self.loan)
        assert balance.principal_remaining == Decimal('1000.00')
        assert balance.interest_remaining == Decimal('100.00')
        assert balance.late_fee_remaining == Decimal('12.50')
        assert balance.total_remaining == Decimal('1112.50')
        assert not balance.is_paid

    def test_idempotent(self):
        """Test repeated calls on the same snapshot agree"""
        assert compute_remaining_balance(self.loan) == compute_remaining_balance(self.loan)
        assert (compute_remaining_balance(self.loan, "2024-02-06")
                == compute_remaining_balance(self.loan, "2024-02-06"))

    def test_cycle_fields(self):
        balance = compute_remaining_balance(self.loan, "2024-02-06")
        assert balance.days_in_cycle == 5
        assert not balance.is_cycle_paid

    def test_installment_balance(self):
        balance = installment_balance(self.second)
        assert balance == Balance(Decimal('500.00'), Decimal('50.00'), Decimal('0.00'),
                                  is_cycle_paid=False)

    def test_within_tolerance_is_paid(self):
        settled = replace(self.first, principal_remaining=Decimal('0.03'),
                          interest_remaining=Decimal('0'), late_fee_accrued=Decimal('0'))
        other = replace(self.second, principal_remaining=Decimal('0.02'),
                        interest_remaining=Decimal('0'))
        loan = replace(self.loan, installments=(settled, other))
        assert compute_remaining_balance(loan).is_paid


class TestInstallmentStatus:
    """Test per-installment status derivation"""

    def setup_method(self):
        self.installment = Installment(id="i1", due_date="2024-02-01",
                                       scheduled_principal="1000", scheduled_interest="100")

    def test_pending(self):
        assert installment_status(self.installment, "2024-01-20") == InstallmentStatus.PENDING

    def test_partial(self):
        partial = replace(self.installment, interest_remaining=Decimal('0'),
                          paid_interest=Decimal('100'), paid_total=Decimal('100'))
        assert installment_status(partial, "2024-01-20") == InstallmentStatus.PARTIAL

    def test_late(self):
        assert installment_status(self.installment, "2024-02-02") == InstallmentStatus.LATE

    def test_paid_within_tolerance(self):
        paid = replace(self.installment, principal_remaining=Decimal('0.04'),
                       interest_remaining=Decimal('0'))
        assert installment_status(paid, "2024-03-01") == InstallmentStatus.PAID


class TestLoanStatus:
    """Test lifecycle status rules, in order"""

    def setup_method(self):
        self.installment = Installment(id="i1", due_date="2024-02-01",
                                       scheduled_principal="1000", scheduled_interest="100")
        self.loan = Loan(id="L1", principal="1000", interest_rate="10",
                         billing_cycle="MONTHLY", start_date="2024-01-02",
                         installments=(self.installment,))
        self.paid = replace(self.installment, principal_remaining=Decimal('0'),
                            interest_remaining=Decimal('0'), status=InstallmentStatus.PAID)

    def test_active(self):
        assert compute_loan_status(self.loan, "2024-01-20") == LoanStatus.ACTIVE
        assert not is_legally_actionable(self.loan, "2024-01-20")

    def test_overdue(self):
        assert compute_loan_status(self.loan, "2024-02-05") == LoanStatus.OVERDUE
        assert is_legally_actionable(self.loan, "2024-02-05")

    def test_paid(self):
        loan = replace(self.loan, installments=(self.paid,))
        assert compute_loan_status(loan, "2024-02-05") == LoanStatus.PAID
        assert not is_legally_actionable(loan, "2024-02-05")

    def test_paid_wins_over_agreement(self):
        loan = replace(self.loan, installments=(self.paid,), active_agreement=make_agreement())
        assert compute_loan_status(loan, "2024-02-05") == LoanStatus.PAID

    def test_active_agreement_is_legal(self):
        loan = replace(self.loan, active_agreement=make_agreement())
        assert compute_loan_status(loan, "2024-01-20") == LoanStatus.LEGAL
        assert is_legally_actionable(loan, "2024-01-20")

    def test_broken_agreement_falls_back_to_schedule(self):
        loan = replace(self.loan, active_agreement=make_agreement(AgreementStatus.BROKEN))
        assert compute_loan_status(loan, "2024-02-05") == LoanStatus.OVERDUE

    def test_paid_agreement_settles_loan(self):
        """Test a PAID agreement settles the loan before its installments are closed out"""
        loan = replace(self.loan, active_agreement=make_agreement(AgreementStatus.PAID))
        assert compute_loan_status(loan, "2024-02-05") == LoanStatus.PAID
        assert not compute_remaining_balance(loan).is_paid

    def test_archived_is_closed(self):
        loan = replace(self.loan, is_archived=True)
        assert compute_loan_status(loan, "2024-02-05") == LoanStatus.CLOSED
        assert not is_legally_actionable(loan, "2024-02-05")

    def test_paid_reopens_with_new_debt(self):
        """Test PAID is not terminal once new principal is owed"""
        loan = replace(self.loan, installments=(self.paid,))
        assert compute_loan_status(loan, "2024-01-20") == LoanStatus.PAID

        reopened = replace(self.paid, principal_remaining=Decimal('500'),
                           scheduled_principal=Decimal('1500'))
        loan = replace(loan, installments=(reopened,))
        assert compute_loan_status(loan, "2024-01-20") == LoanStatus.ACTIVE
