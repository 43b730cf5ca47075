"""
Ledger Data Model

Loans, installments, ledger entries and renegotiation agreements. Every record
is an immutable snapshot: operations return new records through
``dataclasses.replace`` and never mutate the caller's data.
"""

from decimal import Decimal
from datetime import date, datetime
from dataclasses import dataclass, replace
from typing import Optional, Tuple
from enum import Enum

from .money import (
    ZERO, InvalidInputError, to_decimal, optional_decimal, round_money, clamp,
    require_non_negative
)
from .dates import parse_date


class BillingCycle(Enum):
    """How a loan charges contractual interest"""
    MONTHLY = "MONTHLY"                    # Fixed monthly installment
    DAILY_FREE = "DAILY_FREE"              # Daily interest, no fixed term
    DAILY_FIXED_TERM = "DAILY_FIXED_TERM"  # Flat fee, single maturity date

    @classmethod
    def parse(cls, value) -> 'BillingCycle':
        """Read a billing cycle tag, mapping legacy tags to current cycles"""
        if isinstance(value, cls):
            return value
        tag = str(value).strip().upper()
        if tag in cls.__members__:
            return cls[tag]
        if tag in _LEGACY_CYCLES:
            return _LEGACY_CYCLES[tag]
        raise InvalidInputError(f"Unsupported billing cycle: {value!r}")


_LEGACY_CYCLES = {
    "DAILY_30_INTEREST": BillingCycle.DAILY_FREE,
    "DAILY_30_CAPITAL": BillingCycle.DAILY_FREE,
    "DAILY_FIXED": BillingCycle.DAILY_FREE,
    "DAILY": BillingCycle.MONTHLY,
}


class InstallmentStatus(Enum):
    """Per-installment settlement status"""
    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    LATE = "LATE"
    PAID = "PAID"


class LoanStatus(Enum):
    """Loan lifecycle states"""
    ACTIVE = "ACTIVE"      # Current on payments
    OVERDUE = "OVERDUE"    # At least one installment late
    PAID = "PAID"          # Nothing left to collect
    LEGAL = "LEGAL"        # Under an active renegotiation agreement
    CLOSED = "CLOSED"      # Archived contract


class ForgivenessMode(Enum):
    """Which late-fee parts the operator waives for a payment"""
    NONE = "NONE"
    FINE_ONLY = "FINE_ONLY"          # Waive the fixed fine
    INTEREST_ONLY = "INTEREST_ONLY"  # Waive the daily mora (penalty interest)
    BOTH = "BOTH"


class AgreementType(Enum):
    PARCELADO_COM_JUROS = "PARCELADO_COM_JUROS"  # Installments with fresh interest
    PARCELADO_SEM_JUROS = "PARCELADO_SEM_JUROS"  # Installments of the frozen debt


class AgreementFrequency(Enum):
    WEEKLY = "WEEKLY"
    BIWEEKLY = "BIWEEKLY"
    MONTHLY = "MONTHLY"


class AgreementStatus(Enum):
    ACTIVE = "ACTIVE"
    PAID = "PAID"
    BROKEN = "BROKEN"

    @classmethod
    def parse(cls, value) -> 'AgreementStatus':
        if isinstance(value, cls):
            return value
        tag = str(value).strip().upper()
        if tag == "ATIVO":
            return cls.ACTIVE
        if tag in cls.__members__:
            return cls[tag]
        raise InvalidInputError(f"Unsupported agreement status: {value!r}")


class AgreementInstallmentStatus(Enum):
    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    PAID = "PAID"


class LedgerEntryType(Enum):
    """Transaction types replayed onto installments"""
    PAYMENT_FULL = "PAYMENT_FULL"
    PAYMENT_PARTIAL = "PAYMENT_PARTIAL"
    PAYMENT_INTEREST_ONLY = "PAYMENT_INTEREST_ONLY"
    LEND_MORE = "LEND_MORE"                  # New capital added to the loan
    AGREEMENT_PAYMENT = "AGREEMENT_PAYMENT"  # Settled against an agreement, not installments


PAYMENT_ENTRY_TYPES = frozenset({
    LedgerEntryType.PAYMENT_FULL,
    LedgerEntryType.PAYMENT_PARTIAL,
    LedgerEntryType.PAYMENT_INTEREST_ONLY,
})


def _set(record, name: str, value) -> None:
    object.__setattr__(record, name, value)


def _enum(enum_cls, value, field: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().upper())
    except ValueError:
        raise InvalidInputError(f"Unsupported {field}: {value!r}") from None


@dataclass(frozen=True)
class Installment:
    """
    One scheduled installment and its running balances.

    ``paid_* + *_remaining`` always equals what was scheduled or accrued for
    that component; remaining amounts are clamped to zero.
    """
    id: str
    due_date: date
    scheduled_principal: Decimal
    scheduled_interest: Decimal = ZERO
    number: int = 1
    principal_remaining: Optional[Decimal] = None
    interest_remaining: Optional[Decimal] = None
    late_fee_accrued: Decimal = ZERO
    paid_principal: Decimal = ZERO
    paid_interest: Decimal = ZERO
    paid_late_fee: Decimal = ZERO
    paid_total: Decimal = ZERO
    status: InstallmentStatus = InstallmentStatus.PENDING
    renewal_count: int = 0
    paid_date: Optional[date] = None
    accrued_until: Optional[date] = None     # Daily interest folded into the balance up to here
    cycle_late_fee_paid: Decimal = ZERO      # Late fee paid since the last renewal

    def __post_init__(self):
        _set(self, 'due_date', parse_date(self.due_date, "due_date"))
        if self.paid_date is not None:
            _set(self, 'paid_date', parse_date(self.paid_date, "paid_date"))
        if self.accrued_until is not None:
            _set(self, 'accrued_until', parse_date(self.accrued_until, "accrued_until"))

        for name in ('scheduled_principal', 'scheduled_interest'):
            value = require_non_negative(to_decimal(getattr(self, name), name), name)
            _set(self, name, round_money(value))

        # Missing balances start at the scheduled amounts
        if self.principal_remaining is None:
            _set(self, 'principal_remaining', self.scheduled_principal)
        if self.interest_remaining is None:
            _set(self, 'interest_remaining', self.scheduled_interest)

        for name in ('principal_remaining', 'interest_remaining', 'late_fee_accrued',
                     'paid_principal', 'paid_interest', 'paid_late_fee', 'paid_total',
                     'cycle_late_fee_paid'):
            _set(self, name, round_money(clamp(optional_decimal(getattr(self, name), name))))

        _set(self, 'status', _enum(InstallmentStatus, self.status, "installment status"))

    @property
    def amount_remaining(self) -> Decimal:
        """Principal + interest + late fee still owed"""
        return self.principal_remaining + self.interest_remaining + self.late_fee_accrued

    @property
    def is_paid(self) -> bool:
        return self.status == InstallmentStatus.PAID


@dataclass(frozen=True)
class LedgerEntry:
    """A recorded transaction against a loan"""
    id: str
    date: date
    type: LedgerEntryType
    amount: Decimal
    installment_id: Optional[str] = None
    principal_delta: Decimal = ZERO
    interest_delta: Decimal = ZERO
    late_fee_delta: Decimal = ZERO
    notes: str = ""

    def __post_init__(self):
        _set(self, 'date', parse_date(self.date, "entry date"))
        _set(self, 'type', _enum(LedgerEntryType, self.type, "ledger entry type"))
        for name in ('amount', 'principal_delta', 'interest_delta', 'late_fee_delta'):
            _set(self, name, round_money(optional_decimal(getattr(self, name), name)))
        if self.installment_id is not None:
            _set(self, 'installment_id', str(self.installment_id).strip())


@dataclass(frozen=True)
class AgreementInstallment:
    """One installment of a renegotiation agreement"""
    number: int
    due_date: date
    amount: Decimal
    status: AgreementInstallmentStatus = AgreementInstallmentStatus.PENDING
    paid_amount: Decimal = ZERO
    paid_date: Optional[date] = None

    def __post_init__(self):
        _set(self, 'due_date', parse_date(self.due_date, "due_date"))
        if self.paid_date is not None:
            _set(self, 'paid_date', parse_date(self.paid_date, "paid_date"))
        _set(self, 'amount', round_money(to_decimal(self.amount, "amount")))
        _set(self, 'paid_amount', round_money(optional_decimal(self.paid_amount, "paid_amount")))
        _set(self, 'status', _enum(AgreementInstallmentStatus, self.status, "agreement installment status"))


@dataclass(frozen=True)
class Agreement:
    """
    Renegotiation of a defaulted loan.

    ``total_debt_at_negotiation`` is a snapshot frozen when the agreement was
    signed; while ACTIVE the agreement supersedes the original schedule.
    """
    id: str
    loan_id: str
    type: AgreementType
    total_debt_at_negotiation: Decimal
    negotiated_total: Decimal
    installments_count: int
    frequency: AgreementFrequency
    status: AgreementStatus = AgreementStatus.ACTIVE
    installments: Tuple[AgreementInstallment, ...] = ()
    interest_rate: Decimal = ZERO
    created_at: Optional[datetime] = None

    def __post_init__(self):
        _set(self, 'type', _enum(AgreementType, self.type, "agreement type"))
        _set(self, 'frequency', _enum(AgreementFrequency, self.frequency, "agreement frequency"))
        _set(self, 'status', AgreementStatus.parse(self.status))
        for name in ('total_debt_at_negotiation', 'negotiated_total'):
            _set(self, name, round_money(to_decimal(getattr(self, name), name)))
        _set(self, 'interest_rate', require_non_negative(
            optional_decimal(self.interest_rate, "interest_rate"), "interest_rate"))
        _set(self, 'installments', tuple(self.installments))

    @property
    def is_active(self) -> bool:
        return self.status == AgreementStatus.ACTIVE

    @property
    def paid_amount(self) -> Decimal:
        return sum((inst.paid_amount for inst in self.installments), ZERO)


@dataclass(frozen=True)
class Loan:
    """Loan terms, installment schedule and transaction history"""
    id: str
    principal: Decimal
    interest_rate: Decimal                 # Monthly %, e.g. 10 for 10%
    billing_cycle: BillingCycle
    start_date: date
    installments: Tuple[Installment, ...] = ()
    fine_percent: Decimal = ZERO           # Fixed penalty %, charged once
    daily_interest_percent: Decimal = ZERO  # Late mora %, per day
    ledger: Tuple[LedgerEntry, ...] = ()
    active_agreement: Optional[Agreement] = None
    is_archived: bool = False

    def __post_init__(self):
        principal = to_decimal(self.principal, "principal")
        if principal <= ZERO:
            raise InvalidInputError(f"principal must be greater than zero, got {principal}")
        _set(self, 'principal', round_money(principal))

        _set(self, 'interest_rate', require_non_negative(
            to_decimal(self.interest_rate, "interest_rate"), "interest_rate"))
        # Penalty rates are optional and default to zero
        for name in ('fine_percent', 'daily_interest_percent'):
            _set(self, name, require_non_negative(optional_decimal(getattr(self, name), name), name))

        _set(self, 'billing_cycle', BillingCycle.parse(self.billing_cycle))
        _set(self, 'start_date', parse_date(self.start_date, "start_date"))
        _set(self, 'installments', tuple(self.installments))
        _set(self, 'ledger', tuple(self.ledger))

        # DAILY_FREE due dates mark "paid until" and may equal the start date
        for installment in self.installments:
            if installment.due_date < self.start_date:
                raise InvalidInputError(
                    f"due_date {installment.due_date} of installment {installment.id} "
                    f"is before start_date {self.start_date}"
                )
            if (installment.due_date == self.start_date
                    and self.billing_cycle != BillingCycle.DAILY_FREE):
                raise InvalidInputError(
                    f"due_date {installment.due_date} of installment {installment.id} "
                    f"must be after start_date for {self.billing_cycle.value} loans"
                )

    def get_installment(self, installment_id: str) -> Installment:
        """Find an installment by ID"""
        for installment in self.installments:
            if installment.id == installment_id:
                return installment
        raise InvalidInputError(f"Installment {installment_id} not found on loan {self.id}")

    def with_installment(self, installment: Installment) -> 'Loan':
        """Return a copy of the loan with one installment replaced"""
        self.get_installment(installment.id)
        installments = tuple(
            installment if existing.id == installment.id else existing
            for existing in self.installments
        )
        return replace(self, installments=installments)

    def with_ledger_entry(self, entry: LedgerEntry) -> 'Loan':
        """Return a copy of the loan with a transaction appended"""
        return replace(self, ledger=self.ledger + (entry,))
