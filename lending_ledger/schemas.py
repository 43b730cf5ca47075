"""
Pydantic schemas for ledger records crossing the library boundary
"""

from decimal import Decimal
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, Field, ValidationError

from .agreements import AgreementParams
from .money import InvalidInputError
from .models import (
    Loan, Installment, LedgerEntry, Agreement, AgreementInstallment
)

AmountField = Union[Decimal, str]
DateField = Union[datetime, date, str]


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


class InstallmentModel(BaseModel):
    id: str
    number: int = 1
    due_date: DateField = Field(..., description="ISO or dd/mm/yyyy date")
    scheduled_principal: AmountField
    scheduled_interest: AmountField = "0"
    principal_remaining: Optional[AmountField] = None
    interest_remaining: Optional[AmountField] = None
    late_fee_accrued: Optional[AmountField] = None
    paid_principal: Optional[AmountField] = None
    paid_interest: Optional[AmountField] = None
    paid_late_fee: Optional[AmountField] = None
    paid_total: Optional[AmountField] = None
    status: str = Field("PENDING", description="PENDING, PARTIAL, LATE or PAID")
    renewal_count: int = 0
    paid_date: Optional[DateField] = None
    accrued_until: Optional[DateField] = None
    cycle_late_fee_paid: Optional[AmountField] = None

    def to_domain(self) -> Installment:
        return Installment(**self.model_dump())

    @classmethod
    def from_domain(cls, installment: Installment) -> 'InstallmentModel':
        return cls(
            id=installment.id,
            number=installment.number,
            due_date=installment.due_date.isoformat(),
            scheduled_principal=str(installment.scheduled_principal),
            scheduled_interest=str(installment.scheduled_interest),
            principal_remaining=str(installment.principal_remaining),
            interest_remaining=str(installment.interest_remaining),
            late_fee_accrued=str(installment.late_fee_accrued),
            paid_principal=str(installment.paid_principal),
            paid_interest=str(installment.paid_interest),
            paid_late_fee=str(installment.paid_late_fee),
            paid_total=str(installment.paid_total),
            status=installment.status.value,
            renewal_count=installment.renewal_count,
            paid_date=_iso(installment.paid_date),
            accrued_until=_iso(installment.accrued_until),
            cycle_late_fee_paid=str(installment.cycle_late_fee_paid)
        )


class LedgerEntryModel(BaseModel):
    id: str
    date: DateField
    type: str = Field(..., description="Ledger entry type (PAYMENT_FULL, LEND_MORE, ...)")
    amount: AmountField
    installment_id: Optional[str] = None
    principal_delta: Optional[AmountField] = None
    interest_delta: Optional[AmountField] = None
    late_fee_delta: Optional[AmountField] = None
    notes: str = ""

    def to_domain(self) -> LedgerEntry:
        return LedgerEntry(**self.model_dump())

    @classmethod
    def from_domain(cls, entry: LedgerEntry) -> 'LedgerEntryModel':
        return cls(
            id=entry.id,
            date=entry.date.isoformat(),
            type=entry.type.value,
            amount=str(entry.amount),
            installment_id=entry.installment_id,
            principal_delta=str(entry.principal_delta),
            interest_delta=str(entry.interest_delta),
            late_fee_delta=str(entry.late_fee_delta),
            notes=entry.notes
        )


class AgreementInstallmentModel(BaseModel):
    number: int
    due_date: DateField
    amount: AmountField
    status: str = "PENDING"
    paid_amount: Optional[AmountField] = None
    paid_date: Optional[DateField] = None

    def to_domain(self) -> AgreementInstallment:
        return AgreementInstallment(**self.model_dump())


class AgreementModel(BaseModel):
    id: str
    loan_id: str
    type: str = Field(..., description="PARCELADO_COM_JUROS or PARCELADO_SEM_JUROS")
    total_debt_at_negotiation: AmountField
    negotiated_total: AmountField
    installments_count: int
    frequency: str = Field(..., description="WEEKLY, BIWEEKLY or MONTHLY")
    status: str = "ACTIVE"
    installments: List[AgreementInstallmentModel] = []
    interest_rate: Optional[AmountField] = None
    created_at: Optional[datetime] = None

    def to_domain(self) -> Agreement:
        return Agreement(
            id=self.id,
            loan_id=self.loan_id,
            type=self.type,
            total_debt_at_negotiation=self.total_debt_at_negotiation,
            negotiated_total=self.negotiated_total,
            installments_count=self.installments_count,
            frequency=self.frequency,
            status=self.status,
            installments=tuple(i.to_domain() for i in self.installments),
            interest_rate=self.interest_rate,
            created_at=self.created_at
        )

    @classmethod
    def from_domain(cls, agreement: Agreement) -> 'AgreementModel':
        return cls(
            id=agreement.id,
            loan_id=agreement.loan_id,
            type=agreement.type.value,
            total_debt_at_negotiation=str(agreement.total_debt_at_negotiation),
            negotiated_total=str(agreement.negotiated_total),
            installments_count=agreement.installments_count,
            frequency=agreement.frequency.value,
            status=agreement.status.value,
            installments=[
                AgreementInstallmentModel(
                    number=i.number,
                    due_date=i.due_date.isoformat(),
                    amount=str(i.amount),
                    status=i.status.value,
                    paid_amount=str(i.paid_amount),
                    paid_date=_iso(i.paid_date)
                )
                for i in agreement.installments
            ],
            interest_rate=str(agreement.interest_rate),
            created_at=agreement.created_at
        )


class LoanModel(BaseModel):
    id: str
    principal: AmountField
    interest_rate: AmountField = Field(..., description="Monthly rate in percent")
    billing_cycle: str = Field(..., description="MONTHLY, DAILY_FREE or DAILY_FIXED_TERM")
    start_date: DateField
    fine_percent: Optional[AmountField] = None
    daily_interest_percent: Optional[AmountField] = None
    installments: List[InstallmentModel] = []
    ledger: List[LedgerEntryModel] = []
    active_agreement: Optional[AgreementModel] = None
    is_archived: bool = False

    def to_domain(self) -> Loan:
        return Loan(
            id=self.id,
            principal=self.principal,
            interest_rate=self.interest_rate,
            billing_cycle=self.billing_cycle,
            start_date=self.start_date,
            fine_percent=self.fine_percent,
            daily_interest_percent=self.daily_interest_percent,
            installments=tuple(i.to_domain() for i in self.installments),
            ledger=tuple(e.to_domain() for e in self.ledger),
            active_agreement=self.active_agreement.to_domain() if self.active_agreement else None,
            is_archived=self.is_archived
        )

    @classmethod
    def from_domain(cls, loan: Loan) -> 'LoanModel':
        return cls(
            id=loan.id,
            principal=str(loan.principal),
            interest_rate=str(loan.interest_rate),
            billing_cycle=loan.billing_cycle.value,
            start_date=loan.start_date.isoformat(),
            fine_percent=str(loan.fine_percent),
            daily_interest_percent=str(loan.daily_interest_percent),
            installments=[InstallmentModel.from_domain(i) for i in loan.installments],
            ledger=[LedgerEntryModel.from_domain(e) for e in loan.ledger],
            active_agreement=(AgreementModel.from_domain(loan.active_agreement)
                              if loan.active_agreement else None),
            is_archived=loan.is_archived
        )


class AgreementParamsModel(BaseModel):
    total_debt: AmountField
    type: str = Field(..., description="PARCELADO_COM_JUROS or PARCELADO_SEM_JUROS")
    installments_count: int
    first_due_date: DateField
    frequency: str = "MONTHLY"
    interest_rate: Optional[AmountField] = None

    def to_domain(self) -> AgreementParams:
        return AgreementParams(**self.model_dump())


def parse_loan(data: Dict[str, Any]) -> Loan:
    """
    Build a Loan from plain data

    Raises:
        InvalidInputError: If the data does not describe a valid loan
    """
    try:
        model = LoanModel.model_validate(data)
    except ValidationError as e:
        raise InvalidInputError(f"Invalid loan data: {e}") from e
    return model.to_domain()


def parse_agreement_params(data: Dict[str, Any]) -> AgreementParams:
    """
    Build AgreementParams from plain data

    Raises:
        InvalidInputError: If the data does not describe valid agreement terms
    """
    try:
        model = AgreementParamsModel.model_validate(data)
    except ValidationError as e:
        raise InvalidInputError(f"Invalid agreement params: {e}") from e
    return model.to_domain()
