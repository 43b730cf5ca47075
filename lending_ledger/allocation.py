"""
Payment Allocation Module

Applies a received amount to an installment's outstanding components using
a fixed waterfall: interest first, then late fee, then principal. The order
protects accrued yield before capital and must not change, since it decides
how revenue is recognized.
"""

from decimal import Decimal
from dataclasses import dataclass, replace
from datetime import date
from typing import Optional

from .balance import Balance, installment_status
from .dates import DateInput, parse_date
from .models import Installment, InstallmentStatus
from .money import ZERO, Amount, to_decimal, round_money, clamp


@dataclass(frozen=True)
class Allocation:
    """How a payment splits across debt components"""
    paid_principal: Decimal
    paid_interest: Decimal
    paid_late_fee: Decimal
    unallocated: Decimal = ZERO   # Amount beyond the balance, left for the caller

    @property
    def total_paid(self) -> Decimal:
        return self.paid_principal + self.paid_interest + self.paid_late_fee

    @property
    def profit(self) -> Decimal:
        """Interest + late fee, the part that is revenue rather than returned capital"""
        return self.paid_interest + self.paid_late_fee


def allocate(amount: Amount, balance: Balance) -> Allocation:
    """
    Split an amount across a balance: interest, then late fee, then principal

    Args:
        amount: Amount received
        balance: Outstanding balance snapshot

    Returns:
        Allocation; any excess over the balance is reported as unallocated
    """
    remaining = clamp(round_money(to_decimal(amount, "amount")))

    paid_interest = min(remaining, clamp(balance.interest_remaining))
    remaining -= paid_interest

    paid_late_fee = min(remaining, clamp(balance.late_fee_remaining))
    remaining -= paid_late_fee

    paid_principal = min(remaining, clamp(balance.principal_remaining))
    remaining -= paid_principal

    return Allocation(
        paid_principal=round_money(paid_principal),
        paid_interest=round_money(paid_interest),
        paid_late_fee=round_money(paid_late_fee),
        unallocated=round_money(remaining)
    )


def apply_allocation(installment: Installment, allocation: Allocation,
                     paid_at: DateInput) -> Installment:
    """
    Record an allocation on an installment

    Every amount moved out of a remaining field is added to the matching paid
    field, so paid + remaining is unchanged. The status is recomputed as of
    the payment date.
    """
    paid_on: date = parse_date(paid_at, "paid_at")

    updated = replace(
        installment,
        principal_remaining=clamp(installment.principal_remaining - allocation.paid_principal),
        interest_remaining=clamp(installment.interest_remaining - allocation.paid_interest),
        late_fee_accrued=clamp(installment.late_fee_accrued - allocation.paid_late_fee),
        paid_principal=installment.paid_principal + allocation.paid_principal,
        paid_interest=installment.paid_interest + allocation.paid_interest,
        paid_late_fee=installment.paid_late_fee + allocation.paid_late_fee,
        cycle_late_fee_paid=installment.cycle_late_fee_paid + allocation.paid_late_fee,
        paid_total=installment.paid_total + allocation.total_paid
    )

    status = installment_status(updated, paid_on)
    paid_date: Optional[date] = updated.paid_date
    if status == InstallmentStatus.PAID and paid_date is None:
        paid_date = paid_on

    return replace(updated, status=status, paid_date=paid_date)
