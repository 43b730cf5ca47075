"""
Ledger Replay Module

Rebuilds installment balances from a loan's transaction history. The ledger
is the source of truth: installments are reset to their scheduled amounts and
every recorded entry is replayed on top, so a stale or corrupted snapshot can
always be recomputed.
"""

from decimal import Decimal
from datetime import date
from dataclasses import dataclass, replace
from typing import Dict, List, Optional
import logging
import uuid

from .allocation import Allocation
from .balance import installment_status
from .dates import DateInput, parse_date
from .debt import compute_debt, outstanding_late_fee
from .models import (
    Loan, Installment, InstallmentStatus, LedgerEntry, LedgerEntryType,
    PAYMENT_ENTRY_TYPES
)
from .money import ZERO, round_money, clamp, is_settled

logger = logging.getLogger(__name__)


def ledger_entry_for(
    entry_type: LedgerEntryType,
    allocation: Allocation,
    paid_at: DateInput,
    installment_id: Optional[str] = None,
    notes: str = "",
    entry_id: Optional[str] = None
) -> LedgerEntry:
    """
    Build the ledger entry recording an allocation

    Args:
        entry_type: Transaction type
        allocation: Amounts applied per component
        paid_at: Transaction date
        installment_id: Installment the amounts were applied to
        notes: Free-text description
        entry_id: Entry ID; a new UUID when omitted

    Returns:
        LedgerEntry whose amount is the allocated total
    """
    return LedgerEntry(
        id=entry_id or str(uuid.uuid4()),
        date=parse_date(paid_at, "paid_at"),
        type=entry_type,
        amount=allocation.total_paid,
        installment_id=installment_id,
        principal_delta=allocation.paid_principal,
        interest_delta=allocation.paid_interest,
        late_fee_delta=allocation.paid_late_fee,
        notes=notes
    )


@dataclass
class _Replay:
    """Mutable running totals for one installment during replay"""
    installment: Installment
    scheduled_principal: Decimal
    scheduled_interest: Decimal
    paid_principal: Decimal = ZERO
    paid_interest: Decimal = ZERO
    paid_late_fee: Decimal = ZERO
    paid_total: Decimal = ZERO
    cycle_late_fee_paid: Decimal = ZERO
    renewal_count: int = 0
    paid_date: Optional[date] = None

    def settle_date(self, entry_date: date) -> None:
        remaining = (clamp(self.scheduled_principal - self.paid_principal)
                     + clamp(self.scheduled_interest - self.paid_interest))
        if is_settled(remaining):
            if self.paid_date is None:
                self.paid_date = entry_date
        else:
            self.paid_date = None

    def build(self, reference_date: date) -> Installment:
        rebuilt = replace(
            self.installment,
            scheduled_principal=self.scheduled_principal,
            scheduled_interest=self.scheduled_interest,
            principal_remaining=clamp(self.scheduled_principal - self.paid_principal),
            interest_remaining=clamp(self.scheduled_interest - self.paid_interest),
            late_fee_accrued=ZERO,
            paid_principal=self.paid_principal,
            paid_interest=self.paid_interest,
            paid_late_fee=self.paid_late_fee,
            paid_total=self.paid_total,
            cycle_late_fee_paid=self.cycle_late_fee_paid,
            renewal_count=self.renewal_count
        )
        status = installment_status(rebuilt, reference_date)
        paid_date = self.paid_date if status == InstallmentStatus.PAID else None
        return replace(rebuilt, status=status, paid_date=paid_date)


def _target(replays: Dict[str, _Replay], order: List[str], entry: LedgerEntry) -> Optional[_Replay]:
    """Installment an entry applies to; entries without one go to the oldest open installment"""
    if entry.installment_id:
        return replays.get(entry.installment_id)

    for installment_id in order:
        replay = replays[installment_id]
        if replay.paid_date is None:
            return replay
    return replays[order[-1]] if order else None


def rebuild_loan_state(loan: Loan, reference_date: DateInput) -> Loan:
    """
    Recompute every installment of a loan from its ledger

    Scheduled amounts on the snapshot are authoritative: they already include
    capital lent later and interest charged by renewals. Payments reduce the
    remaining amounts and accumulate the paid ones; LEND_MORE reopens an
    installment settled before it; interest-only payments count as renewals.
    Late fees are then re-accrued as of the reference date.

    Args:
        loan: Loan snapshot with its ledger
        reference_date: Date statuses and late fees are evaluated at

    Returns:
        New Loan with rebuilt installments
    """
    reference = parse_date(reference_date, "reference_date")

    order = [i.id for i in sorted(loan.installments, key=lambda i: (i.due_date, i.number))]
    replays = {
        i.id: _Replay(
            installment=i,
            scheduled_principal=i.scheduled_principal,
            scheduled_interest=i.scheduled_interest
        )
        for i in loan.installments
    }

    # Stable sort keeps same-day entries in recording order
    for entry in sorted(loan.ledger, key=lambda e: e.date):
        if entry.type == LedgerEntryType.AGREEMENT_PAYMENT:
            continue

        replay = _target(replays, order, entry)
        if replay is None:
            logger.warning(
                "Ledger entry %s on loan %s references unknown installment %s; skipped",
                entry.id, loan.id, entry.installment_id
            )
            continue

        if entry.type == LedgerEntryType.LEND_MORE:
            # Capital lent is already part of the scheduled principal
            replay.paid_date = None
        elif entry.type in PAYMENT_ENTRY_TYPES:
            replay.paid_principal += entry.principal_delta
            replay.paid_interest += entry.interest_delta
            replay.paid_late_fee += entry.late_fee_delta
            replay.cycle_late_fee_paid += entry.late_fee_delta
            replay.paid_total += entry.principal_delta + entry.interest_delta + entry.late_fee_delta
            if entry.type == LedgerEntryType.PAYMENT_INTEREST_ONLY:
                # A renewal closes the cycle
                replay.renewal_count += 1
                replay.cycle_late_fee_paid = ZERO
        else:
            raise ValueError(f"Unsupported ledger entry type: {entry.type}")

        replay.settle_date(entry.date)

    rebuilt = replace(
        loan,
        installments=tuple(replays[i.id].build(reference) for i in loan.installments)
    )
    logger.debug("Rebuilt loan %s from %d ledger entries", loan.id, len(loan.ledger))
    return refresh_late_fees(rebuilt, reference)


def refresh_late_fees(loan: Loan, reference_date: DateInput) -> Loan:
    """
    Re-accrue late fees on every open installment

    The accrued amount is the gross late fee as of the reference date minus
    the late fee already paid in the current cycle, so paid + accrued never
    exceeds what was charged.
    """
    installments = []
    for installment in loan.installments:
        if installment.status == InstallmentStatus.PAID:
            installments.append(installment)
            continue

        debt = compute_debt(loan, installment, reference_date)
        accrued = outstanding_late_fee(debt, installment)
        updated = replace(installment, late_fee_accrued=accrued)
        installments.append(replace(updated, status=installment_status(updated, reference_date)))

    return replace(loan, installments=tuple(installments))
