# Overview: Cash count reconciliation against the computed till balance.

"""
Cash Reconciliation Service

WHY: At any point in a shift (and at close) the cashier counts the drawer.
The count is compared with the balance computed from the ledger; any
difference is written back as an adjustment so the computed balance
equals the physical cash from then on.

DESIGN PRINCIPLES:
- Never fails because of a difference; a variance is data, not an error
- Audit record written for every count, including balanced ones
- Read balance, write record, write adjustment: one transaction with the
  shift row locked, so no sale can slip in between
- Nonzero variance is queued for journal posting (RECON, or SHIFT when the
  count closes the shift)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ..extensions import db
from ..models import (
    CashDirection, CashReconciliation, CashTransaction, CashTransactionType,
    JournalSource, ReconciliationStatus, Shift,
)
from tillbook.time_utils import business_date
from tillbook.validation import require_amount
from .balance_service import CashBalance, get_balance
from .cash_ledger_service import append_entry
from .concurrency import run_with_retry
from .posting_dispatcher import dispatch, enqueue
from .shift_feed import publish_balance, snapshot_for
from .shift_service import lock_active_shift

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconciliationResult:
    reconciliation: CashReconciliation
    adjustment: Optional[CashTransaction]
    balance_after: CashBalance

    @property
    def status(self) -> ReconciliationStatus:
        return self.reconciliation.status

    @property
    def difference_cents(self) -> int:
        return self.reconciliation.difference_cents

    def to_dict(self) -> dict:
        return {
            "reconciliation": self.reconciliation.to_dict(),
            "status": self.status.value,
            "difference_cents": self.difference_cents,
            "adjustment": self.adjustment.to_dict() if self.adjustment else None,
            "balance": self.balance_after.to_dict(),
        }


def classify(difference_cents: int) -> ReconciliationStatus:
    if difference_cents > 0:
        return ReconciliationStatus.OVER
    if difference_cents < 0:
        return ReconciliationStatus.SHORT
    return ReconciliationStatus.BALANCED


def reconcile_locked(
    shift: Shift,
    declared_cents: int,
    actor_id: Optional[str],
    *,
    closing: bool = False,
) -> tuple[CashReconciliation, Optional[CashTransaction]]:
    """
    Reconcile inside the caller's transaction. Shift must be locked and active.

    Queues the variance posting but does not dispatch it; the caller
    dispatches after commit.
    """
    expected = get_balance(shift.id).real_time_balance_cents
    difference = declared_cents - expected
    status = classify(difference)

    reconciliation = CashReconciliation(
        cashier_id=actor_id or shift.cashier_id,
        shift_id=shift.id,
        expected_cents=expected,
        declared_cents=declared_cents,
        difference_cents=difference,
        status=status,
        is_closing=closing,
        reconciliation_date=business_date(),
    )
    db.session.add(reconciliation)
    db.session.flush()

    adjustment = None
    if difference != 0:
        label = "Overage" if difference > 0 else "Shortfall"
        adjustment = append_entry(
            shift,
            CashTransactionType.RECONCILIATION_ADJUSTMENT,
            abs(difference),
            f"Reconciliation adjustment - {label}",
            actor_id=actor_id,
            direction=CashDirection.IN if difference > 0 else CashDirection.OUT,
            reconciliation_id=reconciliation.id,
        )
        if closing:
            enqueue(JournalSource.SHIFT, shift.id)
        else:
            enqueue(JournalSource.RECON, reconciliation.id)

    logger.info(
        "reconciliation %s on shift %s: expected=%s declared=%s difference=%s (%s)",
        reconciliation.id, shift.id, expected, declared_cents, difference, status.value,
    )
    return reconciliation, adjustment


def reconcile(shift_id: int, declared_cents: int, actor_id: Optional[str] = None) -> ReconciliationResult:
    """
    Reconcile declared cash against the computed balance of an active shift.

    Raises:
        InvalidAmountError: declared_cents negative
        NoActiveShiftError: shift missing or ended
    """
    require_amount("declared_cents", declared_cents, allow_zero=True)

    def _op():
        shift = lock_active_shift(shift_id)
        reconciliation, adjustment = reconcile_locked(shift, declared_cents, actor_id)
        # Taken under the shift lock so it reflects this count and nothing later
        snapshot = snapshot_for(shift.id)
        db.session.commit()
        return reconciliation, adjustment, snapshot

    reconciliation, adjustment, snapshot = run_with_retry(_op)
    publish_balance(shift_id, snapshot)
    if reconciliation.difference_cents != 0:
        dispatch(JournalSource.RECON, reconciliation.id)

    return ReconciliationResult(
        reconciliation=reconciliation,
        adjustment=adjustment,
        balance_after=snapshot.balance,
    )


def get_reconciliation(reconciliation_id: int) -> Optional[CashReconciliation]:
    return db.session.get(CashReconciliation, reconciliation_id)


def list_reconciliations(shift_id: Optional[int] = None, cashier_id: Optional[str] = None) -> list[CashReconciliation]:
    query = db.session.query(CashReconciliation)
    if shift_id is not None:
        query = query.filter(CashReconciliation.shift_id == shift_id)
    if cashier_id:
        query = query.filter(CashReconciliation.cashier_id == cashier_id)
    return query.order_by(CashReconciliation.created_at.desc(), CashReconciliation.id.desc()).all()
