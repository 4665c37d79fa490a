# Overview: Service-layer operations for cashier shifts; encapsulates business logic and database work.

"""
Shift Management Service

WHY: Cash accountability is per shift. A shift starts with a counted
opening float, collects every till movement while open, and ends with an
optional closing count.

DESIGN PRINCIPLES:
- One active shift per cashier, guaranteed by a partial unique index
  (the insert itself is the check; there is no read-then-write window)
- The opening float enters the balance as a FLOAT ledger row, exactly once
- Ending a shift never touches ledger rows
- Closing count (optional) is a regular reconciliation flagged is_closing;
  its variance posts to the journal with source SHIFT
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import (
    CashReconciliation, CashTransaction, CashTransactionType, JournalSource,
    PaymentTransaction, Sale, Shift, ShiftStatus,
)
from tillbook.time_utils import utcnow
from tillbook.validation import ValidationError, require_amount
from .concurrency import lock_for_update, run_with_retry

logger = logging.getLogger(__name__)


class ShiftError(Exception):
    """Raised for shift operation errors."""
    pass


class ShiftAlreadyActiveError(ShiftError):
    """The cashier already has an open shift."""


class NoActiveShiftError(ShiftError):
    """The shift is missing or has already ended."""


class ShiftNotFoundError(NoActiveShiftError):
    """No shift with the given id."""


# =============================================================================
# LIFECYCLE
# =============================================================================

def start_shift(cashier_id: str, float_cents: int) -> Shift:
    """
    Open a shift for a cashier with a counted opening float.

    Args:
        cashier_id: Acting cashier
        float_cents: Opening float (>= 0)

    Returns:
        The new active Shift

    Raises:
        InvalidAmountError: float_cents negative
        ShiftAlreadyActiveError: cashier already has an active shift
    """
    from .cash_ledger_service import append_entry
    from .shift_feed import publish_balance

    if not cashier_id or not str(cashier_id).strip():
        raise ValidationError("cashier_id is required")
    require_amount("float_cents", float_cents, allow_zero=True)

    def _op():
        shift = Shift(
            cashier_id=cashier_id,
            float_cents=float_cents,
            start_time=utcnow(),
        )
        db.session.add(shift)
        try:
            db.session.flush()
        except IntegrityError:
            db.session.rollback()
            existing = get_active_shift(cashier_id)
            suffix = f" (shift {existing.id})" if existing else ""
            raise ShiftAlreadyActiveError(f"Cashier {cashier_id} already has an active shift{suffix}")

        if float_cents > 0:
            append_entry(
                shift,
                CashTransactionType.FLOAT,
                float_cents,
                "Opening float",
                actor_id=cashier_id,
            )
        db.session.commit()
        return shift

    shift = run_with_retry(_op)
    logger.info("shift %s started by %s with float %s cents", shift.id, cashier_id, float_cents)
    publish_balance(shift.id)
    return shift


def end_shift(shift_id: int, actor_id: Optional[str] = None, counted_cash_cents: Optional[int] = None) -> Shift:
    """
    End an active shift.

    When counted_cash_cents is given, a closing reconciliation runs first in
    the same transaction; a nonzero variance is queued for posting as a
    SHIFT journal keyed on the shift id.

    Raises:
        ShiftNotFoundError: no such shift
        NoActiveShiftError: shift already ended
        InvalidAmountError: counted_cash_cents negative
    """
    from .posting_dispatcher import dispatch
    from .reconciliation_service import reconcile_locked
    from .shift_feed import publish_balance

    if counted_cash_cents is not None:
        require_amount("counted_cash_cents", counted_cash_cents, allow_zero=True)

    def _op():
        shift = lock_active_shift(shift_id)
        reconciliation = None
        if counted_cash_cents is not None:
            reconciliation, _ = reconcile_locked(shift, counted_cash_cents, actor_id, closing=True)
        shift.end_time = utcnow()
        shift.closed_by_id = actor_id or shift.cashier_id
        db.session.commit()
        return shift, reconciliation

    shift, reconciliation = run_with_retry(_op)
    logger.info("shift %s ended by %s", shift.id, shift.closed_by_id)

    publish_balance(shift.id)
    if reconciliation is not None and reconciliation.difference_cents != 0:
        dispatch(JournalSource.SHIFT, shift.id)
    return shift


def lock_active_shift(shift_id: int) -> Shift:
    """Load and lock a shift row, requiring it to be active. Caller commits."""
    shift = lock_for_update(db.session.query(Shift).filter_by(id=shift_id)).first()
    if shift is None:
        raise ShiftNotFoundError(f"Shift {shift_id} not found")
    if not shift.is_active:
        raise NoActiveShiftError(f"Shift {shift_id} has already ended")
    return shift


# =============================================================================
# QUERIES
# =============================================================================

def get_active_shift(cashier_id: str) -> Optional[Shift]:
    return db.session.query(Shift).filter(
        Shift.cashier_id == cashier_id,
        Shift.end_time.is_(None),
    ).first()


def get_shift(shift_id: int) -> Shift:
    shift = db.session.get(Shift, shift_id)
    if shift is None:
        raise ShiftNotFoundError(f"Shift {shift_id} not found")
    return shift


def list_shifts(cashier_id: Optional[str] = None, status=None, limit: int = 50) -> list[Shift]:
    query = db.session.query(Shift)
    if cashier_id:
        query = query.filter(Shift.cashier_id == cashier_id)
    if status is not None:
        try:
            status = ShiftStatus(status)
        except ValueError:
            raise ValidationError(f"Invalid shift status: {status}")
        if status == ShiftStatus.ACTIVE:
            query = query.filter(Shift.end_time.is_(None))
        else:
            query = query.filter(Shift.end_time.isnot(None))
    limit = max(1, min(int(limit), 500))
    return query.order_by(Shift.start_time.desc(), Shift.id.desc()).limit(limit).all()


def get_closing_reconciliation(shift_id: int) -> Optional[CashReconciliation]:
    return db.session.query(CashReconciliation).filter_by(
        shift_id=shift_id, is_closing=True
    ).order_by(CashReconciliation.id.desc()).first()


def get_shift_summary(shift_id: int) -> dict:
    """Shift header, live balance, sales and tender totals, reconciliations."""
    from .balance_service import get_balance

    shift = get_shift(shift_id)
    balance = get_balance(shift_id)

    sale_count, sales_total = db.session.query(
        func.count(Sale.id), func.coalesce(func.sum(Sale.total_cents), 0)
    ).filter(Sale.shift_id == shift_id).one()

    tender_rows = db.session.query(
        PaymentTransaction.payment_type, func.sum(PaymentTransaction.amount_cents)
    ).join(Sale, Sale.id == PaymentTransaction.sale_id).filter(
        Sale.shift_id == shift_id
    ).group_by(PaymentTransaction.payment_type).all()

    reconciliations = db.session.query(CashReconciliation).filter_by(
        shift_id=shift_id
    ).order_by(CashReconciliation.id).all()

    ledger_count = db.session.query(func.count(CashTransaction.id)).filter_by(shift_id=shift_id).scalar()

    return {
        "shift": shift.to_dict(),
        "balance": balance.to_dict(),
        "sale_count": sale_count,
        "sales_total_cents": int(sales_total),
        "tender_totals_cents": {tender.value: int(total) for tender, total in tender_rows},
        "ledger_entry_count": ledger_count,
        "reconciliations": [r.to_dict() for r in reconciliations],
    }
