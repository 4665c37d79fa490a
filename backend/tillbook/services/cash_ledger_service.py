# Overview: Append-only cash ledger for a shift's till.

"""
Cash Ledger Service

WHY: Every physical cash movement in the till (opening float, pay-ins,
pay-outs, cash sales, change given, reconciliation adjustments) is a row
here. The till balance is computed from these rows and nothing else.

DESIGN PRINCIPLES:
- Append-only: rows are never updated or deleted (ORM hooks refuse it)
- Amounts are positive; the sign comes from the type (and direction for
  adjustments)
- Appends require an active shift, checked under the shift row lock
"""

from __future__ import annotations

import logging
from typing import Optional

from ..extensions import db
from ..models import CashDirection, CashTransaction, CashTransactionType, Shift
from tillbook.validation import ValidationError, require_amount
from .concurrency import lock_for_update, run_with_retry
from .shift_feed import publish_balance
from .shift_service import NoActiveShiftError, ShiftNotFoundError

logger = logging.getLogger(__name__)


def _coerce_type(entry_type) -> CashTransactionType:
    try:
        return CashTransactionType(entry_type)
    except ValueError:
        raise ValidationError(f"Invalid cash transaction type: {entry_type}")


def append_entry(
    shift: Shift,
    entry_type: CashTransactionType,
    amount_cents: int,
    description: str,
    *,
    actor_id: Optional[str] = None,
    direction: Optional[CashDirection] = None,
    sale_id: Optional[int] = None,
    reconciliation_id: Optional[int] = None,
    expense_id: Optional[int] = None,
) -> CashTransaction:
    """
    Add a ledger row inside the caller's transaction (no commit).

    Caller must hold the shift row and have checked it is active.
    """
    require_amount("amount_cents", amount_cents)
    if entry_type == CashTransactionType.RECONCILIATION_ADJUSTMENT:
        if direction is None:
            raise ValidationError("Reconciliation adjustments require a direction")
    elif direction is not None:
        raise ValidationError("Direction only applies to reconciliation adjustments")

    entry = CashTransaction(
        shift_id=shift.id,
        cashier_id=actor_id or shift.cashier_id,
        type=entry_type,
        direction=direction,
        amount_cents=amount_cents,
        description=(description or "").strip()[:255],
        sale_id=sale_id,
        reconciliation_id=reconciliation_id,
        expense_id=expense_id,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def record(
    shift_id: int,
    entry_type,
    amount_cents: int,
    description: str = "",
    *,
    actor_id: Optional[str] = None,
    direction=None,
    sale_id: Optional[int] = None,
    reconciliation_id: Optional[int] = None,
) -> CashTransaction:
    """
    Append one ledger entry to an active shift and commit.

    Raises:
        InvalidAmountError: amount_cents <= 0
        NoActiveShiftError: shift missing or already ended
    """
    require_amount("amount_cents", amount_cents)
    entry_type = _coerce_type(entry_type)
    if direction is not None:
        try:
            direction = CashDirection(direction)
        except ValueError:
            raise ValidationError(f"Invalid direction: {direction}")

    def _op():
        shift = lock_for_update(db.session.query(Shift).filter_by(id=shift_id)).first()
        if shift is None:
            raise ShiftNotFoundError(f"Shift {shift_id} not found")
        if not shift.is_active:
            raise NoActiveShiftError(f"Shift {shift_id} is not active")

        entry = append_entry(
            shift,
            entry_type,
            amount_cents,
            description,
            actor_id=actor_id,
            direction=direction,
            sale_id=sale_id,
            reconciliation_id=reconciliation_id,
        )
        db.session.commit()
        return entry

    entry = run_with_retry(_op)
    logger.info(
        "cash ledger: shift=%s %s %s cents (entry %s)",
        shift_id, entry_type.value, amount_cents, entry.id,
    )
    publish_balance(shift_id)
    return entry


def record_cash_in(shift_id: int, amount_cents: int, description: str = "", *, actor_id: Optional[str] = None) -> CashTransaction:
    """Pay-in to the till (e.g., extra change from the safe)."""
    return record(shift_id, CashTransactionType.CASH_IN, amount_cents, description or "Cash in", actor_id=actor_id)


def record_cash_out(shift_id: int, amount_cents: int, description: str = "", *, actor_id: Optional[str] = None) -> CashTransaction:
    """Pay-out from the till (e.g., petty cash, cash drop to the safe)."""
    return record(shift_id, CashTransactionType.CASH_OUT, amount_cents, description or "Cash out", actor_id=actor_id)


def list_entries(shift_id: int, entry_type=None) -> list[CashTransaction]:
    query = db.session.query(CashTransaction).filter_by(shift_id=shift_id)
    if entry_type is not None:
        query = query.filter(CashTransaction.type == _coerce_type(entry_type))
    return query.order_by(CashTransaction.created_at, CashTransaction.id).all()
