"""
Till balance calculation

WHY: The till balance is never stored. It is derived from the shift's cash
ledger every time it is needed, so there is nothing to drift out of sync.

FORMULA (authoritative):
    balance = float + SUM(cash_in + sale) - SUM(cash_out + change)

    reconciliation_adjustment rows fold into cash_in (direction=in, overage)
    or cash_out (direction=out, shortfall).

compute_balance() is a pure function of the entries: order-independent,
side-effect-free and deterministic. get_balance() only loads the snapshot.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, NamedTuple, Optional

from ..extensions import db
from ..models import CashDirection, CashTransaction, CashTransactionType


class LedgerEntry(NamedTuple):
    """Minimal shape compute_balance needs; CashTransaction rows satisfy it too."""
    type: CashTransactionType
    amount_cents: int
    direction: Optional[CashDirection] = None
    id: int = 0


@dataclass(frozen=True)
class CashBalance:
    float_cents: int = 0
    cash_in_cents: int = 0
    cash_out_cents: int = 0
    total_sales_cents: int = 0
    change_given_cents: int = 0
    entry_count: int = 0
    # Highest ledger row id included; orders snapshots of the same shift
    sequence: int = 0

    @property
    def real_time_balance_cents(self) -> int:
        return (
            self.float_cents
            + self.cash_in_cents
            + self.total_sales_cents
            - self.cash_out_cents
            - self.change_given_cents
        )

    def to_dict(self) -> dict:
        return {
            "float_cents": self.float_cents,
            "cash_in_cents": self.cash_in_cents,
            "cash_out_cents": self.cash_out_cents,
            "total_sales_cents": self.total_sales_cents,
            "change_given_cents": self.change_given_cents,
            "real_time_balance_cents": self.real_time_balance_cents,
            "entry_count": self.entry_count,
            "sequence": self.sequence,
        }


# Bucket each ledger type contributes to. Adjustments are resolved by direction.
_BUCKET_BY_TYPE = {
    CashTransactionType.FLOAT: "float_cents",
    CashTransactionType.CASH_IN: "cash_in_cents",
    CashTransactionType.SALE: "total_sales_cents",
    CashTransactionType.CASH_OUT: "cash_out_cents",
    CashTransactionType.CHANGE: "change_given_cents",
}

_BUCKET_BY_DIRECTION = {
    CashDirection.IN: "cash_in_cents",
    CashDirection.OUT: "cash_out_cents",
}


def bucket_for(entry_type: CashTransactionType, direction: Optional[CashDirection] = None) -> str:
    """Return the CashBalance field an entry adds to. Raises on unmapped variants."""
    if entry_type == CashTransactionType.RECONCILIATION_ADJUSTMENT:
        if direction not in _BUCKET_BY_DIRECTION:
            raise ValueError("reconciliation_adjustment entry requires a direction")
        return _BUCKET_BY_DIRECTION[direction]
    try:
        return _BUCKET_BY_TYPE[entry_type]
    except KeyError:
        raise ValueError(f"Unmapped cash transaction type: {entry_type!r}")


def compute_balance(entries: Iterable) -> CashBalance:
    """Fold ledger entries into a CashBalance. Pure; safe to call repeatedly."""
    totals = {
        "float_cents": 0,
        "cash_in_cents": 0,
        "cash_out_cents": 0,
        "total_sales_cents": 0,
        "change_given_cents": 0,
    }
    count = 0
    sequence = 0
    for entry in entries:
        if entry.amount_cents <= 0:
            raise ValueError(f"Ledger entry {entry.id} has non-positive amount")
        totals[bucket_for(entry.type, entry.direction)] += entry.amount_cents
        count += 1
        sequence = max(sequence, entry.id or 0)

    return CashBalance(entry_count=count, sequence=sequence, **totals)


def load_entries(shift_id: int) -> list[CashTransaction]:
    """Ledger snapshot for a shift, in creation order."""
    return db.session.query(CashTransaction).filter_by(
        shift_id=shift_id
    ).order_by(CashTransaction.created_at, CashTransaction.id).all()


def get_balance(shift_id: int) -> CashBalance:
    """Real-time balance for a shift (active or ended)."""
    return compute_balance(load_entries(shift_id))
