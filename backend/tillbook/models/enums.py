"""
Closed variant sets for every tagged column.

Stored as their string value (native_enum=False) so SQLite and PostgreSQL
behave the same; Python code always sees the Enum member.
"""

from __future__ import annotations

import enum

from ..extensions import db


class CashTransactionType(str, enum.Enum):
    FLOAT = "float"
    CASH_IN = "cash_in"
    CASH_OUT = "cash_out"
    SALE = "sale"
    CHANGE = "change"
    RECONCILIATION_ADJUSTMENT = "reconciliation_adjustment"


class CashDirection(str, enum.Enum):
    """Sign of a reconciliation adjustment: IN = over, OUT = short."""
    IN = "in"
    OUT = "out"


class ShiftStatus(str, enum.Enum):
    ACTIVE = "active"
    ENDED = "ended"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    MPESA = "mpesa"
    CARD = "card"
    SPLIT = "split"


class TenderType(str, enum.Enum):
    """A single-method component of a payment (split is never a tender)."""
    CASH = "cash"
    MPESA = "mpesa"
    CARD = "card"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class StockStatus(str, enum.Enum):
    DECREMENTED = "decremented"
    INSUFFICIENT_STOCK = "insufficient_stock"
    FAILED = "failed"


class JournalSource(str, enum.Enum):
    SALE = "SALE"
    EXPENSE = "EXPENSE"
    SHIFT = "SHIFT"
    ADJUST = "ADJUST"
    RECON = "RECON"


class AccountType(str, enum.Enum):
    ASSET = "ASSET"
    LIABILITY = "LIABILITY"
    EQUITY = "EQUITY"
    REVENUE = "REVENUE"
    EXPENSE = "EXPENSE"


class ReconciliationStatus(str, enum.Enum):
    BALANCED = "balanced"
    OVER = "over"
    SHORT = "short"


class ExpensePaymentMethod(str, enum.Enum):
    CASH = "cash"
    MPESA = "mpesa"
    BANK = "bank"


class InvoiceStatus(str, enum.Enum):
    UNPAID = "unpaid"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"


class PostingStatus(str, enum.Enum):
    PENDING = "pending"
    POSTED = "posted"
    FAILED = "failed"


def enum_column(enum_cls: type[enum.Enum], **kwargs):
    """String-backed Enum column that round-trips by value, not member name."""
    return db.Column(
        db.Enum(
            enum_cls,
            native_enum=False,
            create_constraint=True,
            validate_strings=True,
            length=32,
            values_callable=lambda members: [m.value for m in members],
            name=f"ck_{enum_cls.__name__.lower()}",
        ),
        **kwargs,
    )
