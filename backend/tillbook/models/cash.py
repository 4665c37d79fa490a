from __future__ import annotations

from ..extensions import db
from tillbook.time_utils import to_utc_z
from .enums import CashDirection, CashTransactionType, ReconciliationStatus, enum_column


class CashTransaction(db.Model):
    """
    Immutable cash-movement entry in a shift's till ledger.

    APPEND-ONLY: rows are never updated or deleted (see immutability.py).
    Amounts are always positive; the sign comes from the type, and for
    RECONCILIATION_ADJUSTMENT from direction (IN = over, OUT = short).
    """
    __tablename__ = "cash_transactions"
    __table_args__ = (
        db.Index("ix_cash_transactions_shift_created", "shift_id", "created_at"),
        db.CheckConstraint("amount_cents > 0", name="ck_cash_transactions_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=False, index=True)
    cashier_id = db.Column(db.String(64), nullable=False, index=True)

    type = enum_column(CashTransactionType, nullable=False, index=True)
    direction = enum_column(CashDirection, nullable=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(255), nullable=False, default="")

    # Cross references (optional)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    reconciliation_id = db.Column(db.Integer, db.ForeignKey("cash_reconciliation.id"), nullable=True)
    expense_id = db.Column(db.Integer, db.ForeignKey("expenses.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    shift = db.relationship("Shift", backref=db.backref("cash_transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shift_id": self.shift_id,
            "cashier_id": self.cashier_id,
            "type": self.type.value,
            "direction": self.direction.value if self.direction else None,
            "amount_cents": self.amount_cents,
            "description": self.description,
            "sale_id": self.sale_id,
            "reconciliation_id": self.reconciliation_id,
            "expense_id": self.expense_id,
            "created_at": to_utc_z(self.created_at),
        }


class CashReconciliation(db.Model):
    """
    Audit record of one physical cash count against the computed balance.

    Written for every reconciliation, including balanced ones. Immutable.
    """
    __tablename__ = "cash_reconciliation"
    __table_args__ = (
        db.CheckConstraint("declared_cents >= 0", name="ck_cash_reconciliation_declared_non_negative"),
        db.CheckConstraint(
            "difference_cents = declared_cents - expected_cents",
            name="ck_cash_reconciliation_difference",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    cashier_id = db.Column(db.String(64), nullable=False, index=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=False, index=True)

    expected_cents = db.Column(db.Integer, nullable=False)
    declared_cents = db.Column(db.Integer, nullable=False)
    difference_cents = db.Column(db.Integer, nullable=False)
    status = enum_column(ReconciliationStatus, nullable=False)

    # Closing count taken as part of ending the shift
    is_closing = db.Column(db.Boolean, nullable=False, default=False)

    reconciliation_date = db.Column(db.Date, nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    shift = db.relationship("Shift", backref=db.backref("reconciliations", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cashier_id": self.cashier_id,
            "shift_id": self.shift_id,
            "expected_cents": self.expected_cents,
            "declared_cents": self.declared_cents,
            "difference_cents": self.difference_cents,
            "status": self.status.value,
            "is_closing": self.is_closing,
            "reconciliation_date": self.reconciliation_date.isoformat(),
            "created_at": to_utc_z(self.created_at),
        }
