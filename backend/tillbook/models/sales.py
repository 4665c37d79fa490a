from __future__ import annotations

from ..extensions import db
from tillbook.time_utils import to_utc_z
from .enums import PaymentMethod, PaymentStatus, StockStatus, TenderType, enum_column


class Sale(db.Model):
    """
    Completed checkout.

    Created once by the checkout orchestrator with payment_status=completed
    (no pending-authorization window is modelled). Immutable afterwards.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.CheckConstraint("total_cents > 0", name="ck_sales_total_positive"),
        db.CheckConstraint("line_count >= 0", name="ck_sales_line_count_non_negative"),
        db.Index("ix_sales_status_created", "payment_status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    cashier_id = db.Column(db.String(64), nullable=False, index=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=True, index=True)

    total_cents = db.Column(db.Integer, nullable=False)
    payment_method = enum_column(PaymentMethod, nullable=False)
    payment_status = enum_column(PaymentStatus, nullable=False, default=PaymentStatus.COMPLETED)

    # Cash tender details (cash / split only)
    cash_received_cents = db.Column(db.Integer, nullable=True)
    change_cents = db.Column(db.Integer, nullable=False, default=0)

    # Cart lines written after the sale commits; the sale posts once all exist
    line_count = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    shift = db.relationship("Shift", backref=db.backref("sales", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cashier_id": self.cashier_id,
            "shift_id": self.shift_id,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method.value,
            "payment_status": self.payment_status.value,
            "cash_received_cents": self.cash_received_cents,
            "change_cents": self.change_cents,
            "line_count": self.line_count,
            "created_at": to_utc_z(self.created_at),
        }


class SaleLineItem(db.Model):
    """One cart line of a sale; total_price_cents = quantity * unit_price_cents."""
    __tablename__ = "sale_line_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_line_items_quantity_positive"),
        db.CheckConstraint("unit_price_cents >= 0", name="ck_sale_line_items_price_non_negative"),
        db.CheckConstraint(
            "total_price_cents = quantity * unit_price_cents",
            name="ck_sale_line_items_total",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)

    # Outcome of the best-effort stock decrement for this line
    stock_status = enum_column(StockStatus, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sale = db.relationship("Sale", backref=db.backref("line_items", lazy=True))
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
            "stock_status": self.stock_status.value if self.stock_status else None,
            "created_at": to_utc_z(self.created_at),
        }


class PaymentTransaction(db.Model):
    """
    Payment-method ledger row.

    One per tender used by a sale: a single-method sale writes one row for
    the full total, a split sale one row per nonzero component.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_transactions_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    cashier_id = db.Column(db.String(64), nullable=False, index=True)

    transaction_type = db.Column(db.String(16), nullable=False, default="sale")
    payment_type = enum_column(TenderType, nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sale = db.relationship("Sale", backref=db.backref("payment_transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "cashier_id": self.cashier_id,
            "transaction_type": self.transaction_type,
            "payment_type": self.payment_type.value,
            "amount_cents": self.amount_cents,
            "created_at": to_utc_z(self.created_at),
        }


class DailyStat(db.Model):
    """Per-day sales/expense aggregate. Upserted; one row per date."""
    __tablename__ = "daily_stats"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    date = db.Column(db.Date, nullable=False, unique=True)
    total_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    total_expenses_cents = db.Column(db.Integer, nullable=False, default=0)
    sale_count = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "total_sales_cents": self.total_sales_cents,
            "total_expenses_cents": self.total_expenses_cents,
            "sale_count": self.sale_count,
            "updated_at": to_utc_z(self.updated_at),
        }
