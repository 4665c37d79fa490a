from __future__ import annotations

from ..extensions import db
from tillbook.time_utils import to_utc_z
from .enums import (
    AccountType,
    ExpensePaymentMethod,
    InvoiceStatus,
    JournalSource,
    PostingStatus,
    enum_column,
)


class Account(db.Model):
    """Chart-of-accounts entry. Referenced by journal lines via code lookups."""
    __tablename__ = "accounts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(16), nullable=False, unique=True)
    name = db.Column(db.String(128), nullable=False)
    type = enum_column(AccountType, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "type": self.type.value,
            "is_active": self.is_active,
        }


class JournalEntry(db.Model):
    """
    Double-entry journal header.

    IDEMPOTENCY: UNIQUE(source, source_id) - one journal per business event.
    IMMUTABLE: written locked with posted_at set; corrections are new ADJUST
    entries (source_id = id of the journal being offset), never edits.
    """
    __tablename__ = "journals"
    __table_args__ = (
        db.UniqueConstraint("source", "source_id", name="uq_journals_source_source_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    jdate = db.Column(db.Date, nullable=False, index=True)
    ref = db.Column(db.String(64), nullable=False)
    memo = db.Column(db.String(255), nullable=True)

    source = enum_column(JournalSource, nullable=False, index=True)
    source_id = db.Column(db.Integer, nullable=False)

    locked = db.Column(db.Boolean, nullable=False, default=False)
    posted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    posted_by = db.Column(db.String(64), nullable=True)

    # Set on ADJUST entries that offset another journal
    reverses_journal_id = db.Column(db.Integer, db.ForeignKey("journals.id"), nullable=True)

    lines = db.relationship(
        "JournalLine",
        backref="journal",
        lazy=True,
        order_by="JournalLine.id",
    )

    @property
    def total_debit_cents(self) -> int:
        return sum(line.debit_cents for line in self.lines)

    @property
    def total_credit_cents(self) -> int:
        return sum(line.credit_cents for line in self.lines)

    def to_dict(self, include_lines: bool = False) -> dict:
        data = {
            "id": self.id,
            "jdate": self.jdate.isoformat(),
            "ref": self.ref,
            "memo": self.memo,
            "source": self.source.value,
            "source_id": self.source_id,
            "locked": self.locked,
            "posted_at": to_utc_z(self.posted_at) if self.posted_at else None,
            "posted_by": self.posted_by,
            "reverses_journal_id": self.reverses_journal_id,
            "total_debit_cents": self.total_debit_cents,
            "total_credit_cents": self.total_credit_cents,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class JournalLine(db.Model):
    """One debit or credit leg. Exactly one of debit/credit is nonzero."""
    __tablename__ = "journal_lines"
    __table_args__ = (
        db.CheckConstraint(
            "(debit_cents > 0 AND credit_cents = 0) OR (credit_cents > 0 AND debit_cents = 0)",
            name="ck_journal_lines_one_sided",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    journal_id = db.Column(db.Integer, db.ForeignKey("journals.id"), nullable=False, index=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)

    debit_cents = db.Column(db.Integer, nullable=False, default=0)
    credit_cents = db.Column(db.Integer, nullable=False, default=0)
    memo = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    account = db.relationship("Account")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "journal_id": self.journal_id,
            "account_id": self.account_id,
            "account_code": self.account.code if self.account else None,
            "debit_cents": self.debit_cents,
            "credit_cents": self.credit_cents,
            "memo": self.memo,
        }


class PostingRequest(db.Model):
    """
    Queued journal-posting task keyed by (source, source_id).

    Checkout and reconciliation enqueue one of these instead of firing an
    unobserved call; the dispatcher or the batch retry drains them.
    """
    __tablename__ = "posting_requests"
    __table_args__ = (
        db.UniqueConstraint("source", "source_id", name="uq_posting_requests_source_source_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    source = enum_column(JournalSource, nullable=False)
    source_id = db.Column(db.Integer, nullable=False)

    status = enum_column(PostingStatus, nullable=False, default=PostingStatus.PENDING, index=True)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.Text, nullable=True)
    journal_id = db.Column(db.Integer, db.ForeignKey("journals.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "source": self.source.value,
            "source_id": self.source_id,
            "status": self.status.value,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "journal_id": self.journal_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Expense(db.Model):
    """Business expense recorded by a cashier or accountant."""
    __tablename__ = "expenses"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_expenses_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(128), nullable=False)
    category = db.Column(db.String(64), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = enum_column(ExpensePaymentMethod, nullable=False, default=ExpensePaymentMethod.CASH)
    description = db.Column(db.Text, nullable=True)
    expense_date = db.Column(db.Date, nullable=False, index=True)

    recorded_by = db.Column(db.String(64), nullable=True)
    # Paid out of a till: also written to that shift's cash ledger
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "category": self.category,
            "amount_cents": self.amount_cents,
            "payment_method": self.payment_method.value,
            "description": self.description,
            "expense_date": self.expense_date.isoformat(),
            "recorded_by": self.recorded_by,
            "shift_id": self.shift_id,
            "created_at": to_utc_z(self.created_at),
        }


class SupplierInvoice(db.Model):
    """
    Supplier invoice (accounts payable).

    STATUS: unpaid -> partially_paid -> paid, driven only by
    invoice_service.record_invoice_payment.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.CheckConstraint("total_cents > 0", name="ck_invoices_total_positive"),
        db.CheckConstraint(
            "amount_paid_cents >= 0 AND amount_paid_cents <= total_cents",
            name="ck_invoices_amount_paid_range",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    supplier_name = db.Column(db.String(128), nullable=False)
    invoice_number = db.Column(db.String(64), nullable=True)

    total_cents = db.Column(db.Integer, nullable=False)
    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    status = enum_column(InvoiceStatus, nullable=False, default=InvoiceStatus.UNPAID, index=True)

    issue_date = db.Column(db.Date, nullable=True)
    due_date = db.Column(db.Date, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def outstanding_cents(self) -> int:
        return self.total_cents - self.amount_paid_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_name": self.supplier_name,
            "invoice_number": self.invoice_number,
            "total_cents": self.total_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "outstanding_cents": self.outstanding_cents,
            "status": self.status.value,
            "issue_date": self.issue_date.isoformat() if self.issue_date else None,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "version_id": self.version_id,
        }


class InvoicePayment(db.Model):
    """Payment made against a supplier invoice."""
    __tablename__ = "invoice_payments"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_invoice_payments_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(32), nullable=False)
    payment_date = db.Column(db.Date, nullable=False)
    reference_number = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    invoice = db.relationship("SupplierInvoice", backref=db.backref("payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "amount_cents": self.amount_cents,
            "payment_method": self.payment_method,
            "payment_date": self.payment_date.isoformat(),
            "reference_number": self.reference_number,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
