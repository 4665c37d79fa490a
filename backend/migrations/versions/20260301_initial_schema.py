"""Initial schema: shifts, cash ledger, sales, journals, expenses, invoices

Revision ID: 20260301_initial
Revises:
Create Date: 2026-03-01
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20260301_initial"
down_revision = None
branch_labels = None
depends_on = None


def _enum(name, *values):
    return sa.Enum(*values, name=name, native_enum=False, create_constraint=True, length=32)


def _timestamps(*names):
    return [
        sa.Column(n, sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False)
        for n in names
    ]


JOURNAL_SOURCES = ("SALE", "EXPENSE", "SHIFT", "ADJUST", "RECON")


def upgrade():
    op.create_table(
        "shifts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("cashier_id", sa.String(64), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("float_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("closed_by_id", sa.String(64), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.CheckConstraint("float_cents >= 0", name="ck_shifts_float_non_negative"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("shifts", schema=None) as batch_op:
        batch_op.create_index("ix_shifts_cashier_id", ["cashier_id"], unique=False)
        batch_op.create_index("ix_shifts_start_time", ["start_time"], unique=False)
    op.create_index(
        "uq_shifts_one_active_per_cashier",
        "shifts",
        ["cashier_id"],
        unique=True,
        sqlite_where=sa.text("end_time IS NULL"),
        postgresql_where=sa.text("end_time IS NULL"),
    )

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sku", sa.String(64), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("cost_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("stock_quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        *_timestamps("created_at", "updated_at"),
        sa.CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
        sa.CheckConstraint("price_cents >= 0", name="ck_products_price_non_negative"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("sku"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(16), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("type", _enum("ck_accounttype", "ASSET", "LIABILITY", "EQUITY", "REVENUE", "EXPENSE"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        *_timestamps("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(128), nullable=False),
        sa.Column("category", sa.String(64), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("payment_method", _enum("ck_expensepaymentmethod", "cash", "mpesa", "bank"), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("expense_date", sa.Date(), nullable=False),
        sa.Column("recorded_by", sa.String(64), nullable=True),
        sa.Column("shift_id", sa.Integer(), nullable=True),
        *_timestamps("created_at"),
        sa.CheckConstraint("amount_cents > 0", name="ck_expenses_amount_positive"),
        sa.ForeignKeyConstraint(["shift_id"], ["shifts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("expenses", schema=None) as batch_op:
        batch_op.create_index("ix_expenses_category", ["category"], unique=False)
        batch_op.create_index("ix_expenses_expense_date", ["expense_date"], unique=False)
        batch_op.create_index("ix_expenses_shift_id", ["shift_id"], unique=False)

    op.create_table(
        "sales",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("cashier_id", sa.String(64), nullable=False),
        sa.Column("shift_id", sa.Integer(), nullable=True),
        sa.Column("total_cents", sa.Integer(), nullable=False),
        sa.Column("payment_method", _enum("ck_paymentmethod", "cash", "mpesa", "card", "split"), nullable=False),
        sa.Column("payment_status", _enum("ck_paymentstatus", "pending", "completed", "failed"), nullable=False),
        sa.Column("cash_received_cents", sa.Integer(), nullable=True),
        sa.Column("change_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("line_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        *_timestamps("created_at"),
        sa.CheckConstraint("total_cents > 0", name="ck_sales_total_positive"),
        sa.CheckConstraint("line_count >= 0", name="ck_sales_line_count_non_negative"),
        sa.ForeignKeyConstraint(["shift_id"], ["shifts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("sales", schema=None) as batch_op:
        batch_op.create_index("ix_sales_cashier_id", ["cashier_id"], unique=False)
        batch_op.create_index("ix_sales_shift_id", ["shift_id"], unique=False)
        batch_op.create_index("ix_sales_created_at", ["created_at"], unique=False)
        batch_op.create_index("ix_sales_status_created", ["payment_status", "created_at"], unique=False)

    op.create_table(
        "cash_reconciliation",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("cashier_id", sa.String(64), nullable=False),
        sa.Column("shift_id", sa.Integer(), nullable=False),
        sa.Column("expected_cents", sa.Integer(), nullable=False),
        sa.Column("declared_cents", sa.Integer(), nullable=False),
        sa.Column("difference_cents", sa.Integer(), nullable=False),
        sa.Column("status", _enum("ck_reconciliationstatus", "balanced", "over", "short"), nullable=False),
        sa.Column("is_closing", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("reconciliation_date", sa.Date(), nullable=False),
        *_timestamps("created_at"),
        sa.CheckConstraint("declared_cents >= 0", name="ck_cash_reconciliation_declared_non_negative"),
        sa.CheckConstraint("difference_cents = declared_cents - expected_cents", name="ck_cash_reconciliation_difference"),
        sa.ForeignKeyConstraint(["shift_id"], ["shifts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("cash_reconciliation", schema=None) as batch_op:
        batch_op.create_index("ix_cash_reconciliation_cashier_id", ["cashier_id"], unique=False)
        batch_op.create_index("ix_cash_reconciliation_shift_id", ["shift_id"], unique=False)
        batch_op.create_index("ix_cash_reconciliation_reconciliation_date", ["reconciliation_date"], unique=False)

    op.create_table(
        "cash_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("shift_id", sa.Integer(), nullable=False),
        sa.Column("cashier_id", sa.String(64), nullable=False),
        sa.Column(
            "type",
            _enum("ck_cashtransactiontype", "float", "cash_in", "cash_out", "sale", "change", "reconciliation_adjustment"),
            nullable=False,
        ),
        sa.Column("direction", _enum("ck_cashdirection", "in", "out"), nullable=True),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(255), nullable=False, server_default=""),
        sa.Column("sale_id", sa.Integer(), nullable=True),
        sa.Column("reconciliation_id", sa.Integer(), nullable=True),
        sa.Column("expense_id", sa.Integer(), nullable=True),
        *_timestamps("created_at"),
        sa.CheckConstraint("amount_cents > 0", name="ck_cash_transactions_amount_positive"),
        sa.ForeignKeyConstraint(["shift_id"], ["shifts.id"]),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"]),
        sa.ForeignKeyConstraint(["reconciliation_id"], ["cash_reconciliation.id"]),
        sa.ForeignKeyConstraint(["expense_id"], ["expenses.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("cash_transactions", schema=None) as batch_op:
        batch_op.create_index("ix_cash_transactions_shift_id", ["shift_id"], unique=False)
        batch_op.create_index("ix_cash_transactions_cashier_id", ["cashier_id"], unique=False)
        batch_op.create_index("ix_cash_transactions_type", ["type"], unique=False)
        batch_op.create_index("ix_cash_transactions_sale_id", ["sale_id"], unique=False)
        batch_op.create_index("ix_cash_transactions_created_at", ["created_at"], unique=False)
        batch_op.create_index("ix_cash_transactions_shift_created", ["shift_id", "created_at"], unique=False)

    op.create_table(
        "sale_line_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sale_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("total_price_cents", sa.Integer(), nullable=False),
        sa.Column("stock_status", _enum("ck_stockstatus", "decremented", "insufficient_stock", "failed"), nullable=True),
        *_timestamps("created_at"),
        sa.CheckConstraint("quantity > 0", name="ck_sale_line_items_quantity_positive"),
        sa.CheckConstraint("unit_price_cents >= 0", name="ck_sale_line_items_price_non_negative"),
        sa.CheckConstraint("total_price_cents = quantity * unit_price_cents", name="ck_sale_line_items_total"),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("sale_line_items", schema=None) as batch_op:
        batch_op.create_index("ix_sale_line_items_sale_id", ["sale_id"], unique=False)
        batch_op.create_index("ix_sale_line_items_product_id", ["product_id"], unique=False)

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sale_id", sa.Integer(), nullable=False),
        sa.Column("cashier_id", sa.String(64), nullable=False),
        sa.Column("transaction_type", sa.String(16), nullable=False, server_default="sale"),
        sa.Column("payment_type", _enum("ck_tendertype", "cash", "mpesa", "card"), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        *_timestamps("created_at"),
        sa.CheckConstraint("amount_cents > 0", name="ck_transactions_amount_positive"),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("transactions", schema=None) as batch_op:
        batch_op.create_index("ix_transactions_sale_id", ["sale_id"], unique=False)
        batch_op.create_index("ix_transactions_cashier_id", ["cashier_id"], unique=False)
        batch_op.create_index("ix_transactions_payment_type", ["payment_type"], unique=False)

    op.create_table(
        "daily_stats",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("total_sales_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_expenses_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("sale_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        *_timestamps("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("date"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "journals",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("jdate", sa.Date(), nullable=False),
        sa.Column("ref", sa.String(64), nullable=False),
        sa.Column("memo", sa.String(255), nullable=True),
        sa.Column("source", _enum("ck_journalsource", *JOURNAL_SOURCES), nullable=False),
        sa.Column("source_id", sa.Integer(), nullable=False),
        sa.Column("locked", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("posted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("posted_by", sa.String(64), nullable=True),
        sa.Column("reverses_journal_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["reverses_journal_id"], ["journals.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("source", "source_id", name="uq_journals_source_source_id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("journals", schema=None) as batch_op:
        batch_op.create_index("ix_journals_jdate", ["jdate"], unique=False)
        batch_op.create_index("ix_journals_source", ["source"], unique=False)

    op.create_table(
        "journal_lines",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("journal_id", sa.Integer(), nullable=False),
        sa.Column("account_id", sa.Integer(), nullable=False),
        sa.Column("debit_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("credit_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("memo", sa.String(255), nullable=True),
        *_timestamps("created_at"),
        sa.CheckConstraint(
            "(debit_cents > 0 AND credit_cents = 0) OR (credit_cents > 0 AND debit_cents = 0)",
            name="ck_journal_lines_one_sided",
        ),
        sa.ForeignKeyConstraint(["journal_id"], ["journals.id"]),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("journal_lines", schema=None) as batch_op:
        batch_op.create_index("ix_journal_lines_journal_id", ["journal_id"], unique=False)
        batch_op.create_index("ix_journal_lines_account_id", ["account_id"], unique=False)

    op.create_table(
        "posting_requests",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("source", _enum("ck_journalsource", *JOURNAL_SOURCES), nullable=False),
        sa.Column("source_id", sa.Integer(), nullable=False),
        sa.Column("status", _enum("ck_postingstatus", "pending", "posted", "failed"), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("journal_id", sa.Integer(), nullable=True),
        *_timestamps("created_at", "updated_at"),
        sa.ForeignKeyConstraint(["journal_id"], ["journals.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("source", "source_id", name="uq_posting_requests_source_source_id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("posting_requests", schema=None) as batch_op:
        batch_op.create_index("ix_posting_requests_status", ["status"], unique=False)

    op.create_table(
        "invoices",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("supplier_name", sa.String(128), nullable=False),
        sa.Column("invoice_number", sa.String(64), nullable=True),
        sa.Column("total_cents", sa.Integer(), nullable=False),
        sa.Column("amount_paid_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", _enum("ck_invoicestatus", "unpaid", "partially_paid", "paid"), nullable=False),
        sa.Column("issue_date", sa.Date(), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps("created_at", "updated_at"),
        sa.CheckConstraint("total_cents > 0", name="ck_invoices_total_positive"),
        sa.CheckConstraint(
            "amount_paid_cents >= 0 AND amount_paid_cents <= total_cents",
            name="ck_invoices_amount_paid_range",
        ),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("invoices", schema=None) as batch_op:
        batch_op.create_index("ix_invoices_status", ["status"], unique=False)

    op.create_table(
        "invoice_payments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("invoice_id", sa.Integer(), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("payment_method", sa.String(32), nullable=False),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("reference_number", sa.String(64), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps("created_at"),
        sa.CheckConstraint("amount_cents > 0", name="ck_invoice_payments_amount_positive"),
        sa.ForeignKeyConstraint(["invoice_id"], ["invoices.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("invoice_payments", schema=None) as batch_op:
        batch_op.create_index("ix_invoice_payments_invoice_id", ["invoice_id"], unique=False)


def downgrade():
    op.drop_table("invoice_payments")
    op.drop_table("invoices")
    op.drop_table("posting_requests")
    op.drop_table("journal_lines")
    op.drop_table("journals")
    op.drop_table("daily_stats")
    op.drop_table("transactions")
    op.drop_table("sale_line_items")
    op.drop_table("cash_transactions")
    op.drop_table("cash_reconciliation")
    op.drop_table("sales")
    op.drop_table("expenses")
    op.drop_table("accounts")
    op.drop_table("products")
    op.drop_index("uq_shifts_one_active_per_cashier", table_name="shifts")
    op.drop_table("shifts")
