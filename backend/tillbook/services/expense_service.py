# Overview: Business expense recording; cash expenses paid from a till also hit the shift ledger.

"""
Expense Service

WHY: Expenses reduce cash (or M-PESA / bank) and must reach the journal.
A cash expense paid out of an open till is also a cash_out in that shift's
ledger, so the till balance stays true.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from ..extensions import db
from ..models import CashTransactionType, Expense, ExpensePaymentMethod, JournalSource
from tillbook.time_utils import business_date
from tillbook.validation import ModelValidationPolicy, ValidationError, require_amount
from . import daily_stats_service
from .cash_ledger_service import append_entry
from .concurrency import run_with_retry
from .posting_dispatcher import dispatch, enqueue
from .shift_feed import publish_balance
from .shift_service import lock_active_shift

logger = logging.getLogger(__name__)

EXPENSE_POLICY = ModelValidationPolicy(
    writable_fields={"title", "category", "amount_cents", "payment_method", "description", "expense_date", "shift_id"},
    required_on_create={"title", "category", "amount_cents"},
)


def create_expense(
    *,
    title: str,
    category: str,
    amount_cents: int,
    recorded_by: Optional[str],
    payment_method=ExpensePaymentMethod.CASH,
    description: Optional[str] = None,
    expense_date: Optional[date] = None,
    shift_id: Optional[int] = None,
) -> Expense:
    """
    Record an expense and queue its journal posting.

    Raises:
        ValidationError / InvalidAmountError: bad input
        NoActiveShiftError: shift_id given but the shift is not active
    """
    if not title or not title.strip():
        raise ValidationError("title is required")
    if not category or not category.strip():
        raise ValidationError("category is required")
    require_amount("amount_cents", amount_cents)
    try:
        method = ExpensePaymentMethod(payment_method)
    except ValueError:
        raise ValidationError(f"Invalid payment method: {payment_method}")
    if shift_id is not None and method != ExpensePaymentMethod.CASH:
        raise ValidationError("Only cash expenses can be paid from a till")

    def _op():
        shift = lock_active_shift(shift_id) if shift_id is not None else None
        expense = Expense(
            title=title.strip(),
            category=category.strip().lower(),
            amount_cents=amount_cents,
            payment_method=method,
            description=description,
            expense_date=expense_date or business_date(),
            recorded_by=recorded_by,
            shift_id=shift.id if shift else None,
        )
        db.session.add(expense)
        db.session.flush()

        if shift is not None:
            append_entry(
                shift,
                CashTransactionType.CASH_OUT,
                amount_cents,
                f"Expense: {expense.title}",
                actor_id=recorded_by,
                expense_id=expense.id,
            )
        enqueue(JournalSource.EXPENSE, expense.id)
        db.session.commit()
        return expense

    expense = run_with_retry(_op)
    logger.info("expense %s recorded: %s cents (%s)", expense.id, amount_cents, method.value)

    daily_stats_service.record_expense(amount_cents, expense.expense_date)
    if expense.shift_id is not None:
        publish_balance(expense.shift_id)
    dispatch(JournalSource.EXPENSE, expense.id)
    return expense


def list_expenses(start: Optional[date] = None, end: Optional[date] = None, category: Optional[str] = None) -> list[Expense]:
    query = db.session.query(Expense)
    if start is not None:
        query = query.filter(Expense.expense_date >= start)
    if end is not None:
        query = query.filter(Expense.expense_date <= end)
    if category:
        query = query.filter(Expense.category == category.strip().lower())
    return query.order_by(Expense.expense_date.desc(), Expense.id.desc()).all()
