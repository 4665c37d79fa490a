# Overview: Flask API routes for expenses.

# backend/tillbook/routes/expenses.py

from flask import Blueprint, g, jsonify, request

from ..decorators import error_response, require_actor
from ..models import Expense
from ..services import expense_service
from ..services.expense_service import EXPENSE_POLICY
from ..services.shift_service import NoActiveShiftError, ShiftNotFoundError
from tillbook.time_utils import parse_iso_date
from tillbook.validation import ValidationError, validate_payload

expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


@expenses_bp.post("")
@require_actor
def create_expense_route():
    """
    Record an expense.

    Request body:
    {
        "title": "Electricity token",
        "category": "utilities",
        "amount_cents": 250000,
        "payment_method": "cash" | "mpesa" | "bank",   (default cash)
        "description": "...",                          (optional)
        "expense_date": "2024-05-01",                  (optional, default today)
        "shift_id": 12                                 (optional; cash paid from that till)
    }
    """
    try:
        patch = validate_payload(model=Expense, payload=request.get_json(silent=True), policy=EXPENSE_POLICY)
        expense = expense_service.create_expense(
            title=patch["title"],
            category=patch["category"],
            amount_cents=patch["amount_cents"],
            recorded_by=g.actor_id,
            payment_method=patch.get("payment_method") or "cash",
            description=patch.get("description"),
            expense_date=patch.get("expense_date"),
            shift_id=patch.get("shift_id"),
        )
        return jsonify({"expense": expense.to_dict()}), 201
    except Exception as e:
        return error_response(
            e,
            not_found=(ShiftNotFoundError,),
            conflict=(NoActiveShiftError,),
            action="record expense",
        )


@expenses_bp.get("")
@require_actor
def list_expenses_route():
    """Query: start, end (YYYY-MM-DD), category."""
    try:
        try:
            start = parse_iso_date(request.args.get("start"))
            end = parse_iso_date(request.args.get("end"))
        except ValueError:
            raise ValidationError("start and end must be YYYY-MM-DD")
        expenses = expense_service.list_expenses(start, end, request.args.get("category"))
        return jsonify({"expenses": [e.to_dict() for e in expenses]}), 200
    except Exception as e:
        return error_response(e, action="list expenses")
