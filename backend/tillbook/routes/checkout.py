# Overview: Flask API routes for checkout; parses the cart and payment and returns the completed sale.

# backend/tillbook/routes/checkout.py

from flask import Blueprint, g, jsonify, request

from ..decorators import error_response, require_actor
from ..services import checkout_service
from ..services.checkout_service import SplitAmounts
from ..services.shift_service import NoActiveShiftError
from tillbook.validation import ValidationError, coerce_int, parse_cents

checkout_bp = Blueprint("checkout", __name__, url_prefix="/api")


@checkout_bp.post("/checkout")
@require_actor
def checkout_route():
    """
    Complete a sale for the acting cashier.

    Request body:
    {
        "shift_id": 12,                     (optional; defaults to the active shift)
        "payment_method": "cash" | "mpesa" | "card" | "split",
        "items": [
            {"product_id": 1, "quantity": 2, "unit_price_cents": 17500}
        ],
        "cash_received_cents": 40000,       (cash / split cash component)
        "split": {"cash_cents": 40000, "mpesa_cents": 60000, "card_cents": 0},
        "total_cents": 35000                (optional; must match the cart)
    }

    Response 201: sale, payments, line_items, change_cents, warnings
    (per-item stock shortfalls), posting_queued, balance.
    """
    try:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise ValidationError("Invalid JSON payload")

        payment_method = data.get("payment_method")
        if not payment_method:
            raise ValidationError("payment_method is required")

        shift_id = data.get("shift_id")
        if shift_id is not None:
            shift_id = coerce_int("shift_id", shift_id)

        cash_received = data.get("cash_received_cents")
        if cash_received is not None:
            cash_received = parse_cents("cash_received_cents", cash_received)

        split = None
        raw_split = data.get("split")
        if raw_split is not None:
            if not isinstance(raw_split, dict):
                raise ValidationError("split must be an object")
            split = SplitAmounts(
                cash_cents=parse_cents("cash_cents", raw_split.get("cash_cents", 0), allow_zero=True),
                mpesa_cents=parse_cents("mpesa_cents", raw_split.get("mpesa_cents", 0), allow_zero=True),
                card_cents=parse_cents("card_cents", raw_split.get("card_cents", 0), allow_zero=True),
            )

        expected_total = data.get("total_cents")
        if expected_total is not None:
            expected_total = parse_cents("total_cents", expected_total)

        items = data.get("items")
        if items is not None and not isinstance(items, list):
            raise ValidationError("items must be a list")

        result = checkout_service.complete_checkout(
            g.actor_id,
            items or [],
            payment_method,
            shift_id=shift_id,
            cash_received_cents=cash_received,
            split=split,
            expected_total_cents=expected_total,
        )
        return jsonify(result.to_dict()), 201

    except Exception as e:
        return error_response(e, conflict=(NoActiveShiftError,), action="complete checkout")


@checkout_bp.get("/sales/<int:sale_id>")
@require_actor
def get_sale_route(sale_id: int):
    try:
        sale = checkout_service.get_sale(sale_id)
        if sale is None:
            return jsonify({"error": f"Sale {sale_id} not found"}), 404
        data = sale.to_dict()
        data["line_items"] = [item.to_dict() for item in sale.line_items]
        data["payments"] = [p.to_dict() for p in sale.payment_transactions]
        return jsonify({"sale": data}), 200
    except Exception as e:
        return error_response(e, action="load sale")
