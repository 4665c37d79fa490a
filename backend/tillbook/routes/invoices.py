# Overview: Flask API routes for supplier invoices and invoice payments.

# backend/tillbook/routes/invoices.py

from flask import Blueprint, jsonify, request

from ..decorators import error_response, require_actor
from ..services import invoice_service
from tillbook.time_utils import parse_iso_date
from tillbook.validation import ValidationError, parse_cents

invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


def _date_arg(data: dict, key: str):
    value = data.get(key)
    if value is None:
        return None
    try:
        return parse_iso_date(str(value))
    except ValueError:
        raise ValidationError(f"{key} must be YYYY-MM-DD")


@invoices_bp.post("")
@require_actor
def create_invoice_route():
    """
    Request body:
    {
        "supplier_name": "Acme Wholesalers",
        "invoice_number": "INV-0042",     (optional)
        "total_cents": 1500000,
        "issue_date": "2024-05-01",       (optional)
        "due_date": "2024-05-31"          (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        invoice = invoice_service.create_invoice(
            supplier_name=data.get("supplier_name") or "",
            total_cents=parse_cents("total_cents", data.get("total_cents")),
            invoice_number=data.get("invoice_number"),
            issue_date=_date_arg(data, "issue_date"),
            due_date=_date_arg(data, "due_date"),
        )
        return jsonify({"invoice": invoice.to_dict()}), 201
    except Exception as e:
        return error_response(e, action="create invoice")


@invoices_bp.get("/<int:invoice_id>")
@require_actor
def get_invoice_route(invoice_id: int):
    try:
        invoice = invoice_service.get_invoice(invoice_id)
        if invoice is None:
            return jsonify({"error": f"Invoice {invoice_id} not found"}), 404
        data = invoice.to_dict()
        data["payments"] = [p.to_dict() for p in invoice.payments]
        return jsonify({"invoice": data}), 200
    except Exception as e:
        return error_response(e, action="load invoice")


@invoices_bp.post("/<int:invoice_id>/payments")
@require_actor
def record_invoice_payment_route(invoice_id: int):
    """
    Request body:
    {
        "amount_cents": 500000,
        "payment_method": "bank",
        "payment_date": "2024-05-10",     (optional)
        "reference_number": "TRX-123",    (optional)
        "notes": "..."                    (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        result = invoice_service.record_invoice_payment(
            invoice_id,
            parse_cents("amount_cents", data.get("amount_cents")),
            data.get("payment_method") or "",
            payment_date=_date_arg(data, "payment_date"),
            reference_number=data.get("reference_number"),
            notes=data.get("notes"),
        )
        return jsonify(result), 201 if result["success"] else 400
    except Exception as e:
        return error_response(e, action="record invoice payment")
