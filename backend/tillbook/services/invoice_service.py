# Overview: Supplier invoices and payments against them.

"""
Supplier Invoice Service

record_invoice_payment is the payment-confirmation procedure: the invoice
row is locked, amount_paid grows by the payment, and the status follows
unpaid -> partially_paid -> paid. Business failures come back as
{"success": False, "error": ...}; nothing is written in that case.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from ..extensions import db
from ..models import InvoicePayment, InvoiceStatus, SupplierInvoice
from tillbook.time_utils import business_date
from tillbook.validation import InvalidAmountError, ValidationError, require_amount
from .concurrency import lock_for_update, run_with_retry

logger = logging.getLogger(__name__)


class InvoicePaymentError(Exception):
    """Raised for invoice payment rule violations."""
    pass


def _status_for(invoice: SupplierInvoice) -> InvoiceStatus:
    if invoice.amount_paid_cents <= 0:
        return InvoiceStatus.UNPAID
    if invoice.amount_paid_cents >= invoice.total_cents:
        return InvoiceStatus.PAID
    return InvoiceStatus.PARTIALLY_PAID


def create_invoice(
    *,
    supplier_name: str,
    total_cents: int,
    invoice_number: Optional[str] = None,
    issue_date: Optional[date] = None,
    due_date: Optional[date] = None,
) -> SupplierInvoice:
    if not supplier_name or not supplier_name.strip():
        raise ValidationError("supplier_name is required")
    require_amount("total_cents", total_cents)
    if issue_date and due_date and due_date < issue_date:
        raise ValidationError("due_date cannot be before issue_date")

    invoice = SupplierInvoice(
        supplier_name=supplier_name.strip(),
        invoice_number=invoice_number,
        total_cents=total_cents,
        amount_paid_cents=0,
        status=InvoiceStatus.UNPAID,
        issue_date=issue_date or business_date(),
        due_date=due_date,
    )
    db.session.add(invoice)
    db.session.commit()
    return invoice


def record_invoice_payment(
    invoice_id: int,
    amount_cents: int,
    payment_method: str,
    payment_date: Optional[date] = None,
    reference_number: Optional[str] = None,
    notes: Optional[str] = None,
) -> dict:
    """
    Apply a payment to a supplier invoice.

    Returns:
        {"success": True, "invoice": ..., "payment": ...} or
        {"success": False, "error": "..."}
    """
    try:
        require_amount("amount_cents", amount_cents)
    except InvalidAmountError as exc:
        return {"success": False, "error": str(exc)}
    if not payment_method or not str(payment_method).strip():
        return {"success": False, "error": "payment_method is required"}

    def _op():
        invoice = lock_for_update(db.session.query(SupplierInvoice).filter_by(id=invoice_id)).first()
        if invoice is None:
            raise InvoicePaymentError(f"Invoice {invoice_id} not found")
        if invoice.status == InvoiceStatus.PAID:
            raise InvoicePaymentError(f"Invoice {invoice_id} is already paid")
        if amount_cents > invoice.outstanding_cents:
            raise InvoicePaymentError(
                f"Payment {amount_cents} exceeds outstanding balance {invoice.outstanding_cents}"
            )

        payment = InvoicePayment(
            invoice_id=invoice.id,
            amount_cents=amount_cents,
            payment_method=str(payment_method).strip(),
            payment_date=payment_date or business_date(),
            reference_number=reference_number,
            notes=notes,
        )
        db.session.add(payment)
        invoice.amount_paid_cents += amount_cents
        invoice.status = _status_for(invoice)
        db.session.commit()
        return invoice, payment

    try:
        invoice, payment = run_with_retry(_op)
    except InvoicePaymentError as exc:
        db.session.rollback()
        logger.info("invoice %s payment refused: %s", invoice_id, exc)
        return {"success": False, "error": str(exc)}

    logger.info("invoice %s paid %s cents, status %s", invoice.id, amount_cents, invoice.status.value)
    return {"success": True, "invoice": invoice.to_dict(), "payment": payment.to_dict()}


def get_invoice(invoice_id: int) -> Optional[SupplierInvoice]:
    return db.session.get(SupplierInvoice, invoice_id)
