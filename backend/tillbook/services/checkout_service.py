# Overview: Checkout orchestration; turns a cart and a payment into a sale, ledger rows and a queued posting.

"""
Checkout Service

WHY: Completing a sale touches several records: the sale, one payment row
per tender, the till's cash ledger, product stock, daily aggregates and the
general journal. This module fixes the order and the failure semantics.

ORDER:
1. Validate cart and payment (no writes yet)
2-4. Sale + payment transactions + cash ledger rows + posting request,
     committed together (all or nothing)
5. Line items with stock decrement, each in its own transaction
6. Daily aggregate upsert
7. (client) clear cart
8. Dispatch journal posting (non-blocking)

STOCK POLICY: best effort. A line that cannot be decremented (not enough
stock) is recorded with stock_status=insufficient_stock and reported in
warnings; the sale stands because the money has already been taken.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import (
    CashTransactionType, JournalSource, PaymentMethod, PaymentStatus,
    PaymentTransaction, Product, Sale, SaleLineItem, Shift, StockStatus, TenderType,
)
from tillbook.validation import ValidationError, coerce_int, require_amount
from . import daily_stats_service
from .cash_ledger_service import append_entry
from .concurrency import StoreUnavailableError, lock_for_update, run_with_retry
from .inventory_service import INSUFFICIENT_STOCK, update_product_stock
from .posting_dispatcher import dispatch, enqueue
from .shift_feed import BalanceSnapshot, publish_balance
from .shift_service import NoActiveShiftError, get_active_shift

logger = logging.getLogger(__name__)

STOCK_POLICY_BEST_EFFORT = "best_effort"
STOCK_POLICY = STOCK_POLICY_BEST_EFFORT

MAX_LINE_QUANTITY = 100_000


class CheckoutError(ValidationError):
    """Raised for checkout validation errors (before any write)."""
    pass


class EmptyCartError(CheckoutError):
    pass


class SplitMismatchError(CheckoutError):
    pass


class InsufficientPaymentError(CheckoutError):
    pass


@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: int
    unit_price_cents: int

    @property
    def total_cents(self) -> int:
        return self.quantity * self.unit_price_cents


@dataclass(frozen=True)
class SplitAmounts:
    cash_cents: int = 0
    mpesa_cents: int = 0
    card_cents: int = 0

    def components(self) -> list[tuple[TenderType, int]]:
        return [
            (TenderType.CASH, self.cash_cents),
            (TenderType.MPESA, self.mpesa_cents),
            (TenderType.CARD, self.card_cents),
        ]


@dataclass(frozen=True)
class PaymentPlan:
    method: PaymentMethod
    components: list[tuple[TenderType, int]]
    cash_due_cents: int = 0
    cash_received_cents: Optional[int] = None
    change_cents: int = 0


@dataclass
class CheckoutResult:
    sale: Sale
    payments: list[PaymentTransaction]
    line_items: list[SaleLineItem] = field(default_factory=list)
    warnings: list[dict] = field(default_factory=list)
    posting_queued: bool = True
    cart_cleared: bool = True
    balance: Optional[BalanceSnapshot] = None

    @property
    def change_cents(self) -> int:
        return self.sale.change_cents

    def to_dict(self) -> dict:
        return {
            "sale": self.sale.to_dict(),
            "payments": [p.to_dict() for p in self.payments],
            "line_items": [item.to_dict() for item in self.line_items],
            "change_cents": self.change_cents,
            "warnings": self.warnings,
            "posting_queued": self.posting_queued,
            "cart_cleared": self.cart_cleared,
            "stock_policy": STOCK_POLICY,
            "balance": self.balance.to_dict() if self.balance else None,
        }


# =============================================================================
# VALIDATION (step 1, pure)
# =============================================================================

def normalize_cart(lines: Iterable) -> list[CartLine]:
    """Accept CartLine objects or dicts; reject empty carts and bad lines."""
    cart: list[CartLine] = []
    for raw in lines or []:
        if isinstance(raw, CartLine):
            line = raw
        elif isinstance(raw, dict):
            try:
                line = CartLine(
                    product_id=coerce_int("product_id", raw.get("product_id")),
                    quantity=coerce_int("quantity", raw.get("quantity")),
                    unit_price_cents=coerce_int("unit_price_cents", raw.get("unit_price_cents")),
                )
            except ValidationError as exc:
                raise CheckoutError(f"Invalid cart line: {exc}")
        else:
            raise CheckoutError("Cart lines must be objects")

        if line.quantity <= 0:
            raise CheckoutError(f"Quantity for product {line.product_id} must be positive")
        if line.quantity > MAX_LINE_QUANTITY:
            raise CheckoutError(f"Quantity for product {line.product_id} cannot exceed {MAX_LINE_QUANTITY}")
        if line.unit_price_cents < 0:
            raise CheckoutError(f"Price for product {line.product_id} cannot be negative")
        require_amount(f"line total for product {line.product_id}", line.total_cents, allow_zero=True)
        cart.append(line)

    if not cart:
        raise EmptyCartError("Cart is empty")
    total = sum(line.total_cents for line in cart)
    if total <= 0:
        raise EmptyCartError("Cart total must be positive")
    require_amount("total_cents", total)
    return cart


def plan_payment(
    total_cents: int,
    payment_method,
    cash_received_cents: Optional[int] = None,
    split: Optional[SplitAmounts] = None,
) -> PaymentPlan:
    """Work out tender components, cash due and change. Raises before any write."""
    try:
        method = PaymentMethod(payment_method)
    except ValueError:
        raise CheckoutError(f"Invalid payment method: {payment_method}")

    if method == PaymentMethod.SPLIT:
        if split is None:
            raise SplitMismatchError("Split payment requires split amounts")
        for tender, amount in split.components():
            require_amount(f"{tender.value}_cents", amount, allow_zero=True)
        components = [(tender, amount) for tender, amount in split.components() if amount > 0]
        paid = sum(amount for _, amount in components)
        if paid != total_cents:
            raise SplitMismatchError(f"Split amounts total {paid}, sale total is {total_cents}")
        cash_due = split.cash_cents
    elif method == PaymentMethod.CASH:
        components = [(TenderType.CASH, total_cents)]
        cash_due = total_cents
    else:
        components = [(TenderType(method.value), total_cents)]
        cash_due = 0

    if cash_due == 0:
        return PaymentPlan(method=method, components=components)

    received = cash_due if cash_received_cents is None else cash_received_cents
    require_amount("cash_received_cents", received)
    if received < cash_due:
        raise InsufficientPaymentError(f"Cash received {received} is less than cash due {cash_due}")

    return PaymentPlan(
        method=method,
        components=components,
        cash_due_cents=cash_due,
        cash_received_cents=received,
        change_cents=received - cash_due,
    )


def _require_products(cart: list[CartLine]) -> None:
    ids = {line.product_id for line in cart}
    found = {pid for (pid,) in db.session.query(Product.id).filter(Product.id.in_(ids)).all()}
    missing = sorted(ids - found)
    if missing:
        raise CheckoutError(f"Products not found: {', '.join(str(pid) for pid in missing)}")


def _resolve_shift_id(cashier_id: str, shift_id: Optional[int], needs_cash: bool) -> Optional[int]:
    if shift_id is not None:
        shift = db.session.get(Shift, shift_id)
        if shift is None or not shift.is_active or shift.cashier_id != cashier_id:
            if needs_cash:
                raise NoActiveShiftError(f"Shift {shift_id} is not an active shift of cashier {cashier_id}")
            return None
        return shift.id

    active = get_active_shift(cashier_id)
    if active is None and needs_cash:
        raise NoActiveShiftError("Start a shift before taking cash")
    return active.id if active else None


# =============================================================================
# CHECKOUT
# =============================================================================

_STOCK_STATUS_BY_CODE = {
    None: StockStatus.DECREMENTED,
    INSUFFICIENT_STOCK: StockStatus.INSUFFICIENT_STOCK,
}


def complete_checkout(
    cashier_id: str,
    lines: Iterable,
    payment_method,
    *,
    shift_id: Optional[int] = None,
    cash_received_cents: Optional[int] = None,
    split: Optional[SplitAmounts] = None,
    expected_total_cents: Optional[int] = None,
) -> CheckoutResult:
    """
    Complete a sale.

    Raises (all before any write):
        EmptyCartError, CheckoutError: bad cart
        SplitMismatchError: split components do not sum to the total
        InsufficientPaymentError: cash received below cash due
        NoActiveShiftError: cash taken without an active shift
        InvalidAmountError: negative or oversized amounts

    Stock shortfalls do not raise; they come back in result.warnings.
    """
    if not cashier_id:
        raise CheckoutError("cashier_id is required")

    cart = normalize_cart(lines)
    total = sum(line.total_cents for line in cart)
    if expected_total_cents is not None and expected_total_cents != total:
        raise CheckoutError(f"Cart total {total} does not match expected total {expected_total_cents}")
    _require_products(cart)
    plan = plan_payment(total, payment_method, cash_received_cents, split)
    resolved_shift_id = _resolve_shift_id(cashier_id, shift_id, needs_cash=plan.cash_due_cents > 0)

    # Steps 2-4: one transaction
    def _op():
        shift = None
        if resolved_shift_id is not None:
            shift = lock_for_update(db.session.query(Shift).filter_by(id=resolved_shift_id)).first()
            if shift is None or not shift.is_active:
                if plan.cash_due_cents > 0:
                    raise NoActiveShiftError(f"Shift {resolved_shift_id} ended before the sale completed")
                shift = None

        sale = Sale(
            cashier_id=cashier_id,
            shift_id=shift.id if shift else None,
            total_cents=total,
            payment_method=plan.method,
            payment_status=PaymentStatus.COMPLETED,
            cash_received_cents=plan.cash_received_cents,
            change_cents=plan.change_cents,
            line_count=len(cart),
        )
        db.session.add(sale)
        db.session.flush()

        payments = []
        for tender, amount in plan.components:
            payment = PaymentTransaction(
                sale_id=sale.id,
                cashier_id=cashier_id,
                transaction_type="sale",
                payment_type=tender,
                amount_cents=amount,
            )
            db.session.add(payment)
            payments.append(payment)

        if plan.cash_due_cents > 0:
            append_entry(
                shift,
                CashTransactionType.SALE,
                plan.cash_due_cents,
                f"Sale #{sale.id}",
                actor_id=cashier_id,
                sale_id=sale.id,
            )
            if plan.change_cents > 0:
                append_entry(
                    shift,
                    CashTransactionType.CHANGE,
                    plan.change_cents,
                    f"Change for sale #{sale.id}",
                    actor_id=cashier_id,
                    sale_id=sale.id,
                )

        enqueue(JournalSource.SALE, sale.id)
        db.session.commit()
        return sale, payments

    sale, payments = run_with_retry(_op)
    logger.info(
        "sale %s completed by %s: %s cents via %s (change %s)",
        sale.id, cashier_id, total, plan.method.value, plan.change_cents,
    )

    result = CheckoutResult(sale=sale, payments=payments)

    # Step 5: line items, independently
    for line in cart:
        item, warning = _apply_line_item(sale.id, line)
        if item is not None:
            result.line_items.append(item)
        if warning is not None:
            result.warnings.append(warning)

    # Step 6
    try:
        daily_stats_service.record_sale(total)
    except (StoreUnavailableError, SQLAlchemyError):
        db.session.rollback()
        logger.exception("daily stats update failed for sale %s", sale.id)
        result.warnings.append({"error_code": "DAILY_STATS_FAILED", "message": "Daily totals not updated"})

    if sale.shift_id is not None:
        result.balance = publish_balance(sale.shift_id)

    # Step 8
    dispatch(JournalSource.SALE, sale.id)
    return result


def _apply_line_item(sale_id: int, line: CartLine) -> tuple[Optional[SaleLineItem], Optional[dict]]:
    """Insert one line item and decrement its stock in a transaction of its own."""

    def _op():
        item = SaleLineItem(
            sale_id=sale_id,
            product_id=line.product_id,
            quantity=line.quantity,
            unit_price_cents=line.unit_price_cents,
            total_price_cents=line.total_cents,
        )
        db.session.add(item)
        db.session.flush()
        stock = update_product_stock(line.product_id, -line.quantity, commit=False)
        item.stock_status = _STOCK_STATUS_BY_CODE.get(stock.error_code, StockStatus.FAILED)
        db.session.commit()
        return item, stock

    try:
        item, stock = run_with_retry(_op)
    except (StoreUnavailableError, SQLAlchemyError) as exc:
        db.session.rollback()
        logger.exception("line item for product %s on sale %s failed", line.product_id, sale_id)
        return _record_failed_line_item(sale_id, line), {
            "product_id": line.product_id,
            "quantity": line.quantity,
            "error_code": "STOCK_UPDATE_FAILED",
            "message": str(exc),
        }

    if stock.success:
        return item, None

    logger.warning("sale %s: product %s not decremented (%s)", sale_id, line.product_id, stock.error_code)
    return item, {
        "product_id": line.product_id,
        "quantity": line.quantity,
        "error_code": stock.error_code,
        "message": stock.error,
        "current_stock": stock.current_stock,
    }


def _record_failed_line_item(sale_id: int, line: CartLine) -> Optional[SaleLineItem]:
    item = SaleLineItem(
        sale_id=sale_id,
        product_id=line.product_id,
        quantity=line.quantity,
        unit_price_cents=line.unit_price_cents,
        total_price_cents=line.total_cents,
        stock_status=StockStatus.FAILED,
    )
    try:
        db.session.add(item)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("could not record failed line item for product %s on sale %s", line.product_id, sale_id)
        return None
    return item


def get_sale(sale_id: int) -> Optional[Sale]:
    return db.session.get(Sale, sale_id)
