# Overview: Atomic stock counter updates for products.

"""
Inventory Stock Service

WHY: Two tills selling the last unit at the same moment must not both
succeed. Stock changes are a single conditional UPDATE; the database
decides, never a read-modify-write in Python.

    UPDATE products
       SET stock_quantity = stock_quantity + :change
     WHERE id = :product_id AND stock_quantity + :change >= 0
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select, update

from ..extensions import db
from ..models import Product
from tillbook.time_utils import utcnow
from tillbook.validation import ValidationError

logger = logging.getLogger(__name__)

INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"
PRODUCT_NOT_FOUND = "PRODUCT_NOT_FOUND"
INVALID_QUANTITY = "INVALID_QUANTITY"


@dataclass(frozen=True)
class StockUpdateResult:
    success: bool
    current_stock: Optional[int] = None
    error_code: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        data = {"success": self.success, "current_stock": self.current_stock}
        if not self.success:
            data["error_code"] = self.error_code
            data["error"] = self.error
        return data


def _current_stock(product_id: int) -> Optional[int]:
    return db.session.execute(
        select(Product.stock_quantity).where(Product.id == product_id)
    ).scalar_one_or_none()


def update_product_stock(product_id: int, quantity_change: int, *, commit: bool = True) -> StockUpdateResult:
    """
    Atomically apply a stock change (negative = sale, positive = restock).

    Never drives stock below zero: an oversized decrement leaves stock
    unchanged and returns INSUFFICIENT_STOCK with the current level.

    With commit=False the change joins the caller's transaction.
    """
    if not isinstance(quantity_change, int) or isinstance(quantity_change, bool) or quantity_change == 0:
        return StockUpdateResult(
            success=False,
            error_code=INVALID_QUANTITY,
            error="quantity_change must be a nonzero integer",
        )

    stmt = (
        update(Product)
        .where(Product.id == product_id)
        .where(Product.stock_quantity + quantity_change >= 0)
        .values(stock_quantity=Product.stock_quantity + quantity_change, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)

    if result.rowcount == 1:
        current = _current_stock(product_id)
        if commit:
            db.session.commit()
        logger.debug("stock product=%s change=%s now=%s", product_id, quantity_change, current)
        return StockUpdateResult(success=True, current_stock=current)

    current = _current_stock(product_id)
    if commit:
        db.session.commit()

    if current is None:
        return StockUpdateResult(
            success=False,
            error_code=PRODUCT_NOT_FOUND,
            error=f"Product {product_id} not found",
        )

    logger.info(
        "insufficient stock: product=%s requested=%s available=%s",
        product_id, -quantity_change, current,
    )
    return StockUpdateResult(
        success=False,
        current_stock=current,
        error_code=INSUFFICIENT_STOCK,
        error=f"Insufficient stock: requested {-quantity_change}, available {current}",
    )


def create_product(*, sku: str, name: str, price_cents: int = 0, cost_cents: int = 0, stock_quantity: int = 0) -> Product:
    if not sku or not sku.strip():
        raise ValidationError("sku is required")
    if not name or not name.strip():
        raise ValidationError("name is required")
    for key, value in (("price_cents", price_cents), ("cost_cents", cost_cents), ("stock_quantity", stock_quantity)):
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise ValidationError(f"{key} must be a non-negative integer")

    if db.session.query(Product).filter_by(sku=sku.strip()).first():
        raise ValidationError(f"SKU {sku} already exists")

    product = Product(
        sku=sku.strip(),
        name=name.strip(),
        price_cents=price_cents,
        cost_cents=cost_cents,
        stock_quantity=stock_quantity,
    )
    db.session.add(product)
    db.session.commit()
    return product


def get_product(product_id: int) -> Optional[Product]:
    return db.session.get(Product, product_id)
