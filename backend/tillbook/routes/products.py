# Overview: Flask API routes for products and their stock counters.

# backend/tillbook/routes/products.py

from flask import Blueprint, jsonify, request

from ..decorators import error_response, require_actor
from ..services import inventory_service
from ..services.inventory_service import PRODUCT_NOT_FOUND
from tillbook.validation import coerce_int

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.post("")
@require_actor
def create_product_route():
    """
    Request body:
    {
        "sku": "SKU-001",
        "name": "Sugar 1kg",
        "price_cents": 17500,
        "cost_cents": 14000,
        "stock_quantity": 20
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        product = inventory_service.create_product(
            sku=data.get("sku") or "",
            name=data.get("name") or "",
            price_cents=coerce_int("price_cents", data.get("price_cents", 0)),
            cost_cents=coerce_int("cost_cents", data.get("cost_cents", 0)),
            stock_quantity=coerce_int("stock_quantity", data.get("stock_quantity", 0)),
        )
        return jsonify({"product": product.to_dict()}), 201
    except Exception as e:
        return error_response(e, action="create product")


@products_bp.get("/<int:product_id>")
@require_actor
def get_product_route(product_id: int):
    try:
        product = inventory_service.get_product(product_id)
        if product is None:
            return jsonify({"error": f"Product {product_id} not found"}), 404
        return jsonify({"product": product.to_dict()}), 200
    except Exception as e:
        return error_response(e, action="load product")


@products_bp.post("/<int:product_id>/stock")
@require_actor
def adjust_stock_route(product_id: int):
    """
    Apply a stock change (positive restock, negative write-off).

    Request body:
    {
        "quantity_change": 12
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        change = coerce_int("quantity_change", data.get("quantity_change"))
        result = inventory_service.update_product_stock(product_id, change)
        if result.success:
            return jsonify(result.to_dict()), 200
        status = 404 if result.error_code == PRODUCT_NOT_FOUND else 409
        return jsonify({**result.to_dict(), "error": result.error}), status
    except Exception as e:
        return error_response(e, action="adjust stock")
