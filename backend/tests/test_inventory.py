import pytest

from tillbook.extensions import db
from tillbook.models import Product
from tillbook.services import inventory_service
from tillbook.services.inventory_service import (
    INSUFFICIENT_STOCK, INVALID_QUANTITY, PRODUCT_NOT_FOUND, update_product_stock,
)
from tillbook.validation import ValidationError


def _stock(product_id):
    db.session.expire_all()
    return db.session.get(Product, product_id).stock_quantity


class TestUpdateProductStock:
    def test_decrement(self, make_product):
        product = make_product(stock_quantity=5)

        result = update_product_stock(product.id, -2)

        assert result.success
        assert result.current_stock == 3
        assert _stock(product.id) == 3

    def test_restock(self, make_product):
        product = make_product(stock_quantity=0)
        assert update_product_stock(product.id, 12).current_stock == 12

    def test_exact_remaining_quantity(self, make_product):
        product = make_product(stock_quantity=2)
        assert update_product_stock(product.id, -2).success
        assert _stock(product.id) == 0

    def test_insufficient_stock_leaves_quantity(self, make_product):
        product = make_product(stock_quantity=1)

        result = update_product_stock(product.id, -3)

        assert not result.success
        assert result.error_code == INSUFFICIENT_STOCK
        assert result.current_stock == 1
        assert _stock(product.id) == 1

    def test_unknown_product(self, db_session):
        result = update_product_stock(987654, -1)
        assert result.error_code == PRODUCT_NOT_FOUND
        assert result.current_stock is None

    @pytest.mark.parametrize("change", [0, True, 1.5])
    def test_invalid_quantity(self, make_product, change):
        product = make_product(stock_quantity=4)
        result = update_product_stock(product.id, change)
        assert result.error_code == INVALID_QUANTITY
        assert _stock(product.id) == 4

    def test_to_dict_only_reports_errors_on_failure(self, make_product):
        product = make_product(stock_quantity=1)
        assert update_product_stock(product.id, -1).to_dict() == {"success": True, "current_stock": 0}
        assert update_product_stock(product.id, -1).to_dict()["error_code"] == INSUFFICIENT_STOCK


class TestCreateProduct:
    def test_duplicate_sku(self, make_product):
        product = make_product()
        with pytest.raises(ValidationError):
            inventory_service.create_product(sku=product.sku, name="Other")

    def test_negative_values_rejected(self, db_session):
        with pytest.raises(ValidationError):
            inventory_service.create_product(sku="NEG", name="Neg", stock_quantity=-1)
