"""Product master data: create/update/delete rules and stock routing."""

import pytest

from stockbook.extensions import db
from stockbook.models import AuditLog, StockTransaction
from stockbook.services import products_service, sales_service, stock_service
from stockbook.services.errors import InvalidQuantityError, ProductInUseError, ProductNotFoundError
from stockbook.validation import ConflictError


def _patch(**overrides):
    patch = {
        "sku": "KB-001",
        "name": "Mechanical Keyboard",
        "unit": "pcs",
        "category": "Peripherals",
        "base_price_cents": 50000000,
        "selling_price_cents": 65000000,
        "min_stock": 2,
    }
    patch.update(overrides)
    return patch


class TestCreateProduct:

    def test_initial_stock_becomes_opening_movement(self, db_session):
        product = products_service.create_product(patch=_patch(), initial_stock=7)

        assert product.current_stock == 7
        tx = db.session.query(StockTransaction).filter_by(product_id=product.id).one()
        assert tx.type == "in"
        assert tx.quantity == 7
        assert tx.reference == products_service.OPENING_STOCK_REFERENCE

    def test_zero_initial_stock_writes_no_movement(self, db_session):
        product = products_service.create_product(patch=_patch())
        assert product.current_stock == 0
        assert db.session.query(StockTransaction).count() == 0

    def test_negative_initial_stock_rejected(self, db_session):
        with pytest.raises(InvalidQuantityError):
            products_service.create_product(patch=_patch(), initial_stock=-3)

    def test_duplicate_sku_conflicts(self, db_session):
        products_service.create_product(patch=_patch())
        with pytest.raises(ConflictError):
            products_service.create_product(patch=_patch(name="Another"))


class TestUpdateProduct:

    def test_metadata_edit_never_touches_stock(self, make_product):
        product = make_product(stock=5)
        updated = products_service.update_product(
            product_id=product.id,
            patch={"name": "Renamed", "selling_price_cents": 99000, "current_stock": 1000},
        )
        assert updated.name == "Renamed"
        assert updated.selling_price_cents == 99000
        assert updated.current_stock == 5

    def test_counted_stock_goes_through_correction(self, make_product):
        product = make_product(stock=5)
        products_service.update_product(product_id=product.id, patch={"min_stock": 1}, counted_stock=9)

        assert stock_service.get_current_stock(product.id) == 9
        correction = stock_service.list_transactions(
            product_id=product.id, reference=stock_service.CORRECTION_REFERENCE
        )
        assert len(correction) == 1
        assert correction[0].type == "in" and correction[0].quantity == 4
        assert stock_service.reconcile_product(product.id)["is_consistent"] is True

    def test_sku_change_to_existing_conflicts(self, make_product):
        make_product(sku="TAKEN-1")
        product = make_product(sku="FREE-1")
        with pytest.raises(ConflictError):
            products_service.update_product(product_id=product.id, patch={"sku": "TAKEN-1"})

    def test_update_is_audited_with_before_and_after(self, make_product):
        product = make_product(name="Old name")
        products_service.update_product(product_id=product.id, patch={"name": "New name"})

        entry = db.session.query(AuditLog).filter_by(action="product.update").one()
        assert entry.before["name"] == "Old name"
        assert entry.after["name"] == "New name"

    def test_unknown_product(self, db_session):
        with pytest.raises(ProductNotFoundError):
            products_service.update_product(product_id=404, patch={"name": "x"})


class TestDeleteProduct:

    def test_delete_cascades_movements(self, make_product):
        product = make_product(stock=3)
        stock_service.record_movement(product.id, "out", 1)
        product_id = product.id

        products_service.delete_product(product_id=product_id)

        assert db.session.query(StockTransaction).filter_by(product_id=product_id).count() == 0
        with pytest.raises(ProductNotFoundError):
            stock_service.get_product(product_id)

    def test_delete_restricted_when_sold(self, make_product):
        product = make_product(stock=3)
        sales_service.create_sale([{"product_id": product.id, "quantity": 1}])

        with pytest.raises(ProductInUseError):
            products_service.delete_product(product_id=product.id)
        assert stock_service.get_current_stock(product.id) == 2


class TestListProducts:

    def test_search_category_and_low_stock(self, make_product):
        make_product(sku="MOUSE-1", name="Wireless Mouse", stock=1, min_stock=3, category="Peripherals")
        make_product(sku="CABLE-1", name="HDMI Cable", stock=50, min_stock=5, category="Cables")

        assert [p["sku"] for p in products_service.list_products(search="mouse")["items"]] == ["MOUSE-1"]
        assert [p["sku"] for p in products_service.list_products(search="cable-")["items"]] == ["CABLE-1"]
        assert [p["sku"] for p in products_service.list_products(category="Cables")["items"]] == ["CABLE-1"]

        low = products_service.list_products(low_stock=True)
        assert low["count"] == 1
        assert low["items"][0]["is_low_stock"] is True

    def test_pagination(self, make_product):
        for i in range(5):
            make_product(name=f"Item {i}")

        page = products_service.list_products(page=2, per_page=2)
        assert page["count"] == 2
        assert page["pagination"]["total"] == 5
        assert page["pagination"]["total_pages"] == 3
        assert page["pagination"]["has_next"] is True
        assert page["pagination"]["has_prev"] is True

    def test_list_categories(self, make_product):
        make_product(category="B")
        make_product(category="A")
        make_product(category="A")
        make_product()
        assert products_service.list_categories() == ["A", "B"]
