"""
Catalog service tests: product CRUD, options, size prices, stock guard.
"""

import pytest

from storedesk.extensions import db
from storedesk.models import Category, Color, InvoiceItem, Product, ProductSizePrice, SalesRecord, Size
from storedesk.services import catalog_service
from storedesk.services.catalog_service import (
    DEFAULT_COLORS,
    DEFAULT_SIZES,
    OUT_OF_STOCK_MESSAGE,
    CatalogError,
    OutOfStockError,
    select_product_for_invoice,
)
from storedesk.validation import ConflictError, ValidationError


class TestProducts:
    def test_create_with_relations(self, db_session, category, size_m, color_black):
        created = catalog_service.create_product({
            "name": "Linen shirt",
            "sku": "LIN-001",
            "price_cents": "2499",
            "cost_cents": 1200,
            "quantity_in_stock": 8,
            "category_id": category.id,
            "size_ids": [size_m.id],
            "color_ids": [color_black.id],
        })

        assert created["price_cents"] == 2499
        assert created["size_ids"] == [size_m.id]
        assert created["color_ids"] == [color_black.id]
        assert created["category_id"] == category.id

    def test_blank_sku_stored_as_null(self, db_session):
        created = catalog_service.create_product({"name": "No SKU", "sku": "", "price_cents": 100})
        assert created["sku"] is None

    def test_duplicate_sku(self, make_product):
        make_product(sku="DUP-1")
        with pytest.raises(ConflictError):
            catalog_service.create_product({"name": "Other", "sku": "DUP-1", "price_cents": 100})

    @pytest.mark.parametrize(
        "payload",
        [
            {"price_cents": 100},
            {"name": "X"},
            {"name": "X", "price_cents": -1},
            {"name": "X", "price_cents": 12.5},
            {"name": "X", "price_cents": 100, "quantity_in_stock": -1},
            {"name": "X", "price_cents": 100, "category_id": 999},
            {"name": "X", "price_cents": 100, "size_ids": [999]},
            {"name": "X", "price_cents": 100, "store_id": 1},
        ],
    )
    def test_invalid_create(self, db_session, payload):
        with pytest.raises(ValidationError):
            catalog_service.create_product(payload)

    def test_update(self, make_product):
        p = make_product(price_cents=1000)
        updated = catalog_service.update_product(p.id, {"price_cents": 1200, "quantity_in_stock": 0})

        assert updated["price_cents"] == 1200
        assert updated["quantity_in_stock"] == 0
        assert catalog_service.update_product(9999, {"name": "Ghost"}) is None

    def test_list_search_and_pagination(self, make_product, category):
        make_product(name="Blue denim", sku="DEN-1", category_id=category.id)
        make_product(name="Black denim", sku="DEN-2")
        make_product(name="Cotton tee", sku="TEE-1")

        assert catalog_service.list_products(q="denim")["count"] == 2
        assert catalog_service.list_products(q="tee-1")["count"] == 1
        assert catalog_service.list_products(category_id=category.id)["count"] == 1

        page = catalog_service.list_products(page=1, per_page=2)
        assert page["count"] == 2
        assert page["pagination"]["total"] == 3
        assert page["pagination"]["has_next"] is True

        assert catalog_service.list_products(per_page=-5)["pagination"]["per_page"] == 1

    def test_delete_keeps_history(self, make_product, make_invoice):
        p = make_product(name="Retired tee")
        invoice = make_invoice([(p, 1)])
        product_id = p.id

        assert catalog_service.delete_product(product_id) is True

        assert db.session.get(Product, product_id) is None
        item = db.session.query(InvoiceItem).filter_by(invoice_id=invoice.id).one()
        record = db.session.query(SalesRecord).filter_by(invoice_id=invoice.id).one()
        assert item.product_id is None and item.product_name == "Retired tee"
        assert record.product_id is None and record.product_name == "Retired tee"
        assert catalog_service.delete_product(product_id) is False


class TestOptions:
    def test_create_and_list_sizes_in_sort_order(self, db_session):
        catalog_service.create_option(Size, {"name": "L", "sort_order": 4})
        catalog_service.create_option(Size, {"name": "S", "sort_order": 2})

        assert [s["name"] for s in catalog_service.list_options(Size)] == ["S", "L"]

    def test_duplicate_name_case_insensitive(self, db_session):
        catalog_service.create_option(Category, {"name": "Kurtas"})
        with pytest.raises(ConflictError):
            catalog_service.create_option(Category, {"name": "kurtas"})

    def test_delete_category_unlinks_products(self, make_product, category):
        p = make_product(category_id=category.id)
        product_id = p.id

        assert catalog_service.delete_option(Category, category.id) is True

        assert db.session.get(Product, product_id).category_id is None

    def test_delete_size_removes_price_overrides(self, make_product, size_m):
        p = make_product()
        catalog_service.set_size_price(p.id, size_m.id, 1800)

        catalog_service.delete_option(Size, size_m.id)

        assert db.session.query(ProductSizePrice).count() == 0

    def test_seed_defaults_is_idempotent(self, db_session):
        first = catalog_service.seed_default_options()
        second = catalog_service.seed_default_options()

        assert first == {"sizes_added": len(DEFAULT_SIZES), "colors_added": len(DEFAULT_COLORS)}
        assert second == {"sizes_added": 0, "colors_added": 0}
        assert [s["name"] for s in catalog_service.list_options(Size)][:3] == ["XS", "S", "M"]
        assert db.session.query(Color).count() == len(DEFAULT_COLORS)


class TestSizePrices:
    def test_override_applies_on_selection(self, make_product, size_m):
        p = make_product(price_cents=1000)
        catalog_service.set_size_price(p.id, size_m.id, 1250)

        line = select_product_for_invoice(p.id, size_id=size_m.id, quantity=2)

        assert line["unit_price_cents"] == 1250
        assert line["total_price_cents"] == 2500
        assert line["size_name"] == "M"

    def test_update_existing_override(self, make_product, size_m):
        p = make_product()
        catalog_service.set_size_price(p.id, size_m.id, 1250)
        updated = catalog_service.set_size_price(p.id, size_m.id, 1300)

        assert updated["size_prices"] == [{"product_id": p.id, "size_id": size_m.id, "price_cents": 1300}]

    def test_remove_override(self, make_product, size_m):
        p = make_product(price_cents=1000)
        catalog_service.set_size_price(p.id, size_m.id, 1250)

        assert catalog_service.remove_size_price(p.id, size_m.id) is True
        assert catalog_service.remove_size_price(p.id, size_m.id) is False
        db.session.expire_all()
        assert select_product_for_invoice(p.id, size_id=size_m.id)["unit_price_cents"] == 1000


class TestStockGuard:
    def test_in_stock_returns_draft_line(self, make_product, color_black):
        p = make_product(name="Tee", price_cents=500, quantity_in_stock=1)

        line = select_product_for_invoice(p.id, color_id=color_black.id)

        assert line == {
            "product_id": p.id,
            "product_name": "Tee",
            "size_name": None,
            "color_name": "Black",
            "quantity": 1,
            "unit_price_cents": 500,
            "total_price_cents": 500,
            "quantity_in_stock": 1,
        }

    def test_zero_stock_rejected(self, make_product):
        p = make_product(name="Tee", quantity_in_stock=0)

        with pytest.raises(OutOfStockError) as exc_info:
            select_product_for_invoice(p.id)

        assert str(exc_info.value) == OUT_OF_STOCK_MESSAGE
        assert exc_info.value.description == "Tee is currently out of stock."
        assert db.session.query(InvoiceItem).count() == 0
        assert db.session.query(SalesRecord).count() == 0

    def test_out_of_stock_is_a_validation_error(self, make_product):
        p = make_product(quantity_in_stock=0)
        with pytest.raises(ValidationError):
            select_product_for_invoice(p.id)

    def test_unknown_product_size_color(self, make_product):
        p = make_product()
        with pytest.raises(CatalogError):
            select_product_for_invoice(9999)
        with pytest.raises(CatalogError):
            select_product_for_invoice(p.id, size_id=9999)
        with pytest.raises(CatalogError):
            select_product_for_invoice(p.id, color_id=9999)
