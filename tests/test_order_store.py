"""Tests for OrderStore and CatalogStore."""

import json
from datetime import timedelta

import pytest

from storefront.catalog import CatalogStore
from storefront.errors import (
    InvalidSchemaVersionError,
    OrderNotFoundError,
    OrderVersionConflictError,
    ProductNotFoundError,
    ValidationFailedError,
)
from storefront.models import Order
from storefront.order_store import OrderFilter, OrderStore

from .conftest import NOW, make_order, make_product


class TestOrderStore:
    def test_empty_store(self, order_store):
        orders, total = order_store.list_orders()
        assert orders == []
        assert total == 0

    def test_create_and_get(self, order_store):
        order = order_store.create(make_order())

        loaded = order_store.get(order.id)
        assert loaded.id == order.id
        assert loaded.items[0].title == "Keyboard"
        assert loaded.totals.total_base == 141.99
        assert loaded.version == 0
        assert order_store.config_path.exists()

    def test_file_layout(self, order_store):
        order = order_store.create(make_order())
        data = json.loads(order_store.config_path.read_text())
        assert data["schema_version"] == 1
        assert data["orders"][0]["id"] == order.id
        assert data["orders"][0]["statusTimeline"][0]["code"] == "created"

    def test_get_missing(self, order_store):
        with pytest.raises(OrderNotFoundError):
            order_store.get("00000000-0000-4000-8000-000000000000")

    def test_save_bumps_version(self, order_store):
        order = order_store.create(make_order())
        order.notes = "leave at the door"

        saved = order_store.save(order)

        assert saved.version == 1
        reloaded = order_store.get(order.id)
        assert reloaded.notes == "leave at the door"
        assert reloaded.version == 1

    def test_stale_save_conflicts(self, order_store):
        order = order_store.create(make_order())
        first = order_store.get(order.id)
        second = order_store.get(order.id)

        first.status = "cancelled"
        order_store.save(first)

        second.status = "completed"
        with pytest.raises(OrderVersionConflictError) as exc_info:
            order_store.save(second)

        assert exc_info.value.expected == 0
        assert exc_info.value.found == 1
        assert order_store.get(order.id).status == "cancelled"

    def test_save_missing_order(self, order_store):
        with pytest.raises(OrderNotFoundError):
            order_store.save(make_order())

    def test_unsupported_schema_version(self, order_store, temp_dir):
        (temp_dir / "orders.json").write_text(json.dumps({"schema_version": 99, "orders": []}))
        with pytest.raises(InvalidSchemaVersionError):
            order_store.list_orders()

    def test_list_newest_first_with_pagination(self, order_store):
        ids = []
        for i in range(5):
            order = order_store.create(make_order(created_at=NOW + timedelta(minutes=i)))
            ids.append(order.id)

        page1, total = order_store.list_orders(page=1, limit=2)
        page3, _ = order_store.list_orders(page=3, limit=2)

        assert total == 5
        assert [o.id for o in page1] == [ids[4], ids[3]]
        assert [o.id for o in page3] == [ids[0]]

    def test_list_for_user(self, order_store):
        mine = order_store.create(make_order(user_id="user-1"))
        order_store.create(make_order(user_id="user-2"))

        orders, total = order_store.list_for_user("user-1")
        assert total == 1
        assert orders[0].id == mine.id

    def test_find_for_tracking_ignores_email_case(self, order_store):
        order = order_store.create(make_order(email="Jane@Example.com"))
        found = order_store.find_for_tracking(order.id, "  jane@example.COM ")
        assert found.id == order.id

    def test_find_for_tracking_wrong_email(self, order_store):
        order = order_store.create(make_order())
        with pytest.raises(OrderNotFoundError):
            order_store.find_for_tracking(order.id, "someone@else.com")


class TestOrderFilter:
    def _order(self, **kwargs) -> Order:
        return make_order(**kwargs)

    def test_empty_filter_matches(self):
        assert OrderFilter().matches(self._order())

    def test_q_matches_email_substring(self):
        order = self._order(email="jane@example.com")
        assert OrderFilter(q="EXAMPLE").matches(order)
        assert not OrderFilter(q="acme").matches(order)

    def test_q_matches_exact_order_id(self):
        order = self._order()
        assert OrderFilter(q=order.id).matches(order)
        assert not OrderFilter(q=order.id[:8]).matches(order)

    def test_status_and_stage(self):
        order = self._order()
        assert OrderFilter(status="in progress", stage="created").matches(order)
        assert not OrderFilter(status="pending").matches(order)
        assert not OrderFilter(stage="shipped").matches(order)

    def test_date_range_is_half_open(self):
        order = self._order(created_at=NOW)
        assert OrderFilter(date_from=NOW).matches(order)
        assert not OrderFilter(date_to=NOW).matches(order)
        assert OrderFilter(date_to=NOW + timedelta(seconds=1)).matches(order)
        assert not OrderFilter(date_from=NOW + timedelta(days=1)).matches(order)

    def test_user_id(self):
        order = self._order(user_id="user-1")
        assert OrderFilter(user_id="user-1").matches(order)
        assert not OrderFilter(user_id="user-2").matches(order)


class TestCatalogStore:
    def test_upsert_and_get_by_id_or_slug(self, catalog):
        catalog.upsert_product(make_product("kb-1", "SAVE10"))

        assert catalog.get_product("kb-1").coupon.code == "SAVE10"
        product = catalog.list_products()[0]
        product.slug = "mech-keyboard"
        catalog.upsert_product(product)

        assert len(catalog.list_products()) == 1
        assert catalog.get_product("mech-keyboard").id == "kb-1"

    def test_get_missing_product(self, catalog):
        with pytest.raises(ProductNotFoundError):
            catalog.get_product("nope")

    def test_upsert_keeps_created_at(self, catalog):
        first = catalog.upsert_product(make_product("kb-1"))
        created = catalog.get_product("kb-1").created_at

        first.title = "Renamed"
        first.created_at = "2000-01-01T00:00:00Z"
        catalog.upsert_product(first)

        product = catalog.get_product("kb-1")
        assert product.title == "Renamed"
        assert product.created_at == created

    def test_find_coupon_products(self, catalog):
        catalog.upsert_product(make_product("p1", "save10"))
        catalog.upsert_product(make_product("p2", "SAVE10", active=False))
        catalog.upsert_product(make_product("p3", "SAVE10", published=False))
        catalog.upsert_product(make_product("p4", "OTHER"))
        catalog.upsert_product(make_product("p5", "SAVE10"))

        found = catalog.find_coupon_products(" Save10 ", NOW)
        assert [p.id for p in found] == ["p1", "p5"]

    def test_import_list(self, catalog, temp_dir):
        path = temp_dir / "products-in.json"
        path.write_text(json.dumps([
            {"id": "p1", "slug": "mouse", "title": "Mouse", "priceBase": 25},
            {
                "id": "p2",
                "slug": "headset",
                "title": "Headset",
                "priceBase": 80,
                "coupon": {"code": "audio5", "type": "fixed", "amount": 5, "active": True},
            },
        ]))

        imported = catalog.import_products(path)

        assert [p.id for p in imported] == ["p1", "p2"]
        assert catalog.get_product("headset").coupon.code == "AUDIO5"

    def test_reimport_without_ids_keeps_slugs_unique(self, catalog, temp_dir):
        path = temp_dir / "products-in.json"
        path.write_text(json.dumps([{"slug": "mouse", "title": "Mouse", "priceBase": 25}]))

        first = catalog.import_products(path)
        path.write_text(json.dumps([{"slug": "mouse", "title": "Mouse v2", "priceBase": 30}]))
        second = catalog.import_products(path)

        products = catalog.list_products()
        assert len(products) == 1
        assert products[0].title == "Mouse v2"
        assert second[0].id == first[0].id == products[0].id

    def test_import_wrapped_object(self, catalog, temp_dir):
        path = temp_dir / "products-in.json"
        path.write_text(json.dumps({"products": [{"id": "p1", "slug": "mouse", "title": "Mouse"}]}))
        assert len(catalog.import_products(path)) == 1

    @pytest.mark.parametrize("content", ["not json", '{"products": 3}', '"string"'])
    def test_import_rejects_bad_files(self, catalog, temp_dir, content):
        path = temp_dir / "products-in.json"
        path.write_text(content)
        with pytest.raises(ValidationFailedError):
            catalog.import_products(path)

    def test_separate_instances_share_files(self, temp_dir):
        CatalogStore(temp_dir).upsert_product(make_product("p1"))
        assert CatalogStore(temp_dir).get_product("p1").id == "p1"
        assert OrderStore(temp_dir).list_orders() == ([], 0)
