"""Tests for OrderService use cases and payment helpers."""

import pytest

from storefront.errors import (
    AuthenticationRequiredError,
    ForbiddenError,
    InvalidIdError,
    OrderNotFoundError,
    OrderVersionConflictError,
    ValidationFailedError,
)
from storefront.export import CSV_HEADER, csv_filename, orders_to_csv
from storefront.orders import brand_from_number, build_payment, clamp_limit, clamp_page
from storefront.permissions import Actor

from .conftest import NOW, make_order

CUSTOMER = Actor(user_id="user-1")
ADMIN = Actor.from_headers("admin-1", "admin")


class TestPaymentHelpers:
    @pytest.mark.parametrize(
        "number,brand",
        [
            ("4242 4242 4242 4242", "visa"),
            ("5555-5555-5555-4444", "mastercard"),
            ("2223003122003222", "mastercard"),
            ("378282246310005", "amex"),
            ("6011111111111117", "card"),
            (None, "card"),
        ],
    )
    def test_brand_from_number(self, number, brand):
        assert brand_from_number(number) == brand

    def test_keeps_only_last4(self):
        payment = build_payment("card", None, "4242 4242 4242 1881")
        assert payment.last4 == "1881"
        assert payment.brand == "visa"
        assert payment.status == "paid"
        assert "4242424242421881" not in str(payment.to_dict())

    def test_cod_is_pending(self):
        payment = build_payment("cod", None, None)
        assert payment.status == "pending"
        assert payment.last4 is None

    def test_clamps(self):
        assert clamp_page("x") == 1
        assert clamp_page(-3) == 1
        assert clamp_limit(0) == 1
        assert clamp_limit(1000) == 100
        assert clamp_limit(None) == 20


class TestCheckout:
    def test_checkout_persists_order(self, order_service):
        order = order_service.checkout_demo(
            {
                "lines": [{"title": "Headset", "qty": 1, "unitPriceBase": 80}],
                "customer": {"firstName": "Jane", "email": "jane@example.com"},
                "paymentMethod": "card",
                "coupon": "SAVE24",
            },
            user_id="user-1",
        )

        stored = order_service.store.get(order.id)
        assert stored.totals.total_base == pytest.approx(117.99)
        assert stored.created_at == "2026-10-17T12:00:00Z"
        assert stored.user_id == "user-1"

    def test_customer_must_be_object(self, order_service):
        with pytest.raises(ValidationFailedError):
            order_service.checkout_demo({"lines": [], "customer": "jane"})


class TestServiceGuards:
    def test_track_validates_input(self, order_service):
        with pytest.raises(InvalidIdError):
            order_service.track("abc", "jane@example.com")
        order = order_service.store.create(make_order())
        with pytest.raises(ValidationFailedError):
            order_service.track(order.id, "  ")

    def test_customer_actions_need_identity(self, order_service):
        order = order_service.store.create(make_order())
        with pytest.raises(AuthenticationRequiredError):
            order_service.cancel(None, order.id)

    def test_cancel_requires_ownership(self, order_service):
        order = order_service.store.create(make_order(user_id="user-2"))
        with pytest.raises(ForbiddenError):
            order_service.cancel(CUSTOMER, order.id)

    def test_get_own_hides_other_orders(self, order_service):
        order = order_service.store.create(make_order(user_id="user-2"))
        with pytest.raises(OrderNotFoundError):
            order_service.get_own(CUSTOMER, order.id)

    def test_operator_checks_id_before_value(self, order_service):
        with pytest.raises(InvalidIdError):
            order_service.set_status(ADMIN, "nope", "bogus")

    def test_noop_does_not_save(self, order_service):
        order = order_service.store.create(make_order())
        result = order_service.set_stage(ADMIN, order.id, "created")
        assert result.version == 0
        assert order_service.store.get(order.id).version == 0

    def test_concurrent_writer_conflicts(self, order_service, order_store):
        order = order_store.create(make_order())
        stale = order_store.get(order.id)

        order_service.set_stage(ADMIN, order.id, "shipped")

        stale.notes = "edited elsewhere"
        with pytest.raises(OrderVersionConflictError):
            order_store.save(stale)

    def test_dedup_window_comes_from_settings(self, order_service):
        order_service.settings.dedup_window_seconds = 5
        assert order_service.dedup_window.total_seconds() == 5


class TestExport:
    def test_csv_quotes_when_needed(self):
        order = make_order()
        order.items[0].title = 'Keyboard, "mechanical"'
        text = orders_to_csv([order])

        lines = text.splitlines()
        assert lines[0] == ",".join(CSV_HEADER)
        assert '"Keyboard, ""mechanical"""' in lines[1]

    def test_filename(self):
        assert csv_filename(NOW) == "orders-2026-10-17.csv"
