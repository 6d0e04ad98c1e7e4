"""Pytest fixtures for storefront tests."""

import tempfile
from datetime import datetime, timezone
from pathlib import Path

import pytest

from storefront import lifecycle
from storefront.catalog import CatalogStore
from storefront.config import Settings
from storefront.models import Customer, LineItem, Order, Product, ProductCoupon, Totals
from storefront.order_store import OrderStore
from storefront.orders import OrderService

NOW = datetime(2026, 10, 17, 12, 0, 0, tzinfo=timezone.utc)

CUSTOMER_HEADERS = {"X-User-Id": "user-1"}
OTHER_CUSTOMER_HEADERS = {"X-User-Id": "user-2"}
ADMIN_HEADERS = {"X-User-Id": "admin-1", "X-User-Role": "admin"}
MANAGER_HEADERS = {"X-User-Id": "manager-1", "X-User-Role": "manager"}


@pytest.fixture
def temp_dir():
    """Create a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def settings(temp_dir):
    return Settings(data_dir=temp_dir)


@pytest.fixture
def order_store(temp_dir):
    return OrderStore(temp_dir)


@pytest.fixture
def catalog(temp_dir):
    return CatalogStore(temp_dir)


@pytest.fixture
def order_service(order_store, settings):
    return OrderService(order_store, settings, clock=lambda: NOW)


@pytest.fixture
def api_client(temp_dir, monkeypatch):
    """Create test client backed by a temporary data directory."""
    monkeypatch.setenv("STOREFRONT_DATA_DIR", str(temp_dir))
    monkeypatch.delenv("STOREFRONT_DEMO_COUPONS", raising=False)

    from fastapi.testclient import TestClient
    from storefront.api import app

    return TestClient(app)


def make_product(
    product_id: str,
    code: str | None = None,
    coupon_type: str = "percent",
    amount: float = 10,
    min_subtotal: float = 0,
    active: bool = True,
    expires_at: str | None = None,
    published: bool = True,
    price: float = 50,
) -> Product:
    """Build a product, optionally carrying an embedded coupon."""
    coupon = None
    if code is not None:
        coupon = ProductCoupon(
            code=code,
            type=coupon_type,
            amount=amount,
            min_subtotal=min_subtotal,
            active=active,
            expires_at=expires_at,
        )
    return Product(
        id=product_id,
        slug=product_id,
        title=f"Product {product_id}",
        price_base=price,
        published=published,
        coupon=coupon,
    )


def make_order(
    user_id: str | None = "user-1",
    payment_method: str = "card",
    email: str = "jane@example.com",
    created_at: datetime = NOW,
) -> Order:
    """Build an order in its freshly-checked-out state."""
    status, stage, timeline = lifecycle.initial_state(payment_method, created_at)
    stamp = created_at.isoformat().replace("+00:00", "Z")
    return Order.create(
        items=[
            LineItem(title="Keyboard", qty=2, unit_price_base=40, subtotal_base=80, product_id="p-1"),
        ],
        totals=Totals(
            subtotal_base=80, discount_base=0, shipping_base=0, tax_base=61.99, total_base=141.99
        ),
        status=status,
        stage=stage,
        status_timeline=timeline,
        user_id=user_id,
        customer=Customer(first_name="Jane", last_name="Doe", email=email),
        now=stamp,
    )
