"""Order operations: checkout, customer actions and operator transitions.

Each mutating operation reads the order, validates the caller, applies one
lifecycle transition and saves only if something changed. Saves are
version-checked, so a concurrent writer surfaces as a conflict instead of
being silently overwritten.
"""

import logging
import random
import re
import time
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from . import lifecycle
from .config import Settings
from .errors import ForbiddenError, InvalidIdError, OrderNotFoundError, ValidationFailedError
from .lifecycle import Transition
from .models import Address, Customer, Order, Payment, format_timestamp, is_valid_id
from .order_store import OrderFilter, OrderStore
from .permissions import ORDERS_UPDATE, ORDERS_VIEW, Actor, require_actor, require_staff
from .totals import build_line_items, compute_totals

logger = logging.getLogger(__name__)

MAX_LIMIT = 100
DEFAULT_LIMIT = 20

_CARD_SEPARATORS = re.compile(r"[\s-]")


def brand_from_number(number: Any) -> str:
    """Best-effort card brand from the number prefix, for display only."""
    s = _CARD_SEPARATORS.sub("", str(number or ""))
    if re.fullmatch(r"4\d{6,}", s):
        return "visa"
    if re.fullmatch(r"(5[1-5]|2[2-7])\d{4,}", s):
        return "mastercard"
    if re.fullmatch(r"3[47]\d{5,}", s):
        return "amex"
    return "card"


def build_payment(method: Any, card: Mapping[str, Any] | None, card_number: Any) -> Payment:
    """Payment metadata for the demo checkout. Keeps only the last four digits."""
    method = str(method or "demo")
    card = card or {}
    last4 = _CARD_SEPARATORS.sub("", str(card.get("last4") or card_number or ""))[-4:]
    return Payment(
        method=method,
        status="pending" if method == "cod" else "paid",
        brand=card.get("brand") or brand_from_number(card_number),
        last4=last4 or None,
        txn_id=f"DEMO-{int(time.time() * 1000)}-{random.randrange(1_000_000)}",
    )


def _address(raw: Any) -> Address:
    if isinstance(raw, Mapping):
        return Address.from_dict(raw)
    return Address(line1=str(raw or ""))


def clamp_page(page: Any) -> int:
    try:
        return max(1, int(page))
    except (TypeError, ValueError):
        return 1


def clamp_limit(limit: Any) -> int:
    try:
        return max(1, min(MAX_LIMIT, int(limit)))
    except (TypeError, ValueError):
        return DEFAULT_LIMIT


def _check_id(order_id: str) -> None:
    if not is_valid_id(order_id):
        raise InvalidIdError(order_id)


class OrderService:
    """Order use cases on top of an OrderStore."""

    def __init__(
        self,
        store: OrderStore,
        settings: Settings,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.settings = settings
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def dedup_window(self) -> timedelta:
        return timedelta(seconds=self.settings.dedup_window_seconds)

    # --- Checkout ---

    def checkout_demo(self, payload: Mapping[str, Any], user_id: str | None = None) -> Order:
        """
        Create an order from a demo checkout payload.

        Payload keys: lines, customer, paymentMethod, card, cardNumber, coupon
        (or totalsBase.coupon), shippingSameAsBilling, shippingAddress, notes.
        """
        now = self._clock()
        items = build_line_items(payload.get("lines"))

        totals_base = payload.get("totalsBase") or {}
        coupon = totals_base.get("coupon") if isinstance(totals_base, Mapping) else None
        totals = compute_totals(
            items,
            coupon or payload.get("coupon"),
            coupons=self.settings.demo_coupons,
            flat_tax=self.settings.flat_tax,
            currency=self.settings.currency,
        )

        customer_raw = payload.get("customer") or {}
        if not isinstance(customer_raw, Mapping):
            raise ValidationFailedError("customer must be an object")
        billing = _address(customer_raw.get("address"))
        same = payload.get("shippingSameAsBilling") is not False
        shipping = billing if same else _address(payload.get("shippingAddress") or billing.to_dict())

        payment = build_payment(
            payload.get("paymentMethod"), payload.get("card"), payload.get("cardNumber")
        )
        status, stage, timeline = lifecycle.initial_state(payment.method, now)

        order = Order.create(
            items=items,
            totals=totals,
            status=status,
            stage=stage,
            status_timeline=timeline,
            user_id=user_id,
            customer=Customer.from_dict(customer_raw),
            billing_address=billing,
            shipping_address=shipping,
            shipping_same_as_billing=same,
            payment=payment,
            notes=str(payload.get("notes") or ""),
            now=format_timestamp(now),
        )
        return self.store.create(order)

    # --- Customer reads ---

    def track(self, order_id: Any, email: Any) -> Order:
        """Guest lookup by order id plus the email used at checkout."""
        if not is_valid_id(order_id):
            raise InvalidIdError(order_id, "order id")
        email = str(email or "").strip()
        if not email:
            raise ValidationFailedError("Email required")
        return self.store.find_for_tracking(order_id, email)

    def list_own(self, actor: Actor | None, page: Any = 1, limit: Any = DEFAULT_LIMIT) -> tuple[list[Order], int, int, int]:
        actor = require_actor(actor)
        page, limit = clamp_page(page), clamp_limit(limit)
        orders, total = self.store.list_for_user(actor.user_id, page=page, limit=limit)
        return orders, total, page, limit

    def get_own(self, actor: Actor | None, order_id: str) -> Order:
        """Another customer's order reads as not found."""
        actor = require_actor(actor)
        _check_id(order_id)
        order = self.store.get(order_id)
        if order.user_id != actor.user_id:
            raise OrderNotFoundError(order_id)
        return order

    # --- Transitions ---

    def _load_owned(self, actor: Actor | None, order_id: str) -> Order:
        actor = require_actor(actor)
        _check_id(order_id)
        order = self.store.get(order_id)
        if order.user_id != actor.user_id:
            raise ForbiddenError("ownership")
        return order

    def _commit(self, order: Order, transition: Transition) -> Order:
        if not transition.changed:
            return order
        return self.store.save(order)

    def cancel(self, actor: Actor | None, order_id: str) -> Order:
        order = self._load_owned(actor, order_id)
        transition = lifecycle.cancel(order, now=self._clock(), window=self.dedup_window)
        return self._commit(order, transition)

    def confirm_delivery(self, actor: Actor | None, order_id: str) -> Order:
        order = self._load_owned(actor, order_id)
        transition = lifecycle.confirm_delivery(order, now=self._clock(), window=self.dedup_window)
        return self._commit(order, transition)

    def legacy_update(self, actor: Actor | None, order_id: str, status: Any) -> Order:
        order = self._load_owned(actor, order_id)
        transition = lifecycle.legacy_update(
            order, status, now=self._clock(), window=self.dedup_window
        )
        return self._commit(order, transition)

    def set_status(self, actor: Actor | None, order_id: str, status: Any) -> Order:
        require_staff(actor, ORDERS_UPDATE)
        return self.apply_status(order_id, status)

    def set_stage(self, actor: Actor | None, order_id: str, stage: Any) -> Order:
        require_staff(actor, ORDERS_UPDATE)
        return self.apply_stage(order_id, stage)

    def apply_status(self, order_id: str, status: Any) -> Order:
        """Operator status change without a caller check (CLI)."""
        _check_id(order_id)
        status = lifecycle.normalize_status(status)
        order = self.store.get(order_id)
        transition = lifecycle.set_status(order, status, now=self._clock(), window=self.dedup_window)
        return self._commit(order, transition)

    def apply_stage(self, order_id: str, stage: Any) -> Order:
        """Operator stage change without a caller check (CLI)."""
        _check_id(order_id)
        stage = lifecycle.normalize_stage(stage)
        order = self.store.get(order_id)
        transition = lifecycle.set_stage(order, stage, now=self._clock(), window=self.dedup_window)
        return self._commit(order, transition)

    # --- Admin reads ---

    def admin_list(
        self,
        actor: Actor | None,
        order_filter: OrderFilter,
        page: Any = 1,
        limit: Any = DEFAULT_LIMIT,
    ) -> tuple[list[Order], int, int, int]:
        require_staff(actor, *ORDERS_VIEW)
        page, limit = clamp_page(page), clamp_limit(limit)
        orders, total = self.store.list_orders(order_filter, page=page, limit=limit)
        return orders, total, page, limit

    def admin_export(self, actor: Actor | None, order_filter: OrderFilter) -> list[Order]:
        require_staff(actor, *ORDERS_VIEW)
        orders, _ = self.store.list_orders(order_filter, page=1, limit=10**9)
        return orders
