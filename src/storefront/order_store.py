"""Order storage for storefront."""

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from ._jsonfile import JsonDocument
from .config import default_data_dir
from .errors import OrderNotFoundError, OrderVersionConflictError
from .models import Order, _utc_now, is_valid_id, parse_timestamp

logger = logging.getLogger(__name__)

ORDERS_FILE = "orders.json"


@dataclass
class OrderFilter:
    """Admin list filter. Empty fields don't filter."""

    q: str = ""  # customer email substring, or an exact order id
    status: str = ""
    stage: str = ""
    date_from: datetime | None = None  # inclusive, on createdAt
    date_to: datetime | None = None  # exclusive
    user_id: str | None = None

    def matches(self, order: Order) -> bool:
        if self.user_id is not None and order.user_id != self.user_id:
            return False
        if self.q:
            q = self.q.strip()
            email_hit = q.lower() in (order.customer.email or "").lower()
            id_hit = is_valid_id(q) and order.id == q
            if not (email_hit or id_hit):
                return False
        if self.status and order.status != self.status:
            return False
        if self.stage and order.stage != self.stage:
            return False
        if self.date_from or self.date_to:
            created = parse_timestamp(order.created_at)
            if created is None:
                return False
            if self.date_from and created < self.date_from:
                return False
            if self.date_to and created >= self.date_to:
                return False
        return True


class OrderStore:
    """
    Manages order documents.

    Saves use optimistic locking: an order carries the version it was read
    at, and saving fails if the stored copy has moved on since.
    """

    def __init__(self, config_dir: Path | None = None):
        """
        Initialize OrderStore.

        Args:
            config_dir: Override data directory (for testing).
        """
        self.config_dir = config_dir or default_data_dir()
        self._doc = JsonDocument(self.config_dir, ORDERS_FILE, "orders")

    @property
    def config_path(self) -> Path:
        return self._doc.path

    def create(self, order: Order) -> Order:
        """Persist a new order."""
        with self._doc.lock():
            data = self._doc.load()
            data["orders"].append(order.to_dict())
            self._doc.save(data)
        logger.info(
            "Order %s created: %d item(s), total %.2f %s",
            order.id,
            len(order.items),
            order.totals.total_base,
            order.totals.currency,
        )
        return order

    def get(self, order_id: str) -> Order:
        """
        Get an order by ID.

        Raises:
            OrderNotFoundError: If the order doesn't exist.
        """
        data = self._doc.load()
        for o in data["orders"]:
            if o["id"] == order_id:
                return Order.from_dict(o)
        raise OrderNotFoundError(order_id)

    def save(self, order: Order) -> Order:
        """
        Write back a modified order.

        Bumps the version and updatedAt on success.

        Raises:
            OrderNotFoundError: If the order doesn't exist.
            OrderVersionConflictError: If the stored version differs from
                the version the order was read at.
        """
        with self._doc.lock():
            data = self._doc.load()
            orders = data["orders"]
            for i, existing in enumerate(orders):
                if existing["id"] != order.id:
                    continue
                found = int(existing.get("version", 0))
                if found != order.version:
                    raise OrderVersionConflictError(order.id, order.version, found)
                order.version = found + 1
                order.updated_at = _utc_now()
                orders[i] = order.to_dict()
                self._doc.save(data)
                return order

        raise OrderNotFoundError(order.id)

    def list_orders(
        self,
        order_filter: OrderFilter | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[Order], int]:
        """
        List orders newest first.

        Returns:
            The requested page and the total number of matches.
        """
        order_filter = order_filter or OrderFilter()
        data = self._doc.load()
        matches = [Order.from_dict(o) for o in data["orders"]]
        matches = [o for o in matches if order_filter.matches(o)]
        matches.sort(key=lambda o: o.created_at, reverse=True)

        total = len(matches)
        start = (max(1, page) - 1) * limit
        return matches[start:start + limit], total

    def list_for_user(self, user_id: str, page: int = 1, limit: int = 20) -> tuple[list[Order], int]:
        return self.list_orders(OrderFilter(user_id=user_id), page=page, limit=limit)

    def find_for_tracking(self, order_id: str, email: str) -> Order:
        """
        Find an order by id and customer email (case-insensitive).

        Raises:
            OrderNotFoundError: If no order matches both.
        """
        order = self.get(order_id)
        if (order.customer.email or "").strip().lower() != email.strip().lower():
            raise OrderNotFoundError(order_id)
        return order
