"""Order lifecycle: status and stage transitions with an append-only timeline.

``status`` is the coarse customer-facing state, ``stage`` the fulfillment
progress. They are set independently except that reaching the ``delivered``
stage always completes the order.

Every transition function mutates the order in memory and returns a
``Transition``; persisting is the caller's job. Two guards apply to all of
them:

- no-op: asking for the value the order already has changes nothing and
  appends nothing;
- de-dup: if the newest timeline entry already carries the same code and is
  younger than the window, the field is still set but no entry is appended.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from .errors import InvalidStageError, InvalidStatusError, UnsupportedUpdateError
from .models import Order, TimelineEntry, format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_IN_PROGRESS = "in progress"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"
ORDER_STATUSES = (STATUS_PENDING, STATUS_IN_PROGRESS, STATUS_COMPLETED, STATUS_CANCELLED)

STAGE_CREATED = "created"
STAGE_PACKAGING = "packaging"
STAGE_SHIPPED = "shipped"
STAGE_DELIVERED = "delivered"
ORDER_STAGES = (STAGE_CREATED, STAGE_PACKAGING, STAGE_SHIPPED, STAGE_DELIVERED)

STAGE_ALIASES = {"packing": STAGE_PACKAGING}

DEFAULT_DEDUP_WINDOW = timedelta(seconds=30)

STATUS_NOTES = {
    STATUS_PENDING: "Order marked Pending.",
    STATUS_IN_PROGRESS: "Order moved In Progress.",
    STATUS_COMPLETED: "Order marked Completed.",
    STATUS_CANCELLED: "Order has been Cancelled.",
}

STAGE_NOTES = {
    STAGE_CREATED: "Order has been created.",
    STAGE_PACKAGING: "Order is in Packaging.",
    STAGE_SHIPPED: "Order has been Shipped.",
    STAGE_DELIVERED: "Order has been Delivered.",
}

CUSTOMER_CANCEL_NOTE = "Order has been cancelled by customer."
CUSTOMER_DELIVERED_NOTE = "Order marked delivered by customer."


@dataclass(frozen=True)
class Transition:
    """What a transition did to an order."""

    field: str  # "status" or "stage"
    value: str
    changed: bool  # False for the no-op guard
    appended: bool  # False when no timeline entry was written


def normalize_status(value: Any) -> str:
    """
    Lower-case and validate a requested status.

    Raises:
        InvalidStatusError: If the value is not a known status.
    """
    status = str(value or "").strip().lower()
    if status not in ORDER_STATUSES:
        raise InvalidStatusError(status)
    return status


def normalize_stage(value: Any) -> str:
    """
    Lower-case, resolve aliases and validate a requested stage.

    Raises:
        InvalidStageError: If the value is not a known stage.
    """
    stage = str(value or "").strip().lower()
    stage = STAGE_ALIASES.get(stage, stage)
    if stage not in ORDER_STAGES:
        raise InvalidStageError(stage)
    return stage


def _now(now: datetime | None) -> datetime:
    return now or datetime.now(timezone.utc)


def is_recent_duplicate(
    order: Order, code: str, now: datetime, window: timedelta = DEFAULT_DEDUP_WINDOW
) -> bool:
    """True if the newest timeline entry has this code and is inside the window."""
    if not order.status_timeline:
        return False
    last = order.status_timeline[-1]
    if last.code != code:
        return False
    at = parse_timestamp(last.at)
    if at is None:
        return False
    return now - at < window


def _record(
    order: Order, code: str, note: str, now: datetime, window: timedelta
) -> bool:
    """Append a timeline entry unless it duplicates a recent one."""
    if is_recent_duplicate(order, code, now, window):
        logger.warning(
            "Order %s: suppressed duplicate timeline entry %r within %ss",
            order.id,
            code,
            int(window.total_seconds()),
        )
        return False
    order.status_timeline.append(
        TimelineEntry(code=code, note=note, at=format_timestamp(now))
    )
    return True


def set_status(
    order: Order,
    status: Any,
    now: datetime | None = None,
    window: timedelta = DEFAULT_DEDUP_WINDOW,
) -> Transition:
    """Set the order status directly (operator action)."""
    status = normalize_status(status)
    now = _now(now)

    if str(order.status).lower() == status:
        return Transition(field="status", value=status, changed=False, appended=False)

    order.status = status
    stamp = format_timestamp(now)
    if status == STATUS_COMPLETED:
        order.delivered_at = stamp
    if status == STATUS_CANCELLED:
        order.cancelled_at = stamp

    appended = _record(order, status, STATUS_NOTES[status], now, window)
    logger.info("Order %s: status -> %s", order.id, status)
    return Transition(field="status", value=status, changed=True, appended=appended)


def set_stage(
    order: Order,
    stage: Any,
    now: datetime | None = None,
    window: timedelta = DEFAULT_DEDUP_WINDOW,
) -> Transition:
    """Move the order to a fulfillment stage (operator action)."""
    stage = normalize_stage(stage)
    now = _now(now)

    if STAGE_ALIASES.get(str(order.stage).lower(), str(order.stage).lower()) == stage:
        return Transition(field="stage", value=stage, changed=False, appended=False)

    order.stage = stage
    stamp = format_timestamp(now)
    if stage == STAGE_SHIPPED:
        order.shipped_at = stamp
    if stage == STAGE_DELIVERED:
        order.delivered_at = stamp
        order.status = STATUS_COMPLETED

    appended = _record(order, stage, STAGE_NOTES[stage], now, window)
    logger.info("Order %s: stage -> %s", order.id, stage)
    return Transition(field="stage", value=stage, changed=True, appended=appended)


def cancel(
    order: Order,
    now: datetime | None = None,
    window: timedelta = DEFAULT_DEDUP_WINDOW,
) -> Transition:
    """Cancel the order on the customer's behalf."""
    now = _now(now)
    if order.status == STATUS_CANCELLED:
        return Transition(
            field="status", value=STATUS_CANCELLED, changed=False, appended=False
        )

    order.status = STATUS_CANCELLED
    order.cancelled_at = format_timestamp(now)
    appended = _record(order, STATUS_CANCELLED, CUSTOMER_CANCEL_NOTE, now, window)
    logger.info("Order %s: cancelled by customer", order.id)
    return Transition(
        field="status", value=STATUS_CANCELLED, changed=True, appended=appended
    )


def confirm_delivery(
    order: Order,
    now: datetime | None = None,
    window: timedelta = DEFAULT_DEDUP_WINDOW,
) -> Transition:
    """Customer confirms receipt: stage delivered, status completed."""
    now = _now(now)
    if order.stage == STAGE_DELIVERED and order.status == STATUS_COMPLETED:
        return Transition(
            field="stage", value=STAGE_DELIVERED, changed=False, appended=False
        )

    order.stage = STAGE_DELIVERED
    order.status = STATUS_COMPLETED
    order.delivered_at = format_timestamp(now)
    appended = _record(order, STAGE_DELIVERED, CUSTOMER_DELIVERED_NOTE, now, window)
    logger.info("Order %s: delivery confirmed by customer", order.id)
    return Transition(
        field="stage", value=STAGE_DELIVERED, changed=True, appended=appended
    )


def legacy_update(
    order: Order,
    status: Any,
    now: datetime | None = None,
    window: timedelta = DEFAULT_DEDUP_WINDOW,
) -> Transition:
    """
    Customer status update from older clients. Only cancellation is allowed.

    Raises:
        UnsupportedUpdateError: For any status other than "cancelled".
    """
    if str(status or "").strip().lower() != STATUS_CANCELLED:
        raise UnsupportedUpdateError(None if status is None else str(status))
    return cancel(order, now=now, window=window)


def initial_state(
    payment_method: str, now: datetime | None = None
) -> tuple[str, str, list[TimelineEntry]]:
    """
    Status, stage and seeded timeline for a freshly placed order.

    Cash on delivery starts pending; anything else counts as paid and starts
    in progress.
    """
    stamp = format_timestamp(_now(now))
    cod = payment_method == "cod"
    status = STATUS_PENDING if cod else STATUS_IN_PROGRESS
    timeline = [
        TimelineEntry(code="created", note="Order created", at=stamp),
        TimelineEntry(
            code="pending" if cod else "paid",
            note="Cash on delivery" if cod else "Demo payment",
            at=stamp,
        ),
    ]
    return status, STAGE_CREATED, timeline
