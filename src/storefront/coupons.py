"""Coupon evaluation.

Two evaluators live here:

- ``evaluate`` applies per-product coupons: a code is advertised by one or
  more catalog products and discounts only the cart lines for those products.
- ``demo_discount`` applies the flat demo coupon table used by the demo
  checkout, with no product scoping and no validity windows.

Both return a ``CouponResult``. An unusable coupon is a normal outcome
(``ok=False`` plus a ``ReasonCode``), not an exception.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable

from .models import DemoCoupon, Product, normalize_code

if TYPE_CHECKING:
    from .catalog import CatalogStore

logger = logging.getLogger(__name__)


class ReasonCode(str, Enum):
    """Why a coupon did not apply. Values are stable, the UI keys on them."""

    EMPTY = "EMPTY"
    NOT_FOUND = "NOT_FOUND"
    NO_ELIGIBLE_LINES = "NO_ELIGIBLE_LINES"
    MIN_NOT_MET = "MIN_NOT_MET"


@dataclass(frozen=True)
class CouponSummary:
    code: str
    type: str
    amount: float
    scope: str
    eligible_subtotal: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "type": self.type,
            "amount": self.amount,
            "scope": self.scope,
            "eligibleSubtotal": self.eligible_subtotal,
        }


@dataclass(frozen=True)
class CouponResult:
    """Outcome of a coupon evaluation."""

    ok: bool
    discount_base: float = 0
    reason: ReasonCode | None = None
    coupon: CouponSummary | None = None

    @classmethod
    def fail(cls, reason: ReasonCode) -> "CouponResult":
        return cls(ok=False, discount_base=0, reason=reason)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"ok": self.ok, "discountBase": self.discount_base}
        if self.reason is not None:
            result["reason"] = self.reason.value
        if self.coupon is not None:
            result["coupon"] = self.coupon.to_dict()
        return result


def is_eligible_product(product: Product, code: str, now: datetime) -> bool:
    """True if the product is published and advertises a live coupon with this code."""
    coupon = product.coupon
    return (
        product.published
        and coupon is not None
        and coupon.code == code
        and coupon.is_live(now)
    )


def _finite(value: Any, default: float) -> float | None:
    """Missing -> default; present but unusable -> None."""
    if value is None:
        return default
    if isinstance(value, bool):
        return float(value)
    try:
        n = float(value)
    except (TypeError, ValueError):
        return None
    return n if math.isfinite(n) else None


def eligible_subtotal(lines: Iterable[Mapping[str, Any]], eligible_ids: set[str]) -> float:
    """Sum price * qty over lines for eligible products, skipping unusable lines."""
    total = 0.0
    for line in lines:
        if not isinstance(line, Mapping):
            continue
        pid = str(line.get("productId") or "")
        if pid not in eligible_ids:
            continue
        price = _finite(line.get("priceBase"), 0.0)
        qty = _finite(line.get("qty"), 1.0)
        if price is None or qty is None:
            continue
        total += price * max(1.0, qty)
    return total


def compute_discount(coupon_type: str, amount: float, subtotal: float) -> float:
    """Fixed coupons cap at the subtotal, percent coupons floor to whole units."""
    amount = max(0.0, amount)
    if coupon_type == "fixed":
        discount = min(amount, subtotal)
    else:
        discount = math.floor(subtotal * amount / 100)
    return max(0, discount)


def evaluate(
    code: Any,
    lines: Iterable[Mapping[str, Any]],
    products: Iterable[Product],
    now: datetime,
) -> CouponResult:
    """
    Evaluate a per-product coupon against cart lines.

    Args:
        code: Coupon code as typed by the customer.
        lines: Cart lines with productId, qty and priceBase.
        products: Catalog products to search, in catalog order.
        now: Evaluation time for expiry checks.

    When several products share a code, terms are read from the first
    eligible one in catalog order.
    """
    normalized = normalize_code(code)
    if not normalized:
        return CouponResult.fail(ReasonCode.EMPTY)

    eligible = [p for p in products if is_eligible_product(p, normalized, now)]
    if not eligible:
        return CouponResult.fail(ReasonCode.NOT_FOUND)

    subtotal = eligible_subtotal(lines, {p.id for p in eligible})
    if subtotal <= 0:
        return CouponResult.fail(ReasonCode.NO_ELIGIBLE_LINES)

    terms = eligible[0].coupon  # non-None, guaranteed by is_eligible_product
    conflicting = [p.id for p in eligible[1:] if p.coupon and p.coupon.terms() != terms.terms()]
    if conflicting:
        logger.warning(
            "Coupon %s has conflicting terms on products %s; using terms from %s",
            normalized,
            ", ".join(conflicting),
            eligible[0].id,
        )

    if subtotal < terms.min_subtotal:
        return CouponResult.fail(ReasonCode.MIN_NOT_MET)

    discount = compute_discount(terms.type, terms.amount, subtotal)
    return CouponResult(
        ok=True,
        discount_base=discount,
        coupon=CouponSummary(
            code=normalized,
            type=terms.type,
            amount=terms.amount,
            scope="per-product",
            eligible_subtotal=subtotal,
        ),
    )


def demo_discount(
    subtotal: float, code: Any, table: Mapping[str, DemoCoupon]
) -> CouponResult:
    """Apply the demo coupon table to a whole-cart subtotal."""
    normalized = normalize_code(code)
    if not normalized:
        return CouponResult.fail(ReasonCode.EMPTY)
    entry = table.get(normalized)
    if entry is None:
        return CouponResult.fail(ReasonCode.NOT_FOUND)

    if entry.type == "fixed":
        discount = max(0.0, min(entry.amount, subtotal))
    else:
        discount = max(0, math.floor(subtotal * entry.amount / 100))
    return CouponResult(
        ok=True,
        discount_base=discount,
        coupon=CouponSummary(
            code=normalized,
            type=entry.type,
            amount=entry.amount,
            scope="cart",
            eligible_subtotal=subtotal,
        ),
    )


def _utc_clock() -> datetime:
    return datetime.now(timezone.utc)


class CouponEvaluator:
    """Evaluates per-product coupons against the current catalog."""

    def __init__(
        self,
        catalog: "CatalogStore",
        clock: Callable[[], datetime] | None = None,
    ):
        self.catalog = catalog
        self._clock = clock or _utc_clock

    def validate(self, code: Any, lines: Iterable[Mapping[str, Any]]) -> CouponResult:
        normalized = normalize_code(code)
        if not normalized:
            return CouponResult.fail(ReasonCode.EMPTY)
        now = self._clock()
        products = self.catalog.find_coupon_products(normalized, now)
        result = evaluate(normalized, list(lines), products, now)
        logger.info(
            "Coupon %s evaluated: ok=%s reason=%s discount=%s",
            normalized,
            result.ok,
            result.reason.value if result.reason else None,
            result.discount_base,
        )
        return result
