"""Order totals: line normalization and the frozen totals snapshot."""

from collections.abc import Iterable, Mapping
from typing import Any

from .coupons import demo_discount
from .config import DEFAULT_CURRENCY, DEFAULT_FLAT_TAX, default_demo_coupons
from .models import DemoCoupon, LineItem, Totals, _num

SHIPPING_BASE = 0.0  # free shipping on every path


def _round_money(value: float) -> float:
    return round(value, 2)


def build_line_items(raw_lines: Any) -> list[LineItem]:
    """
    Normalize checkout lines into priced, frozen line items.

    qty is at least 1, unit price is at least 0 (unitPriceBase, falling back
    to priceBase), and subtotalBase is computed here once.
    """
    if not isinstance(raw_lines, list):
        return []

    items: list[LineItem] = []
    for line in raw_lines:
        if not isinstance(line, Mapping):
            continue
        qty = max(1, int(_num(line.get("qty"), 1)))
        unit = max(0.0, _num(line.get("unitPriceBase"), _num(line.get("priceBase"))))
        product_id = line.get("productId")
        items.append(
            LineItem(
                product_id=str(product_id).strip() if product_id else None,
                slug=str(line.get("slug") or line.get("id") or ""),
                category=str(line.get("category") or ""),
                title=str(line.get("title") or "Untitled"),
                image=str(line.get("image") or ""),
                qty=qty,
                unit_price_base=unit,
                subtotal_base=_round_money(qty * unit),
            )
        )
    return items


def compute_totals(
    items: Iterable[LineItem],
    discount_code: str | None = None,
    *,
    coupons: Mapping[str, DemoCoupon] | None = None,
    flat_tax: float = DEFAULT_FLAT_TAX,
    currency: str = DEFAULT_CURRENCY,
) -> Totals:
    """
    Compute the totals snapshot stored on a new order.

    The discount comes from the demo coupon table; tax is a flat amount
    charged only on a non-empty subtotal. The total never goes below zero.
    """
    table = coupons if coupons is not None else default_demo_coupons()

    subtotal = _round_money(sum(_num(i.subtotal_base) for i in items))
    discount = 0.0
    if discount_code:
        discount = demo_discount(subtotal, discount_code, table).discount_base
    shipping = SHIPPING_BASE
    tax = flat_tax if subtotal > 0 else 0.0
    total = max(0.0, subtotal - discount + shipping + tax)

    return Totals(
        subtotal_base=subtotal,
        discount_base=_round_money(discount),
        shipping_base=shipping,
        tax_base=_round_money(tax),
        total_base=_round_money(total),
        currency=currency,
    )
