"""CSV export of orders for the admin panel."""

import csv
import io
from collections.abc import Iterable
from datetime import datetime

from .models import Order

CSV_HEADER = (
    "OrderID",
    "CreatedAt",
    "UpdatedAt",
    "CustomerName",
    "CustomerEmail",
    "ItemsCount",
    "ItemTitles",
    "SubtotalUSD",
    "DiscountUSD",
    "TaxUSD",
    "TotalUSD",
    "PaymentMethod",
    "PaymentStatus",
    "PaymentBrand",
    "PaymentLast4",
    "TxnId",
    "Status",
    "Stage",
)


def order_row(order: Order) -> list[object]:
    titles = " | ".join(i.title for i in order.items if i.title)
    return [
        order.id,
        order.created_at,
        order.updated_at,
        order.customer.full_name,
        order.customer.email,
        len(order.items),
        titles,
        order.totals.subtotal_base,
        order.totals.discount_base,
        order.totals.tax_base,
        order.totals.total_base,
        order.payment.method,
        order.payment.status,
        order.payment.brand or "",
        order.payment.last4 or "",
        order.payment.txn_id or "",
        order.status,
        order.stage,
    ]


def orders_to_csv(orders: Iterable[Order]) -> str:
    """Render orders as CSV text, quoting only fields that need it."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for order in orders:
        writer.writerow(order_row(order))
    return buf.getvalue()


def csv_filename(now: datetime) -> str:
    return f"orders-{now.date().isoformat()}.csv"
