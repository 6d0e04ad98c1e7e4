"""Data models for storefront.

Documents are stored and served with camelCase keys; that layout is what the
storefront and admin UIs read back verbatim, so ``to_dict`` output is the
wire format.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
import math
import uuid


def format_timestamp(dt: datetime) -> str:
    """Format an aware datetime as ISO 8601 UTC with a ``Z`` suffix."""
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse a stored timestamp; returns None for empty or malformed values."""
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _utc_now() -> str:
    """Return current UTC time as ISO 8601 string."""
    return format_timestamp(datetime.now(timezone.utc))


def _generate_id() -> str:
    """Generate a new document ID."""
    return str(uuid.uuid4())


def is_valid_id(value: Any) -> bool:
    """Check that value is a well-formed document id (UUID string)."""
    if not isinstance(value, str) or not value:
        return False
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


def _num(value: Any, default: float = 0.0) -> float:
    """Coerce value to a finite float, falling back to default."""
    if value is None or isinstance(value, bool):
        return default
    try:
        n = float(value)
    except (TypeError, ValueError):
        return default
    return n if math.isfinite(n) else default


@dataclass
class LineItem:
    """A line of an order, priced and frozen at checkout time."""

    title: str
    qty: int
    unit_price_base: float
    subtotal_base: float
    product_id: str | None = None
    slug: str = ""
    category: str = ""
    image: str = ""

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "slug": self.slug,
            "category": self.category,
            "title": self.title,
            "image": self.image,
            "qty": self.qty,
            "unitPriceBase": self.unit_price_base,
            "subtotalBase": self.subtotal_base,
        }
        if self.product_id is not None:
            result["productId"] = self.product_id
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LineItem":
        return cls(
            product_id=data.get("productId"),
            slug=data.get("slug", ""),
            category=data.get("category", ""),
            title=data.get("title", ""),
            image=data.get("image", ""),
            qty=int(data.get("qty", 1)),
            unit_price_base=_num(data.get("unitPriceBase")),
            subtotal_base=_num(data.get("subtotalBase")),
        )


@dataclass
class Totals:
    """Money snapshot of an order in base currency units."""

    subtotal_base: float = 0.0
    discount_base: float = 0.0
    shipping_base: float = 0.0
    tax_base: float = 0.0
    total_base: float = 0.0
    currency: str = "USD"

    def to_dict(self) -> dict[str, Any]:
        return {
            "subtotalBase": self.subtotal_base,
            "discountBase": self.discount_base,
            "shippingBase": self.shipping_base,
            "taxBase": self.tax_base,
            "totalBase": self.total_base,
            "currency": self.currency,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Totals":
        return cls(
            subtotal_base=_num(data.get("subtotalBase")),
            discount_base=_num(data.get("discountBase")),
            shipping_base=_num(data.get("shippingBase")),
            tax_base=_num(data.get("taxBase")),
            total_base=_num(data.get("totalBase")),
            currency=data.get("currency", "USD"),
        )


@dataclass
class Payment:
    """Payment display metadata. Never holds a full card number."""

    method: str = "demo"  # demo|card|cod|paypal|...
    status: str = "paid"  # paid|pending|failed|refunded
    brand: str | None = None
    last4: str | None = None
    txn_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"method": self.method, "status": self.status}
        if self.brand is not None:
            result["brand"] = self.brand
        if self.last4 is not None:
            result["last4"] = self.last4
        if self.txn_id is not None:
            result["txnId"] = self.txn_id
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Payment":
        return cls(
            method=data.get("method", "demo"),
            status=data.get("status", "paid"),
            brand=data.get("brand"),
            last4=data.get("last4"),
            txn_id=data.get("txnId"),
        )


@dataclass
class Customer:
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    company: str = ""

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p).strip()

    def to_dict(self) -> dict[str, Any]:
        return {
            "firstName": self.first_name,
            "lastName": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "company": self.company,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Customer":
        return cls(
            first_name=data.get("firstName", ""),
            last_name=data.get("lastName", ""),
            email=data.get("email", ""),
            phone=data.get("phone", ""),
            company=data.get("company", ""),
        )


@dataclass
class Address:
    line1: str = ""
    line2: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""
    country: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "line1": self.line1,
            "line2": self.line2,
            "city": self.city,
            "state": self.state,
            "zip": self.zip,
            "country": self.country,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Address":
        return cls(
            line1=data.get("line1", ""),
            line2=data.get("line2", ""),
            city=data.get("city", ""),
            state=data.get("state", ""),
            zip=data.get("zip", ""),
            country=data.get("country", ""),
        )


@dataclass(frozen=True)
class TimelineEntry:
    """One immutable entry of an order's status timeline."""

    code: str
    note: str
    at: str

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "note": self.note, "at": self.at}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TimelineEntry":
        return cls(
            code=data.get("code", ""),
            note=data.get("note", ""),
            at=data.get("at", ""),
        )


@dataclass
class Order:
    """An order document: frozen items and totals plus lifecycle state."""

    id: str
    items: list[LineItem]
    totals: Totals
    status: str  # pending|in progress|completed|cancelled
    stage: str  # created|packaging|shipped|delivered
    status_timeline: list[TimelineEntry] = field(default_factory=list)
    user_id: str | None = None
    customer: Customer = field(default_factory=Customer)
    billing_address: Address = field(default_factory=Address)
    shipping_address: Address = field(default_factory=Address)
    shipping_same_as_billing: bool = True
    payment: Payment = field(default_factory=Payment)
    notes: str = ""
    shipped_at: str | None = None
    delivered_at: str | None = None
    cancelled_at: str | None = None
    created_at: str = field(default_factory=_utc_now)
    updated_at: str = field(default_factory=_utc_now)
    version: int = 0

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "userId": self.user_id,
            "items": [i.to_dict() for i in self.items],
            "customer": self.customer.to_dict(),
            "billingAddress": self.billing_address.to_dict(),
            "shippingAddress": self.shipping_address.to_dict(),
            "shippingSameAsBilling": self.shipping_same_as_billing,
            "payment": self.payment.to_dict(),
            "totals": self.totals.to_dict(),
            "status": self.status,
            "stage": self.stage,
            "statusTimeline": [e.to_dict() for e in self.status_timeline],
            "notes": self.notes,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "version": self.version,
        }
        if self.shipped_at is not None:
            result["shippedAt"] = self.shipped_at
        if self.delivered_at is not None:
            result["deliveredAt"] = self.delivered_at
        if self.cancelled_at is not None:
            result["cancelledAt"] = self.cancelled_at
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Order":
        return cls(
            id=data["id"],
            user_id=data.get("userId"),
            items=[LineItem.from_dict(i) for i in data.get("items", [])],
            customer=Customer.from_dict(data.get("customer") or {}),
            billing_address=Address.from_dict(data.get("billingAddress") or {}),
            shipping_address=Address.from_dict(data.get("shippingAddress") or {}),
            shipping_same_as_billing=data.get("shippingSameAsBilling", True),
            payment=Payment.from_dict(data.get("payment") or {}),
            totals=Totals.from_dict(data.get("totals") or {}),
            status=data.get("status", "in progress"),
            stage=data.get("stage", "created"),
            status_timeline=[
                TimelineEntry.from_dict(e) for e in data.get("statusTimeline", [])
            ],
            notes=data.get("notes", ""),
            shipped_at=data.get("shippedAt"),
            delivered_at=data.get("deliveredAt"),
            cancelled_at=data.get("cancelledAt"),
            created_at=data.get("createdAt", ""),
            updated_at=data.get("updatedAt", ""),
            version=int(data.get("version", 0)),
        )

    @classmethod
    def create(
        cls,
        items: list[LineItem],
        totals: Totals,
        status: str,
        stage: str,
        status_timeline: list[TimelineEntry],
        user_id: str | None = None,
        customer: Customer | None = None,
        billing_address: Address | None = None,
        shipping_address: Address | None = None,
        shipping_same_as_billing: bool = True,
        payment: Payment | None = None,
        notes: str = "",
        now: str | None = None,
    ) -> "Order":
        """Create a new order with generated ID and timestamps."""
        now = now or _utc_now()
        return cls(
            id=_generate_id(),
            user_id=user_id,
            items=items,
            customer=customer or Customer(),
            billing_address=billing_address or Address(),
            shipping_address=shipping_address or Address(),
            shipping_same_as_billing=shipping_same_as_billing,
            payment=payment or Payment(),
            totals=totals,
            status=status,
            stage=stage,
            status_timeline=status_timeline,
            notes=notes,
            created_at=now,
            updated_at=now,
            version=0,
        )


@dataclass
class ProductCoupon:
    """Coupon terms embedded on a product."""

    code: str
    type: str = "percent"  # percent|fixed
    amount: float = 0.0
    min_subtotal: float = 0.0
    active: bool = False
    expires_at: str | None = None

    def __post_init__(self) -> None:
        self.code = normalize_code(self.code)

    def is_live(self, now: datetime) -> bool:
        """True while the coupon is active and not past its expiry."""
        if not self.active:
            return False
        if self.expires_at is None:
            return True
        expires = parse_timestamp(self.expires_at)
        return expires is not None and expires > now

    def terms(self) -> tuple[str, float, float]:
        return (self.type, self.amount, self.min_subtotal)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "type": self.type,
            "amount": self.amount,
            "minSubtotal": self.min_subtotal,
            "active": self.active,
            "expiresAt": self.expires_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProductCoupon":
        # An empty or unparseable expiry means the coupon never expires
        expires = parse_timestamp(data.get("expiresAt"))
        return cls(
            code=data.get("code", ""),
            type=data.get("type") or "percent",
            amount=_num(data.get("amount")),
            min_subtotal=_num(data.get("minSubtotal")),
            active=bool(data.get("active", False)),
            expires_at=format_timestamp(expires) if expires else None,
        )


@dataclass
class Product:
    """Catalog entry, as far as coupon evaluation needs it."""

    id: str
    slug: str
    title: str
    price_base: float = 0.0
    category: str = ""
    published: bool = True
    coupon: ProductCoupon | None = None
    created_at: str = field(default_factory=_utc_now)
    updated_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "slug": self.slug,
            "title": self.title,
            "priceBase": self.price_base,
            "category": self.category,
            "published": self.published,
            "coupon": self.coupon.to_dict() if self.coupon else None,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Product":
        coupon = None
        if data.get("coupon"):
            coupon = ProductCoupon.from_dict(data["coupon"])
        return cls(
            id=str(data.get("id") or _generate_id()),
            slug=data.get("slug", ""),
            title=data.get("title", ""),
            price_base=_num(data.get("priceBase")),
            category=data.get("category", ""),
            published=bool(data.get("published", True)),
            coupon=coupon,
            created_at=data.get("createdAt") or _utc_now(),
            updated_at=data.get("updatedAt") or _utc_now(),
        )


@dataclass(frozen=True)
class DemoCoupon:
    """Entry of the demo checkout coupon table."""

    type: str  # percent|fixed
    amount: float

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DemoCoupon":
        return cls(type=data.get("type", "percent"), amount=_num(data.get("amount")))


def normalize_code(code: Any) -> str:
    """Coupon codes are compared trimmed and upper-cased."""
    return str(code or "").strip().upper()
