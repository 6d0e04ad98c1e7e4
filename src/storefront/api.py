"""FastAPI REST API for storefront orders and coupons."""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict, Field

from . import __version__
from .catalog import CatalogStore
from .config import Settings
from .coupons import CouponEvaluator
from .errors import (
    AuthenticationRequiredError,
    ForbiddenError,
    InvalidIdError,
    InvalidSchemaVersionError,
    InvalidStageError,
    InvalidStatusError,
    OrderNotFoundError,
    OrderVersionConflictError,
    ProductNotFoundError,
    StorefrontError,
    UnsupportedUpdateError,
    ValidationFailedError,
)
from .export import csv_filename, orders_to_csv
from .models import Order, parse_timestamp
from .order_store import OrderFilter, OrderStore
from .orders import DEFAULT_LIMIT, OrderService
from .permissions import Actor

logger = logging.getLogger(__name__)


# --- Pydantic Schemas ---


class CouponValidateRequest(BaseModel):
    """Body of POST /api/coupons/validate.

    Both fields are loose: a non-string code is stringified and malformed
    lines are skipped, so the answer is always a coupon outcome.
    """

    code: Optional[Any] = None
    lines: list[Any] = Field(default_factory=list)


class CheckoutRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    lines: list[dict[str, Any]] = Field(default_factory=list)
    customer: dict[str, Any] = Field(default_factory=dict)
    payment_method: Optional[str] = Field(None, alias="paymentMethod")
    card: Optional[dict[str, Any]] = None
    card_number: Optional[str] = Field(None, alias="cardNumber")
    coupon: Optional[str] = None
    totals_base: Optional[dict[str, Any]] = Field(None, alias="totalsBase")
    shipping_same_as_billing: Optional[bool] = Field(None, alias="shippingSameAsBilling")
    shipping_address: Optional[dict[str, Any]] = Field(None, alias="shippingAddress")
    notes: Optional[str] = None


class TrackRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_id: Optional[str] = Field(None, alias="orderId")
    email: Optional[str] = None


class StatusUpdateRequest(BaseModel):
    status: Optional[str] = None


class StageUpdateRequest(BaseModel):
    stage: Optional[str] = None


# --- Helper Functions ---


def get_settings() -> Settings:
    """Load settings from the environment."""
    return Settings.from_env()


def get_order_service() -> OrderService:
    settings = get_settings()
    return OrderService(OrderStore(settings.data_dir), settings)


def get_coupon_evaluator() -> CouponEvaluator:
    settings = get_settings()
    return CouponEvaluator(CatalogStore(settings.data_dir))


def current_actor(
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
    x_user_permissions: Optional[str] = Header(default=None),
) -> Optional[Actor]:
    """Caller identity forwarded by the gateway, if any."""
    return Actor.from_headers(x_user_id, x_user_role, x_user_permissions)


def envelope(order: Order) -> dict[str, Any]:
    return {"ok": True, "data": order.to_dict()}


def list_envelope(orders: list[Order], total: int, page: int, limit: int) -> dict[str, Any]:
    return {
        "ok": True,
        "data": [o.to_dict() for o in orders],
        "meta": {"total": total, "page": page, "limit": limit},
    }


def admin_row(order: Order) -> dict[str, Any]:
    """Compact order shape for the admin table."""
    return {
        "id": order.id,
        "createdAt": order.created_at,
        "updatedAt": order.updated_at,
        "customer": {"name": order.customer.full_name, "email": order.customer.email},
        "itemsCount": len(order.items),
        "itemsTitles": " | ".join(i.title for i in order.items if i.title),
        "totals": order.totals.to_dict(),
        "payment": order.payment.to_dict(),
        "status": order.status,
        "stage": order.stage,
    }


def build_filter(
    q: str = "",
    status: str = "",
    stage: str = "",
    date_from: str = "",
    date_to: str = "",
) -> OrderFilter:
    """Admin filter from query params; unparseable dates are ignored."""
    return OrderFilter(
        q=q.strip(),
        status=status,
        stage=stage,
        date_from=parse_timestamp(date_from),
        date_to=parse_timestamp(date_to),
    )


# --- FastAPI App ---


app = FastAPI(
    title="storefront API",
    description="Orders, checkout and coupon evaluation for the storefront",
    version=__version__,
)

# CORS for the storefront and admin front-ends
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(get_settings().cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Global Exception Handlers ---


# Map exception types to HTTP status codes
ERROR_STATUS_CODES: dict[type, int] = {
    InvalidIdError: 400,
    ValidationFailedError: 400,
    InvalidStatusError: 400,
    InvalidStageError: 400,
    UnsupportedUpdateError: 400,
    AuthenticationRequiredError: 401,
    ForbiddenError: 403,
    OrderNotFoundError: 404,
    ProductNotFoundError: 404,
    OrderVersionConflictError: 409,
    InvalidSchemaVersionError: 500,
}


def error_response(status_code: int, message: str, error_type: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"ok": False, "message": message, "error_type": error_type},
    )


@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    """Map StorefrontError subclasses to appropriate HTTP responses."""
    status_code = ERROR_STATUS_CODES.get(type(exc), 500)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return error_response(status_code, "Internal server error", type(exc).__name__)
    return error_response(status_code, str(exc), type(exc).__name__)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies are client errors, reported without internals."""
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(p) for p in first.get("loc", ())[1:]) or "body"
    return error_response(400, f"Invalid request: {field}", "ValidationFailedError")


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(500, "Internal server error", type(exc).__name__)


# --- Endpoints ---


@app.get("/api/health")
def health_check():
    """
    Health check endpoint.

    Reports whether the data files can be read.
    """
    settings = get_settings()
    try:
        _, order_count = OrderStore(settings.data_dir).list_orders(limit=1)
        product_count = len(CatalogStore(settings.data_dir).list_products())
        return {
            "status": "ok",
            "order_count": order_count,
            "product_count": product_count,
        }
    except Exception as e:
        logger.error("Health check failed: %s", e)
        return {
            "status": "error",
            "detail": "data store unavailable",
        }


# --- Coupon Endpoints ---


@app.post("/api/coupons/validate")
def validate_coupon(request: CouponValidateRequest):
    """
    Evaluate a coupon against cart lines.

    Always 200: an unusable coupon comes back as ok=false with a reason.
    """
    lines = [ln for ln in request.lines if isinstance(ln, dict)]
    result = get_coupon_evaluator().validate(request.code, lines)
    return result.to_dict()


# --- Customer Order Endpoints ---


@app.post("/api/orders/checkout-demo", status_code=201)
def checkout_demo(request: CheckoutRequest, actor: Optional[Actor] = Depends(current_actor)):
    """Create an order from the demo checkout. Guests are allowed."""
    payload = request.model_dump(by_alias=True, exclude_none=True)
    order = get_order_service().checkout_demo(payload, user_id=actor.user_id if actor else None)
    return envelope(order)


@app.post("/api/orders/track")
def track_order(request: TrackRequest):
    """Look up an order by id and checkout email, without signing in."""
    order = get_order_service().track(request.order_id, request.email)
    return envelope(order)


@app.get("/api/orders")
def list_own_orders(
    page: int = Query(default=1),
    limit: int = Query(default=DEFAULT_LIMIT),
    actor: Optional[Actor] = Depends(current_actor),
):
    """List the caller's orders, newest first."""
    orders, total, page, limit = get_order_service().list_own(actor, page, limit)
    return list_envelope(orders, total, page, limit)


@app.get("/api/orders/{order_id}")
def get_own_order(order_id: str, actor: Optional[Actor] = Depends(current_actor)):
    order = get_order_service().get_own(actor, order_id)
    return envelope(order)


@app.put("/api/orders/{order_id}")
def legacy_update_order(
    order_id: str,
    request: StatusUpdateRequest,
    actor: Optional[Actor] = Depends(current_actor),
):
    """Older clients cancel via PUT {status: "cancelled"}; nothing else is accepted."""
    order = get_order_service().legacy_update(actor, order_id, request.status)
    return envelope(order)


@app.post("/api/orders/{order_id}/cancel")
def cancel_order(order_id: str, actor: Optional[Actor] = Depends(current_actor)):
    order = get_order_service().cancel(actor, order_id)
    return envelope(order)


@app.post("/api/orders/{order_id}/confirm-delivery")
@app.post("/api/orders/{order_id}/confirm")
def confirm_delivery(order_id: str, actor: Optional[Actor] = Depends(current_actor)):
    """Customer confirms the parcel arrived; completes the order."""
    order = get_order_service().confirm_delivery(actor, order_id)
    return envelope(order)


# --- Admin Order Endpoints ---


@app.get("/api/admin/orders")
def admin_list_orders(
    q: str = Query(default=""),
    status: str = Query(default=""),
    stage: str = Query(default=""),
    date_from: str = Query(default="", alias="from"),
    date_to: str = Query(default="", alias="to"),
    page: int = Query(default=1),
    limit: int = Query(default=DEFAULT_LIMIT),
    actor: Optional[Actor] = Depends(current_actor),
):
    """List orders for the admin table with filters and pagination."""
    order_filter = build_filter(q, status, stage, date_from, date_to)
    orders, total, page, limit = get_order_service().admin_list(actor, order_filter, page, limit)
    return {
        "ok": True,
        "data": [admin_row(o) for o in orders],
        "meta": {"total": total, "page": page, "limit": limit},
    }


@app.get("/api/admin/orders/export.csv")
def admin_export_orders(
    q: str = Query(default=""),
    status: str = Query(default=""),
    stage: str = Query(default=""),
    date_from: str = Query(default="", alias="from"),
    date_to: str = Query(default="", alias="to"),
    actor: Optional[Actor] = Depends(current_actor),
):
    """Export orders matching the list filters as CSV."""
    order_filter = build_filter(q, status, stage, date_from, date_to)
    orders = get_order_service().admin_export(actor, order_filter)
    fname = csv_filename(datetime.now(timezone.utc))
    return Response(
        content=orders_to_csv(orders),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{fname}"'},
    )


@app.put("/api/admin/orders/{order_id}/status")
def admin_set_status(
    order_id: str,
    request: StatusUpdateRequest,
    actor: Optional[Actor] = Depends(current_actor),
):
    """Set order status. Repeating the current status is a no-op."""
    order = get_order_service().set_status(actor, order_id, request.status)
    return envelope(order)


@app.put("/api/admin/orders/{order_id}/stage")
def admin_set_stage(
    order_id: str,
    request: StageUpdateRequest,
    actor: Optional[Actor] = Depends(current_actor),
):
    """Set fulfillment stage ("packing" is accepted for "packaging")."""
    order = get_order_service().set_stage(actor, order_id, request.stage)
    return envelope(order)
