"""Runtime configuration for storefront.

Values come from the environment, optionally seeded from a ``.env`` file in
the working directory.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

from .errors import ValidationFailedError
from .models import DemoCoupon, normalize_code

# Can be overridden via STOREFRONT_DATA_DIR environment variable
_default_data_dir = Path(__file__).parent.parent.parent / "data"

DEFAULT_FLAT_TAX = 61.99
DEFAULT_CURRENCY = "USD"
DEFAULT_DEDUP_WINDOW_SECONDS = 30.0
DEFAULT_CORS_ORIGINS = (
    "http://localhost:5173",
    "http://localhost:3000",
    "http://127.0.0.1:5173",
    "http://127.0.0.1:3000",
)


def default_data_dir() -> Path:
    """Data directory from STOREFRONT_DATA_DIR, else ./data beside the project."""
    return Path(os.environ.get("STOREFRONT_DATA_DIR", _default_data_dir))


def default_demo_coupons() -> dict[str, DemoCoupon]:
    """Coupon table used by the demo checkout when nothing is configured."""
    return {
        "SAVE24": DemoCoupon(type="fixed", amount=24),
        "OFF10": DemoCoupon(type="percent", amount=10),
    }


def parse_demo_coupons(raw: str) -> dict[str, DemoCoupon]:
    """
    Parse a demo coupon table from JSON.

    Format: {"CODE": {"type": "fixed"|"percent", "amount": number}, ...}

    Raises:
        ValidationFailedError: If the JSON is malformed or an entry is invalid.
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValidationFailedError(f"Invalid demo coupon table: {e}") from e
    if not isinstance(data, dict):
        raise ValidationFailedError("Invalid demo coupon table: expected an object")

    table: dict[str, DemoCoupon] = {}
    for code, entry in data.items():
        if not isinstance(entry, dict) or entry.get("type") not in ("fixed", "percent"):
            raise ValidationFailedError(f"Invalid demo coupon entry for {code!r}")
        table[normalize_code(code)] = DemoCoupon.from_dict(entry)
    return table


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValidationFailedError(f"{name} must be a number, got {raw!r}") from e


@dataclass
class Settings:
    """Service settings. Construct directly in tests, from_env() otherwise."""

    data_dir: Path = _default_data_dir
    flat_tax: float = DEFAULT_FLAT_TAX
    currency: str = DEFAULT_CURRENCY
    dedup_window_seconds: float = DEFAULT_DEDUP_WINDOW_SECONDS
    demo_coupons: dict[str, DemoCoupon] = field(default_factory=default_demo_coupons)
    cors_origins: tuple[str, ...] = DEFAULT_CORS_ORIGINS
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv(find_dotenv(usecwd=True))

        demo_raw = os.environ.get("STOREFRONT_DEMO_COUPONS")
        demo_coupons = parse_demo_coupons(demo_raw) if demo_raw else default_demo_coupons()

        origins_raw = os.environ.get("STOREFRONT_CORS_ORIGINS")
        cors_origins = (
            tuple(o.strip() for o in origins_raw.split(",") if o.strip())
            if origins_raw
            else DEFAULT_CORS_ORIGINS
        )

        return cls(
            data_dir=default_data_dir(),
            flat_tax=_env_float("STOREFRONT_FLAT_TAX", DEFAULT_FLAT_TAX),
            currency=os.environ.get("STOREFRONT_CURRENCY", DEFAULT_CURRENCY),
            dedup_window_seconds=_env_float(
                "STOREFRONT_DEDUP_WINDOW_SECONDS", DEFAULT_DEDUP_WINDOW_SECONDS
            ),
            demo_coupons=demo_coupons,
            cors_origins=cors_origins,
            log_level=os.environ.get("STOREFRONT_LOG_LEVEL", "INFO").upper(),
        )
