"""storefront - order lifecycle and coupon evaluation service."""

__version__ = "0.1.0"
