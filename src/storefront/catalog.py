"""Product catalog storage for storefront."""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from ._jsonfile import JsonDocument
from .config import default_data_dir
from .coupons import is_eligible_product
from .errors import ProductNotFoundError, ValidationFailedError
from .models import Product, _utc_now, normalize_code

logger = logging.getLogger(__name__)

PRODUCTS_FILE = "products.json"


class CatalogStore:
    """Manages catalog products and their embedded coupons."""

    def __init__(self, config_dir: Path | None = None):
        """
        Initialize CatalogStore.

        Args:
            config_dir: Override data directory (for testing).
        """
        self.config_dir = config_dir or default_data_dir()
        self._doc = JsonDocument(self.config_dir, PRODUCTS_FILE, "products")

    def list_products(self) -> list[Product]:
        """List all products in catalog order."""
        data = self._doc.load()
        return [Product.from_dict(p) for p in data["products"]]

    def get_product(self, product_id: str) -> Product:
        """
        Get a product by ID or slug.

        Raises:
            ProductNotFoundError: If product doesn't exist.
        """
        for p in self.list_products():
            if p.id == product_id or p.slug == product_id:
                return p
        raise ProductNotFoundError(product_id)

    def upsert_product(self, product: Product) -> Product:
        """
        Insert a product, or replace an existing one in place.

        The existing product is found by ID, else by slug; a slug match keeps
        the stored ID so slugs stay unique.
        """
        with self._doc.lock():
            data = self._doc.load()
            products = data["products"]
            index = next(
                (i for i, p in enumerate(products) if p.get("id") == product.id), None
            )
            if index is None and product.slug:
                index = next(
                    (i for i, p in enumerate(products) if p.get("slug") == product.slug), None
                )

            if index is None:
                products.append(product.to_dict())
            else:
                existing = products[index]
                product.id = existing.get("id") or product.id
                product.created_at = existing.get("createdAt") or product.created_at
                product.updated_at = _utc_now()
                products[index] = product.to_dict()
            self._doc.save(data)
        return product

    def import_products(self, path: Path) -> list[Product]:
        """
        Load products from a JSON file (a list, or {"products": [...]}).

        Raises:
            ValidationFailedError: If the file isn't a product list.
        """
        with open(path, "r", encoding="utf-8") as f:
            try:
                raw: Any = json.load(f)
            except json.JSONDecodeError as e:
                raise ValidationFailedError(f"Invalid product file {path}: {e}") from e

        if isinstance(raw, dict):
            raw = raw.get("products")
        if not isinstance(raw, list):
            raise ValidationFailedError(f"Invalid product file {path}: expected a list of products")

        imported = [self.upsert_product(Product.from_dict(p)) for p in raw if isinstance(p, dict)]
        logger.info("Imported %d product(s) from %s", len(imported), path)
        return imported

    def find_coupon_products(self, code: str, now: datetime) -> list[Product]:
        """Published products advertising a live coupon with this code, in catalog order."""
        code = normalize_code(code)
        return [p for p in self.list_products() if is_eligible_product(p, code, now)]
