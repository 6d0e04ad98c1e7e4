"""Custom exceptions for storefront."""


class StorefrontError(Exception):
    """Base exception for all storefront errors."""

    pass


class InvalidIdError(StorefrontError):
    """Raised when an id is not a well-formed order id."""

    def __init__(self, value: str | None, what: str = "id"):
        self.value = value
        super().__init__(f"Invalid {what}")


class ValidationFailedError(StorefrontError):
    """Raised when a request field is missing or malformed."""

    def __init__(self, message: str):
        super().__init__(message)


class InvalidStatusError(StorefrontError):
    """Raised when a requested order status is not one of the known values."""

    def __init__(self, status: str):
        self.status = status
        super().__init__("Invalid status")


class InvalidStageError(StorefrontError):
    """Raised when a requested fulfillment stage is not one of the known values."""

    def __init__(self, stage: str):
        self.stage = stage
        super().__init__("Invalid stage")


class UnsupportedUpdateError(StorefrontError):
    """Raised when a customer tries an update other than cancellation."""

    def __init__(self, status: str | None = None):
        self.status = status
        super().__init__("Unsupported update")


class AuthenticationRequiredError(StorefrontError):
    """Raised when a protected route is called without an identity."""

    def __init__(self):
        super().__init__("Authentication required")


class ForbiddenError(StorefrontError):
    """Raised when the caller lacks the role, permission or ownership needed."""

    def __init__(self, reason: str | None = None):
        self.reason = reason
        super().__init__("Forbidden")


class OrderNotFoundError(StorefrontError):
    """Raised when an order id doesn't exist."""

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__("Order not found")


class ProductNotFoundError(StorefrontError):
    """Raised when a product id or slug doesn't exist in the catalog."""

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class OrderVersionConflictError(StorefrontError):
    """Raised when an order was modified by someone else since it was read."""

    def __init__(self, order_id: str, expected: int, found: int):
        self.order_id = order_id
        self.expected = expected
        self.found = found
        super().__init__(
            "Order was modified concurrently, reload and try again"
        )


class InvalidSchemaVersionError(StorefrontError):
    """Raised when a data file has an unsupported schema version."""

    def __init__(self, found: int, supported: int):
        self.found = found
        self.supported = supported
        super().__init__(
            f"Unsupported schema version {found}. This tool supports version {supported}."
        )
