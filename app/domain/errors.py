# app/domain/errors.py
"""
Storefront error taxonomy.

Each class also derives from the builtin the HTTP layer maps to a status code,
so callers that only know ValueError / LookupError / PermissionError still work.
"""


class StorefrontError(Exception):
    status_code = 500

    def __init__(self, message: str | None = None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__

    @property
    def code(self) -> str:
        return self.__class__.__name__


# validation (400)
class ValidationFailed(StorefrontError, ValueError):
    status_code = 400


class InvalidQuantity(ValidationFailed):
    pass


class InvalidAddress(ValidationFailed):
    pass


class EmptyOrder(ValidationFailed):
    pass


# not found (404)
class NotFound(StorefrontError, LookupError):
    status_code = 404


class ProductNotFound(NotFound):
    pass


class LineNotFound(NotFound):
    pass


class OrderNotFound(NotFound):
    pass


# business rules (409)
class BusinessConflict(StorefrontError):
    status_code = 409


class InsufficientStock(BusinessConflict):
    def __init__(self, product_id: str, requested: int, available: int):
        super().__init__(
            f"Only {available} unit(s) of product {product_id} in stock, {requested} requested"
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class VariantUnavailable(BusinessConflict):
    pass


class DeliveryNotAllowed(BusinessConflict):
    pass


class ConcurrencyConflict(BusinessConflict, RuntimeError):
    pass


# access (403)
class AccessDenied(StorefrontError, PermissionError):
    status_code = 403


# external dependencies (503)
class CatalogUnavailable(StorefrontError, RuntimeError):
    status_code = 503
