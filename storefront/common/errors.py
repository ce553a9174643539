"""Error taxonomy shared by every service.

Services raise these; the application renders each one exactly once as
``{"success": false, "error": {"message": ..., "code": ...}}`` with the
class's HTTP status. Nothing is retried automatically.
"""

from typing import Any, Dict


class StoreError(Exception):
    code = "INTERNAL_ERROR"
    http_status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"success": False, "error": {"message": self.message, "code": self.code}}


class NotFound(StoreError):
    """A referenced entity does not exist."""

    code = "NOT_FOUND"
    http_status = 404


class InvalidTransition(StoreError):
    """The order status graph does not allow the requested move."""

    code = "INVALID_STATUS_TRANSITION"
    http_status = 400


class InvalidStatus(StoreError):
    """The order's current status fails a narrower precondition (cancel)."""

    code = "INVALID_STATUS"
    http_status = 400


class ValidationError(StoreError):
    code = "VALIDATION_ERROR"
    http_status = 400


class InvalidQuantity(StoreError):
    code = "INVALID_QUANTITY"
    http_status = 400


class InsufficientStock(StoreError):
    code = "INSUFFICIENT_STOCK"
    http_status = 400


class ProductUnavailable(StoreError):
    code = "PRODUCT_UNAVAILABLE"
    http_status = 400


class Unauthorized(StoreError):
    code = "UNAUTHORIZED"
    http_status = 401


class Forbidden(StoreError):
    code = "FORBIDDEN"
    http_status = 403


class InternalError(StoreError):
    code = "INTERNAL_ERROR"
    http_status = 500


class ServiceUnavailable(StoreError):
    code = "SERVICE_UNAVAILABLE"
    http_status = 503
