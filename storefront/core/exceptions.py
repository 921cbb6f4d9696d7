"""
Domain exceptions for the storefront.

Every exception carries the HTTP status it maps to and a message that is
safe to show to the shopper. The API layer renders them as
``{"message": ..., "errors": [...]}``.
"""
from typing import Any, Dict, List, Optional


class StorefrontError(Exception):
    """Base exception for all storefront errors."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        errors: Optional[List[str]] = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.errors = errors

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for API responses"""
        body: Dict[str, Any] = {"message": self.message}
        if self.errors:
            body["errors"] = self.errors
        return body


class ValidationError(StorefrontError):
    """Request data is malformed or violates a business rule."""

    status_code = 400


class ConflictError(StorefrontError):
    """The resource already exists (duplicate email, review, wishlist entry...)."""

    status_code = 400


class OutOfStockError(StorefrontError):
    """Requested quantity exceeds available stock."""

    status_code = 400


class AuthenticationError(StorefrontError):
    """Missing or bad credentials."""

    status_code = 401


class PermissionDenied(StorefrontError):
    """Authenticated but not allowed."""

    status_code = 403


class NotFoundError(StorefrontError):
    """The requested resource does not exist."""

    status_code = 404

    def __init__(self, resource: str = "Resource", message: Optional[str] = None):
        super().__init__(message or f"{resource} not found")
        self.resource = resource


class PaymentError(StorefrontError):
    """Payment provider rejected or failed a request."""

    status_code = 400
