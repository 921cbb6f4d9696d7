"""Core storefront logic."""
from .auth_service import AuthService
from .catalog import CatalogService, ProductAdminService
from .orders import OrderService
from .payments import PaymentService
from .user_service import UserService

__all__ = [
    "AuthService",
    "CatalogService",
    "OrderService",
    "PaymentService",
    "ProductAdminService",
    "UserService",
]
