"""Database package for the storefront."""
from .connection import get_db, init_db
from .models import (
    Base,
    CartItem,
    Category,
    Order,
    OrderItem,
    Product,
    Review,
    User,
    WishlistItem,
)

__all__ = [
    "Base",
    "CartItem",
    "Category",
    "Order",
    "OrderItem",
    "Product",
    "Review",
    "User",
    "WishlistItem",
    "get_db",
    "init_db",
]
