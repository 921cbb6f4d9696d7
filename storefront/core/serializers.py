"""Render ORM objects as the JSON documents the API returns."""
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from storefront.core.exceptions import NotFoundError
from storefront.database.models import (
    CartItem,
    Category,
    Order,
    OrderItem,
    Product,
    Review,
    User,
    WishlistItem,
)


def parse_id(value: Any, resource: str = "Resource") -> uuid.UUID:
    """
    Parse an identifier from a path or body.

    Raises:
        NotFoundError: If the value is not a valid id (nothing can match it)
    """
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        raise NotFoundError(resource)


def cents_to_dollars(cents: Optional[int]) -> float:
    return round((cents or 0) / 100, 2)


def dollars_to_cents(amount: Any) -> int:
    return int(round(float(amount) * 100))


def _ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def user_to_dict(user: User) -> Dict[str, Any]:
    """Public profile of a user; never includes credentials."""
    return {
        "id": str(user.id),
        "email": user.email,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "phone": user.phone,
        "profileImage": user.profile_image,
        "role": user.role,
        "status": user.status,
        "isVerified": user.is_verified,
        "shippingAddress": user.shipping_address,
        "billingAddress": user.billing_address,
        "createdAt": _ts(user.created_at),
        "updatedAt": _ts(user.updated_at),
    }


def category_to_dict(category: Category) -> Dict[str, Any]:
    return {
        "id": str(category.id),
        "name": category.name,
        "description": category.description,
        "createdAt": _ts(category.created_at),
    }


def product_to_dict(product: Product) -> Dict[str, Any]:
    return {
        "id": str(product.id),
        "name": product.name,
        "description": product.description,
        "brand": product.brand,
        "price": cents_to_dollars(product.price_cents),
        "category": (
            {"id": str(product.category.id), "name": product.category.name}
            if product.category is not None
            else None
        ),
        "stock": product.stock,
        "images": list(product.images or []),
        "isFeatured": product.is_featured,
        "numReviews": product.num_reviews,
        "rating": round(product.rating or 0.0, 2),
        "createdAt": _ts(product.created_at),
    }


def review_to_dict(review: Review) -> Dict[str, Any]:
    if review.user is not None:
        name = f"{review.user.first_name or 'Unknown'} {review.user.last_name or ''}".strip()
    else:
        name = "Unknown"
    return {
        "id": str(review.id),
        "productId": str(review.product_id),
        "userId": str(review.user_id) if review.user_id else None,
        "name": name,
        "rating": review.rating,
        "comment": review.comment,
        "createdAt": _ts(review.created_at),
    }


def cart_item_to_dict(item: CartItem) -> Dict[str, Any]:
    return {
        "product": product_to_dict(item.product),
        "quantity": item.quantity,
        "lineTotal": cents_to_dollars(item.product.price_cents * item.quantity),
    }


def wishlist_item_to_dict(item: WishlistItem) -> Dict[str, Any]:
    doc = product_to_dict(item.product)
    doc["dateAdded"] = _ts(item.date_added)
    return doc


def order_item_to_dict(item: OrderItem) -> Dict[str, Any]:
    return {
        "product": str(item.product_id) if item.product_id else None,
        "name": item.name,
        "image": item.image,
        "price": cents_to_dollars(item.price_cents),
        "quantity": item.quantity,
    }


def order_to_dict(order: Order, include_user: bool = False) -> Dict[str, Any]:
    doc: Dict[str, Any] = {
        "id": str(order.id),
        "user": str(order.user_id),
        "items": [order_item_to_dict(item) for item in order.items],
        "shippingAddress": order.shipping_address,
        "totalAmount": cents_to_dollars(order.total_cents),
        "status": order.status,
        "paymentMethod": order.payment_method,
        "isPaid": order.is_paid,
        "paidAt": _ts(order.paid_at),
        "deliveredAt": _ts(order.delivered_at),
        "sessionId": order.session_id,
        "paymentIntentId": order.payment_intent_id,
        "createdAt": _ts(order.created_at),
    }
    if include_user and order.user is not None:
        doc["user"] = {
            "id": str(order.user.id),
            "firstName": order.user.first_name,
            "lastName": order.user.last_name,
            "email": order.user.email,
            "phone": order.user.phone,
        }
    return doc


def order_summary_to_dict(order: Order) -> Dict[str, Any]:
    return {
        "id": str(order.id),
        "createdAt": _ts(order.created_at),
        "status": order.status,
        "totalAmount": cents_to_dollars(order.total_cents),
    }
