"""
Shopping cart.

A cart is the set of ``CartItem`` rows belonging to a user, one per product.
Quantities are checked against current stock on every change.
"""
import uuid
from typing import Any, Dict, Optional

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.catalog import CatalogService
from storefront.core.exceptions import NotFoundError, OutOfStockError
from storefront.core.serializers import cart_item_to_dict, cents_to_dollars, parse_id
from storefront.database.models import CartItem

logger = structlog.get_logger(__name__)


async def _line(user_id: uuid.UUID, product_id: uuid.UUID, db: AsyncSession) -> Optional[CartItem]:
    result = await db.execute(
        select(CartItem).where(CartItem.user_id == user_id, CartItem.product_id == product_id)
    )
    return result.scalar_one_or_none()


async def get_cart(user_id: uuid.UUID, db: AsyncSession) -> Dict[str, Any]:
    result = await db.execute(
        select(CartItem).where(CartItem.user_id == user_id).order_by(CartItem.added_at, CartItem.id)
    )
    items = [item for item in result.scalars().all() if item.product is not None]
    return {
        "items": [cart_item_to_dict(item) for item in items],
        "totalItems": sum(item.quantity for item in items),
        "subtotal": cents_to_dollars(sum(i.product.price_cents * i.quantity for i in items)),
    }


async def add_item(
    user_id: uuid.UUID, product_id: Any, quantity: int, db: AsyncSession
) -> Dict[str, Any]:
    """
    Add ``quantity`` units of a product, merging with an existing line.

    Raises:
        NotFoundError: If the product does not exist
        OutOfStockError: If the merged quantity exceeds stock
    """
    product = await CatalogService.get_product(product_id, db)
    if product.stock <= 0:
        raise OutOfStockError("Product is out of stock")

    line = await _line(user_id, product.id, db)
    if line is not None:
        if line.quantity + quantity > product.stock:
            remaining = max(product.stock - line.quantity, 0)
            raise OutOfStockError(
                f"Cannot add {quantity}. Only {remaining} more available in stock."
            )
        line.quantity += quantity
    else:
        if quantity > product.stock:
            raise OutOfStockError(f"Only {product.stock} items available in stock.")
        db.add(CartItem(user_id=user_id, product=product, quantity=quantity))

    await db.flush()
    logger.info(
        "cart_item_added", user_id=str(user_id), product_id=str(product.id), quantity=quantity
    )
    return await get_cart(user_id, db)


async def update_item(
    user_id: uuid.UUID, product_id: Any, quantity: int, db: AsyncSession
) -> Dict[str, Any]:
    """Set a line's quantity; zero removes the line."""
    product = await CatalogService.get_product(product_id, db)
    if quantity > product.stock:
        raise OutOfStockError(f"Only {product.stock} items available in stock.")

    line = await _line(user_id, product.id, db)
    if line is None:
        raise NotFoundError("Item", "Item not found in cart")

    if quantity == 0:
        await db.delete(line)
    else:
        line.quantity = quantity
    await db.flush()

    logger.info(
        "cart_item_updated", user_id=str(user_id), product_id=str(product.id), quantity=quantity
    )
    return await get_cart(user_id, db)


async def remove_item(user_id: uuid.UUID, product_id: Any, db: AsyncSession) -> Dict[str, Any]:
    line = await _line(user_id, parse_id(product_id, "Product"), db)
    if line is None:
        raise NotFoundError("Item", "Item not found in cart")

    await db.delete(line)
    await db.flush()

    logger.info("cart_item_removed", user_id=str(user_id), product_id=str(line.product_id))
    return await get_cart(user_id, db)


async def clear_cart(user_id: uuid.UUID, db: AsyncSession) -> Dict[str, Any]:
    await db.execute(delete(CartItem).where(CartItem.user_id == user_id))
    logger.info("cart_cleared", user_id=str(user_id))
    return await get_cart(user_id, db)
