"""Wishlist: products a user saved for later."""
import uuid
from typing import Any, Dict

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.catalog import CatalogService
from storefront.core.exceptions import ConflictError, NotFoundError
from storefront.core.pagination import PageRequest
from storefront.core.serializers import parse_id, wishlist_item_to_dict
from storefront.database.models import WishlistItem

logger = structlog.get_logger(__name__)


async def _entry_ids(user_id: uuid.UUID, db: AsyncSession) -> list:
    result = await db.execute(
        select(WishlistItem.product_id)
        .where(WishlistItem.user_id == user_id)
        .order_by(WishlistItem.date_added.desc(), WishlistItem.id.desc())
    )
    return [str(pid) for pid in result.scalars().all()]


async def get_wishlist(
    user_id: uuid.UUID, db: AsyncSession, page: Any = 1, limit: Any = 10
) -> Dict[str, Any]:
    """Most recently added first."""
    paging = PageRequest.from_query(page, limit, default_limit=10)

    total = (
        await db.execute(select(func.count(WishlistItem.id)).where(WishlistItem.user_id == user_id))
    ).scalar_one()
    result = await db.execute(
        select(WishlistItem)
        .where(WishlistItem.user_id == user_id)
        .order_by(WishlistItem.date_added.desc(), WishlistItem.id.desc())
        .offset(paging.offset)
        .limit(paging.limit)
    )
    return {
        "page": paging.page,
        "totalPages": paging.total_pages(total),
        "totalItems": total,
        "wishlist": [wishlist_item_to_dict(w) for w in result.scalars().all()],
    }


async def add_to_wishlist(user_id: uuid.UUID, product_id: str, db: AsyncSession) -> Dict[str, Any]:
    product = await CatalogService.get_product(product_id, db)

    existing = await db.execute(
        select(WishlistItem.id).where(
            WishlistItem.user_id == user_id, WishlistItem.product_id == product.id
        )
    )
    if existing.first() is not None:
        raise ConflictError("Product already in wishlist")

    db.add(WishlistItem(user_id=user_id, product_id=product.id))
    await db.flush()

    logger.info("wishlist_item_added", user_id=str(user_id), product_id=str(product.id))
    return {"message": "Product added to wishlist", "wishList": await _entry_ids(user_id, db)}


async def remove_from_wishlist(
    user_id: uuid.UUID, product_id: str, db: AsyncSession
) -> Dict[str, Any]:
    result = await db.execute(
        select(WishlistItem).where(
            WishlistItem.user_id == user_id,
            WishlistItem.product_id == parse_id(product_id, "Product"),
        )
    )
    entry = result.scalar_one_or_none()
    if entry is None:
        raise NotFoundError("Product", "Product not in wishlist")

    await db.delete(entry)
    await db.flush()

    logger.info("wishlist_item_removed", user_id=str(user_id), product_id=product_id)
    return {"message": "Product removed from wishlist", "wishList": await _entry_ids(user_id, db)}
