"""
Product reviews.

Each product keeps ``num_reviews`` and ``rating`` in sync with its reviews;
they are recomputed from the review table after every change.
"""
from typing import Any, Dict

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.catalog import CatalogService
from storefront.core.exceptions import ConflictError, NotFoundError, PermissionDenied
from storefront.core.pagination import PageRequest
from storefront.core.serializers import parse_id, review_to_dict
from storefront.database.models import Product, Review, User

logger = structlog.get_logger(__name__)


async def refresh_rating(product: Product, db: AsyncSession) -> None:
    await db.flush()
    count, average = (
        await db.execute(
            select(func.count(Review.id), func.avg(Review.rating)).where(
                Review.product_id == product.id
            )
        )
    ).one()
    product.num_reviews = count
    product.rating = round(float(average), 2) if count else 0.0


async def _own_review(product: Product, user: User, db: AsyncSession) -> Review:
    result = await db.execute(
        select(Review).where(Review.product_id == product.id, Review.user_id == user.id)
    )
    review = result.scalar_one_or_none()
    if review is None:
        raise NotFoundError("Review")
    return review


async def add_review(
    product_id: str, user: User, rating: int, comment: str, db: AsyncSession
) -> Dict[str, Any]:
    """
    Raises:
        NotFoundError: If the product does not exist
        ConflictError: If the user already reviewed it
    """
    product = await CatalogService.get_product(product_id, db)

    existing = await db.execute(
        select(Review.id).where(Review.product_id == product.id, Review.user_id == user.id)
    )
    if existing.first() is not None:
        raise ConflictError("You have already reviewed this product")

    db.add(Review(product_id=product.id, user_id=user.id, rating=rating, comment=comment.strip()))
    await refresh_rating(product, db)

    logger.info("review_added", product_id=str(product.id), user_id=str(user.id), rating=rating)
    return {"message": "Review added successfully"}


async def list_reviews(
    product_id: str,
    db: AsyncSession,
    page: Any = 1,
    limit: Any = 5,
    sort_by: str = "date",
) -> Dict[str, Any]:
    product = await CatalogService.get_product(product_id, db)
    paging = PageRequest.from_query(page, limit, default_limit=5)

    if sort_by == "rating":
        ordering = (Review.rating.desc(), Review.created_at.desc())
    else:
        ordering = (Review.created_at.desc(),)

    result = await db.execute(
        select(Review)
        .where(Review.product_id == product.id)
        .order_by(*ordering)
        .offset(paging.offset)
        .limit(paging.limit)
    )
    return {
        "reviews": [review_to_dict(r) for r in result.scalars().all()],
        "totalReviews": product.num_reviews,
        "averageRating": round(product.rating or 0.0, 2),
        "currentPage": paging.page,
        "totalPages": paging.total_pages(product.num_reviews),
    }


async def update_review(
    product_id: str, user: User, rating: int, comment: str, db: AsyncSession
) -> Dict[str, Any]:
    product = await CatalogService.get_product(product_id, db)
    review = await _own_review(product, user, db)

    review.rating = rating
    review.comment = comment.strip()
    await refresh_rating(product, db)

    logger.info("review_updated", review_id=str(review.id))
    return {"message": "Review updated successfully", "review": review_to_dict(review)}


async def delete_review(
    product_id: str, review_id: str, user: User, db: AsyncSession
) -> Dict[str, Any]:
    """
    Delete a review. Allowed for its author and for administrators.

    Raises:
        PermissionDenied: If the caller is neither
    """
    product = await CatalogService.get_product(product_id, db)
    review = await db.get(Review, parse_id(review_id, "Review"))
    if review is None or review.product_id != product.id:
        raise NotFoundError("Review")
    if review.user_id != user.id and user.role != "admin":
        raise PermissionDenied("Not authorized to delete this review")

    await db.delete(review)
    await refresh_rating(product, db)

    logger.info("review_deleted", review_id=str(review.id), deleted_by=str(user.id))
    return {"message": "Review deleted successfully"}


async def my_review(product_id: str, user: User, db: AsyncSession) -> Dict[str, Any]:
    product = await CatalogService.get_product(product_id, db)
    return {"review": review_to_dict(await _own_review(product, user, db))}
