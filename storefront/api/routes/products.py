"""
Catalog and review routes.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core import reviews
from storefront.core.catalog import CatalogService
from storefront.database.connection import get_db
from storefront.database.models import User

from ..dependencies import get_current_user
from ..schemas import MessageResponse, ReviewRequest

router = APIRouter(prefix="/products", tags=["products"])

catalog = CatalogService()


@router.get("", summary="List products")
async def list_products(
    page: int = Query(default=1),
    limit: int = Query(default=12),
    sort_by: str = Query(default="createdAt", alias="sortBy"),
    order: str = Query(default="desc"),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    return await catalog.list_products(db, page=page, limit=limit, sort_by=sort_by, order=order)


@router.get("/featured", summary="Featured products")
async def featured_products(
    limit: int = Query(default=8),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    return await catalog.featured_products(db, limit=limit)


@router.get("/search", summary="Search products")
async def search_products(
    keyword: Optional[str] = None,
    category: Optional[str] = None,
    brand: Optional[str] = None,
    min_price: Optional[float] = Query(default=None, alias="minPrice"),
    max_price: Optional[float] = Query(default=None, alias="maxPrice"),
    sort_by: Optional[str] = Query(default=None, alias="sortBy"),
    order: str = Query(default="asc"),
    page: int = Query(default=1),
    limit: int = Query(default=10),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """
    Keyword search over name and description, filtered by category (id or
    name), brand and an inclusive price range.
    """
    return await catalog.search_products(
        db,
        keyword=keyword,
        category=category,
        brand=brand,
        min_price=min_price,
        max_price=max_price,
        sort_by=sort_by,
        order=order,
        page=page,
        limit=limit,
    )


@router.get("/{product_id}", summary="Get a product")
async def get_product(product_id: str, db: AsyncSession = Depends(get_db)) -> Dict[str, Any]:
    return await catalog.get_product_detail(product_id, db)


@router.post(
    "/{product_id}/reviews",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Review a product",
)
async def add_review(
    product_id: str,
    request: ReviewRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    return await reviews.add_review(product_id, user, request.rating, request.comment, db)


@router.get("/{product_id}/reviews", summary="List a product's reviews")
async def list_reviews(
    product_id: str,
    page: int = Query(default=1),
    limit: int = Query(default=5),
    sort_by: str = Query(default="date", alias="sortBy"),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    return await reviews.list_reviews(product_id, db, page=page, limit=limit, sort_by=sort_by)


@router.put("/{product_id}/reviews", summary="Update your review")
async def update_review(
    product_id: str,
    request: ReviewRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    return await reviews.update_review(product_id, user, request.rating, request.comment, db)


@router.delete(
    "/{product_id}/reviews/{review_id}",
    response_model=MessageResponse,
    summary="Delete a review",
)
async def delete_review(
    product_id: str,
    review_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    return await reviews.delete_review(product_id, review_id, user, db)


@router.get("/{product_id}/my-review", summary="Your review of a product")
async def my_review(
    product_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    return await reviews.my_review(product_id, user, db)
