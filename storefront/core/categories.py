"""Product categories."""
from typing import Any, Dict, Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.exceptions import ConflictError, NotFoundError, ValidationError
from storefront.core.pagination import PageRequest
from storefront.core.serializers import category_to_dict, parse_id, product_to_dict
from storefront.database.models import Category, Product

logger = structlog.get_logger(__name__)


async def _get(category_id: str, db: AsyncSession) -> Category:
    category = await db.get(Category, parse_id(category_id, "Category"))
    if category is None:
        raise NotFoundError("Category")
    return category


async def _ensure_unique_name(
    name: str, db: AsyncSession, exclude: Optional[Category] = None
) -> None:
    query = select(Category.id).where(func.lower(Category.name) == name.lower())
    if exclude is not None:
        query = query.where(Category.id != exclude.id)
    if (await db.execute(query)).first() is not None:
        raise ConflictError("Category already exists")


async def list_categories(db: AsyncSession) -> Dict[str, Any]:
    result = await db.execute(select(Category).order_by(Category.name))
    return {"data": [category_to_dict(c) for c in result.scalars().all()]}


async def get_category(category_id: str, db: AsyncSession) -> Dict[str, Any]:
    return {"data": category_to_dict(await _get(category_id, db))}


async def category_products(
    category_id: str, db: AsyncSession, page: Any = 1, limit: Any = 12
) -> Dict[str, Any]:
    category = await _get(category_id, db)
    paging = PageRequest.from_query(page, limit, default_limit=12)

    total = (
        await db.execute(select(func.count(Product.id)).where(Product.category_id == category.id))
    ).scalar_one()
    result = await db.execute(
        select(Product)
        .where(Product.category_id == category.id)
        .order_by(Product.created_at.desc())
        .offset(paging.offset)
        .limit(paging.limit)
    )
    return {
        "category": category_to_dict(category),
        "data": [product_to_dict(p) for p in result.scalars().all()],
        "pagination": {
            "totalItems": total,
            "currentPage": paging.page,
            "totalPages": paging.total_pages(total),
            "pageSize": paging.limit,
        },
    }


async def create_category(
    name: str, description: Optional[str], db: AsyncSession
) -> Dict[str, Any]:
    name = name.strip()
    await _ensure_unique_name(name, db)

    category = Category(name=name, description=description)
    db.add(category)
    await db.flush()

    logger.info("category_created", category_id=str(category.id), name=name)
    return {"message": "Category created successfully", "data": category_to_dict(category)}


async def update_category(
    category_id: str,
    db: AsyncSession,
    name: Optional[str] = None,
    description: Optional[str] = None,
) -> Dict[str, Any]:
    category = await _get(category_id, db)
    if name is not None:
        name = name.strip()
        await _ensure_unique_name(name, db, exclude=category)
        category.name = name
    if description is not None:
        category.description = description
    await db.flush()

    logger.info("category_updated", category_id=str(category.id))
    return {"message": "Category updated successfully", "data": category_to_dict(category)}


async def delete_category(category_id: str, db: AsyncSession) -> Dict[str, Any]:
    """
    Raises:
        ValidationError: If products still belong to the category
    """
    category = await _get(category_id, db)
    in_use = (
        await db.execute(select(func.count(Product.id)).where(Product.category_id == category.id))
    ).scalar_one()
    if in_use:
        raise ValidationError(
            f"Cannot delete category: {in_use} product(s) still assigned to it"
        )

    await db.delete(category)
    logger.info("category_deleted", category_id=str(category.id))
    return {"message": "Category deleted successfully"}
