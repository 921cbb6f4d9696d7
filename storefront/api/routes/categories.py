"""
Category routes. Reads are public; writes need an administrator.
"""
from typing import Any, Dict

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core import categories
from storefront.database.connection import get_db
from storefront.database.models import User

from ..dependencies import require_admin
from ..schemas import CategoryRequest, CategoryUpdateRequest, MessageResponse

router = APIRouter(prefix="/category", tags=["categories"])


@router.get("", summary="List categories")
async def list_categories(db: AsyncSession = Depends(get_db)) -> Dict[str, Any]:
    return await categories.list_categories(db)


@router.get("/{category_id}", summary="Get a category")
async def get_category(category_id: str, db: AsyncSession = Depends(get_db)) -> Dict[str, Any]:
    return await categories.get_category(category_id, db)


@router.get("/{category_id}/products", summary="Products in a category")
async def category_products(
    category_id: str,
    page: int = Query(default=1),
    limit: int = Query(default=12),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    return await categories.category_products(category_id, db, page=page, limit=limit)


@router.post("", status_code=status.HTTP_201_CREATED, summary="Create a category")
async def create_category(
    request: CategoryRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    return await categories.create_category(request.name, request.description, db)


@router.patch("/{category_id}", summary="Update a category")
async def update_category(
    category_id: str,
    request: CategoryUpdateRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    return await categories.update_category(
        category_id, db, name=request.name, description=request.description
    )


@router.delete("/{category_id}", response_model=MessageResponse, summary="Delete a category")
async def delete_category(
    category_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    return await categories.delete_category(category_id, db)
