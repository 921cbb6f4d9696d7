"""Wishlist routes."""
from typing import Any, Dict

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core import wishlist
from storefront.database.connection import get_db
from storefront.database.models import User

from ..dependencies import get_current_user

router = APIRouter(prefix="/wishlist", tags=["wishlist"])


@router.get("", summary="Get the wishlist")
async def get_wishlist(
    page: int = Query(default=1),
    limit: int = Query(default=10),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    return await wishlist.get_wishlist(user.id, db, page=page, limit=limit)


@router.post("/{product_id}", summary="Save a product")
async def add_to_wishlist(
    product_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    return await wishlist.add_to_wishlist(user.id, product_id, db)


@router.delete("/{product_id}", summary="Remove a saved product")
async def remove_from_wishlist(
    product_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    return await wishlist.remove_from_wishlist(user.id, product_id, db)
