"""
Cart routes. Every mutation returns the updated cart.
"""
from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core import cart
from storefront.database.connection import get_db
from storefront.database.models import User

from ..dependencies import get_current_user
from ..schemas import CartItemRequest, CartUpdateRequest

router = APIRouter(prefix="/cart", tags=["cart"])


@router.get("", summary="Get the cart")
async def get_cart(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    return await cart.get_cart(user.id, db)


@router.post("", summary="Add a product to the cart")
async def add_to_cart(
    request: CartItemRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    return await cart.add_item(user.id, request.product_id, request.quantity, db)


@router.patch("", summary="Change a cart line's quantity")
async def update_cart(
    request: CartUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    return await cart.update_item(user.id, request.product_id, request.quantity, db)


@router.delete("/{product_id}", summary="Remove a product from the cart")
async def remove_from_cart(
    product_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    return await cart.remove_item(user.id, product_id, db)


@router.delete("", summary="Empty the cart")
async def clear_cart(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    return await cart.clear_cart(user.id, db)
