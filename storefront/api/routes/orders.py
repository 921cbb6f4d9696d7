"""
Order routes for shoppers.
"""
from typing import Any, Dict, List

import structlog
from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.orders import OrderService
from storefront.database.connection import get_db
from storefront.database.models import User

from ..dependencies import get_current_user, get_order_service
from ..schemas import CreateOrderRequest

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Place an order",
    description="Record an order paid with a client-confirmed Stripe PaymentIntent",
)
async def create_order(
    request: CreateOrderRequest,
    response: Response,
    user: User = Depends(get_current_user),
    orders: OrderService = Depends(get_order_service),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """
    Place an order.

    Posting the same PaymentIntent again returns the existing order with
    status 200.
    """
    logger.info(
        "api_create_order_request",
        user_id=str(user.id),
        payment_intent_id=request.payment_intent_id,
    )
    body, created = await orders.place_order(
        user=user,
        items=[i.model_dump() for i in request.items] if request.items else None,
        shipping_address=request.shipping_address,
        payment_method=request.payment_method,
        total_amount=request.total_amount,
        payment_intent_id=request.payment_intent_id,
        db=db,
    )
    if not created:
        response.status_code = status.HTTP_200_OK
    return body


@router.get("/my-orders", summary="Your orders, newest first")
async def my_orders(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> List[Dict[str, Any]]:
    return await OrderService.my_orders(user, db)


@router.get("/{order_id}", summary="Get one of your orders")
async def get_order(
    order_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    return await OrderService.get_order(order_id, user, db)
