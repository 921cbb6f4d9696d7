"""
Stripe payment routes: Checkout, webhooks and refunds.
"""
import time
from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.payments import PaymentService
from storefront.database.connection import get_db
from storefront.database.models import User
from storefront.integrations.webhook_handler import WebhookError, WebhookHandler
from storefront.monitoring.metrics import metrics

from ..dependencies import (
    get_current_user,
    get_payment_service,
    get_webhook_handler,
    require_admin,
)
from ..schemas import (
    CheckoutSessionRequest,
    CheckoutSessionResponse,
    RefundRequest,
    WebhookResponse,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post(
    "/create-checkout-session",
    response_model=CheckoutSessionResponse,
    summary="Start Stripe Checkout",
    description="Create a hosted Checkout Session priced from the catalog",
)
async def create_checkout_session(
    request: CheckoutSessionRequest,
    user: User = Depends(get_current_user),
    payments: PaymentService = Depends(get_payment_service),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    logger.info(
        "api_checkout_session_request",
        user_id=str(user.id),
        item_count=len(request.cart_items),
    )
    return await payments.create_checkout_session(user, request.cart_items, db)


@router.post(
    "/webhook",
    response_model=WebhookResponse,
    summary="Stripe webhook endpoint",
    description="Handle Stripe webhook events",
)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None, alias="Stripe-Signature"),
    handler: WebhookHandler = Depends(get_webhook_handler),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """
    Handle Stripe webhook events.

    Verifies the signature against the raw body, then routes the event with
    deduplication. Handler changes are committed before the event id is
    remembered.
    """
    start_time = time.time()
    body = await request.body()

    try:
        event = handler.verify_signature(body, stripe_signature)
    except WebhookError as e:
        logger.error("api_webhook_rejected", error=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    try:
        result = await handler.process_event(event, db)
    except WebhookError as e:
        metrics.record_webhook_event(event["type"], "failed", time.time() - start_time)
        logger.error("api_webhook_error", event_id=event["id"], error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook processing failed",
        )

    metrics.record_webhook_event(event["type"], result["status"], time.time() - start_time)
    return {"received": True, "status": result["status"], "event_id": event["id"]}


@router.post("/refund", summary="Refund a payment")
async def refund(
    request: RefundRequest,
    admin: User = Depends(require_admin),
    payments: PaymentService = Depends(get_payment_service),
) -> Dict[str, Any]:
    logger.info(
        "api_refund_request",
        payment_intent_id=request.payment_intent_id,
        admin_id=str(admin.id),
    )
    return await payments.refund(request.payment_intent_id, request.amount, request.reason)
