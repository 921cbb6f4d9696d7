"""
Stripe Checkout and refunds, plus the webhook event handlers that turn
Stripe events into order changes.
"""
from typing import Any, Dict, List, Mapping, Optional, Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.config import get_settings
from storefront.core.catalog import CatalogService
from storefront.core.checkout_metadata import encode_cart, encode_shipping
from storefront.core.exceptions import OutOfStockError, PaymentError, ValidationError
from storefront.core.orders import OrderService
from storefront.core.serializers import parse_id
from storefront.database.models import User
from storefront.integrations.stripe_client import StripeClient, StripeError
from storefront.integrations.webhook_handler import WebhookHandler
from storefront.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


def _product_ref(item: Mapping[str, Any]) -> Any:
    """Cart items reference the product by id or embed the product document."""
    ref = item.get("productId") or item.get("product")
    if isinstance(ref, Mapping):
        ref = ref.get("id") or ref.get("_id")
    return ref


class PaymentService:
    """
    Checkout Session creation, refunds and webhook event handling.

    Line item prices always come from the catalog, never from the client.
    """

    def __init__(
        self,
        stripe_client: Optional[StripeClient] = None,
        order_service: Optional[OrderService] = None,
    ):
        """
        Args:
            stripe_client: Optional Stripe client
            order_service: Optional order service used by webhook handlers
        """
        self.settings = get_settings()
        self.stripe_client = stripe_client or StripeClient()
        self.order_service = order_service or OrderService(stripe_client=self.stripe_client)

    async def create_checkout_session(
        self,
        user: User,
        cart_items: Optional[Sequence[Mapping[str, Any]]],
        db: AsyncSession,
    ) -> Dict[str, Any]:
        """
        Start a hosted Checkout for the given cart.

        Returns:
            Dict[str, Any]: ``url`` to redirect the shopper to and the
            ``sessionId``

        Raises:
            ValidationError: If the cart is empty or an item is malformed
            NotFoundError: If a product does not exist
            OutOfStockError: If a quantity exceeds stock
            PaymentError: If Stripe fails
        """
        if not cart_items:
            raise ValidationError("Cart is empty")

        line_items: List[Dict[str, Any]] = []
        cart_lines = []
        for item in cart_items:
            ref = _product_ref(item)
            quantity = item.get("quantity")
            if not ref or not isinstance(quantity, int) or quantity < 1:
                raise ValidationError(
                    "Invalid product data: each item needs a product and quantity"
                )

            product = await CatalogService.get_product(parse_id(ref, "Product"), db)
            if quantity > product.stock:
                metrics.record_stock_rejection("checkout")
                raise OutOfStockError(f"Only {product.stock} items available in stock.")

            product_data: Dict[str, Any] = {"name": product.name}
            if product.images:
                product_data["images"] = [product.images[0]]
            line_items.append(
                {
                    "price_data": {
                        "currency": self.settings.stripe_currency,
                        "product_data": product_data,
                        "unit_amount": product.price_cents,
                    },
                    "quantity": quantity,
                }
            )
            cart_lines.append((product.id, quantity))

        metadata: Dict[str, str] = {
            "userId": str(user.id),
            "environment": self.settings.app_env,
            **encode_cart(cart_lines),
        }
        shipping = encode_shipping(user.shipping_address)
        if shipping:
            metadata["shipping"] = shipping

        try:
            session = await self.stripe_client.create_checkout_session(
                line_items=line_items,
                customer_email=user.email,
                metadata=metadata,
                success_url=(
                    f"{self.settings.client_url}/success?session_id={{CHECKOUT_SESSION_ID}}"
                ),
                cancel_url=f"{self.settings.client_url}/cart",
            )
        except StripeError as e:
            metrics.record_checkout_session("failed")
            raise PaymentError("Failed to create checkout session", status_code=502) from e

        if not getattr(session, "url", None):
            metrics.record_checkout_session("failed")
            raise PaymentError("Stripe did not return a checkout URL", status_code=502)

        metrics.record_checkout_session("created")
        logger.info("checkout_session_started", user_id=str(user.id), session_id=session.id)
        return {"url": session.url, "sessionId": session.id}

    async def refund(
        self,
        payment_intent_id: Optional[str],
        amount: Optional[float] = None,
        reason: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Refund a PaymentIntent in full, or partially when ``amount`` (dollars) is given.

        The order is marked refunded when Stripe reports ``charge.refunded``.
        """
        if not payment_intent_id:
            raise ValidationError("PaymentIntent ID is required")

        amount_cents = int(round(amount * 100)) if amount else None
        try:
            refund = await self.stripe_client.create_refund(
                payment_intent_id, amount_cents=amount_cents, reason=reason
            )
        except StripeError as e:
            metrics.record_refund("failed")
            raise PaymentError(
                "Refund failed", status_code=502 if e.retryable else 400, errors=[str(e)]
            ) from e

        metrics.record_refund("created")
        return {
            "message": "Refund initiated successfully",
            "refund": {
                "id": refund.id,
                "status": refund.status,
                "amount": refund.amount,
                "paymentIntent": payment_intent_id,
            },
        }

    # Webhook event handlers

    async def handle_checkout_completed(
        self, session: Dict[str, Any], db: AsyncSession
    ) -> Dict[str, Any]:
        return await self.order_service.create_from_checkout_session(session, db)

    @staticmethod
    async def handle_checkout_expired(session: Dict[str, Any], db: AsyncSession) -> Dict[str, Any]:
        logger.info("checkout_session_expired", session_id=session.get("id"))
        return {"logged": True}

    @staticmethod
    async def handle_payment_succeeded(intent: Dict[str, Any], db: AsyncSession) -> Dict[str, Any]:
        logger.info(
            "payment_intent_succeeded",
            payment_intent_id=intent.get("id"),
            amount=intent.get("amount"),
        )
        return {"logged": True}

    @staticmethod
    async def handle_payment_failed(intent: Dict[str, Any], db: AsyncSession) -> Dict[str, Any]:
        error = intent.get("last_payment_error") or {}
        logger.warning(
            "payment_intent_failed",
            payment_intent_id=intent.get("id"),
            failure_code=error.get("code"),
            failure_message=error.get("message"),
        )
        return {"logged": True}

    async def handle_charge_refunded(
        self, charge: Dict[str, Any], db: AsyncSession
    ) -> Dict[str, Any]:
        return await self.order_service.mark_refunded(charge, db)

    def register_webhook_handlers(self, webhook_handler: WebhookHandler) -> WebhookHandler:
        handlers = {
            "checkout.session.completed": self.handle_checkout_completed,
            "checkout.session.expired": self.handle_checkout_expired,
            "payment_intent.succeeded": self.handle_payment_succeeded,
            "payment_intent.payment_failed": self.handle_payment_failed,
            "charge.refunded": self.handle_charge_refunded,
        }
        for event_type, handler in handlers.items():
            webhook_handler.register_handler(event_type, handler)
        return webhook_handler
