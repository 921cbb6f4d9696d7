"""
Stripe webhook handler with signature verification and event deduplication.

Implements:
- Webhook signature verification
- Event deduplication using Redis
- Event type routing to registered handlers
"""
import json
from typing import Any, Awaitable, Callable, Dict, Optional

import redis.asyncio as aioredis
import stripe
import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.config import get_settings

logger = structlog.get_logger(__name__)

EventHandler = Callable[[Dict[str, Any], AsyncSession], Awaitable[Dict[str, Any]]]


class WebhookError(Exception):
    """Raised when webhook verification or processing fails."""

    pass


class WebhookHandler:
    """
    Handles Stripe webhook events with deduplication and routing.

    Processed event ids are remembered in Redis. If Redis is unavailable the
    event is processed anyway; handlers are written to tolerate redelivery.
    """

    def __init__(self, redis_client: Optional[aioredis.Redis] = None):
        """
        Args:
            redis_client: Optional Redis client for event deduplication
        """
        self.settings = get_settings()
        self.redis_client = redis_client
        self.event_handlers: Dict[str, EventHandler] = {}

    async def _ensure_redis(self) -> aioredis.Redis:
        """Ensure Redis client is initialized."""
        if self.redis_client is None:
            self.redis_client = aioredis.from_url(
                self.settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
        return self.redis_client

    def register_handler(self, event_type: str, handler: EventHandler) -> None:
        """
        Register a handler for a specific event type.

        Args:
            event_type: Stripe event type (e.g., 'checkout.session.completed')
            handler: Async callable taking the event's data object and a session
        """
        self.event_handlers[event_type] = handler
        logger.debug("webhook_handler_registered", event_type=event_type)

    def verify_signature(
        self, payload: bytes, signature: Optional[str], secret: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Verify the ``Stripe-Signature`` header and decode the event.

        Args:
            payload: Raw request body as bytes
            signature: Stripe-Signature header value
            secret: Optional webhook secret (uses config if not provided)

        Returns:
            Dict[str, Any]: The decoded event

        Raises:
            WebhookError: If signature verification fails
        """
        if not signature:
            raise WebhookError("Missing Stripe-Signature header")

        webhook_secret = secret or self.settings.stripe_webhook_secret
        try:
            stripe.WebhookSignature.verify_header(
                payload.decode("utf-8"),
                signature,
                webhook_secret,
                tolerance=stripe.Webhook.DEFAULT_TOLERANCE,
            )
            event = json.loads(payload)
        except stripe.SignatureVerificationError as e:
            logger.error("webhook_signature_verification_failed", error=str(e))
            raise WebhookError(f"Invalid webhook signature: {str(e)}")
        except (ValueError, UnicodeDecodeError) as e:
            logger.error("webhook_payload_invalid", error=str(e))
            raise WebhookError(f"Invalid webhook payload: {str(e)}")

        if not isinstance(event, dict) or "id" not in event or "type" not in event:
            raise WebhookError("Invalid webhook payload: not a Stripe event")

        logger.info(
            "webhook_signature_verified",
            event_id=event["id"],
            event_type=event["type"],
        )
        return event

    async def is_event_processed(self, event_id: str) -> bool:
        """Check if webhook event has already been processed."""
        try:
            redis = await self._ensure_redis()
            return bool(await redis.exists(f"webhook:processed:{event_id}"))
        except Exception as e:
            logger.warning("webhook_dedup_check_error", error=str(e), event_id=event_id)
            return False

    async def mark_event_processed(self, event_id: str) -> None:
        """Remember a processed event id for ``webhook_dedup_ttl`` seconds."""
        try:
            redis = await self._ensure_redis()
            await redis.setex(
                f"webhook:processed:{event_id}", self.settings.webhook_dedup_ttl, "1"
            )
        except Exception as e:
            logger.warning("webhook_mark_processed_error", error=str(e), event_id=event_id)

    async def process_event(self, event: Dict[str, Any], db: AsyncSession) -> Dict[str, Any]:
        """
        Route a verified event to its handler.

        The handler's changes are committed before the event id is marked
        processed.

        Returns:
            Dict[str, Any]: Processing result with a ``status`` of
            ``success``, ``duplicate`` or ``ignored``

        Raises:
            WebhookError: If the handler or the commit fails
        """
        event_id = event["id"]
        event_type = event["type"]
        event_data = event.get("data", {}).get("object", {})

        if await self.is_event_processed(event_id):
            logger.info("webhook_event_already_processed", event_id=event_id, event_type=event_type)
            return {"status": "duplicate", "event_id": event_id}

        handler = self.event_handlers.get(event_type)
        if handler is None:
            logger.info("webhook_unhandled_event_type", event_id=event_id, event_type=event_type)
            await self.mark_event_processed(event_id)
            return {"status": "ignored", "event_id": event_id}

        try:
            result = await handler(event_data, db)
            # A redelivery must not be dropped as a duplicate if the commit fails
            await db.commit()
        except Exception as e:
            logger.error(
                "webhook_event_processing_failed",
                event_id=event_id,
                event_type=event_type,
                error=str(e),
            )
            raise WebhookError(f"Failed to process event {event_id}: {str(e)}") from e

        await self.mark_event_processed(event_id)
        logger.info("webhook_event_processed", event_id=event_id, event_type=event_type)
        return {"status": "success", "event_id": event_id, "result": result}

    async def close(self) -> None:
        """Close Redis connection."""
        if self.redis_client is not None:
            await self.redis_client.aclose()
            self.redis_client = None
