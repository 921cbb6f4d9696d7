"""
Stripe API client with retry logic and error classification.

Implements:
- Exponential backoff for transient errors
- Circuit breaker pattern
- Checkout Session creation for the storefront cart
- PaymentIntent retrieval for order verification
- Refunds
"""
import asyncio
import threading
import time
import uuid
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import stripe
import structlog
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from storefront.config import get_settings
from storefront.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


class StripeErrorType(Enum):
    """Classification of Stripe errors for retry logic."""

    TRANSIENT = "transient"  # Retry these
    PERMANENT = "permanent"  # Don't retry these
    RATE_LIMIT = "rate_limit"  # Retry with longer backoff


class StripeError(Exception):
    """Base exception for Stripe-related errors."""

    def __init__(
        self,
        message: str,
        error_type: StripeErrorType,
        original_error: Optional[Exception] = None,
    ):
        """
        Initialize Stripe error.

        Args:
            message: Error message
            error_type: Classification of error
            original_error: Original Stripe exception
        """
        super().__init__(message)
        self.error_type = error_type
        self.original_error = original_error

    @property
    def retryable(self) -> bool:
        return self.error_type is not StripeErrorType.PERMANENT


class CircuitBreaker:
    """
    Circuit breaker for Stripe API calls.

    Stops sending requests for ``timeout`` seconds after
    ``failure_threshold`` consecutive failures.

    Calls run on worker threads, so counters and state are only touched
    while holding ``_lock``.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        timeout: int = 60,
        success_threshold: int = 2,
    ):
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.success_threshold = success_threshold
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time: Optional[float] = None
        self.state = "closed"  # closed, open, half_open
        self._lock = threading.Lock()

    def call(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """
        Execute function with circuit breaker protection.

        Raises:
            StripeError: If circuit is open
        """
        with self._lock:
            if self.state == "open":
                if (
                    self.last_failure_time
                    and time.time() - self.last_failure_time > self.timeout
                ):
                    self._set_state("half_open")
                    self.success_count = 0
                else:
                    raise StripeError(
                        "Circuit breaker is open",
                        StripeErrorType.TRANSIENT,
                    )

        try:
            result = func(*args, **kwargs)
        except Exception:
            self.on_failure()
            raise
        self.on_success()
        return result

    def _set_state(self, state: str) -> None:
        self.state = state
        metrics.set_circuit_breaker_state(state)
        logger.info("circuit_breaker_state_changed", state=state)

    def on_success(self) -> None:
        """Record successful call."""
        with self._lock:
            self.failure_count = 0
            if self.state == "half_open":
                self.success_count += 1
                if self.success_count >= self.success_threshold:
                    self._set_state("closed")

    def on_failure(self) -> None:
        """Record failed call."""
        with self._lock:
            self.failure_count += 1
            self.last_failure_time = time.time()
            if self.failure_count >= self.failure_threshold and self.state != "open":
                logger.warning("circuit_breaker_opened", failure_count=self.failure_count)
                self._set_state("open")


def _is_retryable(error: BaseException) -> bool:
    return isinstance(error, StripeError) and error.retryable


_retry_policy = retry(
    retry=retry_if_exception(_is_retryable),
    stop=stop_after_attempt(4),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=8),
    reraise=True,
)


class StripeClient:
    """
    Wrapper for the Stripe SDK.

    The SDK is synchronous, so every call runs in a worker thread behind the
    circuit breaker. SDK exceptions are translated into ``StripeError``.
    """

    def __init__(self) -> None:
        settings = get_settings()
        stripe.api_key = settings.stripe_secret_key
        stripe.api_version = settings.stripe_api_version
        self.settings = settings
        self.circuit_breaker = CircuitBreaker()

        logger.info(
            "stripe_client_initialized",
            api_version=settings.stripe_api_version,
            test_mode=settings.is_test_mode,
        )

    @staticmethod
    def _classify_error(error: stripe.StripeError) -> StripeErrorType:
        """Classify Stripe error for retry logic."""
        if isinstance(error, stripe.RateLimitError):
            return StripeErrorType.RATE_LIMIT
        if isinstance(error, (stripe.APIConnectionError, stripe.APIError)):
            return StripeErrorType.TRANSIENT
        if isinstance(
            error,
            (
                stripe.CardError,
                stripe.InvalidRequestError,
                stripe.AuthenticationError,
                stripe.PermissionError,
            ),
        ):
            return StripeErrorType.PERMANENT
        # Unknown errors are treated as transient
        return StripeErrorType.TRANSIENT

    async def _call(self, operation: str, func: Callable[[], Any]) -> Any:
        start = time.time()
        try:
            result = await asyncio.to_thread(self.circuit_breaker.call, func)
        except stripe.StripeError as e:
            error_type = self._classify_error(e)
            metrics.record_stripe_api_call(operation, "error", time.time() - start)
            metrics.record_stripe_api_error(error_type.value)
            logger.error(
                "stripe_api_error",
                operation=operation,
                error_type=error_type.value,
                error_code=getattr(e, "code", None),
                error_message=str(e),
            )
            raise StripeError(str(e), error_type, original_error=e) from e
        metrics.record_stripe_api_call(operation, "success", time.time() - start)
        return result

    async def create_checkout_session(
        self,
        line_items: List[Dict[str, Any]],
        customer_email: Optional[str],
        metadata: Dict[str, str],
        success_url: str,
        cancel_url: str,
        idempotency_key: Optional[str] = None,
    ) -> Any:
        """
        Create a hosted Checkout Session for a cart.

        Args:
            line_items: Stripe ``line_items`` with inline ``price_data``
            customer_email: Prefilled customer email
            metadata: String metadata echoed back on the completion webhook
            success_url: Redirect after payment
            cancel_url: Redirect when the shopper backs out
            idempotency_key: Key shared by every retry of this request
                (generated when not given)

        Returns:
            stripe.checkout.Session: The created session
        """
        idempotency_key = idempotency_key or f"checkout_{uuid.uuid4().hex}"
        logger.info(
            "creating_checkout_session",
            line_item_count=len(line_items),
            user_id=metadata.get("userId"),
            idempotency_key=idempotency_key,
        )
        return await self._create_checkout_session(
            line_items, customer_email, metadata, success_url, cancel_url, idempotency_key
        )

    @_retry_policy
    async def _create_checkout_session(
        self,
        line_items: List[Dict[str, Any]],
        customer_email: Optional[str],
        metadata: Dict[str, str],
        success_url: str,
        cancel_url: str,
        idempotency_key: str,
    ) -> Any:
        def _create() -> Any:
            params: Dict[str, Any] = {
                "payment_method_types": ["card"],
                "line_items": line_items,
                "mode": "payment",
                "metadata": metadata,
                "success_url": success_url,
                "cancel_url": cancel_url,
                "shipping_address_collection": {
                    "allowed_countries": self.settings.get_allowed_countries_list(),
                },
                "automatic_tax": {"enabled": True},
            }
            if customer_email:
                params["customer_email"] = customer_email
            return stripe.checkout.Session.create(idempotency_key=idempotency_key, **params)

        session = await self._call("create_checkout_session", _create)
        logger.info("checkout_session_created", session_id=session.id)
        return session

    @_retry_policy
    async def retrieve_payment_intent(self, payment_intent_id: str) -> Any:
        """
        Retrieve a PaymentIntent by ID.

        Returns:
            stripe.PaymentIntent: Retrieved payment intent
        """
        logger.info("retrieving_payment_intent", payment_intent_id=payment_intent_id)
        return await self._call(
            "retrieve_payment_intent",
            lambda: stripe.PaymentIntent.retrieve(payment_intent_id),
        )

    async def create_refund(
        self,
        payment_intent_id: str,
        amount_cents: Optional[int] = None,
        reason: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> Any:
        """
        Create a full or partial refund for a PaymentIntent.

        A retry after a dropped connection reuses the idempotency key, so
        Stripe returns the refund it already made instead of a second one.

        Returns:
            stripe.Refund: Created refund
        """
        idempotency_key = idempotency_key or f"refund_{uuid.uuid4().hex}"
        logger.info(
            "creating_refund",
            payment_intent_id=payment_intent_id,
            amount_cents=amount_cents,
            idempotency_key=idempotency_key,
        )
        return await self._create_refund(payment_intent_id, amount_cents, reason, idempotency_key)

    @_retry_policy
    async def _create_refund(
        self,
        payment_intent_id: str,
        amount_cents: Optional[int],
        reason: Optional[str],
        idempotency_key: str,
    ) -> Any:
        def _create_refund() -> Any:
            kwargs: Dict[str, Any] = {"payment_intent": payment_intent_id}
            if amount_cents:
                kwargs["amount"] = amount_cents
            if reason:
                kwargs["reason"] = reason
            return stripe.Refund.create(idempotency_key=idempotency_key, **kwargs)

        refund = await self._call("create_refund", _create_refund)
        logger.info("refund_created", refund_id=refund.id, status=refund.status)
        return refund
