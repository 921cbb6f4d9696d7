"""
Unit tests for the Stripe client: error classification, retries and the
circuit breaker.
"""
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import ANY, MagicMock, patch

import pytest
import stripe

from storefront.integrations.stripe_client import (
    CircuitBreaker,
    StripeClient,
    StripeError,
    StripeErrorType,
)


class TestErrorClassification:
    @pytest.mark.unit
    @pytest.mark.parametrize(
        "error,expected",
        [
            (stripe.RateLimitError("Too many requests"), StripeErrorType.RATE_LIMIT),
            (stripe.APIConnectionError("Connection reset"), StripeErrorType.TRANSIENT),
            (stripe.APIError("Internal error"), StripeErrorType.TRANSIENT),
            (
                stripe.CardError("Card declined", "number", "card_declined"),
                StripeErrorType.PERMANENT,
            ),
            (
                stripe.InvalidRequestError("No such payment_intent", "id"),
                StripeErrorType.PERMANENT,
            ),
            (stripe.AuthenticationError("Invalid API key"), StripeErrorType.PERMANENT),
        ],
    )
    def test_classify(self, error: stripe.StripeError, expected: StripeErrorType) -> None:
        assert StripeClient._classify_error(error) is expected

    @pytest.mark.unit
    def test_only_permanent_errors_are_final(self) -> None:
        assert StripeError("x", StripeErrorType.TRANSIENT).retryable
        assert StripeError("x", StripeErrorType.RATE_LIMIT).retryable
        assert not StripeError("x", StripeErrorType.PERMANENT).retryable


class TestRetries:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_permanent_error_is_not_retried(self) -> None:
        client = StripeClient()
        with patch.object(
            stripe.Refund,
            "create",
            side_effect=stripe.InvalidRequestError("No such payment_intent", "payment_intent"),
        ) as create:
            with pytest.raises(StripeError) as exc_info:
                await client.create_refund("pi_missing")

        assert exc_info.value.error_type is StripeErrorType.PERMANENT
        assert create.call_count == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_transient_error_is_retried(self) -> None:
        """Two connection failures, then success (about 1.5s of backoff)."""
        client = StripeClient()
        refund = MagicMock(id="re_1", status="succeeded")
        with patch.object(
            stripe.Refund,
            "create",
            side_effect=[
                stripe.APIConnectionError("reset"),
                stripe.APIConnectionError("reset"),
                refund,
            ],
        ) as create:
            result = await client.create_refund("pi_1", amount_cents=500, reason="duplicate")

        assert result is refund
        assert create.call_count == 3
        create.assert_called_with(
            payment_intent="pi_1", amount=500, reason="duplicate", idempotency_key=ANY
        )

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_refund_retries_reuse_idempotency_key(self) -> None:
        """A refund created before the connection dropped is not created twice."""
        client = StripeClient()
        refund = MagicMock(id="re_1", status="succeeded")
        with patch.object(
            stripe.Refund,
            "create",
            side_effect=[stripe.APIConnectionError("reset"), refund],
        ) as create:
            await client.create_refund("pi_123", amount_cents=500)

        keys = {c.kwargs["idempotency_key"] for c in create.call_args_list}
        assert create.call_count == 2
        assert len(keys) == 1
        assert keys.pop().startswith("refund_")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_separate_refunds_get_separate_keys(self) -> None:
        client = StripeClient()
        with patch.object(
            stripe.Refund, "create", return_value=MagicMock(id="re_1", status="succeeded")
        ) as create:
            await client.create_refund("pi_123", amount_cents=500)
            await client.create_refund("pi_123", amount_cents=500)

        first, second = (c.kwargs["idempotency_key"] for c in create.call_args_list)
        assert first != second

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_checkout_session_retries_reuse_idempotency_key(self) -> None:
        client = StripeClient()
        session = MagicMock(id="cs_1", url="https://checkout.stripe.test/cs_1")
        with patch.object(
            stripe.checkout.Session,
            "create",
            side_effect=[stripe.APIConnectionError("reset"), session],
        ) as create:
            result = await client.create_checkout_session(
                line_items=[{"price_data": {}, "quantity": 1}],
                customer_email="shopper@example.com",
                metadata={"userId": "u1"},
                success_url="http://shop.test/success",
                cancel_url="http://shop.test/cart",
                idempotency_key="checkout_fixed",
            )

        assert result is session
        assert [c.kwargs["idempotency_key"] for c in create.call_args_list] == [
            "checkout_fixed",
            "checkout_fixed",
        ]
        assert create.call_args.kwargs["customer_email"] == "shopper@example.com"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_retrieve_payment_intent(self) -> None:
        client = StripeClient()
        intent = MagicMock(id="pi_1", status="succeeded")
        with patch.object(stripe.PaymentIntent, "retrieve", return_value=intent) as retrieve:
            assert await client.retrieve_payment_intent("pi_1") is intent

        retrieve.assert_called_once_with("pi_1")


class TestCircuitBreaker:
    @staticmethod
    def _fail() -> None:
        raise stripe.APIConnectionError("down")

    @pytest.mark.unit
    def test_opens_after_threshold(self) -> None:
        breaker = CircuitBreaker(failure_threshold=2, timeout=60)
        for _ in range(2):
            with pytest.raises(stripe.APIConnectionError):
                breaker.call(self._fail)

        assert breaker.state == "open"
        with pytest.raises(StripeError, match="Circuit breaker is open"):
            breaker.call(lambda: "never called")

    @pytest.mark.unit
    def test_half_open_recovers(self) -> None:
        breaker = CircuitBreaker(failure_threshold=1, timeout=0, success_threshold=2)
        with pytest.raises(stripe.APIConnectionError):
            breaker.call(self._fail)
        assert breaker.state == "open"
        breaker.last_failure_time -= 1

        assert breaker.call(lambda: "ok") == "ok"
        assert breaker.state == "half_open"
        breaker.call(lambda: "ok")
        assert breaker.state == "closed"

    @pytest.mark.unit
    def test_success_resets_failure_count(self) -> None:
        breaker = CircuitBreaker(failure_threshold=2)
        with pytest.raises(stripe.APIConnectionError):
            breaker.call(self._fail)
        breaker.call(lambda: None)

        assert breaker.failure_count == 0
        assert breaker.state == "closed"

    @pytest.mark.unit
    def test_failures_from_many_threads_are_all_counted(self) -> None:
        breaker = CircuitBreaker(failure_threshold=1000)

        def fail_many() -> None:
            for _ in range(50):
                with pytest.raises(stripe.APIConnectionError):
                    breaker.call(self._fail)

        with ThreadPoolExecutor(max_workers=8) as pool:
            for future in [pool.submit(fail_many) for _ in range(8)]:
                future.result()

        assert breaker.failure_count == 400
        assert breaker.state == "closed"
