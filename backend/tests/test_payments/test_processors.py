"""
Tests for the Stripe and demo payment processors.

Stripe SDK calls are patched; no network access happens.
"""

import uuid
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
import stripe

from marketplace.core.config import Settings
from marketplace.core.exceptions import UnexpectedError
from marketplace.services.payments.processors import (
    DemoPaymentProcessor,
    PaymentDeclinedError,
    PaymentIntent,
    PaymentProcessorError,
    StripePaymentProcessor,
    WebhookVerificationError,
    from_minor_units,
    get_payment_processor,
    to_minor_units,
)


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def stripe_processor() -> StripePaymentProcessor:
    return StripePaymentProcessor(
        api_key="sk_test_123",
        webhook_secret="whsec_123",
        max_retries=2,
        initial_backoff=0,
    )


def stripe_intent(**overrides) -> dict:
    intent = {
        "id": "pi_123",
        "status": "requires_payment_method",
        "amount": 123450,
        "currency": "lkr",
        "client_secret": "pi_123_secret",
        "latest_charge": None,
        "metadata": {"order_id": str(uuid.UUID(int=1))},
    }
    intent.update(overrides)
    return intent


# ============================================================================
# Unit Tests - Amount Conversion
# ============================================================================


class TestMinorUnits:
    """Test conversion between amounts and minor units."""

    @pytest.mark.parametrize(
        "amount,expected",
        [(Decimal("1234.50"), 123450), (Decimal("0.005"), 1), (Decimal("10"), 1000)],
    )
    def test_to_minor_units(self, amount, expected):
        assert to_minor_units(amount) == expected

    def test_from_minor_units(self):
        assert from_minor_units(123450) == Decimal("1234.50")


class TestPaymentIntent:
    """Test the processor-neutral intent view."""

    def test_from_stripe(self):
        intent = PaymentIntent.from_stripe(stripe_intent(latest_charge="ch_1"))

        assert intent.id == "pi_123"
        assert intent.transaction_id == "ch_1"
        assert intent.order_id == uuid.UUID(int=1)

    def test_order_id_absent_or_malformed(self):
        assert PaymentIntent.from_stripe(stripe_intent(metadata={})).order_id is None
        assert (
            PaymentIntent.from_stripe(stripe_intent(metadata={"order_id": "x"})).order_id
            is None
        )


# ============================================================================
# Unit Tests - Stripe Processor
# ============================================================================


class TestStripePaymentProcessor:
    """Test the Stripe processor with the SDK patched."""

    async def test_create_intent(self, stripe_processor):
        """
        Verifies:
        - Amount is sent in minor units with a lower-cased currency
        - The order id is added to metadata
        - The API key and an idempotency key are passed per request
        """
        # Arrange
        order_id = uuid.uuid4()

        # Act
        with patch.object(
            stripe.PaymentIntent, "create", return_value=stripe_intent()
        ) as create:
            intent = await stripe_processor.create_intent(
                Decimal("1234.50"), "LKR", order_id, {"order_number": "ORD-1"}
            )

        # Assert
        assert intent.client_secret == "pi_123_secret"
        kwargs = create.call_args.kwargs
        assert kwargs["amount"] == 123450
        assert kwargs["currency"] == "lkr"
        assert kwargs["metadata"] == {"order_number": "ORD-1", "order_id": str(order_id)}
        assert kwargs["api_key"] == "sk_test_123"
        assert kwargs["idempotency_key"] == f"order-{order_id}-123450"

    async def test_transient_errors_are_retried(self, stripe_processor):
        with patch.object(
            stripe.PaymentIntent,
            "retrieve",
            side_effect=[
                stripe.APIConnectionError("connection reset"),
                stripe_intent(status="succeeded"),
            ],
        ) as retrieve:
            intent = await stripe_processor.retrieve_intent("pi_123")

        assert intent.status == "succeeded"
        assert retrieve.call_count == 2

    async def test_retries_exhausted(self, stripe_processor):
        with patch.object(
            stripe.PaymentIntent,
            "retrieve",
            side_effect=stripe.RateLimitError("slow down"),
        ) as retrieve:
            with pytest.raises(PaymentProcessorError) as exc_info:
                await stripe_processor.retrieve_intent("pi_123")

        assert retrieve.call_count == 3
        assert exc_info.value.status_code == 500
        assert isinstance(exc_info.value, UnexpectedError)
        assert exc_info.value.error_code == "PAYMENT_PROCESSOR_ERROR"

    async def test_card_error_is_not_retried(self, stripe_processor):
        error = stripe.CardError("Your card was declined.", None, "card_declined")
        with patch.object(stripe.Refund, "create", side_effect=error) as create:
            with pytest.raises(PaymentDeclinedError) as exc_info:
                await stripe_processor.create_refund("pi_123")

        assert create.call_count == 1
        assert exc_info.value.code == "card_declined"
        assert exc_info.value.status_code == 400

    async def test_partial_refund(self, stripe_processor):
        with patch.object(
            stripe.Refund,
            "create",
            return_value={"id": "re_1", "status": "succeeded", "amount": 5000},
        ) as create:
            refund = await stripe_processor.create_refund(
                "pi_123", amount=Decimal("50.00"), reason="Damaged"
            )

        assert refund.id == "re_1"
        kwargs = create.call_args.kwargs
        assert kwargs["payment_intent"] == "pi_123"
        assert kwargs["amount"] == 5000
        assert kwargs["metadata"] == {"reason": "Damaged"}

    def test_construct_event(self, stripe_processor):
        event = {
            "id": "evt_1",
            "type": "payment_intent.succeeded",
            "data": {"object": stripe_intent(status="succeeded")},
        }
        with patch.object(stripe.Webhook, "construct_event", return_value=event) as construct:
            result = stripe_processor.construct_event(b"{}", "t=1,v1=abc")

        construct.assert_called_once_with(b"{}", "t=1,v1=abc", "whsec_123")
        assert result.id == "evt_1"
        assert result.payment_intent.status == "succeeded"

    def test_bad_signature(self, stripe_processor):
        with patch.object(
            stripe.Webhook,
            "construct_event",
            side_effect=stripe.SignatureVerificationError("bad", "sig"),
        ):
            with pytest.raises(WebhookVerificationError):
                stripe_processor.construct_event(b"{}", "sig")

    def test_missing_signature(self, stripe_processor):
        with pytest.raises(WebhookVerificationError):
            stripe_processor.construct_event(b"{}", None)

    def test_missing_webhook_secret(self):
        processor = StripePaymentProcessor(api_key="sk_test_123")
        construct = MagicMock()

        with patch.object(stripe.Webhook, "construct_event", construct):
            with pytest.raises(WebhookVerificationError):
                processor.construct_event(b"{}", "sig")

        construct.assert_not_called()


# ============================================================================
# Unit Tests - Demo Processor
# ============================================================================


class TestDemoPaymentProcessor:
    """Test the processor used without Stripe credentials."""

    async def test_intent_is_deterministic(self):
        processor = DemoPaymentProcessor()
        order_id = uuid.uuid4()

        first = await processor.create_intent(Decimal("10.00"), "LKR", order_id)
        second = await processor.create_intent(Decimal("10.00"), "LKR", order_id)

        assert first.id == second.id == f"pi_demo_{order_id.hex}"
        assert first.amount == 1000
        assert first.order_id == order_id

    async def test_retrieve_always_succeeds(self):
        intent = await DemoPaymentProcessor().retrieve_intent("pi_demo_abc")

        assert intent.status == "succeeded"

    async def test_refund_id(self):
        refund = await DemoPaymentProcessor().create_refund("pi_demo_abc")

        assert refund.id == "re_demo_abc"

    def test_webhooks_refused(self):
        with pytest.raises(WebhookVerificationError):
            DemoPaymentProcessor().construct_event(b"{}", "sig")


class TestProcessorSelection:
    """Test picking a processor from settings."""

    def test_demo_without_secret_key(self):
        processor = get_payment_processor(Settings(stripe_secret_key=None))

        assert isinstance(processor, DemoPaymentProcessor)
        assert processor.demo_mode is True

    def test_stripe_with_secret_key(self):
        processor = get_payment_processor(
            Settings(stripe_secret_key="sk_test_123", stripe_webhook_secret="whsec_1")
        )

        assert isinstance(processor, StripePaymentProcessor)
        assert processor.webhook_secret == "whsec_1"
