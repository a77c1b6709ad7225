"""
Payment processor interface with Stripe and demo implementations.

The Stripe processor wraps the blocking Stripe SDK with exponential backoff
retries and runs calls in a worker thread. The API key is passed per request,
so the SDK's global configuration is never touched. The demo processor is
selected when no Stripe credentials are configured and synthesizes
deterministic intents that always succeed.
"""

import asyncio
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Optional

import stripe

from marketplace.core.config import Settings, get_settings
from marketplace.core.exceptions import UnexpectedError, ValidationError
from marketplace.core.logging import get_logger

logger = get_logger(__name__)

INTENT_SUCCEEDED = "succeeded"
INTENT_CANCELED = "canceled"
INTENT_FAILED_STATUSES = frozenset({"requires_payment_method", INTENT_CANCELED})


class PaymentProcessorError(UnexpectedError):
    """Raised when the payment processor rejects or fails a request."""

    error_code = "PAYMENT_PROCESSOR_ERROR"

    def __init__(self, message: str, code: Optional[str] = None, **context: Any):
        super().__init__(message, code=code, **context)
        self.code = code


class PaymentDeclinedError(PaymentProcessorError):
    """Raised when the card or payment method is declined."""

    status_code = 400
    error_code = "PAYMENT_DECLINED"


class WebhookVerificationError(ValidationError):
    """Raised when a webhook payload or signature cannot be verified."""

    error_code = "INVALID_WEBHOOK"


def to_minor_units(amount: Decimal) -> int:
    """Convert a currency amount to the processor's integer minor units."""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: int) -> Decimal:
    return (Decimal(amount) / 100).quantize(Decimal("0.01"))


@dataclass
class PaymentIntent:
    """Processor-neutral view of a payment intent."""

    id: str
    status: str
    amount: int
    currency: str
    client_secret: Optional[str] = None
    transaction_id: Optional[str] = None
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def order_id(self) -> Optional[uuid.UUID]:
        """Order id carried in the intent metadata, if any."""
        try:
            return uuid.UUID(self.metadata["order_id"])
        except (KeyError, ValueError):
            return None

    @classmethod
    def from_stripe(cls, intent: Any) -> "PaymentIntent":
        return cls(
            id=intent["id"],
            status=intent["status"],
            amount=intent.get("amount") or 0,
            currency=intent.get("currency") or "",
            client_secret=intent.get("client_secret"),
            transaction_id=intent.get("latest_charge"),
            metadata=dict(intent.get("metadata") or {}),
        )


@dataclass
class Refund:
    id: str
    status: str
    amount: Optional[int] = None


@dataclass
class WebhookEvent:
    """Verified webhook event; ``data`` is the event's object."""

    id: str
    type: str
    data: dict[str, Any]

    @property
    def payment_intent(self) -> PaymentIntent:
        return PaymentIntent.from_stripe(self.data)


class PaymentProcessor(ABC):
    """Operations the payment workflow needs from a processor."""

    demo_mode = False

    @abstractmethod
    async def create_intent(
        self,
        amount: Decimal,
        currency: str,
        order_id: uuid.UUID,
        metadata: Optional[dict[str, str]] = None,
    ) -> PaymentIntent:
        """Create an intent to collect ``amount`` for an order."""

    @abstractmethod
    async def retrieve_intent(self, intent_id: str) -> PaymentIntent:
        """Fetch the current state of an intent."""

    @abstractmethod
    async def create_refund(
        self,
        intent_id: str,
        amount: Optional[Decimal] = None,
        reason: Optional[str] = None,
    ) -> Refund:
        """Refund a captured intent, fully or partially."""

    @abstractmethod
    def construct_event(self, payload: bytes, signature: Optional[str]) -> WebhookEvent:
        """
        Verify a webhook delivery and parse its event.

        Raises:
            WebhookVerificationError: If the payload or signature is invalid
        """


class StripePaymentProcessor(PaymentProcessor):
    """
    Stripe-backed processor with error mapping and retry logic.

    Connection, rate-limit and API errors are retried with exponential
    backoff; other errors fail immediately.
    """

    def __init__(
        self,
        api_key: str,
        webhook_secret: Optional[str] = None,
        max_retries: int = 3,
        initial_backoff: float = 1.0,
        max_backoff: float = 32.0,
        backoff_multiplier: float = 2.0,
    ):
        """
        Initialize the Stripe processor.

        Args:
            api_key: Stripe secret API key, sent with every request
            webhook_secret: Webhook signing secret; webhooks fail closed without it
            max_retries: Maximum number of retry attempts
            initial_backoff: Initial backoff delay in seconds
            max_backoff: Maximum backoff delay in seconds
            backoff_multiplier: Backoff multiplier for exponential backoff
        """
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.max_retries = max_retries
        self.initial_backoff = initial_backoff
        self.max_backoff = max_backoff
        self.backoff_multiplier = backoff_multiplier

    def _calculate_backoff(self, attempt: int) -> float:
        return min(
            self.initial_backoff * (self.backoff_multiplier**attempt),
            self.max_backoff,
        )

    def _execute_with_retry(
        self,
        operation: str,
        func: Callable[..., Any],
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        """
        Execute a Stripe API call, retrying transient failures.

        Raises:
            PaymentDeclinedError: On card errors
            PaymentProcessorError: On any other Stripe error, or when retries
                are exhausted
        """
        kwargs["api_key"] = self.api_key

        for attempt in range(self.max_retries + 1):
            try:
                result = func(*args, **kwargs)
                if attempt > 0:
                    logger.info(
                        "Stripe operation succeeded after retry",
                        operation=operation,
                        attempt=attempt,
                    )
                return result

            except stripe.CardError as e:
                logger.warning(
                    "Stripe card error",
                    operation=operation,
                    code=e.code,
                    decline_code=getattr(e, "decline_code", None),
                )
                raise PaymentDeclinedError(
                    f"Card error: {e.user_message or str(e)}",
                    code=e.code,
                ) from e

            except (
                stripe.APIConnectionError,
                stripe.RateLimitError,
                stripe.APIError,
            ) as e:
                if attempt >= self.max_retries:
                    logger.error(
                        "Stripe operation failed after all retries",
                        operation=operation,
                        attempts=attempt + 1,
                        error=str(e),
                    )
                    raise PaymentProcessorError(
                        f"Payment processor unavailable: {e.user_message or str(e)}",
                        code=getattr(e, "code", None),
                    ) from e

                backoff = self._calculate_backoff(attempt)
                logger.warning(
                    "Stripe transient error, retrying",
                    operation=operation,
                    attempt=attempt,
                    backoff_seconds=backoff,
                    error_type=type(e).__name__,
                )
                time.sleep(backoff)

            except stripe.StripeError as e:
                logger.error(
                    "Stripe error",
                    operation=operation,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise PaymentProcessorError(
                    f"Stripe error: {e.user_message or str(e)}",
                    code=getattr(e, "code", None),
                ) from e

        raise PaymentProcessorError(f"Stripe operation {operation} did not run")

    async def _call(self, operation: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        return await asyncio.to_thread(
            self._execute_with_retry, operation, func, *args, **kwargs
        )

    async def create_intent(
        self,
        amount: Decimal,
        currency: str,
        order_id: uuid.UUID,
        metadata: Optional[dict[str, str]] = None,
    ) -> PaymentIntent:
        intent_metadata = dict(metadata or {})
        intent_metadata["order_id"] = str(order_id)

        logger.info(
            "Creating payment intent",
            amount=str(amount),
            currency=currency,
            order_id=str(order_id),
        )
        intent = await self._call(
            "create_payment_intent",
            stripe.PaymentIntent.create,
            amount=to_minor_units(amount),
            currency=currency.lower(),
            automatic_payment_methods={"enabled": True},
            metadata=intent_metadata,
            idempotency_key=f"order-{order_id}-{to_minor_units(amount)}",
        )
        logger.info("Payment intent created", payment_intent_id=intent["id"])
        return PaymentIntent.from_stripe(intent)

    async def retrieve_intent(self, intent_id: str) -> PaymentIntent:
        intent = await self._call(
            "retrieve_payment_intent",
            stripe.PaymentIntent.retrieve,
            intent_id,
        )
        return PaymentIntent.from_stripe(intent)

    async def create_refund(
        self,
        intent_id: str,
        amount: Optional[Decimal] = None,
        reason: Optional[str] = None,
    ) -> Refund:
        params: dict[str, Any] = {"payment_intent": intent_id}
        if amount is not None:
            params["amount"] = to_minor_units(amount)
        if reason:
            params["metadata"] = {"reason": reason}

        refund = await self._call("create_refund", stripe.Refund.create, **params)
        logger.info(
            "Refund created",
            payment_intent_id=intent_id,
            refund_id=refund["id"],
            status=refund["status"],
        )
        return Refund(id=refund["id"], status=refund["status"], amount=refund.get("amount"))

    def construct_event(self, payload: bytes, signature: Optional[str]) -> WebhookEvent:
        if not self.webhook_secret:
            logger.error("Webhook received without a configured signing secret")
            raise WebhookVerificationError("Webhook signing secret is not configured")
        if not signature:
            raise WebhookVerificationError("Missing webhook signature")

        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except ValueError as e:
            logger.error("Invalid webhook payload", error=str(e))
            raise WebhookVerificationError("Invalid webhook payload") from e
        except stripe.SignatureVerificationError as e:
            logger.error("Webhook signature verification failed", error=str(e))
            raise WebhookVerificationError("Webhook signature verification failed") from e

        logger.info("Webhook event verified", event_id=event["id"], event_type=event["type"])
        return WebhookEvent(
            id=event["id"],
            type=event["type"],
            data=dict(event["data"]["object"]),
        )


class DemoPaymentProcessor(PaymentProcessor):
    """
    Processor used when no Stripe credentials are configured.

    Intents are derived from the order id and always succeed; webhooks are
    refused since there is no signing secret to verify them with.
    """

    demo_mode = True

    def __init__(self, currency: str = "lkr"):
        self.currency = currency

    @staticmethod
    def intent_id_for(order_id: uuid.UUID) -> str:
        return f"pi_demo_{order_id.hex}"

    async def create_intent(
        self,
        amount: Decimal,
        currency: str,
        order_id: uuid.UUID,
        metadata: Optional[dict[str, str]] = None,
    ) -> PaymentIntent:
        intent_id = self.intent_id_for(order_id)
        logger.info("Demo payment intent created", payment_intent_id=intent_id)
        return PaymentIntent(
            id=intent_id,
            status="requires_payment_method",
            amount=to_minor_units(amount),
            currency=currency.lower(),
            client_secret=f"{intent_id}_secret_demo",
            metadata={**(metadata or {}), "order_id": str(order_id)},
        )

    async def retrieve_intent(self, intent_id: str) -> PaymentIntent:
        return PaymentIntent(
            id=intent_id,
            status=INTENT_SUCCEEDED,
            amount=0,
            currency=self.currency,
            transaction_id=intent_id,
        )

    async def create_refund(
        self,
        intent_id: str,
        amount: Optional[Decimal] = None,
        reason: Optional[str] = None,
    ) -> Refund:
        return Refund(
            id=f"re_demo_{intent_id.removeprefix('pi_demo_')}",
            status=INTENT_SUCCEEDED,
            amount=to_minor_units(amount) if amount is not None else None,
        )

    def construct_event(self, payload: bytes, signature: Optional[str]) -> WebhookEvent:
        logger.warning("Webhook rejected in demo payment mode")
        raise WebhookVerificationError("Webhooks are not accepted in demo payment mode")


def get_payment_processor(settings: Optional[Settings] = None) -> PaymentProcessor:
    """Stripe processor when a secret key is configured, else the demo processor."""
    settings = settings or get_settings()
    if settings.payments_demo_mode:
        return DemoPaymentProcessor(currency=settings.payment_currency)
    return StripePaymentProcessor(
        api_key=settings.stripe_secret_key,
        webhook_secret=settings.stripe_webhook_secret,
    )
