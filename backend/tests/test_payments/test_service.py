"""
Test suite for PaymentService.

Covers intent creation, confirmation against the processor, supplier
refunds, webhook handling with the event ledger and payment history. The
demo processor stands in for Stripe unless a test needs to script events.
"""

import uuid
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from marketplace.core.config import get_settings
from marketplace.database.models.notification import NotificationType
from marketplace.database.models.order import OrderStatus, PaymentStatus
from marketplace.services.orders.repository import OrderRepository
from marketplace.services.orders.service import OrderAccessError, OrderNotFoundError
from marketplace.services.orders.state_machine import InvalidTransitionError
from marketplace.services.payments.processors import (
    DemoPaymentProcessor,
    PaymentIntent,
    PaymentProcessor,
    WebhookEvent,
    WebhookVerificationError,
)
from marketplace.services.payments.repository import PaymentRepository
from marketplace.services.payments.service import (
    PaymentAlreadyCompletedError,
    PaymentService,
    PaymentValidationError,
)


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def mock_order_repository() -> AsyncMock:
    repository = AsyncMock(spec=OrderRepository)
    repository.save.side_effect = lambda order: order
    return repository


@pytest.fixture
def mock_payment_repository() -> AsyncMock:
    repository = AsyncMock(spec=PaymentRepository)
    repository.record_event.return_value = True
    return repository


@pytest.fixture
def payment_service(
    mock_order_repository, mock_payment_repository, mock_notification_service
) -> PaymentService:
    return PaymentService(
        order_repository=mock_order_repository,
        payment_repository=mock_payment_repository,
        processor=DemoPaymentProcessor(),
        notification_service=mock_notification_service,
    )


@pytest.fixture
def scripted_processor() -> AsyncMock:
    processor = AsyncMock(spec=PaymentProcessor)
    processor.demo_mode = False
    return processor


@pytest.fixture
def webhook_service(
    mock_order_repository,
    mock_payment_repository,
    mock_notification_service,
    scripted_processor,
) -> PaymentService:
    return PaymentService(
        order_repository=mock_order_repository,
        payment_repository=mock_payment_repository,
        processor=scripted_processor,
        notification_service=mock_notification_service,
    )


def intent_event(event_type: str, order, intent_status: str, amount: int = 20000) -> WebhookEvent:
    return WebhookEvent(
        id=f"evt_{uuid.uuid4().hex[:12]}",
        type=event_type,
        data={
            "id": order.payment_intent_id,
            "status": intent_status,
            "amount": amount,
            "currency": "lkr",
            "latest_charge": "ch_123",
            "metadata": {"order_id": str(order.id)},
        },
    )


# ============================================================================
# Unit Tests - Payment Intents
# ============================================================================


class TestCreatePaymentIntent:
    """Test creating payment intents."""

    async def test_demo_intent(
        self, payment_service, mock_order_repository, make_order, buyer_actor, supplier_actor
    ):
        """
        Verifies:
        - The intent id is derived from the order id
        - The order moves to payment processing with the intent recorded
        - The response reports demo mode
        """
        # Arrange
        order = make_order(buyer=buyer_actor.party, supplier=supplier_actor.party)
        mock_order_repository.get_by_id.return_value = order

        # Act
        result = await payment_service.create_payment_intent(order.id, buyer_actor)

        # Assert
        assert result["payment_intent_id"] == f"pi_demo_{order.id.hex}"
        assert result["client_secret"] == f"pi_demo_{order.id.hex}_secret_demo"
        assert result["amount"] == Decimal("200.00")
        assert result["currency"] == get_settings().payment_currency
        assert result["demo_mode"] is True
        assert order.payment_status == PaymentStatus.PROCESSING
        assert order.payment_intent_id == result["payment_intent_id"]
        mock_order_repository.save.assert_awaited_once_with(order)

    async def test_only_buyer_pays(
        self, payment_service, mock_order_repository, make_order, buyer_actor, supplier_actor
    ):
        order = make_order(buyer=buyer_actor.party, supplier=supplier_actor.party)
        mock_order_repository.get_by_id.return_value = order

        with pytest.raises(OrderAccessError):
            await payment_service.create_payment_intent(order.id, supplier_actor)

    async def test_already_paid(
        self, payment_service, mock_order_repository, make_order, buyer_actor, supplier_actor
    ):
        order = make_order(
            buyer=buyer_actor.party,
            supplier=supplier_actor.party,
            payment_status=PaymentStatus.COMPLETED,
        )
        mock_order_repository.get_by_id.return_value = order

        with pytest.raises(PaymentAlreadyCompletedError):
            await payment_service.create_payment_intent(order.id, buyer_actor)

    async def test_amount_must_match_total(
        self, payment_service, mock_order_repository, make_order, buyer_actor, supplier_actor
    ):
        order = make_order(buyer=buyer_actor.party, supplier=supplier_actor.party)
        mock_order_repository.get_by_id.return_value = order

        with pytest.raises(PaymentValidationError):
            await payment_service.create_payment_intent(
                order.id, buyer_actor, amount=Decimal("150.00")
            )

    async def test_cancelled_order_cannot_be_paid(
        self, payment_service, mock_order_repository, make_order, buyer_actor, supplier_actor
    ):
        order = make_order(
            buyer=buyer_actor.party,
            supplier=supplier_actor.party,
            status=OrderStatus.CANCELLED,
        )
        mock_order_repository.get_by_id.return_value = order

        with pytest.raises(PaymentValidationError):
            await payment_service.create_payment_intent(order.id, buyer_actor)

    async def test_missing_order(self, payment_service, mock_order_repository, buyer_actor):
        mock_order_repository.get_by_id.return_value = None

        with pytest.raises(OrderNotFoundError):
            await payment_service.create_payment_intent(uuid.uuid4(), buyer_actor)


# ============================================================================
# Unit Tests - Confirmation
# ============================================================================


class TestConfirmPayment:
    """Test confirming payments against the processor."""

    async def test_demo_confirmation_completes_and_confirms_order(
        self,
        payment_service,
        mock_order_repository,
        mock_notification_service,
        make_order,
        buyer_actor,
        supplier_actor,
    ):
        """
        Verifies:
        - Payment completes with the order total as paid amount
        - A pending order becomes confirmed
        - The supplier is notified of the payment
        """
        # Arrange
        order = make_order(
            buyer=buyer_actor.party,
            supplier=supplier_actor.party,
            payment_status=PaymentStatus.PROCESSING,
        )
        order.payment_intent_id = DemoPaymentProcessor.intent_id_for(order.id)
        mock_order_repository.get_by_payment_intent_id.return_value = order

        # Act
        result = await payment_service.confirm_payment(order.payment_intent_id, buyer_actor)

        # Assert
        assert result.payment_status == PaymentStatus.COMPLETED
        assert result.paid_amount == Decimal("200.00")
        assert result.payment_date is not None
        assert result.status == OrderStatus.CONFIRMED
        assert result.status_history[-1].notes == "Payment completed"
        kwargs = mock_notification_service.notify.call_args.kwargs
        assert kwargs["recipient"] == supplier_actor.party
        assert kwargs["notification_type"] == NotificationType.PAYMENT_SUCCESSFUL

    async def test_confirming_twice_is_idempotent(
        self,
        payment_service,
        mock_order_repository,
        mock_notification_service,
        make_order,
        buyer_actor,
        supplier_actor,
    ):
        order = make_order(
            buyer=buyer_actor.party,
            supplier=supplier_actor.party,
            payment_status=PaymentStatus.COMPLETED,
            status=OrderStatus.CONFIRMED,
            payment_intent_id="pi_demo_x",
        )
        mock_order_repository.get_by_payment_intent_id.return_value = order

        await payment_service.confirm_payment("pi_demo_x", buyer_actor)

        assert len(order.status_history) == 1
        mock_notification_service.notify.assert_not_awaited()

    async def test_failed_intent_marks_payment_failed(
        self,
        webhook_service,
        scripted_processor,
        mock_order_repository,
        mock_notification_service,
        make_order,
        buyer_actor,
        supplier_actor,
    ):
        order = make_order(
            buyer=buyer_actor.party,
            supplier=supplier_actor.party,
            payment_status=PaymentStatus.PROCESSING,
            payment_intent_id="pi_123",
        )
        scripted_processor.retrieve_intent.return_value = PaymentIntent(
            id="pi_123",
            status="requires_payment_method",
            amount=20000,
            currency="lkr",
            metadata={"order_id": str(order.id)},
        )
        mock_order_repository.get_by_id.return_value = order

        result = await webhook_service.confirm_payment("pi_123", buyer_actor)

        assert result.payment_status == PaymentStatus.FAILED
        assert result.status == OrderStatus.PENDING
        kwargs = mock_notification_service.notify.call_args.kwargs
        assert kwargs["recipient"] == buyer_actor.party
        assert kwargs["notification_type"] == NotificationType.PAYMENT_FAILED

    async def test_unknown_intent(self, payment_service, mock_order_repository, buyer_actor):
        mock_order_repository.get_by_payment_intent_id.return_value = None

        with pytest.raises(OrderNotFoundError):
            await payment_service.confirm_payment("pi_demo_missing", buyer_actor)

    async def test_only_buyer_confirms(
        self, payment_service, mock_order_repository, make_order, buyer_actor, supplier_actor
    ):
        order = make_order(
            buyer=buyer_actor.party,
            supplier=supplier_actor.party,
            payment_intent_id="pi_demo_x",
        )
        mock_order_repository.get_by_payment_intent_id.return_value = order

        with pytest.raises(OrderAccessError):
            await payment_service.confirm_payment("pi_demo_x", supplier_actor)


# ============================================================================
# Unit Tests - Refunds
# ============================================================================


class TestRefundPayment:
    """Test supplier refunds."""

    async def test_refund_cancels_order(
        self,
        payment_service,
        mock_order_repository,
        mock_notification_service,
        make_order,
        buyer_actor,
        supplier_actor,
    ):
        """
        Verifies:
        - Payment becomes refunded and the order cancelled
        - The buyer is notified with the refunded amount
        """
        # Arrange
        order = make_order(
            buyer=buyer_actor.party,
            supplier=supplier_actor.party,
            status=OrderStatus.CONFIRMED,
            payment_status=PaymentStatus.COMPLETED,
            payment_intent_id="pi_demo_abc",
        )
        order.paid_amount = Decimal("200.00")
        mock_order_repository.get_by_id.return_value = order

        # Act
        result = await payment_service.refund_payment(
            order.id, supplier_actor, amount=Decimal("50.00"), reason="Damaged"
        )

        # Assert
        assert result.payment_status == PaymentStatus.REFUNDED
        assert result.status == OrderStatus.CANCELLED
        assert result.status_history[-1].notes == "Damaged"
        kwargs = mock_notification_service.notify.call_args.kwargs
        assert kwargs["recipient"] == buyer_actor.party
        assert kwargs["notification_type"] == NotificationType.PAYMENT_REFUNDED
        assert kwargs["amount"] == Decimal("50.00")

    async def test_refund_requires_completed_payment(
        self, payment_service, mock_order_repository, make_order, buyer_actor, supplier_actor
    ):
        order = make_order(buyer=buyer_actor.party, supplier=supplier_actor.party)
        mock_order_repository.get_by_id.return_value = order

        with pytest.raises(PaymentValidationError):
            await payment_service.refund_payment(order.id, supplier_actor)

    async def test_refund_amount_cannot_exceed_paid(
        self, payment_service, mock_order_repository, make_order, buyer_actor, supplier_actor
    ):
        order = make_order(
            buyer=buyer_actor.party,
            supplier=supplier_actor.party,
            status=OrderStatus.CONFIRMED,
            payment_status=PaymentStatus.COMPLETED,
            payment_intent_id="pi_demo_abc",
        )
        mock_order_repository.get_by_id.return_value = order

        with pytest.raises(PaymentValidationError):
            await payment_service.refund_payment(
                order.id, supplier_actor, amount=Decimal("200.01")
            )

    async def test_refund_of_shipped_order_is_rejected_before_processor(
        self,
        webhook_service,
        scripted_processor,
        mock_order_repository,
        make_order,
        buyer_actor,
        supplier_actor,
    ):
        order = make_order(
            buyer=buyer_actor.party,
            supplier=supplier_actor.party,
            status=OrderStatus.SHIPPED,
            payment_status=PaymentStatus.COMPLETED,
            payment_intent_id="pi_123",
        )
        mock_order_repository.get_by_id.return_value = order

        with pytest.raises(InvalidTransitionError):
            await webhook_service.refund_payment(order.id, supplier_actor)

        scripted_processor.create_refund.assert_not_awaited()
        assert order.payment_status == PaymentStatus.COMPLETED

    async def test_payment_settled_after_cancellation_can_be_refunded(
        self,
        payment_service,
        mock_order_repository,
        mock_notification_service,
        make_order,
        buyer_actor,
        supplier_actor,
    ):
        """
        Verifies:
        - A payment completing on a cancelled order leaves it cancelled
        - The supplier can still refund it
        - No extra status history entry is appended
        """
        # Arrange
        order = make_order(
            buyer=buyer_actor.party,
            supplier=supplier_actor.party,
            status=OrderStatus.CANCELLED,
            payment_status=PaymentStatus.PROCESSING,
            payment_intent_id="pi_demo_x",
        )
        mock_order_repository.get_by_payment_intent_id.return_value = order
        mock_order_repository.get_by_id.return_value = order
        history_length = len(order.status_history)

        # Act
        await payment_service.confirm_payment("pi_demo_x")
        assert order.status == OrderStatus.CANCELLED
        assert order.payment_status == PaymentStatus.COMPLETED

        result = await payment_service.refund_payment(order.id, supplier_actor)

        # Assert
        assert result.payment_status == PaymentStatus.REFUNDED
        assert result.status == OrderStatus.CANCELLED
        assert len(result.status_history) == history_length
        kwargs = mock_notification_service.notify.call_args.kwargs
        assert kwargs["recipient"] == buyer_actor.party
        assert kwargs["notification_type"] == NotificationType.PAYMENT_REFUNDED
        assert kwargs["amount"] == Decimal("200.00")

    async def test_rejected_order_refund_keeps_status(
        self, payment_service, mock_order_repository, make_order, buyer_actor, supplier_actor
    ):
        order = make_order(
            buyer=buyer_actor.party,
            supplier=supplier_actor.party,
            status=OrderStatus.REJECTED,
            payment_status=PaymentStatus.COMPLETED,
            payment_intent_id="pi_demo_abc",
        )
        mock_order_repository.get_by_id.return_value = order

        result = await payment_service.refund_payment(order.id, supplier_actor)

        assert result.payment_status == PaymentStatus.REFUNDED
        assert result.status == OrderStatus.REJECTED

    async def test_buyer_cannot_refund(
        self, payment_service, mock_order_repository, make_order, buyer_actor, supplier_actor
    ):
        order = make_order(
            buyer=buyer_actor.party,
            supplier=supplier_actor.party,
            payment_status=PaymentStatus.COMPLETED,
            payment_intent_id="pi_demo_abc",
        )
        mock_order_repository.get_by_id.return_value = order

        with pytest.raises(OrderAccessError):
            await payment_service.refund_payment(order.id, buyer_actor)


# ============================================================================
# Unit Tests - Webhooks
# ============================================================================


class TestHandleWebhook:
    """Test webhook verification, deduplication and handlers."""

    async def test_succeeded_event_completes_payment(
        self,
        webhook_service,
        scripted_processor,
        mock_order_repository,
        mock_payment_repository,
        make_order,
        buyer_actor,
        supplier_actor,
    ):
        """
        Verifies:
        - The event is recorded in the ledger with its intent id
        - Paid amount comes from the intent's minor units
        - The order is confirmed
        """
        # Arrange
        order = make_order(
            buyer=buyer_actor.party,
            supplier=supplier_actor.party,
            payment_status=PaymentStatus.PROCESSING,
            payment_intent_id="pi_123",
        )
        event = intent_event("payment_intent.succeeded", order, "succeeded", amount=20000)
        scripted_processor.construct_event.return_value = event
        mock_order_repository.get_by_id.return_value = order

        # Act
        result = await webhook_service.handle_webhook(b"{}", "t=1,v1=abc")

        # Assert
        assert result["handled"] is True
        assert result["duplicate"] is False
        assert result["order_id"] == order.id
        assert order.payment_status == PaymentStatus.COMPLETED
        assert order.paid_amount == Decimal("200.00")
        assert order.payment_transaction_id == "ch_123"
        assert order.status == OrderStatus.CONFIRMED
        mock_payment_repository.record_event.assert_awaited_once_with(
            event.id, "payment_intent.succeeded", payment_intent_id="pi_123"
        )

    async def test_duplicate_event_is_ignored(
        self,
        webhook_service,
        scripted_processor,
        mock_order_repository,
        mock_payment_repository,
        make_order,
        buyer_actor,
        supplier_actor,
    ):
        order = make_order(
            buyer=buyer_actor.party,
            supplier=supplier_actor.party,
            payment_intent_id="pi_123",
        )
        scripted_processor.construct_event.return_value = intent_event(
            "payment_intent.succeeded", order, "succeeded"
        )
        mock_payment_repository.record_event.return_value = False

        result = await webhook_service.handle_webhook(b"{}", "sig")

        assert result["duplicate"] is True
        assert result["handled"] is False
        mock_order_repository.get_by_id.assert_not_awaited()
        assert order.payment_status == PaymentStatus.PENDING

    async def test_late_failure_does_not_regress_completed_payment(
        self,
        webhook_service,
        scripted_processor,
        mock_order_repository,
        make_order,
        buyer_actor,
        supplier_actor,
    ):
        order = make_order(
            buyer=buyer_actor.party,
            supplier=supplier_actor.party,
            status=OrderStatus.CONFIRMED,
            payment_status=PaymentStatus.COMPLETED,
            payment_intent_id="pi_123",
        )
        scripted_processor.construct_event.return_value = intent_event(
            "payment_intent.payment_failed", order, "requires_payment_method"
        )
        mock_order_repository.get_by_id.return_value = order

        result = await webhook_service.handle_webhook(b"{}", "sig")

        assert result["handled"] is False
        assert order.payment_status == PaymentStatus.COMPLETED

    async def test_canceled_event(
        self,
        webhook_service,
        scripted_processor,
        mock_order_repository,
        make_order,
        buyer_actor,
        supplier_actor,
    ):
        order = make_order(
            buyer=buyer_actor.party,
            supplier=supplier_actor.party,
            payment_status=PaymentStatus.PROCESSING,
            payment_intent_id="pi_123",
        )
        scripted_processor.construct_event.return_value = intent_event(
            "payment_intent.canceled", order, "canceled"
        )
        mock_order_repository.get_by_id.return_value = order

        result = await webhook_service.handle_webhook(b"{}", "sig")

        assert result["handled"] is True
        assert order.payment_status == PaymentStatus.CANCELLED

    async def test_unhandled_event_type_is_acknowledged(
        self, webhook_service, scripted_processor, mock_order_repository
    ):
        scripted_processor.construct_event.return_value = WebhookEvent(
            id="evt_1", type="charge.refunded", data={"id": "ch_1"}
        )

        result = await webhook_service.handle_webhook(b"{}", "sig")

        assert result == {
            "received": True,
            "event_id": "evt_1",
            "event_type": "charge.refunded",
            "duplicate": False,
            "handled": False,
        }
        mock_order_repository.get_by_id.assert_not_awaited()

    async def test_verification_failure_propagates(
        self, payment_service, mock_payment_repository
    ):
        with pytest.raises(WebhookVerificationError):
            await payment_service.handle_webhook(b"{}", None)

        mock_payment_repository.record_event.assert_not_awaited()


# ============================================================================
# Unit Tests - History
# ============================================================================


class TestPaymentHistory:
    """Test payment history listing."""

    async def test_history_totals(self, payment_service, mock_order_repository, buyer_actor):
        mock_order_repository.list_for_party.return_value = ([], 0)
        mock_order_repository.totals_by_payment_status.return_value = [
            {
                "payment_status": PaymentStatus.COMPLETED,
                "count": 2,
                "total_amount": Decimal("450.00"),
            }
        ]

        result = await payment_service.get_payment_history(buyer_actor, page=2, limit=5)

        assert result["page"] == 2
        assert result["totals"]["completed"] == {"count": 2, "total_amount": Decimal("450.00")}
        assert result["totals"]["refunded"]["count"] == 0
        assert mock_order_repository.list_for_party.call_args.kwargs["offset"] == 5

    async def test_admin_has_no_history(self, payment_service, admin_actor):
        with pytest.raises(OrderAccessError):
            await payment_service.get_payment_history(admin_actor)
