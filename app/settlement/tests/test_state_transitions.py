"""
Tests for state machine transitions using django-fsm.

Covers Order.payment_status, OrderPayment.status and SellerPayout.status.
"""

import pytest
from django.utils import timezone
from django_fsm import TransitionNotAllowed

from settlement.models import Order, SellerPayout
from settlement.state_machines import (
    FulfillmentStatus,
    OrderPaymentStatus,
    OrderStatus,
    PaymentStatus,
    PayoutStatus,
)
from settlement.tests.factories import (
    OrderFactory,
    OrderPaymentFactory,
    SellerPayoutFactory,
)


# =============================================================================
# Order Payment Status
# =============================================================================


class TestOrderPaymentTransitions:
    """Tests for Order.payment_status transitions."""

    def test_pending_to_paid(self, db):
        order = OrderFactory()
        paid_at = timezone.now()

        order.mark_paid(paid_at=paid_at)
        order.save()

        order = Order.objects.get(id=order.id)
        assert order.payment_status == PaymentStatus.PAID
        assert order.paid_at == paid_at
        assert order.status == OrderStatus.OPEN

    def test_paid_fulfilled_order_is_completed(self, db):
        order = OrderFactory(fulfillment_status=FulfillmentStatus.FULFILLED)

        order.mark_paid()
        order.save()

        assert order.status == OrderStatus.COMPLETED

    def test_failed_order_can_be_paid(self, db):
        order = OrderFactory()
        order.mark_payment_failed()
        order.save()

        order.mark_paid()
        order.save()

        assert order.payment_status == PaymentStatus.PAID

    def test_void_cancels_order(self, db):
        order = OrderFactory()

        order.void()
        order.save()

        assert order.payment_status == PaymentStatus.VOID
        assert order.status == OrderStatus.CANCELED
        assert order.canceled_at is not None

    def test_paid_to_partially_refunded_to_refunded(self, db):
        order = OrderFactory(payment_status=PaymentStatus.PAID)

        order.mark_partially_refunded()
        order.save()
        assert order.payment_status == PaymentStatus.PARTIALLY_REFUNDED

        order.mark_partially_refunded()
        order.save()
        assert order.payment_status == PaymentStatus.PARTIALLY_REFUNDED

        order.mark_refunded()
        order.save()
        assert order.payment_status == PaymentStatus.REFUNDED

    @pytest.mark.parametrize(
        "status",
        [PaymentStatus.PAID, PaymentStatus.REFUNDED, PaymentStatus.VOID],
    )
    def test_cannot_pay_twice_or_after_close(self, db, status):
        order = OrderFactory(payment_status=status)

        with pytest.raises(TransitionNotAllowed):
            order.mark_paid()

    @pytest.mark.parametrize(
        "status",
        [PaymentStatus.PENDING, PaymentStatus.FAILED, PaymentStatus.REFUNDED],
    )
    def test_cannot_refund_unpaid_or_refunded_order(self, db, status):
        order = OrderFactory(payment_status=status)

        with pytest.raises(TransitionNotAllowed):
            order.mark_refunded()

    def test_payment_status_is_protected(self, db):
        order = OrderFactory()

        with pytest.raises(AttributeError):
            order.payment_status = PaymentStatus.PAID


# =============================================================================
# OrderPayment Status
# =============================================================================


class TestOrderPaymentStatusTransitions:
    def test_completed_to_partially_refunded(self, db):
        payment = OrderPaymentFactory()

        payment.mark_partially_refunded()
        payment.save()

        assert payment.status == OrderPaymentStatus.PARTIALLY_REFUNDED

    def test_completed_to_refunded(self, db):
        payment = OrderPaymentFactory()

        payment.mark_refunded()
        payment.save()

        assert payment.status == OrderPaymentStatus.REFUNDED

    def test_refunded_is_terminal(self, db):
        payment = OrderPaymentFactory(status=OrderPaymentStatus.REFUNDED)

        with pytest.raises(TransitionNotAllowed):
            payment.mark_partially_refunded()


# =============================================================================
# SellerPayout Status
# =============================================================================


class TestSellerPayoutTransitions:
    def test_pending_to_completed(self, db):
        payout = SellerPayoutFactory()
        completed_at = timezone.now()

        payout.complete(provider_payout_id="po_123", completed_at=completed_at)
        payout.save()

        payout = SellerPayout.objects.get(id=payout.id)
        assert payout.status == PayoutStatus.COMPLETED
        assert payout.provider_payout_id == "po_123"
        assert payout.completed_at == completed_at
        assert payout.version == 2

    def test_pending_to_failed(self, db):
        payout = SellerPayoutFactory()

        payout.fail(reason="Bank account closed")
        payout.save()

        assert payout.status == PayoutStatus.FAILED
        assert payout.failure_reason == "Bank account closed"
        assert payout.failed_at is not None

    def test_completed_is_terminal(self, db):
        payout = SellerPayoutFactory(
            status=PayoutStatus.COMPLETED, provider_payout_id="po_done"
        )

        with pytest.raises(TransitionNotAllowed):
            payout.fail(reason="late failure")

    def test_failed_is_terminal(self, db):
        payout = SellerPayoutFactory(status=PayoutStatus.FAILED)

        with pytest.raises(TransitionNotAllowed):
            payout.complete(provider_payout_id="po_retry")
