"""
OrderPayment and OrderRefund models.

An OrderPayment is the immutable record of one successful charge against
one order. Its amounts are never re-priced; refunds only move its status
and add OrderRefund rows plus ledger entries.
"""

from __future__ import annotations

from decimal import Decimal

from django.db import models
from django.db.models import Q, Sum

from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from settlement.state_machines import (
    OrderPaymentStatus,
    RefundType,
    TransferStatus,
)


class OrderPayment(UUIDPrimaryKeyMixin, BaseModel):
    """
    A captured charge for one order.

    ``provider_payment_id`` is the idempotency key for payment recording:
    it is unique, so a replayed confirmation can never create a second row.

    State Flow:
        COMPLETED -> PARTIALLY_REFUNDED -> REFUNDED
        COMPLETED -> REFUNDED

    Fields:
        order: Order that was paid
        store: Store receiving the funds (denormalized from order)
        amount: Gross amount charged
        currency: ISO 4217 currency code
        provider: Payment gateway name
        provider_payment_id: Gateway payment reference (unique)
        platform_fee_amount: Platform commission on this payment
        processor_fee_amount: Gateway fee already netted out, if any
        net_amount_to_store: amount - platform fee - processor fee
        status: FSM-managed refund state
        transfer_status: Whether the store's share is still held
    """

    order = models.ForeignKey(
        "settlement.Order",
        on_delete=models.PROTECT,
        related_name="payments",
        help_text="Order this payment settles",
    )

    store = models.ForeignKey(
        "settlement.Store",
        on_delete=models.PROTECT,
        related_name="payments",
        help_text="Store receiving the funds",
    )

    # ==========================================================================
    # Amounts
    # ==========================================================================

    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Gross amount charged",
    )

    currency = models.CharField(
        max_length=3,
        help_text="ISO 4217 currency code (lowercase)",
    )

    platform_fee_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Platform commission on this payment",
    )

    processor_fee_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=0,
        help_text="Gateway fee already netted out of the payment",
    )

    net_amount_to_store = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Gross minus platform fee minus processor fee",
    )

    # ==========================================================================
    # Gateway Integration
    # ==========================================================================

    provider = models.CharField(
        max_length=50,
        default="stripe",
        help_text="Payment gateway name",
    )

    provider_payment_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Gateway payment reference (idempotency key)",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=OrderPaymentStatus.COMPLETED,
        choices=OrderPaymentStatus.choices,
        db_index=True,
        protected=True,
        help_text="Refund state of this payment (managed by FSM)",
    )

    transfer_status = models.CharField(
        max_length=20,
        choices=TransferStatus.choices,
        default=TransferStatus.HELD,
        help_text="Whether the store's share is still held by the platform",
    )

    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Arbitrary JSON metadata",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Order Payment"
        verbose_name_plural = "Order Payments"
        constraints = [
            models.CheckConstraint(
                condition=Q(amount__gt=0),
                name="order_payment_amount_positive",
            ),
            models.UniqueConstraint(
                fields=["order"],
                condition=Q(
                    status__in=[
                        OrderPaymentStatus.COMPLETED,
                        OrderPaymentStatus.PARTIALLY_REFUNDED,
                    ]
                ),
                name="order_payment_one_active_per_order",
            ),
        ]

    def __str__(self) -> str:
        return f"OrderPayment({self.provider_payment_id}, {self.status}, {self.amount})"

    @transition(
        field=status,
        source=[OrderPaymentStatus.COMPLETED, OrderPaymentStatus.PARTIALLY_REFUNDED],
        target=OrderPaymentStatus.PARTIALLY_REFUNDED,
    )
    def mark_partially_refunded(self):
        """Transition: COMPLETED/PARTIALLY_REFUNDED -> PARTIALLY_REFUNDED"""

    @transition(
        field=status,
        source=[OrderPaymentStatus.COMPLETED, OrderPaymentStatus.PARTIALLY_REFUNDED],
        target=OrderPaymentStatus.REFUNDED,
    )
    def mark_refunded(self):
        """Transition: COMPLETED/PARTIALLY_REFUNDED -> REFUNDED"""

    def refunded_totals(self) -> tuple[Decimal, Decimal]:
        """
        Sum the refunds recorded against this payment.

        Returns:
            (refunded amount, platform fee refunded)
        """
        result = self.refunds.aggregate(
            amount=Sum("amount"),
            fee=Sum("platform_fee_refunded"),
        )
        return (
            result["amount"] or Decimal("0.00"),
            result["fee"] or Decimal("0.00"),
        )


class OrderRefund(UUIDPrimaryKeyMixin, BaseModel):
    """
    A refund confirmed by the gateway against an OrderPayment.

    Fields:
        order_payment: Payment being reversed
        order: Order of that payment
        store: Store whose balance is debited
        amount: Refunded amount
        platform_fee_refunded: Share of the platform fee returned to the store
        currency: ISO 4217 currency code
        provider_refund_id: Gateway refund reference (unique)
        refund_type: full or partial
        reason: Free-text reason
        restock_requested: Whether inventory restock was requested
        restocked: Whether the inventory restock succeeded
    """

    order_payment = models.ForeignKey(
        OrderPayment,
        on_delete=models.PROTECT,
        related_name="refunds",
        help_text="Payment being reversed",
    )

    order = models.ForeignKey(
        "settlement.Order",
        on_delete=models.PROTECT,
        related_name="refunds",
        help_text="Order being refunded",
    )

    store = models.ForeignKey(
        "settlement.Store",
        on_delete=models.PROTECT,
        related_name="refunds",
        help_text="Store whose balance is debited",
    )

    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Refunded amount",
    )

    platform_fee_refunded = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=0,
        help_text="Platform fee returned to the store",
    )

    currency = models.CharField(
        max_length=3,
        help_text="ISO 4217 currency code (lowercase)",
    )

    provider_refund_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Gateway refund reference",
    )

    refund_type = models.CharField(
        max_length=10,
        choices=RefundType.choices,
        help_text="Full or partial refund",
    )

    reason = models.TextField(
        blank=True,
        default="",
        help_text="Reason given for the refund",
    )

    restock_requested = models.BooleanField(
        default=False,
        help_text="Whether inventory restock was requested",
    )

    restocked = models.BooleanField(
        default=False,
        help_text="Whether the inventory restock succeeded",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Order Refund"
        verbose_name_plural = "Order Refunds"
        constraints = [
            models.CheckConstraint(
                condition=Q(amount__gt=0),
                name="order_refund_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"OrderRefund({self.provider_refund_id}, {self.amount})"
