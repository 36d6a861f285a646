"""
Order and OrderItem models.

One Order is created per store per checkout. Orders from the same
checkout share a ``checkout_id`` correlation id and nothing else, so each
store's order can be paid, refunded and fulfilled independently.

Usage:
    from settlement.models import Order

    order.mark_paid(paid_at=timezone.now())  # pending -> paid
    order.save()
"""

from __future__ import annotations

from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from settlement.state_machines import (
    FulfillmentStatus,
    OrderStatus,
    PaymentStatus,
)

REFUNDABLE_PAYMENT_STATUSES = [PaymentStatus.PAID, PaymentStatus.PARTIALLY_REFUNDED]
PAYABLE_PAYMENT_STATUSES = [PaymentStatus.PENDING, PaymentStatus.FAILED]


class Order(UUIDPrimaryKeyMixin, BaseModel):
    """
    A single store's share of a checkout.

    Invariant:
        total = subtotal + shipping_amount + tax_amount - discount_amount, and
        total >= 0 (enforced at creation and by a check constraint)

    State Flow (payment_status):
        PENDING -> PAID -> PARTIALLY_REFUNDED -> REFUNDED
        PENDING -> FAILED / VOID

    Fields:
        checkout_id: Correlation id shared by all orders of one checkout
        store: Store that owns the order
        currency: ISO 4217 currency code
        subtotal: Sum of line subtotals
        discount_amount: Store's share of the cart discount (or its item discounts)
        shipping_amount: Store's share of cart shipping
        tax_amount: Store's share of cart tax
        total: Amount the buyer pays for this order
        status: Order lifecycle (open/completed/canceled/archived)
        payment_status: FSM-managed payment state
        fulfillment_status: Shipping/fulfillment progress
        placed_at / paid_at / canceled_at / archived_at: Lifecycle timestamps
        version: Optimistic locking version
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    checkout_id = models.UUIDField(
        db_index=True,
        help_text="Correlation id shared by all orders of one checkout",
    )

    store = models.ForeignKey(
        "settlement.Store",
        on_delete=models.PROTECT,
        related_name="orders",
        help_text="Store that owns this order",
    )

    # ==========================================================================
    # Amounts
    # ==========================================================================

    currency = models.CharField(
        max_length=3,
        help_text="ISO 4217 currency code (lowercase)",
    )

    subtotal = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Sum of line subtotals (unit price x quantity)",
    )

    discount_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=0,
        help_text="Discount applied to this order",
    )

    shipping_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=0,
        help_text="Shipping charged for this order",
    )

    tax_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=0,
        help_text="Tax charged for this order",
    )

    total = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="subtotal + shipping + tax - discount, never negative",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.OPEN,
        db_index=True,
        help_text="Order lifecycle status",
    )

    payment_status = FSMField(
        default=PaymentStatus.PENDING,
        choices=PaymentStatus.choices,
        db_index=True,
        protected=True,
        help_text="Payment state (managed by FSM)",
    )

    fulfillment_status = models.CharField(
        max_length=20,
        choices=FulfillmentStatus.choices,
        default=FulfillmentStatus.UNFULFILLED,
        help_text="Fulfillment progress",
    )

    # ==========================================================================
    # Timestamps
    # ==========================================================================

    placed_at = models.DateTimeField(
        default=timezone.now,
        help_text="When the order was placed",
    )

    paid_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When payment was recorded",
    )

    canceled_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the order was canceled",
    )

    archived_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the order was archived",
    )

    version = models.PositiveIntegerField(
        default=1,
        help_text="Version for optimistic locking - incremented on each save",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Order"
        verbose_name_plural = "Orders"
        indexes = [
            models.Index(fields=["store", "payment_status"], name="order_store_payment_idx"),
            models.Index(fields=["store", "status"], name="order_store_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(total__gte=0),
                name="order_total_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"Order({self.id}, {self.payment_status}, {self.total} {self.currency.upper()})"

    def save(self, *args, **kwargs):
        """Save with version auto-increment for optimistic locking."""
        is_update = not self._state.adding and not kwargs.get("force_insert", False)
        if is_update:
            self.version = F("version") + 1
        super().save(*args, **kwargs)
        if is_update:
            self.refresh_from_db(fields=["version"])

    # ==========================================================================
    # Payment Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=payment_status,
        source=PAYABLE_PAYMENT_STATUSES,
        target=PaymentStatus.PAID,
    )
    def mark_paid(self, paid_at=None):
        """
        Record that the order's charge was captured.

        Transition: PENDING/FAILED -> PAID

        A fulfilled order is completed at the same time; otherwise the
        order status is left unchanged.
        """
        self.paid_at = paid_at or timezone.now()
        if self.fulfillment_status == FulfillmentStatus.FULFILLED:
            self.status = OrderStatus.COMPLETED

    @transition(
        field=payment_status,
        source=PaymentStatus.PENDING,
        target=PaymentStatus.FAILED,
    )
    def mark_payment_failed(self):
        """Transition: PENDING -> FAILED"""

    @transition(
        field=payment_status,
        source=PaymentStatus.PENDING,
        target=PaymentStatus.VOID,
    )
    def void(self):
        """
        Void an unpaid order.

        Transition: PENDING -> VOID
        """
        self.status = OrderStatus.CANCELED
        self.canceled_at = timezone.now()

    @transition(
        field=payment_status,
        source=REFUNDABLE_PAYMENT_STATUSES,
        target=PaymentStatus.PARTIALLY_REFUNDED,
    )
    def mark_partially_refunded(self):
        """Transition: PAID/PARTIALLY_REFUNDED -> PARTIALLY_REFUNDED"""

    @transition(
        field=payment_status,
        source=REFUNDABLE_PAYMENT_STATUSES,
        target=PaymentStatus.REFUNDED,
    )
    def mark_refunded(self):
        """Transition: PAID/PARTIALLY_REFUNDED -> REFUNDED"""

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    def mark_fulfilled(self) -> None:
        """Mark the order fulfilled, completing it if already paid."""
        self.fulfillment_status = FulfillmentStatus.FULFILLED
        if self.payment_status == PaymentStatus.PAID and self.status == OrderStatus.OPEN:
            self.status = OrderStatus.COMPLETED

    def archive(self) -> None:
        """Archive the order. Orders are never deleted."""
        self.status = OrderStatus.ARCHIVED
        self.archived_at = timezone.now()

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_payable(self) -> bool:
        return self.payment_status in PAYABLE_PAYMENT_STATUSES

    @property
    def is_refundable(self) -> bool:
        return self.payment_status in REFUNDABLE_PAYMENT_STATUSES

    @property
    def is_fulfilled(self) -> bool:
        return self.fulfillment_status == FulfillmentStatus.FULFILLED


class OrderItem(UUIDPrimaryKeyMixin, BaseModel):
    """
    One cart line inside an Order.

    Items are immutable once created; refunds are recorded as OrderRefund
    rows and ledger entries, never by editing items.

    Fields:
        order: Owning order
        listing_id: Catalog listing reference (opaque to settlement)
        title: Listing title captured at checkout
        quantity: Units purchased
        unit_price: Price per unit
        subtotal: unit_price x quantity
        discount_amount: Item-level discount, if any
        total: subtotal - discount_amount
    """

    order = models.ForeignKey(
        Order,
        on_delete=models.PROTECT,
        related_name="items",
        help_text="Order this item belongs to",
    )

    listing_id = models.CharField(
        max_length=255,
        db_index=True,
        help_text="Catalog listing reference",
    )

    title = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Listing title at time of purchase",
    )

    quantity = models.PositiveIntegerField(
        help_text="Units purchased",
    )

    unit_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Price per unit",
    )

    subtotal = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="unit_price x quantity",
    )

    discount_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=0,
        help_text="Item-level discount",
    )

    total = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="subtotal - discount_amount",
    )

    class Meta:
        ordering = ["created_at"]
        verbose_name = "Order Item"
        verbose_name_plural = "Order Items"
        constraints = [
            models.CheckConstraint(
                condition=Q(quantity__gt=0),
                name="order_item_quantity_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"OrderItem({self.listing_id} x{self.quantity})"
