"""
Initial settlement schema.

Creates:
    - Store, SellerPayoutSettings, SellerPayout
    - Order, OrderItem, OrderPayment, OrderRefund
    - SellerBalanceEntry, SellerBalance (ledger)
    - ReconciliationDiscrepancy
"""

import uuid

import django.core.validators
import django.db.models.deletion
import django.utils.timezone
import django_fsm
from django.db import migrations, models


def uuid_pk():
    return (
        "id",
        models.UUIDField(
            default=uuid.uuid4,
            editable=False,
            help_text="Unique identifier (UUID v4)",
            primary_key=True,
            serialize=False,
        ),
    )


def timestamps():
    return [
        (
            "created_at",
            models.DateTimeField(
                auto_now_add=True,
                db_index=True,
                help_text="Timestamp when this record was created",
            ),
        ),
        (
            "updated_at",
            models.DateTimeField(
                auto_now=True,
                help_text="Timestamp when this record was last modified",
            ),
        ),
    ]


def version_field():
    return (
        "version",
        models.PositiveIntegerField(
            default=1,
            help_text="Version for optimistic locking - incremented on each save",
        ),
    )


def metadata_field(help_text="Arbitrary JSON metadata"):
    return (
        "metadata",
        models.JSONField(blank=True, default=dict, help_text=help_text),
    )


def amount_field(help_text, **kwargs):
    return models.DecimalField(
        decimal_places=2, max_digits=12, help_text=help_text, **kwargs
    )


def currency_field(**kwargs):
    kwargs.setdefault("help_text", "ISO 4217 currency code (lowercase)")
    return models.CharField(max_length=3, **kwargs)


PAYMENT_STATUS_CHOICES = [
    ("pending", "Pending"),
    ("paid", "Paid"),
    ("partially_refunded", "Partially Refunded"),
    ("refunded", "Refunded"),
    ("failed", "Failed"),
    ("void", "Void"),
]

BALANCE_ENTRY_TYPE_CHOICES = [
    ("order_payment", "Order Payment"),
    ("platform_fee", "Platform Fee"),
    ("refund", "Refund"),
    ("payout", "Payout"),
    ("adjustment", "Adjustment"),
]

DISCREPANCY_TYPE_CHOICES = [
    ("gateway_payout_unrecorded", "Gateway payout without local record"),
    ("payout_missing_ledger_entry", "Completed payout without ledger debit"),
    ("local_payout_missing_at_gateway", "Local payout not found at gateway"),
    ("payout_stuck_pending", "Payout stuck pending"),
    ("balance_cache_drift", "Cached balance drift"),
]


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        # =====================================================================
        # Store
        # =====================================================================
        migrations.CreateModel(
            name="Store",
            fields=[
                uuid_pk(),
                *timestamps(),
                (
                    "name",
                    models.CharField(help_text="Store display name", max_length=255),
                ),
                (
                    "currency",
                    models.CharField(
                        default="usd",
                        help_text="ISO 4217 settlement currency (lowercase)",
                        max_length=3,
                    ),
                ),
                (
                    "stripe_account_id",
                    models.CharField(
                        blank=True,
                        help_text="Stripe connected account ID (acct_xxx)",
                        max_length=255,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "onboarding_status",
                    models.CharField(
                        choices=[
                            ("not_started", "Not Started"),
                            ("in_progress", "In Progress"),
                            ("complete", "Complete"),
                            ("restricted", "Restricted"),
                        ],
                        db_index=True,
                        default="not_started",
                        help_text="Connected account onboarding status",
                        max_length=20,
                    ),
                ),
                (
                    "charges_enabled",
                    models.BooleanField(
                        default=False,
                        help_text="Whether the gateway accepts charges for this account",
                    ),
                ),
                (
                    "payouts_enabled",
                    models.BooleanField(
                        default=False,
                        help_text="Whether the gateway allows payouts for this account",
                    ),
                ),
                (
                    "is_active",
                    models.BooleanField(
                        default=True,
                        help_text="Inactive stores are excluded from automatic payouts",
                    ),
                ),
                version_field(),
                metadata_field(),
            ],
            options={
                "verbose_name": "Store",
                "verbose_name_plural": "Stores",
                "ordering": ["name"],
            },
        ),
        # =====================================================================
        # Payout settings and payouts
        # =====================================================================
        migrations.CreateModel(
            name="SellerPayoutSettings",
            fields=[
                uuid_pk(),
                *timestamps(),
                (
                    "method",
                    models.CharField(
                        choices=[("manual", "Manual"), ("automatic", "Automatic")],
                        db_index=True,
                        default="manual",
                        help_text="Manual or automatic payouts",
                        max_length=20,
                    ),
                ),
                (
                    "schedule",
                    models.CharField(
                        choices=[
                            ("daily", "Daily"),
                            ("weekly", "Weekly"),
                            ("biweekly", "Biweekly"),
                            ("monthly", "Monthly"),
                        ],
                        default="weekly",
                        help_text="Automatic payout cadence",
                        max_length=20,
                    ),
                ),
                (
                    "minimum_amount",
                    amount_field(
                        "Minimum payout amount",
                        default=20,
                        validators=[django.core.validators.MinValueValidator(0)],
                    ),
                ),
                (
                    "payout_day_of_week",
                    models.PositiveSmallIntegerField(
                        default=0,
                        help_text="Weekday for weekly payouts (0=Monday, 6=Sunday)",
                        validators=[django.core.validators.MaxValueValidator(6)],
                    ),
                ),
                (
                    "payout_day_of_month",
                    models.PositiveSmallIntegerField(
                        default=1,
                        help_text="Day of month for monthly payouts (clamped to month length)",
                        validators=[
                            django.core.validators.MinValueValidator(1),
                            django.core.validators.MaxValueValidator(31),
                        ],
                    ),
                ),
                (
                    "hold_period_days",
                    models.PositiveSmallIntegerField(
                        blank=True,
                        help_text="Clearing delay for payment credits (defaults to platform setting)",
                        null=True,
                    ),
                ),
                (
                    "next_payout_at",
                    models.DateTimeField(
                        blank=True,
                        db_index=True,
                        help_text="When the next automatic payout is due",
                        null=True,
                    ),
                ),
                (
                    "store",
                    models.OneToOneField(
                        help_text="Store these settings belong to",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="payout_settings",
                        to="settlement.store",
                    ),
                ),
            ],
            options={
                "verbose_name": "Seller Payout Settings",
                "verbose_name_plural": "Seller Payout Settings",
                "ordering": ["-created_at"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(payout_day_of_week__lte=6),
                        name="payout_settings_day_of_week_range",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            payout_day_of_month__gte=1, payout_day_of_month__lte=31
                        ),
                        name="payout_settings_day_of_month_range",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="SellerPayout",
            fields=[
                uuid_pk(),
                *timestamps(),
                ("amount", amount_field("Amount dispatched to the gateway")),
                ("currency", currency_field()),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current payout state (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "trigger",
                    models.CharField(
                        choices=[("scheduled", "Scheduled"), ("manual", "Manual")],
                        default="scheduled",
                        help_text="What started this payout",
                        max_length=20,
                    ),
                ),
                (
                    "provider",
                    models.CharField(
                        default="stripe",
                        help_text="Payment gateway name",
                        max_length=50,
                    ),
                ),
                (
                    "provider_payout_id",
                    models.CharField(
                        blank=True,
                        help_text="Gateway payout reference (po_xxx)",
                        max_length=255,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "requested_at",
                    models.DateTimeField(
                        default=django.utils.timezone.now,
                        help_text="When the payout attempt started",
                    ),
                ),
                (
                    "completed_at",
                    models.DateTimeField(
                        blank=True,
                        db_index=True,
                        help_text="When the gateway confirmed the payout",
                        null=True,
                    ),
                ),
                (
                    "failed_at",
                    models.DateTimeField(
                        blank=True, help_text="When the payout failed", null=True
                    ),
                ),
                (
                    "failure_reason",
                    models.TextField(
                        blank=True,
                        help_text="Gateway error if the payout failed",
                        null=True,
                    ),
                ),
                version_field(),
                metadata_field(),
                (
                    "store",
                    models.ForeignKey(
                        help_text="Store being paid",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payouts",
                        to="settlement.store",
                    ),
                ),
            ],
            options={
                "verbose_name": "Seller Payout",
                "verbose_name_plural": "Seller Payouts",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["store", "status"], name="payout_store_status_idx"
                    ),
                    models.Index(
                        fields=["status", "requested_at"],
                        name="payout_status_requested_idx",
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(amount__gt=0),
                        name="seller_payout_amount_positive",
                    ),
                ],
            },
        ),
        # =====================================================================
        # Orders
        # =====================================================================
        migrations.CreateModel(
            name="Order",
            fields=[
                uuid_pk(),
                *timestamps(),
                (
                    "checkout_id",
                    models.UUIDField(
                        db_index=True,
                        help_text="Correlation id shared by all orders of one checkout",
                    ),
                ),
                ("currency", currency_field()),
                (
                    "subtotal",
                    amount_field("Sum of line subtotals (unit price x quantity)"),
                ),
                (
                    "discount_amount",
                    amount_field("Discount applied to this order", default=0),
                ),
                (
                    "shipping_amount",
                    amount_field("Shipping charged for this order", default=0),
                ),
                ("tax_amount", amount_field("Tax charged for this order", default=0)),
                (
                    "total",
                    amount_field("subtotal + shipping + tax - discount, never negative"),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("open", "Open"),
                            ("completed", "Completed"),
                            ("canceled", "Canceled"),
                            ("archived", "Archived"),
                        ],
                        db_index=True,
                        default="open",
                        help_text="Order lifecycle status",
                        max_length=20,
                    ),
                ),
                (
                    "payment_status",
                    django_fsm.FSMField(
                        choices=PAYMENT_STATUS_CHOICES,
                        db_index=True,
                        default="pending",
                        help_text="Payment state (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "fulfillment_status",
                    models.CharField(
                        choices=[
                            ("unfulfilled", "Unfulfilled"),
                            ("partially_fulfilled", "Partially Fulfilled"),
                            ("fulfilled", "Fulfilled"),
                        ],
                        default="unfulfilled",
                        help_text="Fulfillment progress",
                        max_length=20,
                    ),
                ),
                (
                    "placed_at",
                    models.DateTimeField(
                        default=django.utils.timezone.now,
                        help_text="When the order was placed",
                    ),
                ),
                (
                    "paid_at",
                    models.DateTimeField(
                        blank=True, help_text="When payment was recorded", null=True
                    ),
                ),
                (
                    "canceled_at",
                    models.DateTimeField(
                        blank=True, help_text="When the order was canceled", null=True
                    ),
                ),
                (
                    "archived_at",
                    models.DateTimeField(
                        blank=True, help_text="When the order was archived", null=True
                    ),
                ),
                version_field(),
                (
                    "store",
                    models.ForeignKey(
                        help_text="Store that owns this order",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="orders",
                        to="settlement.store",
                    ),
                ),
            ],
            options={
                "verbose_name": "Order",
                "verbose_name_plural": "Orders",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["store", "payment_status"],
                        name="order_store_payment_idx",
                    ),
                    models.Index(
                        fields=["store", "status"], name="order_store_status_idx"
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(total__gte=0),
                        name="order_total_non_negative",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="OrderItem",
            fields=[
                uuid_pk(),
                *timestamps(),
                (
                    "listing_id",
                    models.CharField(
                        db_index=True,
                        help_text="Catalog listing reference",
                        max_length=255,
                    ),
                ),
                (
                    "title",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Listing title at time of purchase",
                        max_length=255,
                    ),
                ),
                ("quantity", models.PositiveIntegerField(help_text="Units purchased")),
                ("unit_price", amount_field("Price per unit")),
                ("subtotal", amount_field("unit_price x quantity")),
                ("discount_amount", amount_field("Item-level discount", default=0)),
                ("total", amount_field("subtotal - discount_amount")),
                (
                    "order",
                    models.ForeignKey(
                        help_text="Order this item belongs to",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="items",
                        to="settlement.order",
                    ),
                ),
            ],
            options={
                "verbose_name": "Order Item",
                "verbose_name_plural": "Order Items",
                "ordering": ["created_at"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(quantity__gt=0),
                        name="order_item_quantity_positive",
                    ),
                ],
            },
        ),
        # =====================================================================
        # Payments and refunds
        # =====================================================================
        migrations.CreateModel(
            name="OrderPayment",
            fields=[
                uuid_pk(),
                *timestamps(),
                ("amount", amount_field("Gross amount charged")),
                ("currency", currency_field()),
                (
                    "platform_fee_amount",
                    amount_field("Platform commission on this payment"),
                ),
                (
                    "processor_fee_amount",
                    amount_field("Gateway fee already netted out of the payment", default=0),
                ),
                (
                    "net_amount_to_store",
                    amount_field("Gross minus platform fee minus processor fee"),
                ),
                (
                    "provider",
                    models.CharField(
                        default="stripe",
                        help_text="Payment gateway name",
                        max_length=50,
                    ),
                ),
                (
                    "provider_payment_id",
                    models.CharField(
                        help_text="Gateway payment reference (idempotency key)",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("completed", "Completed"),
                            ("partially_refunded", "Partially Refunded"),
                            ("refunded", "Refunded"),
                        ],
                        db_index=True,
                        default="completed",
                        help_text="Refund state of this payment (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "transfer_status",
                    models.CharField(
                        choices=[("held", "Held"), ("released", "Released")],
                        default="held",
                        help_text="Whether the store's share is still held by the platform",
                        max_length=20,
                    ),
                ),
                metadata_field(),
                (
                    "order",
                    models.ForeignKey(
                        help_text="Order this payment settles",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                        to="settlement.order",
                    ),
                ),
                (
                    "store",
                    models.ForeignKey(
                        help_text="Store receiving the funds",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                        to="settlement.store",
                    ),
                ),
            ],
            options={
                "verbose_name": "Order Payment",
                "verbose_name_plural": "Order Payments",
                "ordering": ["-created_at"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(amount__gt=0),
                        name="order_payment_amount_positive",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(
                            status__in=["completed", "partially_refunded"]
                        ),
                        fields=("order",),
                        name="order_payment_one_active_per_order",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="OrderRefund",
            fields=[
                uuid_pk(),
                *timestamps(),
                ("amount", amount_field("Refunded amount")),
                (
                    "platform_fee_refunded",
                    amount_field("Platform fee returned to the store", default=0),
                ),
                ("currency", currency_field()),
                (
                    "provider_refund_id",
                    models.CharField(
                        help_text="Gateway refund reference",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "refund_type",
                    models.CharField(
                        choices=[("full", "Full"), ("partial", "Partial")],
                        help_text="Full or partial refund",
                        max_length=10,
                    ),
                ),
                (
                    "reason",
                    models.TextField(
                        blank=True,
                        default="",
                        help_text="Reason given for the refund",
                    ),
                ),
                (
                    "restock_requested",
                    models.BooleanField(
                        default=False,
                        help_text="Whether inventory restock was requested",
                    ),
                ),
                (
                    "restocked",
                    models.BooleanField(
                        default=False,
                        help_text="Whether the inventory restock succeeded",
                    ),
                ),
                (
                    "order",
                    models.ForeignKey(
                        help_text="Order being refunded",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="refunds",
                        to="settlement.order",
                    ),
                ),
                (
                    "order_payment",
                    models.ForeignKey(
                        help_text="Payment being reversed",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="refunds",
                        to="settlement.orderpayment",
                    ),
                ),
                (
                    "store",
                    models.ForeignKey(
                        help_text="Store whose balance is debited",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="refunds",
                        to="settlement.store",
                    ),
                ),
            ],
            options={
                "verbose_name": "Order Refund",
                "verbose_name_plural": "Order Refunds",
                "ordering": ["-created_at"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(amount__gt=0),
                        name="order_refund_amount_positive",
                    ),
                ],
            },
        ),
        # =====================================================================
        # Reconciliation
        # =====================================================================
        migrations.CreateModel(
            name="ReconciliationDiscrepancy",
            fields=[
                uuid_pk(),
                *timestamps(),
                (
                    "discrepancy_type",
                    models.CharField(
                        choices=DISCREPANCY_TYPE_CHOICES,
                        db_index=True,
                        help_text="Kind of mismatch",
                        max_length=50,
                    ),
                ),
                (
                    "reference",
                    models.CharField(
                        help_text="Gateway payout id or local payout id",
                        max_length=255,
                    ),
                ),
                (
                    "amount",
                    amount_field("Amount involved, if known", blank=True, null=True),
                ),
                (
                    "details",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Gateway and local state at detection time",
                    ),
                ),
                (
                    "resolution",
                    models.CharField(
                        choices=[
                            ("open", "Open"),
                            ("auto_healed", "Auto Healed"),
                            ("resolved", "Resolved"),
                        ],
                        db_index=True,
                        default="open",
                        help_text="Resolution status",
                        max_length=20,
                    ),
                ),
                (
                    "resolved_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the discrepancy was closed",
                        null=True,
                    ),
                ),
                (
                    "payout",
                    models.ForeignKey(
                        blank=True,
                        help_text="Local payout involved, if any",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="discrepancies",
                        to="settlement.sellerpayout",
                    ),
                ),
                (
                    "store",
                    models.ForeignKey(
                        help_text="Store the mismatch belongs to",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="discrepancies",
                        to="settlement.store",
                    ),
                ),
            ],
            options={
                "verbose_name": "Reconciliation Discrepancy",
                "verbose_name_plural": "Reconciliation Discrepancies",
                "ordering": ["-created_at"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("discrepancy_type", "store", "reference"),
                        name="reconciliation_discrepancy_unique_reference",
                    ),
                ],
            },
        ),
        # =====================================================================
        # Ledger
        # =====================================================================
        migrations.CreateModel(
            name="SellerBalance",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("currency", currency_field()),
                (
                    "available_balance",
                    amount_field(
                        "Cleared funds (negative when the store owes the platform)",
                        default=0,
                    ),
                ),
                (
                    "pending_balance",
                    amount_field("Funds still inside their hold window", default=0),
                ),
                (
                    "last_payout_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the last payout completed",
                        null=True,
                    ),
                ),
                (
                    "last_payout_amount",
                    amount_field(
                        "Amount of the last completed payout", blank=True, null=True
                    ),
                ),
                (
                    "refreshed_at",
                    models.DateTimeField(
                        default=django.utils.timezone.now,
                        help_text="When this snapshot was last recomputed",
                    ),
                ),
                (
                    "store",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="balances",
                        to="settlement.store",
                    ),
                ),
            ],
            options={
                "verbose_name": "Seller Balance",
                "verbose_name_plural": "Seller Balances",
                "constraints": [
                    models.UniqueConstraint(
                        fields=("store", "currency"),
                        name="seller_balance_unique_store_currency",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="SellerBalanceEntry",
            fields=[
                uuid_pk(),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this entry was recorded",
                    ),
                ),
                (
                    "entry_type",
                    models.CharField(
                        choices=BALANCE_ENTRY_TYPE_CHOICES,
                        help_text="Category of this entry",
                        max_length=20,
                    ),
                ),
                (
                    "amount",
                    amount_field("Signed amount: positive credits, negative debits"),
                ),
                ("currency", currency_field()),
                (
                    "idempotency_key",
                    models.CharField(
                        help_text="Unique key to prevent duplicate entries",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "description",
                    models.TextField(
                        blank=True,
                        default="",
                        help_text="Human-readable description of this entry",
                    ),
                ),
                (
                    "available_at",
                    models.DateTimeField(
                        db_index=True,
                        default=django.utils.timezone.now,
                        help_text="When this amount clears into the available balance",
                    ),
                ),
                metadata_field("Arbitrary JSON data for extensibility"),
                (
                    "order",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="balance_entries",
                        to="settlement.order",
                    ),
                ),
                (
                    "order_payment",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="balance_entries",
                        to="settlement.orderpayment",
                    ),
                ),
                (
                    "payout",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="balance_entries",
                        to="settlement.sellerpayout",
                    ),
                ),
                (
                    "refund",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="balance_entries",
                        to="settlement.orderrefund",
                    ),
                ),
                (
                    "store",
                    models.ForeignKey(
                        help_text="Store whose balance this entry affects",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="balance_entries",
                        to="settlement.store",
                    ),
                ),
            ],
            options={
                "verbose_name": "Seller Balance Entry",
                "verbose_name_plural": "Seller Balance Entries",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["store", "currency", "available_at"],
                        name="entry_store_currency_avail_idx",
                    ),
                    models.Index(
                        fields=["store", "entry_type"], name="entry_store_type_idx"
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount", 0), _negated=True),
                        name="seller_balance_entry_amount_non_zero",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(
                            order_payment__isnull=False,
                            payout__isnull=True,
                            refund__isnull=True,
                        ),
                        fields=("store", "entry_type", "order_payment"),
                        name="seller_balance_entry_unique_payment",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(refund__isnull=False),
                        fields=("store", "entry_type", "refund"),
                        name="seller_balance_entry_unique_refund",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(payout__isnull=False),
                        fields=("store", "entry_type", "payout"),
                        name="seller_balance_entry_unique_payout",
                    ),
                ],
            },
        ),
    ]
