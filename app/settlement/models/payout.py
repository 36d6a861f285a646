"""
Seller payout settings and payout attempts.

Usage:
    from settlement.models import SellerPayout, SellerPayoutSettings

    payout = SellerPayout.objects.create(store=store, amount=Decimal("150.00"), currency="usd")
    payout.complete(provider_payout_id="po_123", completed_at=timezone.now())
    payout.save()
"""

from __future__ import annotations

from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from settlement.state_machines import (
    PayoutMethod,
    PayoutSchedule,
    PayoutStatus,
    PayoutTrigger,
)


class SellerPayoutSettings(UUIDPrimaryKeyMixin, BaseModel):
    """
    Per-store payout preferences.

    Edited by the merchant settings flow; ``next_payout_at`` is also
    advanced by the payout executor after each successful automatic payout.

    Fields:
        store: Store these settings belong to
        method: manual or automatic
        schedule: daily, weekly, biweekly or monthly
        minimum_amount: Smallest payout the store accepts
        payout_day_of_week: 0 (Monday) to 6 (Sunday), used by weekly schedules
        payout_day_of_month: 1 to 31, clamped to the month length
        hold_period_days: Clearing delay override for payment credits
        next_payout_at: When the sweep should next consider this store
    """

    store = models.OneToOneField(
        "settlement.Store",
        on_delete=models.CASCADE,
        related_name="payout_settings",
        help_text="Store these settings belong to",
    )

    method = models.CharField(
        max_length=20,
        choices=PayoutMethod.choices,
        default=PayoutMethod.MANUAL,
        db_index=True,
        help_text="Manual or automatic payouts",
    )

    schedule = models.CharField(
        max_length=20,
        choices=PayoutSchedule.choices,
        default=PayoutSchedule.WEEKLY,
        help_text="Automatic payout cadence",
    )

    minimum_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=20,
        validators=[MinValueValidator(0)],
        help_text="Minimum payout amount",
    )

    payout_day_of_week = models.PositiveSmallIntegerField(
        default=0,
        validators=[MaxValueValidator(6)],
        help_text="Weekday for weekly payouts (0=Monday, 6=Sunday)",
    )

    payout_day_of_month = models.PositiveSmallIntegerField(
        default=1,
        validators=[MinValueValidator(1), MaxValueValidator(31)],
        help_text="Day of month for monthly payouts (clamped to month length)",
    )

    hold_period_days = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        help_text="Clearing delay for payment credits (defaults to platform setting)",
    )

    next_payout_at = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="When the next automatic payout is due",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Seller Payout Settings"
        verbose_name_plural = "Seller Payout Settings"
        constraints = [
            models.CheckConstraint(
                condition=Q(payout_day_of_week__lte=6),
                name="payout_settings_day_of_week_range",
            ),
            models.CheckConstraint(
                condition=Q(payout_day_of_month__gte=1, payout_day_of_month__lte=31),
                name="payout_settings_day_of_month_range",
            ),
        ]

    def __str__(self) -> str:
        return f"SellerPayoutSettings({self.store_id}, {self.method}, {self.schedule})"

    @property
    def is_automatic(self) -> bool:
        return self.method == PayoutMethod.AUTOMATIC


class SellerPayout(UUIDPrimaryKeyMixin, BaseModel):
    """
    One payout attempt from a store's connected account to its bank.

    State Flow:
        PENDING -> COMPLETED (terminal)
        PENDING -> FAILED (terminal; the next attempt is a new row)

    Fields:
        store: Store being paid
        amount: Amount dispatched to the gateway
        currency: ISO 4217 currency code
        provider: Payment gateway name
        provider_payout_id: Gateway payout reference (po_xxx)
        status: FSM-managed payout state
        trigger: scheduled (sweep) or manual (merchant request)
        requested_at: When the attempt started
        completed_at: When the gateway confirmed the payout
        failed_at: When the attempt failed
        failure_reason: Gateway error message
        version: Optimistic locking version
    """

    store = models.ForeignKey(
        "settlement.Store",
        on_delete=models.PROTECT,
        related_name="payouts",
        help_text="Store being paid",
    )

    # ==========================================================================
    # Amount & Currency
    # ==========================================================================

    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Amount dispatched to the gateway",
    )

    currency = models.CharField(
        max_length=3,
        help_text="ISO 4217 currency code (lowercase)",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=PayoutStatus.PENDING,
        choices=PayoutStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current payout state (managed by FSM)",
    )

    trigger = models.CharField(
        max_length=20,
        choices=PayoutTrigger.choices,
        default=PayoutTrigger.SCHEDULED,
        help_text="What started this payout",
    )

    # ==========================================================================
    # Gateway Integration
    # ==========================================================================

    provider = models.CharField(
        max_length=50,
        default="stripe",
        help_text="Payment gateway name",
    )

    provider_payout_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Gateway payout reference (po_xxx)",
    )

    # ==========================================================================
    # Timestamps
    # ==========================================================================

    requested_at = models.DateTimeField(
        default=timezone.now,
        help_text="When the payout attempt started",
    )

    completed_at = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="When the gateway confirmed the payout",
    )

    failed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the payout failed",
    )

    # ==========================================================================
    # Metadata & Error Info
    # ==========================================================================

    failure_reason = models.TextField(
        null=True,
        blank=True,
        help_text="Gateway error if the payout failed",
    )

    version = models.PositiveIntegerField(
        default=1,
        help_text="Version for optimistic locking - incremented on each save",
    )

    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Arbitrary JSON metadata",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Seller Payout"
        verbose_name_plural = "Seller Payouts"
        indexes = [
            models.Index(fields=["store", "status"], name="payout_store_status_idx"),
            models.Index(fields=["status", "requested_at"], name="payout_status_requested_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(amount__gt=0),
                name="seller_payout_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"SellerPayout({self.id}, {self.status}, {self.amount} {self.currency.upper()})"

    def save(self, *args, **kwargs):
        """Save with version auto-increment for optimistic locking."""
        is_update = not self._state.adding and not kwargs.get("force_insert", False)
        if is_update:
            self.version = F("version") + 1
        super().save(*args, **kwargs)
        if is_update:
            self.refresh_from_db(fields=["version"])

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=PayoutStatus.PENDING,
        target=PayoutStatus.COMPLETED,
    )
    def complete(self, provider_payout_id: str, completed_at=None):
        """
        Mark the payout as confirmed by the gateway.

        Transition: PENDING -> COMPLETED
        """
        self.provider_payout_id = provider_payout_id
        self.completed_at = completed_at or timezone.now()

    @transition(
        field=status,
        source=PayoutStatus.PENDING,
        target=PayoutStatus.FAILED,
    )
    def fail(self, reason: str | None = None):
        """
        Mark the payout attempt as failed.

        Transition: PENDING -> FAILED
        """
        self.failed_at = timezone.now()
        if reason:
            self.failure_reason = reason

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_complete(self) -> bool:
        return self.status == PayoutStatus.COMPLETED

    @property
    def is_pending(self) -> bool:
        return self.status == PayoutStatus.PENDING
