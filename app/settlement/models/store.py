"""
Store model: the seller side of the marketplace as seen by settlement.

A Store owns its orders, balance entries and payouts. Settlement only
needs the store's currency and its gateway connected account; catalog
and storefront data live elsewhere.
"""

from __future__ import annotations

from django.db import models
from django.db.models import F

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from settlement.state_machines import OnboardingStatus


class Store(UUIDPrimaryKeyMixin, BaseModel):
    """
    A seller storefront that receives funds through a connected account.

    Fields:
        name: Display name, used in checkout error messages
        currency: Settlement currency (ISO 4217, lowercase)
        stripe_account_id: Connected account id (acct_xxx), null until onboarding starts
        onboarding_status: Gateway onboarding status
        charges_enabled: Gateway allows destination charges to this account
        payouts_enabled: Gateway allows payouts from this account
        is_active: Inactive stores are skipped by the payout sweep
        version: Optimistic locking version

    Properties:
        has_payment_destination: True if checkout can route funds to the store
        is_payout_capable: True if the executor may dispatch payouts
    """

    name = models.CharField(
        max_length=255,
        help_text="Store display name",
    )

    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 settlement currency (lowercase)",
    )

    # ==========================================================================
    # Gateway Connected Account
    # ==========================================================================

    stripe_account_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Stripe connected account ID (acct_xxx)",
    )

    onboarding_status = models.CharField(
        max_length=20,
        choices=OnboardingStatus.choices,
        default=OnboardingStatus.NOT_STARTED,
        db_index=True,
        help_text="Connected account onboarding status",
    )

    charges_enabled = models.BooleanField(
        default=False,
        help_text="Whether the gateway accepts charges for this account",
    )

    payouts_enabled = models.BooleanField(
        default=False,
        help_text="Whether the gateway allows payouts for this account",
    )

    is_active = models.BooleanField(
        default=True,
        help_text="Inactive stores are excluded from automatic payouts",
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
        ordering = ["name"]
        verbose_name = "Store"
        verbose_name_plural = "Stores"

    def __str__(self) -> str:
        return f"Store({self.name}, {self.currency.upper()})"

    def save(self, *args, **kwargs):
        """Save with version auto-increment for optimistic locking."""
        is_update = not self._state.adding and not kwargs.get("force_insert", False)
        if is_update:
            self.version = F("version") + 1
        super().save(*args, **kwargs)
        if is_update:
            self.refresh_from_db(fields=["version"])

    @property
    def has_payment_destination(self) -> bool:
        """True if destination charges can be routed to this store."""
        return bool(self.stripe_account_id)

    @property
    def is_payout_capable(self) -> bool:
        """
        True if payouts may be dispatched for this store.

        Requires a connected account with completed onboarding and
        payouts enabled by the gateway.
        """
        return (
            bool(self.stripe_account_id)
            and self.onboarding_status == OnboardingStatus.COMPLETE
            and self.payouts_enabled
        )
