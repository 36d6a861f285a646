"""
Seller balance ledger models.

- SellerBalanceEntry: append-only signed entries per store and currency
- SellerBalance: cached snapshot derived from the entries

The entries are the source of truth. A store's balance for a currency is
the sum of its entries; ``available_at`` splits that sum into available
and pending funds. SellerBalance is a materialized view refreshed on
every ledger write and never edited by hand.
"""

from __future__ import annotations

from django.db import models
from django.db.models import Q
from django.utils import timezone

from core.model_mixins import UUIDPrimaryKeyMixin

from settlement.exceptions import SettlementError
from settlement.state_machines import BalanceEntryType


class SellerBalanceEntry(UUIDPrimaryKeyMixin, models.Model):
    """
    One immutable credit or debit on a store's balance.

    Amount sign convention:
        positive: credit (money owed to the store)
        negative: debit (fees, refunds, payouts)

    Uniqueness:
        - idempotency_key is unique (e.g. "payment:<provider ref>")
        - (store, entry_type, order_payment) for payment-level entries
        - (store, entry_type, refund) for refund-level entries
        - (store, entry_type, payout) for payout entries
        A replayed write fails on these constraints and is treated as
        "already applied".

    Fields:
        store: Store whose balance this entry affects
        entry_type: Category of the entry
        amount: Signed amount
        currency: ISO 4217 currency code
        order / order_payment / refund / payout: Optional references
        idempotency_key: Unique replay-detection key
        description: Human-readable description
        available_at: When the amount clears into the available balance
        created_at: When the entry was recorded
    """

    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="Timestamp when this entry was recorded",
    )

    store = models.ForeignKey(
        "settlement.Store",
        on_delete=models.PROTECT,
        related_name="balance_entries",
        help_text="Store whose balance this entry affects",
    )

    entry_type = models.CharField(
        max_length=20,
        choices=BalanceEntryType.choices,
        help_text="Category of this entry",
    )

    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Signed amount: positive credits, negative debits",
    )

    currency = models.CharField(
        max_length=3,
        help_text="ISO 4217 currency code (lowercase)",
    )

    # ==========================================================================
    # References
    # ==========================================================================

    order = models.ForeignKey(
        "settlement.Order",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="balance_entries",
    )

    order_payment = models.ForeignKey(
        "settlement.OrderPayment",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="balance_entries",
    )

    refund = models.ForeignKey(
        "settlement.OrderRefund",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="balance_entries",
    )

    payout = models.ForeignKey(
        "settlement.SellerPayout",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="balance_entries",
    )

    idempotency_key = models.CharField(
        max_length=255,
        unique=True,
        help_text="Unique key to prevent duplicate entries",
    )

    description = models.TextField(
        blank=True,
        default="",
        help_text="Human-readable description of this entry",
    )

    available_at = models.DateTimeField(
        default=timezone.now,
        db_index=True,
        help_text="When this amount clears into the available balance",
    )

    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Arbitrary JSON data for extensibility",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Seller Balance Entry"
        verbose_name_plural = "Seller Balance Entries"
        indexes = [
            models.Index(
                fields=["store", "currency", "available_at"],
                name="entry_store_currency_avail_idx",
            ),
            models.Index(fields=["store", "entry_type"], name="entry_store_type_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=~Q(amount=0),
                name="seller_balance_entry_amount_non_zero",
            ),
            models.UniqueConstraint(
                fields=["store", "entry_type", "order_payment"],
                condition=Q(
                    order_payment__isnull=False,
                    refund__isnull=True,
                    payout__isnull=True,
                ),
                name="seller_balance_entry_unique_payment",
            ),
            models.UniqueConstraint(
                fields=["store", "entry_type", "refund"],
                condition=Q(refund__isnull=False),
                name="seller_balance_entry_unique_refund",
            ),
            models.UniqueConstraint(
                fields=["store", "entry_type", "payout"],
                condition=Q(payout__isnull=False),
                name="seller_balance_entry_unique_payout",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.get_entry_type_display()}: {self.amount} {self.currency.upper()}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise SettlementError(
                "Ledger entries are immutable",
                error_code="LEDGER_ENTRY_IMMUTABLE",
                details={"entry_id": str(self.pk)},
            )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise SettlementError(
            "Ledger entries cannot be deleted",
            error_code="LEDGER_ENTRY_IMMUTABLE",
            details={"entry_id": str(self.pk)},
        )


class SellerBalance(models.Model):
    """
    Cached balance snapshot for one store and currency.

    Refreshed inside the same transaction as every ledger write. The row
    is also the lock target that serializes ledger writes for a store.

    Fields:
        store / currency: The balance being cached
        available_balance: Cleared funds (may be negative when the store owes)
        pending_balance: Funds still inside their hold window
        last_payout_at / last_payout_amount: Most recent completed payout
        refreshed_at: When the snapshot was last recomputed
    """

    store = models.ForeignKey(
        "settlement.Store",
        on_delete=models.CASCADE,
        related_name="balances",
    )

    currency = models.CharField(
        max_length=3,
        help_text="ISO 4217 currency code (lowercase)",
    )

    available_balance = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=0,
        help_text="Cleared funds (negative when the store owes the platform)",
    )

    pending_balance = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=0,
        help_text="Funds still inside their hold window",
    )

    last_payout_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the last payout completed",
    )

    last_payout_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Amount of the last completed payout",
    )

    refreshed_at = models.DateTimeField(
        default=timezone.now,
        help_text="When this snapshot was last recomputed",
    )

    class Meta:
        verbose_name = "Seller Balance"
        verbose_name_plural = "Seller Balances"
        constraints = [
            models.UniqueConstraint(
                fields=["store", "currency"],
                name="seller_balance_unique_store_currency",
            ),
        ]

    def __str__(self) -> str:
        return (
            f"SellerBalance({self.store_id}, {self.currency.upper()}, "
            f"available={self.available_balance}, pending={self.pending_balance})"
        )
