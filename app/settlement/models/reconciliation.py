"""
ReconciliationDiscrepancy model.

Rows are written by the reconciliation pass when the gateway's payout
history and the local payout/ledger records disagree. Nothing here moves
money; discrepancies are resolved by an operator.
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from settlement.state_machines import DiscrepancyResolution, DiscrepancyType


class ReconciliationDiscrepancy(UUIDPrimaryKeyMixin, BaseModel):
    """
    A mismatch between gateway state and local settlement records.

    Each (discrepancy_type, store, reference) is recorded once, so repeated
    reconciliation runs do not pile up duplicates.

    Fields:
        discrepancy_type: Kind of mismatch
        store: Store the mismatch belongs to
        reference: Gateway payout id or local payout id
        payout: Local payout involved, if any
        amount: Amount involved, if known
        details: Snapshot of both sides at detection time
        resolution: open, auto_healed or resolved
        resolved_at: When an operator (or the pass itself) closed it
    """

    discrepancy_type = models.CharField(
        max_length=50,
        choices=DiscrepancyType.choices,
        db_index=True,
        help_text="Kind of mismatch",
    )

    store = models.ForeignKey(
        "settlement.Store",
        on_delete=models.PROTECT,
        related_name="discrepancies",
        help_text="Store the mismatch belongs to",
    )

    reference = models.CharField(
        max_length=255,
        help_text="Gateway payout id or local payout id",
    )

    payout = models.ForeignKey(
        "settlement.SellerPayout",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="discrepancies",
        help_text="Local payout involved, if any",
    )

    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Amount involved, if known",
    )

    details = models.JSONField(
        default=dict,
        blank=True,
        help_text="Gateway and local state at detection time",
    )

    resolution = models.CharField(
        max_length=20,
        choices=DiscrepancyResolution.choices,
        default=DiscrepancyResolution.OPEN,
        db_index=True,
        help_text="Resolution status",
    )

    resolved_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the discrepancy was closed",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Reconciliation Discrepancy"
        verbose_name_plural = "Reconciliation Discrepancies"
        constraints = [
            models.UniqueConstraint(
                fields=["discrepancy_type", "store", "reference"],
                name="reconciliation_discrepancy_unique_reference",
            ),
        ]

    def __str__(self) -> str:
        return f"ReconciliationDiscrepancy({self.discrepancy_type}, {self.reference})"

    def resolve(self, resolution: str = DiscrepancyResolution.RESOLVED) -> None:
        self.resolution = resolution
        self.resolved_at = timezone.now()
