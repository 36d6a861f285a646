"""
Balance summaries for merchant dashboards.

Balances are always derived by replaying the ledger; the cached
SellerBalance row is healed on read if it disagrees.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from core.services import BaseService, ServiceResult

from settlement.ledger import BalanceSummary, LedgerService, SellerBalanceEntry
from settlement.models import Store


class BalanceService(BaseService):
    @classmethod
    def get_balance_summary(
        cls,
        store_id: uuid.UUID,
        currency: str | None = None,
        as_of: datetime | None = None,
    ) -> ServiceResult[BalanceSummary]:
        """
        Return available, pending, amount-due and current balances.

        Args:
            store_id: Store to summarize
            currency: Currency to summarize (defaults to the store's)
            as_of: Point in time for the hold window (defaults to now)
        """
        store = Store.objects.filter(id=store_id).first()
        if store is None:
            return ServiceResult.failure(
                f"Store {store_id} not found", error_code="NOT_FOUND"
            )

        summary = LedgerService.get_balance_summary(
            store.id, (currency or store.currency).lower(), as_of
        )
        return ServiceResult.success(summary)

    @classmethod
    def list_entries(
        cls,
        store_id: uuid.UUID,
        limit: int = 50,
        offset: int = 0,
    ) -> ServiceResult[list[SellerBalanceEntry]]:
        """Return a store's balance history, newest first."""
        if limit <= 0 or offset < 0:
            return ServiceResult.failure(
                "limit must be positive and offset non-negative",
                error_code="VALIDATION_ERROR",
            )
        if not Store.objects.filter(id=store_id).exists():
            return ServiceResult.failure(
                f"Store {store_id} not found", error_code="NOT_FOUND"
            )
        return ServiceResult.success(
            LedgerService.list_entries(store_id, limit=limit, offset=offset)
        )
