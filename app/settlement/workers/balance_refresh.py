"""
Balance refresh worker.

Funds move from pending to available when their hold window elapses,
without any new ledger entry being written. This task re-derives every
cached SellerBalance so dashboards reading the cache see cleared funds.

Usage:
    from settlement.workers import refresh_seller_balances

    refresh_seller_balances.delay()
"""

from __future__ import annotations

import logging

from celery import shared_task
from django.utils import timezone

logger = logging.getLogger(__name__)

# Cached rows loaded per query
BATCH_SIZE = 500


@shared_task(bind=True)
def refresh_seller_balances(self) -> dict:
    """
    Recompute every cached seller balance from the ledger.

    Returns:
        Dict with:
        - refreshed_count: Balance rows checked
        - drifted_count: Rows whose cached total disagreed with the replay
        - failed_count: Rows that could not be refreshed
    """
    from settlement.ledger import LedgerService, SellerBalance

    now = timezone.now()
    logger.info("Starting seller balance refresh", extra={"task_id": self.request.id})

    refreshed_count = 0
    drifted_count = 0
    failed_count = 0

    keys = SellerBalance.objects.order_by("store_id", "currency").values_list(
        "store_id", "currency"
    )
    for store_id, currency in keys.iterator(chunk_size=BATCH_SIZE):
        try:
            summary = LedgerService.compute_balance(store_id, currency, as_of=now)
            if LedgerService.heal_cached_balance(summary):
                drifted_count += 1
            refreshed_count += 1
        except Exception as e:
            logger.error(
                f"Failed to refresh seller balance: {e}",
                extra={"store_id": str(store_id), "currency": currency},
                exc_info=True,
            )
            failed_count += 1

    logger.info(
        f"Seller balance refresh complete: {refreshed_count} refreshed",
        extra={
            "refreshed_count": refreshed_count,
            "drifted_count": drifted_count,
            "failed_count": failed_count,
        },
    )
    return {
        "refreshed_count": refreshed_count,
        "drifted_count": drifted_count,
        "failed_count": failed_count,
    }


__all__ = ["refresh_seller_balances"]
