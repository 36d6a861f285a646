"""
Reconciliation worker for periodic payout consistency checks.

Tasks:
- run_scheduled_reconciliation: Compares gateway payout history with local
  payouts and ledger entries for every connected store

Usage:
    from settlement.workers import run_scheduled_reconciliation

    run_scheduled_reconciliation.delay(lookback_hours=48)
"""

from __future__ import annotations

import logging

from celery import shared_task

logger = logging.getLogger(__name__)

DEFAULT_LOOKBACK_HOURS = 24


@shared_task(bind=True)
def run_scheduled_reconciliation(
    self,
    lookback_hours: int = DEFAULT_LOOKBACK_HOURS,
) -> dict:
    """
    Run a full reconciliation pass.

    Returns:
        Dict with:
        - status: "completed", "skipped" (another run holds the lock), or "failed"
        - the ReconciliationReport fields when completed
        - error / error_code when failed
    """
    from settlement.services import ReconciliationService

    logger.info(
        "Starting scheduled reconciliation run",
        extra={"lookback_hours": lookback_hours, "task_id": self.request.id},
    )

    result = ReconciliationService.run_reconciliation(lookback_hours=lookback_hours)

    if result.success:
        return {"status": "completed", **result.data.to_dict()}

    if result.error_code == "RECONCILIATION_IN_PROGRESS":
        logger.info(
            "Reconciliation run skipped - another run in progress",
            extra={"task_id": self.request.id},
        )
        return {"status": "skipped", "reason": result.error}

    logger.error(
        f"Reconciliation failed: {result.error}",
        extra={"error": result.error, "error_code": result.error_code},
    )
    return {
        "status": "failed",
        "error": result.error,
        "error_code": result.error_code,
    }


__all__ = ["run_scheduled_reconciliation"]
