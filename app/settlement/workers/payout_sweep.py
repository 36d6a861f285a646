"""
Payout sweep workers.

Tasks:
- run_payout_sweep: Periodic task that pays out every store whose
  automatic payout is due
- execute_store_payout: Runs the payout executor for a single store

Usage:
    # Typically called via celery-beat schedule
    from settlement.workers import run_payout_sweep

    run_payout_sweep.delay()

    # Pay out one store now
    execute_store_payout.delay(str(store.id))
"""

from __future__ import annotations

import logging
from uuid import UUID

from celery import shared_task

from settlement.exceptions import ReconciliationRequiredError

logger = logging.getLogger(__name__)


# =============================================================================
# Periodic Task: Payout Sweep
# =============================================================================


@shared_task(bind=True)
def run_payout_sweep(self) -> dict:
    """
    Run the payout executor for every store that is due.

    Per-store failures are collected in the report and never abort the
    sweep for the remaining stores.

    Returns:
        Dict with:
        - processed: Stores paid out
        - skipped: Stores not yet eligible
        - errors: "Store <id>: <message>" entries
    """
    from settlement.services import PayoutSchedulerService

    logger.info("Starting payout sweep task", extra={"task_id": self.request.id})

    report = PayoutSchedulerService.run_payout_sweep()
    return report.to_dict()


# =============================================================================
# Individual Execution Task
# =============================================================================


@shared_task(bind=True, acks_late=True)
def execute_store_payout(self, store_id: str) -> dict:
    """
    Evaluate and, if eligible, pay out a single store.

    Args:
        store_id: UUID of the Store

    Returns:
        Dict with:
        - status: One of "completed", "skipped", "failed", "not_found",
                  "lock_failed", "reconciliation_required"
        - store_id: The store processed
        - payout_id / amount / reason / error where relevant
    """
    from settlement.services import PayoutAttemptState, PayoutExecutorService

    try:
        store_uuid = UUID(str(store_id))
    except ValueError:
        logger.error("Invalid store_id format", extra={"store_id": store_id})
        return {
            "status": "not_found",
            "store_id": store_id,
            "error": "Invalid UUID format",
        }

    logger.info(
        "Processing store payout",
        extra={"store_id": store_id, "celery_retries": self.request.retries},
    )

    try:
        result = PayoutExecutorService.execute_store_payout(store_uuid)
    except ReconciliationRequiredError as e:
        # Already logged at CRITICAL by the executor; never retry
        return {
            "status": "reconciliation_required",
            "store_id": store_id,
            "error": e.message,
        }

    if not result.success:
        status = "not_found" if result.error_code == "NOT_FOUND" else "lock_failed"
        return {
            "status": status,
            "store_id": store_id,
            "error": result.error,
            "error_code": result.error_code,
        }

    outcome = result.data
    response = {"status": outcome.state.value, "store_id": store_id}
    if outcome.state == PayoutAttemptState.SKIPPED:
        response["reason"] = outcome.reason.value
    if outcome.payout is not None:
        response["payout_id"] = str(outcome.payout.id)
        response["amount"] = str(outcome.amount)
    if outcome.error:
        response["error"] = outcome.error
    return response


__all__ = [
    "execute_store_payout",
    "run_payout_sweep",
]
