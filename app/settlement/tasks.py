"""
Celery tasks for settlement.

Re-exports the workers so Celery autodiscovery (which imports
``<app>.tasks``) registers them.

Usage:
    from settlement.tasks import run_payout_sweep

    run_payout_sweep.delay()
"""

from settlement.workers import (
    execute_store_payout,
    refresh_seller_balances,
    run_payout_sweep,
    run_scheduled_reconciliation,
)

__all__ = [
    "execute_store_payout",
    "refresh_seller_balances",
    "run_payout_sweep",
    "run_scheduled_reconciliation",
]
