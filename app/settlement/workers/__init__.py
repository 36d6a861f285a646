"""
Workers for background settlement processing.

This module contains Celery tasks:
- Payout sweep: Pays out stores whose automatic payout is due
- Balance refresh: Moves cleared funds from pending to available in the cache
- Reconciliation: Flags gateway vs. local payout mismatches

Usage:
    from settlement.workers import (
        execute_store_payout,
        refresh_seller_balances,
        run_payout_sweep,
        run_scheduled_reconciliation,
    )

    run_payout_sweep.delay()
    execute_store_payout.delay(str(store_id))
"""

from settlement.workers.balance_refresh import refresh_seller_balances
from settlement.workers.payout_sweep import execute_store_payout, run_payout_sweep
from settlement.workers.reconciliation_worker import run_scheduled_reconciliation

__all__ = [
    # Payout sweep
    "execute_store_payout",
    "run_payout_sweep",
    # Balance refresh
    "refresh_seller_balances",
    # Reconciliation
    "run_scheduled_reconciliation",
]
