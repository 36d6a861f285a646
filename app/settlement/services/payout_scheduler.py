"""
Payout sweep: finds stores whose automatic payout is due and runs the
executor for each one.

A failure for one store is recorded in the report and never stops the
sweep from reaching the remaining stores.

Usage:
    from settlement.services import PayoutSchedulerService

    report = PayoutSchedulerService.run_payout_sweep()
    print(report.to_dict())
"""

from __future__ import annotations

import uuid
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime

from django.conf import settings
from django.db.models import Q
from django.utils import timezone

from core.services import BaseService

from settlement.models import SellerPayoutSettings
from settlement.services.payout_executor import (
    PayoutAttemptState,
    PayoutExecutorService,
)
from settlement.state_machines import PayoutMethod, PayoutTrigger


@dataclass
class SweepReport:
    """
    Aggregate result of one sweep.

    Attributes:
        processed: Stores paid out in this sweep
        skipped: Stores evaluated but not yet eligible
        errors: "Store <id>: <message>" for every failed store
    """

    processed: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)
    started_at: datetime | None = None

    def add_error(self, store_id: uuid.UUID, message: str) -> None:
        self.errors.append(f"Store {store_id}: {message}")

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "skipped": self.skipped,
            "errors": list(self.errors),
        }


class PayoutSchedulerService(BaseService):
    @classmethod
    def due_store_batches(cls, now: datetime) -> Iterator[list[uuid.UUID]]:
        """
        Yield pages of stores on automatic payouts whose next payout is due.

        A store that has never been paid (no next_payout_at yet) is due.
        Pages are keyed on store id, so stores skipped earlier in the sweep
        never hold back the ones after them.
        """
        page_size = settings.SETTLEMENT_PAYOUT_SWEEP_BATCH_SIZE
        due = (
            SellerPayoutSettings.objects.filter(
                method=PayoutMethod.AUTOMATIC,
                store__is_active=True,
            )
            .filter(Q(next_payout_at__isnull=True) | Q(next_payout_at__lte=now))
            .order_by("store_id")
            .values_list("store_id", flat=True)
        )

        last_store_id = None
        while True:
            page = due
            if last_store_id is not None:
                page = due.filter(store_id__gt=last_store_id)
            store_ids = list(page[:page_size])
            if not store_ids:
                return
            yield store_ids
            if len(store_ids) < page_size:
                return
            last_store_id = store_ids[-1]

    @classmethod
    def due_store_ids(cls, now: datetime) -> list[uuid.UUID]:
        """Every due store, across all pages."""
        return [
            store_id
            for batch in cls.due_store_batches(now)
            for store_id in batch
        ]

    @classmethod
    def run_payout_sweep(cls, now: datetime | None = None) -> SweepReport:
        """
        Run the executor for every due store.

        Args:
            now: Sweep time (defaults to now)

        Returns:
            SweepReport with processed/skipped counts and per-store errors
        """
        log = cls.get_logger()
        now = now or timezone.now()
        report = SweepReport(started_at=now)

        log.info("Starting payout sweep", extra={"now": now.isoformat()})

        for batch in cls.due_store_batches(now):
            for store_id in batch:
                cls._sweep_store(report, store_id, now)

        log.info(
            "Payout sweep complete",
            extra={
                "processed": report.processed,
                "skipped": report.skipped,
                "error_count": len(report.errors),
            },
        )
        return report

    @classmethod
    def _sweep_store(
        cls, report: SweepReport, store_id: uuid.UUID, now: datetime
    ) -> None:
        try:
            result = PayoutExecutorService.execute_store_payout(
                store_id, now=now, trigger=PayoutTrigger.SCHEDULED
            )
        except Exception as e:
            cls.get_logger().exception(
                "Payout sweep failed for store",
                extra={"store_id": str(store_id), "error": str(e)},
            )
            report.add_error(store_id, str(e))
            return

        if not result.success:
            report.add_error(store_id, result.error)
            return

        outcome = result.data
        if outcome.state == PayoutAttemptState.COMPLETED:
            report.processed += 1
        elif outcome.state == PayoutAttemptState.SKIPPED:
            report.skipped += 1
        else:
            report.add_error(store_id, outcome.error or "Payout failed")
