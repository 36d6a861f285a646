"""
Reconciliation service for detecting settlement discrepancies.

Compares each store's gateway payout history with the local SellerPayout
rows and ledger payout entries. Mismatches are recorded as
ReconciliationDiscrepancy rows for an operator; nothing here moves money
or rewrites payout history.

Detection Categories:
    1. gateway_payout_unrecorded: gateway paid out, no completed local payout
    2. payout_missing_ledger_entry: completed local payout, no ledger debit
    3. local_payout_missing_at_gateway: completed local payout whose gateway
       reference does not appear in the gateway history
    4. payout_stuck_pending: local payout left pending too long
    5. balance_cache_drift: cached SellerBalance disagreed with the ledger
       replay (healed in the same pass)

Usage:
    from settlement.services import ReconciliationService

    result = ReconciliationService.run_reconciliation(lookback_hours=24)
    if result.success:
        print(result.data.to_dict())
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from django.conf import settings
from django.utils import timezone

from core.services import BaseService, ServiceResult

from settlement import money
from settlement.adapters import PayoutResult, StripeAdapter
from settlement.exceptions import GatewayError, LockAcquisitionError
from settlement.ledger import LedgerService, SellerBalanceEntry
from settlement.locks import RECONCILIATION_RUN_KEY, DistributedLock
from settlement.models import ReconciliationDiscrepancy, SellerPayout, Store
from settlement.state_machines import (
    BalanceEntryType,
    DiscrepancyResolution,
    DiscrepancyType,
    PayoutStatus,
)

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Constants
# =============================================================================

DEFAULT_LOOKBACK_HOURS = 24

# Lock configuration
RECONCILIATION_RUN_LOCK_TTL = 3600  # 1 hour

# Gateway payout statuses that mean no money left the account
GATEWAY_UNSETTLED_STATUSES = {"failed", "canceled"}


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class ReconciliationReport:
    """Summary of one reconciliation pass."""

    started_at: datetime
    completed_at: datetime | None = None
    stores_checked: int = 0
    payouts_checked: int = 0
    discrepancies_found: int = 0
    balances_healed: int = 0
    by_type: dict[str, int] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)

    def count(self, discrepancy_type: str) -> None:
        self.discrepancies_found += 1
        self.by_type[discrepancy_type] = self.by_type.get(discrepancy_type, 0) + 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "stores_checked": self.stores_checked,
            "payouts_checked": self.payouts_checked,
            "discrepancies_found": self.discrepancies_found,
            "balances_healed": self.balances_healed,
            "by_type": dict(self.by_type),
            "errors": list(self.errors),
        }


# =============================================================================
# Reconciliation Service
# =============================================================================


class ReconciliationService(BaseService):
    """
    Flags mismatches between gateway payouts and local settlement records.

    Concurrency Safety:
        - Global run lock prevents concurrent reconciliation runs
        - Discrepancies are unique per (type, store, reference), so a run
          that overlaps a previous window does not record duplicates
    """

    # Gateway adapter - can be injected for testing
    _gateway_adapter: type | None = None

    @classmethod
    def get_gateway_adapter(cls) -> type:
        return cls._gateway_adapter or StripeAdapter

    @classmethod
    def set_gateway_adapter(cls, adapter: type | None) -> None:
        """Set the gateway adapter class (for testing)."""
        cls._gateway_adapter = adapter

    # =========================================================================
    # Public API
    # =========================================================================

    @classmethod
    def run_reconciliation(
        cls,
        lookback_hours: int = DEFAULT_LOOKBACK_HOURS,
    ) -> ServiceResult[ReconciliationReport]:
        """
        Reconcile every store that has a connected account.

        Args:
            lookback_hours: How far back to compare payout histories

        Returns:
            ServiceResult containing a ReconciliationReport, or a
            RECONCILIATION_IN_PROGRESS failure if another run holds the lock
        """
        if lookback_hours <= 0:
            return ServiceResult.failure(
                "lookback_hours must be positive", error_code="VALIDATION_ERROR"
            )

        log = cls.get_logger()
        log.info("Starting reconciliation run", extra={"lookback_hours": lookback_hours})

        try:
            with DistributedLock(
                RECONCILIATION_RUN_KEY,
                ttl=RECONCILIATION_RUN_LOCK_TTL,
                blocking=False,
            ):
                report = cls._run_with_lock(lookback_hours)
        except LockAcquisitionError:
            log.warning("Another reconciliation run is in progress")
            return ServiceResult.failure(
                "Another reconciliation run is in progress",
                error_code="RECONCILIATION_IN_PROGRESS",
            )

        return ServiceResult.success(report)

    @classmethod
    def reconcile_store(
        cls,
        store_id: uuid.UUID,
        lookback_hours: int = DEFAULT_LOOKBACK_HOURS,
    ) -> ServiceResult[ReconciliationReport]:
        """Reconcile a single store."""
        store = Store.objects.filter(id=store_id).first()
        if store is None:
            return ServiceResult.failure(
                f"Store {store_id} not found", error_code="NOT_FOUND"
            )

        report = ReconciliationReport(started_at=timezone.now())
        cls._reconcile_store(store, report, lookback_hours)
        report.completed_at = timezone.now()
        return ServiceResult.success(report)

    # =========================================================================
    # Internal: Run Orchestration
    # =========================================================================

    @classmethod
    def _run_with_lock(cls, lookback_hours: int) -> ReconciliationReport:
        log = cls.get_logger()
        report = ReconciliationReport(started_at=timezone.now())

        stores = Store.objects.filter(stripe_account_id__isnull=False).order_by("id")
        for store in stores.iterator():
            try:
                cls._reconcile_store(store, report, lookback_hours)
            except Exception as e:
                log.exception(
                    "Reconciliation failed for store",
                    extra={"store_id": str(store.id), "error": str(e)},
                )
                report.errors.append(f"Store {store.id}: {e}")

        report.completed_at = timezone.now()
        log.info(
            "Reconciliation run completed",
            extra={
                "stores_checked": report.stores_checked,
                "payouts_checked": report.payouts_checked,
                "discrepancies_found": report.discrepancies_found,
                "balances_healed": report.balances_healed,
                "error_count": len(report.errors),
                "duration_seconds": (
                    report.completed_at - report.started_at
                ).total_seconds(),
            },
        )
        return report

    @classmethod
    def _reconcile_store(
        cls,
        store: Store,
        report: ReconciliationReport,
        lookback_hours: int,
    ) -> None:
        now = timezone.now()
        since = now - timedelta(hours=lookback_hours)
        report.stores_checked += 1

        gateway_payouts: list[PayoutResult] | None = None
        if store.stripe_account_id:
            try:
                gateway_payouts = cls.get_gateway_adapter().list_payouts(
                    store.stripe_account_id, created_after=since
                )
            except GatewayError as e:
                cls.get_logger().warning(
                    "Could not list gateway payouts, comparing local records only",
                    extra={
                        "store_id": str(store.id),
                        "error_code": e.error_code,
                        "error": e.message,
                    },
                )
                report.errors.append(f"Store {store.id}: {e.message}")

        local_payouts = list(
            SellerPayout.objects.filter(store=store, requested_at__gte=since)
        )
        report.payouts_checked += len(local_payouts)

        if gateway_payouts is not None:
            cls._check_gateway_payouts(store, gateway_payouts, report)
            cls._check_local_payouts_at_gateway(
                store, local_payouts, gateway_payouts, report
            )

        cls._check_missing_ledger_entries(store, local_payouts, report)
        cls._check_stuck_payouts(store, now, report)
        cls._heal_balance_cache(store, report)

    # =========================================================================
    # Internal: Checks
    # =========================================================================

    @classmethod
    def _check_gateway_payouts(
        cls,
        store: Store,
        gateway_payouts: list[PayoutResult],
        report: ReconciliationReport,
    ) -> None:
        """Flag gateway payouts that no completed local payout accounts for."""
        gateway_ids = [p.id for p in gateway_payouts]
        recorded_ids = set(
            SellerPayout.objects.filter(
                store=store,
                provider_payout_id__in=gateway_ids,
                status=PayoutStatus.COMPLETED,
            ).values_list("provider_payout_id", flat=True)
        )

        for gateway_payout in gateway_payouts:
            if gateway_payout.status in GATEWAY_UNSETTLED_STATUSES:
                continue
            if gateway_payout.id in recorded_ids:
                continue

            local_payout = cls._find_payout_by_metadata(store, gateway_payout)
            if local_payout is not None and local_payout.is_complete:
                continue

            cls._record(
                report,
                DiscrepancyType.GATEWAY_PAYOUT_UNRECORDED,
                store,
                reference=gateway_payout.id,
                payout=local_payout,
                amount=money.from_minor_units(gateway_payout.amount_cents),
                details={
                    "gateway_status": gateway_payout.status,
                    "gateway_created": (
                        gateway_payout.created.isoformat()
                        if gateway_payout.created
                        else None
                    ),
                    "local_status": local_payout.status if local_payout else None,
                },
            )

    @staticmethod
    def _find_payout_by_metadata(
        store: Store, gateway_payout: PayoutResult
    ) -> SellerPayout | None:
        seller_payout_id = gateway_payout.metadata.get("seller_payout_id")
        if not seller_payout_id:
            return None
        try:
            payout_uuid = uuid.UUID(seller_payout_id)
        except ValueError:
            return None
        return SellerPayout.objects.filter(store=store, id=payout_uuid).first()

    @classmethod
    def _check_local_payouts_at_gateway(
        cls,
        store: Store,
        local_payouts: list[SellerPayout],
        gateway_payouts: list[PayoutResult],
        report: ReconciliationReport,
    ) -> None:
        gateway_by_id = {p.id: p for p in gateway_payouts}
        for payout in local_payouts:
            if not payout.is_complete or not payout.provider_payout_id:
                continue
            gateway_payout = gateway_by_id.get(payout.provider_payout_id)
            if gateway_payout is not None and (
                gateway_payout.status not in GATEWAY_UNSETTLED_STATUSES
            ):
                continue

            cls._record(
                report,
                DiscrepancyType.LOCAL_PAYOUT_MISSING_AT_GATEWAY,
                store,
                reference=payout.provider_payout_id,
                payout=payout,
                amount=payout.amount,
                details={
                    "local_status": payout.status,
                    "completed_at": (
                        payout.completed_at.isoformat() if payout.completed_at else None
                    ),
                    "gateway_status": gateway_payout.status if gateway_payout else None,
                },
            )

    @classmethod
    def _check_missing_ledger_entries(
        cls,
        store: Store,
        local_payouts: list[SellerPayout],
        report: ReconciliationReport,
    ) -> None:
        completed = [p for p in local_payouts if p.is_complete]
        if not completed:
            return

        debited_ids = set(
            SellerBalanceEntry.objects.filter(
                payout_id__in=[p.id for p in completed],
                entry_type=BalanceEntryType.PAYOUT,
            ).values_list("payout_id", flat=True)
        )
        for payout in completed:
            if payout.id in debited_ids:
                continue
            cls._record(
                report,
                DiscrepancyType.PAYOUT_MISSING_LEDGER_ENTRY,
                store,
                reference=str(payout.id),
                payout=payout,
                amount=payout.amount,
                details={
                    "provider_payout_id": payout.provider_payout_id,
                    "ledger_entry_withheld": bool(
                        payout.metadata.get("ledger_entry_withheld")
                    ),
                },
            )

    @classmethod
    def _check_stuck_payouts(
        cls,
        store: Store,
        now: datetime,
        report: ReconciliationReport,
    ) -> None:
        threshold = now - timedelta(hours=settings.SETTLEMENT_STUCK_PAYOUT_HOURS)
        stuck = SellerPayout.objects.filter(
            store=store,
            status=PayoutStatus.PENDING,
            requested_at__lt=threshold,
        )
        for payout in stuck:
            cls._record(
                report,
                DiscrepancyType.PAYOUT_STUCK_PENDING,
                store,
                reference=str(payout.id),
                payout=payout,
                amount=payout.amount,
                details={
                    "requested_at": payout.requested_at.isoformat(),
                    "age_hours": round(
                        (now - payout.requested_at).total_seconds() / 3600, 2
                    ),
                },
            )

    @classmethod
    def _heal_balance_cache(cls, store: Store, report: ReconciliationReport) -> None:
        summary = LedgerService.compute_balance(store.id, store.currency)
        if not LedgerService.heal_cached_balance(summary):
            return

        report.balances_healed += 1
        cls._record(
            report,
            DiscrepancyType.BALANCE_CACHE_DRIFT,
            store,
            reference=f"{store.currency}:{summary.as_of.isoformat()}",
            amount=summary.current_balance,
            details=summary.to_dict(),
            resolution=DiscrepancyResolution.AUTO_HEALED,
        )

    # =========================================================================
    # Internal: Persistence
    # =========================================================================

    @classmethod
    def _record(
        cls,
        report: ReconciliationReport,
        discrepancy_type: str,
        store: Store,
        reference: str,
        payout: SellerPayout | None = None,
        amount: Decimal | None = None,
        details: dict | None = None,
        resolution: str = DiscrepancyResolution.OPEN,
    ) -> ReconciliationDiscrepancy:
        """Record a discrepancy once per (type, store, reference)."""
        defaults = {
            "payout": payout,
            "amount": amount,
            "details": details or {},
            "resolution": resolution,
        }
        if resolution != DiscrepancyResolution.OPEN:
            defaults["resolved_at"] = timezone.now()

        discrepancy, created = ReconciliationDiscrepancy.objects.get_or_create(
            discrepancy_type=discrepancy_type,
            store=store,
            reference=reference,
            defaults=defaults,
        )
        if created:
            report.count(discrepancy_type)
            cls.get_logger().log(
                logging.WARNING
                if resolution == DiscrepancyResolution.OPEN
                else logging.INFO,
                "Settlement discrepancy recorded",
                extra={
                    "discrepancy_type": discrepancy_type,
                    "store_id": str(store.id),
                    "reference": reference,
                    "payout_id": str(payout.id) if payout else None,
                    "amount": str(amount) if amount is not None else None,
                },
            )
        return discrepancy
