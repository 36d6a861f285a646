"""
Ledger service layer for seller balances.

All writes to SellerBalanceEntry go through LedgerService so that:
- every write happens inside a transaction that also refreshes the
  cached SellerBalance row
- writes for the same store and currency are serialized by a row lock
  on that cached row
- replays are detected by the idempotency key and the reference
  uniqueness constraints, and treated as "already applied"

Usage:
    from settlement.ledger.services import LedgerService

    results = LedgerService.append_entries([credit_params, fee_params])
    summary = LedgerService.compute_balance(store.id, "usd")
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from decimal import Decimal

from django.db import IntegrityError, transaction
from django.db.models import Case, DecimalField, F, Sum, Value, When
from django.db.models.functions import Coalesce
from django.utils import timezone

from settlement import money
from settlement.ledger.models import SellerBalance, SellerBalanceEntry
from settlement.ledger.types import BalanceSummary, EntryParams
from settlement.state_machines import BalanceEntryType

logger = logging.getLogger(__name__)

_AMOUNT_FIELD = DecimalField(max_digits=14, decimal_places=2)


class LedgerService:
    """
    Service class for seller balance ledger operations.

    Key features:
    - Atomic multi-entry writes
    - Idempotency via unique keys (safe to retry)
    - Balance row locking in a consistent order to prevent deadlocks
    - Balance derivation purely by replaying entries

    All methods are static - no instance state is maintained.
    """

    # =========================================================================
    # Writes
    # =========================================================================

    @staticmethod
    def append_entry(params: EntryParams) -> tuple[SellerBalanceEntry, bool]:
        """
        Append a single ledger entry.

        Returns:
            (entry, created) where created is False if the entry had
            already been applied
        """
        return LedgerService.append_entries([params])[0]

    @staticmethod
    def append_entries(
        entries: list[EntryParams],
    ) -> list[tuple[SellerBalanceEntry, bool]]:
        """
        Append multiple ledger entries atomically.

        All entries succeed or all fail. Joins the caller's transaction
        when one is open, so a payment insert and its ledger entries
        commit together.

        Args:
            entries: Entry parameters, applied in order

        Returns:
            One (entry, created) tuple per input, in input order
        """
        if not entries:
            return []

        results: list[tuple[SellerBalanceEntry, bool]] = []

        with transaction.atomic():
            # Lock balance rows in a consistent order to prevent deadlocks
            balance_keys = sorted({(str(p.store_id), p.currency) for p in entries})
            for store_id, currency in balance_keys:
                LedgerService.lock_balance_row(uuid.UUID(store_id), currency)

            for params in entries:
                # Check idempotency first so replays never touch constraints
                existing = SellerBalanceEntry.objects.filter(
                    idempotency_key=params.idempotency_key
                ).first()
                if existing is not None:
                    logger.info(
                        "Ledger entry already applied",
                        extra={
                            "idempotency_key": params.idempotency_key,
                            "entry_id": str(existing.id),
                        },
                    )
                    results.append((existing, False))
                    continue

                try:
                    with transaction.atomic():
                        entry = SellerBalanceEntry.objects.create(
                            store_id=params.store_id,
                            entry_type=params.entry_type,
                            amount=params.amount,
                            currency=params.currency,
                            order_id=params.order_id,
                            order_payment_id=params.order_payment_id,
                            refund_id=params.refund_id,
                            payout_id=params.payout_id,
                            idempotency_key=params.idempotency_key,
                            description=params.description,
                            available_at=params.available_at or timezone.now(),
                            metadata=params.metadata,
                        )
                except IntegrityError:
                    # Another writer applied the same entry between our check
                    # and insert, or the reference is already recorded under a
                    # different key
                    entry = LedgerService._find_conflicting_entry(params)
                    if entry is None:
                        raise
                    logger.info(
                        "Ledger entry conflict treated as already applied",
                        extra={
                            "idempotency_key": params.idempotency_key,
                            "entry_id": str(entry.id),
                        },
                    )
                    results.append((entry, False))
                    continue

                logger.info(
                    "Ledger entry appended",
                    extra={
                        "entry_id": str(entry.id),
                        "store_id": str(params.store_id),
                        "entry_type": params.entry_type,
                        "amount": str(params.amount),
                        "currency": params.currency,
                    },
                )
                results.append((entry, True))

            for store_id, currency in balance_keys:
                LedgerService.refresh_cached_balance(uuid.UUID(store_id), currency)

        return results

    @staticmethod
    def lock_balance_row(store_id: uuid.UUID, currency: str) -> SellerBalance:
        """Lock (creating if needed) the cached balance row. Call inside a transaction."""
        balance, _ = SellerBalance.objects.select_for_update().get_or_create(
            store_id=store_id,
            currency=currency,
        )
        return balance

    @staticmethod
    def _find_conflicting_entry(params: EntryParams) -> SellerBalanceEntry | None:
        """Find the entry that made an insert violate a uniqueness constraint."""
        existing = SellerBalanceEntry.objects.filter(
            idempotency_key=params.idempotency_key
        ).first()
        if existing is not None:
            return existing

        lookup = {"store_id": params.store_id, "entry_type": params.entry_type}
        if params.payout_id is not None:
            lookup["payout_id"] = params.payout_id
        elif params.refund_id is not None:
            lookup["refund_id"] = params.refund_id
        elif params.order_payment_id is not None:
            lookup.update(
                order_payment_id=params.order_payment_id,
                refund__isnull=True,
                payout__isnull=True,
            )
        else:
            return None
        return SellerBalanceEntry.objects.filter(**lookup).first()

    # =========================================================================
    # Derivation
    # =========================================================================

    @staticmethod
    def compute_balance(
        store_id: uuid.UUID,
        currency: str,
        as_of: datetime | None = None,
    ) -> BalanceSummary:
        """
        Derive a store's balance by replaying all of its entries.

        Entries whose ``available_at`` is at or before ``as_of`` count as
        available; later ones are pending.

        Args:
            store_id: Store to compute
            currency: Currency to compute
            as_of: Point in time for the hold window (defaults to now)
        """
        as_of = as_of or timezone.now()
        result = SellerBalanceEntry.objects.filter(
            store_id=store_id,
            currency=currency,
        ).aggregate(
            available=Coalesce(
                Sum(
                    Case(
                        When(available_at__lte=as_of, then=F("amount")),
                        default=Value(Decimal("0")),
                        output_field=_AMOUNT_FIELD,
                    )
                ),
                Value(Decimal("0")),
                output_field=_AMOUNT_FIELD,
            ),
            pending=Coalesce(
                Sum(
                    Case(
                        When(available_at__gt=as_of, then=F("amount")),
                        default=Value(Decimal("0")),
                        output_field=_AMOUNT_FIELD,
                    )
                ),
                Value(Decimal("0")),
                output_field=_AMOUNT_FIELD,
            ),
        )
        return BalanceSummary(
            store_id=store_id,
            currency=currency,
            available_balance=money.quantize(result["available"]),
            pending_balance=money.quantize(result["pending"]),
            as_of=as_of,
        )

    @staticmethod
    def refresh_cached_balance(
        store_id: uuid.UUID,
        currency: str,
        as_of: datetime | None = None,
    ) -> SellerBalance:
        """
        Recompute and store the cached balance for a store and currency.

        Locks the cached row for the duration of the refresh.
        """
        with transaction.atomic():
            balance = LedgerService.lock_balance_row(store_id, currency)
            summary = LedgerService.compute_balance(store_id, currency, as_of)

            last_payout = (
                SellerBalanceEntry.objects.filter(
                    store_id=store_id,
                    currency=currency,
                    entry_type=BalanceEntryType.PAYOUT,
                )
                .order_by("-available_at")
                .first()
            )

            balance.available_balance = summary.available_balance
            balance.pending_balance = summary.pending_balance
            if last_payout is not None:
                balance.last_payout_at = last_payout.available_at
                balance.last_payout_amount = -last_payout.amount
            balance.refreshed_at = summary.as_of
            balance.save()
        return balance

    @staticmethod
    def get_balance_summary(
        store_id: uuid.UUID,
        currency: str,
        as_of: datetime | None = None,
    ) -> BalanceSummary:
        """
        Return the replayed balance, healing the cached row if it disagrees.

        A cache whose total differs from the replay is a defect and is
        logged as an error before being healed. A cache whose total matches
        but whose available/pending split is stale only means funds have
        cleared since the last refresh; it is refreshed silently.
        """
        summary = LedgerService.compute_balance(store_id, currency, as_of)
        LedgerService.heal_cached_balance(summary)
        return summary

    @staticmethod
    def heal_cached_balance(summary: BalanceSummary) -> bool:
        """
        Compare the cached row with a replayed summary and fix it if needed.

        Returns:
            True if the cached total had drifted from the replay
        """
        cached = SellerBalance.objects.filter(
            store_id=summary.store_id,
            currency=summary.currency,
        ).first()

        if cached is None:
            if summary.current_balance == 0 and summary.available_balance == 0:
                return False
            drifted = True
        else:
            cached_total = money.add(cached.available_balance, cached.pending_balance)
            drifted = cached_total != summary.current_balance
            split_stale = (
                cached.available_balance != summary.available_balance
                or cached.pending_balance != summary.pending_balance
            )
            if not drifted and not split_stale:
                return False

        if drifted:
            logger.error(
                "Cached seller balance drifted from ledger replay, healing",
                extra={
                    "store_id": str(summary.store_id),
                    "currency": summary.currency,
                    "cached_available": (
                        str(cached.available_balance) if cached else None
                    ),
                    "cached_pending": str(cached.pending_balance) if cached else None,
                    "replayed_available": str(summary.available_balance),
                    "replayed_pending": str(summary.pending_balance),
                },
            )

        LedgerService.refresh_cached_balance(
            summary.store_id, summary.currency, summary.as_of
        )
        return drifted

    # =========================================================================
    # Queries
    # =========================================================================

    @staticmethod
    def list_entries(
        store_id: uuid.UUID,
        currency: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[SellerBalanceEntry]:
        """Return a store's ledger entries, newest first."""
        queryset = SellerBalanceEntry.objects.filter(store_id=store_id)
        if currency:
            queryset = queryset.filter(currency=currency)
        return list(queryset.order_by("-created_at", "-id")[offset : offset + limit])

    @staticmethod
    def has_payout_entry(payout_id: uuid.UUID) -> bool:
        return SellerBalanceEntry.objects.filter(
            payout_id=payout_id,
            entry_type=BalanceEntryType.PAYOUT,
        ).exists()
