"""
Payout executor: decides whether a store can be paid and pays it.

Each attempt is evaluated against these rules in order; the first one
that fails skips the attempt (skipped means "not yet eligible", never an
error):

1. ledger available balance below the store's minimum
2. the store owes the platform (amount due > 0)
3. the store's connected account cannot receive payouts
4. the gateway's available balance cannot be fetched
5. min(ledger, gateway) available balance below the minimum

An eligible attempt is dispatched with the three-phase pattern:

1. Phase 1: create a pending SellerPayout and commit
2. Phase 2: call the gateway payout (outside any transaction)
3. Phase 3: complete the payout, write the ledger debit and advance the
   schedule from the actual completion time

If the gateway call fails, the payout is marked failed, no ledger entry
is written and the schedule is left alone so the next sweep retries.

Usage:
    from settlement.services import PayoutExecutorService

    result = PayoutExecutorService.execute_store_payout(store.id)
    outcome = result.data
    if outcome.state == PayoutAttemptState.SKIPPED:
        print(outcome.reason)
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from core.services import BaseService, ServiceResult

from settlement import money
from settlement.adapters import (
    CreatePayoutParams,
    IdempotencyKeyGenerator,
    PayoutResult,
    StripeAdapter,
)
from settlement.exceptions import (
    GatewayError,
    InsufficientFundsError,
    LockAcquisitionError,
    ReconciliationRequiredError,
)
from settlement.ledger import BalanceSummary, EntryParams, LedgerService
from settlement.locks import DistributedLock, store_payout_key
from settlement.models import SellerPayout, SellerPayoutSettings, Store
from settlement.schedules import compute_next_payout_at
from settlement.state_machines import BalanceEntryType, PayoutStatus, PayoutTrigger

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Distributed lock TTL for payout execution (seconds)
PAYOUT_LOCK_TTL = 120

# Lock acquisition timeout (seconds)
PAYOUT_LOCK_TIMEOUT = 10.0


class PayoutAttemptState(str, Enum):
    EVALUATED = "evaluated"
    SKIPPED = "skipped"
    COMPLETED = "completed"
    FAILED = "failed"


class SkipReason(str, Enum):
    BELOW_MINIMUM = "below_minimum"
    AMOUNT_DUE = "amount_due"
    ACCOUNT_NOT_READY = "account_not_ready"
    PROCESSOR_BALANCE_UNAVAILABLE = "processor_balance_unavailable"
    PROCESSOR_BALANCE_BELOW_MINIMUM = "processor_balance_below_minimum"
    PAYOUT_IN_PROGRESS = "payout_in_progress"


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class PayoutOutcome:
    """
    Result of one payout attempt for one store.

    Attributes:
        store_id: Store evaluated
        state: Final attempt state (skipped, completed or failed)
        reason: Skip reason when skipped
        amount: Amount dispatched, if any
        payout: SellerPayout row for dispatched attempts
        error: Gateway error message for failed attempts
        ledger_available: Ledger-derived available balance at evaluation
        processor_available: Gateway available balance, if fetched
        ledger_entry_written: False if the payout debit was withheld
        next_payout_at: Newly scheduled payout time, if advanced
    """

    store_id: uuid.UUID
    state: PayoutAttemptState = PayoutAttemptState.EVALUATED
    reason: SkipReason | None = None
    amount: Decimal | None = None
    payout: SellerPayout | None = None
    error: str | None = None
    ledger_available: Decimal | None = None
    processor_available: Decimal | None = None
    ledger_entry_written: bool = False
    next_payout_at: datetime | None = None

    def skip(self, reason: SkipReason) -> PayoutOutcome:
        self.state = PayoutAttemptState.SKIPPED
        self.reason = reason
        return self

    @property
    def payout_id(self) -> uuid.UUID | None:
        return self.payout.id if self.payout else None


# =============================================================================
# Payout Executor Service
# =============================================================================


class PayoutExecutorService(BaseService):
    """
    Evaluates and dispatches seller payouts.

    Safety Guarantees:
        - Per-store distributed lock: one attempt per store at a time
        - A pending payout blocks new attempts until it is resolved
        - Payout amount never exceeds the gateway's available balance
        - Gateway idempotency key is derived from the SellerPayout id
        - Ledger balance is re-derived under the balance row lock before
          the payout debit is written
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
    # Entry Points
    # =========================================================================

    @classmethod
    def execute_store_payout(
        cls,
        store_id: uuid.UUID,
        now: datetime | None = None,
        trigger: str = PayoutTrigger.SCHEDULED,
    ) -> ServiceResult[PayoutOutcome]:
        """
        Evaluate one store and pay it out if eligible.

        Skipped and failed attempts are successful results carrying the
        outcome; only a missing store or lock contention is a failure.

        Raises:
            ReconciliationRequiredError: Gateway paid out but the local
                write failed
        """
        now = now or timezone.now()
        store = Store.objects.filter(id=store_id).first()
        if store is None:
            return ServiceResult.failure(
                f"Store {store_id} not found", error_code="NOT_FOUND"
            )

        try:
            with DistributedLock(
                store_payout_key(store_id),
                ttl=PAYOUT_LOCK_TTL,
                timeout=PAYOUT_LOCK_TIMEOUT,
            ):
                outcome = cls._execute_with_lock(store, now, trigger)
        except LockAcquisitionError as e:
            return cls.handle_exception(
                e, "Payout already running for store", log_level=logging.WARNING
            )

        return ServiceResult.success(outcome)

    @classmethod
    def request_manual_payout(
        cls,
        store_id: uuid.UUID,
        amount: money.AmountLike | None = None,
    ) -> ServiceResult[PayoutOutcome]:
        """
        Pay out a store on the merchant's request.

        Runs the same eligibility rules as the sweep, plus: the amount must
        be positive, within the available balance and at least the minimum;
        no payout may be pending; and at most one payout may complete per
        day. Manual payouts never move the automatic schedule.

        Args:
            store_id: Store to pay
            amount: Amount to pay (defaults to everything payable)

        Returns:
            Success only when the payout completed; otherwise a failure whose
            error_code is the skip reason, INSUFFICIENT_FUNDS, or PAYOUT_FAILED
        """
        requested: Decimal | None = None
        if amount is not None:
            try:
                requested = money.quantize(amount)
            except (TypeError, ValueError, ArithmeticError) as e:
                return ServiceResult.failure(str(e), error_code="INVALID_AMOUNT")
            if requested <= 0:
                return ServiceResult.failure(
                    "Payout amount must be positive", error_code="INVALID_AMOUNT"
                )

        store = Store.objects.filter(id=store_id).first()
        if store is None:
            return ServiceResult.failure(
                f"Store {store_id} not found", error_code="NOT_FOUND"
            )

        now = timezone.now()
        try:
            with DistributedLock(
                store_payout_key(store_id),
                ttl=PAYOUT_LOCK_TTL,
                timeout=PAYOUT_LOCK_TIMEOUT,
            ):
                guard = cls._check_manual_guards(store, requested, now)
                if not guard.success:
                    return guard
                outcome = cls._execute_with_lock(
                    store, now, PayoutTrigger.MANUAL, requested=requested
                )
        except LockAcquisitionError as e:
            return cls.handle_exception(
                e, "Payout already running for store", log_level=logging.WARNING
            )

        if outcome.state == PayoutAttemptState.COMPLETED:
            return ServiceResult.success(outcome)
        if outcome.state == PayoutAttemptState.SKIPPED:
            return ServiceResult.failure(
                f"Payout not eligible: {outcome.reason.value}",
                error_code=outcome.reason.value.upper(),
            )
        return ServiceResult.failure(
            outcome.error or "Payout failed", error_code="PAYOUT_FAILED"
        )

    # =========================================================================
    # Evaluation
    # =========================================================================

    @classmethod
    def _check_manual_guards(
        cls,
        store: Store,
        requested: Decimal | None,
        now: datetime,
    ) -> ServiceResult[None]:
        if SellerPayout.objects.filter(
            store=store, status=PayoutStatus.PENDING
        ).exists():
            return ServiceResult.failure(
                "A payout is already in progress",
                error_code=SkipReason.PAYOUT_IN_PROGRESS.value.upper(),
            )

        today = timezone.localdate(now)
        if SellerPayout.objects.filter(
            store=store,
            status=PayoutStatus.COMPLETED,
            completed_at__date=today,
        ).exists():
            return ServiceResult.failure(
                "A payout has already been completed today",
                error_code="PAYOUT_ALREADY_COMPLETED_TODAY",
            )

        if requested is None:
            return ServiceResult.success(None)

        summary = LedgerService.get_balance_summary(store.id, store.currency, now)
        if requested > summary.available_balance:
            return ServiceResult.from_exception(
                InsufficientFundsError(
                    required=requested,
                    available=max(money.ZERO, summary.available_balance),
                )
            )

        minimum = cls._minimum_amount(cls._payout_settings(store))
        if requested < minimum:
            return ServiceResult.failure(
                f"Payout amount must be at least {money.format_amount(minimum)}",
                error_code=SkipReason.BELOW_MINIMUM.value.upper(),
            )
        return ServiceResult.success(None)

    @staticmethod
    def _payout_settings(store: Store) -> SellerPayoutSettings | None:
        return SellerPayoutSettings.objects.filter(store=store).first()

    @staticmethod
    def _minimum_amount(payout_settings: SellerPayoutSettings | None) -> Decimal:
        if payout_settings is not None:
            return money.quantize(payout_settings.minimum_amount)
        return money.quantize(str(settings.SETTLEMENT_DEFAULT_MINIMUM_PAYOUT))

    @classmethod
    def evaluate(
        cls,
        store: Store,
        now: datetime,
        requested: Decimal | None = None,
    ) -> PayoutOutcome:
        """
        Apply the eligibility rules without dispatching anything.

        The returned outcome is EVALUATED with ``amount`` set when the store
        may be paid, or SKIPPED with a reason.
        """
        log = cls.get_logger()
        outcome = PayoutOutcome(store_id=store.id)
        payout_settings = cls._payout_settings(store)
        minimum = cls._minimum_amount(payout_settings)

        if SellerPayout.objects.filter(
            store=store, status=PayoutStatus.PENDING
        ).exists():
            return outcome.skip(SkipReason.PAYOUT_IN_PROGRESS)

        summary: BalanceSummary = LedgerService.get_balance_summary(
            store.id, store.currency, now
        )
        outcome.ledger_available = summary.available_balance

        if summary.available_balance < minimum:
            return outcome.skip(SkipReason.BELOW_MINIMUM)

        if summary.amount_due > 0:
            return outcome.skip(SkipReason.AMOUNT_DUE)

        if not store.is_payout_capable:
            return outcome.skip(SkipReason.ACCOUNT_NOT_READY)

        try:
            processor_cents = cls.get_gateway_adapter().retrieve_available_balance(
                store.stripe_account_id, store.currency
            )
        except GatewayError as e:
            log.warning(
                "Could not fetch gateway balance, skipping payout",
                extra={
                    "store_id": str(store.id),
                    "error_code": e.error_code,
                    "error": e.message,
                },
            )
            return outcome.skip(SkipReason.PROCESSOR_BALANCE_UNAVAILABLE)

        outcome.processor_available = money.from_minor_units(processor_cents)

        payable = min(
            max(money.ZERO, summary.available_balance),
            max(money.ZERO, outcome.processor_available),
        )
        if requested is not None:
            payable = min(payable, requested)
        if payable < minimum or payable <= 0:
            return outcome.skip(SkipReason.PROCESSOR_BALANCE_BELOW_MINIMUM)

        outcome.amount = payable
        return outcome

    # =========================================================================
    # Dispatch
    # =========================================================================

    @classmethod
    def _execute_with_lock(
        cls,
        store: Store,
        now: datetime,
        trigger: str,
        requested: Decimal | None = None,
    ) -> PayoutOutcome:
        log = cls.get_logger()
        outcome = cls.evaluate(store, now, requested)

        if outcome.state == PayoutAttemptState.SKIPPED:
            log.info(
                "Payout skipped",
                extra={
                    "store_id": str(store.id),
                    "reason": outcome.reason.value,
                    "ledger_available": str(outcome.ledger_available),
                    "processor_available": str(outcome.processor_available),
                },
            )
            return outcome

        # Phase 1: record the attempt before any money moves
        with transaction.atomic():
            payout = SellerPayout.objects.create(
                store=store,
                amount=outcome.amount,
                currency=store.currency,
                trigger=trigger,
                requested_at=now,
            )
        outcome.payout = payout

        log.info(
            "Dispatching payout",
            extra={
                "store_id": str(store.id),
                "payout_id": str(payout.id),
                "amount": money.format_amount(outcome.amount),
                "trigger": trigger,
            },
        )

        # Phase 2: gateway call outside any transaction
        try:
            gateway_payout = cls.get_gateway_adapter().create_payout(
                CreatePayoutParams(
                    account_id=store.stripe_account_id,
                    amount_cents=money.to_minor_units(outcome.amount),
                    currency=store.currency,
                    idempotency_key=IdempotencyKeyGenerator.generate(
                        "payout", payout.id
                    ),
                    metadata={
                        "seller_payout_id": str(payout.id),
                        "store_id": str(store.id),
                    },
                )
            )
        except GatewayError as e:
            return cls._fail_payout(outcome, e)

        # Phase 3: record completion
        return cls._complete_payout(outcome, store, gateway_payout, trigger)

    @classmethod
    def _fail_payout(cls, outcome: PayoutOutcome, error: GatewayError) -> PayoutOutcome:
        cls.get_logger().error(
            "Gateway payout failed",
            extra={
                "store_id": str(outcome.store_id),
                "payout_id": str(outcome.payout_id),
                "error_code": error.error_code,
                "error": error.message,
                "is_retryable": error.is_retryable,
            },
        )
        with transaction.atomic():
            payout = SellerPayout.objects.select_for_update().get(id=outcome.payout_id)
            payout.fail(reason=error.message)
            payout.save()

        outcome.payout = payout
        outcome.state = PayoutAttemptState.FAILED
        outcome.error = error.message
        return outcome

    @classmethod
    def _complete_payout(
        cls,
        outcome: PayoutOutcome,
        store: Store,
        gateway_payout: PayoutResult,
        trigger: str,
    ) -> PayoutOutcome:
        log = cls.get_logger()
        completed_at = timezone.now()
        amount = outcome.amount

        try:
            with transaction.atomic():
                payout = SellerPayout.objects.select_for_update().get(
                    id=outcome.payout_id
                )
                payout.complete(
                    provider_payout_id=gateway_payout.id,
                    completed_at=completed_at,
                )

                # Re-derive the balance under the row lock: a refund may have
                # landed since the evaluation
                LedgerService.lock_balance_row(store.id, store.currency)
                current = LedgerService.compute_balance(
                    store.id, store.currency, as_of=completed_at
                )
                tolerance = money.quantize(str(settings.SETTLEMENT_AMOUNT_DUE_TOLERANCE))
                remaining = money.subtract(current.available_balance, amount)

                if remaining < -tolerance:
                    log.critical(
                        "Payout sent but ledger debit would overdraw store - "
                        "ledger entry withheld, reconciliation required",
                        extra={
                            "store_id": str(store.id),
                            "payout_id": str(payout.id),
                            "provider_payout_id": gateway_payout.id,
                            "amount": money.format_amount(amount),
                            "available_balance": money.format_amount(
                                current.available_balance
                            ),
                        },
                    )
                    payout.metadata = {
                        **payout.metadata,
                        "ledger_entry_withheld": True,
                        "available_at_completion": money.format_amount(
                            current.available_balance
                        ),
                    }
                else:
                    LedgerService.append_entry(
                        EntryParams(
                            store_id=store.id,
                            entry_type=BalanceEntryType.PAYOUT,
                            amount=-amount,
                            currency=store.currency,
                            idempotency_key=f"payout:{payout.id}",
                            payout_id=payout.id,
                            description=f"Payout {gateway_payout.id}",
                            available_at=completed_at,
                        )
                    )
                    outcome.ledger_entry_written = True

                payout.save()

                if trigger == PayoutTrigger.SCHEDULED:
                    outcome.next_payout_at = cls._advance_schedule(store, completed_at)

        except Exception as e:
            log.critical(
                "Gateway payout succeeded but local write failed - reconciliation required",
                extra={
                    "store_id": str(store.id),
                    "payout_id": str(outcome.payout_id),
                    "provider_payout_id": gateway_payout.id,
                    "amount": money.format_amount(amount),
                    "error": str(e),
                },
                exc_info=True,
            )
            raise ReconciliationRequiredError(
                f"Payout {gateway_payout.id} was sent by the gateway "
                "but could not be recorded",
                details={
                    "store_id": str(store.id),
                    "payout_id": str(outcome.payout_id),
                    "provider_payout_id": gateway_payout.id,
                    "amount": money.format_amount(amount),
                },
            ) from e

        outcome.payout = payout
        outcome.state = PayoutAttemptState.COMPLETED
        log.info(
            "Payout completed",
            extra={
                "store_id": str(store.id),
                "payout_id": str(payout.id),
                "provider_payout_id": gateway_payout.id,
                "amount": money.format_amount(amount),
                "next_payout_at": (
                    outcome.next_payout_at.isoformat() if outcome.next_payout_at else None
                ),
            },
        )
        return outcome

    @staticmethod
    def _advance_schedule(store: Store, completed_at: datetime) -> datetime | None:
        payout_settings = (
            SellerPayoutSettings.objects.select_for_update().filter(store=store).first()
        )
        if payout_settings is None:
            return None
        payout_settings.next_payout_at = compute_next_payout_at(
            payout_settings.schedule,
            completed_at,
            day_of_week=payout_settings.payout_day_of_week,
            day_of_month=payout_settings.payout_day_of_month,
        )
        payout_settings.save(update_fields=["next_payout_at", "updated_at"])
        return payout_settings.next_payout_at
