"""
Refund service for reversing order payments.

A refund follows the gateway-first pattern:
1. Validate the order and amount under a per-order distributed lock
2. Call the gateway refund (outside any transaction)
3. Record the OrderRefund, ledger entries and status changes atomically
4. Optionally restock inventory, decoupled from the money movement

If the gateway call fails, nothing is written. If the gateway succeeds
but the local write fails, the failure is logged as critical and raised
as ReconciliationRequiredError: retrying automatically could refund the
buyer twice.

Original OrderPayment amounts are never edited; refunds only change
statuses and add rows.

Usage:
    from settlement.services import RefundService

    result = RefundService.process_refund(
        order_id=order.id,
        refund_type=RefundType.PARTIAL,
        amount=Decimal("25.00"),
        restock_items=False,
        reason="Damaged item",
    )
    if not result.success:
        print(result.error_code)  # e.g. AMOUNT_EXCEEDS_REFUNDABLE
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal

from django.db import transaction
from django.utils import timezone

from core.services import BaseService, ServiceResult

from settlement import money
from settlement.adapters import IdempotencyKeyGenerator, RefundResult, StripeAdapter
from settlement.exceptions import (
    GatewayError,
    LockAcquisitionError,
    ReconciliationRequiredError,
)
from settlement.inventory import (
    InventoryDirection,
    InventoryLine,
    get_inventory_gateway,
)
from settlement.ledger import EntryParams, LedgerService, SellerBalanceEntry
from settlement.locks import DistributedLock, order_refund_key
from settlement.models import Order, OrderPayment, OrderRefund
from settlement.state_machines import (
    BalanceEntryType,
    OrderPaymentStatus,
    RefundType,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

REFUND_LOCK_TTL = 60

REFUND_LOCK_TIMEOUT = 10.0

ACTIVE_PAYMENT_STATUSES = [
    OrderPaymentStatus.COMPLETED,
    OrderPaymentStatus.PARTIALLY_REFUNDED,
]


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class RefundOutcome:
    """
    Result of a successful refund.

    Attributes:
        refund: The recorded OrderRefund
        refunded_amount: Amount returned to the buyer by this refund
        platform_fee_refunded: Fee share credited back to the store
        remaining_refundable: What can still be refunded on the payment
        restocked: Whether an inventory restock succeeded
    """

    refund: OrderRefund
    refunded_amount: Decimal
    platform_fee_refunded: Decimal
    remaining_refundable: Decimal
    restocked: bool = False


@dataclass
class _RefundPlan:
    order: Order
    payment: OrderPayment
    amount: Decimal
    fee_share: Decimal
    is_final: bool
    refund_type: str
    sequence: int
    remaining_after: Decimal


# =============================================================================
# Refund Service
# =============================================================================


class RefundService(BaseService):
    """
    Service for refunding paid orders.

    Failure results (nothing written):
        VALIDATION_ERROR: Unknown refund type or missing partial amount
        NOT_FOUND: Order does not exist
        REFUND_NOT_ALLOWED: Order is not paid or partially refunded
        INVALID_AMOUNT: Amount is zero or negative
        AMOUNT_EXCEEDS_REFUNDABLE: Amount exceeds paid minus already refunded
        LOCK_ACQUISITION_FAILED: Another refund for the order is in progress
        Gateway error codes: Gateway rejected or could not process the refund

    Raises:
        ReconciliationRequiredError: Gateway refunded but the local write failed
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

    @classmethod
    def process_refund(
        cls,
        order_id: uuid.UUID,
        refund_type: str,
        amount: money.AmountLike | None = None,
        restock_items: bool = False,
        reason: str = "",
        items: list[InventoryLine] | None = None,
    ) -> ServiceResult[RefundOutcome]:
        """
        Refund all or part of an order's payment.

        Args:
            order_id: Order to refund
            refund_type: RefundType.FULL or RefundType.PARTIAL
            amount: Amount for partial refunds (ignored for full refunds)
            restock_items: Return units to inventory after the refund
            reason: Free-text reason recorded with the refund
            items: Lines to restock (defaults to every item on the order)
        """
        cls.get_logger().info(
            "Starting refund",
            extra={
                "order_id": str(order_id),
                "refund_type": refund_type,
                "amount": str(amount) if amount is not None else None,
            },
        )

        if refund_type not in RefundType.values:
            return ServiceResult.failure(
                f"Unknown refund type: {refund_type}",
                error_code="VALIDATION_ERROR",
            )
        if refund_type == RefundType.PARTIAL and amount is None:
            return ServiceResult.failure(
                "Partial refunds require an amount",
                error_code="VALIDATION_ERROR",
            )

        requested: Decimal | None = None
        if refund_type == RefundType.PARTIAL:
            try:
                requested = money.quantize(amount)
            except (TypeError, ValueError, ArithmeticError) as e:
                return ServiceResult.failure(str(e), error_code="INVALID_AMOUNT")
            if requested <= 0:
                return ServiceResult.failure(
                    "Refund amount must be positive",
                    error_code="INVALID_AMOUNT",
                )

        try:
            with DistributedLock(
                order_refund_key(order_id),
                ttl=REFUND_LOCK_TTL,
                timeout=REFUND_LOCK_TIMEOUT,
            ):
                result = cls._process_refund_with_lock(
                    order_id=order_id,
                    refund_type=refund_type,
                    requested=requested,
                    restock_items=restock_items,
                    reason=reason,
                )
        except LockAcquisitionError as e:
            return cls.handle_exception(
                e, "Refund already in progress", log_level=logging.WARNING
            )

        if result.success and restock_items:
            result.data.restocked = cls._restock(result.data.refund, items)
        return result

    @classmethod
    def _process_refund_with_lock(
        cls,
        order_id: uuid.UUID,
        refund_type: str,
        requested: Decimal | None,
        restock_items: bool,
        reason: str,
    ) -> ServiceResult[RefundOutcome]:
        plan_result = cls._plan_refund(order_id, refund_type, requested)
        if not plan_result.success:
            return plan_result
        plan: _RefundPlan = plan_result.data

        # Phase 1: gateway refund (the durability boundary)
        try:
            gateway_refund = cls._create_gateway_refund(plan)
        except GatewayError as e:
            return cls.handle_exception(
                e, "Gateway refund failed", log_level=logging.WARNING
            )

        # Phase 2: local records
        try:
            with transaction.atomic():
                refund = cls._record_refund(
                    plan, gateway_refund, restock_items, reason
                )
        except Exception as e:
            logger.critical(
                "Gateway refund succeeded but local write failed - reconciliation required",
                extra={
                    "order_id": str(plan.order.id),
                    "store_id": str(plan.order.store_id),
                    "provider_refund_id": gateway_refund.id,
                    "provider_payment_id": plan.payment.provider_payment_id,
                    "amount": money.format_amount(plan.amount),
                    "error": str(e),
                },
                exc_info=True,
            )
            raise ReconciliationRequiredError(
                f"Refund {gateway_refund.id} was processed by the gateway "
                "but could not be recorded",
                details={
                    "order_id": str(plan.order.id),
                    "store_id": str(plan.order.store_id),
                    "provider_refund_id": gateway_refund.id,
                    "amount": money.format_amount(plan.amount),
                },
            ) from e

        cls.get_logger().info(
            "Refund completed",
            extra={
                "order_id": str(plan.order.id),
                "refund_id": str(refund.id),
                "provider_refund_id": refund.provider_refund_id,
                "amount": money.format_amount(plan.amount),
                "platform_fee_refunded": money.format_amount(plan.fee_share),
            },
        )
        return ServiceResult.success(
            RefundOutcome(
                refund=refund,
                refunded_amount=plan.amount,
                platform_fee_refunded=plan.fee_share,
                remaining_refundable=plan.remaining_after,
            )
        )

    # =========================================================================
    # Validation
    # =========================================================================

    @classmethod
    def _plan_refund(
        cls,
        order_id: uuid.UUID,
        refund_type: str,
        requested: Decimal | None,
    ) -> ServiceResult[_RefundPlan]:
        order = Order.objects.filter(id=order_id).first()
        if order is None:
            return ServiceResult.failure(
                f"Order {order_id} not found", error_code="NOT_FOUND"
            )
        if not order.is_refundable:
            return ServiceResult.failure(
                f"Order is not paid (payment status: {order.payment_status})",
                error_code="REFUND_NOT_ALLOWED",
            )

        payment = (
            OrderPayment.objects.filter(order=order, status__in=ACTIVE_PAYMENT_STATUSES)
            .order_by("-created_at")
            .first()
        )
        if payment is None:
            return ServiceResult.failure(
                "Order has no refundable payment",
                error_code="REFUND_NOT_ALLOWED",
            )

        already_refunded, fee_already_refunded = payment.refunded_totals()
        remaining = money.subtract(payment.amount, already_refunded)
        if remaining <= 0:
            return ServiceResult.failure(
                "Payment has already been fully refunded",
                error_code="REFUND_NOT_ALLOWED",
            )

        amount = remaining if refund_type == RefundType.FULL else requested
        if amount > remaining:
            return ServiceResult.failure(
                f"Refund amount {money.format_amount(amount)} exceeds refundable "
                f"amount {money.format_amount(remaining)}",
                error_code="AMOUNT_EXCEEDS_REFUNDABLE",
            )

        is_final = amount == remaining
        remaining_fee = money.subtract(payment.platform_fee_amount, fee_already_refunded)
        if is_final:
            # The last refund returns whatever fee is left, so rounding never strands cents
            fee_share = remaining_fee
        else:
            fee_share = min(
                remaining_fee,
                money.multiply_by_ratio(payment.platform_fee_amount, amount, payment.amount),
            )

        return ServiceResult.success(
            _RefundPlan(
                order=order,
                payment=payment,
                amount=amount,
                fee_share=fee_share,
                is_final=is_final,
                refund_type=RefundType.FULL if is_final else RefundType.PARTIAL,
                sequence=payment.refunds.count() + 1,
                remaining_after=money.subtract(remaining, amount),
            )
        )

    # =========================================================================
    # Gateway
    # =========================================================================

    @classmethod
    def _create_gateway_refund(cls, plan: _RefundPlan) -> RefundResult:
        # Keyed by the payment and refund sequence number, so retrying after
        # a failed local write returns the same gateway refund
        idempotency_key = IdempotencyKeyGenerator.generate(
            "refund", plan.payment.id, plan.sequence
        )
        return cls.get_gateway_adapter().create_refund(
            payment_intent_id=plan.payment.provider_payment_id,
            idempotency_key=idempotency_key,
            amount_cents=money.to_minor_units(plan.amount),
            metadata={
                "order_id": str(plan.order.id),
                "order_payment_id": str(plan.payment.id),
            },
        )

    # =========================================================================
    # Recording
    # =========================================================================

    @classmethod
    def _record_refund(
        cls,
        plan: _RefundPlan,
        gateway_refund: RefundResult,
        restock_items: bool,
        reason: str,
    ) -> OrderRefund:
        order = Order.objects.select_for_update().get(id=plan.order.id)
        payment = OrderPayment.objects.select_for_update().get(id=plan.payment.id)

        refund = OrderRefund.objects.create(
            order_payment=payment,
            order=order,
            store_id=order.store_id,
            amount=plan.amount,
            platform_fee_refunded=plan.fee_share,
            currency=payment.currency,
            provider_refund_id=gateway_refund.id,
            refund_type=plan.refund_type,
            reason=reason,
            restock_requested=restock_items,
        )

        available_at = cls._refund_available_at(payment)
        entries = [
            EntryParams(
                store_id=order.store_id,
                entry_type=BalanceEntryType.REFUND,
                amount=-plan.amount,
                currency=payment.currency,
                idempotency_key=f"refund:{gateway_refund.id}",
                order_id=order.id,
                order_payment_id=payment.id,
                refund_id=refund.id,
                description=f"Refund for order {order.id}",
                available_at=available_at,
            )
        ]
        if plan.fee_share > 0:
            entries.append(
                EntryParams(
                    store_id=order.store_id,
                    entry_type=BalanceEntryType.PLATFORM_FEE,
                    amount=plan.fee_share,
                    currency=payment.currency,
                    idempotency_key=f"refund_fee:{gateway_refund.id}",
                    order_id=order.id,
                    order_payment_id=payment.id,
                    refund_id=refund.id,
                    description=f"Platform fee returned for refund on order {order.id}",
                    available_at=available_at,
                )
            )
        LedgerService.append_entries(entries)

        if plan.is_final:
            payment.mark_refunded()
            order.mark_refunded()
        else:
            payment.mark_partially_refunded()
            order.mark_partially_refunded()
        payment.save()
        order.save()
        return refund

    @staticmethod
    def _refund_available_at(payment: OrderPayment):
        """
        Refund debits clear with the payment they reverse.

        While the payment credit is still held, the debit comes out of the
        pending balance; once it has cleared, the debit is immediate.
        """
        now = timezone.now()
        credit = SellerBalanceEntry.objects.filter(
            order_payment_id=payment.id,
            entry_type=BalanceEntryType.ORDER_PAYMENT,
        ).first()
        if credit is not None and credit.available_at > now:
            return credit.available_at
        return now

    # =========================================================================
    # Restock
    # =========================================================================

    @classmethod
    def _restock(cls, refund: OrderRefund, items: list[InventoryLine] | None) -> bool:
        """Return units to inventory. Failure never undoes the refund."""
        if items is None:
            items = [
                InventoryLine(listing_id=item.listing_id, quantity=item.quantity)
                for item in refund.order.items.all()
            ]
        if not items:
            return False

        result = get_inventory_gateway().adjust_inventory(
            items=items,
            store_id=refund.store_id,
            direction=InventoryDirection.RESTOCK,
            reason=refund.reason or "refund",
            order_id=refund.order_id,
        )
        if not result.success:
            cls.get_logger().warning(
                "Inventory restock failed after refund",
                extra={
                    "refund_id": str(refund.id),
                    "order_id": str(refund.order_id),
                    "error": result.error,
                },
            )
            return False

        OrderRefund.objects.filter(id=refund.id).update(restocked=True)
        refund.restocked = True
        return True
