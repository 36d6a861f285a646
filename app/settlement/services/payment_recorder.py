"""
Payment recorder: turns a confirmed gateway charge into settlement records.

For each confirmed charge the recorder writes, in one transaction:
- an OrderPayment (status completed, transfer held)
- an ``order_payment`` ledger credit for the gross amount
- a ``platform_fee`` ledger debit for the platform commission
- the order's transition to paid

Recording is idempotent on the gateway payment reference. A replayed
confirmation returns the existing payment and writes nothing.

Usage:
    from settlement.services import PaymentRecorderService

    charge = PaymentRecorderService.initiate_charge(order.id)
    ...
    result = PaymentRecorderService.record_payment(
        order_id=order.id,
        provider_payment_id="pi_123",
        gross_amount=Decimal("100.00"),
    )
    result.data.payment.platform_fee_amount  # Decimal("5.00")
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.db import IntegrityError
from django.utils import timezone

from core.exceptions import ConflictError, NotFoundError, ValidationError
from core.services import BaseService, ServiceResult

from settlement import money
from settlement.adapters import (
    ChargeResult,
    DestinationChargeParams,
    IdempotencyKeyGenerator,
    StripeAdapter,
)
from settlement.exceptions import GatewayError, PaymentSetupError
from settlement.ledger import EntryParams, LedgerService
from settlement.models import Order, OrderPayment, SellerPayoutSettings, Store
from settlement.signals import send_payment_received_on_commit
from settlement.state_machines import BalanceEntryType


def calculate_platform_fee(gross_amount: money.AmountLike) -> Decimal:
    """Platform commission on a gross amount, rounded to minor units."""
    rate = Decimal(str(settings.PLATFORM_FEE_PERCENT)) / Decimal(100)
    return money.quantize(money.to_decimal(gross_amount) * rate)


def hold_period_for(store: Store) -> timedelta:
    """Clearing delay applied to a store's payment credits."""
    days = None
    try:
        days = store.payout_settings.hold_period_days
    except SellerPayoutSettings.DoesNotExist:
        pass
    if days is None:
        days = settings.SETTLEMENT_CLEARING_DELAY_DAYS
    return timedelta(days=days)


@dataclass
class PaymentRecord:
    """
    Result of recording a payment.

    Attributes:
        payment: The OrderPayment (new or pre-existing)
        created: False when the call was a replay
    """

    payment: OrderPayment
    created: bool


class PaymentRecorderService(BaseService):
    """
    Records confirmed charges and starts destination charges.

    Failure results:
        NOT_FOUND: Order does not exist
        VALIDATION_ERROR: Bad amount, reference or currency
        CONFLICT: Order already has an active payment under another reference
        PAYMENT_SETUP_REQUIRED: Store cannot receive funds (initiate_charge)
        Gateway error codes: Charge creation failed (initiate_charge)
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
    # Charge Initiation
    # =========================================================================

    @classmethod
    def initiate_charge(
        cls,
        order_id: uuid.UUID,
        attempt: int = 1,
    ) -> ServiceResult[ChargeResult]:
        """
        Create a destination charge for an unpaid order.

        The application fee equals the platform fee on the order total, so
        the gateway's split matches the ledger entries written later by
        ``record_payment``.

        Args:
            order_id: Order to charge
            attempt: Attempt number; a new attempt after a failed charge
                must use a new number to get a new idempotency key
        """
        logger = cls.get_logger()

        order = Order.objects.select_related("store").filter(id=order_id).first()
        if order is None:
            return ServiceResult.failure(
                f"Order {order_id} not found", error_code="NOT_FOUND"
            )
        if not order.is_payable:
            return ServiceResult.failure(
                f"Order {order_id} is not awaiting payment",
                error_code="ORDER_NOT_PAYABLE",
            )
        if not order.store.has_payment_destination:
            return ServiceResult.from_exception(PaymentSetupError([order.store.name]))
        if order.total <= 0:
            return ServiceResult.failure(
                "Order total must be positive to charge",
                error_code="VALIDATION_ERROR",
            )

        fee = calculate_platform_fee(order.total)
        try:
            params = DestinationChargeParams(
                amount_cents=money.to_minor_units(order.total),
                currency=order.currency,
                destination_account_id=order.store.stripe_account_id,
                application_fee_cents=money.to_minor_units(fee),
                idempotency_key=IdempotencyKeyGenerator.generate(
                    "charge", order.id, attempt
                ),
                metadata={
                    "order_id": str(order.id),
                    "store_id": str(order.store_id),
                    "checkout_id": str(order.checkout_id),
                },
            )
            charge = cls.get_gateway_adapter().create_destination_charge(params)
        except GatewayError as e:
            return cls.handle_exception(
                e, "Destination charge failed", log_level=logging.WARNING
            )

        logger.info(
            "Destination charge created",
            extra={
                "order_id": str(order.id),
                "payment_intent_id": charge.id,
                "amount": money.format_amount(order.total),
                "platform_fee": money.format_amount(fee),
            },
        )
        return ServiceResult.success(charge)

    # =========================================================================
    # Payment Recording
    # =========================================================================

    @classmethod
    def record_payment(
        cls,
        order_id: uuid.UUID,
        provider_payment_id: str,
        gross_amount: money.AmountLike,
        currency: str | None = None,
        processor_fee: money.AmountLike = money.ZERO,
        provider: str = "stripe",
    ) -> ServiceResult[PaymentRecord]:
        """
        Record a confirmed charge for an order.

        Args:
            order_id: Order that was charged
            provider_payment_id: Gateway payment reference (idempotency key)
            gross_amount: Amount charged
            currency: Charge currency (defaults to the order's)
            processor_fee: Gateway fee already netted out of the payment
            provider: Gateway name

        Returns:
            ServiceResult with PaymentRecord; ``created`` is False on replay
        """
        logger = cls.get_logger()

        try:
            gross = money.quantize(gross_amount)
            processor_fee_amount = money.quantize(processor_fee)
        except (TypeError, ValueError, ArithmeticError) as e:
            return ServiceResult.failure(str(e), error_code="VALIDATION_ERROR")

        if not provider_payment_id:
            return ServiceResult.failure(
                "provider_payment_id is required", error_code="VALIDATION_ERROR"
            )
        if gross <= 0:
            return ServiceResult.failure(
                "Payment amount must be positive", error_code="VALIDATION_ERROR"
            )
        if processor_fee_amount < 0:
            return ServiceResult.failure(
                "Processor fee must not be negative", error_code="VALIDATION_ERROR"
            )

        # Replays return the existing record without touching the ledger
        existing = cls._find_payment(provider_payment_id)
        if existing is not None:
            return cls._replay_result(existing, order_id)

        try:
            with cls.atomic():
                record = cls._record_payment_locked(
                    order_id=order_id,
                    provider_payment_id=provider_payment_id,
                    gross=gross,
                    processor_fee=processor_fee_amount,
                    currency=currency,
                    provider=provider,
                )
        except (NotFoundError, ValidationError, ConflictError) as e:
            # A concurrent call for the same order paid it while we waited
            # on the order row lock
            if isinstance(e, ConflictError):
                existing = cls._find_payment(provider_payment_id)
                if existing is not None:
                    return cls._replay_result(existing, order_id)
            logger.warning(
                "Payment not recorded",
                extra={
                    "order_id": str(order_id),
                    "provider_payment_id": provider_payment_id,
                    "error_code": e.error_code,
                    "error": e.message,
                },
            )
            return ServiceResult.from_exception(e)
        except IntegrityError:
            # A concurrent call inserted the same reference first
            existing = cls._find_payment(provider_payment_id)
            if existing is None:
                raise
            return cls._replay_result(existing, order_id)

        payment = record.payment
        logger.info(
            "Payment recorded",
            extra={
                "order_id": str(order_id),
                "order_payment_id": str(payment.id),
                "provider_payment_id": provider_payment_id,
                "gross": money.format_amount(payment.amount),
                "platform_fee": money.format_amount(payment.platform_fee_amount),
                "net_to_store": money.format_amount(payment.net_amount_to_store),
            },
        )
        return ServiceResult.success(record)

    @classmethod
    def _record_payment_locked(
        cls,
        order_id: uuid.UUID,
        provider_payment_id: str,
        gross: Decimal,
        processor_fee: Decimal,
        currency: str | None,
        provider: str,
    ) -> PaymentRecord:
        order = Order.objects.select_for_update().filter(id=order_id).first()
        if order is None:
            raise NotFoundError(
                f"Order {order_id} not found",
                details={"order_id": str(order_id)},
            )

        currency = (currency or order.currency).lower()
        if currency != order.currency:
            raise ValidationError(
                f"Payment currency {currency} does not match order currency {order.currency}",
                details={"order_id": str(order.id)},
            )
        if not order.is_payable:
            raise ConflictError(
                f"Order {order.id} is already {order.payment_status}",
                details={
                    "order_id": str(order.id),
                    "payment_status": order.payment_status,
                },
            )

        if gross != order.total:
            cls.get_logger().warning(
                "Payment amount differs from order total",
                extra={
                    "order_id": str(order.id),
                    "gross": money.format_amount(gross),
                    "order_total": money.format_amount(order.total),
                },
            )

        store = Store.objects.get(id=order.store_id)
        platform_fee = calculate_platform_fee(gross)
        net_to_store = money.subtract(gross, platform_fee, processor_fee)
        now = timezone.now()
        available_at = now + hold_period_for(store)

        payment = OrderPayment.objects.create(
            order=order,
            store=store,
            amount=gross,
            currency=currency,
            platform_fee_amount=platform_fee,
            processor_fee_amount=processor_fee,
            net_amount_to_store=net_to_store,
            provider=provider,
            provider_payment_id=provider_payment_id,
        )

        entries = [
            EntryParams(
                store_id=store.id,
                entry_type=BalanceEntryType.ORDER_PAYMENT,
                amount=gross,
                currency=currency,
                idempotency_key=f"payment:{provider_payment_id}",
                order_id=order.id,
                order_payment_id=payment.id,
                description=f"Payment for order {order.id}",
                available_at=available_at,
            )
        ]
        if platform_fee > 0:
            entries.append(
                EntryParams(
                    store_id=store.id,
                    entry_type=BalanceEntryType.PLATFORM_FEE,
                    amount=-platform_fee,
                    currency=currency,
                    idempotency_key=f"fee:{provider_payment_id}",
                    order_id=order.id,
                    order_payment_id=payment.id,
                    description=f"Platform fee for order {order.id}",
                    available_at=available_at,
                )
            )
        LedgerService.append_entries(entries)

        order.mark_paid(paid_at=now)
        order.save()

        send_payment_received_on_commit(cls, order_payment=payment, order=order)
        return PaymentRecord(payment=payment, created=True)

    @staticmethod
    def _find_payment(provider_payment_id: str) -> OrderPayment | None:
        return OrderPayment.objects.filter(
            provider_payment_id=provider_payment_id
        ).first()

    @classmethod
    def _replay_result(
        cls,
        payment: OrderPayment,
        order_id: uuid.UUID,
    ) -> ServiceResult[PaymentRecord]:
        if str(payment.order_id) != str(order_id):
            return ServiceResult.failure(
                f"Payment {payment.provider_payment_id} belongs to another order",
                error_code="CONFLICT",
            )
        cls.get_logger().info(
            "Payment already recorded",
            extra={
                "order_id": str(order_id),
                "order_payment_id": str(payment.id),
                "provider_payment_id": payment.provider_payment_id,
            },
        )
        return ServiceResult.success(PaymentRecord(payment=payment, created=False))
