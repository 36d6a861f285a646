"""
Stripe Connect adapter for settlement operations.

Every call that moves or inspects marketplace money goes through
StripeAdapter so that timeouts, idempotency keys, error translation and
structured logging are applied the same way everywhere.

Features:
- Bounded timeout on every API call
- Stripe SDK errors translated to settlement GatewayError subclasses
- Structured logging with timing metrics
- Idempotency keys on every write

Configuration (via settings):
- STRIPE_SECRET_KEY: Stripe API secret key
- STRIPE_API_TIMEOUT_SECONDS: API call timeout (default: 10)
- STRIPE_MAX_RETRIES: SDK-level network retries (default: 0)

Usage:
    from settlement.adapters import CreatePayoutParams, StripeAdapter

    result = StripeAdapter.create_payout(
        CreatePayoutParams(
            account_id="acct_123",
            amount_cents=15000,
            currency="usd",
            idempotency_key=IdempotencyKeyGenerator.generate("payout", payout.id),
        )
    )
"""

from __future__ import annotations

import hashlib
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone as dt_timezone
from typing import Any

import stripe
from django.conf import settings

from settlement.exceptions import (
    GatewayCardDeclinedError,
    GatewayInvalidAccountError,
    GatewayInvalidRequestError,
    GatewayRateLimitError,
    GatewayTimeoutError,
    GatewayUnavailableError,
)

# =============================================================================
# Data Types
# =============================================================================


@dataclass
class DestinationChargeParams:
    """
    Parameters for charging a buyer on behalf of a store.

    The platform keeps ``application_fee_cents``; the rest is transferred
    to ``destination_account_id``.
    """

    amount_cents: int
    currency: str
    destination_account_id: str
    application_fee_cents: int
    idempotency_key: str
    metadata: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.amount_cents <= 0:
            raise ValueError("amount_cents must be positive")
        if self.application_fee_cents < 0:
            raise ValueError("application_fee_cents cannot be negative")
        if self.application_fee_cents > self.amount_cents:
            raise ValueError("application_fee_cents cannot exceed amount_cents")
        if not self.destination_account_id:
            raise ValueError("destination_account_id is required")
        if not self.idempotency_key:
            raise ValueError("idempotency_key is required")


@dataclass
class CreatePayoutParams:
    """Parameters for paying out a connected account's balance to its bank."""

    account_id: str
    amount_cents: int
    currency: str
    idempotency_key: str
    metadata: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.amount_cents <= 0:
            raise ValueError("amount_cents must be positive")
        if not self.account_id:
            raise ValueError("account_id is required")
        if not self.idempotency_key:
            raise ValueError("idempotency_key is required")


@dataclass
class ConnectedAccountResult:
    id: str
    charges_enabled: bool
    payouts_enabled: bool
    details_submitted: bool
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class ChargeResult:
    """
    Result from creating a destination charge.

    Attributes:
        id: PaymentIntent ID (pi_xxx), used as the payment reference
        status: PaymentIntent status
        client_secret: Secret for client-side confirmation
    """

    id: str
    status: str
    amount_cents: int
    currency: str
    client_secret: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class RefundResult:
    id: str
    amount_cents: int
    currency: str
    status: str
    payment_intent_id: str
    metadata: dict[str, str] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class PayoutResult:
    """
    Result from Stripe Payout operations.

    Attributes:
        id: Payout ID (po_xxx)
        status: pending, in_transit, paid, failed or canceled
        created: When Stripe created the payout
        metadata: Includes "seller_payout_id" for payouts we initiated
    """

    id: str
    amount_cents: int
    currency: str
    status: str
    created: datetime | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Idempotency Key Generator
# =============================================================================


class IdempotencyKeyGenerator:
    """
    Generate idempotency keys for Stripe API calls.

    Format: "{operation}:{entity_id}:{attempt}:{hash}"

    Example:
        key = IdempotencyKeyGenerator.generate("payout", seller_payout.id)
        # "payout:550e8400-e29b-41d4-a716-446655440000:1:a1b2c3d4"
    """

    @staticmethod
    def generate(
        operation: str,
        entity_id: uuid.UUID | str,
        attempt: int = 1,
    ) -> str:
        entity_str = str(entity_id)
        hash_input = f"{operation}:{entity_str}:{attempt}:{settings.SECRET_KEY}"
        short_hash = hashlib.sha256(hash_input.encode()).hexdigest()[:8]
        return f"{operation}:{entity_str}:{attempt}:{short_hash}"


def _from_timestamp(value: int | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=dt_timezone.utc)


# =============================================================================
# Stripe Adapter
# =============================================================================


class StripeAdapter:
    """
    Adapter for Stripe Connect operations.

    All methods are classmethods - no instance state is maintained.
    Safe to call from Celery workers.

    Usage:
        balance_cents = StripeAdapter.retrieve_available_balance("acct_123", "usd")
        result = StripeAdapter.create_refund("pi_123", "refund:...", amount_cents=500)
    """

    # =========================================================================
    # Configuration
    # =========================================================================

    # Shared HTTP client, rebuilt only when the configured timeout changes
    _http_client: stripe.RequestsClient | None = None
    _http_client_timeout: int | None = None

    @classmethod
    def _configure_stripe(cls) -> None:
        stripe.api_key = settings.STRIPE_SECRET_KEY
        stripe.max_network_retries = getattr(settings, "STRIPE_MAX_RETRIES", 0)
        timeout = getattr(settings, "STRIPE_API_TIMEOUT_SECONDS", 10)
        if cls._http_client is None or cls._http_client_timeout != timeout:
            cls._http_client = stripe.RequestsClient(timeout=timeout)
            cls._http_client_timeout = timeout
        stripe.default_http_client = cls._http_client

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    # =========================================================================
    # Connected Accounts
    # =========================================================================

    @classmethod
    def create_connected_account(
        cls,
        store_id: uuid.UUID,
        idempotency_key: str,
        country: str = "US",
        email: str | None = None,
    ) -> ConnectedAccountResult:
        """
        Create an Express connected account for a store.

        Args:
            store_id: Store the account belongs to (stored in metadata)
            idempotency_key: Unique key so a retried connect returns the same account
            country: Two-letter country code
            email: Optional contact email for the account

        Raises:
            GatewayInvalidRequestError: Stripe rejected the account parameters
            GatewayUnavailableError: Stripe service unavailable
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "create_connected_account",
            "store_id": str(store_id),
            "idempotency_key": idempotency_key,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            account_params: dict[str, Any] = {
                "type": "express",
                "country": country,
                "capabilities": {
                    "card_payments": {"requested": True},
                    "transfers": {"requested": True},
                },
                "metadata": {"store_id": str(store_id)},
            }
            if email:
                account_params["email"] = email

            account = stripe.Account.create(
                idempotency_key=idempotency_key,
                **account_params,
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "account_id": account.id,
                    "duration_ms": duration_ms,
                },
            )

            return cls._account_result(account)

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @classmethod
    def retrieve_account(cls, account_id: str) -> ConnectedAccountResult:
        """
        Retrieve a connected account's current capabilities.

        Raises:
            GatewayInvalidAccountError: Account does not exist or is not connected
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "retrieve_account",
            "account_id": account_id,
        }

        start_time = time.time()
        logger.debug("Starting Stripe operation", extra=log_context)

        try:
            account = stripe.Account.retrieve(account_id)

            duration_ms = (time.time() - start_time) * 1000
            logger.debug(
                "Stripe operation completed",
                extra={**log_context, "duration_ms": duration_ms},
            )

            return cls._account_result(account)

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @staticmethod
    def _account_result(account: Any) -> ConnectedAccountResult:
        return ConnectedAccountResult(
            id=account.id,
            charges_enabled=bool(account.charges_enabled),
            payouts_enabled=bool(account.payouts_enabled),
            details_submitted=bool(account.details_submitted),
            raw_response=account.to_dict(),
        )

    # =========================================================================
    # Charges and Refunds
    # =========================================================================

    @classmethod
    def create_destination_charge(
        cls,
        params: DestinationChargeParams,
    ) -> ChargeResult:
        """
        Create a PaymentIntent that routes funds to a store's account.

        Raises:
            GatewayCardDeclinedError: Card was declined
            GatewayInvalidAccountError: Destination account cannot receive funds
            GatewayInvalidRequestError: Invalid parameters
            GatewayUnavailableError: Stripe service unavailable
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "create_destination_charge",
            "amount_cents": params.amount_cents,
            "currency": params.currency,
            "destination_account_id": params.destination_account_id,
            "application_fee_cents": params.application_fee_cents,
            "idempotency_key": params.idempotency_key,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            intent = stripe.PaymentIntent.create(
                amount=params.amount_cents,
                currency=params.currency,
                application_fee_amount=params.application_fee_cents,
                transfer_data={"destination": params.destination_account_id},
                metadata=params.metadata,
                idempotency_key=params.idempotency_key,
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "payment_intent_id": intent.id,
                    "status": intent.status,
                    "duration_ms": duration_ms,
                },
            )

            return ChargeResult(
                id=intent.id,
                status=intent.status,
                amount_cents=intent.amount,
                currency=intent.currency,
                client_secret=intent.client_secret,
                metadata=dict(intent.metadata or {}),
                raw_response=intent.to_dict(),
            )

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @classmethod
    def create_refund(
        cls,
        payment_intent_id: str,
        idempotency_key: str,
        amount_cents: int,
        metadata: dict[str, str] | None = None,
    ) -> RefundResult:
        """
        Refund part or all of a destination charge.

        The transfer to the store is reversed and the application fee is
        refunded in proportion, so the store's Stripe balance matches the
        ledger's refund and fee-return entries.

        Raises:
            GatewayInvalidRequestError: Refund not possible
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "create_refund",
            "payment_intent_id": payment_intent_id,
            "amount_cents": amount_cents,
            "idempotency_key": idempotency_key,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            refund = stripe.Refund.create(
                payment_intent=payment_intent_id,
                amount=amount_cents,
                reverse_transfer=True,
                refund_application_fee=True,
                metadata=metadata or {},
                idempotency_key=idempotency_key,
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "refund_id": refund.id,
                    "status": refund.status,
                    "duration_ms": duration_ms,
                },
            )

            return RefundResult(
                id=refund.id,
                amount_cents=refund.amount,
                currency=refund.currency,
                status=refund.status,
                payment_intent_id=refund.payment_intent,
                metadata=dict(refund.metadata or {}),
                raw_response=refund.to_dict(),
            )

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    # =========================================================================
    # Balances and Payouts
    # =========================================================================

    @classmethod
    def retrieve_available_balance(cls, account_id: str, currency: str) -> int:
        """
        Return the connected account's available balance in minor units.

        A currency absent from the account's balance counts as zero.

        Raises:
            GatewayInvalidAccountError: Account does not exist or is not connected
            GatewayUnavailableError: Stripe service unavailable
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "retrieve_available_balance",
            "account_id": account_id,
            "currency": currency,
        }

        start_time = time.time()
        logger.debug("Starting Stripe operation", extra=log_context)

        try:
            balance = stripe.Balance.retrieve(stripe_account=account_id)

            available_cents = sum(
                entry.amount
                for entry in balance.available
                if entry.currency.lower() == currency.lower()
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.debug(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "available_cents": available_cents,
                    "duration_ms": duration_ms,
                },
            )
            return available_cents

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @classmethod
    def create_payout(cls, params: CreatePayoutParams) -> PayoutResult:
        """
        Pay out part of a connected account's balance to its bank.

        Raises:
            GatewayInvalidAccountError: Account cannot receive payouts
            GatewayInvalidRequestError: Insufficient balance or invalid amount
            GatewayUnavailableError: Stripe service unavailable
            GatewayTimeoutError: Request timed out
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "create_payout",
            "account_id": params.account_id,
            "amount_cents": params.amount_cents,
            "currency": params.currency,
            "idempotency_key": params.idempotency_key,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            payout = stripe.Payout.create(
                amount=params.amount_cents,
                currency=params.currency,
                metadata=params.metadata,
                stripe_account=params.account_id,
                idempotency_key=params.idempotency_key,
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "payout_id": payout.id,
                    "status": payout.status,
                    "duration_ms": duration_ms,
                },
            )

            return cls._payout_result(payout)

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @classmethod
    def list_payouts(
        cls,
        account_id: str,
        created_after: datetime,
        limit: int = 100,
    ) -> list[PayoutResult]:
        """
        List a connected account's payouts for reconciliation.

        Args:
            account_id: Connected account to list
            created_after: Only return payouts created at or after this time
            limit: Maximum number to return (max: 100)
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        created_timestamp = int(created_after.timestamp())

        log_context = {
            "operation": "list_payouts",
            "account_id": account_id,
            "created_after": created_timestamp,
            "limit": limit,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            payouts = stripe.Payout.list(
                created={"gte": created_timestamp},
                limit=min(limit, 100),
                stripe_account=account_id,
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "count": len(payouts.data),
                    "duration_ms": duration_ms,
                },
            )

            return [cls._payout_result(payout) for payout in payouts.data]

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @staticmethod
    def _payout_result(payout: Any) -> PayoutResult:
        return PayoutResult(
            id=payout.id,
            amount_cents=payout.amount,
            currency=payout.currency,
            status=payout.status,
            created=_from_timestamp(getattr(payout, "created", None)),
            metadata=dict(payout.metadata or {}),
            raw_response=payout.to_dict(),
        )

    # =========================================================================
    # Error Handling
    # =========================================================================

    @classmethod
    def _handle_stripe_error(
        cls,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate Stripe exceptions to settlement gateway errors.

        Raises:
            GatewayCardDeclinedError: Card was declined
            GatewayInvalidAccountError: Connected account problem
            GatewayInvalidRequestError: Invalid request or authentication failure
            GatewayRateLimitError: Rate limited
            GatewayTimeoutError: Request timed out
            GatewayUnavailableError: API unreachable or server error
        """
        logger = cls.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, stripe.CardError):
            decline_code = getattr(error, "decline_code", None)
            logger.warning(
                "Card error from Stripe",
                extra={**log_context, "decline_code": decline_code},
            )
            raise GatewayCardDeclinedError(
                str(error.user_message or error),
                gateway_code=error.code,
                details={"decline_code": decline_code},
            )

        elif isinstance(error, stripe.InvalidRequestError):
            logger.error(
                "Invalid request to Stripe",
                extra={**log_context, "stripe_code": error.code},
            )
            if "account" in str(error).lower():
                raise GatewayInvalidAccountError(str(error), gateway_code=error.code)
            raise GatewayInvalidRequestError(str(error), gateway_code=error.code)

        elif isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            raise GatewayRateLimitError(
                "Stripe rate limit exceeded. Please retry.",
                gateway_code="rate_limit",
            )

        elif isinstance(error, stripe.APIConnectionError):
            if "timed out" in str(error).lower() or "timeout" in str(error).lower():
                logger.error("Stripe request timed out", extra=log_context)
                raise GatewayTimeoutError(
                    "Stripe request timed out",
                    gateway_code="timeout",
                )
            logger.error(
                "Connection error to Stripe",
                extra=log_context,
                exc_info=True,
            )
            raise GatewayUnavailableError(
                "Could not connect to Stripe. Please retry.",
                gateway_code="api_connection_error",
            )

        elif isinstance(error, stripe.AuthenticationError):
            logger.critical(
                "Stripe authentication failed - check API key",
                extra=log_context,
            )
            raise GatewayInvalidRequestError(
                "Stripe authentication failed",
                gateway_code="authentication_error",
            )

        elif isinstance(error, stripe.APIError):
            logger.error("Stripe API error", extra=log_context, exc_info=True)
            raise GatewayUnavailableError(
                "Stripe service error. Please retry.",
                gateway_code="api_error",
            )

        else:
            logger.error(
                f"Unexpected error from Stripe: {type(error).__name__}",
                extra=log_context,
                exc_info=True,
            )
            raise GatewayUnavailableError(
                f"Unexpected Stripe error: {error}",
                gateway_code="unknown_error",
            )
