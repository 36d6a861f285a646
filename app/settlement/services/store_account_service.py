"""
Store onboarding: connected account creation and capability mirroring.

Usage:
    from settlement.services import StoreAccountService

    result = StoreAccountService.connect_store(store.id)
    account_id = result.data.stripe_account_id

    # From the account.updated webhook
    StoreAccountService.update_account_capabilities(
        "acct_123", charges_enabled=True, payouts_enabled=True
    )
"""

from __future__ import annotations

import logging
import uuid

from django.db import transaction

from core.services import BaseService, ServiceResult

from settlement.adapters import IdempotencyKeyGenerator, StripeAdapter
from settlement.exceptions import (
    GatewayError,
    LockAcquisitionError,
    ReconciliationRequiredError,
)
from settlement.locks import DistributedLock, store_connect_key
from settlement.models import Store
from settlement.state_machines import OnboardingStatus

CONNECT_LOCK_TTL = 60


def onboarding_status_for(
    charges_enabled: bool,
    payouts_enabled: bool,
    disabled_reason: str | None = None,
) -> str:
    if disabled_reason:
        return OnboardingStatus.RESTRICTED
    if charges_enabled and payouts_enabled:
        return OnboardingStatus.COMPLETE
    return OnboardingStatus.IN_PROGRESS


class StoreAccountService(BaseService):
    """
    Manages each store's gateway connected account.

    A store gets exactly one connected account: connect_store returns the
    existing account id when called again, and the gateway call is keyed
    by the store id so a retried request cannot create a second account.
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
    def connect_store(
        cls,
        store_id: uuid.UUID,
        email: str | None = None,
        country: str = "US",
    ) -> ServiceResult[Store]:
        """
        Create the store's connected account if it does not have one.

        Returns:
            ServiceResult containing the Store with stripe_account_id set
        """
        log = cls.get_logger()
        store = Store.objects.filter(id=store_id).first()
        if store is None:
            return ServiceResult.failure(
                f"Store {store_id} not found", error_code="NOT_FOUND"
            )
        if store.stripe_account_id:
            return ServiceResult.success(store)

        try:
            with DistributedLock(store_connect_key(store_id), ttl=CONNECT_LOCK_TTL):
                store.refresh_from_db()
                if store.stripe_account_id:
                    return ServiceResult.success(store)

                try:
                    account = cls.get_gateway_adapter().create_connected_account(
                        store_id=store.id,
                        idempotency_key=IdempotencyKeyGenerator.generate(
                            "connect_account", store.id
                        ),
                        country=country,
                        email=email,
                    )
                except GatewayError as e:
                    return cls.handle_exception(
                        e, "Connected account creation", log_level=logging.WARNING
                    )

                try:
                    with transaction.atomic():
                        store = Store.objects.select_for_update().get(id=store_id)
                        store.stripe_account_id = account.id
                        store.charges_enabled = account.charges_enabled
                        store.payouts_enabled = account.payouts_enabled
                        store.onboarding_status = OnboardingStatus.IN_PROGRESS
                        store.save()
                except Exception as e:
                    log.critical(
                        "Connected account created but not saved - reconciliation required",
                        extra={
                            "store_id": str(store_id),
                            "account_id": account.id,
                            "error": str(e),
                        },
                        exc_info=True,
                    )
                    raise ReconciliationRequiredError(
                        f"Connected account {account.id} was created but could not be saved",
                        details={"store_id": str(store_id), "account_id": account.id},
                    ) from e
        except LockAcquisitionError as e:
            return cls.handle_exception(
                e, "Store connect already running", log_level=logging.WARNING
            )

        log.info(
            "Store connected account created",
            extra={"store_id": str(store.id), "account_id": store.stripe_account_id},
        )
        return ServiceResult.success(store)

    @classmethod
    def update_account_capabilities(
        cls,
        account_id: str,
        charges_enabled: bool,
        payouts_enabled: bool,
        disabled_reason: str | None = None,
    ) -> ServiceResult[Store | None]:
        """
        Mirror the gateway's capability flags onto the store.

        An account that is not ours is ignored (success with None).
        """
        log = cls.get_logger()
        with transaction.atomic():
            store = (
                Store.objects.select_for_update()
                .filter(stripe_account_id=account_id)
                .first()
            )
            if store is None:
                log.info(
                    "Store not found for connected account, ignoring",
                    extra={"account_id": account_id},
                )
                return ServiceResult.success(None)

            store.charges_enabled = charges_enabled
            store.payouts_enabled = payouts_enabled
            store.onboarding_status = onboarding_status_for(
                charges_enabled, payouts_enabled, disabled_reason
            )
            store.save()

        log.info(
            "Store account capabilities updated",
            extra={
                "store_id": str(store.id),
                "account_id": account_id,
                "onboarding_status": store.onboarding_status,
                "charges_enabled": charges_enabled,
                "payouts_enabled": payouts_enabled,
            },
        )
        return ServiceResult.success(store)

    @classmethod
    def refresh_account(cls, store_id: uuid.UUID) -> ServiceResult[Store | None]:
        """Pull the account's capabilities from the gateway and mirror them."""
        store = Store.objects.filter(id=store_id).first()
        if store is None:
            return ServiceResult.failure(
                f"Store {store_id} not found", error_code="NOT_FOUND"
            )
        if not store.stripe_account_id:
            return ServiceResult.failure(
                "Store has not connected a payout account",
                error_code="PAYMENT_SETUP_REQUIRED",
            )

        try:
            account = cls.get_gateway_adapter().retrieve_account(store.stripe_account_id)
        except GatewayError as e:
            return cls.handle_exception(
                e, "Connected account refresh", log_level=logging.WARNING
            )

        return cls.update_account_capabilities(
            account.id,
            charges_enabled=account.charges_enabled,
            payouts_enabled=account.payouts_enabled,
            disabled_reason=(account.raw_response.get("requirements") or {}).get(
                "disabled_reason"
            ),
        )
