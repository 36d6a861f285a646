"""
Inventory collaborator interface.

Settlement does not own the catalog. It needs two things from it: to
check that a cart line's listing exists in the named store, and to
reserve, release or restock units. The concrete implementation is chosen
with the ``SETTLEMENT_INVENTORY_GATEWAY`` setting (a dotted path to a
class whose instances satisfy ``InventoryGateway``).

Usage:
    from settlement.inventory import InventoryDirection, InventoryLine, get_inventory_gateway

    result = get_inventory_gateway().adjust_inventory(
        items=[InventoryLine(listing_id="lst_1", quantity=2)],
        store_id=store.id,
        direction=InventoryDirection.RESERVE,
        reason="checkout",
        order_id=order.id,
    )
    if not result.success:
        raise InventoryError(result.error)
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Protocol, runtime_checkable

from django.conf import settings
from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)


class InventoryDirection(str, Enum):
    RESERVE = "reserve"
    RELEASE = "release"
    RESTOCK = "restock"


@dataclass(frozen=True)
class InventoryLine:
    listing_id: str
    quantity: int


@dataclass(frozen=True)
class InventoryResult:
    success: bool
    error: str | None = None


@runtime_checkable
class InventoryGateway(Protocol):
    """
    Protocol for the inventory collaborator.

    Implementations must bound every remote call with a timeout and
    report failure through ``InventoryResult`` rather than hanging.
    """

    def listing_exists(self, store_id: uuid.UUID, listing_id: str) -> bool:
        """Return True if the listing belongs to the store and is purchasable."""
        ...

    def adjust_inventory(
        self,
        items: list[InventoryLine],
        store_id: uuid.UUID,
        direction: InventoryDirection,
        reason: str,
        order_id: uuid.UUID | None = None,
    ) -> InventoryResult:
        """
        Reserve, release or restock units for a store.

        Args:
            items: Listings and quantities to adjust
            store_id: Store owning the listings
            direction: reserve, release or restock
            reason: Free-text reason recorded by the inventory system
            order_id: Order the adjustment belongs to, if any
        """
        ...


class NullInventoryGateway:
    """
    Inventory gateway that accepts every listing and adjustment.

    Used when the marketplace does not track stock levels.
    """

    def listing_exists(self, store_id: uuid.UUID, listing_id: str) -> bool:
        return True

    def adjust_inventory(
        self,
        items: list[InventoryLine],
        store_id: uuid.UUID,
        direction: InventoryDirection,
        reason: str,
        order_id: uuid.UUID | None = None,
    ) -> InventoryResult:
        logger.debug(
            "Inventory adjustment ignored",
            extra={
                "store_id": str(store_id),
                "direction": direction.value,
                "item_count": len(items),
                "order_id": str(order_id) if order_id else None,
            },
        )
        return InventoryResult(success=True)


_inventory_gateway: InventoryGateway | None = None


def get_inventory_gateway() -> InventoryGateway:
    """Return the injected gateway, or build the configured one."""
    if _inventory_gateway is not None:
        return _inventory_gateway
    gateway_class = import_string(settings.SETTLEMENT_INVENTORY_GATEWAY)
    return gateway_class()


def set_inventory_gateway(gateway: InventoryGateway | None) -> None:
    """Set the inventory gateway (for testing). Pass None to restore the default."""
    global _inventory_gateway
    _inventory_gateway = gateway
