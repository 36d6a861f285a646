"""
Tests for OrderSplitterService.

Tests cover:
- Per-store order creation and prorated cart amounts
- Payment setup validation naming every blocking store
- Atomic rollback with inventory release on reservation failure
"""

from decimal import Decimal

import pytest

from settlement.inventory import InventoryDirection, InventoryResult
from settlement.models import Order, OrderItem
from settlement.services import Cart, CartLine, OrderSplitterService
from settlement.state_machines import OrderStatus, PaymentStatus
from settlement.tests.factories import StoreFactory


def line(store, price, listing_id="lst_1", quantity=1, **kwargs):
    return CartLine(
        store_id=store.id,
        listing_id=listing_id,
        quantity=quantity,
        unit_price=Decimal(price),
        **kwargs,
    )


@pytest.fixture
def two_stores(db):
    return StoreFactory(name="Alpha"), StoreFactory(name="Beta")


class TestCreateOrdersFromCart:
    def test_splits_cart_per_store(self, two_stores, inventory_gateway):
        alpha, beta = two_stores
        cart = Cart(
            lines=[line(alpha, "30.00"), line(beta, "70.00", listing_id="lst_2")],
            currency="USD",
            shipping_amount=Decimal("5.00"),
        )

        result = OrderSplitterService.create_orders_from_cart(cart)

        assert result.success
        orders = {order.store_id: order for order in result.data.orders}
        assert orders[alpha.id].shipping_amount == Decimal("1.50")
        assert orders[alpha.id].total == Decimal("31.50")
        assert orders[beta.id].shipping_amount == Decimal("3.50")
        assert orders[beta.id].total == Decimal("73.50")
        assert result.data.total == Decimal("105.00")
        assert result.data.checkout_id == cart.checkout_id

    def test_orders_start_open_and_unpaid(self, two_stores, inventory_gateway):
        alpha, _ = two_stores

        result = OrderSplitterService.create_orders_from_cart(
            Cart(lines=[line(alpha, "12.00", quantity=2)], currency="usd")
        )

        order = Order.objects.get(id=result.data.orders[0].id)
        assert order.status == OrderStatus.OPEN
        assert order.payment_status == PaymentStatus.PENDING
        assert order.currency == "usd"
        item = OrderItem.objects.get(order=order)
        assert item.quantity == 2
        assert item.subtotal == Decimal("24.00")

    def test_groups_lines_from_same_store(self, two_stores, inventory_gateway):
        alpha, _ = two_stores
        cart = Cart(
            lines=[line(alpha, "10.00"), line(alpha, "15.00", listing_id="lst_2")],
            currency="usd",
        )

        result = OrderSplitterService.create_orders_from_cart(cart)

        assert len(result.data.orders) == 1
        assert result.data.orders[0].subtotal == Decimal("25.00")
        assert OrderItem.objects.filter(order=result.data.orders[0]).count() == 2

    def test_prorated_parts_add_up_to_cart_amounts(self, db, inventory_gateway):
        stores = [StoreFactory() for _ in range(3)]
        cart = Cart(
            lines=[line(store, "10.00") for store in stores],
            currency="usd",
            shipping_amount=Decimal("10.00"),
            tax_amount=Decimal("1.00"),
        )

        result = OrderSplitterService.create_orders_from_cart(cart)

        orders = result.data.orders
        assert sum(o.shipping_amount for o in orders) == Decimal("10.00")
        assert sum(o.tax_amount for o in orders) == Decimal("1.00")

    def test_cart_discount_prorated(self, two_stores, inventory_gateway):
        alpha, beta = two_stores
        cart = Cart(
            lines=[line(alpha, "25.00"), line(beta, "75.00")],
            currency="usd",
            discount_amount=Decimal("10.00"),
        )

        result = OrderSplitterService.create_orders_from_cart(cart)

        orders = {order.store_id: order for order in result.data.orders}
        assert orders[alpha.id].discount_amount == Decimal("2.50")
        assert orders[beta.id].discount_amount == Decimal("7.50")
        assert orders[alpha.id].total == Decimal("22.50")

    def test_line_discounts_replace_cart_discount(self, two_stores, inventory_gateway):
        alpha, beta = two_stores
        cart = Cart(
            lines=[
                line(alpha, "30.00", discount_amount=Decimal("3.00")),
                line(beta, "70.00"),
            ],
            currency="usd",
            discount_amount=Decimal("10.00"),
        )

        result = OrderSplitterService.create_orders_from_cart(cart)

        orders = {order.store_id: order for order in result.data.orders}
        assert orders[alpha.id].discount_amount == Decimal("3.00")
        assert orders[beta.id].discount_amount == Decimal("0.00")

    def test_total_never_negative(self, two_stores, inventory_gateway):
        alpha, _ = two_stores
        cart = Cart(
            lines=[line(alpha, "5.00", discount_amount=Decimal("8.00"))],
            currency="usd",
        )

        result = OrderSplitterService.create_orders_from_cart(cart)

        assert result.data.orders[0].total == Decimal("0.00")

    def test_reserves_inventory_per_store(self, two_stores, inventory_gateway):
        alpha, beta = two_stores

        OrderSplitterService.create_orders_from_cart(
            Cart(lines=[line(alpha, "10.00"), line(beta, "20.00")], currency="usd")
        )

        calls = inventory_gateway.adjust_inventory.call_args_list
        assert len(calls) == 2
        assert all(c.kwargs["direction"] == InventoryDirection.RESERVE for c in calls)
        assert {c.kwargs["store_id"] for c in calls} == {alpha.id, beta.id}


class TestPaymentSetupValidation:
    def test_unconnected_store_blocks_checkout(
        self, store, unconnected_store, inventory_gateway
    ):
        cart = Cart(
            lines=[line(store, "10.00"), line(unconnected_store, "20.00")],
            currency="usd",
        )

        result = OrderSplitterService.create_orders_from_cart(cart)

        assert not result.success
        assert result.error_code == "PAYMENT_SETUP_REQUIRED"
        assert "Unconnected Shop" in result.error
        assert Order.objects.count() == 0
        inventory_gateway.adjust_inventory.assert_not_called()

    def test_lists_every_blocking_store(self, db, inventory_gateway):
        first = StoreFactory(unconnected=True, name="First Shop")
        second = StoreFactory(unconnected=True, name="Second Shop")

        result = OrderSplitterService.create_orders_from_cart(
            Cart(lines=[line(first, "10.00"), line(second, "10.00")], currency="usd")
        )

        assert "First Shop" in result.error
        assert "Second Shop" in result.error


class TestCartValidation:
    def test_empty_cart(self, db, inventory_gateway):
        result = OrderSplitterService.create_orders_from_cart(
            Cart(lines=[], currency="usd")
        )

        assert result.error_code == "VALIDATION_ERROR"

    def test_non_positive_quantity(self, store, inventory_gateway):
        result = OrderSplitterService.create_orders_from_cart(
            Cart(lines=[line(store, "10.00", quantity=0)], currency="usd")
        )

        assert result.error_code == "VALIDATION_ERROR"
        assert Order.objects.count() == 0

    def test_unknown_listing(self, store, inventory_gateway):
        inventory_gateway.listing_exists.return_value = False

        result = OrderSplitterService.create_orders_from_cart(
            Cart(lines=[line(store, "10.00", listing_id="lst_gone")], currency="usd")
        )

        assert result.error_code == "VALIDATION_ERROR"
        assert "lst_gone" in result.error

    def test_inactive_store(self, db, inventory_gateway):
        closed = StoreFactory(is_active=False)

        result = OrderSplitterService.create_orders_from_cart(
            Cart(lines=[line(closed, "10.00")], currency="usd")
        )

        assert result.error_code == "VALIDATION_ERROR"

    def test_malformed_amounts_are_validation_errors(self, store, inventory_gateway):
        cart = Cart(
            lines=[
                CartLine(
                    store_id=store.id,
                    listing_id="lst_1",
                    quantity=1,
                    unit_price="abc",
                )
            ],
            currency="usd",
            shipping_amount=4.99,
        )

        result = OrderSplitterService.create_orders_from_cart(cart)

        assert result.error_code == "VALIDATION_ERROR"
        assert "Invalid money amount" in result.errors["lines[0]"][0]
        assert result.errors["shipping_amount"] == ["Money amounts must not be float"]
        assert Order.objects.count() == 0

    def test_non_integer_quantity(self, store, inventory_gateway):
        result = OrderSplitterService.create_orders_from_cart(
            Cart(lines=[line(store, "10.00", quantity="2")], currency="usd")
        )

        assert result.errors == {"lines[0]": ["Quantity must be an integer"]}

    def test_currency_must_match_store(self, db, inventory_gateway):
        euro_store = StoreFactory(name="Euro Shop", currency="eur")

        result = OrderSplitterService.create_orders_from_cart(
            Cart(lines=[line(euro_store, "10.00")], currency="usd")
        )

        assert result.error_code == "VALIDATION_ERROR"
        assert "Euro Shop" in result.error
        assert Order.objects.count() == 0


class TestInventoryRollback:
    def test_reservation_failure_rolls_back_all_orders(
        self, two_stores, inventory_gateway
    ):
        alpha, beta = two_stores
        inventory_gateway.adjust_inventory.side_effect = [
            InventoryResult(success=True),
            InventoryResult(success=False, error="out of stock"),
            InventoryResult(success=True),
        ]

        result = OrderSplitterService.create_orders_from_cart(
            Cart(lines=[line(alpha, "10.00"), line(beta, "20.00")], currency="usd")
        )

        assert not result.success
        assert result.error_code == "INVENTORY_ERROR"
        assert "out of stock" in result.error
        assert Order.objects.count() == 0
        assert OrderItem.objects.count() == 0

        release = inventory_gateway.adjust_inventory.call_args_list[-1]
        assert release.kwargs["direction"] == InventoryDirection.RELEASE
        assert release.kwargs["store_id"] == alpha.id
