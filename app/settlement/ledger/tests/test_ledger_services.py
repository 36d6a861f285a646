"""
Tests for LedgerService.

Balances are always derived by replaying entries; the cached
SellerBalance row is only a snapshot that must agree with the replay.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from settlement.ledger import (
    BalanceSummary,
    EntryParams,
    LedgerService,
    SellerBalance,
    SellerBalanceEntry,
)
from settlement.state_machines import BalanceEntryType
from settlement.tests.factories import SellerPayoutFactory, StoreFactory, credit_store


def make_params(store, amount, key, **kwargs):
    return EntryParams(
        store_id=store.id,
        entry_type=kwargs.pop("entry_type", BalanceEntryType.ADJUSTMENT),
        amount=Decimal(amount),
        currency=store.currency,
        idempotency_key=key,
        **kwargs,
    )


# =============================================================================
# EntryParams Validation
# =============================================================================


class TestEntryParams:
    def test_amount_is_quantized_and_currency_lowercased(self, db):
        store = StoreFactory()

        params = EntryParams(
            store_id=store.id,
            entry_type=BalanceEntryType.ADJUSTMENT,
            amount=Decimal("10.005"),
            currency="USD",
            idempotency_key="adj:1",
        )

        assert params.amount == Decimal("10.01")
        assert params.currency == "usd"

    def test_zero_amount_rejected(self, db):
        with pytest.raises(ValueError, match="non-zero"):
            make_params(StoreFactory(), "0.00", "adj:zero")

    def test_payment_credit_cannot_be_negative(self, db):
        with pytest.raises(ValueError, match="credits"):
            make_params(
                StoreFactory(),
                "-5.00",
                "payment:neg",
                entry_type=BalanceEntryType.ORDER_PAYMENT,
            )

    @pytest.mark.parametrize(
        "entry_type", [BalanceEntryType.REFUND, BalanceEntryType.PAYOUT]
    )
    def test_refund_and_payout_must_be_debits(self, db, entry_type):
        with pytest.raises(ValueError, match="debits"):
            make_params(StoreFactory(), "5.00", "debit:pos", entry_type=entry_type)

    def test_idempotency_key_required(self, db):
        with pytest.raises(ValueError, match="idempotency_key"):
            make_params(StoreFactory(), "5.00", "")


# =============================================================================
# Writes
# =============================================================================


class TestAppendEntries:
    def test_append_updates_cached_balance(self, db):
        store = StoreFactory()

        credit_store(store, "100.00", "adj:1")
        credit_store(store, "-30.00", "adj:2")

        cached = SellerBalance.objects.get(store=store, currency="usd")
        assert cached.available_balance == Decimal("70.00")
        assert cached.pending_balance == Decimal("0.00")

    def test_replay_is_already_applied(self, db):
        store = StoreFactory()
        params = make_params(store, "100.00", "payment:pi_1")

        first, created = LedgerService.append_entry(params)
        again, created_again = LedgerService.append_entry(params)

        assert created is True
        assert created_again is False
        assert again.id == first.id
        assert SellerBalanceEntry.objects.filter(store=store).count() == 1
        assert LedgerService.compute_balance(store.id, "usd").available_balance == Decimal(
            "100.00"
        )

    def test_same_payout_under_new_key_is_already_applied(self, db):
        store = StoreFactory()
        credit_store(store, "200.00", "adj:seed")
        payout = SellerPayoutFactory(store=store)

        first, _ = LedgerService.append_entry(
            make_params(
                store,
                "-150.00",
                f"payout:{payout.id}",
                entry_type=BalanceEntryType.PAYOUT,
                payout_id=payout.id,
            )
        )
        second, created = LedgerService.append_entry(
            make_params(
                store,
                "-150.00",
                f"payout-retry:{payout.id}",
                entry_type=BalanceEntryType.PAYOUT,
                payout_id=payout.id,
            )
        )

        assert created is False
        assert second.id == first.id
        assert LedgerService.compute_balance(store.id, "usd").available_balance == Decimal(
            "50.00"
        )

    def test_batch_returns_results_in_input_order(self, db):
        store = StoreFactory()

        results = LedgerService.append_entries(
            [
                make_params(store, "10.00", "batch:1"),
                make_params(store, "20.00", "batch:2"),
            ]
        )

        assert [entry.idempotency_key for entry, _ in results] == ["batch:1", "batch:2"]
        assert all(created for _, created in results)

    def test_empty_batch(self, db):
        assert LedgerService.append_entries([]) == []


# =============================================================================
# Derivation
# =============================================================================


class TestComputeBalance:
    def test_available_and_pending_split_by_hold_window(self, db):
        store = StoreFactory()
        now = timezone.now()
        credit_store(store, "100.00", "cleared", available_at=now - timedelta(hours=1))
        credit_store(store, "40.00", "held", available_at=now + timedelta(days=7))

        summary = LedgerService.compute_balance(store.id, "usd", as_of=now)

        assert summary.available_balance == Decimal("100.00")
        assert summary.pending_balance == Decimal("40.00")
        assert summary.current_balance == Decimal("140.00")
        assert summary.amount_due == Decimal("0.00")

    def test_held_funds_clear_without_new_entries(self, db):
        store = StoreFactory()
        now = timezone.now()
        credit_store(store, "40.00", "held", available_at=now + timedelta(days=7))

        later = LedgerService.compute_balance(
            store.id, "usd", as_of=now + timedelta(days=8)
        )

        assert later.available_balance == Decimal("40.00")
        assert later.pending_balance == Decimal("0.00")

    def test_negative_available_is_amount_due(self, db):
        store = StoreFactory()
        credit_store(store, "-25.00", "chargeback")

        summary = LedgerService.compute_balance(store.id, "usd")

        assert summary.available_balance == Decimal("-25.00")
        assert summary.amount_due == Decimal("25.00")

    def test_store_without_entries_is_zero(self, db):
        store = StoreFactory()

        summary = LedgerService.compute_balance(store.id, "usd")

        assert summary.available_balance == Decimal("0.00")
        assert summary.pending_balance == Decimal("0.00")

    def test_currencies_are_separate(self, db):
        store = StoreFactory()
        credit_store(store, "10.00", "usd:1")
        LedgerService.append_entry(
            EntryParams(
                store_id=store.id,
                entry_type=BalanceEntryType.ADJUSTMENT,
                amount=Decimal("99.00"),
                currency="eur",
                idempotency_key="eur:1",
                available_at=timezone.now() - timedelta(days=1),
            )
        )

        assert LedgerService.compute_balance(store.id, "usd").available_balance == Decimal(
            "10.00"
        )
        assert LedgerService.compute_balance(store.id, "eur").available_balance == Decimal(
            "99.00"
        )


class TestHealCachedBalance:
    def test_drifted_cache_is_healed(self, db, caplog):
        store = StoreFactory()
        credit_store(store, "100.00", "adj:1")
        SellerBalance.objects.filter(store=store).update(
            available_balance=Decimal("999.00")
        )

        summary = LedgerService.get_balance_summary(store.id, "usd")

        assert summary.available_balance == Decimal("100.00")
        cached = SellerBalance.objects.get(store=store, currency="usd")
        assert cached.available_balance == Decimal("100.00")
        assert "drifted" in caplog.text

    def test_heal_reports_drift(self, db):
        store = StoreFactory()
        credit_store(store, "100.00", "adj:1")
        SellerBalance.objects.filter(store=store).update(pending_balance=Decimal("5.00"))

        summary = LedgerService.compute_balance(store.id, "usd")

        assert LedgerService.heal_cached_balance(summary) is True
        assert LedgerService.heal_cached_balance(summary) is False

    def test_stale_split_is_refreshed_without_drift(self, db):
        store = StoreFactory()
        now = timezone.now()
        credit_store(store, "40.00", "held", available_at=now + timedelta(hours=1))

        summary = LedgerService.compute_balance(
            store.id, "usd", as_of=now + timedelta(hours=2)
        )

        assert LedgerService.heal_cached_balance(summary) is False
        cached = SellerBalance.objects.get(store=store, currency="usd")
        assert cached.available_balance == Decimal("40.00")
        assert cached.pending_balance == Decimal("0.00")

    def test_missing_cache_row_with_entries_counts_as_drift(self, db):
        store = StoreFactory()
        credit_store(store, "10.00", "adj:1")
        SellerBalance.objects.filter(store=store).delete()

        summary = LedgerService.compute_balance(store.id, "usd")

        assert LedgerService.heal_cached_balance(summary) is True
        assert SellerBalance.objects.filter(store=store).exists()


class TestBalanceSummary:
    def test_to_dict_renders_decimal_strings(self, db):
        store = StoreFactory()
        summary = BalanceSummary(
            store_id=store.id,
            currency="usd",
            available_balance=Decimal("-5"),
            pending_balance=Decimal("12.5"),
            as_of=timezone.now(),
        )

        assert summary.to_dict() == {
            "store_id": str(store.id),
            "currency": "usd",
            "available_balance": "-5.00",
            "pending_balance": "12.50",
            "amount_due": "5.00",
            "current_balance": "7.50",
        }


class TestQueries:
    def test_list_entries_newest_first(self, db):
        store = StoreFactory()
        credit_store(store, "1.00", "q:1")
        credit_store(store, "2.00", "q:2")
        credit_store(store, "3.00", "q:3")

        entries = LedgerService.list_entries(store.id, limit=2)

        assert [e.idempotency_key for e in entries] == ["q:3", "q:2"]

    def test_has_payout_entry(self, db):
        store = StoreFactory()
        credit_store(store, "200.00", "seed")
        payout = SellerPayoutFactory(store=store)

        assert LedgerService.has_payout_entry(payout.id) is False

        LedgerService.append_entry(
            make_params(
                store,
                "-150.00",
                f"payout:{payout.id}",
                entry_type=BalanceEntryType.PAYOUT,
                payout_id=payout.id,
            )
        )

        assert LedgerService.has_payout_entry(payout.id) is True
