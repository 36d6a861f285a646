"""
Tests for distributed locking utilities.

DistributedLock guards the multi-step payout and refund operations that
span a gateway call and cannot rely on database row locks alone.
"""

import pytest

from settlement.exceptions import LockAcquisitionError
from settlement.locks import (
    RECONCILIATION_RUN_KEY,
    DistributedLock,
    order_refund_key,
    store_connect_key,
    store_payout_key,
)


class TestDistributedLock:
    """Tests for DistributedLock class."""

    def test_acquire_success(self, mock_redis):
        """Should acquire lock when available."""
        lock = DistributedLock("payout:store:1", ttl=120, blocking=False)

        assert lock.acquire() is True
        assert lock.is_held is True
        call_args = mock_redis.set.call_args
        assert call_args[0][0] == "lock:payout:store:1"
        assert call_args[1]["nx"] is True
        assert call_args[1]["ex"] == 120

    def test_tokens_are_unique(self, mock_redis):
        lock1 = DistributedLock("refund:order:1", blocking=False)
        lock2 = DistributedLock("refund:order:2", blocking=False)

        lock1.acquire()
        lock2.acquire()

        assert lock1._token != lock2._token

    def test_non_blocking_raises_when_held(self, mock_redis):
        """Non-blocking mode should raise immediately if lock unavailable."""
        mock_redis.set.return_value = False

        lock = DistributedLock("reconciliation:run", blocking=False)

        with pytest.raises(LockAcquisitionError) as exc_info:
            lock.acquire()

        assert "already held" in str(exc_info.value)
        assert exc_info.value.details["key"] == "lock:reconciliation:run"
        assert exc_info.value.error_code == "LOCK_ACQUISITION_FAILED"
        assert lock.is_held is False

    def test_blocking_waits_and_acquires(self, mock_redis):
        """Blocking mode should wait and eventually acquire."""
        mock_redis.set.side_effect = [False, False, True]

        lock = DistributedLock("payout:store:1", blocking=True, timeout=1.0)

        assert lock.acquire() is True
        assert mock_redis.set.call_count == 3

    def test_blocking_timeout_raises(self, mock_redis):
        mock_redis.set.return_value = False

        lock = DistributedLock("payout:store:1", blocking=True, timeout=0.1)

        with pytest.raises(LockAcquisitionError) as exc_info:
            lock.acquire()

        assert "within 0.1s" in str(exc_info.value)
        assert exc_info.value.details["timeout"] == 0.1

    def test_release_only_if_owned(self, mock_redis):
        """The release script returns 0 when another token holds the key."""
        mock_redis.eval.return_value = 0

        lock = DistributedLock("payout:store:1", blocking=False)
        lock.acquire()

        assert lock.release() is False
        assert lock.is_held is False

    def test_release_without_acquire_returns_false(self, mock_redis):
        lock = DistributedLock("payout:store:1", blocking=False)

        assert lock.release() is False
        mock_redis.eval.assert_not_called()

    def test_context_manager_releases_on_exception(self, mock_redis):
        with pytest.raises(ValueError, match="boom"):
            with DistributedLock("refund:order:1"):
                raise ValueError("boom")

        mock_redis.eval.assert_called_once()

    def test_extend_with_custom_ttl(self, mock_redis):
        lock = DistributedLock("payout:store:1", ttl=30, blocking=False)
        lock.acquire()

        assert lock.extend(additional_ttl=60) is True
        # eval(EXTEND_SCRIPT, 1, key, token, ttl)
        assert mock_redis.eval.call_args[0][4] == 60

    def test_extend_without_lock_returns_false(self, mock_redis):
        lock = DistributedLock("payout:store:1", blocking=False)

        assert lock.extend() is False
        mock_redis.eval.assert_not_called()

    def test_blocking_sleeps_retry_interval_between_attempts(self, mock_redis, mocker):
        mock_redis.set.side_effect = [False, True]
        sleep = mocker.patch("settlement.locks.time.sleep")

        lock = DistributedLock("payout:store:1", retry_interval=0.2)
        lock.acquire()

        sleep.assert_called_once_with(0.2)


class TestLockKeys:
    """Lock names used by settlement services."""

    def test_payout_key_is_per_store(self):
        assert store_payout_key("abc") == "payout:store:abc"

    def test_connect_key_is_per_store(self):
        assert store_connect_key("abc") == "connect:store:abc"

    def test_refund_key_is_per_order(self):
        assert order_refund_key(42) == "refund:order:42"

    def test_reconciliation_key_is_global(self, mock_redis):
        DistributedLock(RECONCILIATION_RUN_KEY, blocking=False).acquire()

        assert mock_redis.set.call_args[0][0] == "lock:reconciliation:run"
