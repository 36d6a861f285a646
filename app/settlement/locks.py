"""
Distributed locking for settlement operations.

Row locks serialize ledger writes inside one database transaction, but
payouts and refunds span a gateway call that must happen outside any
transaction. A Redis lock keyed by store (payouts, onboarding) or order
(refunds) keeps two workers from running the same multi-step operation
at once.

Usage:
    from settlement.locks import DistributedLock, store_payout_key

    with DistributedLock(store_payout_key(store_id), ttl=120, timeout=10.0):
        execute_payout(store_id)
"""

from __future__ import annotations

import time
import uuid as uuid_module
from typing import TYPE_CHECKING

from django_redis import get_redis_connection

from settlement.exceptions import LockAcquisitionError

if TYPE_CHECKING:
    from typing import Any

    from redis import Redis


RECONCILIATION_RUN_KEY = "reconciliation:run"


def store_payout_key(store_id) -> str:
    """Key shared by scheduled and manual payouts for one store."""
    return f"payout:store:{store_id}"


def store_connect_key(store_id) -> str:
    return f"connect:store:{store_id}"


def order_refund_key(order_id) -> str:
    return f"refund:order:{order_id}"


class DistributedLock:
    """
    Redis lock with a TTL and an ownership token.

    The TTL bounds how long a crashed worker can block a store or order.
    Release and extend go through Lua scripts that compare the stored token,
    so a worker whose lock expired cannot drop a lock now held by another.

    In blocking mode ``acquire`` polls every ``retry_interval`` seconds until
    ``timeout`` elapses; in non-blocking mode it makes a single attempt.
    Either way failure raises LockAcquisitionError, which services turn into
    a typed ``ServiceResult`` failure.

    Args:
        key: Lock name without the "lock:" prefix (see the ``*_key`` helpers)
        ttl: Seconds before Redis expires the lock
        blocking: Wait for the lock instead of failing immediately
        timeout: Maximum wait in seconds (blocking mode only)
        retry_interval: Pause between attempts in blocking mode
    """

    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    end
    return 0
    """

    EXTEND_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("expire", KEYS[1], ARGV[2])
    end
    return 0
    """

    def __init__(
        self,
        key: str,
        ttl: int = 30,
        blocking: bool = True,
        timeout: float = 10.0,
        retry_interval: float = 0.05,
    ) -> None:
        self.key = f"lock:{key}"
        self.ttl = ttl
        self.blocking = blocking
        self.timeout = timeout
        self.retry_interval = retry_interval
        self._token: str | None = None
        self._connection: Redis | None = None

    @property
    def connection(self) -> Redis:
        if self._connection is None:
            self._connection = get_redis_connection("default")
        return self._connection

    @property
    def is_held(self) -> bool:
        return self._token is not None

    def acquire(self) -> bool:
        """
        Take the lock or raise.

        Raises:
            LockAcquisitionError: The lock is held elsewhere (non-blocking) or
                was not freed within ``timeout`` (blocking)
        """
        token = str(uuid_module.uuid4())
        deadline = time.monotonic() + self.timeout

        while True:
            if self.connection.set(self.key, token, nx=True, ex=self.ttl):
                self._token = token
                return True
            if not self.blocking:
                raise LockAcquisitionError(
                    f"Lock '{self.key}' is already held",
                    details={"key": self.key},
                )
            if time.monotonic() >= deadline:
                raise LockAcquisitionError(
                    f"Failed to acquire lock '{self.key}' within {self.timeout}s",
                    details={"key": self.key, "timeout": self.timeout},
                )
            time.sleep(self.retry_interval)

    def release(self) -> bool:
        """Drop the lock if this instance still owns it. Idempotent."""
        token, self._token = self._token, None
        if token is None:
            return False
        return bool(self.connection.eval(self.RELEASE_SCRIPT, 1, self.key, token))

    def extend(self, additional_ttl: int | None = None) -> bool:
        """Reset the remaining TTL (to ``additional_ttl`` or the original TTL)."""
        if self._token is None:
            return False
        ttl = additional_ttl or self.ttl
        return bool(
            self.connection.eval(self.EXTEND_SCRIPT, 1, self.key, self._token, ttl)
        )

    def __enter__(self) -> DistributedLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> bool:
        self.release()
        return False


__all__ = [
    "DistributedLock",
    "RECONCILIATION_RUN_KEY",
    "order_refund_key",
    "store_connect_key",
    "store_payout_key",
]
