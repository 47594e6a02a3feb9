"""
Redis-based distributed locking.

Row level races in the booking and payout flows are handled in the
database (compare-and-set transitions and conditional updates). The
DistributedLock covers the coarser case where a whole job must not run
twice at once, such as a reconciliation pass started by two beat
workers.

Usage:
    from payments.locks import DistributedLock

    with DistributedLock("reconciliation:run", ttl=3600, timeout=5.0):
        ...
"""

from __future__ import annotations

import time
import uuid as uuid_module
from typing import TYPE_CHECKING

from django_redis import get_redis_connection

from payments.exceptions import LockAcquisitionError

if TYPE_CHECKING:
    from typing import Any

    from redis import Redis


class DistributedLock:
    """
    Redis lock with TTL and token ownership.

    The key is set with NX and an expiry, so a crashed holder cannot
    block other workers for longer than ``ttl``. Release and extend
    compare the stored token first, so a holder whose lock already
    expired never deletes someone else's lock.

    Args:
        key: Lock identifier (stored with a "lock:" prefix)
        ttl: Lock TTL in seconds
        blocking: If True, acquire() polls until ``timeout`` elapses
        timeout: Maximum wait time in seconds (only if blocking=True)

    Raises:
        LockAcquisitionError: From acquire() when the lock is held elsewhere
    """

    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    EXTEND_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("expire", KEYS[1], ARGV[2])
    else
        return 0
    end
    """

    POLL_INTERVAL_SECONDS = 0.05

    def __init__(
        self,
        key: str,
        ttl: int = 30,
        blocking: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.key = f"lock:{key}"
        self.ttl = ttl
        self.blocking = blocking
        self.timeout = timeout
        self._token: str | None = None
        self._redis: Redis | None = None

    def _get_redis(self) -> Redis:
        if self._redis is None:
            self._redis = get_redis_connection("default")
        return self._redis

    def _try_acquire(self, redis: Redis) -> bool:
        return bool(redis.set(self.key, self._token, nx=True, ex=self.ttl))

    def acquire(self) -> bool:
        """
        Acquire the lock or raise.

        Returns:
            True once the lock is held

        Raises:
            LockAcquisitionError: Lock held elsewhere (non-blocking) or
                not released within the timeout (blocking)
        """
        self._token = str(uuid_module.uuid4())
        redis = self._get_redis()

        if not self.blocking:
            if self._try_acquire(redis):
                return True
            self._token = None
            raise LockAcquisitionError(
                f"Lock '{self.key}' is already held",
                details={"key": self.key},
            )

        deadline = time.time() + self.timeout
        while time.time() < deadline:
            if self._try_acquire(redis):
                return True
            time.sleep(self.POLL_INTERVAL_SECONDS)

        self._token = None
        raise LockAcquisitionError(
            f"Failed to acquire lock '{self.key}' within {self.timeout}s",
            details={"key": self.key, "timeout": self.timeout},
        )

    def release(self) -> bool:
        """
        Release the lock if this instance holds it.

        Safe to call more than once.

        Returns:
            True if the key was deleted
        """
        if self._token is None:
            return False

        result = self._get_redis().eval(self.RELEASE_SCRIPT, 1, self.key, self._token)
        self._token = None
        return bool(result)

    def extend(self, ttl: int | None = None) -> bool:
        """
        Reset the remaining TTL (not added to it) while still holding the lock.

        Returns:
            True if extended, False if the lock is no longer ours
        """
        if self._token is None:
            return False

        result = self._get_redis().eval(
            self.EXTEND_SCRIPT, 1, self.key, self._token, ttl or self.ttl
        )
        return bool(result)

    @property
    def is_held(self) -> bool:
        return self._token is not None

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
]
