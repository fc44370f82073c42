"""
Concurrency control utilities for escrow operations.

Row locks (select_for_update) inside transaction.atomic() serialize writes
to one wallet or payment. The two helpers here cover what row locks do not:

1. **DistributedLock**
   - Redis mutual exclusion across worker processes
   - Held around work that leaves the database transaction, such as a
     gateway refund call, or around a whole sweep so two beat-triggered
     runs never overlap
   - TTL releases the lock if the holder crashes

2. **check_version**
   - Optimistic concurrency for callers that read a record, let a human
     act on it, and write back later (payout approval from a back office)

Usage:
    from escrow.locks import DistributedLock, check_version

    with DistributedLock(f"escrow:refund:{payment.id}", ttl=60):
        gateway.refund(payment.provider_payment_id, amount_cents)

    with transaction.atomic():
        payout = check_version(PayoutRequest, payout_id, expected_version=2)
"""

from __future__ import annotations

import time
import uuid as uuid_module
from typing import TYPE_CHECKING, TypeVar

from django.db import models, transaction

from django_redis import get_redis_connection

from escrow.exceptions import LockAcquisitionError, NotFound, StaleRecordError

if TYPE_CHECKING:
    from typing import Any

    from redis import Redis

T = TypeVar("T", bound=models.Model)


# =============================================================================
# Distributed Locks
# =============================================================================


class DistributedLock:
    """
    Redis-based distributed lock with TTL and owner token.

    Example:
        try:
            with DistributedLock("escrow:auto-release-sweep", ttl=600, blocking=False):
                run_sweep()
        except LockAcquisitionError:
            logger.info("Sweep already running elsewhere")

    Args:
        key: Lock identifier (prefixed with "lock:")
        ttl: Seconds until the lock expires on its own
        blocking: If True, acquire() polls until the lock frees up
        timeout: Maximum wait in seconds when blocking
    """

    # Delete only if we still own the key
    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    POLL_INTERVAL = 0.05

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

        Raises:
            LockAcquisitionError: If the lock is held elsewhere (non-blocking)
                or could not be taken within the timeout (blocking)
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

        deadline = time.monotonic() + self.timeout
        while time.monotonic() < deadline:
            if self._try_acquire(redis):
                return True
            time.sleep(self.POLL_INTERVAL)

        self._token = None
        raise LockAcquisitionError(
            f"Failed to acquire lock '{self.key}' within {self.timeout}s",
            details={"key": self.key, "timeout": self.timeout},
        )

    def release(self) -> bool:
        """Release the lock if this instance owns it. Safe to call twice."""
        if self._token is None:
            return False

        result = self._get_redis().eval(self.RELEASE_SCRIPT, 1, self.key, self._token)
        self._token = None
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


# =============================================================================
# Optimistic Locking
# =============================================================================


def check_version(
    model_class: type[T],
    pk: Any,
    expected_version: int,
) -> T:
    """
    Lock a record for update, verifying it is still at ``expected_version``.

    Must run inside the caller's transaction; the row lock is held until
    that transaction ends.

    Raises:
        NotFound: If the record does not exist
        StaleRecordError: If the record moved past ``expected_version``
    """
    with transaction.atomic():
        instance = (
            model_class.objects.select_for_update()
            .filter(pk=pk, version=expected_version)
            .first()
        )
        if instance is not None:
            return instance

        model_name = model_class.__name__
        current = model_class.objects.filter(pk=pk).values_list("version", flat=True).first()
        if current is None:
            raise NotFound(
                f"{model_name} {pk} not found",
                error_code=f"{model_name.upper()}_NOT_FOUND",
                details={"pk": str(pk)},
            )

        raise StaleRecordError(
            f"{model_name} {pk} has been modified "
            f"(expected version {expected_version}, current {current})",
            details={
                "pk": str(pk),
                "expected_version": expected_version,
                "current_version": current,
            },
        )


__all__ = [
    "DistributedLock",
    "check_version",
]
