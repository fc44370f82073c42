"""
Tests for escrow concurrency helpers.

Covers DistributedLock (Redis mutual exclusion, mocked) and check_version
(optimistic locking against the database).
"""

import uuid

import pytest

from escrow.exceptions import LockAcquisitionError, NotFound, StaleRecordError
from escrow.locks import DistributedLock, check_version
from escrow.models import PayoutRequest
from escrow.tests.factories import PayoutRequestFactory


class TestDistributedLock:
    """Tests for DistributedLock class."""

    def test_acquire_success(self, mock_redis):
        """Should acquire lock when available."""
        lock = DistributedLock("escrow:test", ttl=30, blocking=False)

        assert lock.acquire() is True
        assert lock.is_held is True
        call_args = mock_redis.set.call_args
        assert call_args[0][0] == "lock:escrow:test"
        assert call_args[1]["nx"] is True
        assert call_args[1]["ex"] == 30

    def test_tokens_are_unique(self, mock_redis):
        lock1 = DistributedLock("escrow:one", blocking=False)
        lock2 = DistributedLock("escrow:two", blocking=False)

        lock1.acquire()
        lock2.acquire()

        assert lock1._token != lock2._token

    def test_non_blocking_raises_when_held(self, mock_redis):
        """Non-blocking mode should raise immediately if lock unavailable."""
        mock_redis.set.return_value = False

        lock = DistributedLock("escrow:test", blocking=False)

        with pytest.raises(LockAcquisitionError) as exc_info:
            lock.acquire()

        assert "already held" in str(exc_info.value)
        assert exc_info.value.details["key"] == "lock:escrow:test"
        assert lock.is_held is False

    def test_blocking_waits_and_acquires(self, mock_redis):
        """Blocking mode should poll until the lock frees up."""
        mock_redis.set.side_effect = [False, False, True]

        lock = DistributedLock("escrow:test", blocking=True, timeout=1.0)

        assert lock.acquire() is True
        assert mock_redis.set.call_count == 3

    def test_blocking_timeout_raises(self, mock_redis):
        mock_redis.set.return_value = False

        lock = DistributedLock("escrow:test", blocking=True, timeout=0.1)

        with pytest.raises(LockAcquisitionError) as exc_info:
            lock.acquire()

        assert exc_info.value.details["timeout"] == 0.1

    def test_release_runs_owner_script(self, mock_redis):
        lock = DistributedLock("escrow:test", blocking=False)
        lock.acquire()

        assert lock.release() is True
        assert lock.is_held is False
        mock_redis.eval.assert_called_once()

    def test_release_without_acquire_returns_false(self, mock_redis):
        lock = DistributedLock("escrow:test")

        assert lock.release() is False
        mock_redis.eval.assert_not_called()

    def test_release_not_owned_returns_false(self, mock_redis):
        mock_redis.eval.return_value = 0
        lock = DistributedLock("escrow:test", blocking=False)
        lock.acquire()

        assert lock.release() is False

    def test_context_manager_releases_on_exception(self, mock_redis):
        with pytest.raises(RuntimeError):
            with DistributedLock("escrow:test"):
                raise RuntimeError("boom")

        mock_redis.eval.assert_called_once()


@pytest.mark.django_db
class TestCheckVersion:
    """Tests for optimistic locking with check_version."""

    def test_returns_record_at_expected_version(self):
        payout = PayoutRequestFactory()

        locked = check_version(PayoutRequest, payout.id, expected_version=1)

        assert locked.id == payout.id

    def test_stale_version_raises(self):
        payout = PayoutRequestFactory()
        payout.approve(approved_by="ops-1")
        payout.save()

        with pytest.raises(StaleRecordError) as exc_info:
            check_version(PayoutRequest, payout.id, expected_version=1)

        assert exc_info.value.details["current_version"] == 2
        assert exc_info.value.details["expected_version"] == 1

    def test_missing_record_raises_not_found(self):
        with pytest.raises(NotFound) as exc_info:
            check_version(PayoutRequest, uuid.uuid4(), expected_version=1)

        assert exc_info.value.error_code == "PAYOUTREQUEST_NOT_FOUND"
