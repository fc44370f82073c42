"""
Pytest fixtures shared by every escrow test package.

Provides in-memory stand-ins for the engine's external collaborators:
- gateway: PaymentGateway recording captures and refunds
- work_status: WorkStatusProvider with per-request progress and assignees
- mock_redis: Redis client behind DistributedLock

The collaborators are installed on EscrowService for every test and
removed afterwards.

Usage:
    def test_release_requires_completion(held_payment, work_status):
        work_status.statuses[held_payment.request_id] = WorkProgress.IN_PROGRESS
        ...
"""

from __future__ import annotations

import pytest

from escrow.services import EscrowService
from escrow.state_machines import WorkProgress


# =============================================================================
# Collaborator Fakes
# =============================================================================


class FakeGateway:
    """PaymentGateway that succeeds unless told to fail."""

    def __init__(self) -> None:
        self.captures: list[str] = []
        self.refunds: list[dict] = []
        self.refund_error: Exception | None = None
        # Called with the provider payment id while the refund is in flight
        self.on_refund = None

    def capture(self, order_ref: str) -> str:
        self.captures.append(order_ref)
        return f"pi_{order_ref}"

    def refund(self, provider_payment_id, amount_cents, idempotency_key=None):
        if self.on_refund is not None:
            self.on_refund(provider_payment_id)
        if self.refund_error is not None:
            raise self.refund_error
        self.refunds.append(
            {
                "provider_payment_id": provider_payment_id,
                "amount_cents": amount_cents,
                "idempotency_key": idempotency_key,
            }
        )
        return f"re_test_{len(self.refunds)}"


class FakeWorkStatusProvider:
    """WorkStatusProvider backed by plain dicts keyed on request_id."""

    def __init__(self) -> None:
        self.default_status = WorkProgress.COMPLETED
        self.statuses: dict = {}
        self.assignees: dict = {}
        self.failing: set = set()

    def get_status(self, request_id):
        return self.statuses.get(request_id, self.default_status)

    def get_assignees(self, request_id):
        if request_id in self.failing:
            raise RuntimeError(f"Assignee lookup failed for {request_id}")
        return self.assignees.get(request_id, [])


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def work_status():
    return FakeWorkStatusProvider()


@pytest.fixture(autouse=True)
def escrow_collaborators(gateway, work_status):
    """Install the fakes on EscrowService for the duration of a test."""
    EscrowService.set_gateway(gateway)
    EscrowService.set_work_status_provider(work_status)
    yield
    EscrowService.set_gateway(None)
    EscrowService.set_work_status_provider(None)


@pytest.fixture(autouse=True)
def mock_redis(mocker):
    """
    Mock Redis client for distributed locks.

    Locks are granted and released by default; tests change set/eval
    return values to simulate contention.
    """
    mock_client = mocker.MagicMock()
    mock_client.set.return_value = True
    mock_client.eval.return_value = 1
    mocker.patch("escrow.locks.get_redis_connection", return_value=mock_client)
    return mock_client


@pytest.fixture
def captured_signals():
    """
    Record the kwargs of escrow signals sent during a test.

    Returns a dict of signal name -> list of kwargs dicts.
    """
    from escrow import signals

    sent: dict[str, list[dict]] = {
        "payment_released": [],
        "distribution_executed": [],
        "payout_completed": [],
    }
    receivers = []
    for name in sent:

        def _receiver(sender, _name=name, **kwargs):
            kwargs.pop("signal", None)
            sent[_name].append(kwargs)

        getattr(signals, name).connect(_receiver, weak=False)
        receivers.append((getattr(signals, name), _receiver))

    yield sent

    for signal, receiver in receivers:
        signal.disconnect(receiver)
