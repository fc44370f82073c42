"""
External collaborators consumed by the escrow engine.

Available Protocols:
    PaymentGateway: Executes captures and refunds at the payment provider
    WorkStatusProvider: Reports unit-of-work progress and its assignees

Both are injected at class level on the services (see
EscrowService.set_gateway / set_work_status_provider), so tests swap in
fakes and production wires the Stripe adapter and the host service's
provider.

Usage:
    from escrow.protocols import Assignee, WorkStatusProvider

    class RequestStatusProvider:
        def get_status(self, request_id):
            return ServiceRequest.objects.get(id=request_id).progress

        def get_assignees(self, request_id):
            return [Assignee(payee_id=str(a.user_id), role=a.role) for a in ...]
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from uuid import UUID

    from escrow.state_machines import WorkProgress


@dataclass(frozen=True)
class Assignee:
    """One payee bound to a unit of work, with their firm role if any."""

    payee_id: str
    role: str | None = None


@runtime_checkable
class PaymentGateway(Protocol):
    """Payment provider capability: capture and refund."""

    def capture(self, order_ref: str) -> str:
        """Capture the authorized order, returning the provider payment id."""
        ...

    def refund(
        self,
        provider_payment_id: str,
        amount_cents: int,
        idempotency_key: str | None = None,
    ) -> str:
        """Refund part or all of a payment, returning the provider refund id."""
        ...


@runtime_checkable
class WorkStatusProvider(Protocol):
    """Unit-of-work status as tracked by the host service."""

    def get_status(self, request_id: UUID) -> WorkProgress | str:
        """Current progress of the unit of work."""
        ...

    def get_assignees(self, request_id: UUID) -> list[Assignee]:
        """Payees bound to the unit of work."""
        ...
