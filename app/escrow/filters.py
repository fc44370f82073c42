"""
Role-scoped query predicates for escrow records.

Each scope is a small immutable value that builds Django Q objects for the
records its holder may see. The request layer picks the scope from the
authenticated user and passes it to list queries:

    scope = scope_for(user.role, str(user.id), firm_ids=user_firm_ids)
    Payment.objects.filter(scope.payment_filter())

Unknown roles get NoAccessScope, whose predicates match nothing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

from django.db.models import Q

# Matches no rows on any model with a primary key
NOTHING = Q(pk__in=[])


@dataclass(frozen=True)
class SuperAdminScope:
    def payment_filter(self) -> Q:
        return Q()

    def payout_filter(self) -> Q:
        return Q()

    def wallet_transaction_filter(self) -> Q:
        return Q()

    def can_access(self, payment) -> bool:
        return True


@dataclass(frozen=True)
class AdminScope:
    def payment_filter(self) -> Q:
        return Q()

    def payout_filter(self) -> Q:
        return Q()

    def wallet_transaction_filter(self) -> Q:
        return Q()

    def can_access(self, payment) -> bool:
        return True


@dataclass(frozen=True)
class ClientScope:
    """Clients see their own payments and have no wallet."""

    client_id: str

    def payment_filter(self) -> Q:
        return Q(client_id=self.client_id)

    def payout_filter(self) -> Q:
        return NOTHING

    def wallet_transaction_filter(self) -> Q:
        return NOTHING

    def can_access(self, payment) -> bool:
        return payment.client_id == self.client_id


@dataclass(frozen=True)
class ProfessionalScope:
    """
    Professionals see payments owed to them or to their firms, and the
    wallets they or those firms own.
    """

    professional_id: str
    firm_ids: tuple[str, ...] = field(default_factory=tuple)

    @property
    def owner_ids(self) -> tuple[str, ...]:
        return (self.professional_id, *self.firm_ids)

    def payment_filter(self) -> Q:
        return Q(payee_id__in=self.owner_ids) | Q(
            distribution__shares__payee_id=self.professional_id
        )

    def payout_filter(self) -> Q:
        return Q(wallet__owner_id__in=self.owner_ids)

    def wallet_transaction_filter(self) -> Q:
        return Q(wallet__owner_id__in=self.owner_ids)

    def can_access(self, payment) -> bool:
        if payment.payee_id in self.owner_ids:
            return True
        distribution = getattr(payment, "distribution", None)
        return bool(
            distribution is not None
            and distribution.shares.filter(payee_id=self.professional_id).exists()
        )


@dataclass(frozen=True)
class NoAccessScope:
    def payment_filter(self) -> Q:
        return NOTHING

    def payout_filter(self) -> Q:
        return NOTHING

    def wallet_transaction_filter(self) -> Q:
        return NOTHING

    def can_access(self, payment) -> bool:
        return False


AccessScope = Union[
    SuperAdminScope,
    AdminScope,
    ClientScope,
    ProfessionalScope,
    NoAccessScope,
]


def scope_for(role: str, user_id: str, firm_ids: tuple[str, ...] = ()) -> AccessScope:
    """Build the scope for a user role (case-insensitive)."""
    role = (role or "").lower()
    if role == "super_admin":
        return SuperAdminScope()
    if role == "admin":
        return AdminScope()
    if role == "client":
        return ClientScope(client_id=str(user_id))
    if role in ("professional", "ca"):
        return ProfessionalScope(
            professional_id=str(user_id),
            firm_ids=tuple(str(firm_id) for firm_id in firm_ids),
        )
    return NoAccessScope()
