"""
Distribution engine: multi-party splits of a completed payment.

A distribution is set up once the funds are released (template or custom
shares), optionally approved share by share, and executed when the payment
is COMPLETED. Execution is one transaction:

    1. credit the group wallet with amount - commission (RECEIVED)
    2. credit each payee the share total minus withholding (DISTRIBUTED),
       writing one TaxRecord per share
    3. debit the group wallet by the commission (COMMISSION_DEDUCTED)
    4. mark the distribution distributed

Any failure rolls back every step.

Usage:
    from escrow.services import DistributionService, ShareSpec

    DistributionService.setup_distribution(
        request_id,
        DistributionMode.CUSTOM,
        shares=[ShareSpec("pro-a", Decimal("60")), ShareSpec("pro-b", Decimal("40"))],
    )
    DistributionService.distribute(payment.id)
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import models, transaction
from django.db.models import Count, Q, Sum, Value
from django.db.models.functions import Coalesce
from django.utils import timezone

from core.exceptions import ValidationError
from core.services import BaseService

from escrow.constants import HUNDRED, PERCENTAGE_TOLERANCE
from escrow.exceptions import (
    AlreadyDistributed,
    InvalidTransition,
    MissingTemplate,
    NotFound,
    PercentageMismatch,
    Unauthorized,
)
from escrow.models import (
    Distribution,
    DistributionShare,
    DistributionTemplate,
    Payment,
)
from escrow.platform_config import get_provider
from escrow.services.tax_service import TaxService
from escrow.signals import distribution_executed, send_on_commit
from escrow.state_machines import (
    DistributionMode,
    PayeeType,
    PaymentStatus,
    WalletTransactionType,
)
from escrow.wallet.services import WalletLedger
from escrow.wallet.types import LedgerEntryMeta, percent_of, to_percentage

if TYPE_CHECKING:
    from collections.abc import Sequence


@dataclass(frozen=True)
class ShareSpec:
    """One requested share of a custom distribution."""

    payee_id: str
    percentage: Decimal | int | str
    contribution_hours: Decimal | None = None
    role: str | None = None


def validate_percentages(percentages: Sequence[Decimal]) -> Decimal:
    """
    Check that share percentages sum to 100 within PERCENTAGE_TOLERANCE.

    Returns:
        The total

    Raises:
        PercentageMismatch: If the total is off by more than the tolerance
    """
    total = sum(percentages, Decimal("0"))
    if abs(total - HUNDRED) > PERCENTAGE_TOLERANCE:
        raise PercentageMismatch(total)
    return total


def allocate(amount_cents: int, percentages: Sequence[Decimal]) -> list[int]:
    """
    Split ``amount_cents`` by percentage, to the cent.

    Each share is rounded half-up; the last share takes the remainder so
    the parts always add up to the whole.

    Example:
        allocate(8500, [Decimal("60"), Decimal("40")])  # [5100, 3400]
    """
    if not percentages:
        return []
    parts = [percent_of(amount_cents, pct) for pct in percentages[:-1]]
    parts.append(amount_cents - sum(parts))
    return parts


class DistributionService(BaseService):
    """
    Setup, approval and execution of multi-party distributions.

    The work status provider (for template-mode assignees) is shared with
    EscrowService.
    """

    # =========================================================================
    # Setup
    # =========================================================================

    @classmethod
    def setup_distribution(
        cls,
        request_id: uuid.UUID,
        mode: DistributionMode | str,
        shares: Sequence[ShareSpec] | None = None,
        requires_approval: bool = False,
        early_completion_bonus_cents: int = 0,
        quality_bonus_cents: int = 0,
        referral_bonus_cents: int = 0,
        commission_percent: Decimal | None = None,
    ) -> Distribution:
        """
        Create the split for a payment's proceeds.

        Template mode reads each assignee's role from the work status
        provider and takes the group's default percentage for it. Custom
        mode uses the given shares. A distribution that was set up but not
        executed yet is replaced, resetting all approvals.

        Raises:
            NotFound: If the request has no payment
            AlreadyDistributed: If the payment's distribution already ran
            MissingTemplate: If an assignee's role has no active template
            PercentageMismatch: If the shares do not sum to 100
            ValidationError: If shares are empty, duplicated or out of range
        """
        mode = DistributionMode(mode)
        payment = cls._get_payment(request_id=request_id)
        group_id = payment.payee_id

        if mode == DistributionMode.TEMPLATE:
            specs = cls._shares_from_templates(request_id, group_id)
        else:
            specs = list(shares or [])
        percentages = cls._validate_specs(specs)

        bonuses = (early_completion_bonus_cents, quality_bonus_cents, referral_bonus_cents)
        if any(bonus < 0 for bonus in bonuses):
            raise ValidationError("Bonuses cannot be negative", details={"bonuses": bonuses})

        policy = get_provider().get()
        rate = (
            to_percentage(commission_percent)
            if commission_percent is not None
            else policy.commission_percent_for(PayeeType.FIRM)
        )

        with transaction.atomic():
            payment = Payment.objects.select_for_update().get(id=payment.id)
            distribution = Distribution.objects.filter(payment=payment).first()
            if distribution is not None:
                if distribution.is_distributed:
                    raise AlreadyDistributed(
                        f"Payment {payment.id} was already distributed",
                        details={"distribution_id": str(distribution.id)},
                    )
                distribution.shares.all().delete()
            else:
                distribution = Distribution(payment=payment)

            distribution.group_id = group_id
            distribution.mode = mode
            distribution.requires_approval = requires_approval
            distribution.is_approved = not requires_approval
            distribution.approved_at = None if requires_approval else timezone.now()
            distribution.early_completion_bonus_cents = early_completion_bonus_cents
            distribution.quality_bonus_cents = quality_bonus_cents
            distribution.referral_bonus_cents = referral_bonus_cents
            distribution.bonus_pool_cents = sum(bonuses)
            cls._apply_amounts(distribution, payment.amount_cents, rate)
            distribution.save()

            base_parts = allocate(distribution.distributable_amount_cents, percentages)
            bonus_parts = allocate(distribution.bonus_pool_cents, percentages)
            DistributionShare.objects.bulk_create(
                [
                    DistributionShare(
                        distribution=distribution,
                        payee_id=str(spec.payee_id),
                        role=spec.role,
                        percentage=pct,
                        base_amount_cents=base,
                        bonus_amount_cents=bonus,
                        total_amount_cents=base + bonus,
                        contribution_hours=spec.contribution_hours,
                    )
                    for spec, pct, base, bonus in zip(
                        specs, percentages, base_parts, bonus_parts
                    )
                ]
            )

        cls.get_logger().info(
            "Distribution set up",
            extra={
                "distribution_id": str(distribution.id),
                "payment_id": str(payment.id),
                "mode": str(mode),
                "share_count": len(specs),
                "distributable_amount_cents": distribution.distributable_amount_cents,
                "requires_approval": requires_approval,
            },
        )
        return distribution

    @staticmethod
    def _apply_amounts(distribution: Distribution, amount_cents: int, rate: Decimal) -> None:
        commission = percent_of(amount_cents, rate)
        distribution.total_amount_cents = amount_cents
        distribution.commission_percent = rate
        distribution.platform_commission_cents = commission
        distribution.distributable_amount_cents = amount_cents - commission

    @staticmethod
    def _shares_from_templates(request_id: uuid.UUID, group_id: str) -> list[ShareSpec]:
        from escrow.services.escrow_service import EscrowService

        assignees = EscrowService.get_work_status_provider().get_assignees(request_id)
        templates = {
            template.role: template
            for template in DistributionTemplate.objects.filter(
                group_id=group_id, is_active=True
            )
        }

        specs = []
        for assignee in assignees:
            template = templates.get(assignee.role)
            if template is None:
                raise MissingTemplate(
                    f"No active template for role '{assignee.role}' in group {group_id}",
                    details={"payee_id": assignee.payee_id, "role": assignee.role},
                )
            specs.append(
                ShareSpec(
                    payee_id=assignee.payee_id,
                    percentage=template.default_percentage,
                    role=assignee.role,
                )
            )
        return specs

    @staticmethod
    def _validate_specs(specs: Sequence[ShareSpec]) -> list[Decimal]:
        if not specs:
            raise ValidationError("A distribution needs at least one share")

        payee_ids = [str(spec.payee_id) for spec in specs]
        if len(set(payee_ids)) != len(payee_ids):
            raise ValidationError(
                "Each payee may hold only one share",
                details={"payee_ids": payee_ids},
            )

        percentages = [to_percentage(spec.percentage) for spec in specs]
        for payee_id, pct in zip(payee_ids, percentages):
            if pct <= 0 or pct > HUNDRED:
                raise ValidationError(
                    "Share percentages must be between 0 and 100",
                    details={"payee_id": payee_id, "percentage": str(pct)},
                )
        validate_percentages(percentages)
        return percentages

    # =========================================================================
    # Approval
    # =========================================================================

    @classmethod
    def approve_share(
        cls,
        distribution_id: uuid.UUID,
        payee_id: str,
        signature: str | None = None,
        share_id: uuid.UUID | None = None,
    ) -> Distribution:
        """
        Record a payee's approval of their own share.

        The distribution becomes approved once no share is outstanding.
        Approving an already approved share changes nothing.

        Args:
            distribution_id: Distribution to approve
            payee_id: The approving payee
            signature: Approval signature; defaults to ``auto-<timestamp>``
            share_id: Share being approved; must belong to ``payee_id``

        Raises:
            NotFound: If the distribution does not exist
            Unauthorized: If the payee has no share, or ``share_id`` is
                someone else's share
            AlreadyDistributed: If the distribution already ran
        """
        with transaction.atomic():
            distribution = cls._lock_distribution(id=distribution_id)
            if distribution.is_distributed:
                raise AlreadyDistributed(
                    f"Distribution {distribution.id} was already distributed",
                    details={"distribution_id": str(distribution.id)},
                )

            share = distribution.shares.filter(payee_id=str(payee_id)).first()
            if share is None or (share_id is not None and share.id != share_id):
                raise Unauthorized(
                    "Payees can only approve their own share",
                    details={
                        "distribution_id": str(distribution.id),
                        "payee_id": str(payee_id),
                    },
                )

            if share.approved:
                return distribution

            now = timezone.now()
            share.approved = True
            share.approved_at = now
            share.signature = signature or f"auto-{int(now.timestamp())}"
            share.save(update_fields=["approved", "approved_at", "signature", "updated_at"])

            if not distribution.shares.filter(approved=False).exists():
                distribution.is_approved = True
                distribution.approved_at = now
                distribution.save(update_fields=["is_approved", "approved_at", "updated_at"])

        cls.get_logger().info(
            "Distribution share approved",
            extra={
                "distribution_id": str(distribution.id),
                "payee_id": str(payee_id),
                "fully_approved": distribution.is_approved,
            },
        )
        return distribution

    # =========================================================================
    # Execution
    # =========================================================================

    @classmethod
    def distribute(
        cls,
        payment_id: uuid.UUID,
        commission_percent: Decimal | None = None,
        withholding_percent: Decimal | None = None,
    ) -> Distribution:
        """
        Execute a distribution.

        Args:
            payment_id: Payment whose distribution runs
            commission_percent: Override of the commission fixed at setup;
                share amounts are recomputed with it
            withholding_percent: Override of the withholding rate

        Raises:
            NotFound: If the payment or its distribution does not exist
            InvalidTransition: If the payment is not COMPLETED or the
                distribution still awaits approval
            AlreadyDistributed: If the distribution already ran
            InsufficientFunds: If the group wallet cannot cover the commission
        """
        policy = get_provider().get()
        rate = to_percentage(
            withholding_percent
            if withholding_percent is not None
            else policy.tax_withholding_percent
        )

        with transaction.atomic():
            payment = cls._get_payment(id=payment_id, lock=True)
            if payment.status != PaymentStatus.COMPLETED:
                raise InvalidTransition(
                    f"Cannot distribute payment in '{payment.status}' state",
                    details={"payment_id": str(payment.id), "current_state": payment.status},
                )

            distribution = cls._lock_distribution(payment=payment)
            if distribution.is_distributed:
                raise AlreadyDistributed(
                    f"Distribution {distribution.id} was already distributed",
                    details={"distribution_id": str(distribution.id)},
                )
            if distribution.requires_approval and not distribution.is_approved:
                raise InvalidTransition(
                    "Distribution is waiting for share approvals",
                    error_code="DISTRIBUTION_NOT_APPROVED",
                    details={"distribution_id": str(distribution.id)},
                )

            shares = list(distribution.shares.order_by("created_at", "id"))
            if commission_percent is not None:
                cls._reprice(distribution, shares, to_percentage(commission_percent))
                # Payment keeps the release-time snapshot in sync with the split
                payment.platform_fee_cents = distribution.platform_commission_cents
                payment.released_amount_cents = distribution.distributable_amount_cents
                payment.save(
                    update_fields=["platform_fee_cents", "released_amount_cents", "updated_at"]
                )

            group_id = distribution.group_id
            wallets = WalletLedger.lock_wallets(
                [(PayeeType.FIRM, group_id)]
                + [(PayeeType.PROFESSIONAL, share.payee_id) for share in shares]
            )
            reference = {"reference_type": "distribution", "reference_id": str(distribution.id)}

            if distribution.distributable_amount_cents > 0:
                WalletLedger.credit(
                    group_id,
                    distribution.distributable_amount_cents,
                    LedgerEntryMeta(
                        description=f"Payment {payment.id} received for distribution",
                        idempotency_key=f"distribution:{distribution.id}:received",
                        **reference,
                    ),
                    owner_type=PayeeType.FIRM,
                    transaction_type=WalletTransactionType.RECEIVED,
                )

            for share in shares:
                withholding = TaxService.compute_withholding(share.total_amount_cents, rate)
                share.tax_withheld_cents = withholding.tax_amount_cents
                share.net_amount_cents = withholding.net_amount_cents
                share.save(update_fields=["tax_withheld_cents", "net_amount_cents", "updated_at"])

                if withholding.net_amount_cents > 0:
                    WalletLedger.credit(
                        share.payee_id,
                        withholding.net_amount_cents,
                        LedgerEntryMeta(
                            description=f"Share of payment {payment.id}",
                            tax_withheld_cents=withholding.tax_amount_cents,
                            idempotency_key=f"distribution:{distribution.id}:share:{share.id}",
                            **reference,
                        ),
                        owner_type=PayeeType.PROFESSIONAL,
                        transaction_type=WalletTransactionType.DISTRIBUTED,
                    )
                TaxService.record(
                    share.payee_id,
                    payment,
                    withholding,
                    share=share,
                    tax_identifier=wallets[(PayeeType.PROFESSIONAL, share.payee_id)].tax_identifier,
                )

            if distribution.platform_commission_cents > 0:
                WalletLedger.debit(
                    group_id,
                    distribution.platform_commission_cents,
                    LedgerEntryMeta(
                        description=f"Platform commission on payment {payment.id}",
                        idempotency_key=f"distribution:{distribution.id}:commission",
                        **reference,
                    ),
                    owner_type=PayeeType.FIRM,
                    transaction_type=WalletTransactionType.COMMISSION_DEDUCTED,
                )

            distribution.is_distributed = True
            distribution.distributed_at = timezone.now()
            distribution.save()

            send_on_commit(distribution_executed, sender=Distribution, distribution=distribution)

        cls.get_logger().info(
            "Distribution executed",
            extra={
                "distribution_id": str(distribution.id),
                "payment_id": str(payment.id),
                "share_count": len(shares),
                "platform_commission_cents": distribution.platform_commission_cents,
                "withholding_percent": str(rate),
            },
        )
        return distribution

    @classmethod
    def _reprice(
        cls,
        distribution: Distribution,
        shares: list[DistributionShare],
        rate: Decimal,
    ) -> None:
        cls._apply_amounts(distribution, distribution.total_amount_cents, rate)
        percentages = [share.percentage for share in shares]
        base_parts = allocate(distribution.distributable_amount_cents, percentages)
        bonus_parts = allocate(distribution.bonus_pool_cents, percentages)
        for share, base, bonus in zip(shares, base_parts, bonus_parts):
            share.base_amount_cents = base
            share.bonus_amount_cents = bonus
            share.total_amount_cents = base + bonus
            share.save(
                update_fields=[
                    "base_amount_cents",
                    "bonus_amount_cents",
                    "total_amount_cents",
                    "updated_at",
                ]
            )

    # =========================================================================
    # Templates
    # =========================================================================

    @classmethod
    def upsert_template(
        cls,
        group_id: str,
        role: str,
        default_percentage: Decimal | int | str,
        min_percentage: Decimal | int | str = 0,
        max_percentage: Decimal | int | str = 100,
        is_active: bool = True,
    ) -> DistributionTemplate:
        """
        Create or update the group's template for a role.

        Raises:
            ValidationError: Unless 0 <= min <= default <= max <= 100
        """
        template = DistributionTemplate.objects.filter(group_id=group_id, role=role).first()
        if template is None:
            template = DistributionTemplate(group_id=group_id, role=role)
        template.default_percentage = to_percentage(default_percentage)
        template.min_percentage = to_percentage(min_percentage)
        template.max_percentage = to_percentage(max_percentage)
        template.is_active = is_active

        try:
            template.clean()
        except DjangoValidationError as e:
            raise ValidationError(
                "Invalid distribution template",
                details={"errors": e.messages, "role": role},
            )
        template.save()
        return template

    @staticmethod
    def list_templates(group_id: str, include_inactive: bool = False):
        templates = DistributionTemplate.objects.filter(group_id=group_id)
        if not include_inactive:
            templates = templates.filter(is_active=True)
        return templates.order_by("role")

    @staticmethod
    def deactivate_template(group_id: str, role: str) -> DistributionTemplate:
        updated = DistributionTemplate.objects.filter(group_id=group_id, role=role).first()
        if updated is None:
            raise NotFound(
                f"No template for role '{role}' in group {group_id}",
                error_code="TEMPLATE_NOT_FOUND",
                details={"group_id": group_id, "role": role},
            )
        updated.is_active = False
        updated.save(update_fields=["is_active", "updated_at"])
        return updated

    # =========================================================================
    # Reads
    # =========================================================================

    @staticmethod
    def get_distribution_stats(group_id: str) -> dict:
        """Counts and total amount of a group's distributions."""
        return Distribution.objects.filter(group_id=group_id).aggregate(
            total=Count("id"),
            approved=Count("id", filter=Q(is_approved=True)),
            distributed=Count("id", filter=Q(is_distributed=True)),
            pending=Count("id", filter=Q(is_distributed=False)),
            total_amount_cents=Coalesce(
                Sum("total_amount_cents"),
                Value(0),
                output_field=models.BigIntegerField(),
            ),
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _get_payment(lock: bool = False, **lookup) -> Payment:
        queryset = Payment.objects.select_for_update() if lock else Payment.objects
        try:
            return queryset.get(**lookup)
        except Payment.DoesNotExist:
            raise NotFound(
                "Payment not found",
                error_code="PAYMENT_NOT_FOUND",
                details={key: str(value) for key, value in lookup.items()},
            )

    @staticmethod
    def _lock_distribution(**lookup) -> Distribution:
        try:
            return Distribution.objects.select_for_update().get(**lookup)
        except Distribution.DoesNotExist:
            raise NotFound(
                "Distribution not found",
                error_code="DISTRIBUTION_NOT_FOUND",
                details={key: str(value) for key, value in lookup.items()},
            )
