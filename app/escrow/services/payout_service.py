"""
Payout service for withdrawals from payee wallets.

Lifecycle: REQUESTED -> APPROVED -> PROCESSING -> COMPLETED, with REJECTED
reachable from REQUESTED or APPROVED.

Money moves exactly once. A request only reserves funds (pending payouts);
the balance is debited in process_payout, which claims the request by
moving it from APPROVED to PROCESSING under a row lock in the same
transaction as the debit. A second processor sees PROCESSING or COMPLETED
and backs off.

All operations return ServiceResult; expected failures (validation, wrong
state, insufficient funds) come back as failures with an error_code.

Usage:
    from escrow.services import PayoutDestination, PayoutService

    result = PayoutService.request_payout(
        payee_id,
        50000,
        PayoutDestination(method=PayoutMethod.UPI, upi_id="pro@okbank"),
    )
    if result.success:
        PayoutService.approve_payout(result.data.id, approved_by="ops-1")
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.core.paginator import Paginator

from core.exceptions import BaseApplicationError
from core.services import BaseService, ServiceResult

from escrow.exceptions import InsufficientFunds, PayoutValidationError
from escrow.locks import check_version
from escrow.models import PayoutRequest
from escrow.platform_config import get_provider
from escrow.signals import payout_completed, send_on_commit
from escrow.state_machines import PayeeType, PayoutMethod, PayoutRequestStatus
from escrow.wallet.models import WalletBalance
from escrow.wallet.services import WalletLedger
from escrow.wallet.types import LedgerEntryMeta

if TYPE_CHECKING:
    from django.core.paginator import Page

    from escrow.filters import AccessScope


BANK_METHODS = (
    PayoutMethod.BANK_TRANSFER,
    PayoutMethod.NEFT,
    PayoutMethod.RTGS,
    PayoutMethod.IMPS,
)


@dataclass(frozen=True)
class PayoutDestination:
    """Where a payout is sent."""

    method: PayoutMethod | str
    account_holder_name: str = ""
    account_number: str = ""
    ifsc_code: str = ""
    bank_name: str = ""
    upi_id: str = ""

    def validate(self) -> dict[str, list[str]]:
        """Field errors for this destination; empty when valid."""
        errors: dict[str, list[str]] = {}
        if self.method not in PayoutMethod.values:
            errors["method"] = [f"Unknown payout method '{self.method}'."]
        elif self.method == PayoutMethod.UPI:
            if not self.upi_id:
                errors["upi_id"] = ["This field is required."]
        elif self.method in BANK_METHODS:
            for name in ("account_holder_name", "account_number", "ifsc_code", "bank_name"):
                if not getattr(self, name):
                    errors[name] = ["This field is required."]
        return errors


class PayoutService(BaseService):
    """Service for payout requests against payee wallets."""

    @staticmethod
    def _validate_request(amount_cents: int, destination: PayoutDestination) -> None:
        minimum = get_provider().get().min_payout_amount_cents
        if amount_cents < minimum:
            raise PayoutValidationError(
                f"Minimum payout is {minimum} cents",
                errors={"amount_cents": [f"Must be at least {minimum}."]},
            )

        errors = destination.validate()
        if errors:
            raise PayoutValidationError("Payout destination is incomplete", errors=errors)

    @classmethod
    def request_payout(
        cls,
        payee_id: str,
        amount_cents: int,
        destination: PayoutDestination,
        owner_type: PayeeType | str = PayeeType.PROFESSIONAL,
        notes: str = "",
    ) -> ServiceResult[PayoutRequest]:
        """
        Ask for a withdrawal and reserve the funds.

        Fails with PAYOUT_VALIDATION_ERROR for amounts under the minimum or
        incomplete destination details, and INSUFFICIENT_FUNDS when the
        amount exceeds balance minus pending payouts.
        """
        try:
            cls._validate_request(amount_cents, destination)
            with cls.atomic():
                wallet = WalletLedger.get_or_create_wallet(payee_id, owner_type)
                payout = PayoutRequest.objects.create(
                    wallet=wallet,
                    amount_cents=amount_cents,
                    method=destination.method,
                    account_holder_name=destination.account_holder_name,
                    account_number=destination.account_number,
                    ifsc_code=destination.ifsc_code,
                    bank_name=destination.bank_name,
                    upi_id=destination.upi_id,
                    notes=notes,
                )
                WalletLedger.reserve_payout(
                    wallet,
                    amount_cents,
                    LedgerEntryMeta(
                        reference_type="payout_request",
                        reference_id=str(payout.id),
                        description="Withdrawal requested",
                        idempotency_key=f"payout:{payout.id}:requested",
                    ),
                )
        except (PayoutValidationError, InsufficientFunds) as e:
            return cls.handle_exception(e, "Payout request rejected", log_level=logging.INFO)

        cls.get_logger().info(
            "Payout requested",
            extra={
                "payout_id": str(payout.id),
                "payee_id": str(payee_id),
                "amount_cents": amount_cents,
                "method": str(destination.method),
            },
        )
        return ServiceResult.success(payout)

    @classmethod
    def approve_payout(
        cls,
        payout_id: uuid.UUID,
        approved_by: str,
        expected_version: int | None = None,
    ) -> ServiceResult[PayoutRequest]:
        """
        Approve a REQUESTED payout whose amount the balance still covers.

        ``expected_version`` rejects approvals made against a stale read.
        """
        try:
            with cls.atomic():
                payout = cls._lock(payout_id, expected_version)
                if payout is None:
                    return cls._not_found(payout_id)
                if payout.status != PayoutRequestStatus.REQUESTED:
                    return cls._invalid_state(payout, "approved")

                wallet = WalletBalance.objects.select_for_update().get(pk=payout.wallet_id)
                if payout.amount_cents > wallet.balance_cents:
                    return ServiceResult.failure(
                        "Wallet balance no longer covers this payout",
                        error_code="INSUFFICIENT_FUNDS",
                    )

                payout.approve(approved_by=approved_by)
                payout.save()
        except BaseApplicationError as e:
            return cls.handle_exception(e, "Payout approval failed", log_level=logging.WARNING)

        cls.get_logger().info(
            "Payout approved",
            extra={"payout_id": str(payout.id), "approved_by": approved_by},
        )
        return ServiceResult.success(payout)

    @classmethod
    def process_payout(
        cls,
        payout_id: uuid.UUID,
        transaction_reference: str | None = None,
    ) -> ServiceResult[PayoutRequest]:
        """
        Pay out an APPROVED request.

        Claims the request (APPROVED -> PROCESSING), debits the wallet once,
        clears the reservation and completes the request, all in one
        transaction. Concurrent callers for the same request get an
        INVALID_STATE failure.
        """
        try:
            with cls.atomic():
                payout = cls._lock(payout_id)
                if payout is None:
                    return cls._not_found(payout_id)
                if payout.status != PayoutRequestStatus.APPROVED:
                    return cls._invalid_state(payout, "processed")

                payout.start_processing()
                payout.save()

                WalletLedger.complete_withdrawal(
                    payout.wallet,
                    payout.amount_cents,
                    LedgerEntryMeta(
                        reference_type="payout_request",
                        reference_id=str(payout.id),
                        description=f"Withdrawal via {payout.method}",
                        idempotency_key=f"payout:{payout.id}:completed",
                    ),
                )

                payout.complete(
                    transaction_reference=transaction_reference
                    or f"TXN-{payout.id.hex[:12].upper()}"
                )
                payout.save()

                send_on_commit(payout_completed, sender=PayoutRequest, payout=payout)
        except InsufficientFunds as e:
            return cls.handle_exception(e, "Payout processing failed")

        cls.get_logger().info(
            "Payout completed",
            extra={
                "payout_id": str(payout.id),
                "amount_cents": payout.amount_cents,
                "transaction_reference": payout.transaction_reference,
            },
        )
        return ServiceResult.success(payout)

    @classmethod
    def reject_payout(cls, payout_id: uuid.UUID, reason: str) -> ServiceResult[PayoutRequest]:
        """Reject a REQUESTED or APPROVED payout and release its reservation."""
        with cls.atomic():
            payout = cls._lock(payout_id)
            if payout is None:
                return cls._not_found(payout_id)
            if payout.status not in (
                PayoutRequestStatus.REQUESTED,
                PayoutRequestStatus.APPROVED,
            ):
                return cls._invalid_state(payout, "rejected")

            payout.reject(reason=reason)
            payout.save()
            WalletLedger.release_reservation(payout.wallet, payout.amount_cents)

        cls.get_logger().info(
            "Payout rejected",
            extra={"payout_id": str(payout.id), "reason": reason},
        )
        return ServiceResult.success(payout)

    @staticmethod
    def list_payout_requests(
        payee_id: str | None = None,
        owner_type: PayeeType | str = PayeeType.PROFESSIONAL,
        status: PayoutRequestStatus | str | None = None,
        scope: AccessScope | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Page:
        payouts = PayoutRequest.objects.select_related("wallet")
        if payee_id is not None:
            payouts = payouts.filter(wallet__owner_type=owner_type, wallet__owner_id=str(payee_id))
        if status:
            payouts = payouts.filter(status=status)
        if scope is not None:
            payouts = payouts.filter(scope.payout_filter())
        return Paginator(payouts.order_by("-created_at", "id"), page_size).get_page(page)

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _lock(payout_id: uuid.UUID, expected_version: int | None = None) -> PayoutRequest | None:
        if expected_version is not None:
            return check_version(PayoutRequest, payout_id, expected_version)
        return (
            PayoutRequest.objects.select_for_update()
            .select_related("wallet")
            .filter(id=payout_id)
            .first()
        )

    @staticmethod
    def _not_found(payout_id: uuid.UUID) -> ServiceResult:
        return ServiceResult.failure(
            f"Payout request {payout_id} not found",
            error_code="PAYOUT_NOT_FOUND",
        )

    @classmethod
    def _invalid_state(cls, payout: PayoutRequest, action: str) -> ServiceResult:
        cls.get_logger().warning(
            f"Payout cannot be {action}",
            extra={"payout_id": str(payout.id), "current_state": payout.status},
        )
        return ServiceResult.failure(
            f"Payout in '{payout.status}' state cannot be {action}",
            error_code="INVALID_STATE",
        )
