"""
Escrow-specific exceptions for custody, distribution and wallet operations.

Exception Hierarchy:
    EscrowError (base for the escrow domain)
    ├── NotFound - Entity lookup failures (payment, distribution, wallet...)
    ├── InvalidTransition - State machine edge not allowed
    ├── AlreadyReleased - Idempotent release signal (carries prior result)
    ├── AlreadyDistributed - Distribution executed before
    ├── PercentageMismatch - Share percentages do not sum to 100
    ├── InsufficientFunds - Debit larger than wallet balance
    ├── Unauthorized - Approving a share the caller does not own
    ├── MissingTemplate - No active template for a payee role
    ├── PayoutValidationError - Payout request rejected by validation
    └── GatewayError - Payment gateway failures
        ├── GatewayCardError - Card declined (permanent)
        ├── GatewayInvalidRequestError - Bad parameters (permanent)
        ├── GatewayRateLimitError - Rate limited (transient, retry)
        └── GatewayUnavailableError - API down or timed out (transient, retry)

    StaleRecordError - Optimistic locking conflict (inherits ConflictError)
    LockAcquisitionError - Distributed lock timeout (inherits ConflictError)

Each domain error also inherits the matching core category (NotFoundError,
ConflictError, ValidationError, ...) so callers can branch on either.

Usage:
    from escrow.exceptions import AlreadyReleased, PercentageMismatch

    try:
        EscrowService.release(request_id, released_by=actor)
    except PercentageMismatch as e:
        logger.warning(f"Split rejected: {e.details}")
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

if TYPE_CHECKING:
    from decimal import Decimal
    from typing import Any


# =============================================================================
# Escrow Domain Exceptions
# =============================================================================


class EscrowError(BaseApplicationError):
    """
    Base exception for all escrow operations.

    Example:
        try:
            DistributionService.distribute(payment_id)
        except EscrowError as e:
            logger.error(f"Distribution failed: {e}")
    """

    default_error_code: str = "ESCROW_ERROR"


class NotFound(EscrowError, NotFoundError):
    """
    Raised when a payment, distribution, wallet or payout cannot be found.

    Example:
        raise NotFound(
            f"No held payment for request {request_id}",
            error_code="PAYMENT_NOT_FOUND",
            details={"request_id": str(request_id)},
        )
    """

    default_error_code: str = "NOT_FOUND"


class InvalidTransition(EscrowError, ConflictError):
    """
    Raised when a state machine transition is not allowed.

    Wraps django-fsm's TransitionNotAllowed in the standard error format.

    Example:
        try:
            payment.hold_for_dispute(reason)
        except TransitionNotAllowed:
            raise InvalidTransition(
                f"Cannot dispute payment in '{payment.status}' state",
                details={"current_state": payment.status, "transition": "hold_for_dispute"},
            )
    """

    default_error_code: str = "INVALID_STATE_TRANSITION"


class AlreadyReleased(EscrowError, ConflictError):
    """
    Raised internally when a release finds the payment already released.

    This is a signal rather than a failure: it carries the prior release
    result so the public release() can hand it back unchanged.

    Attributes:
        result: The ReleaseResult describing the earlier release
    """

    default_error_code: str = "ALREADY_RELEASED"

    def __init__(
        self,
        message: str,
        result: Any = None,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, error_code=error_code, details=details)
        self.result = result


class AlreadyDistributed(EscrowError, ConflictError):
    """Raised when a distribution has already been executed."""

    default_error_code: str = "ALREADY_DISTRIBUTED"


class PercentageMismatch(EscrowError, ValidationError):
    """
    Raised when share percentages do not sum to 100 within tolerance.

    Attributes:
        total: The actual sum of the supplied percentages
    """

    default_error_code: str = "PERCENTAGE_MISMATCH"

    def __init__(
        self,
        total: Decimal,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.total = total
        full_details = {"total_percentage": str(total)}
        if details:
            full_details.update(details)
        super().__init__(
            message=f"Share percentages must sum to 100, got {total}",
            error_code=error_code,
            details=full_details,
        )


class InsufficientFunds(EscrowError, ValidationError):
    """
    Raised when a wallet has insufficient funds for a debit or payout.

    Attributes:
        owner_id: The payee whose wallet lacks funds
        required: The amount (in cents) that was required
        available: The amount (in cents) that was available

    Example:
        if wallet.balance_cents < amount_cents:
            raise InsufficientFunds(
                wallet.owner_id,
                required=amount_cents,
                available=wallet.balance_cents,
            )
    """

    default_error_code: str = "INSUFFICIENT_FUNDS"

    def __init__(
        self,
        owner_id: str,
        required: int,
        available: int,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.owner_id = owner_id
        self.required = required
        self.available = available

        full_details = {
            "owner_id": str(owner_id),
            "required_cents": required,
            "available_cents": available,
        }
        if details:
            full_details.update(details)

        super().__init__(
            message=(
                f"Wallet of {owner_id} has insufficient funds: "
                f"required {required} cents, available {available} cents"
            ),
            error_code=error_code,
            details=full_details,
        )


class Unauthorized(EscrowError, PermissionDeniedError):
    """Raised when a payee acts on a share that is not theirs."""

    default_error_code: str = "UNAUTHORIZED"


class MissingTemplate(EscrowError, ValidationError):
    """Raised when a payee's role has no active distribution template."""

    default_error_code: str = "MISSING_TEMPLATE"


class PayoutValidationError(EscrowError, ValidationError):
    """
    Raised when a payout request fails validation.

    Covers amounts below the minimum and incomplete destination details.
    ``errors`` maps field names to messages and survives conversion to a
    ServiceResult.
    """

    default_error_code: str = "PAYOUT_VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        errors: dict[str, list[str]] | None = None,
        error_code: str | None = None,
    ):
        self.errors = errors or {}
        super().__init__(message, error_code=error_code, details={"errors": self.errors})


# =============================================================================
# Gateway Exceptions
# =============================================================================


class GatewayError(EscrowError, ExternalServiceError):
    """
    Base exception for payment gateway failures.

    The engine never retries gateway calls itself; callers decide using
    is_retryable.

    Example:
        try:
            gateway.refund(payment.provider_payment_id, amount_cents)
        except GatewayError as e:
            if e.is_retryable:
                schedule_retry()
    """

    default_error_code: str = "GATEWAY_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        provider_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if provider_code:
            details["provider_code"] = provider_code
        super().__init__(message, error_code=error_code, details=details)
        self.provider_code = provider_code


class GatewayCardError(GatewayError):
    """Card declined by the issuer. Permanent."""

    default_error_code: str = "CARD_DECLINED"


class GatewayInvalidRequestError(GatewayError):
    """Request parameters rejected by the gateway. Permanent."""

    default_error_code: str = "GATEWAY_INVALID_REQUEST"


class GatewayRateLimitError(GatewayError):
    """Gateway rate limit hit. Safe to retry with backoff."""

    default_error_code: str = "GATEWAY_RATE_LIMITED"
    is_retryable: bool = True


class GatewayUnavailableError(GatewayError):
    """
    Gateway unreachable, erroring or timed out.

    The operation may have succeeded on the provider side; retry with the
    same idempotency key.
    """

    default_error_code: str = "GATEWAY_UNAVAILABLE"
    is_retryable: bool = True


# =============================================================================
# Concurrency Control Exceptions
# =============================================================================


class StaleRecordError(ConflictError):
    """
    Raised when optimistic locking detects concurrent modification.

    Attributes:
        details: Contains pk, expected_version, and current_version
    """

    default_error_code: str = "STALE_RECORD"


class LockAcquisitionError(ConflictError):
    """
    Raised when a distributed lock cannot be acquired.

    Attributes:
        details: Contains key and timeout information
    """

    default_error_code: str = "LOCK_ACQUISITION_FAILED"


__all__ = [
    "AlreadyDistributed",
    "AlreadyReleased",
    "EscrowError",
    "GatewayCardError",
    "GatewayError",
    "GatewayInvalidRequestError",
    "GatewayRateLimitError",
    "GatewayUnavailableError",
    "InsufficientFunds",
    "InvalidTransition",
    "LockAcquisitionError",
    "MissingTemplate",
    "NotFound",
    "PayoutValidationError",
    "PercentageMismatch",
    "StaleRecordError",
    "Unauthorized",
]
