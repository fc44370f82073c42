"""
Base exception classes for application-wide error handling.

This module provides a standardized exception hierarchy that enables:
- Consistent error payloads for whatever layer calls the engine
- Machine-readable error codes for callers to branch on
- Detailed error information for debugging

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Input or business rule validation failures
    ├── NotFoundError - Resource not found
    ├── PermissionDeniedError - Authorization / ownership failures
    ├── ConflictError - State conflicts (invalid transitions, concurrent writes)
    └── ExternalServiceError - Third-party service failures (payment gateway)

Usage:
    from core.exceptions import ValidationError, NotFoundError

    # Raise with message only
    raise ValidationError("Share percentages must sum to 100")

    # Raise with error code and details
    raise NotFoundError(
        "No held payment for request",
        error_code="PAYMENT_NOT_FOUND",
        details={"request_id": str(request_id)},
    )

    # Convert to dict for the calling layer
    try:
        ...
    except BaseApplicationError as e:
        payload = e.to_dict()

Note:
    These exceptions are for domain/business logic errors. Infrastructure
    failures (database, network) propagate as their native exceptions.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for caller-side handling
        details: Additional error context (ids, amounts, states)

    Example:
        try:
            EscrowService.release(request_id, actor="client")
        except NotFoundError as e:
            logger.warning(f"Release skipped: {e.error_code}")
    """

    default_error_code: str = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        """
        Initialize the exception.

        Args:
            message: Human-readable error description
            error_code: Machine-readable error code (defaults to class default)
            details: Additional error context
        """
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to a plain dictionary.

        Returns:
            Dict with error, error_code, and (when present) details keys

        Example:
            {
                "error": "Payment not found",
                "error_code": "PAYMENT_NOT_FOUND",
                "details": {"request_id": "..."}
            }
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        """Return string representation with error code."""
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        """Return detailed representation for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input validation or a business rule fails.

    Use for:
    - Percentages that do not add up
    - Amounts outside allowed bounds
    - Missing payout destination details

    Example:
        raise ValidationError(
            "Payout amount below minimum",
            error_code="PAYOUT_BELOW_MINIMUM",
            details={"amount_cents": 500, "minimum_cents": 1000},
        )
    """

    default_error_code: str = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    """
    Raised when a requested resource is not found.

    Use NotFoundError for single-resource lookups where existence is
    expected. List queries return empty results instead.
    """

    default_error_code: str = "NOT_FOUND"


class PermissionDeniedError(BaseApplicationError):
    """
    Raised when the caller does not own the resource it acts on.

    Example:
        if share.payee_id != payee_id:
            raise PermissionDeniedError(
                "Cannot approve another payee's share",
                details={"share_id": str(share.id)},
            )

    Note:
        Authentication is handled outside the engine. This error covers
        ownership rules the engine itself enforces.
    """

    default_error_code: str = "PERMISSION_DENIED"


class ConflictError(BaseApplicationError):
    """
    Raised when an operation conflicts with current resource state.

    Use for:
    - Invalid state transitions
    - Optimistic locking failures
    - Lock contention
    - Operations already performed (idempotency signals)
    """

    default_error_code: str = "CONFLICT"


class ExternalServiceError(BaseApplicationError):
    """
    Raised when an external service call fails.

    Use for:
    - Payment gateway failures (capture, refund)
    - Network timeouts
    - Unexpected external service responses

    Note:
        Log the original error for debugging; keep provider internals
        out of the message returned to callers.
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
