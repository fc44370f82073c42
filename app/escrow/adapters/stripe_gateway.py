"""
Stripe implementation of the PaymentGateway collaborator.

All Stripe calls made by the escrow engine go through StripeGateway so
timeouts, idempotency keys, logging and error translation are uniform.

Configuration (via settings):
- STRIPE_SECRET_KEY: Stripe API secret key
- STRIPE_API_TIMEOUT_SECONDS: API call timeout (default: 10)
- STRIPE_MAX_RETRIES: Network retries performed by the Stripe client (default: 3)

Usage:
    from escrow.adapters import StripeGateway

    gateway = StripeGateway()
    payment_intent_id = gateway.capture("pi_123")
    refund_id = gateway.refund(
        "pi_123",
        4900,
        idempotency_key=IdempotencyKeyGenerator.generate("refund", payment.id),
    )
"""

from __future__ import annotations

import hashlib
import logging
import time
import uuid
from typing import Any

import stripe
from django.conf import settings

from escrow.exceptions import (
    GatewayCardError,
    GatewayInvalidRequestError,
    GatewayRateLimitError,
    GatewayUnavailableError,
)


class IdempotencyKeyGenerator:
    """
    Build deterministic idempotency keys for gateway calls.

    Example:
        IdempotencyKeyGenerator.generate("refund", payment.id)
        # "refund:550e8400-...:1:a1b2c3d4"
    """

    @staticmethod
    def generate(operation: str, entity_id: uuid.UUID | str, attempt: int = 1) -> str:
        entity_str = str(entity_id)
        # Short hash salted with SECRET_KEY keeps keys unguessable across environments
        hash_input = f"{operation}:{entity_str}:{attempt}:{settings.SECRET_KEY}"
        short_hash = hashlib.sha256(hash_input.encode()).hexdigest()[:8]
        return f"{operation}:{entity_str}:{attempt}:{short_hash}"


class StripeGateway:
    """
    PaymentGateway backed by Stripe PaymentIntents and Refunds.

    Thread-safe for use from Celery workers; no per-instance state beyond
    configuration.
    """

    def __init__(self, api_key: str | None = None, timeout: int | None = None) -> None:
        self.api_key = api_key if api_key is not None else settings.STRIPE_SECRET_KEY
        self.timeout = (
            timeout
            if timeout is not None
            else getattr(settings, "STRIPE_API_TIMEOUT_SECONDS", 10)
        )

    def _configure_stripe(self) -> None:
        stripe.api_key = self.api_key
        stripe.max_network_retries = getattr(settings, "STRIPE_MAX_RETRIES", 3)
        stripe.default_http_client = stripe.RequestsClient(timeout=self.timeout)

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    # =========================================================================
    # PaymentGateway
    # =========================================================================

    def capture(self, order_ref: str) -> str:
        """
        Capture an authorized PaymentIntent.

        Args:
            order_ref: PaymentIntent ID (pi_xxx) created by the checkout flow

        Returns:
            The captured PaymentIntent ID

        Raises:
            GatewayError: Translated Stripe failure
        """
        self._configure_stripe()
        log_context = {"operation": "capture", "order_ref": order_ref}
        start_time = time.time()
        self.get_logger().info("Starting Stripe operation", extra=log_context)

        try:
            intent = stripe.PaymentIntent.capture(
                order_ref,
                idempotency_key=IdempotencyKeyGenerator.generate("capture", order_ref),
            )
        except Exception as e:
            self._handle_stripe_error(e, log_context, (time.time() - start_time) * 1000)
            raise

        self.get_logger().info(
            "Stripe operation completed",
            extra={
                **log_context,
                "status": intent.status,
                "amount_received": intent.amount_received,
                "duration_ms": (time.time() - start_time) * 1000,
            },
        )
        return intent.id

    def refund(
        self,
        provider_payment_id: str,
        amount_cents: int,
        idempotency_key: str | None = None,
    ) -> str:
        """
        Refund part or all of a captured PaymentIntent.

        Returns:
            The Stripe Refund ID (re_xxx)

        Raises:
            GatewayError: Translated Stripe failure
        """
        self._configure_stripe()
        idempotency_key = idempotency_key or IdempotencyKeyGenerator.generate(
            "refund", provider_payment_id
        )
        log_context = {
            "operation": "refund",
            "provider_payment_id": provider_payment_id,
            "amount_cents": amount_cents,
            "idempotency_key": idempotency_key,
        }
        start_time = time.time()
        self.get_logger().info("Starting Stripe operation", extra=log_context)

        try:
            refund = stripe.Refund.create(
                payment_intent=provider_payment_id,
                amount=amount_cents,
                reason="requested_by_customer",
                idempotency_key=idempotency_key,
            )
        except Exception as e:
            self._handle_stripe_error(e, log_context, (time.time() - start_time) * 1000)
            raise

        self.get_logger().info(
            "Stripe operation completed",
            extra={
                **log_context,
                "refund_id": refund.id,
                "status": refund.status,
                "duration_ms": (time.time() - start_time) * 1000,
            },
        )
        return refund.id

    # =========================================================================
    # Error Translation
    # =========================================================================

    @classmethod
    def _handle_stripe_error(
        cls,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate Stripe SDK exceptions to gateway exceptions.

        Raises:
            GatewayCardError: Card declined
            GatewayInvalidRequestError: Bad parameters or authentication
            GatewayRateLimitError: Rate limited
            GatewayUnavailableError: Network, server or unknown errors
        """
        logger = cls.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, stripe.CardError):
            logger.warning(
                "Card error from Stripe",
                extra={**log_context, "decline_code": getattr(error, "decline_code", None)},
            )
            raise GatewayCardError(
                str(error.user_message or error),
                provider_code=error.code,
            )

        if isinstance(error, stripe.InvalidRequestError):
            logger.error(
                "Invalid request to Stripe",
                extra={**log_context, "stripe_code": error.code},
            )
            raise GatewayInvalidRequestError(str(error), provider_code=error.code)

        if isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            raise GatewayRateLimitError(
                "Stripe rate limit exceeded. Please retry.",
                provider_code="rate_limit",
            )

        if isinstance(error, stripe.APIConnectionError):
            logger.error("Connection error to Stripe", extra=log_context, exc_info=True)
            raise GatewayUnavailableError(
                "Could not connect to Stripe. Please retry.",
                provider_code="api_connection_error",
            )

        if isinstance(error, stripe.AuthenticationError):
            logger.critical(
                "Stripe authentication failed - check API key",
                extra=log_context,
            )
            raise GatewayInvalidRequestError(
                "Stripe authentication failed",
                provider_code="authentication_error",
            )

        if isinstance(error, stripe.APIError):
            logger.error("Stripe API error", extra=log_context, exc_info=True)
            raise GatewayUnavailableError(
                "Stripe service error. Please retry.",
                provider_code="api_error",
            )

        logger.error(
            f"Unexpected error from Stripe: {type(error).__name__}",
            extra=log_context,
            exc_info=True,
        )
        raise GatewayUnavailableError(
            f"Unexpected Stripe error: {error}",
            provider_code="unknown_error",
        )
