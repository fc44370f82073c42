"""
Tests for the Stripe gateway adapter.

The Stripe SDK calls are mocked; error translation uses the SDK's real
exception classes.
"""

import pytest
import stripe
from django.test import override_settings

from escrow.adapters import IdempotencyKeyGenerator, StripeGateway
from escrow.exceptions import (
    GatewayCardError,
    GatewayInvalidRequestError,
    GatewayRateLimitError,
    GatewayUnavailableError,
)


@pytest.fixture(autouse=True)
def mock_http_client(mocker):
    """Keep the adapter from building a real HTTP client."""
    return mocker.patch("stripe.RequestsClient")


@pytest.fixture
def mock_capture(mocker):
    return mocker.patch("stripe.PaymentIntent.capture")


@pytest.fixture
def mock_refund(mocker):
    return mocker.patch("stripe.Refund.create")


class TestIdempotencyKeyGenerator:
    def test_deterministic(self):
        first = IdempotencyKeyGenerator.generate("refund", "abc")
        second = IdempotencyKeyGenerator.generate("refund", "abc")

        assert first == second
        assert first.startswith("refund:abc:1:")

    def test_varies_by_attempt_and_operation(self):
        keys = {
            IdempotencyKeyGenerator.generate("refund", "abc", attempt=1),
            IdempotencyKeyGenerator.generate("refund", "abc", attempt=2),
            IdempotencyKeyGenerator.generate("capture", "abc"),
        }

        assert len(keys) == 3

    def test_salted_with_secret_key(self):
        key = IdempotencyKeyGenerator.generate("refund", "abc")

        with override_settings(SECRET_KEY="another-secret"):
            assert IdempotencyKeyGenerator.generate("refund", "abc") != key


class TestStripeGateway:
    """Tests for StripeGateway capture and refund."""

    def test_capture(self, mock_capture, mock_http_client):
        mock_capture.return_value = type(
            "Intent", (), {"id": "pi_123", "status": "succeeded", "amount_received": 10000}
        )()

        gateway = StripeGateway(api_key="sk_test_123", timeout=5)

        assert gateway.capture("pi_123") == "pi_123"
        assert stripe.api_key == "sk_test_123"
        mock_http_client.assert_called_once_with(timeout=5)
        args, kwargs = mock_capture.call_args
        assert args == ("pi_123",)
        assert kwargs["idempotency_key"].startswith("capture:pi_123:1:")

    def test_refund(self, mock_refund):
        mock_refund.return_value = type("Refund", (), {"id": "re_1", "status": "succeeded"})()

        refund_id = StripeGateway(api_key="sk_test_123").refund(
            "pi_123", 4900, idempotency_key="refund:p-1:1:abcd1234"
        )

        assert refund_id == "re_1"
        mock_refund.assert_called_once_with(
            payment_intent="pi_123",
            amount=4900,
            reason="requested_by_customer",
            idempotency_key="refund:p-1:1:abcd1234",
        )

    def test_refund_generates_key(self, mock_refund):
        mock_refund.return_value = type("Refund", (), {"id": "re_2", "status": "pending"})()

        StripeGateway(api_key="sk_test_123").refund("pi_123", 4900)

        assert mock_refund.call_args[1]["idempotency_key"].startswith("refund:pi_123:1:")

    @pytest.mark.parametrize(
        "error,expected,retryable",
        [
            (
                stripe.CardError("Your card was declined.", None, "card_declined"),
                GatewayCardError,
                False,
            ),
            (
                stripe.InvalidRequestError("No such payment_intent", "id", code="resource_missing"),
                GatewayInvalidRequestError,
                False,
            ),
            (stripe.AuthenticationError("Invalid API key"), GatewayInvalidRequestError, False),
            (stripe.RateLimitError("Too many requests"), GatewayRateLimitError, True),
            (stripe.APIConnectionError("Network down"), GatewayUnavailableError, True),
            (stripe.APIError("Internal error"), GatewayUnavailableError, True),
            (RuntimeError("surprise"), GatewayUnavailableError, True),
        ],
    )
    def test_error_translation(self, mock_refund, error, expected, retryable):
        mock_refund.side_effect = error

        with pytest.raises(expected) as exc_info:
            StripeGateway(api_key="sk_test_123").refund("pi_123", 4900)

        assert exc_info.value.is_retryable is retryable

    def test_card_error_keeps_provider_code(self, mock_capture):
        mock_capture.side_effect = stripe.CardError("Declined", None, "card_declined")

        with pytest.raises(GatewayCardError) as exc_info:
            StripeGateway(api_key="sk_test_123").capture("pi_123")

        assert exc_info.value.provider_code == "card_declined"
        assert exc_info.value.error_code == "CARD_DECLINED"
