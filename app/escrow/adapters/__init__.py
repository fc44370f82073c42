"""
Gateway adapters for the escrow engine.

StripeGateway is the default PaymentGateway used by EscrowService.
"""

from escrow.adapters.stripe_gateway import IdempotencyKeyGenerator, StripeGateway

__all__ = [
    "IdempotencyKeyGenerator",
    "StripeGateway",
]
