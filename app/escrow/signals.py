"""
Django signals emitted after escrow money movements commit.

Signals:
    payment_released: kwargs payment, released_amount_cents, auto_release
    distribution_executed: kwargs distribution
    payout_completed: kwargs payout

Receivers are the host service's notification layer (email, push). They
run after the surrounding transaction commits, through send_robust, so a
failing receiver is logged and never rolls back the financial mutation.

Usage:
    from django.dispatch import receiver
    from escrow.signals import payment_released

    @receiver(payment_released)
    def notify_payee(sender, payment, released_amount_cents, **kwargs):
        send_release_email.delay(payment.payee_id, released_amount_cents)
"""

from __future__ import annotations

import logging

from django.db import transaction
from django.dispatch import Signal

logger = logging.getLogger(__name__)

payment_released = Signal()
distribution_executed = Signal()
payout_completed = Signal()


def send_on_commit(signal: Signal, sender: type, **kwargs) -> None:
    """
    Send ``signal`` once the current transaction commits.

    Outside a transaction the signal is sent immediately.
    """

    def _send() -> None:
        for receiver, response in signal.send_robust(sender=sender, **kwargs):
            if isinstance(response, Exception):
                logger.error(
                    f"Signal receiver failed: {response}",
                    exc_info=response,
                    extra={"receiver": getattr(receiver, "__qualname__", repr(receiver))},
                )

    transaction.on_commit(_send)
