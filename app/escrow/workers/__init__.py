"""
Celery tasks for background escrow processing.

- auto_release: Daily sweep releasing payments past their deadline
- payout_processor: Processing of approved payout requests

Usage:
    from escrow.workers import process_approved_payouts, process_due_releases

    process_due_releases.delay()
"""

from escrow.workers.auto_release import process_due_releases
from escrow.workers.payout_processor import (
    process_approved_payouts,
    process_single_payout,
)

__all__ = [
    "process_approved_payouts",
    "process_due_releases",
    "process_single_payout",
]
