"""
Auto-release worker.

Tasks:
- process_due_releases: Periodic task (daily, via celery-beat) that releases
  held payments whose auto-release deadline has passed

The sweep runs under a non-blocking distributed lock, so overlapping beat
runs or a manual trigger during a scheduled run simply skip.

Usage:
    from escrow.workers import process_due_releases

    process_due_releases.delay()
"""

from __future__ import annotations

import logging

from celery import shared_task

from escrow.exceptions import LockAcquisitionError
from escrow.locks import DistributedLock

logger = logging.getLogger(__name__)

# Long enough to cover a full batch of releases
SWEEP_LOCK_TTL = 600


@shared_task(bind=True)
def process_due_releases(self) -> dict:
    """
    Release every held payment past its deadline.

    Returns:
        Dict with:
        - status: "completed" or "skipped"
        - released_count: Payments released by this run
    """
    from escrow.services import EscrowService

    try:
        with DistributedLock("escrow:auto-release-sweep", ttl=SWEEP_LOCK_TTL, blocking=False):
            released = EscrowService.run_auto_release_sweep()
    except LockAcquisitionError:
        logger.info("Auto-release sweep already running, skipping")
        return {"status": "skipped", "released_count": 0}

    return {"status": "completed", "released_count": released}
