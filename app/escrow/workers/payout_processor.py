"""
Payout processor worker.

Tasks:
- process_approved_payouts: Periodic task that queues approved payout requests
- process_single_payout: Processes one payout request under a distributed lock

Usage:
    from escrow.workers import process_approved_payouts, process_single_payout

    process_approved_payouts.delay()
    process_single_payout.delay(str(payout.id))
"""

from __future__ import annotations

import logging
from uuid import UUID

from celery import shared_task

from escrow.exceptions import LockAcquisitionError
from escrow.locks import DistributedLock
from escrow.models import PayoutRequest
from escrow.state_machines import PayoutRequestStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Maximum payout requests queued per run
BATCH_SIZE = 100

PAYOUT_LOCK_TTL = 120

MAX_RETRY_ATTEMPTS = 5


# =============================================================================
# Periodic Task: Scan Approved Payouts
# =============================================================================


@shared_task(bind=True)
def process_approved_payouts(self) -> dict:
    """
    Queue a processing task for each approved payout, oldest approval first.

    Idempotent: process_single_payout re-checks the state under a lock.

    Returns:
        Dict with queued_count
    """
    approved = (
        PayoutRequest.objects.filter(status=PayoutRequestStatus.APPROVED)
        .order_by("approved_at")
        .values_list("id", flat=True)[:BATCH_SIZE]
    )

    queued_count = 0
    for payout_id in approved:
        try:
            process_single_payout.delay(str(payout_id))
            queued_count += 1
        except Exception as e:
            logger.error(
                f"Failed to queue payout for processing: {e}",
                extra={"payout_id": str(payout_id)},
            )

    logger.info(
        f"Approved payout scan complete: queued {queued_count} payouts",
        extra={"queued_count": queued_count},
    )
    return {"queued_count": queued_count}


# =============================================================================
# Individual Processing Task
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=(LockAcquisitionError,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": MAX_RETRY_ATTEMPTS},
    acks_late=True,
)
def process_single_payout(self, payout_id: str) -> dict:
    """
    Process one approved payout request.

    Returns:
        Dict with:
        - status: One of "completed", "not_found", "already_processed", "failed"
        - payout_id: The payout request processed
        - error_code: Set when failed

    Raises:
        LockAcquisitionError: Re-raised so Celery retries later
    """
    from escrow.services import PayoutService

    try:
        payout_uuid = UUID(str(payout_id))
    except ValueError:
        logger.error(f"Invalid payout_id format: {payout_id}")
        return {"status": "not_found", "payout_id": payout_id}

    with DistributedLock(f"escrow:payout:{payout_uuid}", ttl=PAYOUT_LOCK_TTL):
        # Double-check under the lock
        status = (
            PayoutRequest.objects.filter(id=payout_uuid)
            .values_list("status", flat=True)
            .first()
        )
        if status is None:
            logger.warning("Payout request not found", extra={"payout_id": payout_id})
            return {"status": "not_found", "payout_id": payout_id}
        if status != PayoutRequestStatus.APPROVED:
            logger.info(
                "Payout already processed, skipping",
                extra={"payout_id": payout_id, "current_state": status},
            )
            return {"status": "already_processed", "payout_id": payout_id}

        result = PayoutService.process_payout(payout_uuid)

    if not result.success:
        logger.error(
            f"Payout processing failed: {result.error}",
            extra={"payout_id": payout_id, "error_code": result.error_code},
        )
        return {
            "status": "failed",
            "payout_id": payout_id,
            "error_code": result.error_code,
        }

    return {"status": "completed", "payout_id": payout_id}
