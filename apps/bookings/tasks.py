"""Celery tasks for the booking domain."""

from __future__ import annotations

import logging

from celery import shared_task  # type: ignore

from apps.bookings.bootstrap import get_engine

logger = logging.getLogger(__name__)


# ============================================================================
# PERIODIC TASKS (запускаются автоматически через Celery Beat)
# ============================================================================

@shared_task(name="bookings.sweep_expired_reservations")
def sweep_expired_reservations(limit: int = 100) -> dict[str, int]:
    """
    Reclaim abandoned reservations.

    First expires PENDING_PAYMENT bookings whose hold ran out (the provider
    is asked one last time before cancelling), then purges any expired
    hold still left in the ledger.

    Runs every minute through Celery Beat.

    Returns:
        dict: {"expired": bookings cancelled, "released": holds purged}
    """
    engine = get_engine()
    try:
        expired = engine.orchestrator.expire_stale_bookings(limit=limit)
    finally:
        # Abandoned holds are reclaimed even when expiring a booking failed.
        released = engine.ledger.sweep_expired()

    if expired or released:
        logger.info(f"Sweep expired {expired} bookings and released {released} holds")
    return {"expired": expired, "released": released}
