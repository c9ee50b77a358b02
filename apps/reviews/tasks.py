"""Celery tasks for hotel rating maintenance."""

from __future__ import annotations

import logging
from uuid import UUID

from celery import shared_task  # type: ignore
from django.db import DatabaseError  # type: ignore

from apps.bookings.bootstrap import get_engine
from apps.reviews.domain.exceptions import HotelNotFound

logger = logging.getLogger(__name__)


@shared_task(
    name="reviews.recompute_hotel_rating",
    autoretry_for=(DatabaseError,),
    retry_backoff=True,
    max_retries=5,
)
def recompute_hotel_rating(hotel_id: str) -> dict[str, str | int] | None:
    """
    Recompute a hotel's rating after the in-process attempts gave up.

    Scheduled by the rating aggregator; retried by Celery with exponential
    backoff while the database keeps failing.
    """
    try:
        rating = get_engine().ratings.recompute(UUID(hotel_id))
    except HotelNotFound:
        logger.warning(f"Hotel {hotel_id} disappeared before its rating could be recomputed")
        return None
    return {
        "hotel_id": hotel_id,
        "average_rating": str(rating.average_rating),
        "review_count": rating.review_count,
    }


# ============================================================================
# PERIODIC TASKS
# ============================================================================

@shared_task(name="reviews.reconcile_hotel_ratings")
def reconcile_hotel_ratings() -> dict[str, int]:
    """
    Recompute every hotel's rating and report how many were stale.

    Runs hourly through Celery Beat.
    """
    fixed = get_engine().ratings.reconcile()
    if fixed:
        logger.warning(f"Reconciled {fixed} stale hotel ratings")
    return {"fixed": fixed}
