"""
Rating Aggregator

Keeps each hotel's materialised rating equal to the aggregate of its
current reviews. ``recompute`` is idempotent: it locks the hotel row,
reads every current rating and writes the summary in one transaction, so
recomputes for the same hotel are serialised and the last one always sees
the latest review set.

A recompute that keeps failing with a database error is handed to the
``on_give_up`` callback (the Celery task in production); the periodic
``reconcile`` pass catches anything that slipped through.
"""

from datetime import datetime
from typing import Callable, Optional, Tuple, Type
from uuid import UUID
import logging
import time

from django.db import DatabaseError  # type: ignore

from shared.application.retry import retry_call
from shared.domain.base import utcnow
from apps.reviews.domain.entities import HotelRating, Review
from apps.reviews.domain.exceptions import HotelNotFound

logger = logging.getLogger(__name__)


class RatingAggregator:
    def __init__(
        self,
        uow_factory: Callable,
        attempts: int = 3,
        backoff: float = 0.1,
        retry_on: Tuple[Type[BaseException], ...] = (DatabaseError,),
        on_give_up: Optional[Callable[[UUID], None]] = None,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.uow_factory = uow_factory
        self.attempts = attempts
        self.backoff = backoff
        self.retry_on = retry_on
        self.on_give_up = on_give_up
        self.clock = clock
        self.sleep = sleep

    def recompute(self, hotel_id: UUID) -> HotelRating:
        """Recompute one hotel's summary from its current reviews."""
        with self.uow_factory() as uow:
            rating = uow.ratings.get(hotel_id, lock=True)
            if rating is None:
                raise HotelNotFound(f"Hotel {hotel_id} not found")
            changed = rating.recompute_from(uow.reviews.ratings_for_hotel(hotel_id), self.clock())
            if changed:
                uow.collect_events(rating)
                uow.ratings.save(rating)

        if changed:
            logger.info(f"Hotel {hotel_id} rating is now {rating.average_rating} ({rating.review_count} reviews)")
        return rating

    def recompute_with_retry(self, hotel_id: UUID) -> Optional[HotelRating]:
        """
        Recompute, retrying database errors in process

        Returns None when every attempt failed and the work was handed to
        ``on_give_up``.
        """
        try:
            return retry_call(
                self.recompute,
                hotel_id,
                retry_on=self.retry_on,
                attempts=self.attempts,
                backoff=self.backoff,
                sleep=self.sleep,
            )
        except self.retry_on as e:
            logger.error(f"Giving up recomputing rating of hotel {hotel_id} in process: {e}")
            if self.on_give_up is None:
                raise
            self.on_give_up(hotel_id)
            return None

    def on_review_created(self, review: Review) -> Optional[HotelRating]:
        return self.recompute_with_retry(review.hotel_id)

    def on_review_updated(self, review: Review) -> Optional[HotelRating]:
        return self.recompute_with_retry(review.hotel_id)

    def on_review_removed(self, review: Review) -> Optional[HotelRating]:
        return self.recompute_with_retry(review.hotel_id)

    def reconcile(self) -> int:
        """Recompute every hotel; returns how many summaries were out of date."""
        with self.uow_factory() as uow:
            hotel_ids = uow.ratings.list_hotel_ids()

        fixed = 0
        for hotel_id in hotel_ids:
            with self.uow_factory() as uow:
                stored = uow.ratings.get(hotel_id)
            if stored is None:
                continue
            before = (stored.average_rating, stored.review_count)
            after = self.recompute(hotel_id)
            if (after.average_rating, after.review_count) != before:
                logger.warning(f"Hotel {hotel_id} rating was stale: {before} -> {after.average_rating}, {after.review_count}")
                fixed += 1
        return fixed
