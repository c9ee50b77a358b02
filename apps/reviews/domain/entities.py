"""
Review Domain Entities

- Review: one user's rating of one hotel
- HotelRating: the materialised average/count of a hotel's reviews

The summary is never updated incrementally: every change recomputes it
from the full set of current ratings, so concurrent recomputes converge
on whatever review set is current when the last one runs.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Tuple
from uuid import UUID

from shared.domain.base import Aggregate
from apps.reviews.domain.exceptions import InvalidReview

MIN_RATING = 1
MAX_RATING = 5
TWO_PLACES = Decimal('0.01')


def summarize(ratings: Iterable[int]) -> Tuple[Decimal, int]:
    """
    Mean rating rounded half-up to two decimals, and the count

    An empty review set yields (0.00, 0).
    """
    values = list(ratings)
    if not values:
        return Decimal('0.00'), 0
    mean = Decimal(sum(values)) / Decimal(len(values))
    return mean.quantize(TWO_PLACES, rounding=ROUND_HALF_UP), len(values)


@dataclass(eq=False)
class Review(Aggregate):
    user_id: int
    hotel_id: UUID
    rating: int
    title: str = ''
    text: str = ''

    def __post_init__(self):
        self._check_rating(self.rating)

    @staticmethod
    def _check_rating(rating):
        if not isinstance(rating, int) or isinstance(rating, bool):
            raise InvalidReview("Rating must be an integer")
        if not MIN_RATING <= rating <= MAX_RATING:
            raise InvalidReview(f"Rating must be between {MIN_RATING} and {MAX_RATING}")

    def edit(self, rating: int | None = None, title: str | None = None, text: str | None = None, now: datetime | None = None):
        """Change the fields that were given; only a rating change affects the hotel summary."""
        if rating is not None:
            self._check_rating(rating)
        previous_rating = self.rating
        if rating is not None:
            self.rating = rating
        if title is not None:
            self.title = title
        if text is not None:
            self.text = text
        self.touch(now)

        from apps.reviews.domain.events import ReviewUpdated

        self.add_event(ReviewUpdated(
            aggregate_id=self.id,
            review_id=self.id,
            hotel_id=self.hotel_id,
            user_id=self.user_id,
            rating=self.rating,
            previous_rating=previous_rating,
        ))

    def mark_created(self):
        from apps.reviews.domain.events import ReviewCreated

        self.add_event(ReviewCreated(
            aggregate_id=self.id,
            review_id=self.id,
            hotel_id=self.hotel_id,
            user_id=self.user_id,
            rating=self.rating,
        ))

    def mark_removed(self):
        from apps.reviews.domain.events import ReviewRemoved

        self.add_event(ReviewRemoved(
            aggregate_id=self.id,
            review_id=self.id,
            hotel_id=self.hotel_id,
            user_id=self.user_id,
        ))

    def __str__(self):
        return f"Review by {self.user_id} for hotel {self.hotel_id} (Rating: {self.rating})"


@dataclass(eq=False)
class HotelRating(Aggregate):
    """
    Rating summary of a hotel

    Invariant (at every quiescent point): ``average_rating`` and
    ``review_count`` equal summarize() of the hotel's current reviews.
    """
    hotel_id: UUID
    average_rating: Decimal = Decimal('0.00')
    review_count: int = 0
    rating_updated_at: datetime | None = None

    def __post_init__(self):
        self.id = self.hotel_id

    def recompute_from(self, ratings: Iterable[int], now: datetime) -> bool:
        """
        Replace the summary with the aggregate of ``ratings``

        Returns True and emits HotelRatingUpdated when the stored value changed.
        """
        average, count = summarize(ratings)
        if average == self.average_rating and count == self.review_count:
            return False

        from apps.reviews.domain.events import HotelRatingUpdated

        previous_average, previous_count = self.average_rating, self.review_count
        self.average_rating = average
        self.review_count = count
        self.rating_updated_at = now
        self.touch(now)

        self.add_event(HotelRatingUpdated(
            aggregate_id=self.id,
            hotel_id=self.hotel_id,
            average_rating=average,
            review_count=count,
            previous_average=previous_average,
            previous_count=previous_count,
        ))
        return True
