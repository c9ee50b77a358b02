"""
Review commands

Each command writes the review in its own transaction and then asks the
rating aggregator to recompute the hotel's summary.
"""

from typing import Optional
from uuid import UUID
import logging

from apps.reviews.application.rating import RatingAggregator
from apps.reviews.domain.entities import Review
from apps.reviews.domain.exceptions import HotelNotFound, ReviewNotFound, ReviewPermissionDenied

logger = logging.getLogger(__name__)


class ReviewService:
    def __init__(self, uow_factory, aggregator: RatingAggregator):
        self.uow_factory = uow_factory
        self.aggregator = aggregator

    def create_review(self, user_id: int, hotel_id: UUID, rating: int, title: str = '', text: str = '') -> Review:
        """
        Raises:
            InvalidReview: rating outside 1-5
            HotelNotFound: unknown hotel
            DuplicateReviewError: the user already reviewed this hotel
        """
        review = Review(user_id=user_id, hotel_id=hotel_id, rating=rating, title=title, text=text)
        review.mark_created()

        with self.uow_factory() as uow:
            if uow.ratings.get(hotel_id) is None:
                raise HotelNotFound(f"Hotel {hotel_id} not found")
            uow.collect_events(review)
            uow.reviews.add(review)

        logger.info(f"Review {review.id} created for hotel {hotel_id} by user {user_id}")
        self.aggregator.on_review_created(review)
        return review

    def update_review(
        self,
        review_id: UUID,
        user_id: int,
        rating: Optional[int] = None,
        title: Optional[str] = None,
        text: Optional[str] = None,
    ) -> Review:
        """
        Edit the author's own review; the summary is recomputed when the rating changed.

        Raises:
            ReviewNotFound: unknown review
            ReviewPermissionDenied: the caller is not the author
            InvalidReview: rating outside 1-5
        """
        with self.uow_factory() as uow:
            review = uow.reviews.get(review_id)
            if review is None:
                raise ReviewNotFound(f"Review {review_id} not found")
            if review.user_id != user_id:
                raise ReviewPermissionDenied("Only the author can edit this review")
            previous_rating = review.rating
            review.edit(rating=rating, title=title, text=text, now=self.aggregator.clock())
            uow.collect_events(review)
            uow.reviews.update(review)

        logger.info(f"Review {review_id} updated for hotel {review.hotel_id}")
        if review.rating != previous_rating:
            self.aggregator.on_review_updated(review)
        return review

    def remove_review(self, review_id: UUID, user_id: int, is_staff: bool = False) -> Review:
        with self.uow_factory() as uow:
            review = uow.reviews.get(review_id)
            if review is None:
                raise ReviewNotFound(f"Review {review_id} not found")
            if review.user_id != user_id and not is_staff:
                raise ReviewPermissionDenied("Only the author can remove this review")
            review.mark_removed()
            uow.collect_events(review)
            uow.reviews.remove(review)

        logger.info(f"Review {review_id} removed from hotel {review.hotel_id}")
        self.aggregator.on_review_removed(review)
        return review
