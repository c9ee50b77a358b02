"""In-memory repositories for the review context."""

from typing import List, Optional
from uuid import UUID

from shared.infrastructure.memory import InMemoryStore, InMemoryUnitOfWork
from apps.reviews.application.repositories import HotelRatingRepository, ReviewRepository
from apps.reviews.domain.entities import HotelRating, Review
from apps.reviews.domain.exceptions import DuplicateReviewError

RATINGS = 'hotel_ratings'
REVIEWS = 'reviews'


def seed_hotel(store: InMemoryStore, hotel_id: UUID):
    store.put(RATINGS, hotel_id, HotelRating(hotel_id=hotel_id))


class InMemoryHotelRatingRepository(HotelRatingRepository):
    def __init__(self, uow: InMemoryUnitOfWork):
        self.uow = uow

    def get(self, hotel_id: UUID, lock: bool = False) -> Optional[HotelRating]:
        if lock:
            self.uow.lock(RATINGS, hotel_id)
        return self.uow.read(RATINGS, hotel_id)

    def save(self, rating: HotelRating):
        self.uow.stage(RATINGS, rating.hotel_id, rating)

    def list_hotel_ids(self) -> List[UUID]:
        return [rating.hotel_id for rating in self.uow.scan(RATINGS)]


class InMemoryReviewRepository(ReviewRepository):
    def __init__(self, uow: InMemoryUnitOfWork):
        self.uow = uow

    def add(self, review: Review):
        # Stands in for the (user, hotel) unique index.
        self.uow.lock('review_author', (review.user_id, review.hotel_id))
        duplicates = self.uow.scan(
            REVIEWS, lambda r: r.user_id == review.user_id and r.hotel_id == review.hotel_id
        )
        if next(iter(duplicates), None) is not None:
            raise DuplicateReviewError(
                f"User {review.user_id} has already reviewed hotel {review.hotel_id}"
            )
        self.uow.stage(REVIEWS, review.id, review)

    def get(self, review_id: UUID) -> Optional[Review]:
        return self.uow.read(REVIEWS, review_id)

    def update(self, review: Review):
        self.uow.stage(REVIEWS, review.id, review)

    def remove(self, review: Review):
        self.uow.stage_delete(REVIEWS, review.id)

    def ratings_for_hotel(self, hotel_id: UUID) -> List[int]:
        return [r.rating for r in self.uow.scan(REVIEWS, lambda r: r.hotel_id == hotel_id)]
