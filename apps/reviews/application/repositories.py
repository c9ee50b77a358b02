"""Repository ports for the review context."""

from abc import ABC, abstractmethod
from typing import List, Optional
from uuid import UUID

from apps.reviews.domain.entities import HotelRating, Review


class HotelRatingRepository(ABC):
    @abstractmethod
    def get(self, hotel_id: UUID, lock: bool = False) -> Optional[HotelRating]:
        ...

    @abstractmethod
    def save(self, rating: HotelRating):
        ...

    @abstractmethod
    def list_hotel_ids(self) -> List[UUID]:
        ...


class ReviewRepository(ABC):
    @abstractmethod
    def add(self, review: Review):
        """Persist a new review; raises DuplicateReviewError for a second (user, hotel) review."""

    @abstractmethod
    def get(self, review_id: UUID) -> Optional[Review]:
        ...

    @abstractmethod
    def update(self, review: Review):
        ...

    @abstractmethod
    def remove(self, review: Review):
        ...

    @abstractmethod
    def ratings_for_hotel(self, hotel_id: UUID) -> List[int]:
        ...
