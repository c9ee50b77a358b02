"""
Review Domain Events

Published after the transaction that wrote the review or the summary commits.
"""

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from shared.domain.base import DomainEvent


@dataclass(kw_only=True)
class ReviewCreated(DomainEvent):
    review_id: UUID
    hotel_id: UUID
    user_id: int
    rating: int


@dataclass(kw_only=True)
class ReviewUpdated(DomainEvent):
    review_id: UUID
    hotel_id: UUID
    user_id: int
    rating: int
    previous_rating: int

    @property
    def rating_changed(self) -> bool:
        return self.rating != self.previous_rating


@dataclass(kw_only=True)
class ReviewRemoved(DomainEvent):
    review_id: UUID
    hotel_id: UUID
    user_id: int


@dataclass(kw_only=True)
class HotelRatingUpdated(DomainEvent):
    """
    Event: A hotel's materialised rating changed

    Triggers:
    - Search index refresh (owned by the catalogue service)
    """
    hotel_id: UUID
    average_rating: Decimal
    review_count: int
    previous_average: Decimal
    previous_count: int
