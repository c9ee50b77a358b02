"""Django ORM repositories for the review context."""

from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from django.db import IntegrityError, transaction  # type: ignore

from apps.bookings.infrastructure.repositories import _lock_queryset_if_possible
from apps.hotels.models import Hotel
from apps.reviews.application.repositories import HotelRatingRepository, ReviewRepository
from apps.reviews.domain.entities import HotelRating, Review
from apps.reviews.domain.exceptions import DuplicateReviewError
from apps.reviews.models import Review as ReviewModel


class DjangoHotelRatingRepository(HotelRatingRepository):
    def get(self, hotel_id: UUID, lock: bool = False) -> Optional[HotelRating]:
        queryset = Hotel.objects.filter(pk=hotel_id)
        if lock:
            queryset = _lock_queryset_if_possible(queryset)
        hotel = queryset.first()
        if hotel is None:
            return None
        return HotelRating(
            hotel_id=hotel.id,
            average_rating=hotel.average_rating,
            review_count=hotel.review_count,
            rating_updated_at=hotel.rating_updated_at,
        )

    def save(self, rating: HotelRating):
        Hotel.objects.filter(pk=rating.hotel_id).update(
            average_rating=rating.average_rating,
            review_count=rating.review_count,
            rating_updated_at=rating.rating_updated_at,
        )

    def list_hotel_ids(self) -> List[UUID]:
        return list(Hotel.objects.values_list("id", flat=True))


class DjangoReviewRepository(ReviewRepository):
    def add(self, review: Review):
        try:
            # Savepoint, so the surrounding transaction stays usable after a conflict.
            with transaction.atomic():
                ReviewModel.objects.create(
                    id=review.id,
                    user_id=review.user_id,
                    hotel_id=review.hotel_id,
                    rating=review.rating,
                    title=review.title,
                    text=review.text,
                    created_at=review.created_at,
                )
        except IntegrityError as e:
            raise DuplicateReviewError(
                f"User {review.user_id} has already reviewed hotel {review.hotel_id}"
            ) from e

    def get(self, review_id: UUID) -> Optional[Review]:
        row = ReviewModel.objects.filter(pk=review_id).first()
        if row is None:
            return None
        return Review(
            id=row.id,
            user_id=row.user_id,
            hotel_id=row.hotel_id,
            rating=row.rating,
            title=row.title,
            text=row.text,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def update(self, review: Review):
        ReviewModel.objects.filter(pk=review.id).update(
            rating=review.rating,
            title=review.title,
            text=review.text,
            updated_at=review.updated_at,
        )

    def remove(self, review: Review):
        ReviewModel.objects.filter(pk=review.id).delete()

    def ratings_for_hotel(self, hotel_id: UUID) -> List[int]:
        return list(ReviewModel.objects.filter(hotel_id=hotel_id).values_list("rating", flat=True))
