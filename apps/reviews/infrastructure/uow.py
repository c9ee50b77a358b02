"""Units of work exposing the review context's repositories."""

from shared.application.uow import DjangoUnitOfWork
from shared.infrastructure.memory import InMemoryUnitOfWork
from apps.reviews.infrastructure import memory
from apps.reviews.infrastructure.repositories import DjangoHotelRatingRepository, DjangoReviewRepository


class ReviewUnitOfWork(DjangoUnitOfWork):
    def _build_repositories(self):
        self.ratings = DjangoHotelRatingRepository()
        self.reviews = DjangoReviewRepository()


class InMemoryReviewUnitOfWork(InMemoryUnitOfWork):
    def _build_repositories(self):
        self.ratings = memory.InMemoryHotelRatingRepository(self)
        self.reviews = memory.InMemoryReviewRepository(self)
