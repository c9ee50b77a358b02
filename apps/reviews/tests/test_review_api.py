"""Integration tests for review endpoints, persistence and rating tasks."""

from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

from django.test import TestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from apps.bookings import bootstrap
from apps.bookings.tests.support import create_user
from apps.hotels.models import Hotel
from apps.reviews.domain.entities import Review as ReviewEntity
from apps.reviews.domain.exceptions import DuplicateReviewError
from apps.reviews.infrastructure.uow import ReviewUnitOfWork
from apps.reviews.models import Review
from apps.reviews.tasks import reconcile_hotel_ratings, recompute_hotel_rating


class ReviewAPITests(APITestCase):
    def setUp(self) -> None:
        bootstrap.get_engine.cache_clear()
        self.addCleanup(bootstrap.get_engine.cache_clear)
        self.hotel = Hotel.objects.create(name="Harbour View", city="Porto")
        self.author = create_user("author")
        self.list_url = reverse("review-list")

    def _post(self, user, rating, hotel=None):
        self.client.force_authenticate(user)
        return self.client.post(
            self.list_url,
            {"hotel": str((hotel or self.hotel).id), "rating": rating, "title": "Stay", "text": "Fine"},
            format="json",
        )

    def test_create_updates_hotel_rating(self) -> None:
        for index, rating in enumerate([5, 4, 3]):
            response = self._post(create_user(f"guest{index}"), rating)
            self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)

        self.hotel.refresh_from_db()
        self.assertEqual(self.hotel.average_rating, Decimal("4.00"))
        self.assertEqual(self.hotel.review_count, 3)
        self.assertIsNotNone(self.hotel.rating_updated_at)
        self.assertEqual(response.data["hotel_name"], "Harbour View")

    def test_delete_recomputes_rating(self) -> None:
        self._post(create_user("fan"), 5)
        response = self._post(self.author, 2)

        response = self.client.delete(reverse("review-detail", args=[response.data["id"]]))

        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.hotel.refresh_from_db()
        self.assertEqual((self.hotel.average_rating, self.hotel.review_count), (Decimal("5.00"), 1))

    def test_duplicate_review_conflicts(self) -> None:
        self._post(self.author, 4)

        response = self._post(self.author, 1)

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["code"], "duplicate_review")
        self.hotel.refresh_from_db()
        self.assertEqual(self.hotel.review_count, 1)

    def test_rating_out_of_range(self) -> None:
        response = self._post(self.author, 6)

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(Review.objects.exists())

    def test_unknown_hotel(self) -> None:
        self.client.force_authenticate(self.author)

        response = self.client.post(self.list_url, {"hotel": str(uuid4()), "rating": 4}, format="json")

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_patch_rating_recomputes_summary(self) -> None:
        self._post(create_user("fan"), 5)
        response = self._post(self.author, 1)
        url = reverse("review-detail", args=[response.data["id"]])

        response = self.client.patch(url, {"rating": 3, "text": "Staff fixed the heating"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["rating"], 3)
        self.assertEqual(response.data["text"], "Staff fixed the heating")
        self.hotel.refresh_from_db()
        self.assertEqual((self.hotel.average_rating, self.hotel.review_count), (Decimal("4.00"), 2))

    def test_patch_by_someone_else_is_forbidden(self) -> None:
        response = self._post(self.author, 4)
        url = reverse("review-detail", args=[response.data["id"]])
        self.client.force_authenticate(create_user("intruder"))

        response = self.client.patch(url, {"rating": 1}, format="json")

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(Review.objects.get().rating, 4)

    def test_patch_rating_out_of_range(self) -> None:
        response = self._post(self.author, 4)
        url = reverse("review-detail", args=[response.data["id"]])

        response = self.client.patch(url, {"rating": 0}, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_only_author_may_delete(self) -> None:
        response = self._post(self.author, 4)
        self.client.force_authenticate(create_user("intruder"))

        response = self.client.delete(reverse("review-detail", args=[response.data["id"]]))

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(Review.objects.count(), 1)

    def test_list_is_public_and_filterable(self) -> None:
        other = Hotel.objects.create(name="Old Town Inn")
        self._post(self.author, 4)
        self._post(self.author, 3, hotel=other)
        self.client.force_authenticate(None)

        response = self.client.get(self.list_url, {"hotel": str(other.id)})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]["rating"], 3)

    def test_anonymous_cannot_create(self) -> None:
        self.client.force_authenticate(None)

        response = self.client.post(self.list_url, {"hotel": str(self.hotel.id), "rating": 4}, format="json")

        self.assertIn(response.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))


class ReviewPersistenceTests(TestCase):
    def setUp(self) -> None:
        bootstrap.get_engine.cache_clear()
        self.addCleanup(bootstrap.get_engine.cache_clear)
        self.hotel = Hotel.objects.create(name="Harbour View")
        self.user = create_user()

    def _review(self, rating=4, user=None) -> ReviewEntity:
        return ReviewEntity(user_id=(user or self.user).id, hotel_id=self.hotel.id, rating=rating)

    def test_unique_author_and_hotel(self) -> None:
        with ReviewUnitOfWork() as uow:
            uow.reviews.add(self._review())

        with self.assertRaises(DuplicateReviewError):
            with ReviewUnitOfWork() as uow:
                uow.reviews.add(self._review(rating=1))

        self.assertEqual(Review.objects.count(), 1)

    def test_recompute_task(self) -> None:
        with ReviewUnitOfWork() as uow:
            uow.reviews.add(self._review(5))
            uow.reviews.add(self._review(2, user=create_user("second")))

        result = recompute_hotel_rating.delay(str(self.hotel.id)).get()

        self.assertEqual(result["average_rating"], "3.50")
        self.assertEqual(result["review_count"], 2)
        self.hotel.refresh_from_db()
        self.assertEqual(self.hotel.average_rating, Decimal("3.50"))

    def test_recompute_task_for_deleted_hotel(self) -> None:
        self.assertIsNone(recompute_hotel_rating.delay(str(uuid4())).get())

    def test_reconcile_task(self) -> None:
        with ReviewUnitOfWork() as uow:
            uow.reviews.add(self._review(4))

        self.assertEqual(reconcile_hotel_ratings.delay().get(), {"fixed": 1})
        self.assertEqual(reconcile_hotel_ratings.delay().get(), {"fixed": 0})
        self.hotel.refresh_from_db()
        self.assertEqual(self.hotel.review_count, 1)
