"""URL routing for the booking domain."""

from __future__ import annotations

from django.urls import include, path  # type: ignore
from rest_framework.routers import DefaultRouter  # type: ignore

from .views import BookingViewSet, RoomTypeAvailabilityView

router = DefaultRouter()
router.register(r"bookings", BookingViewSet, basename="booking")

urlpatterns = [
    path("", include(router.urls)),
    path(
        "room-types/<uuid:room_type_id>/availability/",
        RoomTypeAvailabilityView.as_view(),
        name="room-type-availability",
    ),
]
