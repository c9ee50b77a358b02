"""API views for the booking domain.

Every write goes through the reservation engine; domain errors are turned
into HTTP responses by ``shared.api.exceptions.engine_exception_handler``.
"""

from __future__ import annotations

from uuid import UUID

from rest_framework import permissions, status, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.exceptions import NotFound  # type: ignore
from rest_framework.response import Response  # type: ignore
from rest_framework.views import APIView  # type: ignore

from shared.domain.value_objects import DateRange
from apps.bookings import bootstrap
from apps.bookings.application.commands import (
    CancelBookingCommand,
    ConfirmPaymentCommand,
    PlaceBookingCommand,
    RefundBookingCommand,
)
from .serializers import (
    AvailabilityQuerySerializer,
    BookingCancelSerializer,
    BookingCreateSerializer,
    BookingRefundSerializer,
    BookingSerializer,
)


def _is_staff(user) -> bool:
    return getattr(user, "is_staff", False) or getattr(user, "is_superuser", False)


class BookingViewSet(viewsets.ViewSet):
    """Viewset для создания и управления бронированиями."""

    permission_classes = [permissions.IsAuthenticated]
    lookup_value_regex = "[0-9a-f-]{36}"

    def _get_booking(self, request, pk):
        """Load a booking the caller may see; other users' bookings read as missing."""
        booking = bootstrap.get_engine().orchestrator.get_booking(UUID(pk))
        if booking.user_id != request.user.id and not _is_staff(request.user):
            raise NotFound("Booking not found.")
        return booking

    def create(self, request):  # type: ignore
        serializer = BookingCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        engine = bootstrap.get_engine()
        booking = engine.bus.handle_command(
            PlaceBookingCommand(
                user_id=request.user.id,
                room_type_id=data["room_type"],
                check_in=data["check_in"],
                check_out=data["check_out"],
                guests_count=data["guests_count"],
                rooms_count=data["rooms_count"],
            )
        )
        intent = engine.orchestrator.get_payment_intent(booking.payment_intent_id)

        payload = dict(BookingSerializer(booking).data)
        payload["client_secret"] = intent.client_secret if intent else ""
        return Response(payload, status=status.HTTP_201_CREATED)

    def retrieve(self, request, pk=None):  # type: ignore
        booking = self._get_booking(request, pk)
        return Response(BookingSerializer(booking).data)

    @action(detail=True, methods=["post"])
    def confirm(self, request, pk=None):  # type: ignore
        """Client-side confirmation: asks the provider for the intent's current state."""
        booking = self._get_booking(request, pk)
        booking = bootstrap.get_engine().bus.handle_command(ConfirmPaymentCommand(booking_id=booking.id))
        return Response(BookingSerializer(booking).data)

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):  # type: ignore
        booking = self._get_booking(request, pk)
        serializer = BookingCancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        booking = bootstrap.get_engine().bus.handle_command(
            CancelBookingCommand(booking_id=booking.id, reason=serializer.validated_data["reason"])
        )
        return Response(BookingSerializer(booking).data)

    @action(detail=True, methods=["post"], permission_classes=[permissions.IsAdminUser])
    def refund(self, request, pk=None):  # type: ignore
        serializer = BookingRefundSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        booking = bootstrap.get_engine().bus.handle_command(
            RefundBookingCommand(booking_id=UUID(pk), amount=serializer.validated_data.get("amount"))
        )
        return Response(BookingSerializer(booking).data)


class RoomTypeAvailabilityView(APIView):
    """Units of a room type free on every night of ``[check_in, check_out)``."""

    permission_classes = [permissions.AllowAny]

    def get(self, request, room_type_id: UUID):  # type: ignore
        serializer = AvailabilityQuerySerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        dates = DateRange(serializer.validated_data["check_in"], serializer.validated_data["check_out"])

        available = bootstrap.get_engine().ledger.availability(room_type_id, dates)
        return Response(
            {
                "room_type_id": str(room_type_id),
                "check_in": dates.start_date.isoformat(),
                "check_out": dates.end_date.isoformat(),
                "available": available,
            }
        )
