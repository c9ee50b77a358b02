"""Serializers for the booking domain.

Bookings are read from the reservation engine rather than the ORM, so
these are plain serializers over the domain ``Booking`` aggregate.
"""

from __future__ import annotations

from datetime import date

from rest_framework import serializers  # type: ignore


class BookingCreateSerializer(serializers.Serializer):
    """Создание брони гостем."""

    room_type = serializers.UUIDField()
    check_in = serializers.DateField()
    check_out = serializers.DateField()
    guests_count = serializers.IntegerField(min_value=1, default=1)
    rooms_count = serializers.IntegerField(min_value=1, default=1)

    def validate(self, attrs):  # type: ignore
        check_in: date = attrs["check_in"]
        check_out: date = attrs["check_out"]
        if check_in >= check_out:
            raise serializers.ValidationError("Check-out must be later than check-in.")
        return attrs


class BookingCancelSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=255, required=False, default="Cancelled by guest")


class BookingRefundSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)


class AvailabilityQuerySerializer(serializers.Serializer):
    check_in = serializers.DateField()
    check_out = serializers.DateField()

    def validate(self, attrs):  # type: ignore
        if attrs["check_in"] >= attrs["check_out"]:
            raise serializers.ValidationError("Check-out must be later than check-in.")
        return attrs


class BookingSerializer(serializers.Serializer):
    """Read representation of a booking aggregate."""

    id = serializers.UUIDField(read_only=True)
    booking_code = serializers.CharField(read_only=True)
    user_id = serializers.IntegerField(read_only=True)
    hotel_id = serializers.UUIDField(read_only=True)
    room_type_id = serializers.UUIDField(read_only=True)
    check_in = serializers.DateField(source="dates.start_date", read_only=True)
    check_out = serializers.DateField(source="dates.end_date", read_only=True)
    nights = serializers.IntegerField(read_only=True)
    guests_count = serializers.IntegerField(read_only=True)
    rooms_count = serializers.IntegerField(read_only=True)
    total_price = serializers.DecimalField(
        source="total_price.amount", max_digits=12, decimal_places=2, read_only=True
    )
    currency = serializers.CharField(source="total_price.currency", read_only=True)
    status = serializers.SerializerMethodField()
    hold_expires_at = serializers.DateTimeField(read_only=True)
    payment_intent_id = serializers.CharField(read_only=True)
    cancellation_reason = serializers.CharField(read_only=True)
    refund_id = serializers.CharField(read_only=True)
    confirmed_at = serializers.DateTimeField(read_only=True)
    cancelled_at = serializers.DateTimeField(read_only=True)
    refunded_at = serializers.DateTimeField(read_only=True)
    created_at = serializers.DateTimeField(read_only=True)

    def get_status(self, booking) -> str:  # type: ignore
        return booking.status.value
