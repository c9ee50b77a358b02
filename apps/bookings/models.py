"""Persistence models for bookings and the inventory ledger.

``InventoryHold`` and ``InventoryDebit`` rows are the ledger: available
units for a night are the room type's ``total_quantity`` minus live holds
and active debits covering that night. Rows are only written through
``apps.bookings.infrastructure.repositories`` under the room type row lock.
"""

from __future__ import annotations

import uuid

from django.conf import settings  # type: ignore
from django.db import models  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore


class Booking(models.Model):
    """A reservation of one or more units of a room type."""

    class Status(models.TextChoices):
        PENDING_PAYMENT = "pending_payment", _("Pending payment")
        CONFIRMED = "confirmed", _("Confirmed")
        CANCELLED = "cancelled", _("Cancelled")
        REFUNDED = "refunded", _("Refunded")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    booking_code = models.CharField(max_length=20, unique=True, editable=False)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="bookings",
    )
    hotel = models.ForeignKey("hotels.Hotel", on_delete=models.PROTECT, related_name="bookings")
    room_type = models.ForeignKey("hotels.RoomType", on_delete=models.PROTECT, related_name="bookings")
    check_in = models.DateField()
    check_out = models.DateField()
    guests_count = models.PositiveSmallIntegerField(default=1)
    rooms_count = models.PositiveSmallIntegerField(default=1)
    total_price = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default="USD")
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING_PAYMENT,
    )
    hold_id = models.UUIDField(null=True, blank=True)
    hold_expires_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text=_("Payment must settle before this moment or the booking is cancelled."),
    )
    payment_intent_id = models.CharField(max_length=255, blank=True, db_index=True)
    cancellation_reason = models.CharField(max_length=255, blank=True)
    refund_id = models.CharField(max_length=255, blank=True)
    confirmed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField()
    updated_at = models.DateTimeField()

    class Meta:
        verbose_name = _("Booking")
        verbose_name_plural = _("Bookings")
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(check_out__gt=models.F("check_in")),
                name="booking_valid_dates",
            ),
        ]
        indexes = [
            models.Index(fields=["room_type", "check_in", "check_out"], name="booking_room_dates_idx"),
            models.Index(fields=["status", "hold_expires_at"], name="booking_status_expiry_idx"),
        ]

    def __str__(self) -> str:
        return f"Booking #{self.booking_code} ({self.status})"


class InventoryHold(models.Model):
    """Provisional reservation; void once ``expires_at`` has passed."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    room_type = models.ForeignKey("hotels.RoomType", on_delete=models.CASCADE, related_name="holds")
    booking_id = models.UUIDField(unique=True)
    start_date = models.DateField()
    end_date = models.DateField()
    quantity = models.PositiveIntegerField()
    expires_at = models.DateTimeField()
    created_at = models.DateTimeField()

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=models.Q(end_date__gt=models.F("start_date")),
                name="hold_valid_dates",
            ),
        ]
        indexes = [
            models.Index(fields=["room_type", "start_date", "end_date"], name="hold_room_dates_idx"),
            models.Index(fields=["expires_at"], name="hold_expires_idx"),
        ]

    def __str__(self) -> str:
        return f"Hold {self.id} x{self.quantity} until {self.expires_at:%Y-%m-%d %H:%M}"


class InventoryDebit(models.Model):
    """Permanent consumption of inventory by a confirmed booking."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    room_type = models.ForeignKey("hotels.RoomType", on_delete=models.CASCADE, related_name="debits")
    booking_id = models.UUIDField(db_index=True)
    hold_id = models.UUIDField(unique=True)
    start_date = models.DateField()
    end_date = models.DateField()
    quantity = models.PositiveIntegerField()
    created_at = models.DateTimeField()
    released_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=models.Q(end_date__gt=models.F("start_date")),
                name="debit_valid_dates",
            ),
        ]
        indexes = [
            models.Index(fields=["room_type", "start_date", "end_date"], name="debit_room_dates_idx"),
        ]

    def __str__(self) -> str:
        return f"Debit {self.id} x{self.quantity} for booking {self.booking_id}"
