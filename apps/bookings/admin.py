"""Admin registration for bookings and the inventory ledger.

Ledger rows are read-only here: holds and debits are only ever written by
the reservation engine.
"""

from __future__ import annotations

from django.contrib import admin

from .models import Booking, InventoryDebit, InventoryHold


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = (
        "booking_code",
        "room_type",
        "user",
        "status",
        "check_in",
        "check_out",
        "rooms_count",
        "total_price",
        "created_at",
    )
    list_filter = ("status", "check_in", "check_out")
    search_fields = ("booking_code", "payment_intent_id", "room_type__name", "user__email")
    readonly_fields = (
        "booking_code",
        "status",
        "hold_id",
        "hold_expires_at",
        "payment_intent_id",
        "refund_id",
        "total_price",
        "confirmed_at",
        "cancelled_at",
        "refunded_at",
        "created_at",
        "updated_at",
    )


class ReadOnlyLedgerAdmin(admin.ModelAdmin):
    def has_add_permission(self, request):  # type: ignore
        return False

    def has_change_permission(self, request, obj=None):  # type: ignore
        return False


@admin.register(InventoryHold)
class InventoryHoldAdmin(ReadOnlyLedgerAdmin):
    list_display = ("id", "room_type", "booking_id", "start_date", "end_date", "quantity", "expires_at")
    list_filter = ("room_type",)


@admin.register(InventoryDebit)
class InventoryDebitAdmin(ReadOnlyLedgerAdmin):
    list_display = ("id", "room_type", "booking_id", "start_date", "end_date", "quantity", "released_at")
    list_filter = ("room_type",)
