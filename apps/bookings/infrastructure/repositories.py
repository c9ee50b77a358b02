"""Django ORM repositories for the booking context.

Aggregates are mapped to rows and back here; nothing above this module
touches the ORM. ``lock=True`` issues ``SELECT ... FOR UPDATE`` on the
aggregate's root row, which serialises every ledger mutation for a room
type and every state change of a booking.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional, Set, Tuple
from uuid import UUID

from django.db import transaction  # type: ignore
from django.db.utils import NotSupportedError  # type: ignore

from shared.domain.value_objects import DateRange, Money
from apps.bookings.application.repositories import (
    BookingRepository,
    InventoryRepository,
    PaymentIntentRepository,
    RoomTypeRepository,
)
from apps.bookings.domain.entities import Booking, BookingStatus, RoomTypeSnapshot
from apps.bookings.domain.inventory import Debit, Hold, RoomInventory
from apps.bookings.models import Booking as BookingModel
from apps.bookings.models import InventoryDebit, InventoryHold
from apps.hotels.models import RoomType
from apps.payments.gateway import PaymentIntent, PaymentIntentStatus
from apps.payments.models import PaymentIntentRecord


def _lock_queryset_if_possible(queryset):
    """Apply select_for_update when inside transaction.atomic()."""

    if not transaction.get_connection().in_atomic_block:
        return queryset

    try:
        return queryset.select_for_update()
    except NotSupportedError:
        return queryset


def _overlapping(queryset, window: Optional[DateRange]):
    if window is None:
        return queryset
    return queryset.filter(start_date__lt=window.end_date, end_date__gt=window.start_date)


class DjangoRoomTypeRepository(RoomTypeRepository):
    def get(self, room_type_id: UUID) -> Optional[RoomTypeSnapshot]:
        room_type = RoomType.objects.filter(pk=room_type_id).first()
        if room_type is None:
            return None
        return RoomTypeSnapshot(
            id=room_type.id,
            hotel_id=room_type.hotel_id,
            name=room_type.name,
            nightly_price=Money(room_type.nightly_price, room_type.currency),
            total_quantity=room_type.total_quantity,
            capacity=room_type.capacity,
        )


class DjangoInventoryRepository(InventoryRepository):
    """
    Maps a RoomInventory onto InventoryHold / InventoryDebit rows

    ``save`` writes the difference against what ``get`` loaded: holds that
    disappeared are deleted, new holds and debits are inserted and debit
    releases are updated. Released debits are never loaded.
    """

    def __init__(self):
        self._loaded: Dict[UUID, Tuple[Set[UUID], Set[UUID]]] = {}

    def get(self, room_type_id: UUID, window: Optional[DateRange] = None, lock: bool = False) -> Optional[RoomInventory]:
        queryset = RoomType.objects.filter(pk=room_type_id)
        if lock:
            queryset = _lock_queryset_if_possible(queryset)
        room_type = queryset.first()
        if room_type is None:
            return None

        holds = [
            Hold(
                id=row.id,
                room_type_id=row.room_type_id,
                booking_id=row.booking_id,
                dates=DateRange(row.start_date, row.end_date),
                quantity=row.quantity,
                expires_at=row.expires_at,
                created_at=row.created_at,
            )
            for row in _overlapping(InventoryHold.objects.filter(room_type_id=room_type_id), window)
        ]
        debits = [
            Debit(
                id=row.id,
                room_type_id=row.room_type_id,
                booking_id=row.booking_id,
                hold_id=row.hold_id,
                dates=DateRange(row.start_date, row.end_date),
                quantity=row.quantity,
                created_at=row.created_at,
                released_at=row.released_at,
            )
            for row in _overlapping(
                InventoryDebit.objects.filter(room_type_id=room_type_id, released_at__isnull=True),
                window,
            )
        ]
        self._loaded[room_type_id] = ({h.id for h in holds}, {d.id for d in debits})
        return RoomInventory(
            room_type_id=room_type.id,
            total_quantity=room_type.total_quantity,
            holds=holds,
            debits=debits,
        )

    def save(self, inventory: RoomInventory):
        loaded_holds, loaded_debits = self._loaded.get(inventory.room_type_id, (set(), set()))
        current_holds = {h.id for h in inventory.holds}

        removed = loaded_holds - current_holds
        if removed:
            InventoryHold.objects.filter(pk__in=removed).delete()

        InventoryHold.objects.bulk_create([
            InventoryHold(
                id=h.id,
                room_type_id=h.room_type_id,
                booking_id=h.booking_id,
                start_date=h.dates.start_date,
                end_date=h.dates.end_date,
                quantity=h.quantity,
                expires_at=h.expires_at,
                created_at=h.created_at,
            )
            for h in inventory.holds
            if h.id not in loaded_holds
        ])

        InventoryDebit.objects.bulk_create([
            InventoryDebit(
                id=d.id,
                room_type_id=d.room_type_id,
                booking_id=d.booking_id,
                hold_id=d.hold_id,
                start_date=d.dates.start_date,
                end_date=d.dates.end_date,
                quantity=d.quantity,
                created_at=d.created_at,
                released_at=d.released_at,
            )
            for d in inventory.debits
            if d.id not in loaded_debits
        ])
        for debit in inventory.debits:
            if debit.id in loaded_debits and debit.released_at is not None:
                InventoryDebit.objects.filter(pk=debit.id).update(released_at=debit.released_at)

        self._loaded[inventory.room_type_id] = (current_holds, {d.id for d in inventory.debits if d.is_active})

    def locate_hold(self, hold_id: UUID) -> Optional[Tuple[UUID, DateRange]]:
        row = InventoryHold.objects.filter(pk=hold_id).values_list("room_type_id", "start_date", "end_date").first()
        if row is None:
            row = (
                InventoryDebit.objects.filter(hold_id=hold_id, released_at__isnull=True)
                .values_list("room_type_id", "start_date", "end_date")
                .first()
            )
        if row is None:
            return None
        room_type_id, start_date, end_date = row
        return room_type_id, DateRange(start_date, end_date)

    def room_types_with_expired_holds(self, now: datetime) -> List[UUID]:
        return list(
            InventoryHold.objects.filter(expires_at__lte=now)
            .values_list("room_type_id", flat=True)
            .distinct()
        )


def _booking_to_domain(row: BookingModel) -> Booking:
    return Booking(
        id=row.id,
        booking_code=row.booking_code,
        user_id=row.user_id,
        hotel_id=row.hotel_id,
        room_type_id=row.room_type_id,
        dates=DateRange(row.check_in, row.check_out),
        total_price=Money(row.total_price, row.currency),
        guests_count=row.guests_count,
        rooms_count=row.rooms_count,
        status=BookingStatus(row.status),
        hold_id=row.hold_id,
        hold_expires_at=row.hold_expires_at,
        payment_intent_id=row.payment_intent_id,
        cancellation_reason=row.cancellation_reason,
        refund_id=row.refund_id,
        confirmed_at=row.confirmed_at,
        cancelled_at=row.cancelled_at,
        refunded_at=row.refunded_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _booking_fields(booking: Booking) -> dict:
    return {
        "booking_code": booking.booking_code,
        "user_id": booking.user_id,
        "hotel_id": booking.hotel_id,
        "room_type_id": booking.room_type_id,
        "check_in": booking.dates.start_date,
        "check_out": booking.dates.end_date,
        "guests_count": booking.guests_count,
        "rooms_count": booking.rooms_count,
        "total_price": booking.total_price.amount,
        "currency": booking.total_price.currency,
        "status": booking.status.value,
        "hold_id": booking.hold_id,
        "hold_expires_at": booking.hold_expires_at,
        "payment_intent_id": booking.payment_intent_id,
        "cancellation_reason": booking.cancellation_reason,
        "refund_id": booking.refund_id,
        "confirmed_at": booking.confirmed_at,
        "cancelled_at": booking.cancelled_at,
        "refunded_at": booking.refunded_at,
        "updated_at": booking.updated_at,
    }


class DjangoBookingRepository(BookingRepository):
    def get(self, booking_id: UUID, lock: bool = False) -> Optional[Booking]:
        queryset = BookingModel.objects.filter(pk=booking_id)
        if lock:
            queryset = _lock_queryset_if_possible(queryset)
        row = queryset.first()
        return _booking_to_domain(row) if row else None

    def add(self, booking: Booking):
        BookingModel.objects.create(id=booking.id, created_at=booking.created_at, **_booking_fields(booking))

    def save(self, booking: Booking):
        BookingModel.objects.filter(pk=booking.id).update(**_booking_fields(booking))

    def get_by_payment_intent(self, intent_id: str) -> Optional[Booking]:
        row = BookingModel.objects.filter(payment_intent_id=intent_id).first()
        return _booking_to_domain(row) if row else None

    def list_expired_pending(self, now: datetime, limit: int) -> List[UUID]:
        return list(
            BookingModel.objects.filter(
                status=BookingModel.Status.PENDING_PAYMENT,
                hold_expires_at__lte=now,
            )
            .order_by("hold_expires_at")
            .values_list("id", flat=True)[:limit]
        )


class DjangoPaymentIntentRepository(PaymentIntentRepository):
    def save(self, intent: PaymentIntent, booking_id: UUID):
        defaults = {
            "booking_id": booking_id,
            "amount": intent.amount.amount,
            "currency": intent.amount.currency,
            "status": intent.status.value,
            "metadata": dict(intent.metadata),
        }
        if intent.client_secret:
            defaults["client_secret"] = intent.client_secret
        PaymentIntentRecord.objects.update_or_create(intent_id=intent.id, defaults=defaults)

    def get(self, intent_id: str) -> Optional[PaymentIntent]:
        row = PaymentIntentRecord.objects.filter(pk=intent_id).first()
        if row is None:
            return None
        return PaymentIntent(
            id=row.intent_id,
            amount=Money(row.amount, row.currency),
            status=PaymentIntentStatus(row.status),
            client_secret=row.client_secret,
            metadata=row.metadata,
        )
