"""In-memory repositories for the booking context."""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple
from uuid import UUID

from shared.domain.value_objects import DateRange
from shared.infrastructure.memory import InMemoryStore, InMemoryUnitOfWork
from apps.bookings.application.repositories import (
    BookingRepository,
    InventoryRepository,
    PaymentIntentRepository,
    RoomTypeRepository,
)
from apps.bookings.domain.entities import Booking, BookingStatus, RoomTypeSnapshot
from apps.bookings.domain.inventory import RoomInventory
from apps.payments.gateway import PaymentIntent

ROOM_TYPES = 'room_types'
INVENTORIES = 'inventories'
BOOKINGS = 'bookings'
PAYMENT_INTENTS = 'payment_intents'


@dataclass
class _IntentRecord:
    id: str
    intent: PaymentIntent
    booking_id: UUID


def seed_room_type(store: InMemoryStore, room_type: RoomTypeSnapshot):
    """Register a room type and its empty inventory."""
    store.put(ROOM_TYPES, room_type.id, room_type)
    store.put(INVENTORIES, room_type.id, RoomInventory(
        room_type_id=room_type.id,
        total_quantity=room_type.total_quantity,
    ))


class InMemoryRoomTypeRepository(RoomTypeRepository):
    def __init__(self, uow: InMemoryUnitOfWork):
        self.uow = uow

    def get(self, room_type_id: UUID) -> Optional[RoomTypeSnapshot]:
        return self.uow.read(ROOM_TYPES, room_type_id)


class InMemoryInventoryRepository(InventoryRepository):
    """Always loads the whole aggregate; ``window`` is only an optimisation hint."""

    def __init__(self, uow: InMemoryUnitOfWork):
        self.uow = uow

    def get(self, room_type_id: UUID, window: Optional[DateRange] = None, lock: bool = False) -> Optional[RoomInventory]:
        if lock:
            self.uow.lock(INVENTORIES, room_type_id)
        inventory = self.uow.read(INVENTORIES, room_type_id)
        if inventory is None:
            room_type = self.uow.read(ROOM_TYPES, room_type_id)
            if room_type is None:
                return None
            inventory = RoomInventory(room_type_id=room_type_id, total_quantity=room_type.total_quantity)
        return inventory

    def save(self, inventory: RoomInventory):
        self.uow.stage(INVENTORIES, inventory.room_type_id, inventory)

    def locate_hold(self, hold_id: UUID) -> Optional[Tuple[UUID, DateRange]]:
        for inventory in self.uow.scan(INVENTORIES):
            for hold in inventory.holds:
                if hold.id == hold_id:
                    return inventory.room_type_id, hold.dates
            for debit in inventory.debits:
                if debit.hold_id == hold_id and debit.is_active:
                    return inventory.room_type_id, debit.dates
        return None

    def room_types_with_expired_holds(self, now: datetime) -> List[UUID]:
        return [
            inventory.room_type_id
            for inventory in self.uow.scan(INVENTORIES, lambda inv: bool(inv.expired_holds(now)))
        ]


class InMemoryBookingRepository(BookingRepository):
    def __init__(self, uow: InMemoryUnitOfWork):
        self.uow = uow

    def get(self, booking_id: UUID, lock: bool = False) -> Optional[Booking]:
        if lock:
            self.uow.lock(BOOKINGS, booking_id)
        return self.uow.read(BOOKINGS, booking_id)

    def add(self, booking: Booking):
        self.uow.stage(BOOKINGS, booking.id, booking)

    save = add

    def get_by_payment_intent(self, intent_id: str) -> Optional[Booking]:
        matches = self.uow.scan(BOOKINGS, lambda b: b.payment_intent_id == intent_id)
        return next(iter(matches), None)

    def list_expired_pending(self, now: datetime, limit: int) -> List[UUID]:
        expired = sorted(
            self.uow.scan(BOOKINGS, lambda b: b.status is BookingStatus.PENDING_PAYMENT and b.is_hold_expired(now)),
            key=lambda b: b.hold_expires_at,
        )
        return [b.id for b in expired[:limit]]


class InMemoryPaymentIntentRepository(PaymentIntentRepository):
    def __init__(self, uow: InMemoryUnitOfWork):
        self.uow = uow

    def save(self, intent: PaymentIntent, booking_id: UUID):
        self.uow.stage(PAYMENT_INTENTS, intent.id, _IntentRecord(id=intent.id, intent=intent, booking_id=booking_id))

    def get(self, intent_id: str) -> Optional[PaymentIntent]:
        record = self.uow.read(PAYMENT_INTENTS, intent_id)
        return record.intent if record else None
