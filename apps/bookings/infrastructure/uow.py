"""Units of work exposing the booking context's repositories."""

from shared.application.uow import DjangoUnitOfWork
from shared.infrastructure.memory import InMemoryUnitOfWork
from apps.bookings.infrastructure import memory
from apps.bookings.infrastructure.repositories import (
    DjangoBookingRepository,
    DjangoInventoryRepository,
    DjangoPaymentIntentRepository,
    DjangoRoomTypeRepository,
)


class BookingUnitOfWork(DjangoUnitOfWork):
    """
    Usage:
        with BookingUnitOfWork(message_bus) as uow:
            booking = uow.bookings.get(booking_id, lock=True)
            inventory = uow.inventories.get(booking.room_type_id, window=booking.dates, lock=True)
            ...
    """

    def _build_repositories(self):
        self.room_types = DjangoRoomTypeRepository()
        self.inventories = DjangoInventoryRepository()
        self.bookings = DjangoBookingRepository()
        self.payment_intents = DjangoPaymentIntentRepository()


class InMemoryBookingUnitOfWork(InMemoryUnitOfWork):
    def _build_repositories(self):
        self.room_types = memory.InMemoryRoomTypeRepository(self)
        self.inventories = memory.InMemoryInventoryRepository(self)
        self.bookings = memory.InMemoryBookingRepository(self)
        self.payment_intents = memory.InMemoryPaymentIntentRepository(self)
