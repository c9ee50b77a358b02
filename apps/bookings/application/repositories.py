"""
Repository ports for the booking context

The application layer depends only on these interfaces; the Django and
in-memory implementations live in ``apps.bookings.infrastructure``.
Methods taking ``lock=True`` must hold an exclusive row lock on the
aggregate until the surrounding unit of work ends.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, Tuple
from uuid import UUID

from shared.domain.value_objects import DateRange
from apps.bookings.domain.entities import Booking, RoomTypeSnapshot
from apps.bookings.domain.inventory import RoomInventory
from apps.payments.gateway import PaymentIntent


class RoomTypeRepository(ABC):
    @abstractmethod
    def get(self, room_type_id: UUID) -> Optional[RoomTypeSnapshot]:
        ...


class InventoryRepository(ABC):
    @abstractmethod
    def get(self, room_type_id: UUID, window: Optional[DateRange] = None, lock: bool = False) -> Optional[RoomInventory]:
        """
        Load the inventory of a room type

        With ``window`` only holds and debits overlapping it are loaded.
        Returns None for an unknown room type.
        """

    @abstractmethod
    def save(self, inventory: RoomInventory):
        ...

    @abstractmethod
    def locate_hold(self, hold_id: UUID) -> Optional[Tuple[UUID, DateRange]]:
        """Room type and dates of a hold, or of the debit it was committed into."""

    @abstractmethod
    def room_types_with_expired_holds(self, now: datetime) -> List[UUID]:
        ...


class BookingRepository(ABC):
    @abstractmethod
    def get(self, booking_id: UUID, lock: bool = False) -> Optional[Booking]:
        ...

    @abstractmethod
    def add(self, booking: Booking):
        ...

    @abstractmethod
    def save(self, booking: Booking):
        ...

    @abstractmethod
    def get_by_payment_intent(self, intent_id: str) -> Optional[Booking]:
        ...

    @abstractmethod
    def list_expired_pending(self, now: datetime, limit: int) -> List[UUID]:
        """Ids of PENDING_PAYMENT bookings whose hold expired at or before ``now``."""


class PaymentIntentRepository(ABC):
    """Local shadow of provider-side payment intents."""

    @abstractmethod
    def save(self, intent: PaymentIntent, booking_id: UUID):
        ...

    @abstractmethod
    def get(self, intent_id: str) -> Optional[PaymentIntent]:
        ...
