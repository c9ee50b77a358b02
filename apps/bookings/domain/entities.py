"""
Booking Domain Entities

Core business entities for the booking domain:
- Booking: Main aggregate representing a reservation
- BookingStatus: FSM states for booking lifecycle
- RoomTypeSnapshot: the room type data a booking is priced from
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet
from uuid import UUID
import secrets

from shared.domain.base import Aggregate, utcnow
from shared.domain.value_objects import Money, DateRange
from apps.bookings.domain.exceptions import InvalidBookingTransition


class BookingStatus(Enum):
    """
    Booking Status Finite State Machine

    State transitions:
    - PENDING_PAYMENT -> CONFIRMED (payment intent succeeded)
    - PENDING_PAYMENT -> CANCELLED (payment failed, timeout, explicit cancel)
    - CONFIRMED -> CANCELLED (cancelled without refund)
    - CONFIRMED -> REFUNDED (refund acknowledged by the provider)
    CANCELLED and REFUNDED are terminal.
    """
    PENDING_PAYMENT = 'pending_payment'
    CONFIRMED = 'confirmed'
    CANCELLED = 'cancelled'
    REFUNDED = 'refunded'


TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    BookingStatus.PENDING_PAYMENT: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.CANCELLED, BookingStatus.REFUNDED}),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.REFUNDED: frozenset(),
}


def generate_booking_code(now: datetime | None = None) -> str:
    """Human-readable booking code, e.g. BK20251027-4F9A2C"""
    now = now or utcnow()
    return f"BK{now:%Y%m%d}-{secrets.token_hex(3).upper()}"


@dataclass(frozen=True)
class RoomTypeSnapshot:
    id: UUID
    hotel_id: UUID
    name: str
    nightly_price: Money
    total_quantity: int
    capacity: int


@dataclass(eq=False)
class Booking(Aggregate):
    """
    Booking Aggregate Root

    Represents a guest's reservation of one or more units of a room type
    for a date range. Mutated only by the reservation orchestrator.

    Key invariants:
    - Booking must have valid date range (check_in < check_out)
    - Transitions follow TRANSITIONS; an invalid transition raises
      InvalidBookingTransition and leaves the booking unchanged
    - CONFIRMED requires a succeeded payment intent
    """

    booking_code: str
    user_id: int
    hotel_id: UUID
    room_type_id: UUID
    dates: DateRange
    total_price: Money
    guests_count: int = 1
    rooms_count: int = 1

    status: BookingStatus = BookingStatus.PENDING_PAYMENT
    hold_id: UUID | None = None
    hold_expires_at: datetime | None = None
    payment_intent_id: str = ''

    cancellation_reason: str = ''
    refund_id: str = ''

    confirmed_at: datetime | None = None
    cancelled_at: datetime | None = None
    refunded_at: datetime | None = None

    def __post_init__(self):
        if self.guests_count < 1:
            raise ValueError("Guests count must be at least 1")
        if self.rooms_count < 1:
            raise ValueError("Rooms count must be at least 1")

    def can_transition_to(self, target: BookingStatus) -> bool:
        return target in TRANSITIONS[self.status]

    def _transition(self, target: BookingStatus, now: datetime) -> BookingStatus:
        if not self.can_transition_to(target):
            raise InvalidBookingTransition(self.status, target)
        previous = self.status
        self.status = target
        self.touch(now)
        return previous

    def place(self):
        """Record that the booking entered PENDING_PAYMENT with a hold and an intent."""
        from apps.bookings.domain.events import BookingPlaced

        self.add_event(BookingPlaced(
            aggregate_id=self.id,
            booking_id=self.id,
            room_type_id=self.room_type_id,
            user_id=self.user_id,
            dates=self.dates,
            total_price=self.total_price,
            payment_intent_id=self.payment_intent_id,
        ))

    def confirm(self, payment_intent_id: str, payment_status: str, now: datetime):
        """
        Confirm payment (PENDING_PAYMENT -> CONFIRMED)

        The caller commits the hold to a debit in the same transaction.
        Events: BookingConfirmed
        """
        if not self.can_transition_to(BookingStatus.CONFIRMED):
            raise InvalidBookingTransition(self.status, BookingStatus.CONFIRMED)
        if payment_status != 'succeeded':
            raise InvalidBookingTransition(self.status, BookingStatus.CONFIRMED)
        if self.payment_intent_id and payment_intent_id != self.payment_intent_id:
            raise ValueError(
                f"Payment intent {payment_intent_id} does not belong to booking {self.booking_code}"
            )

        from apps.bookings.domain.events import BookingConfirmed

        self._transition(BookingStatus.CONFIRMED, now)
        self.payment_intent_id = payment_intent_id
        self.confirmed_at = now
        self.hold_expires_at = None

        self.add_event(BookingConfirmed(
            aggregate_id=self.id,
            booking_id=self.id,
            room_type_id=self.room_type_id,
            user_id=self.user_id,
            payment_intent_id=payment_intent_id,
            dates=self.dates,
        ))

    def cancel(self, reason: str, now: datetime) -> BookingStatus:
        """
        Cancel booking

        Allowed from PENDING_PAYMENT and CONFIRMED. Returns the status the
        booking was in, so the caller knows whether a hold or a debit has
        to be released.
        Events: BookingCancelled
        """
        from apps.bookings.domain.events import BookingCancelled

        previous = self._transition(BookingStatus.CANCELLED, now)
        self.cancellation_reason = reason
        self.cancelled_at = now
        self.hold_expires_at = None

        self.add_event(BookingCancelled(
            aggregate_id=self.id,
            booking_id=self.id,
            room_type_id=self.room_type_id,
            reason=reason,
            old_status=previous.value,
        ))
        return previous

    def mark_refunded(self, refund_id: str, amount: Money, relisted: bool, now: datetime):
        """
        Refund acknowledged (CONFIRMED -> REFUNDED)

        Events: BookingRefunded
        """
        from apps.bookings.domain.events import BookingRefunded

        self._transition(BookingStatus.REFUNDED, now)
        self.refund_id = refund_id
        self.refunded_at = now

        self.add_event(BookingRefunded(
            aggregate_id=self.id,
            booking_id=self.id,
            room_type_id=self.room_type_id,
            refund_id=refund_id,
            amount=amount,
            relisted=relisted,
        ))

    def is_hold_expired(self, now: datetime) -> bool:
        if self.status != BookingStatus.PENDING_PAYMENT or not self.hold_expires_at:
            return False
        return now >= self.hold_expires_at

    @property
    def is_terminal(self) -> bool:
        return not TRANSITIONS[self.status]

    @property
    def nights(self) -> int:
        """Number of nights"""
        return len(self.dates)

    def __str__(self):
        return f"Booking {self.booking_code} ({self.status.value})"

    def __repr__(self):
        return (
            f"Booking(id={self.id}, booking_code={self.booking_code}, "
            f"status={self.status.value}, dates={self.dates})"
        )
