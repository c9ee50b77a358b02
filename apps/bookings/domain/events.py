"""
Booking Domain Events

Events that represent things that have happened in the booking domain.
These are published after successful transaction commits.
"""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from shared.domain.base import DomainEvent
from shared.domain.value_objects import Money, DateRange


# ===== Booking Events =====

@dataclass(kw_only=True)
class BookingPlaced(DomainEvent):
    """
    Event: A booking was placed and is waiting for payment

    The hold and the payment intent exist at this point.
    """
    booking_id: UUID
    room_type_id: UUID
    user_id: int
    dates: DateRange
    total_price: Money
    payment_intent_id: str


@dataclass(kw_only=True)
class BookingConfirmed(DomainEvent):
    """
    Event: Payment succeeded (PENDING_PAYMENT -> CONFIRMED)

    The hold has been converted into a permanent debit.
    """
    booking_id: UUID
    room_type_id: UUID
    user_id: int
    payment_intent_id: str
    dates: DateRange


@dataclass(kw_only=True)
class BookingCancelled(DomainEvent):
    """Event: Booking was cancelled (from PENDING_PAYMENT or CONFIRMED)"""
    booking_id: UUID
    room_type_id: UUID
    reason: str
    old_status: str  # Status before cancellation


@dataclass(kw_only=True)
class BookingRefunded(DomainEvent):
    """Event: Refund acknowledged by the provider (CONFIRMED -> REFUNDED)"""
    booking_id: UUID
    room_type_id: UUID
    refund_id: str
    amount: Money
    relisted: bool


# ===== Inventory Events =====

@dataclass(kw_only=True)
class HoldPlaced(DomainEvent):
    room_type_id: UUID
    hold_id: UUID
    booking_id: UUID
    dates: DateRange
    quantity: int
    expires_at: datetime


@dataclass(kw_only=True)
class HoldReleased(DomainEvent):
    """
    Event: A hold was removed and its nights returned to sale

    ``reason`` is one of: cancelled, payment_failed, expired, compensation.
    """
    room_type_id: UUID
    hold_id: UUID
    booking_id: UUID
    reason: str


@dataclass(kw_only=True)
class HoldCommitted(DomainEvent):
    room_type_id: UUID
    hold_id: UUID
    debit_id: UUID
    booking_id: UUID


@dataclass(kw_only=True)
class DebitReleased(DomainEvent):
    room_type_id: UUID
    debit_id: UUID
    booking_id: UUID
