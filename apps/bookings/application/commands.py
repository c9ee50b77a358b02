"""
Booking Commands

Inputs of the reservation use cases. Views and tasks build these and hand
them to the orchestrator.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID


@dataclass(frozen=True)
class PlaceBookingCommand:
    """
    Command to place a new booking

    This is the primary entry point for creating bookings.
    """
    user_id: int
    room_type_id: UUID
    check_in: date
    check_out: date
    guests_count: int = 1
    rooms_count: int = 1


@dataclass(frozen=True)
class ConfirmPaymentCommand:
    """Client-side confirmation: ask the provider for the intent's status"""
    booking_id: UUID


@dataclass(frozen=True)
class CancelBookingCommand:
    booking_id: UUID
    reason: str


@dataclass(frozen=True)
class RefundBookingCommand:
    """Refund a confirmed booking, fully when ``amount`` is None"""
    booking_id: UUID
    amount: Optional[Decimal] = None
