"""
Room Inventory Aggregate

This is the CRITICAL aggregate for preventing overbooking.
All room-night reservations MUST go through this aggregate.

A room type has a fixed number of physical units (``total_quantity``).
For every night the available count is:

    total_quantity - (live holds covering the night) - (active debits covering the night)

A hold past its expiry is void at read time, even before the sweep removes
it. The aggregate is loaded under the room-type row lock, so the
availability check and the hold creation happen in one critical section.

Strategy (Defense in Depth):
1. Domain validation: try_reserve() checks every night of the range
2. Invariant re-check: every mutation asserts available >= 0
3. Pessimistic locking: SELECT FOR UPDATE on the room type row
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional
from uuid import UUID, uuid4

from shared.domain.base import Aggregate, ValueObject, utcnow
from shared.domain.value_objects import DateRange
from apps.bookings.domain.exceptions import HoldExpiredError, InventoryInvariantViolation


@dataclass(kw_only=True)
class Hold:
    """
    Provisional, time-bounded reservation of units for a booking

    Converted to a Debit on confirmation, deleted on release or expiry.
    """
    room_type_id: UUID
    booking_id: UUID
    dates: DateRange
    quantity: int
    expires_at: datetime
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        if self.quantity < 1:
            raise ValueError("Hold quantity must be at least 1")

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def covers(self, night: date) -> bool:
        return self.dates.contains(night)


@dataclass(kw_only=True)
class Debit:
    """Permanent consumption of inventory by a confirmed booking."""
    room_type_id: UUID
    booking_id: UUID
    hold_id: UUID
    dates: DateRange
    quantity: int
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=utcnow)
    released_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.released_at is None

    def covers(self, night: date) -> bool:
        return self.dates.contains(night)


@dataclass(frozen=True)
class InsufficientInventory(ValueObject):
    """Outcome of a reservation attempt that did not fit."""
    room_type_id: UUID
    dates: DateRange
    requested: int
    available: int


@dataclass(eq=False)
class RoomInventory(Aggregate):
    """
    Inventory Aggregate Root for one room type

    Key invariants:
    - For every night, available >= 0
    - At most one hold per booking
    - A debit is created only from a hold of the same booking

    The aggregate may be loaded for a window of dates only (holds and
    debits overlapping the window); every method is exact for nights inside
    the loaded window.

    Usage:
        inventory = uow.inventories.get(room_type_id, window=dates, lock=True)
        outcome = inventory.try_reserve(booking_id, dates, 1, expires_at, now)
        if isinstance(outcome, InsufficientInventory):
            ...
        uow.inventories.save(inventory)
    """

    room_type_id: UUID
    total_quantity: int
    holds: List[Hold] = field(default_factory=list)
    debits: List[Debit] = field(default_factory=list)

    def __post_init__(self):
        self.id = self.room_type_id
        if self.total_quantity < 0:
            raise ValueError("Total quantity cannot be negative")

    # ----- queries -----

    def _reserved_on(self, night: date, now: datetime) -> int:
        held = sum(h.quantity for h in self.holds if h.covers(night) and not h.is_expired(now))
        debited = sum(d.quantity for d in self.debits if d.covers(night) and d.is_active)
        return held + debited

    def available_on(self, night: date, now: datetime) -> int:
        return self.total_quantity - self._reserved_on(night, now)

    def availability(self, dates: DateRange, now: datetime) -> int:
        """Minimum available count across the nights of ``dates``."""
        return max(0, min(self.available_on(night, now) for night in dates.nights()))

    def get_hold(self, hold_id: UUID) -> Hold | None:
        return next((h for h in self.holds if h.id == hold_id), None)

    def hold_for_booking(self, booking_id: UUID) -> Hold | None:
        return next((h for h in self.holds if h.booking_id == booking_id), None)

    def debit_for_booking(self, booking_id: UUID) -> Debit | None:
        return next((d for d in self.debits if d.booking_id == booking_id and d.is_active), None)

    def expired_holds(self, now: datetime) -> List[Hold]:
        return [h for h in self.holds if h.is_expired(now)]

    # ----- mutations -----

    def try_reserve(
        self,
        booking_id: UUID,
        dates: DateRange,
        quantity: int,
        expires_at: datetime,
        now: datetime,
    ) -> Hold | InsufficientInventory:
        """
        Place a hold if ``quantity`` fits on every night of ``dates``

        Returns the hold, or an InsufficientInventory outcome carrying the
        best available count. A booking that already holds units gets its
        existing hold back.
        """
        if quantity < 1:
            raise ValueError("Quantity must be at least 1")

        existing = self.hold_for_booking(booking_id)
        if existing is not None and not existing.is_expired(now):
            return existing

        available = self.availability(dates, now)
        if quantity > available:
            return InsufficientInventory(
                room_type_id=self.room_type_id,
                dates=dates,
                requested=quantity,
                available=available,
            )

        if existing is not None:
            self.holds.remove(existing)

        hold = Hold(
            room_type_id=self.room_type_id,
            booking_id=booking_id,
            dates=dates,
            quantity=quantity,
            expires_at=expires_at,
            created_at=now,
        )
        self.holds.append(hold)
        self._assert_consistent(dates, now)
        self.touch(now)

        from apps.bookings.domain.events import HoldPlaced

        self.add_event(HoldPlaced(
            aggregate_id=self.id,
            room_type_id=self.room_type_id,
            hold_id=hold.id,
            booking_id=booking_id,
            dates=dates,
            quantity=quantity,
            expires_at=expires_at,
        ))
        return hold

    def release(self, hold_id: UUID, reason: str, now: datetime | None = None) -> Hold | None:
        """Remove a hold. Releasing an unknown hold is a no-op."""
        hold = self.get_hold(hold_id)
        if hold is None:
            return None

        self.holds.remove(hold)
        self.touch(now)

        from apps.bookings.domain.events import HoldReleased

        self.add_event(HoldReleased(
            aggregate_id=self.id,
            room_type_id=self.room_type_id,
            hold_id=hold.id,
            booking_id=hold.booking_id,
            reason=reason,
        ))
        return hold

    def commit(self, hold_id: UUID, now: datetime) -> Debit:
        """
        Convert a hold into a permanent debit

        Committing a hold that was already committed returns its debit.

        Raises:
            InventoryInvariantViolation: the hold is unknown
            HoldExpiredError: the hold expired and its nights are no longer free
        """
        hold = self.get_hold(hold_id)
        if hold is None:
            debit = next((d for d in self.debits if d.hold_id == hold_id and d.is_active), None)
            if debit is not None:
                return debit
            raise InventoryInvariantViolation(
                f"Cannot commit unknown hold {hold_id} on room type {self.room_type_id}"
            )

        if hold.is_expired(now) and self.availability(hold.dates, now) < hold.quantity:
            raise HoldExpiredError(
                f"Hold {hold_id} expired at {hold.expires_at.isoformat()} "
                f"and its nights are no longer available"
            )

        self.holds.remove(hold)
        debit = Debit(
            room_type_id=self.room_type_id,
            booking_id=hold.booking_id,
            hold_id=hold.id,
            dates=hold.dates,
            quantity=hold.quantity,
            created_at=now,
        )
        self.debits.append(debit)
        self._assert_consistent(hold.dates, now)
        self.touch(now)

        from apps.bookings.domain.events import HoldCommitted

        self.add_event(HoldCommitted(
            aggregate_id=self.id,
            room_type_id=self.room_type_id,
            hold_id=hold.id,
            debit_id=debit.id,
            booking_id=hold.booking_id,
        ))
        return debit

    def release_debit(self, booking_id: UUID, now: datetime) -> Debit | None:
        """Return a confirmed booking's nights to sale."""
        debit = self.debit_for_booking(booking_id)
        if debit is None:
            return None

        debit.released_at = now
        self.touch(now)

        from apps.bookings.domain.events import DebitReleased

        self.add_event(DebitReleased(
            aggregate_id=self.id,
            room_type_id=self.room_type_id,
            debit_id=debit.id,
            booking_id=booking_id,
        ))
        return debit

    def purge_expired(self, now: datetime) -> List[Hold]:
        """Delete every expired hold and return what was removed."""
        expired = self.expired_holds(now)
        for hold in expired:
            self.release(hold.id, 'expired', now)
        return expired

    def _assert_consistent(self, dates: DateRange, now: datetime):
        for night in dates.nights():
            if self.available_on(night, now) < 0:
                raise InventoryInvariantViolation(
                    f"Room type {self.room_type_id} oversold on {night.isoformat()}: "
                    f"{self._reserved_on(night, now)} of {self.total_quantity} units reserved"
                )

    def __str__(self):
        return f"RoomInventory(room_type={self.room_type_id}, units={self.total_quantity})"

    def __repr__(self):
        return (
            f"RoomInventory(room_type_id={self.room_type_id}, total_quantity={self.total_quantity}, "
            f"holds={len(self.holds)}, debits={len(self.debits)})"
        )
