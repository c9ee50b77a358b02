"""
Inventory Ledger

Authoritative count of bookable room-nights. Every operation loads the
room type's inventory under its row lock, mutates the aggregate and saves
it in one unit of work, so availability checks and hold creation can never
interleave for the same room type.

Operations accept an optional ``uow`` so the orchestrator can run them
inside a transaction that already holds the booking row lock (lock order
is always booking -> room type).
"""

from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Optional
from uuid import UUID, uuid4
import logging

from shared.domain.base import utcnow
from shared.domain.value_objects import DateRange
from apps.bookings.application.config import ReservationConfig
from apps.bookings.domain.exceptions import InventoryInvariantViolation, RoomTypeNotFound
from apps.bookings.domain.inventory import Debit, Hold, InsufficientInventory

logger = logging.getLogger(__name__)


class InventoryLedger:
    def __init__(
        self,
        uow_factory: Callable,
        config: ReservationConfig = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.uow_factory = uow_factory
        self.config = config or ReservationConfig()
        self.clock = clock

    @contextmanager
    def _unit_of_work(self, uow=None):
        if uow is not None:
            yield uow
            return
        with self.uow_factory() as new_uow:
            yield new_uow

    @contextmanager
    def _guard(self, operation: str, room_type_id):
        try:
            yield
        except InventoryInvariantViolation as e:
            logger.critical(f"Inventory invariant violated during {operation} on room type {room_type_id}: {e}")
            raise

    def _load(self, uow, room_type_id: UUID, window: Optional[DateRange]):
        inventory = uow.inventories.get(room_type_id, window=window, lock=True)
        if inventory is None:
            raise RoomTypeNotFound(f"Room type {room_type_id} not found")
        return inventory

    def _save(self, uow, inventory):
        uow.collect_events(inventory)
        uow.inventories.save(inventory)

    def try_reserve(
        self,
        room_type_id: UUID,
        dates: DateRange,
        quantity: int,
        booking_id: UUID = None,
        uow=None,
    ) -> Hold | InsufficientInventory:
        """
        Place a hold for ``quantity`` units on every night of ``dates``

        Returns the Hold, or InsufficientInventory when at least one night
        cannot take the quantity. Nothing is written in the latter case.
        """
        booking_id = booking_id or uuid4()
        with self._unit_of_work(uow) as uow, self._guard('try_reserve', room_type_id):
            inventory = self._load(uow, room_type_id, dates)
            now = self.clock()
            outcome = inventory.try_reserve(booking_id, dates, quantity, now + self.config.hold_ttl, now)
            if isinstance(outcome, InsufficientInventory):
                logger.info(
                    f"Insufficient inventory on room type {room_type_id} for {dates}: "
                    f"requested {quantity}, available {outcome.available}"
                )
                return outcome
            self._save(uow, inventory)

        logger.info(f"Hold {outcome.id} placed on room type {room_type_id} for {dates} x{quantity}")
        return outcome

    def release(self, hold_id: UUID, reason: str = 'cancelled', uow=None) -> Optional[Hold]:
        """Release a hold. Unknown or already released holds are a no-op."""
        if hold_id is None:
            return None
        with self._unit_of_work(uow) as uow:
            located = uow.inventories.locate_hold(hold_id)
            if located is None:
                return None
            room_type_id, dates = located
            with self._guard('release', room_type_id):
                inventory = self._load(uow, room_type_id, dates)
                hold = inventory.release(hold_id, reason, self.clock())
                if hold is None:
                    return None
                self._save(uow, inventory)

        logger.info(f"Hold {hold_id} released ({reason})")
        return hold

    def commit(self, hold_id: UUID, uow=None) -> Debit:
        """
        Convert a hold into a permanent debit

        Raises:
            InventoryInvariantViolation: the hold is unknown
            HoldExpiredError: the hold expired and its nights were taken
        """
        with self._unit_of_work(uow) as uow:
            located = uow.inventories.locate_hold(hold_id)
            if located is None:
                logger.critical(f"Inventory invariant violated during commit: hold {hold_id} is unknown")
                raise InventoryInvariantViolation(f"Cannot commit unknown hold {hold_id}")
            room_type_id, dates = located
            with self._guard('commit', room_type_id):
                inventory = self._load(uow, room_type_id, dates)
                debit = inventory.commit(hold_id, self.clock())
                self._save(uow, inventory)

        logger.info(f"Hold {hold_id} committed to debit {debit.id}")
        return debit

    def release_debit(self, room_type_id: UUID, booking_id: UUID, dates: DateRange = None, uow=None) -> Optional[Debit]:
        """Return a confirmed booking's nights to sale."""
        with self._unit_of_work(uow) as uow, self._guard('release_debit', room_type_id):
            inventory = self._load(uow, room_type_id, dates)
            debit = inventory.release_debit(booking_id, self.clock())
            if debit is None:
                return None
            self._save(uow, inventory)

        logger.info(f"Debit {debit.id} of booking {booking_id} released")
        return debit

    def availability(self, room_type_id: UUID, dates: DateRange) -> int:
        with self.uow_factory() as uow:
            inventory = uow.inventories.get(room_type_id, window=dates, lock=False)
        if inventory is None:
            raise RoomTypeNotFound(f"Room type {room_type_id} not found")
        return inventory.availability(dates, self.clock())

    def sweep_expired(self) -> int:
        """
        Delete expired holds across all room types

        Each room type is swept in its own unit of work so one failing
        room type does not block the others.
        Returns the number of holds purged.
        """
        now = self.clock()
        with self.uow_factory() as uow:
            room_type_ids = uow.inventories.room_types_with_expired_holds(now)

        purged = 0
        for room_type_id in room_type_ids:
            try:
                with self.uow_factory() as uow, self._guard('sweep', room_type_id):
                    inventory = self._load(uow, room_type_id, None)
                    removed = inventory.purge_expired(self.clock())
                    if removed:
                        self._save(uow, inventory)
            except InventoryInvariantViolation:
                raise
            except Exception as e:
                logger.error(f"Error sweeping room type {room_type_id}: {e}", exc_info=True)
                continue
            purged += len(removed)

        if purged:
            logger.info(f"Swept {purged} expired holds across {len(room_type_ids)} room types")
        return purged
