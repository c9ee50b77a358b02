"""
Unit of Work Pattern

Manages database transactions and ensures that domain events
are published only after successful transaction commit.

Concrete units of work expose the repositories of their bounded
context as attributes (``uow.bookings``, ``uow.inventories`` ...);
subclasses build them in ``_build_repositories`` once the transaction
is open.
"""

from abc import ABC, abstractmethod
from typing import List, Optional
import logging

from django.db import transaction

from shared.application.message_bus import MessageBus
from shared.domain.base import DomainEvent

logger = logging.getLogger(__name__)


class AbstractUnitOfWork(ABC):
    """Abstract Unit of Work pattern"""

    def __init__(self, message_bus: Optional[MessageBus] = None):
        self._message_bus = message_bus
        self._events: List[DomainEvent] = []

    def __enter__(self):
        self._build_repositories()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.commit()
        else:
            self.rollback()

    def _build_repositories(self):
        """Hook for subclasses to attach their repositories."""

    @abstractmethod
    def commit(self):
        """Commit the transaction"""
        pass

    @abstractmethod
    def rollback(self):
        """Rollback the transaction"""
        pass

    def collect_events(self, aggregate):
        """
        Collect events from aggregate root

        Extracts all domain events from the aggregate and
        clears them from the aggregate.
        """
        new_events = aggregate.events
        if new_events:
            self._events.extend(new_events)
            aggregate.clear_events()
            logger.debug(
                f"Collected {len(new_events)} events from "
                f"{aggregate.__class__.__name__} (ID: {aggregate.id})"
            )

    def _drain_events(self) -> List[DomainEvent]:
        events = self._events.copy()
        self._events.clear()
        return events

    def _publish_events(self, events: List[DomainEvent]):
        """
        Publish collected events to the message bus

        Called after successful transaction commit.
        """
        if self._message_bus is None or not events:
            return

        logger.info(f"Publishing {len(events)} domain events after commit")

        try:
            self._message_bus.publish_events(events)
        except Exception as e:
            # The transaction is already committed; delivery is at-least-once
            # and the periodic reconcilers pick up anything a handler missed.
            logger.error(f"Error publishing events: {e}", exc_info=True)


class DjangoUnitOfWork(AbstractUnitOfWork):
    """
    Django implementation of Unit of Work

    Manages Django database transactions and ensures domain events
    are published after successful commit.

    Usage:
        with BookingUnitOfWork(message_bus) as uow:
            booking = uow.bookings.get(booking_id, lock=True)
            booking.cancel("guest request", now)
            uow.collect_events(booking)
            uow.bookings.save(booking)
            # Transaction commits here
        # Events are published after commit
    """

    def __init__(self, message_bus: Optional[MessageBus] = None):
        super().__init__(message_bus)
        self._transaction = None

    def __enter__(self):
        """Start database transaction"""
        self._transaction = transaction.atomic()
        self._transaction.__enter__()
        return super().__enter__()

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Complete or rollback transaction"""
        try:
            if exc_type is None:
                self.commit()
            else:
                self.rollback()
        finally:
            if self._transaction:
                self._transaction.__exit__(exc_type, exc_val, exc_tb)
                self._transaction = None

    def commit(self):
        """
        Commit changes and publish events

        Events are published using Django's transaction.on_commit()
        to ensure they're only sent after database commit succeeds.
        """
        logger.debug(f"Committing transaction with {len(self._events)} events")

        events = self._drain_events()
        if events:
            transaction.on_commit(lambda: self._publish_events(events))

    def rollback(self):
        """Rollback changes and discard events"""
        if self._events:
            logger.warning(f"Rolling back transaction, discarding {len(self._events)} events")
        self._events.clear()
