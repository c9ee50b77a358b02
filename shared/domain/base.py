"""
Domain building blocks shared by the booking, inventory and review contexts.

Aggregates record the events they raise while a unit of work is open; the
unit of work hands them to the message bus once the transaction has
committed, so no event ever describes state that was rolled back.
"""

from abc import ABC
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List
from uuid import UUID, uuid4


def utcnow() -> datetime:
    """Timezone-aware current time; every domain timestamp is UTC."""
    return datetime.now(timezone.utc)


@dataclass(kw_only=True, eq=False)
class Entity(ABC):
    """
    Identity-bearing domain object.

    Equality and hashing follow ``id`` only. Subclasses are declared with
    ``@dataclass(eq=False)`` so the generated ``__eq__`` does not replace it.
    """
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __eq__(self, other):
        if not isinstance(other, self.__class__):
            return False
        return self.id == other.id

    def __hash__(self):
        return hash(self.id)

    def touch(self, now: datetime | None = None):
        self.updated_at = now or utcnow()


@dataclass(frozen=True)
class ValueObject(ABC):
    """Immutable, compared field by field."""


@dataclass(kw_only=True, eq=False)
class Aggregate(Entity):
    """Root of a consistency boundary; buffers events until commit."""
    _events: List['DomainEvent'] = field(default_factory=list, repr=False, init=False)

    def add_event(self, event: 'DomainEvent'):
        self._events.append(event)

    def clear_events(self):
        self._events.clear()

    @property
    def events(self) -> List['DomainEvent']:
        return list(self._events)


@dataclass(kw_only=True)
class DomainEvent:
    """
    A fact about a committed state transition.

    Delivery is at-least-once, so consumers deduplicate on ``event_id``.
    """
    event_id: UUID = field(default_factory=uuid4)
    occurred_at: datetime = field(default_factory=utcnow)
    aggregate_id: UUID | None = None

    @property
    def event_type(self) -> str:
        return self.__class__.__name__

    def to_dict(self) -> dict:
        """Flat, JSON-safe representation used for structured log lines."""
        return {
            'event_id': str(self.event_id),
            'event_type': self.event_type,
            'occurred_at': self.occurred_at.isoformat(),
            'aggregate_id': str(self.aggregate_id) if self.aggregate_id else None,
        }
