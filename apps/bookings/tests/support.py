"""Helpers for building an engine on the in-memory store."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from threading import Lock
from uuid import uuid4

from shared.domain.value_objects import DateRange, Money
from shared.infrastructure.memory import InMemoryStore
from apps.bookings.application.commands import PlaceBookingCommand
from apps.bookings.application.config import ReservationConfig
from apps.bookings.bootstrap import bootstrap
from apps.bookings.domain.entities import RoomTypeSnapshot
from apps.bookings.infrastructure.memory import seed_room_type
from apps.payments.emulated import EmulatedPaymentGateway

START = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
STAY = DateRange(date(2026, 4, 10), date(2026, 4, 13))


class FakeClock:
    """Wall clock and monotonic clock that only move when told to."""

    def __init__(self, start: datetime = START):
        self.now = start
        self.elapsed = 0.0
        self._lock = Lock()

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        delta = timedelta(**kwargs)
        with self._lock:
            self.now += delta
            self.elapsed += delta.total_seconds()

    def sleep(self, seconds: float) -> None:
        self.advance(seconds=seconds)

    def monotonic(self) -> float:
        return self.elapsed


def build_engine(gateway=None, clock=None, **config):
    """Return ``(engine, store, clock)`` wired to a fresh in-memory store."""
    store = InMemoryStore()
    clock = clock or FakeClock()
    engine = bootstrap(
        store=store,
        gateway=gateway or EmulatedPaymentGateway(),
        config=ReservationConfig(**{"gateway_backoff_seconds": 0, **config}),
        clock=clock,
        sleep=clock.sleep,
        monotonic=clock.monotonic,
        on_rating_give_up=None,
    )
    return engine, store, clock


def add_room_type(store, total_quantity=1, capacity=2, nightly_price="100.00", currency="USD") -> RoomTypeSnapshot:
    room_type = RoomTypeSnapshot(
        id=uuid4(),
        hotel_id=uuid4(),
        name="Double",
        nightly_price=Money(Decimal(nightly_price), currency),
        total_quantity=total_quantity,
        capacity=capacity,
    )
    seed_room_type(store, room_type)
    return room_type


def place_command(room_type, user_id=1, dates=STAY, **kwargs) -> PlaceBookingCommand:
    return PlaceBookingCommand(
        user_id=user_id,
        room_type_id=room_type.id,
        check_in=dates.start_date,
        check_out=dates.end_date,
        **kwargs,
    )


# ----- database fixtures -----

def create_user(username="guest", **kwargs):
    from django.contrib.auth import get_user_model

    return get_user_model().objects.create_user(username=username, password="GuestPass123", **kwargs)


def create_room_type(total_quantity=1, capacity=2, nightly_price="100.00", hotel=None):
    from apps.hotels.models import Hotel, RoomType

    hotel = hotel or Hotel.objects.create(name="Seaside Hotel", city="Lisbon")
    return RoomType.objects.create(
        hotel=hotel,
        name=f"Double x{total_quantity}",
        nightly_price=Decimal(nightly_price),
        total_quantity=total_quantity,
        capacity=capacity,
    )


def build_django_engine(gateway=None, clock=None, **config):
    """Engine over the Django units of work, for persistence tests."""
    clock = clock or FakeClock()
    return bootstrap(
        gateway=gateway or EmulatedPaymentGateway(),
        config=ReservationConfig(**{"gateway_backoff_seconds": 0, **config}),
        clock=clock,
        sleep=clock.sleep,
        monotonic=clock.monotonic,
        on_rating_give_up=None,
    )
