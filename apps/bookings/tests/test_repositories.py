"""The reservation saga against the Django ORM repositories."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from unittest import mock

from django.test import TestCase

from shared.domain.value_objects import Money
from apps.bookings.application.commands import PlaceBookingCommand
from apps.bookings.domain.entities import BookingStatus
from apps.bookings.domain.exceptions import InventoryInvariantViolation, InventoryUnavailableError
from apps.bookings.infrastructure.uow import BookingUnitOfWork
from apps.bookings.models import Booking, InventoryDebit, InventoryHold
from apps.bookings.tasks import sweep_expired_reservations
from apps.bookings import bootstrap
from apps.payments.models import PaymentIntentRecord
from apps.bookings.tests.support import (
    STAY,
    FakeClock,
    build_django_engine,
    create_room_type,
    create_user,
)


class DjangoReservationTests(TestCase):
    def setUp(self) -> None:
        self.clock = FakeClock()
        self.engine = build_django_engine(clock=self.clock)
        self.gateway = self.engine.gateway
        self.orchestrator = self.engine.orchestrator
        self.user = create_user()
        self.room_type = create_room_type(total_quantity=1)

    def place(self, user=None):
        return self.orchestrator.place_booking(PlaceBookingCommand(
            user_id=(user or self.user).id,
            room_type_id=self.room_type.id,
            check_in=STAY.start_date,
            check_out=STAY.end_date,
        ))

    def available(self) -> int:
        return self.engine.ledger.availability(self.room_type.id, STAY)

    def test_place_persists_booking_hold_and_intent(self) -> None:
        booking = self.place()

        row = Booking.objects.get(pk=booking.id)
        self.assertEqual(row.status, Booking.Status.PENDING_PAYMENT)
        self.assertEqual(row.total_price, Decimal("300.00"))
        self.assertEqual(row.hotel_id, self.room_type.hotel_id)
        hold = InventoryHold.objects.get()
        self.assertEqual(hold.booking_id, booking.id)
        self.assertEqual(hold.expires_at, self.clock() + timedelta(minutes=15))
        record = PaymentIntentRecord.objects.get(pk=booking.payment_intent_id)
        self.assertEqual(record.booking_id, booking.id)
        self.assertTrue(record.client_secret)
        self.assertEqual(self.available(), 0)

    def test_round_trip_through_repository(self) -> None:
        placed = self.place()

        with BookingUnitOfWork() as uow:
            loaded = uow.bookings.get(placed.id)
            by_intent = uow.bookings.get_by_payment_intent(placed.payment_intent_id)

        self.assertEqual(loaded.booking_code, placed.booking_code)
        self.assertEqual(loaded.dates, STAY)
        self.assertEqual(loaded.total_price, Money(Decimal("300.00"), "USD"))
        self.assertEqual(loaded.status, BookingStatus.PENDING_PAYMENT)
        self.assertEqual(loaded.hold_id, placed.hold_id)
        self.assertEqual(by_intent.id, placed.id)

    def test_second_booking_for_last_unit_is_refused(self) -> None:
        self.place()

        with self.assertRaises(InventoryUnavailableError):
            self.place(create_user("second"))

        self.assertEqual(Booking.objects.count(), 1)
        self.assertEqual(InventoryHold.objects.count(), 1)

    def test_confirm_turns_hold_into_debit(self) -> None:
        booking = self.place()
        self.gateway.mark_succeeded(booking.payment_intent_id)

        booking = self.orchestrator.confirm_payment(booking.id)

        self.assertEqual(booking.status, BookingStatus.CONFIRMED)
        self.assertEqual(Booking.objects.get(pk=booking.id).status, Booking.Status.CONFIRMED)
        self.assertFalse(InventoryHold.objects.exists())
        debit = InventoryDebit.objects.get()
        self.assertEqual(debit.booking_id, booking.id)
        self.assertIsNone(debit.released_at)
        self.assertEqual(PaymentIntentRecord.objects.get(pk=booking.payment_intent_id).status, "succeeded")
        self.assertEqual(self.available(), 0)

    def test_cancel_confirmed_releases_debit(self) -> None:
        booking = self.place()
        self.gateway.mark_succeeded(booking.payment_intent_id)
        self.orchestrator.confirm_payment(booking.id)

        self.orchestrator.cancel_booking(booking.id, "changed plans")

        self.assertIsNotNone(InventoryDebit.objects.get().released_at)
        self.assertEqual(self.available(), 1)
        self.assertEqual(Booking.objects.get(pk=booking.id).cancellation_reason, "changed plans")

    def test_failed_payment_deletes_hold(self) -> None:
        booking = self.place()
        self.gateway.mark_failed(booking.payment_intent_id)

        booking = self.orchestrator.confirm_payment(booking.id)

        self.assertEqual(booking.status, BookingStatus.CANCELLED)
        self.assertFalse(InventoryHold.objects.exists())
        self.assertEqual(self.available(), 1)

    def test_refund(self) -> None:
        booking = self.place()
        self.gateway.mark_succeeded(booking.payment_intent_id)
        self.orchestrator.confirm_payment(booking.id)

        booking = self.orchestrator.refund_booking(booking.id)

        row = Booking.objects.get(pk=booking.id)
        self.assertEqual(row.status, Booking.Status.REFUNDED)
        self.assertEqual(row.refund_id, booking.refund_id)
        self.assertIsNone(InventoryDebit.objects.get().released_at)

    def test_expired_hold_is_ignored_then_swept(self) -> None:
        self.engine.ledger.try_reserve(self.room_type.id, STAY, 1)
        self.clock.advance(minutes=15)

        self.assertEqual(self.available(), 1)
        self.assertEqual(self.engine.ledger.sweep_expired(), 1)
        self.assertFalse(InventoryHold.objects.exists())

    def test_expire_stale_bookings(self) -> None:
        booking = self.place()
        self.clock.advance(minutes=20)

        self.assertEqual(self.orchestrator.expire_stale_bookings(), 1)

        row = Booking.objects.get(pk=booking.id)
        self.assertEqual(row.status, Booking.Status.CANCELLED)
        self.assertEqual(row.cancellation_reason, "hold expired")
        self.assertFalse(InventoryHold.objects.exists())


class SweepTaskTests(TestCase):
    def setUp(self) -> None:
        bootstrap.get_engine.cache_clear()
        self.addCleanup(bootstrap.get_engine.cache_clear)
        self.engine = bootstrap.get_engine()
        self.room_type = create_room_type(total_quantity=2)

    def test_sweep_expires_bookings_and_purges_orphan_holds(self) -> None:
        booking = self.engine.orchestrator.place_booking(PlaceBookingCommand(
            user_id=create_user().id,
            room_type_id=self.room_type.id,
            check_in=STAY.start_date,
            check_out=STAY.end_date,
        ))
        orphan = self.engine.ledger.try_reserve(self.room_type.id, STAY, 1)
        past = self.engine.orchestrator.clock() - timedelta(minutes=1)
        Booking.objects.filter(pk=booking.id).update(hold_expires_at=past)
        InventoryHold.objects.update(expires_at=past)

        result = sweep_expired_reservations.delay().get()

        self.assertEqual(result, {"expired": 1, "released": 1})
        self.assertEqual(Booking.objects.get(pk=booking.id).status, Booking.Status.CANCELLED)
        self.assertFalse(InventoryHold.objects.filter(pk=orphan.id).exists())
        self.assertEqual(self.engine.ledger.availability(self.room_type.id, STAY), 2)

    def test_holds_are_swept_even_when_expiry_fails(self) -> None:
        orphan = self.engine.ledger.try_reserve(self.room_type.id, STAY, 1)
        InventoryHold.objects.update(expires_at=self.engine.orchestrator.clock() - timedelta(minutes=1))
        failure = InventoryInvariantViolation("oversold")

        with mock.patch.object(self.engine.orchestrator, "expire_stale_bookings", side_effect=failure):
            with self.assertRaises(InventoryInvariantViolation):
                sweep_expired_reservations()

        self.assertFalse(InventoryHold.objects.filter(pk=orphan.id).exists())
