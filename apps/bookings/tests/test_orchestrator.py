"""Reservation saga tests against the in-memory store and the emulated gateway."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import date
from decimal import Decimal
from threading import Barrier
from unittest import mock
from uuid import uuid4

from django.test import SimpleTestCase

from apps.bookings.application.commands import PlaceBookingCommand
from apps.bookings.domain.entities import BookingStatus
from apps.bookings.domain.events import BookingConfirmed, BookingRefunded
from apps.bookings.domain.exceptions import (
    BookingNotFound,
    InvalidBookingRequest,
    InvalidBookingTransition,
    InventoryInvariantViolation,
    InventoryUnavailableError,
    RefundPendingError,
    RoomTypeNotFound,
)
from apps.bookings.infrastructure.memory import INVENTORIES
from apps.bookings.tests.support import STAY, add_room_type, build_engine, place_command
from apps.payments.emulated import EmulatedPaymentGateway
from apps.payments.gateway import (
    PaymentDeclined,
    PaymentEvent,
    PaymentGatewayUnavailable,
    RefundStatus,
)


class OrchestratorTestCase(SimpleTestCase):
    total_quantity = 1
    engine_options: dict = {}

    def setUp(self) -> None:
        self.engine, self.store, self.clock = build_engine(**self.engine_options)
        self.orchestrator = self.engine.orchestrator
        self.gateway = self.engine.gateway
        self.room_type = add_room_type(self.store, total_quantity=self.total_quantity)

    def place(self, **kwargs):
        return self.orchestrator.place_booking(place_command(self.room_type, **kwargs))

    def available(self) -> int:
        return self.engine.ledger.availability(self.room_type.id, STAY)

    def confirmed_booking(self):
        booking = self.place()
        self.gateway.mark_succeeded(booking.payment_intent_id)
        return self.orchestrator.confirm_payment(booking.id)

    def collect(self, event_type) -> list:
        received = []
        self.engine.bus.register_event_handler(event_type, received.append)
        return received


class PlaceBookingTests(OrchestratorTestCase):
    def test_place_holds_inventory_and_awaits_payment(self) -> None:
        booking = self.place()

        self.assertEqual(booking.status, BookingStatus.PENDING_PAYMENT)
        self.assertEqual(booking.total_price.amount, Decimal("300.00"))
        self.assertTrue(booking.booking_code.startswith("BK"))
        self.assertIsNotNone(booking.hold_id)
        self.assertEqual(self.available(), 0)
        self.assertEqual(self.gateway.calls["create_intent"], 1)

        stored = self.orchestrator.get_booking(booking.id)
        self.assertEqual(stored.status, BookingStatus.PENDING_PAYMENT)
        intent = self.orchestrator.get_payment_intent(booking.payment_intent_id)
        self.assertEqual(intent.booking_id, str(booking.id))

    def test_price_scales_with_rooms(self) -> None:
        engine, store, _ = build_engine()
        room_type = add_room_type(store, total_quantity=3, nightly_price="80.00")

        booking = engine.orchestrator.place_booking(place_command(room_type, rooms_count=2, guests_count=3))

        self.assertEqual(booking.total_price.amount, Decimal("480.00"))
        self.assertEqual(engine.ledger.availability(room_type.id, STAY), 1)

    def test_no_inventory_raises_without_calling_provider(self) -> None:
        self.place()

        with self.assertRaises(InventoryUnavailableError) as ctx:
            self.place(user_id=2)

        self.assertEqual(ctx.exception.outcome.available, 0)
        self.assertEqual(self.gateway.calls["create_intent"], 1)

    def test_concurrent_placements_for_last_unit(self) -> None:
        barrier = Barrier(2)

        def attempt(user_id):
            barrier.wait()
            try:
                return self.place(user_id=user_id)
            except InventoryUnavailableError as e:
                return e

        with ThreadPoolExecutor(max_workers=2) as pool:
            outcomes = list(pool.map(attempt, [1, 2]))

        failures = [o for o in outcomes if isinstance(o, InventoryUnavailableError)]
        self.assertEqual(len(failures), 1)
        self.assertEqual(self.available(), 0)
        self.assertEqual(len(self.store.read(INVENTORIES, self.room_type.id).holds), 1)

    def test_invalid_requests(self) -> None:
        with self.assertRaises(InvalidBookingRequest):
            self.place(rooms_count=0)
        with self.assertRaises(InvalidBookingRequest):
            self.place(guests_count=0)
        with self.assertRaises(InvalidBookingRequest):
            self.orchestrator.place_booking(PlaceBookingCommand(
                user_id=1,
                room_type_id=self.room_type.id,
                check_in=date(2026, 4, 13),
                check_out=date(2026, 4, 13),
            ))
        with self.assertRaises(InvalidBookingRequest):
            self.place(guests_count=3)
        with self.assertRaises(RoomTypeNotFound):
            self.orchestrator.place_booking(PlaceBookingCommand(
                user_id=1,
                room_type_id=uuid4(),
                check_in=STAY.start_date,
                check_out=STAY.end_date,
            ))

        self.assertEqual(self.gateway.calls["create_intent"], 0)
        self.assertEqual(self.available(), 1)

    def test_room_type_priced_in_another_currency_is_rejected(self) -> None:
        room_type = add_room_type(self.store, total_quantity=1, currency="EUR")

        with self.assertRaises(InvalidBookingRequest):
            self.orchestrator.place_booking(place_command(room_type))

        self.assertEqual(self.engine.ledger.availability(room_type.id, STAY), 1)
        self.assertEqual(self.gateway.calls["create_intent"], 0)

    def test_transient_intent_failure_is_retried(self) -> None:
        self.gateway.fail_next("create_intent")

        booking = self.place()

        self.assertEqual(booking.status, BookingStatus.PENDING_PAYMENT)
        self.assertEqual(self.gateway.calls["create_intent"], 2)

    def test_exhausted_retries_release_the_hold(self) -> None:
        self.gateway.fail_next("create_intent", times=3)

        with self.assertRaises(PaymentGatewayUnavailable):
            self.place()

        self.assertEqual(self.gateway.calls["create_intent"], 3)
        self.assertEqual(self.available(), 1)
        self.assertEqual(self.store.read(INVENTORIES, self.room_type.id).holds, [])

    def test_decline_is_not_retried(self) -> None:
        self.gateway.fail_next("create_intent", PaymentDeclined("card declined"))

        with self.assertRaises(PaymentDeclined):
            self.place()

        self.assertEqual(self.gateway.calls["create_intent"], 1)
        self.assertEqual(self.available(), 1)

    def test_auto_confirmed_intent_confirms_on_placement(self) -> None:
        engine, store, _ = build_engine(gateway=EmulatedPaymentGateway(auto_confirm=True))
        room_type = add_room_type(store)

        booking = engine.orchestrator.place_booking(place_command(room_type))

        self.assertEqual(booking.status, BookingStatus.CONFIRMED)
        inventory = store.read(INVENTORIES, room_type.id)
        self.assertEqual(inventory.holds, [])
        self.assertEqual(len(inventory.debits), 1)

    def test_command_dispatch_through_bus(self) -> None:
        booking = self.engine.bus.handle_command(place_command(self.room_type))

        self.assertEqual(booking.status, BookingStatus.PENDING_PAYMENT)
        self.assertEqual(self.available(), 0)


class SettlePaymentTests(OrchestratorTestCase):
    def test_success_confirms_and_commits(self) -> None:
        booking = self.confirmed_booking()

        self.assertEqual(booking.status, BookingStatus.CONFIRMED)
        self.assertIsNotNone(booking.confirmed_at)
        inventory = self.store.read(INVENTORIES, self.room_type.id)
        self.assertEqual(inventory.holds, [])
        self.assertEqual(len(inventory.debits), 1)
        self.assertEqual(self.available(), 0)

    def test_failure_cancels_and_restores_inventory(self) -> None:
        booking = self.place()
        self.gateway.mark_failed(booking.payment_intent_id)

        booking = self.orchestrator.confirm_payment(booking.id)

        self.assertEqual(booking.status, BookingStatus.CANCELLED)
        self.assertEqual(booking.cancellation_reason, "payment failed")
        self.assertEqual(self.available(), 1)
        self.assertEqual(self.gateway.calls["cancel_intent"], 1)

    def test_unsettled_intent_leaves_booking_pending(self) -> None:
        booking = self.place()

        booking = self.orchestrator.confirm_payment(booking.id)

        self.assertEqual(booking.status, BookingStatus.PENDING_PAYMENT)
        self.assertEqual(self.available(), 0)

    def test_duplicate_settlement_confirms_once(self) -> None:
        confirmed = self.collect(BookingConfirmed)
        booking = self.place()
        intent = self.gateway.mark_succeeded(booking.payment_intent_id)

        self.orchestrator.settle_payment(booking.id, intent)
        self.orchestrator.settle_payment(booking.id, intent)
        self.orchestrator.handle_payment_event(PaymentEvent(id="evt_1", type="payment_intent.succeeded", intent=intent))

        self.assertEqual(len(confirmed), 1)
        self.assertEqual(len(self.store.read(INVENTORIES, self.room_type.id).debits), 1)

    def test_await_payment_times_out(self) -> None:
        booking = self.place()

        booking = self.orchestrator.await_payment(booking.id, timeout=5, poll_interval=1)

        self.assertEqual(booking.status, BookingStatus.CANCELLED)
        self.assertEqual(booking.cancellation_reason, "payment timeout")
        self.assertEqual(self.available(), 1)
        self.assertEqual(self.gateway.calls["cancel_intent"], 1)

    def test_await_payment_returns_once_settled(self) -> None:
        booking = self.place()
        self.gateway.mark_succeeded(booking.payment_intent_id)

        booking = self.orchestrator.await_payment(booking.id, timeout=5, poll_interval=1)

        self.assertEqual(booking.status, BookingStatus.CONFIRMED)
        self.assertEqual(self.clock.elapsed, 0)

    def test_late_success_after_resale_is_refunded(self) -> None:
        first = self.place(user_id=1)
        self.clock.advance(minutes=16)
        second = self.place(user_id=2)
        self.gateway.mark_succeeded(first.payment_intent_id)

        first = self.orchestrator.confirm_payment(first.id)

        self.assertEqual(first.status, BookingStatus.CANCELLED)
        self.assertEqual(self.gateway.calls["refund"], 1)
        self.assertEqual(self.orchestrator.get_booking(second.id).status, BookingStatus.PENDING_PAYMENT)
        inventory = self.store.read(INVENTORIES, self.room_type.id)
        self.assertEqual([h.booking_id for h in inventory.holds], [second.id])
        self.assertEqual(inventory.debits, [])

    def test_late_success_with_nights_still_free_confirms(self) -> None:
        booking = self.place()
        self.clock.advance(minutes=16)
        self.gateway.mark_succeeded(booking.payment_intent_id)

        booking = self.orchestrator.confirm_payment(booking.id)

        self.assertEqual(booking.status, BookingStatus.CONFIRMED)
        self.assertEqual(self.gateway.calls["refund"], 0)

    def test_success_after_hold_was_swept_confirms(self) -> None:
        booking = self.place()
        self.clock.advance(minutes=16)
        self.assertEqual(self.engine.ledger.sweep_expired(), 1)
        self.assertEqual(self.available(), 1)
        intent = self.gateway.mark_succeeded(booking.payment_intent_id)

        booking = self.orchestrator.settle_payment(booking.id, intent)

        self.assertEqual(booking.status, BookingStatus.CONFIRMED)
        self.assertEqual(self.gateway.calls["refund"], 0)
        inventory = self.store.read(INVENTORIES, self.room_type.id)
        self.assertEqual(inventory.holds, [])
        self.assertEqual([d.booking_id for d in inventory.debits], [booking.id])
        self.assertEqual(self.available(), 0)

    def test_success_after_hold_was_swept_and_resold_is_refunded(self) -> None:
        first = self.place(user_id=1)
        self.clock.advance(minutes=16)
        self.engine.ledger.sweep_expired()
        second = self.place(user_id=2)
        intent = self.gateway.mark_succeeded(first.payment_intent_id)

        first = self.orchestrator.settle_payment(first.id, intent)

        self.assertEqual(first.status, BookingStatus.CANCELLED)
        self.assertEqual(first.cancellation_reason, "hold expired before payment succeeded")
        self.assertEqual(self.gateway.calls["refund"], 1)
        inventory = self.store.read(INVENTORIES, self.room_type.id)
        self.assertEqual([h.booking_id for h in inventory.holds], [second.id])
        self.assertEqual(inventory.debits, [])

    def test_success_after_guest_cancelled_is_refunded(self) -> None:
        booking = self.place()
        self.orchestrator.cancel_booking(booking.id, "changed plans")
        intent = self.gateway.mark_succeeded(booking.payment_intent_id)

        booking = self.orchestrator.settle_payment(booking.id, intent)

        self.assertEqual(booking.status, BookingStatus.CANCELLED)
        self.assertEqual(self.gateway.calls["refund"], 1)

    def test_foreign_intent_is_ignored(self) -> None:
        booking = self.place()
        other = self.gateway.create_intent(booking.total_price, {}, idempotency_key="other")
        other = self.gateway.mark_succeeded(other.id)

        booking = self.orchestrator.settle_payment(booking.id, other)

        self.assertEqual(booking.status, BookingStatus.PENDING_PAYMENT)

    def test_webhook_for_unknown_intent_is_ignored(self) -> None:
        intent = self.gateway.create_intent(self.room_type.nightly_price, {}, idempotency_key="stray")

        self.assertIsNone(self.orchestrator.handle_payment_event(
            PaymentEvent(id="evt_2", type="payment_intent.succeeded", intent=intent)
        ))
        self.assertIsNone(self.orchestrator.handle_payment_event(PaymentEvent(id="evt_3", type="customer.created")))


class CancelBookingTests(OrchestratorTestCase):
    def test_cancel_pending_releases_hold_and_cancels_intent(self) -> None:
        booking = self.place()

        booking = self.orchestrator.cancel_booking(booking.id, "changed plans")

        self.assertEqual(booking.status, BookingStatus.CANCELLED)
        self.assertEqual(booking.cancellation_reason, "changed plans")
        self.assertEqual(self.available(), 1)
        self.assertEqual(self.gateway.calls["cancel_intent"], 1)

    def test_cancel_confirmed_releases_debit_without_refund(self) -> None:
        booking = self.confirmed_booking()

        booking = self.orchestrator.cancel_booking(booking.id, "changed plans")

        self.assertEqual(booking.status, BookingStatus.CANCELLED)
        self.assertEqual(self.available(), 1)
        self.assertEqual(self.gateway.calls["refund"], 0)

    def test_replayed_success_after_cancelling_confirmed_booking_keeps_payment(self) -> None:
        booking = self.confirmed_booking()
        self.orchestrator.cancel_booking(booking.id, "changed plans")

        self.orchestrator.handle_payment_event(
            self.gateway.parse_webhook(*self.gateway.intent_webhook(booking.payment_intent_id))
        )

        self.assertEqual(self.gateway.calls["refund"], 0)
        booking = self.orchestrator.get_booking(booking.id)
        self.assertEqual(booking.status, BookingStatus.CANCELLED)
        self.assertEqual(booking.cancellation_reason, "changed plans")
        self.assertEqual(self.available(), 1)

    def test_cancel_cancelled_booking_is_rejected(self) -> None:
        booking = self.place()
        self.orchestrator.cancel_booking(booking.id, "first")

        with self.assertRaises(InvalidBookingTransition):
            self.orchestrator.cancel_booking(booking.id, "second")

        self.assertEqual(self.orchestrator.get_booking(booking.id).cancellation_reason, "first")

    def test_cancel_unknown_booking(self) -> None:
        with self.assertRaises(BookingNotFound):
            self.orchestrator.cancel_booking(uuid4(), "nope")

    def test_expire_stale_bookings(self) -> None:
        booking = self.place()
        self.clock.advance(minutes=16)

        self.assertEqual(self.orchestrator.expire_stale_bookings(), 1)

        booking = self.orchestrator.get_booking(booking.id)
        self.assertEqual(booking.status, BookingStatus.CANCELLED)
        self.assertEqual(booking.cancellation_reason, "hold expired")
        self.assertEqual(self.store.read(INVENTORIES, self.room_type.id).holds, [])
        self.assertEqual(self.orchestrator.expire_stale_bookings(), 0)

    def test_expire_settles_unnoticed_payment(self) -> None:
        booking = self.place()
        self.gateway.mark_succeeded(booking.payment_intent_id)
        self.clock.advance(minutes=16)

        self.assertEqual(self.orchestrator.expire_stale_bookings(), 1)

        self.assertEqual(self.orchestrator.get_booking(booking.id).status, BookingStatus.CONFIRMED)
    def test_expiry_continues_past_invariant_violation(self) -> None:
        first = self.place(user_id=1)
        other_room = add_room_type(self.store, total_quantity=1)
        second = self.orchestrator.place_booking(place_command(other_room, user_id=2))
        self.clock.advance(minutes=16)
        expire = self.orchestrator._expire

        def failing_expire(booking_id, reason):
            if booking_id == first.id:
                raise InventoryInvariantViolation("oversold")
            return expire(booking_id, reason)

        with mock.patch.object(self.orchestrator, "_expire", side_effect=failing_expire):
            with self.assertRaises(InventoryInvariantViolation):
                self.orchestrator.expire_stale_bookings()

        self.assertEqual(self.orchestrator.get_booking(second.id).status, BookingStatus.CANCELLED)
        self.assertEqual(self.orchestrator.get_booking(first.id).status, BookingStatus.PENDING_PAYMENT)


class RefundBookingTests(OrchestratorTestCase):
    def test_refund_emits_once_despite_retry(self) -> None:
        refunded = self.collect(BookingRefunded)
        booking = self.confirmed_booking()
        self.gateway.fail_next("refund")

        booking = self.orchestrator.refund_booking(booking.id)
        again = self.orchestrator.refund_booking(booking.id)

        self.assertEqual(booking.status, BookingStatus.REFUNDED)
        self.assertEqual(again.refund_id, booking.refund_id)
        self.assertEqual(self.gateway.calls["refund"], 2)
        self.assertEqual(len(refunded), 1)
        self.assertFalse(refunded[0].relisted)
        self.assertEqual(self.available(), 0)

    def test_refund_requires_confirmed_booking(self) -> None:
        booking = self.place()

        with self.assertRaises(InvalidBookingTransition):
            self.orchestrator.refund_booking(booking.id)

        self.assertEqual(self.gateway.calls["refund"], 0)

    def test_partial_refund_bounds(self) -> None:
        booking = self.confirmed_booking()

        with self.assertRaises(InvalidBookingRequest):
            self.orchestrator.refund_booking(booking.id, Decimal("300.01"))
        with self.assertRaises(InvalidBookingRequest):
            self.orchestrator.refund_booking(booking.id, Decimal("0"))

        booking = self.orchestrator.refund_booking(booking.id, Decimal("100.00"))
        self.assertEqual(booking.status, BookingStatus.REFUNDED)

    def test_pending_refund_completed_by_webhook(self) -> None:
        gateway = EmulatedPaymentGateway(refund_status=RefundStatus.PENDING)
        engine, store, _ = build_engine(gateway=gateway)
        room_type = add_room_type(store)
        booking = engine.orchestrator.place_booking(place_command(room_type))
        gateway.mark_succeeded(booking.payment_intent_id)
        engine.orchestrator.confirm_payment(booking.id)

        with self.assertRaises(RefundPendingError) as ctx:
            engine.orchestrator.refund_booking(booking.id)

        pending = engine.orchestrator.get_booking(booking.id)
        self.assertEqual(pending.status, BookingStatus.CONFIRMED)
        self.assertEqual(pending.refund_id, ctx.exception.refund_id)

        refund = gateway.complete_refund(ctx.exception.refund_id)
        booking = engine.orchestrator.handle_payment_event(PaymentEvent(id="evt_4", type="refund.updated", refund=refund))

        self.assertEqual(booking.status, BookingStatus.REFUNDED)


class RelistOnRefundTests(OrchestratorTestCase):
    engine_options = {"relist_on_refund": True}

    def test_refund_returns_nights_to_sale(self) -> None:
        refunded = self.collect(BookingRefunded)
        booking = self.confirmed_booking()

        self.orchestrator.refund_booking(booking.id)

        self.assertEqual(self.available(), 1)
        self.assertTrue(refunded[0].relisted)
