"""
Reservation Orchestrator

Sequences a booking through the ledger, the payment provider and the
booking state machine:

    reserve hold -> create payment intent -> persist PENDING_PAYMENT booking
    -> await provider confirmation -> commit hold to debit + CONFIRMED

No transaction spans the provider call. Each step that fails undoes the
earlier ones in reverse order (saga compensation):

- intent creation fails      -> release hold
- booking persistence fails  -> release hold, cancel intent
- payment failed / timed out -> release hold, cancel intent, CANCELLED
- payment succeeded after the hold's nights were re-sold -> CANCELLED, refund

Provider-side compensations are best effort: failures are logged and left
to the provider's own expiry. Transient provider errors are retried with
exponential backoff; declines are not.

Lock order is always booking -> room type.
"""

from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional
from uuid import UUID, uuid4
import logging
import time

from shared.application.retry import retry_call
from shared.domain.base import utcnow
from shared.domain.value_objects import DateRange, Money
from apps.bookings.application.commands import PlaceBookingCommand
from apps.bookings.application.config import ReservationConfig
from apps.bookings.application.ledger import InventoryLedger
from apps.bookings.domain.entities import Booking, BookingStatus, generate_booking_code
from apps.bookings.domain.exceptions import (
    BookingNotFound,
    HoldExpiredError,
    InvalidBookingRequest,
    InvalidBookingTransition,
    InventoryInvariantViolation,
    InventoryUnavailableError,
    RefundPendingError,
    RoomTypeNotFound,
)
from apps.bookings.domain.inventory import InsufficientInventory
from apps.payments.gateway import (
    PaymentDeclined,
    PaymentEvent,
    PaymentGateway,
    PaymentGatewayError,
    PaymentGatewayUnavailable,
    PaymentIntent,
    PaymentIntentStatus,
    Refund,
    RefundStatus,
)

logger = logging.getLogger(__name__)


def intent_key(booking_id: UUID) -> str:
    return f"booking-{booking_id}-intent"


def refund_key(booking_id: UUID) -> str:
    return f"booking-{booking_id}-refund"


class ReservationOrchestrator:
    def __init__(
        self,
        uow_factory: Callable,
        ledger: InventoryLedger,
        gateway: PaymentGateway,
        config: ReservationConfig = None,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], None] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.uow_factory = uow_factory
        self.ledger = ledger
        self.gateway = gateway
        self.config = config or ReservationConfig()
        self.clock = clock
        self.sleep = sleep
        self.monotonic = monotonic

    # ===== Queries =====

    def get_booking(self, booking_id: UUID) -> Booking:
        with self.uow_factory() as uow:
            booking = uow.bookings.get(booking_id)
        if booking is None:
            raise BookingNotFound(f"Booking {booking_id} not found")
        return booking

    def get_payment_intent(self, intent_id: str) -> Optional[PaymentIntent]:
        with self.uow_factory() as uow:
            return uow.payment_intents.get(intent_id)

    # ===== Place =====

    def _validate(self, command: PlaceBookingCommand) -> DateRange:
        if command.rooms_count < 1:
            raise InvalidBookingRequest("At least one room must be booked")
        if command.guests_count < 1:
            raise InvalidBookingRequest("Guests count must be at least 1")
        try:
            return DateRange(command.check_in, command.check_out)
        except ValueError as e:
            raise InvalidBookingRequest(str(e)) from e

    def place_booking(self, command: PlaceBookingCommand) -> Booking:
        """
        Place a booking (saga)

        Returns the booking in PENDING_PAYMENT, or CONFIRMED/CANCELLED when
        the provider settled the intent on creation.

        Raises:
            InvalidBookingRequest: structurally invalid request
            InventoryUnavailableError: not enough units on some night
            PaymentGatewayUnavailable / PaymentDeclined: intent creation failed
        """
        dates = self._validate(command)

        with self.uow_factory() as uow:
            room_type = uow.room_types.get(command.room_type_id)
        if room_type is None:
            raise RoomTypeNotFound(f"Room type {command.room_type_id} not found")
        if command.guests_count > room_type.capacity * command.rooms_count:
            raise InvalidBookingRequest(
                f"{command.guests_count} guests do not fit in {command.rooms_count} x {room_type.name} "
                f"(capacity {room_type.capacity})"
            )
        if room_type.nightly_price.currency != self.config.currency:
            raise InvalidBookingRequest(
                f"{room_type.name} is priced in {room_type.nightly_price.currency}, "
                f"bookings are charged in {self.config.currency}"
            )

        logger.info(
            f"Placing booking for user {command.user_id} on room type {room_type.id}, "
            f"dates {dates}, rooms {command.rooms_count}"
        )

        booking_id = uuid4()
        outcome = self.ledger.try_reserve(room_type.id, dates, command.rooms_count, booking_id=booking_id)
        if isinstance(outcome, InsufficientInventory):
            raise InventoryUnavailableError(outcome)
        hold = outcome

        now = self.clock()
        booking_code = generate_booking_code(now)
        total_price = room_type.nightly_price * (len(dates) * command.rooms_count)

        try:
            intent = self._gateway_call(
                self.gateway.create_intent,
                total_price,
                {
                    'booking_id': str(booking_id),
                    'booking_code': booking_code,
                    'user_id': str(command.user_id),
                },
                idempotency_key=intent_key(booking_id),
            )
        except PaymentGatewayError as e:
            logger.warning(f"Payment intent creation failed for booking {booking_id}: {e}")
            self._release_hold_quietly(hold.id, 'compensation')
            raise

        booking = Booking(
            id=booking_id,
            booking_code=booking_code,
            user_id=command.user_id,
            hotel_id=room_type.hotel_id,
            room_type_id=room_type.id,
            dates=dates,
            total_price=total_price,
            guests_count=command.guests_count,
            rooms_count=command.rooms_count,
            hold_id=hold.id,
            hold_expires_at=hold.expires_at,
            payment_intent_id=intent.id,
            created_at=now,
            updated_at=now,
        )
        booking.place()

        try:
            with self.uow_factory() as uow:
                uow.collect_events(booking)
                uow.bookings.add(booking)
                uow.payment_intents.save(intent, booking.id)
        except Exception as e:
            logger.warning(f"Persisting booking {booking_id} failed, unwinding hold and intent: {e}")
            self._release_hold_quietly(hold.id, 'compensation')
            self._cancel_intent_quietly(intent.id)
            raise

        logger.info(f"Booking {booking.booking_code} placed, awaiting payment {intent.id}")

        if intent.status.is_settled:
            return self.settle_payment(booking.id, intent)
        return booking

    # ===== Settle =====

    def settle_payment(self, booking_id: UUID, intent: PaymentIntent) -> Booking:
        """
        React to a provider-reported intent status

        Idempotent: a booking no longer in PENDING_PAYMENT is returned
        unchanged, except that a success reported for a booking cancelled
        before it was ever confirmed is refunded.
        """
        late_success = False
        cancel_intent = False

        with self.uow_factory() as uow:
            booking = uow.bookings.get(booking_id, lock=True)
            if booking is None:
                raise BookingNotFound(f"Booking {booking_id} not found")

            if booking.payment_intent_id and intent.id != booking.payment_intent_id:
                logger.warning(f"Ignoring intent {intent.id}: booking {booking.booking_code} uses {booking.payment_intent_id}")
                return booking

            uow.payment_intents.save(intent, booking.id)
            now = self.clock()

            if booking.status is not BookingStatus.PENDING_PAYMENT:
                # A booking cancelled after confirmation keeps its payment.
                late_success = (
                    booking.status is BookingStatus.CANCELLED
                    and booking.confirmed_at is None
                    and intent.status is PaymentIntentStatus.SUCCEEDED
                )
            elif intent.status is PaymentIntentStatus.SUCCEEDED:
                try:
                    self._commit_hold(booking, uow)
                except HoldExpiredError as e:
                    logger.warning(f"Payment for booking {booking.booking_code} arrived too late: {e}")
                    self.ledger.release(booking.hold_id, 'expired', uow=uow)
                    booking.cancel('hold expired before payment succeeded', now)
                    late_success = True
                else:
                    booking.confirm(intent.id, intent.status.value, now)
            elif intent.status in (PaymentIntentStatus.FAILED, PaymentIntentStatus.CANCELED):
                self.ledger.release(booking.hold_id, 'payment_failed', uow=uow)
                booking.cancel(f"payment {intent.status.value}", now)
                cancel_intent = intent.status is PaymentIntentStatus.FAILED
            else:
                return booking

            uow.collect_events(booking)
            uow.bookings.save(booking)

        logger.info(f"Booking {booking.booking_code} settled as {booking.status.value} (intent {intent.status.value})")

        if late_success:
            self._refund_quietly(booking, intent)
        if cancel_intent:
            self._cancel_intent_quietly(intent.id)
        return booking

    def _commit_hold(self, booking: Booking, uow):
        """
        Commit the booking's hold to a debit

        A hold the sweep already purged is reserved again for the same
        booking first, so a late payment still confirms while the nights
        are free.

        Raises:
            HoldExpiredError: the hold is gone and its nights were taken
        """
        # Room type lock first, so the sweep cannot purge the hold between the lookup and the commit.
        uow.inventories.get(booking.room_type_id, window=booking.dates, lock=True)
        if uow.inventories.locate_hold(booking.hold_id) is None:
            outcome = self.ledger.try_reserve(
                booking.room_type_id,
                booking.dates,
                booking.rooms_count,
                booking_id=booking.id,
                uow=uow,
            )
            if isinstance(outcome, InsufficientInventory):
                raise HoldExpiredError(
                    f"Hold {booking.hold_id} was reclaimed and only {outcome.available} "
                    f"of {outcome.requested} units are left for {booking.dates}"
                )
            logger.info(f"Hold of booking {booking.booking_code} was reclaimed, re-reserved as {outcome.id}")
            booking.hold_id = outcome.id
        return self.ledger.commit(booking.hold_id, uow=uow)

    def confirm_payment(self, booking_id: UUID) -> Booking:
        """Client confirmation call: fetch the intent from the provider and settle."""
        booking = self.get_booking(booking_id)
        if booking.status is not BookingStatus.PENDING_PAYMENT or not booking.payment_intent_id:
            return booking
        intent = self._gateway_call(self.gateway.retrieve_intent, booking.payment_intent_id)
        return self.settle_payment(booking_id, intent)

    def await_payment(self, booking_id: UUID, timeout: float = None, poll_interval: float = None) -> Booking:
        """
        Poll the provider until the intent settles or ``timeout`` passes

        On timeout the booking is expired: the intent is cancelled and the
        hold released, unless the provider reports success one last time.
        """
        timeout = self.config.payment_timeout_seconds if timeout is None else timeout
        poll_interval = self.config.payment_poll_interval_seconds if poll_interval is None else poll_interval
        deadline = self.monotonic() + timeout

        while True:
            try:
                booking = self.confirm_payment(booking_id)
            except PaymentGatewayUnavailable as e:
                logger.warning(f"Provider unavailable while awaiting booking {booking_id}: {e}")
                booking = self.get_booking(booking_id)
            if booking.status is not BookingStatus.PENDING_PAYMENT:
                return booking
            remaining = deadline - self.monotonic()
            if remaining <= 0:
                break
            self.sleep(min(poll_interval, remaining))

        logger.info(f"Payment for booking {booking.booking_code} not settled within {timeout}s")
        return self._expire(booking_id, 'payment timeout')

    def _expire(self, booking_id: UUID, reason: str) -> Booking:
        booking = self.get_booking(booking_id)
        if booking.status is not BookingStatus.PENDING_PAYMENT:
            return booking

        if booking.payment_intent_id:
            try:
                intent = self._gateway_call(self.gateway.retrieve_intent, booking.payment_intent_id)
            except PaymentGatewayError as e:
                logger.warning(f"Could not check intent {booking.payment_intent_id} before expiring: {e}")
                intent = None
            if intent is not None and intent.status is PaymentIntentStatus.SUCCEEDED:
                return self.settle_payment(booking_id, intent)
            if intent is None or intent.status is PaymentIntentStatus.REQUIRES_PAYMENT:
                self._cancel_intent_quietly(booking.payment_intent_id)

        return self._cancel_pending(booking_id, reason, hold_reason='expired')

    def _cancel_pending(self, booking_id: UUID, reason: str, hold_reason: str) -> Booking:
        with self.uow_factory() as uow:
            booking = uow.bookings.get(booking_id, lock=True)
            if booking is None:
                raise BookingNotFound(f"Booking {booking_id} not found")
            if booking.status is not BookingStatus.PENDING_PAYMENT:
                return booking
            self.ledger.release(booking.hold_id, hold_reason, uow=uow)
            booking.cancel(reason, self.clock())
            uow.collect_events(booking)
            uow.bookings.save(booking)

        logger.info(f"Booking {booking.booking_code} cancelled: {reason}")
        return booking

    # ===== Cancel / refund =====

    def cancel_booking(self, booking_id: UUID, reason: str) -> Booking:
        """
        Cancel a booking on behalf of the guest or an administrator

        PENDING_PAYMENT: the hold is released and the intent cancelled.
        CONFIRMED: the debit is released; no money moves.

        Raises:
            InvalidBookingTransition: the booking is already cancelled or refunded
        """
        with self.uow_factory() as uow:
            booking = uow.bookings.get(booking_id, lock=True)
            if booking is None:
                raise BookingNotFound(f"Booking {booking_id} not found")
            previous = booking.cancel(reason, self.clock())
            if previous is BookingStatus.PENDING_PAYMENT:
                self.ledger.release(booking.hold_id, 'cancelled', uow=uow)
            else:
                self.ledger.release_debit(booking.room_type_id, booking.id, booking.dates, uow=uow)
            uow.collect_events(booking)
            uow.bookings.save(booking)

        logger.info(f"Booking {booking.booking_code} cancelled from {previous.value}: {reason}")

        if previous is BookingStatus.PENDING_PAYMENT and booking.payment_intent_id:
            self._cancel_intent_quietly(booking.payment_intent_id)
        return booking

    def refund_booking(self, booking_id: UUID, amount: Decimal = None) -> Booking:
        """
        Refund a confirmed booking

        A booking that is already REFUNDED is returned unchanged, so retried
        calls emit BookingRefunded at most once.

        Raises:
            InvalidBookingTransition: the booking is not CONFIRMED
            RefundPendingError: the provider has not settled the refund yet
            PaymentDeclined: the provider rejected the refund
        """
        booking = self.get_booking(booking_id)
        if booking.status is BookingStatus.REFUNDED:
            return booking
        if booking.status is not BookingStatus.CONFIRMED:
            raise InvalidBookingTransition(booking.status, BookingStatus.REFUNDED)

        money = None
        if amount is not None:
            money = Money(amount, booking.total_price.currency)
            if money.amount <= 0 or money.amount > booking.total_price.amount:
                raise InvalidBookingRequest(f"Refund amount must be between 0 and {booking.total_price}")

        refund = self._gateway_call(
            self.gateway.refund,
            booking.payment_intent_id,
            money,
            idempotency_key=refund_key(booking.id),
        )
        booking = self.complete_refund(booking_id, refund)

        if refund.status is RefundStatus.PENDING:
            raise RefundPendingError(refund.id)
        if refund.status in (RefundStatus.FAILED, RefundStatus.CANCELED):
            raise PaymentDeclined(f"Refund {refund.id} {refund.status.value}")
        return booking

    def complete_refund(self, booking_id: UUID, refund: Refund) -> Booking:
        """
        Apply a provider-reported refund to a booking

        Only a succeeded refund moves the booking to REFUNDED; a pending one
        is recorded so the later acknowledgement can be matched.
        """
        with self.uow_factory() as uow:
            booking = uow.bookings.get(booking_id, lock=True)
            if booking is None:
                raise BookingNotFound(f"Booking {booking_id} not found")
            if booking.status is not BookingStatus.CONFIRMED:
                return booking

            if refund.status is RefundStatus.SUCCEEDED:
                relist = self.config.relist_on_refund
                booking.mark_refunded(refund.id, refund.amount, relist, self.clock())
                if relist:
                    self.ledger.release_debit(booking.room_type_id, booking.id, booking.dates, uow=uow)
            elif refund.status is RefundStatus.PENDING:
                booking.refund_id = refund.id
                booking.touch(self.clock())
            else:
                logger.warning(f"Refund {refund.id} for booking {booking.booking_code} {refund.status.value}")
                return booking

            uow.collect_events(booking)
            uow.bookings.save(booking)

        logger.info(f"Refund {refund.id} for booking {booking.booking_code}: {refund.status.value}")
        return booking

    # ===== Provider notifications and sweeps =====

    def handle_payment_event(self, event: PaymentEvent) -> Optional[Booking]:
        """Dispatch a verified webhook event; unknown events are ignored."""
        if event.intent is not None:
            booking = self._booking_for_intent(event.intent.id, event.intent.booking_id)
            if booking is None:
                logger.warning(f"Webhook {event.id}: no booking for intent {event.intent.id}")
                return None
            return self.settle_payment(booking.id, event.intent)

        if event.refund is not None:
            booking = self._booking_for_intent(event.refund.intent_id, None)
            if booking is None:
                logger.warning(f"Webhook {event.id}: no booking for refunded intent {event.refund.intent_id}")
                return None
            return self.complete_refund(booking.id, event.refund)

        logger.debug(f"Ignoring webhook {event.id} of type {event.type}")
        return None

    def _booking_for_intent(self, intent_id: str, booking_id: Optional[str]) -> Optional[Booking]:
        with self.uow_factory() as uow:
            booking = uow.bookings.get_by_payment_intent(intent_id)
            if booking is None and booking_id:
                try:
                    booking = uow.bookings.get(UUID(booking_id))
                except ValueError:
                    booking = None
        return booking

    def expire_stale_bookings(self, limit: int = 100) -> int:
        """
        Expire PENDING_PAYMENT bookings whose hold has run out

        The provider is asked one last time; a succeeded intent is settled,
        anything else cancels the intent and the booking.
        Returns the number of bookings that left PENDING_PAYMENT.

        An invariant violation on one booking does not stop the others; the
        first one is re-raised once every booking has been tried.
        """
        with self.uow_factory() as uow:
            booking_ids = uow.bookings.list_expired_pending(self.clock(), limit)

        resolved = 0
        violation = None
        for booking_id in booking_ids:
            try:
                booking = self._expire(booking_id, 'hold expired')
            except InventoryInvariantViolation as e:
                violation = violation or e
                continue
            except Exception as e:
                logger.error(f"Error expiring booking {booking_id}: {e}", exc_info=True)
                continue
            if booking.status is not BookingStatus.PENDING_PAYMENT:
                resolved += 1

        if resolved:
            logger.info(f"Expired {resolved} stale bookings")
        if violation is not None:
            raise violation
        return resolved

    # ===== Provider helpers =====

    def _gateway_call(self, fn, *args, **kwargs):
        return retry_call(
            fn,
            *args,
            retry_on=(PaymentGatewayUnavailable,),
            attempts=self.config.gateway_max_attempts,
            backoff=self.config.gateway_backoff_seconds,
            sleep=self.sleep,
            **kwargs,
        )

    def _release_hold_quietly(self, hold_id: UUID, reason: str):
        try:
            self.ledger.release(hold_id, reason)
        except InventoryInvariantViolation:
            raise
        except Exception as e:
            logger.error(f"Could not release hold {hold_id}, leaving it to the sweep: {e}", exc_info=True)

    def _cancel_intent_quietly(self, intent_id: str):
        try:
            self._gateway_call(self.gateway.cancel_intent, intent_id)
        except PaymentGatewayError as e:
            logger.warning(f"Could not cancel intent {intent_id}, leaving it to provider expiry: {e}")

    def _refund_quietly(self, booking: Booking, intent: PaymentIntent):
        try:
            refund = self._gateway_call(self.gateway.refund, intent.id, None, idempotency_key=refund_key(booking.id))
        except PaymentGatewayError as e:
            logger.error(f"Could not refund late payment {intent.id} for booking {booking.booking_code}: {e}")
            return
        logger.warning(
            f"Refunded late payment {intent.id} for cancelled booking {booking.booking_code} "
            f"(refund {refund.id}, {refund.status.value})"
        )
