"""
Composition root

Builds the reservation engine from its parts: units of work, message bus,
payment gateway, inventory ledger, orchestrator and the review side's
rating aggregator. Nothing here is created at import time; views and
tasks share one engine per process through ``get_engine()`` and tests
build their own with ``bootstrap(store=InMemoryStore(), ...)``.
"""

from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache, partial
from typing import Callable, Optional
from uuid import UUID
import logging
import time

from shared.application.message_bus import MessageBus
from shared.domain.base import utcnow
from shared.infrastructure.memory import InMemoryStore
from apps.bookings.application import handlers as booking_handlers
from apps.bookings.application.command_handlers import register_command_handlers
from apps.bookings.application.config import ReservationConfig
from apps.bookings.application.ledger import InventoryLedger
from apps.bookings.application.orchestrator import ReservationOrchestrator
from apps.payments.gateway import PaymentGateway
from apps.reviews.application import handlers as review_handlers
from apps.reviews.application.rating import RatingAggregator
from apps.reviews.application.service import ReviewService

logger = logging.getLogger(__name__)


@dataclass
class ReservationEngine:
    bus: MessageBus
    config: ReservationConfig
    gateway: PaymentGateway
    ledger: InventoryLedger
    orchestrator: ReservationOrchestrator
    ratings: RatingAggregator
    reviews: ReviewService


def build_payment_gateway(settings=None) -> PaymentGateway:
    """Stripe when a secret key is configured outside DEBUG, the emulator otherwise."""
    if settings is None:
        from django.conf import settings

    from apps.payments.emulated import EmulatedPaymentGateway
    from apps.payments.stripe_gateway import StripePaymentGateway

    api_key = getattr(settings, 'STRIPE_SECRET_KEY', '')
    webhook_secret = getattr(settings, 'STRIPE_WEBHOOK_SECRET', '')
    if settings.DEBUG or not api_key:
        logger.warning("Stripe is not configured, payments go through the emulated gateway")
        return EmulatedPaymentGateway(
            webhook_secret=webhook_secret or 'whsec_emulated',
            auto_confirm=getattr(settings, 'EMULATED_PAYMENTS_AUTO_CONFIRM', False),
        )
    return StripePaymentGateway(api_key=api_key, webhook_secret=webhook_secret)


def _schedule_rating_recompute(hotel_id: UUID):
    from apps.reviews.tasks import recompute_hotel_rating

    recompute_hotel_rating.delay(str(hotel_id))


def bootstrap(
    store: Optional[InMemoryStore] = None,
    gateway: Optional[PaymentGateway] = None,
    config: Optional[ReservationConfig] = None,
    clock: Callable[[], datetime] = utcnow,
    sleep: Callable[[float], None] = time.sleep,
    monotonic: Callable[[], float] = time.monotonic,
    on_rating_give_up: Optional[Callable[[UUID], None]] = _schedule_rating_recompute,
) -> ReservationEngine:
    """
    Wire an engine

    With ``store`` every repository lives in that in-memory store;
    without it they go through the Django ORM.
    """
    bus = MessageBus()
    booking_handlers.register_handlers(bus)
    review_handlers.register_handlers(bus)

    if store is not None:
        from apps.bookings.infrastructure.uow import InMemoryBookingUnitOfWork
        from apps.reviews.infrastructure.uow import InMemoryReviewUnitOfWork

        booking_uow = partial(InMemoryBookingUnitOfWork, store, bus)
        review_uow = partial(InMemoryReviewUnitOfWork, store, bus)
    else:
        from apps.bookings.infrastructure.uow import BookingUnitOfWork
        from apps.reviews.infrastructure.uow import ReviewUnitOfWork

        booking_uow = partial(BookingUnitOfWork, bus)
        review_uow = partial(ReviewUnitOfWork, bus)

    config = config or ReservationConfig.from_settings()
    gateway = gateway or build_payment_gateway()

    ledger = InventoryLedger(booking_uow, config=config, clock=clock)
    orchestrator = ReservationOrchestrator(
        booking_uow, ledger, gateway, config=config, clock=clock, sleep=sleep, monotonic=monotonic,
    )
    register_command_handlers(bus, orchestrator)
    ratings = RatingAggregator(
        review_uow,
        attempts=config.rating_recompute_attempts,
        on_give_up=on_rating_give_up,
        clock=clock,
        sleep=sleep,
    )
    return ReservationEngine(
        bus=bus,
        config=config,
        gateway=gateway,
        ledger=ledger,
        orchestrator=orchestrator,
        ratings=ratings,
        reviews=ReviewService(review_uow, ratings),
    )


@lru_cache(maxsize=None)
def get_engine() -> ReservationEngine:
    return bootstrap()
