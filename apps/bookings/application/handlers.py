"""
Booking event handlers

The engine sends no email and writes no exports; its events are logged
here and left for other bounded contexts to subscribe to.
"""

import logging

from shared.application.message_bus import MessageBus
from apps.bookings.domain import events

logger = logging.getLogger('apps.bookings.events')

ENGINE_EVENTS = (
    events.BookingPlaced,
    events.BookingConfirmed,
    events.BookingCancelled,
    events.BookingRefunded,
    events.HoldPlaced,
    events.HoldReleased,
    events.HoldCommitted,
    events.DebitReleased,
)


def log_event(event):
    payload = event.to_dict()
    booking_id = getattr(event, 'booking_id', None)
    logger.info(f"{payload['event_type']} booking={booking_id} event={payload['event_id']}")


def register_handlers(bus: MessageBus):
    for event_type in ENGINE_EVENTS:
        bus.register_event_handler(event_type, log_event, idempotent=True)
