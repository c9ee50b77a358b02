"""Review event handlers; the rating summary itself is kept by RatingAggregator."""

import logging

from shared.application.message_bus import MessageBus
from apps.reviews.domain import events

logger = logging.getLogger('apps.reviews.events')


def log_review_event(event):
    logger.info(f"{event.event_type} hotel={event.hotel_id} event={event.event_id}")


def log_rating_update(event: events.HotelRatingUpdated):
    logger.info(
        f"Hotel {event.hotel_id} rating {event.previous_average} ({event.previous_count}) "
        f"-> {event.average_rating} ({event.review_count})"
    )


def register_handlers(bus: MessageBus):
    bus.register_event_handler(events.ReviewCreated, log_review_event, idempotent=True)
    bus.register_event_handler(events.ReviewUpdated, log_review_event, idempotent=True)
    bus.register_event_handler(events.ReviewRemoved, log_review_event, idempotent=True)
    bus.register_event_handler(events.HotelRatingUpdated, log_rating_update, idempotent=True)
