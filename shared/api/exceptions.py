"""
DRF exception handler for engine errors

Maps the booking, payment and review error taxonomies onto HTTP statuses
with a stable ``code`` so clients can branch without parsing messages.
Anything unmapped falls through to DRF and, for non-API exceptions, to a
500.
"""

from typing import Optional
import logging

from rest_framework import status  # type: ignore
from rest_framework.response import Response  # type: ignore
from rest_framework.views import exception_handler  # type: ignore

from apps.bookings.domain.exceptions import (
    BookingNotFound,
    HoldExpiredError,
    InvalidBookingRequest,
    InvalidBookingTransition,
    InventoryUnavailableError,
    RefundPendingError,
    RoomTypeNotFound,
)
from apps.payments.gateway import PaymentDeclined, PaymentGatewayError, PaymentGatewayUnavailable
from apps.reviews.domain.exceptions import (
    DuplicateReviewError,
    HotelNotFound,
    InvalidReview,
    ReviewNotFound,
    ReviewPermissionDenied,
)

logger = logging.getLogger(__name__)

# First match wins, so subclasses come before their bases.
ERROR_STATUS = (
    (RoomTypeNotFound, status.HTTP_404_NOT_FOUND, 'room_type_not_found'),
    (BookingNotFound, status.HTTP_404_NOT_FOUND, 'booking_not_found'),
    (InvalidBookingRequest, status.HTTP_400_BAD_REQUEST, 'invalid_booking_request'),
    (InventoryUnavailableError, status.HTTP_409_CONFLICT, 'inventory_unavailable'),
    (InvalidBookingTransition, status.HTTP_409_CONFLICT, 'invalid_transition'),
    (HoldExpiredError, status.HTTP_409_CONFLICT, 'hold_expired'),
    (RefundPendingError, status.HTTP_202_ACCEPTED, 'refund_pending'),
    (PaymentDeclined, status.HTTP_402_PAYMENT_REQUIRED, 'payment_declined'),
    (PaymentGatewayUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE, 'payment_provider_unavailable'),
    (PaymentGatewayError, status.HTTP_502_BAD_GATEWAY, 'payment_provider_error'),
    (InvalidReview, status.HTTP_400_BAD_REQUEST, 'invalid_review'),
    (DuplicateReviewError, status.HTTP_409_CONFLICT, 'duplicate_review'),
    (HotelNotFound, status.HTTP_404_NOT_FOUND, 'hotel_not_found'),
    (ReviewNotFound, status.HTTP_404_NOT_FOUND, 'review_not_found'),
    (ReviewPermissionDenied, status.HTTP_403_FORBIDDEN, 'permission_denied'),
)


def engine_exception_handler(exc, context) -> Optional[Response]:
    response = exception_handler(exc, context)
    if response is not None:
        return response

    for error_type, status_code, code in ERROR_STATUS:
        if isinstance(exc, error_type):
            if status_code >= 500:
                logger.warning(f"{type(exc).__name__} while serving request: {exc}")
            body = {'detail': str(exc), 'code': code}
            if isinstance(exc, RefundPendingError):
                body['refund_id'] = exc.refund_id
            return Response(body, status=status_code)
    return None
