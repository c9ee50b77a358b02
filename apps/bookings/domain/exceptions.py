"""
Booking domain errors

``BookingError`` subclasses are expected outcomes surfaced to callers.
``InventoryInvariantViolation`` is not: it means the ledger would have
oversold a night, and it is never caught inside the engine.
"""


class BookingError(Exception):
    """Base class for user-facing booking failures."""


class InvalidBookingRequest(BookingError):
    """The request is structurally invalid and never reached the ledger."""


class BookingNotFound(BookingError):
    pass


class RoomTypeNotFound(InvalidBookingRequest):
    pass


class InventoryUnavailableError(BookingError):
    """Not enough units for at least one night of the requested range."""

    def __init__(self, outcome):
        self.outcome = outcome
        super().__init__(
            f"Only {outcome.available} of {outcome.requested} requested units "
            f"available for {outcome.dates}"
        )


class InvalidBookingTransition(BookingError):
    def __init__(self, current, target):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move booking from {current.value} to {target.value}")


class HoldExpiredError(BookingError):
    """The hold expired and its nights were taken before it could be committed."""


class RefundPendingError(BookingError):
    """The provider accepted the refund but has not settled it yet."""

    def __init__(self, refund_id: str):
        self.refund_id = refund_id
        super().__init__(f"Refund {refund_id} is pending at the payment provider")


class InventoryInvariantViolation(Exception):
    """A ledger mutation would leave a night with negative availability."""
