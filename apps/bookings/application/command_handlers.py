"""
Booking Command Handlers

Route booking commands on the message bus to the reservation
orchestrator, so views and tasks dispatch commands instead of calling
the orchestrator's methods directly.

Commands:
- PlaceBookingCommand: hold inventory, create the payment intent, persist PENDING_PAYMENT
- ConfirmPaymentCommand: settle the booking from the intent's current state
- CancelBookingCommand: cancel and release the hold or debit
- RefundBookingCommand: refund a confirmed booking
"""

from shared.application.message_bus import MessageBus
from apps.bookings.application.commands import (
    CancelBookingCommand,
    ConfirmPaymentCommand,
    PlaceBookingCommand,
    RefundBookingCommand,
)
from apps.bookings.application.orchestrator import ReservationOrchestrator


def register_command_handlers(bus: MessageBus, orchestrator: ReservationOrchestrator):
    bus.register_command_handler(PlaceBookingCommand, orchestrator.place_booking)
    bus.register_command_handler(
        ConfirmPaymentCommand,
        lambda command: orchestrator.confirm_payment(command.booking_id),
    )
    bus.register_command_handler(
        CancelBookingCommand,
        lambda command: orchestrator.cancel_booking(command.booking_id, command.reason),
    )
    bus.register_command_handler(
        RefundBookingCommand,
        lambda command: orchestrator.refund_booking(command.booking_id, command.amount),
    )
