"""
Payment gateway boundary

The engine never talks to a payment provider directly; it goes through a
``PaymentGateway``. Provider objects are translated into the immutable
records below so nothing outside the gateway module depends on a
provider SDK.

Error contract:
- PaymentGatewayUnavailable: transient (network, rate limit, 5xx); safe to retry
- PaymentDeclined: business rejection; terminal for this attempt
- WebhookVerificationError: payload or signature rejected
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional

from shared.domain.value_objects import Money


class PaymentIntentStatus(Enum):
    REQUIRES_PAYMENT = 'requires_payment'
    SUCCEEDED = 'succeeded'
    CANCELED = 'canceled'
    FAILED = 'failed'

    @property
    def is_settled(self) -> bool:
        return self is not PaymentIntentStatus.REQUIRES_PAYMENT


class RefundStatus(Enum):
    PENDING = 'pending'
    SUCCEEDED = 'succeeded'
    FAILED = 'failed'
    CANCELED = 'canceled'


@dataclass(frozen=True)
class PaymentIntent:
    """Last provider-reported state of a payment intent."""
    id: str
    amount: Money
    status: PaymentIntentStatus
    client_secret: str = ''
    metadata: Dict[str, str] = field(default_factory=dict)

    @property
    def booking_id(self) -> Optional[str]:
        return self.metadata.get('booking_id')


@dataclass(frozen=True)
class Refund:
    id: str
    intent_id: str
    amount: Money
    status: RefundStatus


@dataclass(frozen=True)
class PaymentEvent:
    """
    A verified provider notification

    ``intent`` is set for payment intent notifications, ``refund`` for
    refund notifications. Other provider events are parsed with both unset
    and ignored by the engine.
    """
    id: str
    type: str
    intent: Optional[PaymentIntent] = None
    refund: Optional[Refund] = None


class PaymentGatewayError(Exception):
    """Base class for payment provider failures."""


class PaymentGatewayUnavailable(PaymentGatewayError):
    """Transient provider failure."""


class PaymentDeclined(PaymentGatewayError):
    """The provider rejected the charge or refund."""


class WebhookVerificationError(PaymentGatewayError):
    """Webhook payload could not be verified."""


class PaymentGateway(ABC):
    """Port to the external payment processor."""

    @abstractmethod
    def create_intent(self, amount: Money, metadata: Dict[str, str], idempotency_key: str) -> PaymentIntent:
        """Create (or, for a repeated key, return) a payment intent."""

    @abstractmethod
    def retrieve_intent(self, intent_id: str) -> PaymentIntent:
        """Fetch the current provider-side state of an intent."""

    @abstractmethod
    def cancel_intent(self, intent_id: str) -> PaymentIntent:
        """Cancel an unsettled intent."""

    @abstractmethod
    def refund(self, intent_id: str, amount: Optional[Money], idempotency_key: str) -> Refund:
        """Refund a captured intent, fully when ``amount`` is None."""

    @abstractmethod
    def parse_webhook(self, payload: bytes, signature: str) -> PaymentEvent:
        """Verify and translate a webhook delivery."""
