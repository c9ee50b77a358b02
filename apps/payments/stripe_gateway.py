"""
Stripe implementation of the payment gateway

Amounts travel in minor units. Every call passes the API key explicitly
so several gateways with different keys can coexist in one process.
"""

from contextlib import contextmanager
from typing import Dict, Optional

import stripe
import structlog

from shared.domain.value_objects import Money
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
    WebhookVerificationError,
)

logger = structlog.get_logger(__name__)

_INTENT_EVENTS = {
    'payment_intent.succeeded',
    'payment_intent.payment_failed',
    'payment_intent.canceled',
}
_REFUND_EVENTS = {'refund.created', 'refund.updated', 'charge.refund.updated'}

_REFUND_STATUSES = {
    'pending': RefundStatus.PENDING,
    'requires_action': RefundStatus.PENDING,
    'succeeded': RefundStatus.SUCCEEDED,
    'failed': RefundStatus.FAILED,
    'canceled': RefundStatus.CANCELED,
}


def _intent_status(obj) -> PaymentIntentStatus:
    status = obj.get('status')
    if status == 'succeeded':
        return PaymentIntentStatus.SUCCEEDED
    if status == 'canceled':
        return PaymentIntentStatus.CANCELED
    if status == 'requires_payment_method' and obj.get('last_payment_error'):
        return PaymentIntentStatus.FAILED
    return PaymentIntentStatus.REQUIRES_PAYMENT


def _to_intent(obj) -> PaymentIntent:
    return PaymentIntent(
        id=obj['id'],
        amount=Money.from_minor_units(obj['amount'], obj['currency'].upper()),
        status=_intent_status(obj),
        client_secret=obj.get('client_secret') or '',
        metadata={key: str(value) for key, value in (obj.get('metadata') or {}).items()},
    )


def _to_refund(obj) -> Refund:
    return Refund(
        id=obj['id'],
        intent_id=obj.get('payment_intent') or '',
        amount=Money.from_minor_units(obj['amount'], obj['currency'].upper()),
        status=_REFUND_STATUSES.get(obj.get('status'), RefundStatus.PENDING),
    )


@contextmanager
def _translate_errors(operation: str, **context):
    """Map Stripe SDK exceptions onto the gateway error contract."""
    try:
        yield
    except stripe.CardError as e:
        logger.info("stripe_declined", operation=operation, code=e.code, **context)
        raise PaymentDeclined(e.user_message or str(e)) from e
    except (stripe.APIConnectionError, stripe.RateLimitError) as e:
        logger.warning("stripe_unavailable", operation=operation, error=str(e), **context)
        raise PaymentGatewayUnavailable(str(e)) from e
    except stripe.StripeError as e:
        if e.http_status is None or e.http_status >= 500:
            logger.warning("stripe_server_error", operation=operation, status=e.http_status, **context)
            raise PaymentGatewayUnavailable(str(e)) from e
        logger.error("stripe_request_rejected", operation=operation, status=e.http_status, error=str(e), **context)
        raise PaymentGatewayError(str(e)) from e


class StripePaymentGateway(PaymentGateway):
    def __init__(self, api_key: str, webhook_secret: str = ''):
        if not api_key:
            raise ValueError("Stripe API key is required")
        self.api_key = api_key
        self.webhook_secret = webhook_secret

    def create_intent(self, amount: Money, metadata: Dict[str, str], idempotency_key: str) -> PaymentIntent:
        with _translate_errors('create_intent', idempotency_key=idempotency_key):
            obj = stripe.PaymentIntent.create(
                amount=amount.to_minor_units(),
                currency=amount.currency.lower(),
                metadata=metadata,
                automatic_payment_methods={'enabled': True},
                idempotency_key=idempotency_key,
                api_key=self.api_key,
            )
        intent = _to_intent(obj)
        logger.info("stripe_intent_created", intent_id=intent.id, amount=str(amount))
        return intent

    def retrieve_intent(self, intent_id: str) -> PaymentIntent:
        with _translate_errors('retrieve_intent', intent_id=intent_id):
            obj = stripe.PaymentIntent.retrieve(intent_id, api_key=self.api_key)
        return _to_intent(obj)

    def cancel_intent(self, intent_id: str) -> PaymentIntent:
        with _translate_errors('cancel_intent', intent_id=intent_id):
            obj = stripe.PaymentIntent.cancel(intent_id, api_key=self.api_key)
        logger.info("stripe_intent_canceled", intent_id=intent_id)
        return _to_intent(obj)

    def refund(self, intent_id: str, amount: Optional[Money], idempotency_key: str) -> Refund:
        params = {'payment_intent': intent_id}
        if amount is not None:
            params['amount'] = amount.to_minor_units()
        with _translate_errors('refund', intent_id=intent_id, idempotency_key=idempotency_key):
            obj = stripe.Refund.create(idempotency_key=idempotency_key, api_key=self.api_key, **params)
        refund = _to_refund(obj)
        logger.info("stripe_refund_created", intent_id=intent_id, refund_id=refund.id, status=refund.status.value)
        return refund

    def parse_webhook(self, payload: bytes, signature: str) -> PaymentEvent:
        if not self.webhook_secret:
            raise WebhookVerificationError("Webhook secret is not configured")
        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except ValueError as e:
            raise WebhookVerificationError(f"Invalid payload: {e}") from e
        except stripe.SignatureVerificationError as e:
            raise WebhookVerificationError(f"Invalid signature: {e}") from e

        obj = event['data']['object']
        if event['type'] in _INTENT_EVENTS:
            return PaymentEvent(id=event['id'], type=event['type'], intent=_to_intent(obj))
        if event['type'] in _REFUND_EVENTS:
            return PaymentEvent(id=event['id'], type=event['type'], refund=_to_refund(obj))
        return PaymentEvent(id=event['id'], type=event['type'])
