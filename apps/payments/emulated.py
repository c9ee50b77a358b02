"""
Emulated payment gateway

Used when no Stripe key is configured or in DEBUG, and by the tests.
Behaves like the provider where the engine can observe it: repeated
idempotency keys return the original object, settled intents cannot be
cancelled, webhooks carry a Stripe-Signature header. Test hooks settle
intents and inject transient failures.
"""

from collections import Counter, deque
from threading import Lock
from typing import Dict, Optional, Tuple
import hashlib
import hmac
import json
import logging
import time
import uuid

import stripe  # type: ignore

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

logger = logging.getLogger(__name__)


class EmulatedPaymentGateway(PaymentGateway):
    def __init__(
        self,
        webhook_secret: str = 'whsec_emulated',
        auto_confirm: bool = False,
        refund_status: RefundStatus = RefundStatus.SUCCEEDED,
    ):
        self.webhook_secret = webhook_secret
        self.auto_confirm = auto_confirm
        self.refund_status = refund_status
        self.calls: Counter = Counter()
        self._intents: Dict[str, PaymentIntent] = {}
        self._refunds: Dict[str, Refund] = {}
        self._keys: Dict[str, object] = {}
        self._failures: Dict[str, deque] = {}
        self._lock = Lock()

    # ----- test hooks -----

    def fail_next(self, operation: str, error: Exception = None, times: int = 1):
        """Make the next ``times`` calls of ``operation`` raise ``error``."""
        error = error or PaymentGatewayUnavailable(f"emulated outage in {operation}")
        with self._lock:
            self._failures.setdefault(operation, deque()).extend([error] * times)

    def mark_succeeded(self, intent_id: str) -> PaymentIntent:
        return self._settle(intent_id, PaymentIntentStatus.SUCCEEDED)

    def mark_failed(self, intent_id: str) -> PaymentIntent:
        return self._settle(intent_id, PaymentIntentStatus.FAILED)

    def build_webhook(self, event_type: str, obj: dict, event_id: str = None) -> Tuple[bytes, str]:
        """Return a signed ``(payload, signature)`` pair for a provider event."""
        payload = json.dumps({
            'id': event_id or f"evt_{uuid.uuid4().hex[:16]}",
            'type': event_type,
            'data': {'object': obj},
        }).encode()
        return payload, self._sign(payload)

    def intent_webhook(self, intent_id: str, event_id: str = None) -> Tuple[bytes, str]:
        intent = self._intents[intent_id]
        event_type = {
            PaymentIntentStatus.SUCCEEDED: 'payment_intent.succeeded',
            PaymentIntentStatus.FAILED: 'payment_intent.payment_failed',
            PaymentIntentStatus.CANCELED: 'payment_intent.canceled',
        }[intent.status]
        return self.build_webhook(event_type, {
            'id': intent.id,
            'amount': intent.amount.to_minor_units(),
            'currency': intent.amount.currency,
            'status': intent.status.value,
            'metadata': intent.metadata,
        }, event_id)

    # ----- gateway -----

    def create_intent(self, amount: Money, metadata: Dict[str, str], idempotency_key: str) -> PaymentIntent:
        with self._lock:
            self._call('create_intent')
            existing = self._keys.get(idempotency_key)
            if existing is not None:
                return self._intents[existing.id]
            status = PaymentIntentStatus.SUCCEEDED if self.auto_confirm else PaymentIntentStatus.REQUIRES_PAYMENT
            intent_id = f"pi_{uuid.uuid4().hex[:16]}"
            intent = PaymentIntent(
                id=intent_id,
                amount=amount,
                status=status,
                client_secret=f"{intent_id}_secret_{uuid.uuid4().hex[:8]}",
                metadata=dict(metadata),
            )
            self._intents[intent.id] = intent
            self._keys[idempotency_key] = intent
        logger.info(f"Emulated intent {intent.id} created for {amount}")
        return intent

    def retrieve_intent(self, intent_id: str) -> PaymentIntent:
        with self._lock:
            self._call('retrieve_intent')
            return self._get(intent_id)

    def cancel_intent(self, intent_id: str) -> PaymentIntent:
        with self._lock:
            self._call('cancel_intent')
            intent = self._get(intent_id)
            if intent.status is PaymentIntentStatus.SUCCEEDED:
                raise PaymentGatewayError(f"Intent {intent_id} has already succeeded")
            if intent.status is PaymentIntentStatus.CANCELED:
                return intent
            intent = self._replace(intent, PaymentIntentStatus.CANCELED)
        logger.info(f"Emulated intent {intent_id} canceled")
        return intent

    def refund(self, intent_id: str, amount: Optional[Money], idempotency_key: str) -> Refund:
        with self._lock:
            self._call('refund')
            existing = self._keys.get(idempotency_key)
            if existing is not None:
                return self._refunds[existing.id]
            intent = self._get(intent_id)
            if intent.status is not PaymentIntentStatus.SUCCEEDED:
                raise PaymentGatewayError(f"Intent {intent_id} has no captured charge to refund")
            amount = amount or intent.amount
            if amount.amount > intent.amount.amount:
                raise PaymentDeclined("Refund amount exceeds the captured amount")
            refund = Refund(
                id=f"re_{uuid.uuid4().hex[:16]}",
                intent_id=intent_id,
                amount=amount,
                status=self.refund_status,
            )
            self._refunds[refund.id] = refund
            self._keys[idempotency_key] = refund
        logger.info(f"Emulated refund {refund.id} ({refund.status.value}) for {intent_id}")
        return refund

    def complete_refund(self, refund_id: str, status: RefundStatus = RefundStatus.SUCCEEDED) -> Refund:
        with self._lock:
            refund = self._refunds[refund_id]
            refund = Refund(id=refund.id, intent_id=refund.intent_id, amount=refund.amount, status=status)
            self._refunds[refund_id] = refund
            return refund

    def parse_webhook(self, payload: bytes, signature: str) -> PaymentEvent:
        try:
            stripe.WebhookSignature.verify_header(
                payload.decode('utf-8'), signature or '', self.webhook_secret, stripe.Webhook.DEFAULT_TOLERANCE,
            )
        except (stripe.SignatureVerificationError, UnicodeDecodeError) as e:
            raise WebhookVerificationError(f"Invalid signature: {e}") from e
        try:
            event = json.loads(payload)
            obj = event['data']['object']
            event_type = event['type']
        except (ValueError, KeyError) as e:
            raise WebhookVerificationError(f"Invalid payload: {e}") from e

        if event_type.startswith('payment_intent.'):
            intent = PaymentIntent(
                id=obj['id'],
                amount=Money.from_minor_units(obj['amount'], obj['currency']),
                status=PaymentIntentStatus(obj['status']),
                metadata=obj.get('metadata') or {},
            )
            return PaymentEvent(id=event['id'], type=event_type, intent=intent)
        if event_type.startswith('refund.'):
            refund = Refund(
                id=obj['id'],
                intent_id=obj['payment_intent'],
                amount=Money.from_minor_units(obj['amount'], obj['currency']),
                status=RefundStatus(obj['status']),
            )
            return PaymentEvent(id=event['id'], type=event_type, refund=refund)
        return PaymentEvent(id=event['id'], type=event_type)

    # ----- internals -----

    def _sign(self, payload: bytes) -> str:
        # Same header Stripe sends: t=<unix time>,v1=<hmac of "t.payload">
        timestamp = int(time.time())
        signed = f"{timestamp}.".encode() + payload
        digest = hmac.new(self.webhook_secret.encode(), signed, hashlib.sha256).hexdigest()
        return f"t={timestamp},v1={digest}"

    def _call(self, operation: str):
        self.calls[operation] += 1
        pending = self._failures.get(operation)
        if pending:
            raise pending.popleft()

    def _get(self, intent_id: str) -> PaymentIntent:
        try:
            return self._intents[intent_id]
        except KeyError:
            raise PaymentGatewayError(f"No such payment intent: {intent_id}")

    def _replace(self, intent: PaymentIntent, status: PaymentIntentStatus) -> PaymentIntent:
        updated = PaymentIntent(
            id=intent.id,
            amount=intent.amount,
            status=status,
            client_secret=intent.client_secret,
            metadata=intent.metadata,
        )
        self._intents[intent.id] = updated
        return updated

    def _settle(self, intent_id: str, status: PaymentIntentStatus) -> PaymentIntent:
        with self._lock:
            return self._replace(self._get(intent_id), status)
