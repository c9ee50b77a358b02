"""Stripe gateway tests with the SDK calls patched out."""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from decimal import Decimal
from unittest import mock

import stripe
from django.test import SimpleTestCase

from shared.domain.value_objects import Money
from apps.payments.gateway import (
    PaymentDeclined,
    PaymentGatewayError,
    PaymentGatewayUnavailable,
    PaymentIntentStatus,
    RefundStatus,
    WebhookVerificationError,
)
from apps.payments.stripe_gateway import StripePaymentGateway

SECRET = "whsec_unit"


def intent_object(**overrides) -> dict:
    obj = {
        "id": "pi_123",
        "object": "payment_intent",
        "amount": 30000,
        "currency": "usd",
        "status": "requires_payment_method",
        "client_secret": "pi_123_secret_abc",
        "metadata": {"booking_id": "b-1"},
        "last_payment_error": None,
    }
    obj.update(overrides)
    return obj


def signed(payload: dict, secret: str = SECRET) -> tuple[bytes, str]:
    body = json.dumps(payload).encode()
    timestamp = int(time.time())
    signature = hmac.new(secret.encode(), f"{timestamp}.{body.decode()}".encode(), hashlib.sha256).hexdigest()
    return body, f"t={timestamp},v1={signature}"


class StripePaymentGatewayTests(SimpleTestCase):
    def setUp(self) -> None:
        self.gateway = StripePaymentGateway(api_key="sk_test_unit", webhook_secret=SECRET)

    def test_requires_api_key(self) -> None:
        with self.assertRaises(ValueError):
            StripePaymentGateway(api_key="")

    def test_create_intent_sends_minor_units_and_idempotency_key(self) -> None:
        with mock.patch("stripe.PaymentIntent.create", return_value=intent_object()) as create:
            intent = self.gateway.create_intent(Money(Decimal("300.00"), "USD"), {"booking_id": "b-1"}, "key-1")

        kwargs = create.call_args.kwargs
        self.assertEqual(kwargs["amount"], 30000)
        self.assertEqual(kwargs["currency"], "usd")
        self.assertEqual(kwargs["idempotency_key"], "key-1")
        self.assertEqual(kwargs["api_key"], "sk_test_unit")
        self.assertEqual(intent.amount, Money(Decimal("300.00"), "USD"))
        self.assertEqual(intent.status, PaymentIntentStatus.REQUIRES_PAYMENT)
        self.assertEqual(intent.booking_id, "b-1")

    def test_intent_status_mapping(self) -> None:
        cases = [
            (intent_object(status="succeeded"), PaymentIntentStatus.SUCCEEDED),
            (intent_object(status="canceled"), PaymentIntentStatus.CANCELED),
            (intent_object(last_payment_error={"code": "card_declined"}), PaymentIntentStatus.FAILED),
            (intent_object(status="processing"), PaymentIntentStatus.REQUIRES_PAYMENT),
        ]
        for obj, expected in cases:
            with mock.patch("stripe.PaymentIntent.retrieve", return_value=obj):
                self.assertEqual(self.gateway.retrieve_intent("pi_123").status, expected)

    def test_card_error_is_a_decline(self) -> None:
        error = stripe.CardError("Your card was declined.", "card", "card_declined", http_status=402)
        with mock.patch("stripe.PaymentIntent.create", side_effect=error):
            with self.assertRaises(PaymentDeclined):
                self.gateway.create_intent(Money(Decimal("10.00")), {}, "key-2")

    def test_connection_and_server_errors_are_transient(self) -> None:
        errors = [
            stripe.APIConnectionError("connection reset"),
            stripe.RateLimitError("slow down", http_status=429),
            stripe.APIError("internal error", http_status=500),
        ]
        for error in errors:
            with mock.patch("stripe.PaymentIntent.retrieve", side_effect=error):
                with self.assertRaises(PaymentGatewayUnavailable):
                    self.gateway.retrieve_intent("pi_123")

    def test_client_errors_are_not_retried(self) -> None:
        error = stripe.InvalidRequestError("No such payment_intent", "intent", http_status=404)
        with mock.patch("stripe.PaymentIntent.cancel", side_effect=error):
            with self.assertRaises(PaymentGatewayError) as ctx:
                self.gateway.cancel_intent("pi_missing")

        self.assertNotIsInstance(ctx.exception, PaymentGatewayUnavailable)

    def test_partial_refund(self) -> None:
        refund_obj = {"id": "re_1", "amount": 5000, "currency": "usd", "status": "pending", "payment_intent": "pi_123"}
        with mock.patch("stripe.Refund.create", return_value=refund_obj) as create:
            refund = self.gateway.refund("pi_123", Money(Decimal("50.00")), "refund-key")

        self.assertEqual(create.call_args.kwargs["amount"], 5000)
        self.assertEqual(create.call_args.kwargs["payment_intent"], "pi_123")
        self.assertEqual(refund.status, RefundStatus.PENDING)
        self.assertEqual(refund.intent_id, "pi_123")

    def test_full_refund_omits_amount(self) -> None:
        refund_obj = {"id": "re_2", "amount": 30000, "currency": "usd", "status": "succeeded", "payment_intent": "pi_123"}
        with mock.patch("stripe.Refund.create", return_value=refund_obj) as create:
            refund = self.gateway.refund("pi_123", None, "refund-key")

        self.assertNotIn("amount", create.call_args.kwargs)
        self.assertEqual(refund.status, RefundStatus.SUCCEEDED)

    def test_parse_intent_webhook(self) -> None:
        body, header = signed({
            "id": "evt_1",
            "object": "event",
            "type": "payment_intent.succeeded",
            "data": {"object": intent_object(status="succeeded")},
        })

        event = self.gateway.parse_webhook(body, header)

        self.assertEqual(event.id, "evt_1")
        self.assertEqual(event.intent.status, PaymentIntentStatus.SUCCEEDED)
        self.assertIsNone(event.refund)

    def test_parse_refund_webhook(self) -> None:
        body, header = signed({
            "id": "evt_2",
            "object": "event",
            "type": "refund.updated",
            "data": {"object": {
                "id": "re_1", "object": "refund", "amount": 30000, "currency": "usd",
                "status": "succeeded", "payment_intent": "pi_123",
            }},
        })

        event = self.gateway.parse_webhook(body, header)

        self.assertEqual(event.refund.status, RefundStatus.SUCCEEDED)
        self.assertIsNone(event.intent)

    def test_bad_signature_is_rejected(self) -> None:
        body, header = signed({"id": "evt_3", "object": "event", "type": "payment_intent.succeeded",
                               "data": {"object": intent_object()}}, secret="whsec_other")

        with self.assertRaises(WebhookVerificationError):
            self.gateway.parse_webhook(body, header)

    def test_unconfigured_webhook_secret(self) -> None:
        gateway = StripePaymentGateway(api_key="sk_test_unit")

        with self.assertRaises(WebhookVerificationError):
            gateway.parse_webhook(b"{}", "t=1,v1=abc")
