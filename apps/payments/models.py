"""Local records of provider-side payment objects."""

from __future__ import annotations

from django.db import models  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore


class PaymentIntentRecord(models.Model):
    """Shadow of a provider payment intent; status is the last one the provider reported."""

    class Status(models.TextChoices):
        REQUIRES_PAYMENT = "requires_payment", _("Requires payment")
        SUCCEEDED = "succeeded", _("Succeeded")
        CANCELED = "canceled", _("Canceled")
        FAILED = "failed", _("Failed")

    intent_id = models.CharField(max_length=255, primary_key=True)
    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.CASCADE,
        related_name="payment_intents",
    )
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3)
    status = models.CharField(max_length=20, choices=Status.choices)
    client_secret = models.CharField(max_length=255, blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Payment intent")
        verbose_name_plural = _("Payment intents")

    def __str__(self) -> str:
        return f"{self.intent_id} ({self.status})"


class ProcessedWebhookEvent(models.Model):
    """Provider event ids already applied; re-deliveries are acknowledged without effect."""

    event_id = models.CharField(max_length=255, primary_key=True)
    event_type = models.CharField(max_length=100)
    processed_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"{self.event_type} {self.event_id}"
