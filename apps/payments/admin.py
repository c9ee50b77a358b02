"""Admin registration for payment records."""

from __future__ import annotations

from django.contrib import admin

from .models import PaymentIntentRecord, ProcessedWebhookEvent


@admin.register(PaymentIntentRecord)
class PaymentIntentRecordAdmin(admin.ModelAdmin):
    list_display = ("intent_id", "booking", "amount", "currency", "status", "updated_at")
    list_filter = ("status", "currency")
    search_fields = ("intent_id", "booking__booking_code")
    readonly_fields = ("client_secret", "metadata", "created_at", "updated_at")


@admin.register(ProcessedWebhookEvent)
class ProcessedWebhookEventAdmin(admin.ModelAdmin):
    list_display = ("event_id", "event_type", "processed_at")
    list_filter = ("event_type",)
