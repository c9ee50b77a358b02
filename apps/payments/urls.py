"""URL routing for payment provider callbacks."""

from django.urls import path  # type: ignore

from .views import PaymentWebhookView

urlpatterns = [
    path("payments/webhook/", PaymentWebhookView.as_view(), name="payment-webhook"),
]
