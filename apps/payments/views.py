"""Payment provider webhook endpoint."""

from __future__ import annotations

import structlog

from rest_framework import permissions, status  # type: ignore
from rest_framework.response import Response  # type: ignore
from rest_framework.views import APIView  # type: ignore

from apps.bookings import bootstrap
from .gateway import WebhookVerificationError
from .models import ProcessedWebhookEvent

logger = structlog.get_logger(__name__)


class PaymentWebhookView(APIView):
    """
    Receives signed provider events.

    The signature is the only authentication. An event id that was already
    processed is acknowledged without being applied again; an event whose
    processing fails is left unrecorded so the provider redelivers it.
    """

    authentication_classes: list = []
    permission_classes = [permissions.AllowAny]

    def post(self, request):  # type: ignore
        signature = request.META.get("HTTP_STRIPE_SIGNATURE", "")
        engine = bootstrap.get_engine()
        try:
            event = engine.gateway.parse_webhook(request.body, signature)
        except WebhookVerificationError as e:
            logger.warning("payments.webhook.rejected", error=str(e))
            return Response({"detail": "Invalid webhook"}, status=status.HTTP_400_BAD_REQUEST)

        if ProcessedWebhookEvent.objects.filter(pk=event.id).exists():
            logger.info("payments.webhook.duplicate", event_id=event.id)
            return Response({"status": "duplicate"}, status=status.HTTP_200_OK)

        engine.orchestrator.handle_payment_event(event)
        logger.info("payments.webhook.processed", event_id=event.id, event_type=event.type)
        ProcessedWebhookEvent.objects.get_or_create(event_id=event.id, defaults={"event_type": event.type})
        return Response({"status": "processed"}, status=status.HTTP_200_OK)
