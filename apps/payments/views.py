"""Stripe webhook endpoint."""

from __future__ import annotations

import logging

from django.utils.decorators import method_decorator
from django.views.decorators.csrf import csrf_exempt
from rest_framework import permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from .gateway import StripeSettlementGateway, WebhookSignatureError

logger = logging.getLogger(__name__)


@method_decorator(csrf_exempt, name="dispatch")
class StripeWebhookView(APIView):
    """
    Receives Stripe events.

    Only events whose signature verifies are processed. Handler errors
    propagate as 5xx so Stripe redelivers; every handler is idempotent.
    """

    authentication_classes: list = []
    permission_classes = [permissions.AllowAny]
    gateway_class = StripeSettlementGateway

    def post(self, request):
        from apps.bookings.services import get_booking_service

        signature = request.META.get("HTTP_STRIPE_SIGNATURE", "")
        try:
            event = self.gateway_class().construct_webhook_event(request.body, signature)
        except WebhookSignatureError as e:
            logger.warning(f"Rejected Stripe webhook: {e.message}")
            return Response({"detail": "Invalid signature"}, status=status.HTTP_400_BAD_REQUEST)

        outcome = get_booking_service().handle_payment_event(event)
        return Response({"received": True, "outcome": outcome}, status=status.HTTP_200_OK)
