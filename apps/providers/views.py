"""API views for offer search and provider webhooks."""

from __future__ import annotations

import logging

from django.utils.decorators import method_decorator
from django.views.decorators.csrf import csrf_exempt
from rest_framework import permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from .duffel import SIGNATURE_HEADER, WebhookSignatureError, construct_webhook_event
from .serializers import OfferSearchSerializer
from .services import OfferSearchService

logger = logging.getLogger(__name__)


class OfferSearchView(APIView):
    permission_classes = [permissions.AllowAny]
    search_service_class = OfferSearchService

    def post(self, request):
        serializer = OfferSearchSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        offers = self.search_service_class().search(data["provider"], data["criteria"], data["currency"])
        return Response({"count": len(offers), "results": offers}, status=status.HTTP_200_OK)


@method_decorator(csrf_exempt, name="dispatch")
class DuffelWebhookView(APIView):
    """
    Receives Duffel order and cancellation events.

    Unsigned or tampered deliveries are rejected before any booking is
    read. Handler errors propagate as 5xx so Duffel redelivers.
    """

    authentication_classes: list = []
    permission_classes = [permissions.AllowAny]

    def post(self, request):
        from apps.bookings.services import get_booking_service

        try:
            event = construct_webhook_event(request.body, request.META.get(SIGNATURE_HEADER, ""))
        except WebhookSignatureError as e:
            logger.warning(f"Rejected Duffel webhook: {e.message}")
            return Response({"detail": "Invalid signature"}, status=status.HTTP_400_BAD_REQUEST)

        outcome = get_booking_service().handle_provider_event(event)
        return Response({"received": True, "outcome": outcome}, status=status.HTTP_200_OK)
