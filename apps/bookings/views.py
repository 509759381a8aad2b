"""API views for the booking domain."""

from __future__ import annotations

import logging
from dataclasses import asdict

from rest_framework import mixins, permissions, status, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.response import Response  # type: ignore
from rest_framework.views import exception_handler  # type: ignore

from apps.payments.gateway import PaymentGatewayError
from apps.providers.base import ProviderError
from shared.infrastructure.encryption import DecryptionError, EncryptionError

from .exceptions import BookingError, UpstreamFailure
from .models import Booking
from .serializers import (
    BookingCreateSerializer,
    BookingSerializer,
    CancellationRequestSerializer,
    GuestPaymentIntentSerializer,
    PaymentIntentSerializer,
    ProcessCancellationRequestSerializer,
    cancel_command,
)
from .services import get_booking_service

logger = logging.getLogger(__name__)


def booking_exception_handler(exc, context):
    """Translate core errors into human-readable responses; fall back to DRF otherwise."""

    if isinstance(exc, BookingError):
        logger.info(f"{type(exc).__name__}: {exc.message}")
        return Response({"detail": exc.message}, status=exc.status_code)

    if isinstance(exc, ProviderError):
        logger.error(f"Unhandled provider error: {exc.message}")
        return Response({"detail": UpstreamFailure.default_message}, status=status.HTTP_502_BAD_GATEWAY)

    if isinstance(exc, PaymentGatewayError):
        return Response({"detail": exc.message}, status=status.HTTP_502_BAD_GATEWAY)

    if isinstance(exc, (EncryptionError, DecryptionError)):
        logger.error(str(exc))
        return Response(
            {"detail": "We could not process your payment details. Please contact support."},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    return exception_handler(exc, context)


def _outcome_payload(outcome) -> dict:
    payload = asdict(outcome)
    if payload["refund_amount"] is not None:
        payload["refund_amount"] = str(payload["refund_amount"])
    return payload


class BookingViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """Booking creation, payment and cancellation; admin review actions are staff only."""

    queryset = Booking.objects.all()
    serializer_class = BookingSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_service(self):
        return get_booking_service()

    def get_queryset(self):  # type: ignore
        user = self.request.user
        qs = super().get_queryset()
        if getattr(user, "is_staff", False):
            return qs
        return qs.filter(user_id=str(user.pk))

    def create(self, request, *args, **kwargs):  # type: ignore
        serializer = BookingCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        booking = self.get_service().create_booking(serializer.to_command(request))
        return Response(BookingSerializer(booking).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"], url_path="payment-intent")
    def payment_intent(self, request, pk=None):  # type: ignore
        serializer = PaymentIntentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = self.get_service().create_payment_intent(serializer.to_command(pk, request))
        return Response(self._intent_payload(result), status=status.HTTP_201_CREATED)

    @action(
        detail=False,
        methods=["post"],
        url_path="guest-payment-intent",
        permission_classes=[permissions.AllowAny],
    )
    def guest_payment_intent(self, request):  # type: ignore
        serializer = GuestPaymentIntentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = self.get_service().create_guest_payment_intent(serializer.to_command())
        return Response(self._intent_payload(result), status=status.HTTP_201_CREATED)

    @staticmethod
    def _intent_payload(result) -> dict:
        payload = asdict(result)
        payload["voucher_discount"] = str(payload["voucher_discount"])
        return payload

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):  # type: ignore
        outcome = self.get_service().cancel_booking(cancel_command(pk, request))
        return Response(_outcome_payload(outcome), status=status.HTTP_200_OK)

    @action(detail=True, methods=["post"], url_path="request-hotel-cancellation")
    def request_hotel_cancellation(self, request, pk=None):  # type: ignore
        outcome = self.get_service().request_hotel_cancellation(cancel_command(pk, request))
        return Response(_outcome_payload(outcome), status=status.HTTP_200_OK)

    @action(
        detail=True,
        methods=["get"],
        url_path="dispute-evidence",
        permission_classes=[permissions.IsAdminUser],
    )
    def dispute_evidence(self, request, pk=None):  # type: ignore
        return Response(self.get_service().get_dispute_evidence(pk))

    @action(
        detail=False,
        methods=["get"],
        url_path="cancellation-requests",
        permission_classes=[permissions.IsAdminUser],
    )
    def cancellation_requests(self, request):  # type: ignore
        results = self.get_service().list_pending_cancellation_requests()
        return Response({"count": len(results), "results": results})

    @action(
        detail=False,
        methods=["post"],
        url_path=r"cancellation-requests/(?P<request_id>[^/.]+)/process",
        permission_classes=[permissions.IsAdminUser],
    )
    def process_cancellation_request(self, request, request_id=None):  # type: ignore
        serializer = ProcessCancellationRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        processed = self.get_service().process_cancellation_request(serializer.to_command(request_id, request))
        return Response(CancellationRequestSerializer(processed).data, status=status.HTTP_200_OK)
