"""
Event Handlers

Translate booking events into emails. They run after the booking
transaction has committed; the message bus logs and swallows their
errors.
"""

import logging

from django.utils import timezone

from apps.bookings.domain.events import (
    BookingCancelled,
    BookingConfirmed,
    CancellationRequestRejected,
    CancellationRequested,
    ProviderOrderFailed,
)
from apps.bookings.models import Booking, CancellationRequest

from . import services

logger = logging.getLogger(__name__)


def on_booking_confirmed(event: BookingConfirmed):
    booking = Booking.objects.get(pk=event.booking_id)
    if services.send_booking_confirmation_email(booking):
        # Dispute evidence: when the customer was told the booking exists
        Booking.objects.filter(pk=booking.pk).update(confirmation_email_sent_at=timezone.now())


def on_booking_cancelled(event: BookingCancelled):
    booking = Booking.objects.get(pk=event.booking_id)
    services.send_booking_cancelled_email(booking, refund_failed=event.refund_failed)


def on_cancellation_requested(event: CancellationRequested):
    booking = Booking.objects.get(pk=event.booking_id)
    services.send_cancellation_request_received_email(booking)


def on_cancellation_request_rejected(event: CancellationRequestRejected):
    request = CancellationRequest.objects.select_related('booking').get(pk=event.request_id)
    services.send_cancellation_request_rejected_email(request)


def on_provider_order_failed(event: ProviderOrderFailed):
    booking = Booking.objects.get(pk=event.booking_id)
    services.send_order_failure_alert(booking, event.error)


EVENT_HANDLERS = {
    BookingConfirmed: on_booking_confirmed,
    BookingCancelled: on_booking_cancelled,
    CancellationRequested: on_cancellation_requested,
    CancellationRequestRejected: on_cancellation_request_rejected,
    ProviderOrderFailed: on_provider_order_failed,
}


def register_handlers(bus):
    for event_type, handler in EVENT_HANDLERS.items():
        bus.register_event_handler(event_type, handler)
    logger.debug(f"Registered {len(EVENT_HANDLERS)} notification handlers")
