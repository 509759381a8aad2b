"""
Payment Event Handlers

Reacts to verified Stripe webhook events. Every handler is safe to run
more than once for the same event: updates are conditional on the
booking still being in a state the event applies to.
"""

from decimal import Decimal
import logging

from django.core.exceptions import ValidationError
from django.utils import timezone

from shared.domain.value_objects import from_minor_units
from apps.bookings.models import Booking

logger = logging.getLogger(__name__)

UNCONFIRMED = [Booking.Status.PENDING, Booking.Status.PAYMENT_PENDING]
UNPAID = [Booking.PaymentStatus.PENDING, Booking.PaymentStatus.PROCESSING, Booking.PaymentStatus.FAILED]


class PaymentEventHandler:
    def __init__(self, repo, confirm_handler):
        self.repo = repo
        self.confirm_handler = confirm_handler
        self._handlers = {
            'payment_intent.succeeded': self.payment_succeeded,
            'payment_intent.payment_failed': self.payment_failed,
            'payment_intent.canceled': self.payment_canceled,
            'charge.refunded': self.charge_refunded,
        }

    def handle(self, event: dict) -> str:
        """Dispatch one event; returns a short outcome label for the response body."""
        event_type = event.get('type', '')
        handler = self._handlers.get(event_type)
        if handler is None:
            logger.info(f"Ignoring unhandled payment event {event_type} ({event.get('id')})")
            return 'ignored'

        obj = (event.get('data') or {}).get('object') or {}
        logger.info(f"Processing payment event {event_type} ({event.get('id')})")
        return handler(obj)

    def _booking_for_intent(self, intent: dict):
        booking_id = (intent.get('metadata') or {}).get('bookingId')
        booking = None
        if booking_id:
            try:
                booking = Booking.objects.filter(pk=booking_id).first()
            except ValidationError:
                logger.warning(f"Payment intent {intent.get('id')} carries a malformed bookingId")
        if booking is None and intent.get('id'):
            booking = Booking.objects.filter(payment_reference=intent['id']).first()
        if booking is None:
            logger.warning(f"No booking found for payment intent {intent.get('id')}")
        return booking

    def _is_current_intent(self, booking: Booking, intent: dict) -> bool:
        intent_id = intent.get('id')
        if intent_id and booking.payment_reference and intent_id != booking.payment_reference:
            logger.info(
                f"Ignoring event for superseded payment intent {intent_id} of booking {booking.reference} "
                f"(current intent {booking.payment_reference})"
            )
            return False
        return True

    def payment_succeeded(self, intent: dict) -> str:
        booking = self._booking_for_intent(intent)
        if booking is None:
            return 'booking_not_found'

        booking = self.confirm_handler.handle(booking.pk, payment={
            'payment_intent_id': intent.get('id'),
            'amount': intent.get('amount_received') or intent.get('amount'),
            'currency': (intent.get('currency') or booking.currency).upper(),
            'charge_id': intent.get('latest_charge') or '',
        })
        stray = {entry.get('payment_intent_id') for entry in (booking.payment_info or {}).get('stray_payments', [])}
        if intent.get('id') in stray:
            return 'stray_payment_refunded'
        return 'confirmed' if booking.status == Booking.Status.CONFIRMED else 'order_pending'

    def payment_failed(self, intent: dict) -> str:
        booking = self._booking_for_intent(intent)
        if booking is None:
            return 'booking_not_found'
        if not self._is_current_intent(booking, intent):
            return 'ignored'

        error = intent.get('last_payment_error') or {}
        payment_info = dict(booking.payment_info or {})
        payment_info.update({
            'failureReason': error.get('message') or error.get('code') or 'Payment failed',
            'failedAt': timezone.now().isoformat(),
        })
        updated = self.repo.conditional_update(
            booking.pk,
            where={
                'status__in': UNCONFIRMED,
                'payment_status__in': UNPAID,
                'payment_reference': booking.payment_reference,
            },
            payment_status=Booking.PaymentStatus.FAILED,
            payment_info=payment_info,
        )
        if updated:
            logger.warning(f"Payment failed for booking {booking.reference}: {payment_info['failureReason']}")
        return 'payment_failed' if updated else 'ignored'

    def payment_canceled(self, intent: dict) -> str:
        booking = self._booking_for_intent(intent)
        if booking is None:
            return 'booking_not_found'
        if not self._is_current_intent(booking, intent):
            return 'ignored'

        updated = self.repo.conditional_update(
            booking.pk,
            where={
                'status__in': UNCONFIRMED,
                'payment_status__in': UNPAID,
                'payment_reference': booking.payment_reference,
            },
            status=Booking.Status.CANCELLED,
            payment_status=Booking.PaymentStatus.FAILED,
            cancelled_at=timezone.now(),
            cancelled_by='payment_canceled',
            booking_data=booking.scrubbed_booking_data(),
        )
        if updated:
            logger.info(f"Booking {booking.reference} cancelled after its payment intent was canceled")
        return 'cancelled' if updated else 'ignored'

    def charge_refunded(self, charge: dict) -> str:
        intent_id = charge.get('payment_intent')
        booking = Booking.objects.filter(payment_reference=intent_id).first() if intent_id else None
        if booking is None:
            logger.warning(f"No booking found for refunded charge {charge.get('id')}")
            return 'booking_not_found'

        currency = (charge.get('currency') or booking.currency).upper()
        refunded = from_minor_units(int(charge.get('amount_refunded') or 0), currency)
        charged = from_minor_units(int(charge.get('amount') or 0), currency)
        payment_status = (
            Booking.PaymentStatus.REFUNDED
            if refunded >= charged
            else Booking.PaymentStatus.PARTIALLY_REFUNDED
        )

        self.repo.conditional_update(
            booking.pk,
            where={},
            refund_status=Booking.RefundStatus.COMPLETED,
            refund_amount=Decimal(refunded),
            payment_status=payment_status,
        )
        logger.info(f"Refund of {refunded} {currency} completed for booking {booking.reference}")
        return 'refunded'
