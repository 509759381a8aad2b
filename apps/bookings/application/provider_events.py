"""
Provider Event Handlers

Reacts to verified Duffel webhook events about orders we placed. Each
handler locks the booking, merges the event into ``provider_data`` and
only moves the booking when its current status allows it, so redelivered
events leave a single trace.
"""

from decimal import Decimal, InvalidOperation
import logging

from django.utils import timezone

from apps.bookings.domain.events import BookingCancelled, BookingConfirmed, ProviderOrderFailed
from apps.bookings.models import Booking
from apps.providers.choices import Provider
from shared.application.uow import DjangoUnitOfWork

logger = logging.getLogger(__name__)

CANCELLED_BY_PROVIDER = 'provider'


def _event_object(event: dict) -> dict:
    data = event.get('data')
    if isinstance(data, dict) and isinstance(data.get('object'), dict):
        return data['object']
    obj = event.get('object')
    return obj if isinstance(obj, dict) else {}


class ProviderEventHandler:
    def __init__(self, repo):
        self.repo = repo
        self._handlers = {
            'order.created': self.order_created,
            'order.creation_failed': self.order_creation_failed,
            'order.updated': self.order_updated,
            'order.airline_initiated_change_detected': self.airline_initiated_change,
            'order.airline_initiated_change': self.airline_initiated_change,
            'order_cancellation.created': self.cancellation_created,
            'order_cancellation.confirmed': self.cancellation_confirmed,
        }

    def handle(self, event: dict) -> str:
        """Dispatch one Duffel event; returns a short outcome label."""
        event_type = event.get('type', '')
        handler = self._handlers.get(event_type)
        if handler is None:
            logger.warning(f"Ignoring unhandled Duffel event {event_type} ({event.get('id')})")
            return 'ignored'

        logger.info(f"Processing Duffel event {event_type} ({event.get('id')})")
        return handler(_event_object(event))

    def _booking_id_for_order(self, order_id) -> str | None:
        if not order_id:
            return None
        booking_id = (
            Booking.objects.filter(provider=Provider.DUFFEL, provider_booking_id=order_id)
            .values_list('pk', flat=True)
            .first()
        )
        if booking_id is None:
            logger.warning(f"No booking found for Duffel order {order_id}")
        return booking_id

    def _record(self, booking: Booking, **provider_data) -> Booking:
        merged = {**(booking.provider_data or {}), **provider_data}
        return self.repo.transition(booking, expected_status=booking.status, provider_data=merged)

    def order_created(self, order: dict) -> str:
        booking_id = self._booking_id_for_order(order.get('id'))
        if booking_id is None:
            return 'booking_not_found'

        with DjangoUnitOfWork() as uow:
            booking = self.repo.get_for_update(booking_id)
            provider_data = {
                **(booking.provider_data or {}),
                'order': order,
                'orderCreatedAt': timezone.now().isoformat(),
            }
            if (
                booking.status == Booking.Status.PAYMENT_PENDING
                and booking.payment_status == Booking.PaymentStatus.COMPLETED
            ):
                booking = self.repo.transition(
                    booking,
                    expected_status=Booking.Status.PAYMENT_PENDING,
                    status=Booking.Status.CONFIRMED,
                    provider_data=provider_data,
                    booking_data=booking.scrubbed_booking_data(),
                )
                uow.add_event(BookingConfirmed(
                    aggregate_id=booking.pk,
                    booking_id=str(booking.pk),
                    provider_booking_id=order['id'],
                ))
                logger.info(f"Booking {booking.reference} confirmed by Duffel order {order['id']}")
                return 'confirmed'

            self.repo.transition(booking, expected_status=booking.status, provider_data=provider_data)
        logger.info(f"Duffel order {order['id']} recorded for booking {booking.reference}")
        return 'order_recorded'

    def order_creation_failed(self, order: dict) -> str:
        booking_id = self._booking_id_for_order(order.get('order_id') or order.get('id'))
        offer_id = order.get('offer_id') or (order.get('metadata') or {}).get('offer_id')
        if booking_id is None and offer_id:
            booking_id = (
                Booking.objects.filter(
                    provider=Provider.DUFFEL,
                    status=Booking.Status.PAYMENT_PENDING,
                    booking_data__offer_id=offer_id,
                )
                .values_list('pk', flat=True)
                .first()
            )
        if booking_id is None:
            return 'booking_not_found'

        error = order.get('error') or order.get('message') or 'Order creation failed'
        if isinstance(error, dict):
            error = error.get('message') or error.get('title') or 'Order creation failed'

        with DjangoUnitOfWork() as uow:
            booking = self.repo.get_for_update(booking_id)
            if booking.status != Booking.Status.PAYMENT_PENDING:
                logger.info(f"Ignoring order failure for {booking.status} booking {booking.reference}")
                return 'ignored'

            provider_data = booking.provider_data or {}
            booking = self._record(
                booking,
                orderCreationError=error,
                orderCreationFailedAt=timezone.now().isoformat(),
                orderCreationAttempts=int(provider_data.get('orderCreationAttempts', 0)) + 1,
                orderData=order,
            )
            uow.add_event(ProviderOrderFailed(
                aggregate_id=booking.pk,
                booking_id=str(booking.pk),
                reference=booking.reference,
                error=error,
            ))

        logger.error(f"Duffel reported order creation failure for booking {booking.reference}: {error}")
        return 'order_failed'

    def order_updated(self, order: dict) -> str:
        booking_id = self._booking_id_for_order(order.get('id'))
        if booking_id is None:
            return 'booking_not_found'

        with DjangoUnitOfWork():
            booking = self.repo.get_for_update(booking_id)
            self._record(booking, order=order, orderUpdatedAt=timezone.now().isoformat())
        logger.info(f"Duffel order {order['id']} updated for booking {booking.reference}")
        return 'order_updated'

    def airline_initiated_change(self, change: dict) -> str:
        booking_id = self._booking_id_for_order(change.get('order_id') or change.get('id'))
        if booking_id is None:
            return 'booking_not_found'

        with DjangoUnitOfWork():
            booking = self.repo.get_for_update(booking_id)
            self._record(
                booking,
                airlineInitiatedChange=change,
                airlineChangeReceivedAt=timezone.now().isoformat(),
            )
        # Schedule changes need an agent to contact the traveller
        logger.warning(f"Airline-initiated change {change.get('id')} received for booking {booking.reference}")
        return 'airline_change_recorded'

    def cancellation_created(self, cancellation: dict) -> str:
        booking_id = self._booking_id_for_order(cancellation.get('order_id'))
        if booking_id is None:
            return 'booking_not_found'

        with DjangoUnitOfWork():
            booking = self.repo.get_for_update(booking_id)
            self._record(
                booking,
                cancellationId=cancellation.get('id'),
                cancellationData=cancellation,
                cancellationCreatedAt=timezone.now().isoformat(),
            )
        logger.info(f"Duffel cancellation {cancellation.get('id')} created for booking {booking.reference}")
        return 'cancellation_recorded'

    def cancellation_confirmed(self, cancellation: dict) -> str:
        booking_id = self._booking_id_for_order(cancellation.get('order_id'))
        if booking_id is None:
            return 'booking_not_found'

        try:
            provider_refund = Decimal(str(cancellation['refund_amount']))
        except (KeyError, InvalidOperation):
            provider_refund = None

        confirmation = {
            'cancellationId': cancellation.get('id'),
            'cancellationData': cancellation,
            'cancellationConfirmedAt': timezone.now().isoformat(),
        }
        if provider_refund is not None:
            confirmation['providerRefundAmount'] = str(provider_refund)
            confirmation['providerRefundCurrency'] = cancellation.get('refund_currency', '')

        with DjangoUnitOfWork() as uow:
            booking = self.repo.get_for_update(booking_id)
            if booking.status == Booking.Status.CANCELLED:
                self._record(booking, **confirmation)
                logger.info(f"Duffel confirmed cancellation of booking {booking.reference}")
                return 'cancellation_recorded'

            booking = self.repo.transition(
                booking,
                expected_status=booking.status,
                status=Booking.Status.CANCELLED,
                cancelled_at=timezone.now(),
                cancelled_by=CANCELLED_BY_PROVIDER,
                provider_data={**(booking.provider_data or {}), **confirmation},
                booking_data=booking.scrubbed_booking_data(),
            )
            uow.add_event(BookingCancelled(
                aggregate_id=booking.pk,
                booking_id=str(booking.pk),
                cancelled_by=CANCELLED_BY_PROVIDER,
            ))

        # The customer payment is refunded by an operator
        logger.warning(
            f"Booking {booking.reference} cancelled by Duffel cancellation {cancellation.get('id')}; "
            f"customer refund requires review"
        )
        return 'cancelled'
