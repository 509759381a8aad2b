"""Celery tasks for the booking domain."""

from __future__ import annotations

import logging
from datetime import timedelta

from celery import shared_task  # type: ignore
from django.conf import settings  # type: ignore
from django.db.models import F  # type: ignore
from django.utils import timezone  # type: ignore

from .models import Booking

logger = logging.getLogger(__name__)


# ============================================================================
# PERIODIC TASKS (scheduled through Celery Beat)
# ============================================================================

@shared_task(name="bookings.reconcile_unconfirmed_orders")
def reconcile_unconfirmed_orders() -> dict[str, int]:
    """
    Retry provider order creation for paid bookings without an order.

    Picks bookings whose payment completed but which are still
    PAYMENT_PENDING with no provider booking id, once they are older than
    ORDER_RECONCILIATION_AGE_MINUTES. Confirmation is idempotent, so a
    booking confirmed concurrently by a late webhook is left alone.

    Returns:
        dict: {"confirmed": ..., "failed": ...}
    """
    from .services import get_booking_service

    cutoff = timezone.now() - timedelta(minutes=settings.ORDER_RECONCILIATION_AGE_MINUTES)
    booking_ids = list(
        Booking.objects.filter(
            status=Booking.Status.PAYMENT_PENDING,
            payment_status=Booking.PaymentStatus.COMPLETED,
            provider_booking_id__isnull=True,
            updated_at__lte=cutoff,
        ).values_list("pk", flat=True)
    )
    if not booking_ids:
        return {"confirmed": 0, "failed": 0}

    service = get_booking_service()
    confirmed = failed = 0

    for booking_id in booking_ids:
        try:
            booking = service.confirm_after_payment(booking_id)
        except Exception as e:
            logger.error(f"Error reconciling booking {booking_id}: {e}", exc_info=True)
            failed += 1
            continue

        if booking.status == Booking.Status.CONFIRMED:
            confirmed += 1
        else:
            failed += 1

    logger.info(f"Order reconciliation: {confirmed} confirmed, {failed} still unconfirmed")
    return {"confirmed": confirmed, "failed": failed}


@shared_task(name="bookings.expire_abandoned_bookings")
def expire_abandoned_bookings() -> dict[str, int]:
    """
    Cancel PENDING bookings nobody started paying for.

    PAYMENT_PENDING bookings are never touched here: they may have a live
    payment intent that still succeeds.
    """
    now = timezone.now()
    cutoff = now - timedelta(hours=settings.PENDING_BOOKING_EXPIRY_HOURS)
    expired = 0

    for booking in Booking.objects.filter(status=Booking.Status.PENDING, created_at__lte=cutoff):
        updated = Booking.objects.filter(
            pk=booking.pk,
            status=Booking.Status.PENDING,
            version=booking.version,
        ).update(
            status=Booking.Status.CANCELLED,
            cancelled_at=now,
            cancelled_by="system",
            booking_data=booking.scrubbed_booking_data(),
            version=F("version") + 1,
            updated_at=now,
        )
        if updated:
            expired += 1
            logger.info(f"Booking {booking.reference} expired after {settings.PENDING_BOOKING_EXPIRY_HOURS}h unpaid")

    if expired:
        logger.info(f"Expired {expired} abandoned pending bookings")
    return {"expired": expired}
