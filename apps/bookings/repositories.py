"""Persistence helpers for bookings.

Every state change goes through a conditional UPDATE guarded by the
expected status and the row version. Zero affected rows means someone
else changed the booking first; that is reported, never ignored.
"""

from __future__ import annotations

import logging
from typing import Iterable

from django.core.exceptions import ValidationError  # type: ignore
from django.db import transaction  # type: ignore
from django.db.models import F  # type: ignore
from django.db.utils import NotSupportedError  # type: ignore
from django.utils import timezone  # type: ignore

from .exceptions import ConcurrencyConflict, InvalidState, NotFound
from .models import Booking, CancellationRequest

logger = logging.getLogger(__name__)


def _lock_queryset_if_possible(queryset):
    """Apply select_for_update when inside transaction.atomic()."""

    if not transaction.get_connection().in_atomic_block:
        return queryset

    try:
        return queryset.select_for_update()
    except NotSupportedError:
        return queryset


class BookingRepository:
    def get(self, booking_id) -> Booking:
        try:
            return Booking.objects.get(pk=booking_id)
        except (Booking.DoesNotExist, ValueError, ValidationError):
            raise NotFound("Booking not found.") from None

    def get_for_update(self, booking_id) -> Booking:
        try:
            return _lock_queryset_if_possible(Booking.objects.filter(pk=booking_id)).get()
        except (Booking.DoesNotExist, ValueError, ValidationError):
            raise NotFound("Booking not found.") from None

    def get_by_reference(self, reference: str) -> Booking | None:
        return Booking.objects.filter(reference=(reference or "").strip().upper()).first()

    def transition(self, booking: Booking, *, expected_status: str | Iterable[str], **changes) -> Booking:
        """
        Apply ``changes`` if the booking is still in ``expected_status`` at the version we read.

        Raises InvalidState for a transition the state machine forbids and
        ConcurrencyConflict when the row moved underneath us.
        """
        expected = [expected_status] if isinstance(expected_status, str) else list(expected_status)
        target = changes.get("status")
        if target is not None and not Booking.can_transition(booking.status, target):
            raise InvalidState(f"Cannot move booking from {booking.status} to {target}.")

        changes["updated_at"] = timezone.now()
        updated = Booking.objects.filter(
            pk=booking.pk,
            status__in=expected,
            version=booking.version,
        ).update(version=F("version") + 1, **changes)

        if updated == 0:
            logger.warning(
                f"Concurrent modification of booking {booking.pk} "
                f"(expected {expected}, version {booking.version})"
            )
            raise ConcurrencyConflict()

        booking.refresh_from_db()
        return booking

    def conditional_update(self, booking_id, *, where: dict, **changes) -> int:
        """Best-effort update used by webhook handlers; returns affected rows."""
        changes["updated_at"] = timezone.now()
        return Booking.objects.filter(pk=booking_id, **where).update(version=F("version") + 1, **changes)

    def get_cancellation_request_for_update(self, request_id) -> CancellationRequest:
        try:
            return _lock_queryset_if_possible(CancellationRequest.objects.filter(pk=request_id)).get()
        except (CancellationRequest.DoesNotExist, ValueError, ValidationError):
            raise NotFound("Cancellation request not found.") from None

    def claim_cancellation_request(self, request: CancellationRequest, **changes) -> CancellationRequest:
        """Move a PENDING request to its decided state; a request is decided once."""
        updated = CancellationRequest.objects.filter(
            pk=request.pk,
            status=CancellationRequest.Status.PENDING,
        ).update(**changes)
        if updated == 0:
            raise ConcurrencyConflict("This cancellation request was processed by another request.")
        request.refresh_from_db()
        return request
