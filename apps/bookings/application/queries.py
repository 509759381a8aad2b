"""Read-only projections for the admin and dispute endpoints."""

from __future__ import annotations

from django.utils import timezone

from apps.bookings.models import Booking, CancellationRequest


def _iso(value):
    return value.isoformat() if value else None


def _money(value):
    return str(value) if value is not None else None


def list_pending_cancellation_requests(now=None) -> list[dict]:
    """PENDING requests, oldest first, each with the booking fields an admin decides on."""
    now = now or timezone.now()
    requests = (
        CancellationRequest.objects.filter(status=CancellationRequest.Status.PENDING)
        .select_related("booking")
        .order_by("requested_at")
    )

    results = []
    for request in requests:
        booking = request.booking
        results.append({
            "id": str(request.pk),
            "status": request.status,
            "requested_by": request.requested_by,
            "requested_at": _iso(request.requested_at),
            "booking": {
                "id": str(booking.pk),
                "reference": booking.reference,
                "product_type": booking.product_type,
                "provider": booking.provider,
                "status": booking.status,
                "total_amount": _money(booking.total_amount),
                "markup_amount": _money(booking.markup_amount),
                "service_fee": _money(booking.service_fee),
                "voucher_discount": _money(booking.voucher_discount),
                "currency": booking.currency,
                "cancellation_deadline": _iso(booking.cancellation_deadline),
                "deadline_passed": booking.deadline_passed(now),
                "user_email": booking.owner_email,
            },
        })
    return results


def get_dispute_evidence(booking: Booking) -> dict:
    """Everything a chargeback response needs, without card data."""
    passenger = booking.passenger_info or {}
    card_info = (booking.booking_data or {}).get("payment_card_info") or {}
    guest_name = " ".join(
        part for part in (passenger.get("firstName"), passenger.get("lastName")) if part
    ) or passenger.get("name", "")

    return {
        "booking_id": str(booking.pk),
        "reference": booking.reference,
        "status": booking.status,
        "payment_status": booking.payment_status,
        "product_type": booking.product_type,
        "provider": booking.provider,
        "provider_booking_id": booking.provider_booking_id,
        "guest": {
            "user_id": booking.user_id,
            "name": guest_name,
            "email": booking.owner_email,
            "phone": passenger.get("phone", ""),
        },
        "amount": {
            "total_amount": _money(booking.total_amount),
            "voucher_discount": _money(booking.voucher_discount),
            "final_amount": _money(booking.amount_due),
            "charged_amount": (booking.payment_info or {}).get("charge_amount"),
            "charge_type": (booking.payment_info or {}).get("charge_type"),
            "currency": booking.currency,
        },
        "card_last4": card_info.get("cardLast4", ""),
        "stripe_charge_id": booking.stripe_charge_id,
        "payment_reference": booking.payment_reference,
        "cancellation_policy": booking.cancellation_policy_snapshot,
        "cancellation_deadline": _iso(booking.cancellation_deadline),
        "policy_accepted_at": _iso(booking.policy_accepted_at),
        "client_ip": booking.client_ip,
        "user_agent": booking.user_agent,
        "booked_at": _iso(booking.created_at),
        "confirmation_email_sent_at": _iso(booking.confirmation_email_sent_at),
        "cancelled_at": _iso(booking.cancelled_at),
        "cancelled_by": booking.cancelled_by,
        "refund_amount": _money(booking.refund_amount),
        "refund_status": booking.refund_status,
    }
