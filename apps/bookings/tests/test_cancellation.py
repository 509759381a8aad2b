"""Tests for customer cancellations and admin review of late requests."""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.conf import settings
from django.core import mail
from django.utils import timezone

from apps.bookings.application.commands import (
    CancelBookingCommand,
    ProcessCancellationRequestCommand,
)
from apps.bookings.exceptions import Forbidden, InvalidState, NotFound, UpstreamFailure
from apps.bookings.models import Booking, CancellationRequest
from apps.payments.strategies import ChargeType
from apps.providers.choices import ProductType, Provider

from .helpers import FakeGateway, FakeProvider, build_service, make_booking


def cancel(service, booking, actor_id="user-1", is_admin=False):
    return service.cancel_booking(
        CancelBookingCommand(booking_id=str(booking.pk), actor_id=actor_id, is_admin=is_admin)
    )


def late_booking(**overrides) -> Booking:
    return make_booking(cancellation_deadline=timezone.now() - timedelta(days=1), **overrides)


def process(service, request, action, **kwargs):
    return service.process_cancellation_request(
        ProcessCancellationRequestCommand(
            request_id=str(request.pk),
            admin_id=kwargs.pop("admin_id", "admin-1"),
            action=action,
            **kwargs,
        )
    )


# ===== cancelBooking before the deadline =====

@pytest.mark.django_db
def test_cancel_before_deadline_refunds_margin():
    gateway = FakeGateway()
    provider = FakeProvider()
    booking = make_booking()

    outcome = cancel(build_service(gateway=gateway, providers={Provider.AMADEUS: provider}), booking)

    booking.refresh_from_db()
    assert outcome.status == Booking.Status.CANCELLED
    assert outcome.refund_amount == Decimal("50.00")
    assert "A refund of 50.00 GBP is being processed." in outcome.message
    assert provider.cancellations == [booking.provider_booking_id]
    assert gateway.refunds == [{
        "payment_intent_id": booking.payment_reference,
        "amount": 5000,
        "reason": "requested_by_customer",
    }]
    assert booking.status == Booking.Status.CANCELLED
    assert booking.refund_status == Booking.RefundStatus.PROCESSING
    assert booking.cancelled_by == "user-1"
    assert booking.provider_data["refund"]["amount_minor_units"] == 5000


@pytest.mark.django_db
def test_car_rental_is_cancelled_as_car_rental():
    provider = FakeProvider()
    booking = make_booking(product_type=ProductType.CAR_RENTAL)

    outcome = cancel(build_service(providers={Provider.AMADEUS: provider}), booking)

    assert outcome.status == Booking.Status.CANCELLED
    assert provider.cancelled_product_types == [ProductType.CAR_RENTAL]


@pytest.mark.django_db
def test_cancel_refund_is_prorated_by_voucher():
    gateway = FakeGateway()
    booking = make_booking(voucher_discount=Decimal("50.00"), final_amount=Decimal("450.00"))

    outcome = cancel(build_service(gateway=gateway), booking)

    assert outcome.refund_amount == Decimal("45.00")
    assert gateway.refunds[0]["amount"] == 4500


@pytest.mark.django_db
def test_cancel_refunds_full_amount_when_full_amount_was_charged():
    gateway = FakeGateway()
    booking = make_booking(
        product_type=ProductType.FLIGHT_INTERNATIONAL,
        provider=Provider.DUFFEL,
        payment_info={"charge_type": ChargeType.FULL_BOOKING_AMOUNT.value},
    )

    outcome = cancel(
        build_service(gateway=gateway, providers={Provider.DUFFEL: FakeProvider(Provider.DUFFEL)}),
        booking,
    )

    assert outcome.refund_amount == Decimal("500.00")
    assert gateway.refunds[0]["amount"] == 50000


@pytest.mark.django_db
def test_provider_cancel_failure_leaves_booking_confirmed():
    gateway = FakeGateway()
    booking = make_booking()

    with pytest.raises(UpstreamFailure) as excinfo:
        cancel(build_service(gateway=gateway, providers={Provider.AMADEUS: FakeProvider(fail_cancel=True)}), booking)

    booking.refresh_from_db()
    assert excinfo.value.status_code == 400
    assert booking.status == Booking.Status.CONFIRMED
    assert gateway.refunds == []


@pytest.mark.django_db
def test_refund_failure_still_cancels(django_capture_on_commit_callbacks):
    booking = make_booking()

    with django_capture_on_commit_callbacks(execute=True):
        outcome = cancel(build_service(gateway=FakeGateway(fail_refund=True)), booking)

    booking.refresh_from_db()
    assert outcome.refund_failed is True
    assert booking.status == Booking.Status.CANCELLED
    assert booking.refund_status == Booking.RefundStatus.PROCESSING
    assert "contact you" in mail.outbox[0].body


@pytest.mark.django_db
def test_cancelling_twice_is_rejected():
    service = build_service()
    booking = make_booking()
    cancel(service, booking)

    with pytest.raises(InvalidState) as excinfo:
        cancel(service, booking)

    assert excinfo.value.message == "This booking is already cancelled."


@pytest.mark.django_db
def test_pending_booking_cannot_be_cancelled():
    booking = make_booking(status=Booking.Status.PENDING, payment_status=Booking.PaymentStatus.PENDING)

    with pytest.raises(InvalidState):
        cancel(build_service(), booking)


@pytest.mark.django_db
def test_cancel_someone_elses_booking_is_forbidden():
    booking = make_booking()

    with pytest.raises(Forbidden):
        cancel(build_service(), booking, actor_id="intruder")


@pytest.mark.django_db
def test_admin_can_cancel_any_booking():
    booking = make_booking()

    outcome = cancel(build_service(), booking, actor_id="admin-1", is_admin=True)

    booking.refresh_from_db()
    assert outcome.status == Booking.Status.CANCELLED
    assert booking.cancelled_by == "admin-1"


@pytest.mark.django_db
def test_unknown_booking_is_not_found():
    with pytest.raises(NotFound):
        build_service().cancel_booking(
            CancelBookingCommand(booking_id="00000000-0000-0000-0000-000000000000", actor_id="user-1")
        )


@pytest.mark.django_db
def test_hotel_cancellation_endpoint_rejects_flights():
    booking = make_booking(product_type=ProductType.FLIGHT_DOMESTIC, provider=Provider.DUFFEL)

    with pytest.raises(InvalidState):
        build_service().request_hotel_cancellation(
            CancelBookingCommand(booking_id=str(booking.pk), actor_id="user-1")
        )


@pytest.mark.django_db
def test_hotel_cancellation_uses_hotel_message_on_failure():
    booking = make_booking()

    with pytest.raises(UpstreamFailure) as excinfo:
        build_service(providers={Provider.AMADEUS: FakeProvider(fail_cancel=True)}).request_hotel_cancellation(
            CancelBookingCommand(booking_id=str(booking.pk), actor_id="user-1")
        )

    assert "hotel" in excinfo.value.message


# ===== cancelBooking after the deadline =====

@pytest.mark.django_db
def test_cancel_after_deadline_queues_request(django_capture_on_commit_callbacks):
    gateway = FakeGateway()
    provider = FakeProvider()
    booking = late_booking()

    with django_capture_on_commit_callbacks(execute=True):
        outcome = cancel(build_service(gateway=gateway, providers={Provider.AMADEUS: provider}), booking)

    booking.refresh_from_db()
    assert outcome.status == "REQUEST_PENDING"
    assert outcome.message == settings.CANCELLATION_SLA_MESSAGE
    assert booking.status == Booking.Status.CONFIRMED
    assert provider.cancellations == []
    assert gateway.refunds == []
    assert CancellationRequest.objects.get(pk=outcome.cancellation_request_id).requested_by == "user-1"
    assert booking.reference in mail.outbox[0].subject


@pytest.mark.django_db
def test_repeated_late_cancel_returns_existing_request():
    service = build_service()
    booking = late_booking()

    first = cancel(service, booking)
    second = cancel(service, booking)

    assert second.cancellation_request_id == first.cancellation_request_id
    assert second.message.startswith("A cancellation request for this booking is already pending.")
    assert CancellationRequest.objects.filter(booking=booking).count() == 1


@pytest.mark.django_db
def test_booking_without_deadline_goes_to_review():
    booking = make_booking(cancellation_deadline=None)

    outcome = cancel(build_service(), booking)

    assert outcome.status == "REQUEST_PENDING"


# ===== processCancellationRequest =====

@pytest.mark.django_db
def test_reject_requires_reason():
    booking = late_booking()
    request = CancellationRequest.objects.create(booking=booking, requested_by="user-1")

    with pytest.raises(InvalidState):
        process(build_service(), request, "reject")

    request.refresh_from_db()
    assert request.status == CancellationRequest.Status.PENDING


@pytest.mark.django_db
def test_reject_leaves_booking_confirmed(django_capture_on_commit_callbacks):
    gateway = FakeGateway()
    booking = late_booking()
    request = CancellationRequest.objects.create(booking=booking, requested_by="user-1")

    with django_capture_on_commit_callbacks(execute=True):
        processed = process(build_service(gateway=gateway), request, "reject", rejection_reason="Non-refundable rate")

    booking.refresh_from_db()
    assert processed.status == CancellationRequest.Status.REJECTED
    assert processed.processed_by == "admin-1"
    assert booking.status == Booking.Status.CONFIRMED
    assert gateway.refunds == []
    assert "Non-refundable rate" in mail.outbox[0].body


@pytest.mark.django_db
def test_full_refund_is_prorated_margin():
    gateway = FakeGateway()
    booking = late_booking(voucher_discount=Decimal("50.00"), final_amount=Decimal("450.00"))
    request = CancellationRequest.objects.create(booking=booking, requested_by="user-1")

    processed = process(build_service(gateway=gateway), request, "full_refund", admin_notes="Goodwill")

    booking.refresh_from_db()
    assert processed.status == CancellationRequest.Status.APPROVED
    assert processed.refund_amount == Decimal("45.00")
    assert processed.refund_status == Booking.RefundStatus.PROCESSING
    assert processed.admin_notes == "Goodwill"
    assert booking.status == Booking.Status.CANCELLED
    assert booking.refund_amount == Decimal("45.00")
    assert gateway.refunds[0]["amount"] == 4500


@pytest.mark.django_db
def test_request_cannot_be_processed_twice():
    gateway = FakeGateway()
    service = build_service(gateway=gateway)
    booking = late_booking()
    request = CancellationRequest.objects.create(booking=booking, requested_by="user-1")
    process(service, request, "full_refund")

    with pytest.raises(InvalidState) as excinfo:
        process(service, request, "full_refund")

    assert excinfo.value.message == "This cancellation request has already been approved."
    assert len(gateway.refunds) == 1


@pytest.mark.django_db
def test_partial_refund_requires_positive_amount():
    request = CancellationRequest.objects.create(booking=late_booking(), requested_by="user-1")

    with pytest.raises(InvalidState):
        process(build_service(), request, "partial_refund", refund_amount=Decimal("0"))


@pytest.mark.django_db
def test_partial_refund_cannot_exceed_amount_charged():
    gateway = FakeGateway()
    provider = FakeProvider()
    booking = late_booking()
    request = CancellationRequest.objects.create(booking=booking, requested_by="user-1")

    with pytest.raises(InvalidState):
        process(
            build_service(gateway=gateway, providers={Provider.AMADEUS: provider}),
            request,
            "partial_refund",
            refund_amount=Decimal("60.00"),
        )

    request.refresh_from_db()
    assert request.status == CancellationRequest.Status.PENDING
    assert provider.cancellations == []
    assert gateway.refunds == []


@pytest.mark.django_db
def test_partial_refund_uses_admin_amount():
    gateway = FakeGateway()
    booking = late_booking()
    request = CancellationRequest.objects.create(booking=booking, requested_by="user-1")

    processed = process(build_service(gateway=gateway), request, "partial_refund", refund_amount=Decimal("20"))

    assert processed.refund_amount == Decimal("20.00")
    assert gateway.refunds[0]["amount"] == 2000


@pytest.mark.django_db
def test_approval_with_provider_failure_keeps_request_pending():
    gateway = FakeGateway()
    booking = late_booking()
    request = CancellationRequest.objects.create(booking=booking, requested_by="user-1")

    with pytest.raises(UpstreamFailure):
        process(
            build_service(gateway=gateway, providers={Provider.AMADEUS: FakeProvider(fail_cancel=True)}),
            request,
            "full_refund",
        )

    request.refresh_from_db()
    booking.refresh_from_db()
    assert request.status == CancellationRequest.Status.PENDING
    assert booking.status == Booking.Status.CONFIRMED
    assert gateway.refunds == []


@pytest.mark.django_db
def test_approval_with_refund_failure_flags_request():
    booking = late_booking()
    request = CancellationRequest.objects.create(booking=booking, requested_by="user-1")

    processed = process(build_service(gateway=FakeGateway(fail_refund=True)), request, "full_refund")

    booking.refresh_from_db()
    assert processed.refund_status == Booking.RefundStatus.FAILED
    assert booking.status == Booking.Status.CANCELLED


# ===== Queries =====

@pytest.mark.django_db
def test_pending_requests_are_listed_oldest_first():
    now = timezone.now()
    newer = CancellationRequest.objects.create(
        booking=late_booking(), requested_by="user-1", requested_at=now - timedelta(hours=1)
    )
    older = CancellationRequest.objects.create(
        booking=make_booking(cancellation_deadline=now + timedelta(days=2)),
        requested_by="user-1",
        requested_at=now - timedelta(hours=5),
    )
    CancellationRequest.objects.create(
        booking=late_booking(), requested_by="user-1", status=CancellationRequest.Status.REJECTED
    )

    results = build_service().list_pending_cancellation_requests()

    assert [item["id"] for item in results] == [str(older.pk), str(newer.pk)]
    assert results[0]["booking"]["deadline_passed"] is False
    assert results[1]["booking"]["deadline_passed"] is True
    assert results[1]["booking"]["markup_amount"] == "40.00"
    assert results[1]["booking"]["user_email"] == "ada@example.com"


@pytest.mark.django_db
def test_dispute_evidence_has_no_card_data():
    booking = make_booking(
        booking_data={"payment_card_info": {"encrypted": None, "cardLast4": "1370", "vendorCode": "VI"}},
        stripe_charge_id="ch_123",
        client_ip="203.0.113.7",
        user_agent="Mozilla/5.0",
        policy_accepted_at=timezone.now(),
        payment_info={"charge_type": ChargeType.MARKUP_AND_FEES_ONLY.value, "charge_amount": "50.00"},
    )

    evidence = build_service().get_dispute_evidence(str(booking.pk))

    assert evidence["reference"] == booking.reference
    assert evidence["guest"]["name"] == "Ada Lovelace"
    assert evidence["amount"]["charged_amount"] == "50.00"
    assert evidence["card_last4"] == "1370"
    assert evidence["stripe_charge_id"] == "ch_123"
    assert evidence["client_ip"] == "203.0.113.7"
    assert evidence["policy_accepted_at"] is not None
    assert "encrypted" not in str(evidence)
