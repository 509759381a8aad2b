"""Tests for booking creation, payment intents and confirmation."""

from datetime import timedelta
from decimal import Decimal
import json

import pytest
from django.core import mail
from django.test import override_settings
from django.utils import timezone

from apps.bookings.application.commands import (
    CreateBookingCommand,
    GuestPaymentIntentCommand,
    IssuePaymentIntentCommand,
)
from apps.bookings.exceptions import (
    Forbidden,
    InvalidState,
    MarkupConfigNotFound,
    NotFound,
    UpstreamFailure,
)
from apps.bookings.models import Booking
from apps.payments.cards import CardDetails, encrypt_card, stored_card_blob
from apps.payments.strategies import ChargeType, MerchantCharging
from apps.providers.base import OrderPayment
from apps.providers.choices import ProductType, Provider
from apps.vouchers.models import Voucher

from .helpers import (
    TEST_CARD,
    FakeGateway,
    FakeProvider,
    build_service,
    make_booking,
    make_markup_config,
    make_unpaid_booking,
)


def hotel_command(**overrides) -> CreateBookingCommand:
    data = {
        "user_id": "user-1",
        "user_email": "traveller@example.com",
        "product_type": ProductType.HOTEL,
        "provider": Provider.AMADEUS,
        "offer_id": "AMA-OFFER-1",
        "base_price": Decimal("450.00"),
        "provider_currency": "GBP",
        "currency": "GBP",
        "guests": [{"firstName": "Ada", "lastName": "Lovelace"}],
        "passenger_info": {"firstName": "Ada", "email": "ada@example.com"},
        "card": TEST_CARD,
    }
    data.update(overrides)
    return CreateBookingCommand(**data)


# ===== createBooking =====

@pytest.mark.django_db
def test_create_booking_totals_add_up():
    make_markup_config()

    booking = build_service().create_booking(hotel_command())

    assert booking.status == Booking.Status.PENDING
    assert booking.payment_status == Booking.PaymentStatus.PENDING
    assert booking.markup_amount == Decimal("45.00")
    assert booking.service_fee == Decimal("5.00")
    assert booking.total_amount == booking.base_price + booking.markup_amount + booking.service_fee
    assert booking.total_amount == Decimal("500.00")
    assert booking.booking_data["pricing"]["markup_percentage"] == "10.00"
    assert booking.offer_id == "AMA-OFFER-1"


@pytest.mark.django_db
def test_create_booking_stores_card_encrypted_only():
    make_markup_config()

    booking = build_service().create_booking(hotel_command())
    card_info = booking.booking_data["payment_card_info"]

    assert card_info["cardLast4"] == "1370"
    assert card_info["encrypted"].count(":") == 2
    assert TEST_CARD.card_number not in json.dumps(booking.booking_data)


@pytest.mark.django_db
@pytest.mark.parametrize(
    "provider, product_type",
    [
        (Provider.DUFFEL, ProductType.HOTEL),
        (Provider.AMADEUS, ProductType.FLIGHT_DOMESTIC),
    ],
)
def test_create_booking_rejects_products_the_provider_cannot_book(provider, product_type):
    make_markup_config(product_type=product_type)

    with pytest.raises(InvalidState, match="does not offer"):
        build_service().create_booking(hotel_command(provider=provider, product_type=product_type))

    assert Booking.objects.count() == 0


@pytest.mark.django_db
def test_create_booking_without_markup_config_persists_nothing():
    with pytest.raises(MarkupConfigNotFound):
        build_service().create_booking(hotel_command())

    assert Booking.objects.count() == 0


@pytest.mark.django_db
def test_guest_card_hotel_requires_card():
    make_markup_config()

    with pytest.raises(InvalidState):
        build_service().create_booking(hotel_command(card=None))

    assert Booking.objects.count() == 0


@pytest.mark.django_db
def test_merchant_hotel_does_not_require_card():
    make_markup_config()

    booking = build_service(strategy=MerchantCharging()).create_booking(hotel_command(card=None))

    assert "payment_card_info" not in booking.booking_data


@pytest.mark.django_db
def test_booking_reference_format():
    booking = make_unpaid_booking()

    assert Booking.objects.filter(reference__regex=r"^EBT-\d{8}-\d{6}$", pk=booking.pk).exists()


# ===== createPaymentIntent =====

@pytest.mark.django_db
def test_intent_for_amadeus_hotel_charges_margin_only():
    gateway = FakeGateway()
    booking = make_unpaid_booking()

    result = build_service(gateway=gateway).create_payment_intent(
        IssuePaymentIntentCommand(booking_id=str(booking.pk), user_id="user-1")
    )

    booking.refresh_from_db()
    assert result.amount_minor_units == 5000
    assert result.charge_type == ChargeType.MARKUP_AND_FEES_ONLY
    assert gateway.intents[0]["metadata"]["stripeAmountType"] == "MARKUP_AND_FEES_ONLY"
    assert gateway.intents[0]["metadata"]["bookingReference"] == booking.reference
    assert booking.status == Booking.Status.PAYMENT_PENDING
    assert booking.payment_status == Booking.PaymentStatus.PROCESSING
    assert booking.payment_reference == "pi_test_1"
    assert booking.payment_info["charge_type"] == "MARKUP_AND_FEES_ONLY"
    assert booking.version == 1


@pytest.mark.django_db
def test_intent_with_voucher_prorates_margin_and_freezes_discount():
    Voucher.objects.create(
        code="SAVE10",
        user_id="user-1",
        discount_type=Voucher.DiscountType.PERCENTAGE,
        discount_value=Decimal("10"),
        expires_at=timezone.now() + timedelta(days=30),
    )
    booking = make_unpaid_booking()

    result = build_service().create_payment_intent(
        IssuePaymentIntentCommand(booking_id=str(booking.pk), user_id="user-1", voucher_code="save10")
    )

    booking.refresh_from_db()
    assert result.amount_minor_units == 4500
    assert booking.voucher_code == "SAVE10"
    assert booking.voucher_discount == Decimal("50.00")
    assert booking.final_amount == booking.total_amount - booking.voucher_discount
    # Reserved at intent time, consumed on payment
    assert Voucher.objects.get(code="SAVE10").status == Voucher.Status.ACTIVE


@pytest.mark.django_db
def test_merchant_model_charges_full_amount():
    gateway = FakeGateway()
    booking = make_unpaid_booking()

    result = build_service(gateway=gateway, strategy=MerchantCharging()).create_payment_intent(
        IssuePaymentIntentCommand(booking_id=str(booking.pk), user_id="user-1")
    )

    assert result.amount_minor_units == 50000
    assert result.charge_type == ChargeType.FULL_BOOKING_AMOUNT


@pytest.mark.django_db
def test_jpy_amounts_use_multiplier_one():
    booking = make_unpaid_booking(
        product_type=ProductType.FLIGHT_INTERNATIONAL,
        provider=Provider.DUFFEL,
        currency="JPY",
        base_price=Decimal("4000"),
        markup_amount=Decimal("400"),
        service_fee=Decimal("100"),
        total_amount=Decimal("4500"),
    )

    result = build_service().create_payment_intent(
        IssuePaymentIntentCommand(booking_id=str(booking.pk), user_id="user-1")
    )

    assert result.amount_minor_units == 4500


@pytest.mark.django_db
def test_intent_rejected_when_already_paid():
    gateway = FakeGateway()
    booking = make_unpaid_booking(
        status=Booking.Status.PAYMENT_PENDING,
        payment_status=Booking.PaymentStatus.COMPLETED,
    )

    with pytest.raises(InvalidState):
        build_service(gateway=gateway).create_payment_intent(
            IssuePaymentIntentCommand(booking_id=str(booking.pk), user_id="user-1")
        )

    assert gateway.intents == []


@pytest.mark.django_db
def test_intent_can_be_reissued_after_failed_payment():
    gateway = FakeGateway()
    booking = make_unpaid_booking(
        status=Booking.Status.PAYMENT_PENDING,
        payment_status=Booking.PaymentStatus.FAILED,
    )

    build_service(gateway=gateway).create_payment_intent(
        IssuePaymentIntentCommand(booking_id=str(booking.pk), user_id="user-1")
    )

    booking.refresh_from_db()
    assert booking.payment_status == Booking.PaymentStatus.PROCESSING
    assert len(gateway.intents) == 1


@pytest.mark.django_db
def test_processor_failure_leaves_booking_pending():
    booking = make_unpaid_booking()

    with pytest.raises(UpstreamFailure):
        build_service(gateway=FakeGateway(fail_intent=True)).create_payment_intent(
            IssuePaymentIntentCommand(booking_id=str(booking.pk), user_id="user-1")
        )

    booking.refresh_from_db()
    assert booking.status == Booking.Status.PENDING
    assert booking.payment_reference is None


@pytest.mark.django_db
def test_intent_for_someone_elses_booking_is_forbidden():
    booking = make_unpaid_booking()

    with pytest.raises(Forbidden):
        build_service().create_payment_intent(
            IssuePaymentIntentCommand(booking_id=str(booking.pk), user_id="intruder")
        )


@pytest.mark.django_db
def test_guest_intent_matches_email_case_insensitively():
    booking = make_unpaid_booking()

    result = build_service().create_guest_payment_intent(
        GuestPaymentIntentCommand(reference=booking.reference.lower(), email="ADA@example.com")
    )

    assert result.reference == booking.reference


@pytest.mark.django_db
def test_guest_intent_with_wrong_email_is_not_found():
    booking = make_unpaid_booking()

    with pytest.raises(NotFound):
        build_service().create_guest_payment_intent(
            GuestPaymentIntentCommand(reference=booking.reference, email="someone@example.com")
        )


# ===== confirmAfterPayment =====

@pytest.mark.django_db
def test_confirm_creates_order_with_guest_card_and_scrubs_it(django_capture_on_commit_callbacks):
    provider = FakeProvider()
    booking = make_unpaid_booking(status=Booking.Status.PAYMENT_PENDING, payment_status=Booking.PaymentStatus.PROCESSING)

    with django_capture_on_commit_callbacks(execute=True):
        confirmed = build_service(providers={Provider.AMADEUS: provider}).confirm_after_payment(
            booking.pk, {"payment_intent_id": "pi_test_1", "amount": 5000, "charge_id": "ch_1"}
        )

    assert confirmed.status == Booking.Status.CONFIRMED
    assert confirmed.payment_status == Booking.PaymentStatus.COMPLETED
    assert confirmed.provider_booking_id == "AMADEUS-ORDER-1"
    assert confirmed.stripe_charge_id == "ch_1"
    assert confirmed.booking_data["payment_card_info"]["encrypted"] is None
    assert confirmed.booking_data["payment_card_info"]["cardLast4"] == "1370"

    payment = provider.orders[0]["payment"]
    assert payment.method == OrderPayment.CARD
    assert payment.card == TEST_CARD

    assert len(mail.outbox) == 1
    assert confirmed.reference in mail.outbox[0].subject
    confirmed.refresh_from_db()
    assert confirmed.confirmation_email_sent_at is not None


@pytest.mark.django_db
def test_confirm_twice_creates_one_order():
    provider = FakeProvider()
    service = build_service(providers={Provider.AMADEUS: provider})
    booking = make_unpaid_booking(status=Booking.Status.PAYMENT_PENDING, payment_status=Booking.PaymentStatus.PROCESSING)

    first = service.confirm_after_payment(booking.pk)
    second = service.confirm_after_payment(booking.pk)

    assert len(provider.orders) == 1
    assert first.provider_booking_id == second.provider_booking_id
    assert second.version == first.version


@pytest.mark.django_db
def test_confirm_marks_voucher_used():
    voucher = Voucher.objects.create(
        code="WELCOME",
        user_id="user-1",
        discount_type=Voucher.DiscountType.FIXED_AMOUNT,
        discount_value=Decimal("50"),
        currency="GBP",
        expires_at=timezone.now() + timedelta(days=30),
    )
    booking = make_unpaid_booking(
        status=Booking.Status.PAYMENT_PENDING,
        payment_status=Booking.PaymentStatus.PROCESSING,
        voucher_id=str(voucher.pk),
        voucher_code="WELCOME",
        voucher_discount=Decimal("50.00"),
        final_amount=Decimal("450.00"),
    )

    build_service().confirm_after_payment(booking.pk)

    voucher.refresh_from_db()
    assert voucher.status == Voucher.Status.USED
    assert voucher.used_on_booking_id == str(booking.pk)


@pytest.mark.django_db
@override_settings(SUPPORT_EMAIL="ops@example.com")
def test_provider_order_failure_keeps_booking_unconfirmed(django_capture_on_commit_callbacks):
    provider = FakeProvider(fail_order=True)
    booking = make_unpaid_booking(status=Booking.Status.PAYMENT_PENDING, payment_status=Booking.PaymentStatus.PROCESSING)

    with django_capture_on_commit_callbacks(execute=True):
        result = build_service(providers={Provider.AMADEUS: provider}).confirm_after_payment(booking.pk)

    assert result.status == Booking.Status.PAYMENT_PENDING
    assert result.payment_status == Booking.PaymentStatus.COMPLETED
    assert result.provider_booking_id is None
    assert result.provider_data["orderCreationError"] == "Offer is no longer available"
    assert "orderCreationFailedAt" in result.provider_data
    # Card kept so the order can be retried
    assert result.booking_data["payment_card_info"]["encrypted"]
    assert mail.outbox[0].to == ["ops@example.com"]


@pytest.mark.django_db
def test_merchant_model_pays_amadeus_with_agency_card(settings):
    agency_card = CardDetails(
        vendor_code="MC",
        card_number="5500000000000004",
        expiry_date="2031-01",
        holder_name="EBT AGENCY",
    )
    settings.AMADEUS_AGENCY_CARD_ENCRYPTED = encrypt_card(agency_card)
    provider = FakeProvider()
    booking = make_unpaid_booking(status=Booking.Status.PAYMENT_PENDING, payment_status=Booking.PaymentStatus.PROCESSING)

    build_service(providers={Provider.AMADEUS: provider}, strategy=MerchantCharging()).confirm_after_payment(booking.pk)

    assert provider.orders[0]["payment"].card == agency_card


@pytest.mark.django_db
def test_duffel_orders_are_paid_from_balance():
    provider = FakeProvider(Provider.DUFFEL)
    booking = make_unpaid_booking(
        product_type=ProductType.FLIGHT_INTERNATIONAL,
        provider=Provider.DUFFEL,
        status=Booking.Status.PAYMENT_PENDING,
        payment_status=Booking.PaymentStatus.PROCESSING,
        booking_data={
            "offer_id": "off_1",
            "guests": [],
            "pricing": {"original_amount": "380.00", "original_currency": "USD"},
        },
    )

    build_service(providers={Provider.DUFFEL: provider}).confirm_after_payment(booking.pk)

    payment = provider.orders[0]["payment"]
    assert payment.method == OrderPayment.BALANCE
    assert payment.amount == Decimal("380.00")
    assert payment.currency == "USD"


@pytest.mark.django_db
def test_car_rental_order_names_the_driver():
    provider = FakeProvider()
    driver = {"first_name": "Grace", "last_name": "Hopper", "email": "grace@example.com"}
    booking = make_unpaid_booking(
        product_type=ProductType.CAR_RENTAL,
        status=Booking.Status.PAYMENT_PENDING,
        payment_status=Booking.PaymentStatus.PROCESSING,
        booking_data={
            "offer_id": "CAR-OFFER-1",
            "guests": [],
            "driver": driver,
            "payment_card_info": stored_card_blob(TEST_CARD),
        },
    )

    confirmed = build_service(providers={Provider.AMADEUS: provider}).confirm_after_payment(booking.pk)

    assert confirmed.status == Booking.Status.CONFIRMED
    order = provider.orders[0]
    assert order["product_type"] == ProductType.CAR_RENTAL
    assert order["guests"] == [driver]
    assert order["offer_id"] == "CAR-OFFER-1"


@pytest.mark.django_db
def test_payment_for_cancelled_booking_does_not_create_order():
    provider = FakeProvider()
    booking = make_unpaid_booking(status=Booking.Status.CANCELLED)

    result = build_service(providers={Provider.AMADEUS: provider}).confirm_after_payment(booking.pk)

    assert result.status == Booking.Status.CANCELLED
    assert provider.orders == []


@pytest.mark.django_db
def test_already_confirmed_booking_is_left_alone():
    provider = FakeProvider()
    booking = make_booking()

    build_service(providers={Provider.AMADEUS: provider}).confirm_after_payment(booking.pk)

    assert provider.orders == []
