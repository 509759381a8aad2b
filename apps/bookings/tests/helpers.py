"""Fakes and builders shared by the booking tests."""

from __future__ import annotations

import json
import uuid
from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.utils import timezone

from apps.bookings.models import Booking
from apps.bookings.services import BookingService
from apps.markup.models import MarkupConfig
from apps.markup.services import PricingService
from apps.payments.cards import CardDetails, stored_card_blob
from apps.payments.gateway import PaymentGatewayError, PaymentIntent, Refund, SettlementGateway
from apps.payments.strategies import ChargeType, GuestCardCharging
from apps.providers.base import InventoryProvider, ProviderError, ProviderOrder
from apps.providers.choices import ProductType, Provider
from apps.providers.registry import ProviderRegistry
from apps.vouchers.services import VoucherService

TEST_CARD = CardDetails(
    vendor_code="VI",
    card_number="4151289722471370",
    expiry_date="2030-08",
    holder_name="ADA LOVELACE",
    security_code="123",
)


class FakeGateway(SettlementGateway):
    def __init__(self, *, fail_intent: bool = False, fail_refund: bool = False, fail_cancel: bool = False):
        self.fail_intent = fail_intent
        self.fail_refund = fail_refund
        self.fail_cancel = fail_cancel
        self.intents: list[dict] = []
        self.refunds: list[dict] = []
        self.cancelled_intents: list[str] = []

    def create_payment_intent(self, amount_minor_units, currency, metadata, *, idempotency_key=None):
        if self.fail_intent:
            raise PaymentGatewayError("Payment processor is unavailable. Please try again.")
        intent_id = f"pi_test_{len(self.intents) + 1}"
        self.intents.append({
            "id": intent_id,
            "amount": amount_minor_units,
            "currency": currency,
            "metadata": metadata,
            "idempotency_key": idempotency_key,
        })
        return PaymentIntent(
            id=intent_id,
            client_secret=f"{intent_id}_secret",
            amount=amount_minor_units,
            currency=currency.lower(),
            status="requires_payment_method",
            metadata=metadata,
        )

    def cancel_payment_intent(self, payment_intent_id):
        if self.fail_cancel:
            raise PaymentGatewayError(f"Payment intent {payment_intent_id} could not be cancelled")
        self.cancelled_intents.append(payment_intent_id)

    def create_refund(self, payment_intent_id, amount_minor_units, reason):
        self.refunds.append({"payment_intent_id": payment_intent_id, "amount": amount_minor_units, "reason": reason})
        if self.fail_refund:
            raise PaymentGatewayError("Refund could not be created.")
        return Refund(id=f"re_test_{len(self.refunds)}", amount=amount_minor_units, status="pending")

    def construct_webhook_event(self, payload, signature):
        return json.loads(payload)


class FakeProvider(InventoryProvider):
    def __init__(self, code: str = Provider.AMADEUS, *, fail_order: bool = False, fail_cancel: bool = False):
        self.code = code
        self.fail_order = fail_order
        self.fail_cancel = fail_cancel
        self.orders: list[dict] = []
        self.cancellations: list[str] = []
        self.cancelled_product_types: list[str] = []

    def search_offers(self, criteria):
        return []

    def create_order(self, offer_id, guests, payment, *, product_type=""):
        self.orders.append({"offer_id": offer_id, "guests": guests, "payment": payment, "product_type": product_type})
        if self.fail_order:
            raise ProviderError("Offer is no longer available", status_code=400)
        order_id = f"{self.code}-ORDER-{len(self.orders)}"
        return ProviderOrder(order_id=order_id, data={"id": order_id, "status": "CONFIRMED"})

    def cancel_order(self, provider_booking_id, *, product_type=""):
        self.cancellations.append(provider_booking_id)
        self.cancelled_product_types.append(product_type)
        if self.fail_cancel:
            raise ProviderError("Cancellation window closed", status_code=400)
        return {"id": provider_booking_id, "status": "CANCELLED"}


def make_user(username: str = "traveller", *, is_staff: bool = False):
    return get_user_model().objects.create_user(
        username=username,
        email=f"{username}@example.com",
        password="TravelPass123",
        is_staff=is_staff,
    )


def make_markup_config(product_type=ProductType.HOTEL, currency="GBP", **overrides) -> MarkupConfig:
    data = {
        "product_type": product_type,
        "currency": currency,
        "markup_percentage": Decimal("10.00"),
        "service_fee_amount": Decimal("5.00"),
    }
    data.update(overrides)
    return MarkupConfig.objects.create(**data)


def make_booking(user_id="user-1", **overrides) -> Booking:
    """A confirmed, paid Amadeus hotel booking: 450 base + 40 markup + 10 fee."""
    data = {
        "user_id": str(user_id),
        "user_email": "traveller@example.com",
        "product_type": ProductType.HOTEL,
        "provider": Provider.AMADEUS,
        "currency": "GBP",
        "base_price": Decimal("450.00"),
        "markup_amount": Decimal("40.00"),
        "service_fee": Decimal("10.00"),
        "total_amount": Decimal("500.00"),
        "status": Booking.Status.CONFIRMED,
        "payment_status": Booking.PaymentStatus.COMPLETED,
        "payment_reference": f"pi_{uuid.uuid4().hex[:12]}",
        "payment_info": {"charge_type": ChargeType.MARKUP_AND_FEES_ONLY.value},
        "provider_booking_id": f"AMA-{uuid.uuid4().hex[:8]}",
        "passenger_info": {"firstName": "Ada", "lastName": "Lovelace", "email": "ada@example.com"},
        "booking_data": {"offer_id": "offer-1", "guests": [{"firstName": "Ada"}]},
        "cancellation_deadline": timezone.now() + timedelta(days=7),
        "cancellation_policy_snapshot": "Free cancellation until 7 days before arrival.",
    }
    data.update(overrides)
    return Booking.objects.create(**data)


def make_unpaid_booking(user_id="user-1", **overrides) -> Booking:
    data = {
        "status": Booking.Status.PENDING,
        "payment_status": Booking.PaymentStatus.PENDING,
        "payment_reference": None,
        "payment_info": {},
        "provider_booking_id": None,
        "booking_data": {
            "offer_id": "offer-1",
            "guests": [{"firstName": "Ada"}],
            "payment_card_info": stored_card_blob(TEST_CARD),
        },
    }
    data.update(overrides)
    return make_booking(user_id, **data)


def build_service(*, gateway=None, providers=None, strategy=None, currency_service=None) -> BookingService:
    return BookingService(
        gateway=gateway or FakeGateway(),
        registry=ProviderRegistry(providers or {Provider.AMADEUS: FakeProvider(Provider.AMADEUS)}),
        strategy=strategy or GuestCardCharging(),
        pricing=PricingService(currency_service=currency_service),
        vouchers=VoucherService(),
    )
