"""Serializers for the booking domain.

Clients send card and driver details either nested (``payment.card.*``,
``driver.*``) or flat (``cardNumber``, ``driverFirstName``, ...). Both
shapes are normalised here into one ``CardDetails`` and one driver dict
before a command is built.
"""

from __future__ import annotations

from django.utils import timezone  # type: ignore

from rest_framework import serializers  # type: ignore

from apps.payments.cards import CardDetails
from apps.providers.choices import ProductType, Provider
from shared.domain.value_objects import SUPPORTED_CURRENCIES

from .application.commands import (
    CancelBookingCommand,
    CreateBookingCommand,
    GuestPaymentIntentCommand,
    IssuePaymentIntentCommand,
    ProcessCancellationRequestCommand,
)
from .models import Booking

CARD_VENDOR_CODES = ["VI", "MC", "AX", "CA", "DC", "DI", "JC", "TP"]
PERSON_TITLES = ["MR", "MRS", "MS", "MISS", "DR", "PROF"]
CURRENCY_CHOICES = [(code, code) for code in SUPPORTED_CURRENCIES]

# canonical field -> accepted client keys
NESTED_CARD_KEYS = {
    "vendor_code": ("vendorCode", "vendor_code"),
    "card_number": ("cardNumber", "card_number", "number"),
    "expiry_date": ("expiryDate", "expiry_date"),
    "holder_name": ("holderName", "holder_name"),
    "security_code": ("securityCode", "security_code", "cvv"),
}
FLAT_CARD_KEYS = {
    "vendor_code": ("cardVendorCode", "vendorCode"),
    "card_number": ("cardNumber", "card_number"),
    "expiry_date": ("cardExpiryDate", "expiryDate"),
    "holder_name": ("cardHolderName", "holderName"),
    "security_code": ("cardSecurityCode", "securityCode", "cvv"),
}
NESTED_DRIVER_KEYS = {
    "title": ("title",),
    "first_name": ("firstName", "first_name"),
    "last_name": ("lastName", "last_name"),
    "email": ("email",),
    "phone": ("phone",),
    "date_of_birth": ("dateOfBirth", "date_of_birth"),
    "license_number": ("licenseNumber", "license_number"),
    "license_country": ("licenseCountry", "license_country"),
}
FLAT_DRIVER_KEYS = {
    "title": ("driverTitle",),
    "first_name": ("driverFirstName",),
    "last_name": ("driverLastName",),
    "email": ("driverEmail",),
    "phone": ("driverPhone",),
    "date_of_birth": ("driverDateOfBirth",),
    "license_number": ("driverLicenseNumber",),
    "license_country": ("driverLicenseCountry",),
}


def _pick(source, keys: dict) -> dict:
    picked = {}
    for field, aliases in keys.items():
        for key in aliases:
            value = source.get(key)
            if value not in (None, ""):
                picked[field] = value
                break
    return picked


def extract_card_payload(data) -> dict | None:
    """Canonical card fields from either payload shape, or None when no card was sent."""
    payment = data.get("payment")
    if isinstance(payment, dict):
        nested = payment.get("card") or payment.get("paymentCard")
        if isinstance(nested, dict):
            return _pick(nested, NESTED_CARD_KEYS) or None
    return _pick(data, FLAT_CARD_KEYS) or None


def extract_driver_payload(data) -> dict | None:
    driver = data.get("driver")
    if isinstance(driver, dict):
        return _pick(driver, NESTED_DRIVER_KEYS) or None
    return _pick(data, FLAT_DRIVER_KEYS) or None


class PaymentCardSerializer(serializers.Serializer):
    vendor_code = serializers.ChoiceField(choices=CARD_VENDOR_CODES)
    card_number = serializers.RegexField(
        r"^\d{13,19}$",
        error_messages={"invalid": "Enter a valid card number."},
    )
    expiry_date = serializers.RegexField(
        r"^\d{4}-(0[1-9]|1[0-2])$",
        error_messages={"invalid": "Expiry date must use the YYYY-MM format."},
    )
    holder_name = serializers.CharField(max_length=128)
    security_code = serializers.RegexField(
        r"^\d{3,4}$",
        required=False,
        default="",
        error_messages={"invalid": "Enter a valid security code."},
    )

    def to_internal_value(self, data):
        data = dict(data)
        if isinstance(data.get("card_number"), str):
            data["card_number"] = data["card_number"].replace(" ", "").replace("-", "")
        if isinstance(data.get("vendor_code"), str):
            data["vendor_code"] = data["vendor_code"].upper()
        return super().to_internal_value(data)


class DriverSerializer(serializers.Serializer):
    title = serializers.ChoiceField(choices=PERSON_TITLES, required=False)
    first_name = serializers.CharField(max_length=64)
    last_name = serializers.CharField(max_length=64)
    email = serializers.EmailField()
    phone = serializers.CharField(max_length=32)
    date_of_birth = serializers.DateField(required=False)
    license_number = serializers.CharField(max_length=64, required=False)
    license_country = serializers.CharField(max_length=2, required=False)


class BookingCreateSerializer(serializers.Serializer):
    product_type = serializers.ChoiceField(choices=ProductType.choices)
    provider = serializers.ChoiceField(choices=Provider.choices)
    offer_id = serializers.CharField(max_length=256)
    base_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    provider_currency = serializers.ChoiceField(choices=CURRENCY_CHOICES, required=False)
    currency = serializers.ChoiceField(choices=CURRENCY_CHOICES)
    guests = serializers.ListField(child=serializers.DictField(), required=False, default=list)
    passenger_info = serializers.DictField(required=False, default=dict)
    cancellation_deadline = serializers.DateTimeField(required=False, allow_null=True)
    cancellation_policy = serializers.CharField(required=False, allow_blank=True, default="")
    policy_accepted = serializers.BooleanField(required=False, default=False)

    def to_internal_value(self, data):
        if hasattr(data, "copy"):
            data = data.copy()
            for key in ("currency", "provider_currency"):
                if isinstance(data.get(key), str):
                    data[key] = data[key].upper()

        values = super().to_internal_value(data)

        card = extract_card_payload(data)
        if card is not None:
            card_serializer = PaymentCardSerializer(data=card)
            if not card_serializer.is_valid():
                raise serializers.ValidationError({"payment_card": card_serializer.errors})
            values["card"] = CardDetails(**card_serializer.validated_data)

        driver = extract_driver_payload(data)
        if driver is not None:
            driver_serializer = DriverSerializer(data=driver)
            if not driver_serializer.is_valid():
                raise serializers.ValidationError({"driver": driver_serializer.errors})
            values["driver"] = driver_serializer.validated_data

        return values

    def validate(self, attrs):  # type: ignore
        if attrs["product_type"] == ProductType.CAR_RENTAL and not attrs.get("driver"):
            raise serializers.ValidationError({"driver": "Driver details are required for car rentals."})
        return attrs

    def to_command(self, request) -> CreateBookingCommand:
        data = self.validated_data
        user = request.user
        passenger_info = dict(data.get("passenger_info") or {})
        extra = {}

        driver = data.get("driver")
        if driver:
            extra["driver"] = {
                key: value.isoformat() if hasattr(value, "isoformat") else value
                for key, value in driver.items()
            }
            passenger_info.setdefault("firstName", driver["first_name"])
            passenger_info.setdefault("lastName", driver["last_name"])
            passenger_info.setdefault("email", driver["email"])
            passenger_info.setdefault("phone", driver["phone"])

        return CreateBookingCommand(
            user_id=str(user.pk),
            user_email=getattr(user, "email", "") or "",
            product_type=data["product_type"],
            provider=data["provider"],
            offer_id=data["offer_id"],
            base_price=data["base_price"],
            provider_currency=data.get("provider_currency") or data["currency"],
            currency=data["currency"],
            guests=data.get("guests") or [],
            passenger_info=passenger_info,
            card=data.get("card"),
            cancellation_deadline=data.get("cancellation_deadline"),
            cancellation_policy=data.get("cancellation_policy", ""),
            policy_accepted_at=timezone.now() if data.get("policy_accepted") else None,
            client_ip=client_ip(request),
            user_agent=request.META.get("HTTP_USER_AGENT", ""),
            extra=extra,
        )


def client_ip(request) -> str | None:
    forwarded = request.META.get("HTTP_X_FORWARDED_FOR", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.META.get("REMOTE_ADDR")


class BookingSerializer(serializers.ModelSerializer):
    """Customer-facing view of a booking; never exposes the stored card."""

    card_last4 = serializers.SerializerMethodField()

    class Meta:
        model = Booking
        fields = [
            "id",
            "reference",
            "status",
            "payment_status",
            "refund_status",
            "product_type",
            "provider",
            "currency",
            "base_price",
            "markup_amount",
            "service_fee",
            "total_amount",
            "voucher_code",
            "voucher_discount",
            "final_amount",
            "refund_amount",
            "provider_booking_id",
            "passenger_info",
            "cancellation_deadline",
            "cancellation_policy_snapshot",
            "cancelled_at",
            "card_last4",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_card_last4(self, obj: Booking) -> str:
        return ((obj.booking_data or {}).get("payment_card_info") or {}).get("cardLast4", "")


class PaymentIntentSerializer(serializers.Serializer):
    voucher_code = serializers.CharField(required=False, allow_blank=True, default="")

    def to_command(self, booking_id, request) -> IssuePaymentIntentCommand:
        return IssuePaymentIntentCommand(
            booking_id=str(booking_id),
            user_id=str(request.user.pk),
            voucher_code=self.validated_data["voucher_code"],
        )


class GuestPaymentIntentSerializer(serializers.Serializer):
    reference = serializers.RegexField(r"^[Ee][Bb][Tt]-\d{8}-\d{6}$")
    email = serializers.EmailField()
    voucher_code = serializers.CharField(required=False, allow_blank=True, default="")

    def to_command(self) -> GuestPaymentIntentCommand:
        data = self.validated_data
        return GuestPaymentIntentCommand(
            reference=data["reference"].upper(),
            email=data["email"],
            voucher_code=data["voucher_code"],
        )


def cancel_command(booking_id, request) -> CancelBookingCommand:
    user = request.user
    return CancelBookingCommand(
        booking_id=str(booking_id),
        actor_id=str(user.pk),
        is_admin=bool(getattr(user, "is_staff", False)),
    )


class ProcessCancellationRequestSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=["reject", "partial_refund", "full_refund"])
    refund_amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)
    admin_notes = serializers.CharField(required=False, allow_blank=True, default="")
    rejection_reason = serializers.CharField(required=False, allow_blank=True, default="")

    def to_command(self, request_id, request) -> ProcessCancellationRequestCommand:
        data = self.validated_data
        return ProcessCancellationRequestCommand(
            request_id=str(request_id),
            admin_id=str(request.user.pk),
            action=data["action"],
            refund_amount=data.get("refund_amount"),
            admin_notes=data["admin_notes"],
            rejection_reason=data["rejection_reason"],
        )


class CancellationRequestSerializer(serializers.Serializer):
    id = serializers.UUIDField()
    booking_id = serializers.UUIDField()
    status = serializers.CharField()
    requested_by = serializers.CharField()
    requested_at = serializers.DateTimeField()
    processed_at = serializers.DateTimeField()
    processed_by = serializers.CharField()
    admin_notes = serializers.CharField()
    rejection_reason = serializers.CharField()
    refund_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    refund_status = serializers.CharField()
