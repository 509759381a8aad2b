"""Booking and cancellation request models."""

from __future__ import annotations

import secrets
import uuid
from decimal import Decimal

from django.db import IntegrityError, models, transaction  # type: ignore
from django.db.models import Q  # type: ignore
from django.utils import timezone  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore

from apps.providers.choices import ProductType, Provider

REFERENCE_PREFIX = "EBT"
REFERENCE_ATTEMPTS = 5


def generate_booking_reference(now=None) -> str:
    """``EBT-YYYYMMDD-NNNNNN`` with a random six digit suffix."""
    now = now or timezone.now()
    return f"{REFERENCE_PREFIX}-{now:%Y%m%d}-{100000 + secrets.randbelow(900000)}"


class Booking(models.Model):
    """A customer's booking of one provider offer."""

    class Status(models.TextChoices):
        PENDING = "PENDING", _("Pending")
        PAYMENT_PENDING = "PAYMENT_PENDING", _("Awaiting payment")
        CONFIRMED = "CONFIRMED", _("Confirmed")
        CANCELLED = "CANCELLED", _("Cancelled")

    class PaymentStatus(models.TextChoices):
        PENDING = "PENDING", _("Pending")
        PROCESSING = "PROCESSING", _("Processing")
        COMPLETED = "COMPLETED", _("Completed")
        FAILED = "FAILED", _("Failed")
        REFUNDED = "REFUNDED", _("Refunded")
        PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED", _("Partially refunded")

    class RefundStatus(models.TextChoices):
        PENDING = "PENDING", _("Pending")
        PROCESSING = "PROCESSING", _("Processing")
        COMPLETED = "COMPLETED", _("Completed")
        FAILED = "FAILED", _("Failed")

    ALLOWED_TRANSITIONS = {
        Status.PENDING: {Status.PAYMENT_PENDING, Status.CANCELLED},
        Status.PAYMENT_PENDING: {Status.PAYMENT_PENDING, Status.CONFIRMED, Status.CANCELLED},
        Status.CONFIRMED: {Status.CANCELLED},
        Status.CANCELLED: set(),
    }

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    reference = models.CharField(max_length=24, unique=True, editable=False)
    user_id = models.CharField(max_length=64, db_index=True)
    user_email = models.EmailField(blank=True)
    product_type = models.CharField(max_length=32, choices=ProductType.choices)
    provider = models.CharField(max_length=16, choices=Provider.choices)

    currency = models.CharField(max_length=3)
    base_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text=_("Converted provider price including the conversion buffer."),
    )
    markup_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    service_fee = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    total_amount = models.DecimalField(max_digits=12, decimal_places=2)
    voucher_id = models.CharField(max_length=64, blank=True)
    voucher_code = models.CharField(max_length=32, blank=True)
    voucher_discount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    final_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    refund_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)

    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    payment_status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )
    refund_status = models.CharField(max_length=20, choices=RefundStatus.choices, blank=True)

    provider_booking_id = models.CharField(max_length=128, null=True, blank=True, unique=True)
    provider_data = models.JSONField(default=dict, blank=True)
    booking_data = models.JSONField(
        default=dict,
        blank=True,
        help_text=_("Request snapshot; may hold the encrypted card until the order exists."),
    )
    passenger_info = models.JSONField(default=dict, blank=True)
    payment_reference = models.CharField(max_length=128, null=True, blank=True, db_index=True)
    payment_info = models.JSONField(default=dict, blank=True)

    cancellation_deadline = models.DateTimeField(null=True, blank=True)
    cancellation_policy_snapshot = models.TextField(blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancelled_by = models.CharField(max_length=64, blank=True)

    # Chargeback evidence
    client_ip = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.CharField(max_length=512, blank=True)
    policy_accepted_at = models.DateTimeField(null=True, blank=True)
    stripe_charge_id = models.CharField(max_length=128, blank=True)
    confirmation_email_sent_at = models.DateTimeField(null=True, blank=True)

    version = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Booking")
        verbose_name_plural = _("Bookings")
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["user_id", "status"]),
            models.Index(fields=["status", "payment_status"]),
        ]

    def __str__(self) -> str:
        return f"Booking {self.reference} ({self.status})"

    def save(self, *args, **kwargs):  # type: ignore
        if not self._state.adding or self.reference:
            return super().save(*args, **kwargs)

        for attempt in range(REFERENCE_ATTEMPTS):
            self.reference = generate_booking_reference()
            try:
                with transaction.atomic():
                    return super().save(*args, **kwargs)
            except IntegrityError:
                if attempt == REFERENCE_ATTEMPTS - 1 or not Booking.objects.filter(reference=self.reference).exists():
                    raise
        return None

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        return to_status in cls.ALLOWED_TRANSITIONS.get(from_status, set())

    @property
    def amount_due(self) -> Decimal:
        return self.final_amount if self.final_amount is not None else self.total_amount

    @property
    def owner_email(self) -> str:
        return (self.passenger_info or {}).get("email") or self.user_email

    @property
    def offer_id(self) -> str:
        return (self.booking_data or {}).get("offer_id", "")

    @property
    def guests(self) -> list[dict]:
        return (self.booking_data or {}).get("guests", [])

    @property
    def order_guests(self) -> list[dict]:
        """Travellers named on the provider order; a car rental books its driver."""
        driver = (self.booking_data or {}).get("driver")
        if self.product_type == ProductType.CAR_RENTAL and driver:
            return [driver]
        return self.guests

    def scrubbed_booking_data(self) -> dict:
        """booking_data with the encrypted card removed; last four digits are kept."""
        data = dict(self.booking_data or {})
        if data.get("payment_card_info"):
            data["payment_card_info"] = {**data["payment_card_info"], "encrypted": None}
        return data

    def deadline_passed(self, now=None) -> bool:
        """No deadline means the booking can only be cancelled through admin review."""
        if self.cancellation_deadline is None:
            return True
        return (now or timezone.now()) >= self.cancellation_deadline


class CancellationRequest(models.Model):
    """Post-deadline cancellation waiting for an admin decision."""

    class Status(models.TextChoices):
        PENDING = "PENDING", _("Pending")
        APPROVED = "APPROVED", _("Approved")
        REJECTED = "REJECTED", _("Rejected")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    booking = models.ForeignKey(Booking, on_delete=models.CASCADE, related_name="cancellation_requests")
    requested_by = models.CharField(max_length=64)
    requested_at = models.DateTimeField(default=timezone.now)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    processed_at = models.DateTimeField(null=True, blank=True)
    processed_by = models.CharField(max_length=64, blank=True)
    admin_notes = models.TextField(blank=True)
    rejection_reason = models.TextField(blank=True)
    refund_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    refund_status = models.CharField(max_length=20, choices=Booking.RefundStatus.choices, blank=True)

    class Meta:
        ordering = ["requested_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["booking"],
                condition=Q(status="PENDING"),
                name="one_pending_cancellation_request_per_booking",
            ),
        ]

    def __str__(self) -> str:
        return f"Cancellation request {self.id} for {self.booking_id} ({self.status})"
