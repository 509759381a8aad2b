"""Voucher model."""

from __future__ import annotations

import uuid

from django.db import models  # type: ignore
from django.utils import timezone  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore


class Voucher(models.Model):
    class DiscountType(models.TextChoices):
        PERCENTAGE = "PERCENTAGE", _("Percentage")
        FIXED_AMOUNT = "FIXED_AMOUNT", _("Fixed amount")

    class Status(models.TextChoices):
        ACTIVE = "ACTIVE", _("Active")
        USED = "USED", _("Used")
        EXPIRED = "EXPIRED", _("Expired")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    code = models.CharField(max_length=32, unique=True)
    user_id = models.CharField(max_length=64, db_index=True)
    discount_type = models.CharField(max_length=16, choices=DiscountType.choices)
    discount_value = models.DecimalField(max_digits=10, decimal_places=2)
    currency = models.CharField(
        max_length=3,
        blank=True,
        help_text=_("Required for fixed amount vouchers."),
    )
    max_discount_amount = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    min_booking_amount = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    applicable_products = models.JSONField(
        null=True,
        blank=True,
        help_text=_("Product types the voucher applies to; empty means all."),
    )
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.ACTIVE)
    expires_at = models.DateTimeField()
    used_at = models.DateTimeField(null=True, blank=True)
    used_on_booking_id = models.CharField(max_length=64, blank=True)
    reward_rule_id = models.CharField(
        max_length=64,
        blank=True,
        db_index=True,
        help_text=_("Loyalty reward this voucher was redeemed for, if any."),
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ("-created_at",)

    def __str__(self) -> str:
        return f"{self.code} ({self.status})"

    def save(self, *args, **kwargs):
        self.code = (self.code or "").strip().upper()
        super().save(*args, **kwargs)

    @property
    def is_expired(self) -> bool:
        return timezone.now() > self.expires_at
