"""Loyalty accounts, point ledger and the rules that drive them."""

from __future__ import annotations

import uuid
from decimal import Decimal

from django.db import models  # type: ignore
from django.db.models import Q  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore

from apps.providers.choices import ProductType
from apps.vouchers.models import Voucher


class LoyaltyTier(models.TextChoices):
    BRONZE = "BRONZE", _("Bronze")
    SILVER = "SILVER", _("Silver")
    GOLD = "GOLD", _("Gold")
    PLATINUM = "PLATINUM", _("Platinum")


# Lowest to highest
TIER_ORDER = [LoyaltyTier.BRONZE, LoyaltyTier.SILVER, LoyaltyTier.GOLD, LoyaltyTier.PLATINUM]


def tier_rank(tier: str) -> int:
    return TIER_ORDER.index(tier)


class LoyaltyAccount(models.Model):
    user_id = models.CharField(max_length=64, unique=True)
    balance = models.PositiveIntegerField(default=0)
    total_earned = models.PositiveIntegerField(default=0, help_text=_("Lifetime points credited; drives the tier."))
    tier = models.CharField(max_length=16, choices=LoyaltyTier.choices, default=LoyaltyTier.BRONZE)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.user_id}: {self.balance} points ({self.tier})"


class LoyaltyTransaction(models.Model):
    """One entry of the point ledger; ``balance`` is the account balance after it."""

    class Type(models.TextChoices):
        EARN = "EARN", _("Earned")
        REDEEM = "REDEEM", _("Redeemed")
        ADMIN_CREDIT = "ADMIN_CREDIT", _("Admin credit")
        ADMIN_DEBIT = "ADMIN_DEBIT", _("Admin debit")
        EXPIRY = "EXPIRY", _("Expired")
        BONUS = "BONUS", _("Bonus")

    class ReferenceType(models.TextChoices):
        BOOKING = "BOOKING", _("Booking")
        VOUCHER_REDEMPTION = "VOUCHER_REDEMPTION", _("Voucher redemption")
        ADMIN_ADJUSTMENT = "ADMIN_ADJUSTMENT", _("Admin adjustment")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user_id = models.CharField(max_length=64, db_index=True)
    type = models.CharField(max_length=16, choices=Type.choices)
    points = models.IntegerField(help_text=_("Positive for credits, negative for debits."))
    balance = models.IntegerField()
    description = models.CharField(max_length=255)
    reference_type = models.CharField(max_length=32, choices=ReferenceType.choices, blank=True)
    reference_id = models.CharField(max_length=64, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ("-created_at",)
        constraints = [
            # A booking earns points once
            models.UniqueConstraint(
                fields=["reference_type", "reference_id"],
                condition=Q(type="EARN"),
                name="loyalty_single_earn_per_reference",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.type} {self.points:+d} for {self.user_id}"


class PointsEarningRule(models.Model):
    product_type = models.CharField(max_length=32, choices=ProductType.choices, unique=True)
    points_per_unit = models.DecimalField(
        max_digits=8,
        decimal_places=4,
        default=Decimal("1"),
        help_text=_("Points per unit of the booking's total amount."),
    )
    bonus_points = models.IntegerField(default=0)
    min_booking_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    is_active = models.BooleanField(default=True)

    def __str__(self) -> str:
        return f"{self.product_type}: {self.points_per_unit}/unit + {self.bonus_points}"


class LoyaltyTierConfig(models.Model):
    tier = models.CharField(max_length=16, choices=LoyaltyTier.choices, unique=True)
    min_points = models.IntegerField(help_text=_("Lifetime points needed to reach this tier."))
    points_multiplier = models.DecimalField(max_digits=4, decimal_places=2, default=Decimal("1.00"))
    benefits = models.JSONField(default=list, blank=True)
    description = models.CharField(max_length=255, blank=True)

    class Meta:
        ordering = ("min_points",)

    def __str__(self) -> str:
        return f"{self.tier} from {self.min_points} points"


class RewardRule(models.Model):
    """A voucher customers can buy with points."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=120)
    description = models.CharField(max_length=255, blank=True)
    points_required = models.PositiveIntegerField()
    discount_type = models.CharField(max_length=16, choices=Voucher.DiscountType.choices)
    discount_value = models.DecimalField(max_digits=10, decimal_places=2)
    currency = models.CharField(max_length=3, blank=True)
    max_discount_amount = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    applicable_products = models.JSONField(null=True, blank=True)
    min_booking_amount = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    required_tier = models.CharField(max_length=16, choices=LoyaltyTier.choices, blank=True)
    validity_days = models.PositiveIntegerField(default=90)
    max_usage_per_user = models.PositiveIntegerField(null=True, blank=True)
    max_total_usage = models.PositiveIntegerField(null=True, blank=True)
    current_usage_count = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ("points_required",)

    def __str__(self) -> str:
        return f"{self.name} ({self.points_required} points)"
