"""Admin registration for loyalty configuration and ledgers."""

from __future__ import annotations

from django.contrib import admin

from .models import LoyaltyAccount, LoyaltyTierConfig, LoyaltyTransaction, PointsEarningRule, RewardRule


@admin.register(LoyaltyAccount)
class LoyaltyAccountAdmin(admin.ModelAdmin):
    list_display = ("user_id", "balance", "total_earned", "tier", "updated_at")
    list_filter = ("tier",)
    search_fields = ("user_id",)
    # Balances move only through the ledger
    readonly_fields = ("balance", "total_earned", "tier", "created_at", "updated_at")


@admin.register(LoyaltyTransaction)
class LoyaltyTransactionAdmin(admin.ModelAdmin):
    list_display = ("user_id", "type", "points", "balance", "reference_type", "reference_id", "created_at")
    list_filter = ("type", "reference_type")
    search_fields = ("user_id", "reference_id")

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(PointsEarningRule)
class PointsEarningRuleAdmin(admin.ModelAdmin):
    list_display = ("product_type", "points_per_unit", "bonus_points", "min_booking_amount", "is_active")
    list_filter = ("is_active",)


@admin.register(LoyaltyTierConfig)
class LoyaltyTierConfigAdmin(admin.ModelAdmin):
    list_display = ("tier", "min_points", "points_multiplier")


@admin.register(RewardRule)
class RewardRuleAdmin(admin.ModelAdmin):
    list_display = (
        "name",
        "points_required",
        "discount_type",
        "discount_value",
        "currency",
        "required_tier",
        "current_usage_count",
        "is_active",
    )
    list_filter = ("is_active", "discount_type", "required_tier")
    search_fields = ("name",)
    readonly_fields = ("current_usage_count", "created_at")
