"""Admin registration for vouchers."""

from __future__ import annotations

from django.contrib import admin

from .models import Voucher


@admin.register(Voucher)
class VoucherAdmin(admin.ModelAdmin):
    list_display = ("code", "user_id", "discount_type", "discount_value", "currency", "status", "expires_at")
    list_filter = ("status", "discount_type")
    search_fields = ("code", "user_id", "used_on_booking_id", "reward_rule_id")
    readonly_fields = ("used_at", "used_on_booking_id", "created_at")
