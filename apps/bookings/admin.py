"""Admin registration for bookings."""

from __future__ import annotations

from django.contrib import admin

from .models import Booking, CancellationRequest


class CancellationRequestInline(admin.TabularInline):
    model = CancellationRequest
    extra = 0
    can_delete = False
    readonly_fields = (
        "requested_by",
        "requested_at",
        "status",
        "processed_at",
        "processed_by",
        "refund_amount",
        "refund_status",
    )


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = (
        "reference",
        "product_type",
        "provider",
        "status",
        "payment_status",
        "total_amount",
        "currency",
        "created_at",
    )
    list_filter = ("status", "payment_status", "refund_status", "product_type", "provider")
    search_fields = ("reference", "user_email", "provider_booking_id", "payment_reference")
    # booking_data may still hold an encrypted card; it is never shown here
    exclude = ("booking_data",)
    readonly_fields = (
        "reference",
        "version",
        "base_price",
        "markup_amount",
        "service_fee",
        "total_amount",
        "payment_reference",
        "stripe_charge_id",
        "created_at",
        "updated_at",
    )
    inlines = [CancellationRequestInline]


@admin.register(CancellationRequest)
class CancellationRequestAdmin(admin.ModelAdmin):
    list_display = ("id", "booking", "status", "requested_at", "processed_by", "refund_amount")
    list_filter = ("status",)
    search_fields = ("booking__reference",)
    readonly_fields = ("booking", "requested_by", "requested_at", "processed_at", "processed_by")
