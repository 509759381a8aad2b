"""Admin registration for markup configuration."""

from __future__ import annotations

from django.contrib import admin

from .models import MarkupConfig


@admin.register(MarkupConfig)
class MarkupConfigAdmin(admin.ModelAdmin):
    list_display = (
        "product_type",
        "currency",
        "markup_percentage",
        "service_fee_amount",
        "is_active",
        "effective_from",
        "effective_to",
    )
    list_filter = ("product_type", "currency", "is_active")
    actions = ("make_active",)

    @admin.action(description="Activate (deactivates other rows for the same pair)")
    def make_active(self, request, queryset):
        for config in queryset:
            config.activate()
