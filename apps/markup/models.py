"""Markup rate table."""

from __future__ import annotations

import uuid
from decimal import Decimal

from django.db import models, transaction  # type: ignore
from django.db.models import Q  # type: ignore
from django.utils import timezone  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore

from apps.providers.choices import ProductType


class MarkupConfigQuerySet(models.QuerySet):
    def effective(self, at=None):
        at = at or timezone.now()
        return self.filter(is_active=True, effective_from__lte=at).filter(
            Q(effective_to__isnull=True) | Q(effective_to__gte=at)
        )

    def active_for(self, product_type: str, currency: str, at=None) -> "MarkupConfig | None":
        return (
            self.effective(at)
            .filter(product_type=product_type, currency=currency.upper())
            .order_by("-effective_from")
            .first()
        )


class MarkupConfig(models.Model):
    """Markup percentage and service fee for one product type in one currency."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    product_type = models.CharField(max_length=32, choices=ProductType.choices)
    currency = models.CharField(max_length=3)
    markup_percentage = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text=_("Percentage added on top of the converted base price."),
    )
    service_fee_amount = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text=_("Flat fee per booking, in the row's currency."),
    )
    is_active = models.BooleanField(default=True)
    effective_from = models.DateTimeField(default=timezone.now)
    effective_to = models.DateTimeField(null=True, blank=True)
    description = models.CharField(max_length=255, blank=True)
    created_by = models.CharField(max_length=64, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = MarkupConfigQuerySet.as_manager()

    class Meta:
        ordering = ("product_type", "currency", "-effective_from")
        indexes = [
            models.Index(fields=["product_type", "currency", "is_active"]),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["product_type", "currency"],
                condition=Q(is_active=True),
                name="unique_active_markup_per_product_currency",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.product_type}/{self.currency}: {self.markup_percentage}% + {self.service_fee_amount}"

    def save(self, *args, **kwargs):
        self.currency = (self.currency or "").upper()
        super().save(*args, **kwargs)

    def activate(self) -> None:
        """Make this row the only active one for its product type and currency."""
        with transaction.atomic():
            (
                MarkupConfig.objects.select_for_update()
                .filter(product_type=self.product_type, currency=self.currency.upper(), is_active=True)
                .exclude(pk=self.pk)
                .update(is_active=False, updated_at=timezone.now())
            )
            self.is_active = True
            self.save()
