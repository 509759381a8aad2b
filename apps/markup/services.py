"""Markup calculation and the price quote pipeline.

Order of operations is fixed: convert, add the conversion buffer, then
apply markup on the buffered amount and add the flat service fee. Every
figure is rounded to the currency's decimals before it is summed, so the
stored total always equals base + markup + fee exactly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from apps.bookings.exceptions import MarkupConfigNotFound
from apps.currency.services import CurrencyService
from shared.domain.value_objects import quantize_amount

from .models import MarkupConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MarkupBreakdown:
    base_price: Decimal
    markup_percentage: Decimal
    markup_amount: Decimal
    service_fee: Decimal
    total_amount: Decimal
    currency: str
    markup_config_id: str


@dataclass(frozen=True)
class PriceQuote:
    original_amount: Decimal
    original_currency: str
    converted_amount: Decimal
    conversion_fee: Decimal
    base_price: Decimal
    markup_percentage: Decimal
    markup_amount: Decimal
    service_fee: Decimal
    total_amount: Decimal
    currency: str
    markup_config_id: str

    def snapshot(self) -> dict:
        """JSON friendly copy stored on the booking at creation time."""
        return {
            "original_amount": str(self.original_amount),
            "original_currency": self.original_currency,
            "converted_amount": str(self.converted_amount),
            "conversion_fee": str(self.conversion_fee),
            "base_price": str(self.base_price),
            "markup_percentage": str(self.markup_percentage),
            "markup_amount": str(self.markup_amount),
            "service_fee": str(self.service_fee),
            "total_amount": str(self.total_amount),
            "currency": self.currency,
            "markup_config_id": self.markup_config_id,
        }


class MarkupCalculationService:
    def get_active_config(self, product_type: str, currency: str) -> MarkupConfig:
        config = MarkupConfig.objects.active_for(product_type, currency)
        if config is None:
            logger.error(f"No active markup config for {product_type}/{currency}")
            raise MarkupConfigNotFound(
                f"No active markup configuration for {product_type} in {currency.upper()}."
            )
        return config

    def calculate(
        self,
        base_price,
        product_type: str,
        currency: str,
        config: MarkupConfig | None = None,
    ) -> MarkupBreakdown:
        config = config or self.get_active_config(product_type, currency)
        currency = currency.upper()

        base = quantize_amount(base_price, currency)
        markup_amount = quantize_amount(base * config.markup_percentage / Decimal("100"), currency)
        service_fee = quantize_amount(config.service_fee_amount, currency)

        return MarkupBreakdown(
            base_price=base,
            markup_percentage=config.markup_percentage,
            markup_amount=markup_amount,
            service_fee=service_fee,
            total_amount=base + markup_amount + service_fee,
            currency=currency,
            markup_config_id=str(config.pk),
        )


class PricingService:
    """Provider base price -> customer-facing price."""

    def __init__(
        self,
        currency_service: CurrencyService | None = None,
        markup_service: MarkupCalculationService | None = None,
    ):
        self.currency_service = currency_service or CurrencyService()
        self.markup_service = markup_service or MarkupCalculationService()

    def quote(self, base_price, provider_currency: str, target_currency: str, product_type: str) -> PriceQuote:
        target_currency = target_currency.upper()
        provider_currency = (provider_currency or target_currency).upper()

        # Resolve the rate table first so an unpriceable product never costs a rate lookup.
        config = self.markup_service.get_active_config(product_type, target_currency)

        original = Decimal(str(base_price))
        converted = self.currency_service.convert(original, provider_currency, target_currency)
        fee = self.currency_service.calculate_conversion_fee(converted, provider_currency, target_currency)
        breakdown = self.markup_service.calculate(
            fee.total_with_fee, product_type, target_currency, config=config
        )

        return PriceQuote(
            original_amount=original,
            original_currency=provider_currency,
            converted_amount=converted,
            conversion_fee=fee.conversion_fee,
            base_price=breakdown.base_price,
            markup_percentage=breakdown.markup_percentage,
            markup_amount=breakdown.markup_amount,
            service_fee=breakdown.service_fee,
            total_amount=breakdown.total_amount,
            currency=target_currency,
            markup_config_id=breakdown.markup_config_id,
        )
