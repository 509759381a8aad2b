"""Currency conversion engine.

Rates come from a USD based feed and are cached per currency pair through
the Django cache (process-local LocMemCache unless CACHE_URL points at a
shared Redis). Conversion is fail-open: a rate lookup problem is logged
and the original amount is returned rather than blocking a sale.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

import requests
from django.conf import settings
from django.core.cache import cache

from shared.domain.value_objects import SUPPORTED_CURRENCIES, currency_decimals, quantize_amount
from shared.infrastructure.retry import retry_with_backoff

logger = logging.getLogger(__name__)

RATE_CACHE_PREFIX = "fx"
MAX_RECOMMENDED_BUFFER = Decimal("10")


class ExchangeRateUnavailable(Exception):
    """Raised when no rate can be obtained for a currency pair."""


@dataclass(frozen=True)
class ConversionFee:
    base_amount: Decimal
    conversion_fee: Decimal
    total_with_fee: Decimal


class CurrencyService:
    def __init__(self, *, rate_url: str | None = None, timeout: int = 10):
        self._rate_url = rate_url
        self._timeout = timeout

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def rate_url(self) -> str:
        return self._rate_url or settings.EXCHANGE_RATE_API_URL

    def get_conversion_buffer(self) -> Decimal:
        buffer = Decimal(str(getattr(settings, "CURRENCY_CONVERSION_BUFFER", "2.5")))
        if buffer < 0 or buffer > MAX_RECOMMENDED_BUFFER:
            logger.warning(
                f"CURRENCY_CONVERSION_BUFFER={buffer}% is outside the recommended 0-10% range"
            )
        return buffer

    @staticmethod
    def is_supported_currency(currency: str) -> bool:
        return bool(currency) and currency.upper() in SUPPORTED_CURRENCIES

    @staticmethod
    def get_supported_currencies() -> list[str]:
        return list(SUPPORTED_CURRENCIES)

    # ------------------------------------------------------------------
    # Rates
    # ------------------------------------------------------------------

    def _fetch_usd_rates(self) -> dict:
        def _request():
            response = requests.get(self.rate_url, timeout=self._timeout)
            response.raise_for_status()
            return response.json()

        payload = retry_with_backoff(_request, description="exchange rate fetch")
        rates = payload.get("rates") if isinstance(payload, dict) else None
        if not rates:
            raise ExchangeRateUnavailable("Exchange rate feed returned no rates")
        return rates

    def get_exchange_rate(self, from_currency: str, to_currency: str) -> Decimal:
        from_currency = from_currency.upper()
        to_currency = to_currency.upper()
        if from_currency == to_currency:
            return Decimal("1")

        cache_key = f"{RATE_CACHE_PREFIX}:{from_currency}_{to_currency}"
        cached = cache.get(cache_key)
        if cached is not None:
            return Decimal(cached)

        rates = self._fetch_usd_rates()
        try:
            from_rate = Decimal(str(rates.get(from_currency, 1 if from_currency == "USD" else None)))
            to_rate = Decimal(str(rates.get(to_currency, 1 if to_currency == "USD" else None)))
        except (KeyError, InvalidOperation):
            raise ExchangeRateUnavailable(
                f"No exchange rate for {from_currency}->{to_currency}"
            ) from None
        if from_rate == 0:
            raise ExchangeRateUnavailable(f"Zero exchange rate for {from_currency}")

        # The feed is USD based, so cross rates go through USD.
        rate = to_rate / from_rate
        cache.set(cache_key, str(rate), settings.EXCHANGE_RATE_CACHE_TTL)
        return rate

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    def convert(self, amount, from_currency: str, to_currency: str) -> Decimal:
        """Convert ``amount``; returns it unchanged when no rate is available."""
        amount = Decimal(str(amount))
        if (from_currency or "").upper() == (to_currency or "").upper():
            return amount

        if not self.is_supported_currency(from_currency) or not self.is_supported_currency(to_currency):
            logger.warning(
                f"Unsupported currency conversion {from_currency}->{to_currency}, "
                f"returning original amount"
            )
            return amount

        try:
            rate = self.get_exchange_rate(from_currency, to_currency)
        except (ExchangeRateUnavailable, requests.RequestException, ValueError) as e:
            logger.warning(
                f"Exchange rate lookup failed for {from_currency}->{to_currency}, "
                f"returning original amount: {e}"
            )
            return amount

        return quantize_amount(amount * rate, to_currency)

    def calculate_conversion_fee(self, converted_amount, from_currency: str, to_currency: str) -> ConversionFee:
        """Add the conversion buffer on top of an already converted amount."""
        base_amount = Decimal(str(converted_amount))
        buffer = self.get_conversion_buffer()
        if (from_currency or "").upper() == (to_currency or "").upper() or buffer <= 0:
            return ConversionFee(base_amount, Decimal("0"), base_amount)

        fee = quantize_amount(base_amount * buffer / Decimal("100"), to_currency)
        total = quantize_amount(base_amount + fee, to_currency)
        return ConversionFee(base_amount, fee, total)

    @staticmethod
    def format_amount(amount, currency: str) -> str:
        decimals = currency_decimals(currency)
        return f"{quantize_amount(amount, currency):.{decimals}f}"
