"""Offer search with cached provider results and displayed prices."""

from __future__ import annotations

import hashlib
import json
import logging

from django.conf import settings
from django.core.cache import cache

from apps.currency.services import CurrencyService
from apps.markup.services import PricingService

from .base import Offer
from .registry import ProviderRegistry, provider_registry

logger = logging.getLogger(__name__)


def _build_cache_key(provider_code: str, criteria: dict) -> str:
    prefix = getattr(settings, "PROVIDER_SEARCH_CACHE_PREFIX", "search:offers")
    fingerprint = json.dumps(criteria, sort_keys=True, default=str)
    digest = hashlib.sha1(f"{provider_code}|{fingerprint}".encode("utf-8")).hexdigest()
    return f"{prefix}:{digest}"


class OfferSearchService:
    def __init__(self, registry: ProviderRegistry | None = None, pricing: PricingService | None = None):
        self.registry = registry or provider_registry
        self.pricing = pricing or PricingService()

    def _offers(self, provider_code: str, criteria: dict) -> list[Offer]:
        key = _build_cache_key(provider_code, criteria)
        cached: list[Offer] | None = cache.get(key)
        if cached is not None:
            logger.debug(f"Offer search cache hit for {provider_code}")
            return cached

        offers = self.registry.get(provider_code).search_offers(criteria)
        cache.set(key, offers, getattr(settings, "PROVIDER_SEARCH_CACHE_TIMEOUT", 300))
        return offers

    def search(self, provider_code: str, criteria: dict, currency: str) -> list[dict]:
        """Offers priced in ``currency`` with markup and fees already applied."""
        currency = currency.upper()
        results = []
        for offer in self._offers(provider_code, criteria):
            quote = self.pricing.quote(offer.base_price, offer.currency, currency, offer.product_type)
            results.append(
                {
                    "offer_id": offer.offer_id,
                    "provider": offer.provider,
                    "product_type": offer.product_type,
                    "provider_price": str(offer.base_price),
                    "provider_currency": offer.currency,
                    "total_amount": CurrencyService.format_amount(quote.total_amount, currency),
                    "currency": currency,
                    "pricing": quote.snapshot(),
                    "data": offer.data,
                }
            )
        return results
