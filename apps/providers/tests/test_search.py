"""Tests for cached offer search."""

from decimal import Decimal

import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from apps.markup.models import MarkupConfig
from apps.providers.base import Offer
from apps.providers.choices import ProductType
from apps.providers.registry import ProviderRegistry
from apps.providers.sandbox import SandboxProvider
from apps.providers.services import OfferSearchService


class CountingProvider(SandboxProvider):
    def __init__(self):
        super().__init__(emulates="AMADEUS")
        self.calls = 0

    def search_offers(self, criteria):
        self.calls += 1
        return [
            Offer(
                offer_id="OFFER1",
                provider="AMADEUS",
                product_type=ProductType.HOTEL,
                base_price=Decimal("200.00"),
                currency="GBP",
            )
        ]


@pytest.fixture(autouse=True)
def clear_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def markup(db):
    return MarkupConfig.objects.create(
        product_type=ProductType.HOTEL,
        currency="GBP",
        markup_percentage=Decimal("10.00"),
        service_fee_amount=Decimal("5.00"),
    )


@pytest.mark.django_db
def test_search_prices_offers_and_caches_provider_results(markup):
    provider = CountingProvider()
    service = OfferSearchService(registry=ProviderRegistry({"AMADEUS": provider}))

    first = service.search("AMADEUS", {"hotel_ids": ["H1"]}, "gbp")
    second = service.search("AMADEUS", {"hotel_ids": ["H1"]}, "GBP")

    assert provider.calls == 1
    assert first == second
    assert first[0]["total_amount"] == "225.00"
    assert first[0]["pricing"]["markup_amount"] == "20.00"


@pytest.mark.django_db
def test_search_endpoint_returns_priced_sandbox_offers(markup, settings):
    settings.DEBUG = True
    settings.AMADEUS_API_KEY = ""

    response = APIClient().post(
        "/api/v1/providers/search/",
        {"provider": "SANDBOX", "currency": "GBP", "criteria": {"currency": "GBP", "product_type": "HOTEL"}},
        format="json",
    )

    assert response.status_code == 200, response.data
    assert response.data["count"] == 3
    assert response.data["results"][0]["total_amount"] == "115.00"
