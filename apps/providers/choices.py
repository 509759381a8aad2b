"""Product and provider codes shared by pricing, payments and bookings."""

from django.db import models  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore


class ProductType(models.TextChoices):
    FLIGHT_DOMESTIC = "FLIGHT_DOMESTIC", _("Domestic flight")
    FLIGHT_INTERNATIONAL = "FLIGHT_INTERNATIONAL", _("International flight")
    HOTEL = "HOTEL", _("Hotel")
    CAR_RENTAL = "CAR_RENTAL", _("Car rental")


class Provider(models.TextChoices):
    AMADEUS = "AMADEUS", _("Amadeus")
    DUFFEL = "DUFFEL", _("Duffel")
    SANDBOX = "SANDBOX", _("Sandbox")


FLIGHT_PRODUCTS = frozenset({ProductType.FLIGHT_DOMESTIC, ProductType.FLIGHT_INTERNATIONAL})

# Products each live adapter can order and cancel; the sandbox emulates all of them.
PROVIDER_PRODUCTS = {
    Provider.AMADEUS: frozenset({ProductType.HOTEL, ProductType.CAR_RENTAL}),
    Provider.DUFFEL: FLIGHT_PRODUCTS,
    Provider.SANDBOX: frozenset(ProductType.values),
}


def provider_supports(provider: str, product_type: str) -> bool:
    return product_type in PROVIDER_PRODUCTS.get(provider, frozenset())
