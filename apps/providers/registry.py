"""Maps a booking's provider code to an adapter instance."""

from __future__ import annotations

import logging

from django.conf import settings

from .amadeus import AmadeusProvider
from .base import InventoryProvider, ProviderError
from .choices import Provider
from .duffel import DuffelProvider
from .sandbox import SandboxProvider

logger = logging.getLogger(__name__)


def _has_credentials(code: str) -> bool:
    if code == Provider.AMADEUS:
        return bool(settings.AMADEUS_API_KEY and settings.AMADEUS_API_SECRET)
    if code == Provider.DUFFEL:
        return bool(settings.DUFFEL_ACCESS_TOKEN)
    return True


class ProviderRegistry:
    def __init__(self, providers: dict[str, InventoryProvider] | None = None):
        self._providers: dict[str, InventoryProvider] = dict(providers or {})

    def get(self, code: str) -> InventoryProvider:
        if code in self._providers:
            return self._providers[code]

        if code == Provider.AMADEUS and _has_credentials(code):
            provider: InventoryProvider = AmadeusProvider()
        elif code == Provider.DUFFEL and _has_credentials(code):
            provider = DuffelProvider()
        elif code == Provider.SANDBOX or (code in Provider.values and settings.DEBUG):
            # Local development without provider credentials
            if code != Provider.SANDBOX:
                logger.warning(f"Using emulated {code} provider (DEBUG mode or missing credentials)")
            provider = SandboxProvider(emulates=code)
        elif code in Provider.values:
            raise ProviderError(f"{code} credentials are not configured")
        else:
            raise ProviderError(f"Unknown inventory provider: {code}")

        self._providers[code] = provider
        return provider


provider_registry = ProviderRegistry()
