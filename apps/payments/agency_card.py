"""Agency card used to pay Amadeus under the merchant payment model."""

from __future__ import annotations

import logging

from django.conf import settings

from .cards import CardDetails, decrypt_card

logger = logging.getLogger(__name__)


class AgencyCardNotConfigured(Exception):
    pass


def load_agency_card() -> CardDetails:
    """Decrypt the agency card for one order; callers must not keep it."""
    token = getattr(settings, "AMADEUS_AGENCY_CARD_ENCRYPTED", "")
    if not token:
        logger.error("Merchant payment model is active but AMADEUS_AGENCY_CARD_ENCRYPTED is not set")
        raise AgencyCardNotConfigured("Agency card is not configured")
    return decrypt_card(token)
