"""Emulated provider for local development without provider credentials."""

from __future__ import annotations

import logging
import uuid
from decimal import Decimal

from django.utils import timezone

from .base import InventoryProvider, Offer, OrderPayment, ProviderOrder
from .choices import ProductType, Provider

logger = logging.getLogger(__name__)


class SandboxProvider(InventoryProvider):
    """Accepts every order and cancellation; never talks to the network."""

    code = Provider.SANDBOX

    def __init__(self, emulates: str = Provider.SANDBOX):
        self.emulates = emulates

    def search_offers(self, criteria: dict) -> list[Offer]:
        product_type = criteria.get("product_type", ProductType.HOTEL)
        return [
            Offer(
                offer_id=f"sandbox_offer_{index}",
                provider=self.emulates,
                product_type=product_type,
                base_price=Decimal("100.00") * index,
                currency=criteria.get("currency", "USD"),
                data={"emulated": True},
            )
            for index in (1, 2, 3)
        ]

    def create_order(
        self, offer_id: str, guests: list[dict], payment: OrderPayment, *, product_type: str = ""
    ) -> ProviderOrder:
        order_id = f"sandbox_{uuid.uuid4().hex[:16]}"
        logger.warning(f"Emulated {self.emulates} order {order_id} for offer {offer_id}")
        return ProviderOrder(
            order_id=order_id,
            data={
                "id": order_id,
                "emulated": True,
                "offer_id": offer_id,
                "guests": len(guests),
                "payment_method": payment.method,
                "product_type": product_type,
                "created_at": timezone.now().isoformat(),
            },
        )

    def cancel_order(self, provider_booking_id: str, *, product_type: str = "") -> dict:
        logger.warning(f"Emulated {self.emulates} cancellation of {provider_booking_id}")
        return {"id": provider_booking_id, "emulated": True, "status": "cancelled"}
