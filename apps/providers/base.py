"""Inventory provider interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal

from apps.payments.cards import CardDetails


class ProviderError(Exception):
    """A provider call failed; ``message`` never contains card data."""

    def __init__(self, message: str, *, status_code: int | None = None, retryable: bool = False):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.retryable = retryable


@dataclass(frozen=True)
class OrderPayment:
    """How the provider gets paid for an order."""

    CARD = "card"
    BALANCE = "balance"

    method: str
    card: CardDetails | None = None
    amount: Decimal | None = None
    currency: str = ""


@dataclass(frozen=True)
class ProviderOrder:
    order_id: str
    data: dict = field(default_factory=dict)


@dataclass(frozen=True)
class Offer:
    offer_id: str
    provider: str
    product_type: str
    base_price: Decimal
    currency: str
    data: dict = field(default_factory=dict)


class InventoryProvider(ABC):
    code: str = ""

    @abstractmethod
    def search_offers(self, criteria: dict) -> list[Offer]:
        """Return offers matching ``criteria``; the shape of criteria is provider specific."""

    @abstractmethod
    def create_order(
        self, offer_id: str, guests: list[dict], payment: OrderPayment, *, product_type: str = ""
    ) -> ProviderOrder:
        """Book ``offer_id`` for ``guests``. Not idempotent: call at most once per booking."""

    @abstractmethod
    def cancel_order(self, provider_booking_id: str, *, product_type: str = "") -> dict:
        """Cancel an existing order. Safe to repeat."""
