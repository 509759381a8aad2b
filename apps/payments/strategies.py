"""Charging strategies and the charge/refund amount rules.

The payment model is resolved once at startup into one of two strategy
values. Everything below is a pure function of (booking, strategy,
voucher discount), so refunds can replay exactly what was charged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Union

from django.conf import settings  # type: ignore
from django.core.exceptions import ImproperlyConfigured  # type: ignore
from django.db import models  # type: ignore

from apps.providers.choices import ProductType, Provider
from shared.domain.value_objects import quantize_amount, to_minor_units

logger = logging.getLogger(__name__)


class ChargeType(models.TextChoices):
    MARKUP_AND_FEES_ONLY = "MARKUP_AND_FEES_ONLY", "Markup and fees only"
    FULL_BOOKING_AMOUNT = "FULL_BOOKING_AMOUNT", "Full booking amount"


def is_amadeus_hotel(booking) -> bool:
    return booking.provider == Provider.AMADEUS and booking.product_type == ProductType.HOTEL


@dataclass(frozen=True)
class MerchantCharging:
    """Customer pays us everything; we pay Amadeus with the agency card."""

    name = "merchant"

    def charge_type_for(self, booking) -> ChargeType:
        return ChargeType.FULL_BOOKING_AMOUNT

    def pays_provider_with_guest_card(self, booking) -> bool:
        return False

    def pays_provider_with_agency_card(self, booking) -> bool:
        return is_amadeus_hotel(booking)


@dataclass(frozen=True)
class GuestCardCharging:
    """Amadeus charges the guest's card directly; we only take the margin."""

    name = "guest_card"

    def charge_type_for(self, booking) -> ChargeType:
        if is_amadeus_hotel(booking):
            return ChargeType.MARKUP_AND_FEES_ONLY
        return ChargeType.FULL_BOOKING_AMOUNT

    def pays_provider_with_guest_card(self, booking) -> bool:
        return is_amadeus_hotel(booking)

    def pays_provider_with_agency_card(self, booking) -> bool:
        return False


ChargingStrategy = Union[MerchantCharging, GuestCardCharging]

_STRATEGIES = {
    MerchantCharging.name: MerchantCharging,
    GuestCardCharging.name: GuestCardCharging,
}

_active_strategy: ChargingStrategy | None = None


def resolve_charging_strategy(payment_model: str) -> ChargingStrategy:
    try:
        return _STRATEGIES[(payment_model or "").strip().lower()]()
    except KeyError:
        raise ImproperlyConfigured(
            f"PAYMENT_MODEL must be one of {sorted(_STRATEGIES)}, got {payment_model!r}"
        ) from None


def configure_charging_strategy(payment_model: str | None = None) -> ChargingStrategy:
    """Resolve the configured payment model; called once from the app config."""
    global _active_strategy
    _active_strategy = resolve_charging_strategy(payment_model or settings.PAYMENT_MODEL)
    logger.info(f"Payment model: {_active_strategy.name}")
    return _active_strategy


def get_charging_strategy() -> ChargingStrategy:
    return _active_strategy or configure_charging_strategy()


# ----------------------------------------------------------------------
# Amount rules
# ----------------------------------------------------------------------

def prorated_margin(booking, voucher_discount: Decimal | None = None) -> Decimal:
    """
    Markup plus service fee, scaled down by the share of the total the voucher took.

    A 40 + 10 margin with a 50 voucher on a 500 total gives 45.
    """
    discount = booking.voucher_discount if voucher_discount is None else voucher_discount
    discount = Decimal(str(discount or 0))
    total = Decimal(str(booking.total_amount or 0))
    margin = Decimal(str(booking.markup_amount or 0)) + Decimal(str(booking.service_fee or 0))
    if discount > 0 and total > 0:
        margin = margin * (Decimal("1") - discount / total)
    return quantize_amount(max(margin, Decimal("0")), booking.currency)


def payable_amount(booking, voucher_discount: Decimal | None = None) -> Decimal:
    discount = booking.voucher_discount if voucher_discount is None else voucher_discount
    discount = Decimal(str(discount or 0))
    total = Decimal(str(booking.total_amount))
    if discount > 0:
        return quantize_amount(max(total - discount, Decimal("0")), booking.currency)
    return quantize_amount(total, booking.currency)


def charge_amount(booking, charge_type: str, voucher_discount: Decimal | None = None) -> Decimal:
    if charge_type == ChargeType.MARKUP_AND_FEES_ONLY:
        return prorated_margin(booking, voucher_discount)
    return payable_amount(booking, voucher_discount)


def decide_charge_amount(booking, strategy: ChargingStrategy, voucher_discount: Decimal | None = None) -> int:
    """Amount to send to the card processor, in integer minor units."""
    amount = charge_amount(booking, strategy.charge_type_for(booking), voucher_discount)
    return to_minor_units(amount, booking.currency)


def recorded_charge_type(booking, strategy: ChargingStrategy) -> str:
    """Charge type stamped on the booking when its intent was created."""
    recorded = (booking.payment_info or {}).get("charge_type")
    return recorded or strategy.charge_type_for(booking)
