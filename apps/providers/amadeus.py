"""Amadeus hotel and car rental (transfer) adapter."""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation

import requests
from django.conf import settings
from django.core.cache import cache

from apps.payments.cards import CardDetails
from shared.infrastructure.redaction import redact_card_from_string
from shared.infrastructure.retry import is_retryable_error, retry_with_backoff

from .base import InventoryProvider, Offer, OrderPayment, ProviderError, ProviderOrder
from .choices import ProductType, Provider

logger = logging.getLogger(__name__)

TOKEN_CACHE_KEY = "amadeus:access_token"
# Refresh the OAuth token this many seconds before Amadeus expires it.
TOKEN_REFRESH_MARGIN = 300


class AmadeusProvider(InventoryProvider):
    code = Provider.AMADEUS

    def __init__(self, *, api_key: str | None = None, api_secret: str | None = None, base_url: str | None = None):
        self.api_key = api_key if api_key is not None else settings.AMADEUS_API_KEY
        self.api_secret = api_secret if api_secret is not None else settings.AMADEUS_API_SECRET
        self.base_url = (base_url or settings.AMADEUS_BASE_URL).rstrip("/")
        self.timeout = getattr(settings, "PROVIDER_REQUEST_TIMEOUT", 30)

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    def _access_token(self) -> str:
        token = cache.get(TOKEN_CACHE_KEY)
        if token:
            return token
        if not self.api_key or not self.api_secret:
            raise ProviderError("Amadeus API credentials not configured")

        try:
            response = requests.post(
                f"{self.base_url}/v1/security/oauth2/token",
                data={"grant_type": "client_credentials"},
                auth=(self.api_key, self.api_secret),
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise ProviderError(f"Failed to authenticate with Amadeus: {e}", retryable=is_retryable_error(e)) from e

        try:
            payload = response.json()
            token = payload["access_token"]
            expires_in = int(payload.get("expires_in", 1799))
        except (ValueError, KeyError, TypeError) as e:
            raise ProviderError("Amadeus returned an unusable authentication response") from e
        cache.set(TOKEN_CACHE_KEY, token, max(expires_in - TOKEN_REFRESH_MARGIN, 60))
        return token

    def _request(self, method: str, path: str, **kwargs) -> dict:
        headers = {"Authorization": f"Bearer {self._access_token()}", "Accept": "application/json"}
        try:
            response = requests.request(
                method, f"{self.base_url}{path}", headers=headers, timeout=self.timeout, **kwargs
            )
        except requests.RequestException as e:
            raise ProviderError(f"Amadeus request failed: {e}", retryable=is_retryable_error(e)) from e

        if response.status_code >= 400:
            detail = redact_card_from_string(response.text, max_length=500)
            raise ProviderError(
                f"Amadeus API error {response.status_code}: {detail}",
                status_code=response.status_code,
                retryable=response.status_code >= 500,
            )
        if response.status_code == 204 or not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise ProviderError("Amadeus returned a response that is not JSON") from e

    # ------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------

    def search_offers(self, criteria: dict) -> list[Offer]:
        params = {
            "hotelIds": ",".join(criteria.get("hotel_ids", [])),
            "checkInDate": criteria.get("check_in"),
            "checkOutDate": criteria.get("check_out"),
            "adults": criteria.get("adults", 1),
            "roomQuantity": criteria.get("rooms", 1),
        }
        if criteria.get("currency"):
            params["currency"] = criteria["currency"]

        payload = retry_with_backoff(
            lambda: self._request("GET", "/v3/shopping/hotel-offers", params=params),
            retryable=lambda e: getattr(e, "retryable", False),
            description="Amadeus hotel search",
        )

        offers = []
        for hotel in payload.get("data", []):
            for offer in hotel.get("offers", []):
                price = offer.get("price", {})
                try:
                    total = Decimal(str(price.get("total")))
                except InvalidOperation:
                    logger.warning(f"Skipping Amadeus offer {offer.get('id')} without a usable price")
                    continue
                offers.append(
                    Offer(
                        offer_id=offer["id"],
                        provider=self.code,
                        product_type=ProductType.HOTEL,
                        base_price=total,
                        currency=price.get("currency", ""),
                        data={"hotel": hotel.get("hotel", {}), "offer": offer},
                    )
                )
        return offers

    @staticmethod
    def _payment_card(card: CardDetails) -> dict:
        return {
            "paymentCardInfo": {
                "vendorCode": card.vendor_code,
                "cardNumber": card.card_number.replace(" ", ""),
                "expiryDate": card.expiry_date,
                "holderName": card.holder_name,
                "securityCode": card.security_code,
            }
        }

    def create_order(
        self, offer_id: str, guests: list[dict], payment: OrderPayment, *, product_type: str = ""
    ) -> ProviderOrder:
        if payment.method != OrderPayment.CARD or payment.card is None:
            raise ProviderError("Amadeus orders require a payment card")

        if product_type == ProductType.CAR_RENTAL:
            return self._create_transfer_order(offer_id, guests, payment.card)
        if product_type in ("", ProductType.HOTEL):
            return self._create_hotel_order(offer_id, guests, payment.card)
        raise ProviderError(f"Amadeus cannot book {product_type} products")

    def _create_hotel_order(self, offer_id: str, guests: list[dict], card: CardDetails) -> ProviderOrder:
        body = {
            "data": {
                "type": "hotel-order",
                "guests": [
                    {
                        "tid": index,
                        "title": guest.get("title", "MR"),
                        "firstName": guest.get("first_name", ""),
                        "lastName": guest.get("last_name", ""),
                        "phone": guest.get("phone", ""),
                        "email": guest.get("email", ""),
                    }
                    for index, guest in enumerate(guests, start=1)
                ],
                "roomAssociations": [
                    {"guestReferences": [{"guestReference": "1"}], "hotelOfferId": offer_id}
                ],
                "payment": {"method": "CREDIT_CARD", "paymentCard": self._payment_card(card)},
            }
        }

        payload = self._request("POST", "/v2/booking/hotel-orders", json=body)
        data = payload.get("data", {})
        order_id = data.get("id")
        if not order_id:
            bookings = data.get("hotelBookings") or []
            order_id = bookings[0].get("id") if bookings else None
        if not order_id:
            raise ProviderError("Amadeus response did not contain an order id")

        logger.info(f"Amadeus hotel order {order_id} created for offer {offer_id}")
        return ProviderOrder(order_id=order_id, data=data)

    def _create_transfer_order(self, offer_id: str, guests: list[dict], card: CardDetails) -> ProviderOrder:
        """Car rentals are booked through the Amadeus transfer ordering API."""
        body = {
            "data": {
                "offerId": offer_id,
                "passengers": [
                    {
                        "name": {
                            "title": guest.get("title", "MR"),
                            "firstName": guest.get("first_name", ""),
                            "lastName": guest.get("last_name", ""),
                        },
                        "contact": {
                            "phone": guest.get("phone", ""),
                            "email": guest.get("email", ""),
                        },
                    }
                    for guest in guests
                ],
                "payments": [
                    {
                        "method": "CREDIT_CARD",
                        "card": {
                            "vendorCode": card.vendor_code,
                            "cardNumber": card.card_number.replace(" ", ""),
                            "expiryDate": card.expiry_date,
                        },
                    }
                ],
            }
        }

        data = self._request("POST", "/v1/ordering/transfer-orders", json=body).get("data", {})
        order_id = data.get("id")
        if not order_id:
            raise ProviderError("Amadeus response did not contain a transfer order id")

        logger.info(f"Amadeus transfer order {order_id} created for offer {offer_id}")
        return ProviderOrder(order_id=order_id, data=data)

    def cancel_order(self, provider_booking_id: str, *, product_type: str = "") -> dict:
        if product_type == ProductType.CAR_RENTAL:
            method, path = "POST", f"/v1/ordering/transfer-orders/{provider_booking_id}/transfers/cancellation"
        else:
            method, path = "DELETE", f"/v2/booking/hotel-orders/{provider_booking_id}"

        payload = retry_with_backoff(
            lambda: self._request(method, path),
            retryable=lambda e: getattr(e, "retryable", False),
            initial_delay=2.0,
            description=f"Amadeus cancel {provider_booking_id}",
        )
        logger.info(f"Amadeus order {provider_booking_id} cancelled")
        return payload
