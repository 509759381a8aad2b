"""Duffel flight adapter and webhook signature verification."""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
from decimal import Decimal, InvalidOperation

import requests
from django.conf import settings

from shared.infrastructure.redaction import redact_card_from_string
from shared.infrastructure.retry import is_retryable_error, retry_with_backoff

from .base import InventoryProvider, Offer, OrderPayment, ProviderError, ProviderOrder
from .choices import ProductType, Provider

logger = logging.getLogger(__name__)

DUFFEL_VERSION = "v2"
SIGNATURE_HEADER = "HTTP_X_DUFFEL_SIGNATURE"


class WebhookSignatureError(ProviderError):
    pass


def construct_webhook_event(
    payload: bytes, signature: str, *, secret: str | None = None, now: float | None = None
) -> dict:
    """
    Verify an ``X-Duffel-Signature`` header and return the decoded event.

    The header reads ``t=<unix time>,v1=<hex digest>``; the digest is an
    HMAC-SHA256 of ``"<t>.<raw body>"`` keyed with the webhook secret.
    """
    secret = secret if secret is not None else settings.DUFFEL_WEBHOOK_SECRET
    if not secret:
        raise WebhookSignatureError("Duffel webhook secret is not configured")

    parts = dict(item.split("=", 1) for item in (signature or "").split(",") if "=" in item)
    timestamp, digest = parts.get("t", ""), parts.get("v1", "")
    if not timestamp.isdigit() or not digest:
        raise WebhookSignatureError("Malformed Duffel signature header")

    tolerance = getattr(settings, "DUFFEL_WEBHOOK_TOLERANCE", 300)
    if abs((now or time.time()) - int(timestamp)) > tolerance:
        raise WebhookSignatureError("Duffel signature timestamp outside the tolerance window")

    expected = hmac.new(secret.encode(), timestamp.encode() + b"." + payload, hashlib.sha256).hexdigest()
    if not hmac.compare_digest(expected, digest):
        raise WebhookSignatureError("Duffel signature does not match")

    try:
        return json.loads(payload)
    except ValueError as e:
        raise WebhookSignatureError("Duffel webhook body is not JSON") from e


class DuffelProvider(InventoryProvider):
    code = Provider.DUFFEL

    def __init__(self, *, access_token: str | None = None, base_url: str | None = None):
        self.access_token = access_token if access_token is not None else settings.DUFFEL_ACCESS_TOKEN
        self.base_url = (base_url or settings.DUFFEL_BASE_URL).rstrip("/")
        self.timeout = getattr(settings, "PROVIDER_REQUEST_TIMEOUT", 30)

    def _request(self, method: str, path: str, **kwargs) -> dict:
        if not self.access_token:
            raise ProviderError("Duffel API key is not configured")

        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Duffel-Version": DUFFEL_VERSION,
            "Authorization": f"Bearer {self.access_token}",
        }
        try:
            response = requests.request(
                method, f"{self.base_url}{path}", headers=headers, timeout=self.timeout, **kwargs
            )
        except requests.RequestException as e:
            raise ProviderError(f"Duffel request failed: {e}", retryable=is_retryable_error(e)) from e

        if response.status_code >= 400:
            try:
                errors = response.json().get("errors") or []
                detail = ", ".join(e.get("message") or e.get("title", "") for e in errors)
            except ValueError:
                detail = response.text
            raise ProviderError(
                f"Duffel API error {response.status_code}: {redact_card_from_string(detail, max_length=500)}",
                status_code=response.status_code,
                retryable=response.status_code >= 500,
            )
        return response.json() if response.content else {}

    def search_offers(self, criteria: dict) -> list[Offer]:
        body = {
            "data": {
                "slices": criteria.get("slices", []),
                "passengers": criteria.get("passengers") or [{"type": "adult"}],
                "cabin_class": criteria.get("cabin_class", "economy"),
            }
        }
        product_type = (
            ProductType.FLIGHT_DOMESTIC if criteria.get("domestic") else ProductType.FLIGHT_INTERNATIONAL
        )
        payload = retry_with_backoff(
            lambda: self._request("POST", "/air/offer_requests?return_offers=true", json=body),
            retryable=lambda e: getattr(e, "retryable", False),
            description="Duffel offer search",
        )

        offers = []
        for offer in payload.get("data", {}).get("offers", []):
            try:
                total = Decimal(str(offer.get("total_amount")))
            except InvalidOperation:
                logger.warning(f"Skipping Duffel offer {offer.get('id')} without a usable price")
                continue
            offers.append(
                Offer(
                    offer_id=offer["id"],
                    provider=self.code,
                    product_type=product_type,
                    base_price=total,
                    currency=offer.get("total_currency", ""),
                    data=offer,
                )
            )
        return offers

    def create_order(
        self, offer_id: str, guests: list[dict], payment: OrderPayment, *, product_type: str = ""
    ) -> ProviderOrder:
        # The customer has already paid us, so Duffel is settled from the agency balance.
        order_payment = {"type": "balance"}
        if payment.amount is not None:
            order_payment["amount"] = str(payment.amount)
            order_payment["currency"] = payment.currency

        body = {
            "data": {
                "type": "instant",
                "selected_offers": [offer_id],
                "passengers": [
                    {
                        "id": guest.get("id", ""),
                        "title": guest.get("title", "mr"),
                        "gender": guest.get("gender", "m"),
                        "given_name": guest.get("first_name", ""),
                        "family_name": guest.get("last_name", ""),
                        "born_on": guest.get("born_on", ""),
                        "email": guest.get("email", ""),
                        "phone_number": guest.get("phone", ""),
                    }
                    for guest in guests
                ],
                "payments": [order_payment],
            }
        }

        data = self._request("POST", "/air/orders", json=body).get("data", {})
        order_id = data.get("id")
        if not order_id:
            raise ProviderError("Duffel response did not contain an order id")
        logger.info(f"Duffel order {order_id} created for offer {offer_id}")
        return ProviderOrder(order_id=order_id, data=data)

    def cancel_order(self, provider_booking_id: str, *, product_type: str = "") -> dict:
        def _cancel():
            quote = self._request(
                "POST", "/air/order_cancellations", json={"data": {"order_id": provider_booking_id}}
            ).get("data", {})
            return self._request(
                "POST", f"/air/order_cancellations/{quote['id']}/actions/confirm"
            ).get("data", {})

        result = retry_with_backoff(
            _cancel,
            retryable=lambda e: getattr(e, "retryable", False),
            initial_delay=2.0,
            description=f"Duffel cancel {provider_booking_id}",
        )
        logger.info(f"Duffel order {provider_booking_id} cancelled")
        return result
