"""Stripe settlement gateway.

Intents and refunds are never retried here: an ambiguous failure on a
money-moving call surfaces to the caller instead of risking a double
charge. Stripe's idempotency keys cover safe replays.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

import stripe
from django.conf import settings

logger = logging.getLogger(__name__)


class PaymentGatewayError(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class WebhookSignatureError(PaymentGatewayError):
    pass


@dataclass(frozen=True)
class PaymentIntent:
    id: str
    client_secret: str
    amount: int
    currency: str
    status: str
    metadata: dict = field(default_factory=dict)


@dataclass(frozen=True)
class Refund:
    id: str
    amount: int
    status: str


class SettlementGateway(ABC):
    @abstractmethod
    def create_payment_intent(
        self, amount_minor_units: int, currency: str, metadata: dict, *, idempotency_key: str | None = None
    ) -> PaymentIntent:
        pass

    @abstractmethod
    def cancel_payment_intent(self, payment_intent_id: str) -> None:
        pass

    @abstractmethod
    def create_refund(self, payment_intent_id: str, amount_minor_units: int, reason: str) -> Refund:
        pass

    @abstractmethod
    def construct_webhook_event(self, payload: bytes, signature: str) -> dict:
        pass


class StripeSettlementGateway(SettlementGateway):
    def __init__(self, api_key: str | None = None, webhook_secret: str | None = None):
        self.api_key = api_key or settings.STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret or settings.STRIPE_WEBHOOK_SECRET

    def create_payment_intent(
        self, amount_minor_units: int, currency: str, metadata: dict, *, idempotency_key: str | None = None
    ) -> PaymentIntent:
        if amount_minor_units <= 0:
            raise PaymentGatewayError("Payment amount must be positive")

        try:
            intent = stripe.PaymentIntent.create(
                amount=amount_minor_units,
                currency=currency.lower(),
                metadata={key: str(value) for key, value in metadata.items()},
                automatic_payment_methods={"enabled": True},
                api_key=self.api_key,
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe payment intent creation failed: {e.user_message or e}")
            raise PaymentGatewayError("Payment processor is unavailable. Please try again.") from e

        logger.info(f"Stripe payment intent {intent.id} created for {amount_minor_units} {currency}")
        return PaymentIntent(
            id=intent.id,
            client_secret=intent.client_secret,
            amount=intent.amount,
            currency=intent.currency,
            status=intent.status,
            metadata=dict(intent.metadata or {}),
        )

    def cancel_payment_intent(self, payment_intent_id: str) -> None:
        try:
            stripe.PaymentIntent.cancel(
                payment_intent_id,
                cancellation_reason="abandoned",
                api_key=self.api_key,
            )
        except stripe.StripeError as e:
            raise PaymentGatewayError(f"Payment intent {payment_intent_id} could not be cancelled") from e
        logger.info(f"Stripe payment intent {payment_intent_id} cancelled")

    def create_refund(self, payment_intent_id: str, amount_minor_units: int, reason: str) -> Refund:
        if amount_minor_units <= 0:
            raise PaymentGatewayError("Refund amount must be positive")

        try:
            refund = stripe.Refund.create(
                payment_intent=payment_intent_id,
                amount=amount_minor_units,
                reason=reason,
                api_key=self.api_key,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe refund for {payment_intent_id} failed: {e.user_message or e}")
            raise PaymentGatewayError("Refund could not be created.") from e

        logger.info(f"Stripe refund {refund.id} created for {payment_intent_id}: {amount_minor_units}")
        return Refund(id=refund.id, amount=refund.amount, status=refund.status)

    def construct_webhook_event(self, payload: bytes, signature: str) -> dict:
        try:
            stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as e:
            raise WebhookSignatureError("Invalid webhook payload or signature") from e
        # Signature verified; plain JSON keeps handlers independent of the SDK object model.
        return json.loads(payload)
