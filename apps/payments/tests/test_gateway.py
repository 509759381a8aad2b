"""Tests for the Stripe settlement gateway."""

import hashlib
import hmac
import json
import time
from types import SimpleNamespace
from unittest.mock import patch

import pytest
import stripe

from apps.payments.gateway import PaymentGatewayError, StripeSettlementGateway, WebhookSignatureError

SECRET = "whsec_unit_test"


def signed_header(payload: bytes, secret: str = SECRET, timestamp: int | None = None) -> str:
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.".encode() + payload
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


@pytest.fixture
def gateway():
    return StripeSettlementGateway(api_key="sk_test_unit", webhook_secret=SECRET)


def test_payment_intent_is_created_in_minor_units(gateway):
    intent = SimpleNamespace(
        id="pi_1", client_secret="pi_1_secret", amount=4500, currency="gbp",
        status="requires_payment_method", metadata={"bookingId": "b-1"},
    )
    with patch("apps.payments.gateway.stripe.PaymentIntent.create", return_value=intent) as create:
        result = gateway.create_payment_intent(4500, "GBP", {"bookingId": "b-1", "version": 3}, idempotency_key="k-1")

    kwargs = create.call_args.kwargs
    assert kwargs["amount"] == 4500
    assert kwargs["currency"] == "gbp"
    assert kwargs["metadata"] == {"bookingId": "b-1", "version": "3"}
    assert kwargs["idempotency_key"] == "k-1"
    assert result.client_secret == "pi_1_secret"


def test_non_positive_amount_is_refused_before_calling_stripe(gateway):
    with patch("apps.payments.gateway.stripe.PaymentIntent.create") as create:
        with pytest.raises(PaymentGatewayError):
            gateway.create_payment_intent(0, "GBP", {})

    create.assert_not_called()


def test_stripe_failure_becomes_gateway_error(gateway):
    with patch("apps.payments.gateway.stripe.PaymentIntent.create", side_effect=stripe.StripeError("boom")):
        with pytest.raises(PaymentGatewayError) as excinfo:
            gateway.create_payment_intent(100, "GBP", {})

    assert "boom" not in excinfo.value.message


def test_refund_is_not_retried(gateway):
    with patch("apps.payments.gateway.stripe.Refund.create", side_effect=stripe.StripeError("timeout")) as create:
        with pytest.raises(PaymentGatewayError):
            gateway.create_refund("pi_1", 4500, "requested_by_customer")

    assert create.call_count == 1


def test_refund_result(gateway):
    refund = SimpleNamespace(id="re_1", amount=4500, status="pending")
    with patch("apps.payments.gateway.stripe.Refund.create", return_value=refund) as create:
        result = gateway.create_refund("pi_1", 4500, "requested_by_customer")

    assert create.call_args.kwargs["payment_intent"] == "pi_1"
    assert result.id == "re_1"


def test_superseded_intent_is_cancelled(gateway):
    with patch("apps.payments.gateway.stripe.PaymentIntent.cancel") as cancel:
        gateway.cancel_payment_intent("pi_old")

    assert cancel.call_args.args == ("pi_old",)
    assert cancel.call_args.kwargs["cancellation_reason"] == "abandoned"


def test_cancel_failure_becomes_gateway_error(gateway):
    error = stripe.InvalidRequestError("already succeeded", param=None)
    with patch("apps.payments.gateway.stripe.PaymentIntent.cancel", side_effect=error):
        with pytest.raises(PaymentGatewayError):
            gateway.cancel_payment_intent("pi_paid")


def test_signed_webhook_is_parsed(gateway):
    payload = json.dumps({"id": "evt_1", "type": "payment_intent.succeeded", "data": {"object": {}}}).encode()

    event = gateway.construct_webhook_event(payload, signed_header(payload))

    assert event["type"] == "payment_intent.succeeded"


def test_webhook_with_wrong_secret_is_rejected(gateway):
    payload = json.dumps({"id": "evt_1", "type": "payment_intent.succeeded"}).encode()

    with pytest.raises(WebhookSignatureError):
        gateway.construct_webhook_event(payload, signed_header(payload, secret="whsec_other"))


def test_tampered_webhook_is_rejected(gateway):
    payload = json.dumps({"id": "evt_1", "amount": 100}).encode()
    header = signed_header(payload)

    with pytest.raises(WebhookSignatureError):
        gateway.construct_webhook_event(payload.replace(b"100", b"999"), header)
