"""Tests for card data redaction in logs and payloads."""

import logging
import re
import sys

from shared.infrastructure.redaction import (
    MASKED_CARD_NUMBER,
    REDACTED,
    CardDataRedactionFilter,
    redact_card_data,
    redact_card_from_string,
)

CARD_DIGITS = re.compile(r"\d{13,19}")


def test_card_numbers_in_text_are_masked():
    text = "Order failed for 4151289722471370 and 4151 2897 2247 1370 and 3782-822463-10005"

    redacted = redact_card_from_string(text)

    assert redacted.count(MASKED_CARD_NUMBER) == 3
    assert not CARD_DIGITS.search(redacted.replace(" ", "").replace("-", ""))


def test_security_code_is_masked():
    assert redact_card_from_string('{"securityCode": "123"}') == f'{{"securityCode": "{REDACTED}"}}'


def test_short_numbers_survive():
    assert redact_card_from_string("Booking EBT-20261019-000042 total 500") == (
        "Booking EBT-20261019-000042 total 500"
    )


def test_long_text_is_truncated():
    assert redact_card_from_string("x" * 50, max_length=10) == "x" * 10 + "..."


def test_nested_payloads_are_redacted():
    payload = {
        "offer_id": "offer-1",
        "payment": {"card": {"cardNumber": "4151289722471370", "holderName": "ADA"}},
        "notes": ["card 4151289722471370"],
        "cvv": "123",
    }

    redacted = redact_card_data(payload)

    assert redacted["offer_id"] == "offer-1"
    assert redacted["payment"]["card"]["cardNumber"] == REDACTED
    assert redacted["payment"]["card"]["holderName"] == "ADA"
    assert redacted["notes"] == [f"card {MASKED_CARD_NUMBER}"]
    assert redacted["cvv"] == REDACTED
    assert payload["cvv"] == "123"


def test_log_filter_masks_message_args_and_traceback():
    try:
        raise ValueError("bad card 4151289722471370")
    except ValueError:
        record = logging.LogRecord(
            "apps.payments", logging.ERROR, __file__, 1,
            "Provider rejected %s", ("4151289722471370",), sys.exc_info(),
        )

    assert CardDataRedactionFilter().filter(record) is True
    assert "4151289722471370" not in record.getMessage()
    assert "ValueError" in record.getMessage()
    assert record.exc_info is None
