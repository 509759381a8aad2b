"""
Card data redaction

Last line of defence for logs and error payloads: anything that looks like
a card field or a card number is masked before it reaches a sink. This is
independent of the card vault and applied to every log handler through
``CardDataRedactionFilter``.
"""

import logging
import re
from typing import Any

REDACTED = '[REDACTED]'
MASKED_CARD_NUMBER = '****-****-****-****'

CARD_FIELD_NAMES = frozenset({
    'cardnumber',
    'card_number',
    'number',
    'securitycode',
    'security_code',
    'cvc',
    'cvv',
    'pan',
    'paymentcardinfo',
    'payment_card_info',
    'paymentcard',
    'payment_card',
})

# 13-19 contiguous digits, or 4-4-4-x / 4-6-5 groups separated by a space or dash.
_CARD_NUMBER_PATTERNS = (
    re.compile(r'(?<!\d)\d{13,19}(?!\d)'),
    re.compile(r'(?<!\d)\d{4}([ -])\d{4}\1\d{4}\1\d{1,7}(?!\d)'),
    re.compile(r'(?<!\d)\d{4}([ -])\d{6}\1\d{4,5}(?!\d)'),
)
_SECURITY_CODE_PATTERN = re.compile(
    r'("?(?:cvc|cvv|security_?code)"?\s*[:=]\s*"?)\d{3,4}("?)',
    re.IGNORECASE,
)

DEFAULT_MAX_LENGTH = 2000


def is_card_field(name: Any) -> bool:
    return isinstance(name, str) and name.lower() in CARD_FIELD_NAMES


def redact_card_from_string(value: str, max_length: int = DEFAULT_MAX_LENGTH) -> str:
    """Mask card numbers and security codes inside free text."""
    if not value:
        return value
    redacted = value
    for pattern in _CARD_NUMBER_PATTERNS:
        redacted = pattern.sub(MASKED_CARD_NUMBER, redacted)
    redacted = _SECURITY_CODE_PATTERN.sub(rf'\g<1>{REDACTED}\g<2>', redacted)
    if max_length and len(redacted) > max_length:
        redacted = redacted[:max_length] + '...'
    return redacted


def redact_card_data(value: Any) -> Any:
    """
    Return a copy of ``value`` with card fields replaced and card numbers masked.

    Dicts, lists and tuples are walked recursively; strings are scanned
    for card numbers. Other values are returned unchanged.
    """
    if isinstance(value, dict):
        return {
            key: REDACTED if is_card_field(key) else redact_card_data(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return type(value)(redact_card_data(item) for item in value)
    if isinstance(value, str):
        return redact_card_from_string(value, max_length=0)
    return value


class CardDataRedactionFilter(logging.Filter):
    """
    Logging filter that masks card data in the message and its arguments.

    Tracebacks are folded into the message so they pass through the same
    masking before any formatter sees them.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            message = str(record.msg)
        if record.exc_info:
            trace = logging.Formatter().formatException(record.exc_info)
            message = f"{message}\n{trace}"
            record.exc_info = None
            record.exc_text = None
        record.msg = redact_card_from_string(message, max_length=0)
        record.args = None
        return True
