"""Typed errors raised by the booking core.

The HTTP layer maps each class to a status code; ``message`` is always
safe to show to the customer.
"""

from __future__ import annotations


class BookingError(Exception):
    status_code = 400
    default_message = "The booking request could not be completed."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(BookingError):
    status_code = 404
    default_message = "Not found."


class MarkupConfigNotFound(NotFound):
    default_message = "Pricing is not available for this product and currency."


class InvalidState(BookingError):
    status_code = 400


class Forbidden(BookingError):
    status_code = 403
    default_message = "You do not have permission to modify this booking."


class UpstreamFailure(BookingError):
    """A provider or the payment processor failed before money or inventory moved."""

    status_code = 502
    default_message = "A travel partner is temporarily unavailable. Please try again or contact support."

    def __init__(self, message: str | None = None, *, status_code: int | None = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class ConcurrencyConflict(BookingError):
    status_code = 409
    default_message = "The booking was modified by another request. Please retry."
