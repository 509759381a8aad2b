"""
Event Handlers

Credit loyalty points once a booking's payment has been received. They
run after the payment transaction has committed.
"""

import logging

from apps.bookings.domain.events import PaymentReceived

from .services import LoyaltyService

logger = logging.getLogger(__name__)


def on_payment_received(event: PaymentReceived):
    LoyaltyService().earn_points_from_booking(
        event.user_id,
        event.booking_id,
        event.product_type,
        event.total_amount,
        event.currency,
    )


EVENT_HANDLERS = {
    PaymentReceived: on_payment_received,
}


def register_handlers(bus):
    for event_type, handler in EVENT_HANDLERS.items():
        bus.register_event_handler(event_type, handler)
    logger.debug(f"Registered {len(EVENT_HANDLERS)} loyalty handlers")
