"""
Booking Domain Events

Published after the transaction that produced them commits. Handlers
(notification emails) are side effects: their failures are logged by the
message bus and never undo a booking transition.
"""

from dataclasses import dataclass
from decimal import Decimal

from shared.domain.base import DomainEvent


@dataclass
class BookingCreated(DomainEvent):
    booking_id: str
    reference: str
    user_id: str


@dataclass
class PaymentIntentIssued(DomainEvent):
    booking_id: str
    payment_intent_id: str
    charge_type: str
    amount_minor_units: int


@dataclass
class BookingConfirmed(DomainEvent):
    """
    Event: provider order exists and the booking is CONFIRMED

    Triggers:
    - Booking confirmation email
    """
    booking_id: str
    provider_booking_id: str


@dataclass
class ProviderOrderFailed(DomainEvent):
    """
    Event: payment captured but the provider order could not be created

    Triggers:
    - Operator alert email for manual reconciliation
    """
    booking_id: str
    reference: str
    error: str


@dataclass
class BookingCancelled(DomainEvent):
    """
    Event: booking moved to CANCELLED

    Triggers:
    - Cancellation email with the refund amount
    """
    booking_id: str
    cancelled_by: str
    refund_amount: Decimal | None = None
    refund_failed: bool = False


@dataclass
class CancellationRequested(DomainEvent):
    """
    Event: post-deadline cancellation queued for admin review

    Triggers:
    - Acknowledgement email with the review time frame
    """
    booking_id: str
    request_id: str


@dataclass
class CancellationRequestRejected(DomainEvent):
    booking_id: str
    request_id: str
    reason: str


@dataclass
class PaymentReceived(DomainEvent):
    """
    Event: the booking's payment intent succeeded

    Triggers:
    - Loyalty points for the booking
    """
    booking_id: str
    user_id: str
    product_type: str
    total_amount: Decimal
    currency: str
