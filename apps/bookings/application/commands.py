"""
Booking Commands

Plain data payloads handed to the command handlers. The API layer builds
them after normalising the request body; the handlers never see raw
client payloads.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from apps.payments.cards import CardDetails


@dataclass
class CreateBookingCommand:
    """Command to create a PENDING booking from a searched offer"""
    user_id: str
    user_email: str
    product_type: str
    provider: str
    offer_id: str
    base_price: Decimal
    provider_currency: str
    currency: str
    guests: list = field(default_factory=list)
    passenger_info: dict = field(default_factory=dict)
    card: Optional[CardDetails] = None
    cancellation_deadline: Optional[datetime] = None
    cancellation_policy: str = ''
    policy_accepted_at: Optional[datetime] = None
    client_ip: Optional[str] = None
    user_agent: str = ''
    extra: dict = field(default_factory=dict)


@dataclass
class IssuePaymentIntentCommand:
    booking_id: str
    user_id: str
    voucher_code: str = ''


@dataclass
class GuestPaymentIntentCommand:
    """Pay for a booking identified by reference plus contact email"""
    reference: str
    email: str
    voucher_code: str = ''


@dataclass
class CancelBookingCommand:
    booking_id: str
    actor_id: str
    is_admin: bool = False


@dataclass
class ProcessCancellationRequestCommand:
    """Admin decision on a post-deadline cancellation request"""
    request_id: str
    admin_id: str
    action: str
    refund_amount: Optional[Decimal] = None
    admin_notes: str = ''
    rejection_reason: str = ''


@dataclass
class PaymentIntentResult:
    booking_id: str
    reference: str
    payment_intent_id: str
    client_secret: str
    amount_minor_units: int
    currency: str
    charge_type: str
    voucher_discount: Decimal = Decimal('0')


@dataclass
class CancellationOutcome:
    """
    Result of a customer cancellation

    ``status`` is CANCELLED when the booking was cancelled immediately and
    REQUEST_PENDING when it was queued for admin review.
    """
    booking_id: str
    reference: str
    status: str
    message: str
    refund_amount: Optional[Decimal] = None
    refund_failed: bool = False
    cancellation_request_id: Optional[str] = None
