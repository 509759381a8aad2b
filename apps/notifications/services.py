"""Email notifications for booking lifecycle events."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.conf import settings  # type: ignore
from django.core.mail import send_mail  # type: ignore
from django.template.loader import render_to_string  # type: ignore
from django.utils.html import strip_tags  # type: ignore

if TYPE_CHECKING:  # pragma: no cover
    from apps.bookings.models import Booking, CancellationRequest

logger = logging.getLogger(__name__)

COMPANY_NAME = "EBT Travel"


# ============================================================================
# EMAIL NOTIFICATIONS
# ============================================================================

def send_email_notification(
    recipient_email: str,
    subject: str,
    template_name: str | None,
    context: dict,
    *,
    html_message: str | None = None,
) -> bool:
    """
    Send one email; never raises.

    Args:
        recipient_email: Recipient address
        subject: Subject line
        template_name: Optional Django template path
        context: Template context; ``message`` is used when there is no template
        html_message: Pre-rendered HTML body (optional)

    Returns:
        bool: True when the email was handed to the mail backend
    """
    if not recipient_email:
        logger.warning(f"Skipping email without recipient: {subject}")
        return False

    try:
        if html_message:
            text_message = strip_tags(html_message)
        elif template_name:
            html_message = render_to_string(template_name, context)
            text_message = strip_tags(html_message)
        else:
            text_message = context.get("message", "")
            html_message = None

        send_mail(
            subject=subject,
            message=text_message,
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[recipient_email],
            html_message=html_message,
            fail_silently=False,
        )

        logger.info(f"Email sent successfully to {recipient_email}: {subject}")
        return True

    except Exception as e:
        logger.error(f"Failed to send email to {recipient_email}: {e}", exc_info=True)
        return False


def _guest_name(booking: "Booking") -> str:
    info = booking.passenger_info or {}
    return info.get("firstName") or info.get("name") or "traveller"


def send_booking_confirmation_email(booking: "Booking") -> bool:
    """Booking confirmed with the provider."""
    subject = f"Booking {booking.reference} confirmed"

    html_message = f"""
    <html>
    <body>
        <h2>Hello {_guest_name(booking)},</h2>
        <p>Your booking is confirmed.</p>

        <h3>Booking details:</h3>
        <ul>
            <li><strong>Reference:</strong> {booking.reference}</li>
            <li><strong>Provider reference:</strong> {booking.provider_booking_id}</li>
            <li><strong>Total:</strong> {booking.amount_due} {booking.currency}</li>
        </ul>

        <p>{booking.cancellation_policy_snapshot}</p>

        <p>Kind regards,<br>{COMPANY_NAME}</p>
    </body>
    </html>
    """

    return send_email_notification(
        recipient_email=booking.owner_email,
        subject=subject,
        template_name=None,
        context={},
        html_message=html_message,
    )


def send_booking_cancelled_email(booking: "Booking", *, refund_failed: bool = False) -> bool:
    subject = f"Booking {booking.reference} cancelled"

    if booking.refund_amount and booking.refund_amount > 0:
        refund_line = f"A refund of {booking.refund_amount} {booking.currency} is being processed."
        if refund_failed:
            refund_line += " Our team will contact you to complete it."
    elif booking.cancelled_by == "provider":
        refund_line = "The airline cancelled this booking. Our team will contact you about your refund."
    else:
        refund_line = "No refund applies to this booking."

    html_message = f"""
    <html>
    <body>
        <h2>Hello {_guest_name(booking)},</h2>
        <p>Your booking {booking.reference} has been cancelled.</p>
        <p>{refund_line}</p>
        <p>Kind regards,<br>{COMPANY_NAME}</p>
    </body>
    </html>
    """

    return send_email_notification(
        recipient_email=booking.owner_email,
        subject=subject,
        template_name=None,
        context={},
        html_message=html_message,
    )


def send_cancellation_request_received_email(booking: "Booking") -> bool:
    subject = f"Cancellation request received for {booking.reference}"
    message = (
        f"Hello {_guest_name(booking)},\n\n"
        f"We received your request to cancel booking {booking.reference}. "
        f"{settings.CANCELLATION_SLA_MESSAGE}\n\n"
        f"Kind regards,\n{COMPANY_NAME}"
    )
    return send_email_notification(booking.owner_email, subject, None, {"message": message})


def send_cancellation_request_rejected_email(request: "CancellationRequest") -> bool:
    booking = request.booking
    subject = f"Cancellation request for {booking.reference}"
    message = (
        f"Hello {_guest_name(booking)},\n\n"
        f"We could not approve the cancellation of booking {booking.reference}.\n"
        f"Reason: {request.rejection_reason}\n\n"
        f"Your booking remains confirmed. Contact {settings.SUPPORT_EMAIL} with any questions.\n\n"
        f"Kind regards,\n{COMPANY_NAME}"
    )
    return send_email_notification(booking.owner_email, subject, None, {"message": message})


def send_order_failure_alert(booking: "Booking", error: str) -> bool:
    """Operator alert: the customer paid but no provider order exists."""
    subject = f"[ACTION REQUIRED] Provider order failed for paid booking {booking.reference}"
    message = (
        f"Booking {booking.reference} ({booking.id}) was paid "
        f"({booking.payment_reference}) but the {booking.provider} order could not be created.\n"
        f"Error: {error}\n"
        f"The reconciliation job will retry; cancel and refund manually if it keeps failing."
    )
    return send_email_notification(settings.SUPPORT_EMAIL, subject, None, {"message": message})
