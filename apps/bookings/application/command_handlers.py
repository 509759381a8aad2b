"""
Booking Command Handlers

These are the use cases of the booking lifecycle. Each handler receives
its collaborators (pricing, gateway, providers, vouchers, charging
strategy) at construction and runs its state changes inside a
DjangoUnitOfWork so events are only published after commit.

Failure handling follows where money or inventory has already moved:
- Anything that fails before an irreversible external call aborts and
  leaves the booking untouched.
- A refund failing after the provider cancellation succeeded is logged
  and the booking is still cancelled with refund_status PROCESSING.
- A provider order failing after payment leaves the booking unconfirmed
  and flagged in provider_data for reconciliation.
"""

from decimal import Decimal
import logging

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from shared.application.uow import DjangoUnitOfWork
from shared.domain.value_objects import quantize_amount, to_minor_units
from shared.infrastructure.encryption import DecryptionError
from apps.bookings.application.commands import (
    CancelBookingCommand,
    CancellationOutcome,
    CreateBookingCommand,
    GuestPaymentIntentCommand,
    IssuePaymentIntentCommand,
    PaymentIntentResult,
    ProcessCancellationRequestCommand,
)
from apps.bookings.domain.events import (
    BookingCancelled,
    BookingConfirmed,
    BookingCreated,
    CancellationRequestRejected,
    CancellationRequested,
    PaymentIntentIssued,
    PaymentReceived,
    ProviderOrderFailed,
)
from apps.bookings.exceptions import (
    Forbidden,
    InvalidState,
    NotFound,
    UpstreamFailure,
)
from apps.bookings.models import Booking, CancellationRequest
from apps.payments.agency_card import AgencyCardNotConfigured, load_agency_card
from apps.payments.cards import decrypt_card, stored_card_blob
from apps.payments.gateway import PaymentGatewayError
from apps.payments.strategies import (
    charge_amount,
    is_amadeus_hotel,
    prorated_margin,
    recorded_charge_type,
)
from apps.providers.base import OrderPayment, ProviderError
from apps.providers.choices import Provider, provider_supports

logger = logging.getLogger(__name__)

REFUND_REASON = 'requested_by_customer'
STRAY_PAYMENT_REFUND_REASON = 'duplicate'
PROVIDER_CANCEL_FAILED = "Could not cancel the reservation with the provider. Please contact support."
HOTEL_CANCEL_FAILED = "Could not cancel the reservation with the hotel. Please contact support."


# ===== Shared steps =====

def cancel_at_provider(registry, booking: Booking, failure_message: str) -> dict:
    """
    Cancel the provider order, aborting the caller on failure

    The booking must never be cancelled on our side while the provider
    reservation is still live.
    """
    if not booking.provider_booking_id:
        return {}

    try:
        provider = registry.get(booking.provider)
        return provider.cancel_order(booking.provider_booking_id, product_type=booking.product_type) or {}
    except ProviderError as e:
        logger.error(
            f"Provider cancellation failed for booking {booking.reference} "
            f"({booking.provider} {booking.provider_booking_id}): {e.message}"
        )
        raise UpstreamFailure(failure_message, status_code=400) from e


def issue_refund(gateway, booking: Booking, amount: Decimal):
    """
    Refund ``amount`` against the booking's payment intent

    Returns ``(refund, failed)``. A failed refund is logged for manual
    follow-up and never raised.
    """
    if amount <= 0 or not booking.payment_reference:
        return None, False

    try:
        refund = gateway.create_refund(
            booking.payment_reference,
            to_minor_units(amount, booking.currency),
            REFUND_REASON,
        )
    except PaymentGatewayError:
        logger.error(
            f"Refund of {amount} {booking.currency} for booking {booking.reference} failed; "
            f"manual follow-up required",
            exc_info=True,
        )
        return None, True

    return refund, False


def _cancellation_provider_data(booking: Booking, provider_result: dict, refund) -> dict:
    data = dict(booking.provider_data or {})
    if provider_result:
        data['cancellation'] = provider_result
    if refund is not None:
        data['refund'] = {'id': refund.id, 'amount_minor_units': refund.amount, 'status': refund.status}
    return data


def check_cancellable(booking: Booking) -> None:
    if booking.status == Booking.Status.CANCELLED:
        raise InvalidState("This booking is already cancelled.")
    if booking.status != Booking.Status.CONFIRMED:
        raise InvalidState("Only confirmed bookings can be cancelled.")


PAID_STATUSES = (
    Booking.PaymentStatus.COMPLETED,
    Booking.PaymentStatus.REFUNDED,
    Booking.PaymentStatus.PARTIALLY_REFUNDED,
)


def is_stray_payment(booking: Booking, intent_id: str) -> bool:
    """True when a successful ``intent_id`` is not the payment this booking is waiting for."""
    if booking.payment_status in PAID_STATUSES:
        paid_intent = (booking.payment_info or {}).get('paid_intent_id') or booking.payment_reference
        return intent_id != paid_intent
    if booking.status == Booking.Status.CANCELLED:
        return True
    return bool(booking.payment_reference) and intent_id != booking.payment_reference


# ===== Command Handlers =====

class CreateBookingHandler:
    """
    Handler for CreateBooking command

    Prices the offer, encrypts any card the provider will need and
    persists the booking at PENDING. No money moves and no provider is
    contacted here.
    """

    def __init__(self, pricing, strategy):
        self.pricing = pricing
        self.strategy = strategy

    def handle(self, command: CreateBookingCommand) -> Booking:
        logger.info(
            f"Creating {command.product_type} booking with {command.provider} "
            f"for user {command.user_id}, offer {command.offer_id}"
        )

        if not provider_supports(command.provider, command.product_type):
            readable = command.product_type.replace('_', ' ').lower()
            raise InvalidState(f"{command.provider.title()} does not offer {readable} bookings.")

        # Raises MarkupConfigNotFound before anything is persisted
        quote = self.pricing.quote(
            command.base_price,
            command.provider_currency,
            command.currency,
            command.product_type,
        )

        booking = Booking(
            user_id=str(command.user_id),
            user_email=command.user_email or '',
            product_type=command.product_type,
            provider=command.provider,
            currency=quote.currency,
            base_price=quote.base_price,
            markup_amount=quote.markup_amount,
            service_fee=quote.service_fee,
            total_amount=quote.total_amount,
            passenger_info=command.passenger_info or {},
            cancellation_deadline=command.cancellation_deadline,
            cancellation_policy_snapshot=command.cancellation_policy or '',
            policy_accepted_at=command.policy_accepted_at,
            client_ip=command.client_ip,
            user_agent=(command.user_agent or '')[:512],
        )

        booking_data = dict(command.extra or {})
        booking_data.update({
            'offer_id': command.offer_id,
            'guests': command.guests or [],
            'pricing': quote.snapshot(),
        })

        if self.strategy.pays_provider_with_guest_card(booking):
            if command.card is None:
                raise InvalidState("Card details are required to book this hotel.")
        if command.card is not None:
            booking_data['payment_card_info'] = stored_card_blob(command.card)
        booking.booking_data = booking_data

        with DjangoUnitOfWork() as uow:
            booking.save()
            uow.add_event(BookingCreated(
                aggregate_id=booking.pk,
                booking_id=str(booking.pk),
                reference=booking.reference,
                user_id=booking.user_id,
            ))

        logger.info(
            f"Booking {booking.reference} created: {booking.total_amount} {booking.currency} "
            f"(base {booking.base_price}, markup {booking.markup_amount}, fee {booking.service_fee})"
        )
        return booking


class IssuePaymentIntentHandler:
    """
    Handler for payment intent creation

    The voucher discount is frozen onto the booking here, and the charge
    type used is stamped on both the intent metadata and payment_info so
    refunds replay exactly what was charged.
    """

    def __init__(self, repo, gateway, strategy, vouchers):
        self.repo = repo
        self.gateway = gateway
        self.strategy = strategy
        self.vouchers = vouchers

    def handle(self, command: IssuePaymentIntentCommand) -> PaymentIntentResult:
        booking = self.repo.get(command.booking_id)
        if booking.user_id != str(command.user_id):
            raise Forbidden("You can only pay for your own booking.")
        return self._issue(booking, command.voucher_code)

    def handle_guest(self, command: GuestPaymentIntentCommand) -> PaymentIntentResult:
        booking = self.repo.get_by_reference(command.reference)
        email = (command.email or '').strip().lower()
        known_emails = {
            value.strip().lower()
            for value in (booking.owner_email, booking.user_email)
            if value
        } if booking else set()

        if not email or email not in known_emails:
            raise NotFound("Booking not found.")
        return self._issue(booking, command.voucher_code)

    def _issue(self, booking: Booking, voucher_code: str = '') -> PaymentIntentResult:
        if booking.payment_status == Booking.PaymentStatus.COMPLETED:
            raise InvalidState("This booking has already been paid.")
        if booking.status not in (Booking.Status.PENDING, Booking.Status.PAYMENT_PENDING):
            raise InvalidState(f"Cannot take payment for a {booking.status.lower()} booking.")

        voucher = None
        code = (voucher_code or '').strip().upper()
        if code and not booking.voucher_id:
            voucher = self.vouchers.apply_voucher(
                code, booking.user_id, booking.product_type, booking.total_amount, booking.currency
            )
        elif code and code != booking.voucher_code:
            raise InvalidState("A different voucher has already been applied to this booking.")

        discount = voucher.discount_amount if voucher else booking.voucher_discount
        charge_type = str(self.strategy.charge_type_for(booking))
        amount = charge_amount(booking, charge_type, discount)
        amount_minor_units = to_minor_units(amount, booking.currency)
        if amount_minor_units <= 0:
            raise InvalidState("There is nothing to charge for this booking.")

        metadata = {
            'bookingId': str(booking.pk),
            'bookingReference': booking.reference,
            'userId': booking.user_id,
            'productType': booking.product_type,
            'provider': booking.provider,
            'stripeAmountType': charge_type,
        }

        try:
            intent = self.gateway.create_payment_intent(
                amount_minor_units,
                booking.currency,
                metadata,
                idempotency_key=f"booking-{booking.pk}-v{booking.version}-{amount_minor_units}",
            )
        except PaymentGatewayError as e:
            raise UpstreamFailure(e.message) from e

        superseded_intent = booking.payment_reference if booking.payment_reference != intent.id else None

        changes = {
            'status': Booking.Status.PAYMENT_PENDING,
            'payment_status': Booking.PaymentStatus.PROCESSING,
            'payment_reference': intent.id,
            'payment_info': {
                **(booking.payment_info or {}),
                'charge_type': charge_type,
                'payment_intent_id': intent.id,
                'amount_minor_units': amount_minor_units,
                'charge_amount': str(amount),
                'intent_created_at': timezone.now().isoformat(),
            },
        }
        if voucher is not None:
            changes.update(
                voucher_id=voucher.voucher_id,
                voucher_code=voucher.voucher_code,
                voucher_discount=voucher.discount_amount,
                final_amount=quantize_amount(booking.total_amount - voucher.discount_amount, booking.currency),
            )

        with DjangoUnitOfWork() as uow:
            booking = self.repo.transition(
                booking,
                expected_status=[Booking.Status.PENDING, Booking.Status.PAYMENT_PENDING],
                **changes,
            )
            uow.add_event(PaymentIntentIssued(
                aggregate_id=booking.pk,
                booking_id=str(booking.pk),
                payment_intent_id=intent.id,
                charge_type=charge_type,
                amount_minor_units=amount_minor_units,
            ))

        logger.info(
            f"Payment intent {intent.id} issued for booking {booking.reference}: "
            f"{amount_minor_units} {booking.currency} minor units ({charge_type})"
        )
        if superseded_intent:
            self._cancel_superseded_intent(booking, superseded_intent)
        return PaymentIntentResult(
            booking_id=str(booking.pk),
            reference=booking.reference,
            payment_intent_id=intent.id,
            client_secret=intent.client_secret,
            amount_minor_units=amount_minor_units,
            currency=booking.currency,
            charge_type=charge_type,
            voucher_discount=booking.voucher_discount,
        )

    def _cancel_superseded_intent(self, booking: Booking, intent_id: str) -> None:
        """Cancel the intent a new one replaced so it can no longer be paid."""
        try:
            self.gateway.cancel_payment_intent(intent_id)
        except PaymentGatewayError as e:
            # Already paid or cancelled; a late success is refunded when its webhook arrives
            logger.warning(f"Could not cancel superseded intent {intent_id} of booking {booking.reference}: {e.message}")
        else:
            logger.info(f"Superseded intent {intent_id} of booking {booking.reference} cancelled")


class ConfirmAfterPaymentHandler:
    """
    Handler for the payment-success notification

    Idempotent: a booking that already has a provider order is returned
    unchanged, so duplicate webhook deliveries never create a second
    order. The provider call runs while the booking row is locked.

    Money that arrives on an intent the booking is no longer waiting for
    is refunded in full and recorded under
    ``payment_info["stray_payments"]``.
    """

    def __init__(self, repo, registry, strategy, vouchers, gateway):
        self.repo = repo
        self.registry = registry
        self.strategy = strategy
        self.vouchers = vouchers
        self.gateway = gateway

    def handle(self, booking_id, payment: dict = None) -> Booking:
        payment = payment or {}
        intent_id = payment.get('payment_intent_id')

        with DjangoUnitOfWork() as uow:
            booking = self.repo.get_for_update(booking_id)

            if intent_id and is_stray_payment(booking, intent_id):
                return self._refund_stray_payment(booking, payment)

            if booking.provider_booking_id:
                logger.info(f"Booking {booking.reference} already confirmed, ignoring duplicate payment event")
                return booking

            if booking.status == Booking.Status.CANCELLED:
                logger.error(
                    f"Payment received for cancelled booking {booking.reference}; manual refund required"
                )
                return booking

            if booking.payment_status != Booking.PaymentStatus.COMPLETED:
                booking = self._record_payment(booking, payment, uow)

        with DjangoUnitOfWork() as uow:
            booking = self.repo.get_for_update(booking_id)
            if booking.provider_booking_id:
                return booking
            if booking.status != Booking.Status.PAYMENT_PENDING:
                logger.error(
                    f"Booking {booking.reference} is paid but {booking.status}; provider order not created"
                )
                return booking
            return self._create_order(booking, uow)

    def _record_payment(self, booking: Booking, payment: dict, uow) -> Booking:
        payment_info = dict(booking.payment_info or {})
        payment_info.update({
            'paid_at': timezone.now().isoformat(),
            'amount_received': payment.get('amount'),
            'currency': payment.get('currency') or booking.currency,
        })
        if payment.get('payment_intent_id'):
            payment_info['payment_intent_id'] = payment['payment_intent_id']
            payment_info['paid_intent_id'] = payment['payment_intent_id']

        booking = self.repo.transition(
            booking,
            expected_status=[Booking.Status.PENDING, Booking.Status.PAYMENT_PENDING],
            payment_status=Booking.PaymentStatus.COMPLETED,
            payment_reference=booking.payment_reference or payment.get('payment_intent_id'),
            payment_info=payment_info,
            stripe_charge_id=payment.get('charge_id') or booking.stripe_charge_id,
        )
        logger.info(f"Payment completed for booking {booking.reference}")

        if booking.voucher_id:
            try:
                self.vouchers.mark_voucher_as_used(booking.voucher_id, str(booking.pk))
            except NotFound:
                logger.warning(f"Voucher {booking.voucher_id} of booking {booking.reference} no longer exists")

        uow.add_event(PaymentReceived(
            aggregate_id=booking.pk,
            booking_id=str(booking.pk),
            user_id=booking.user_id,
            product_type=booking.product_type,
            total_amount=booking.total_amount,
            currency=booking.currency,
        ))
        return booking

    def _refund_stray_payment(self, booking: Booking, payment: dict) -> Booking:
        intent_id = payment['payment_intent_id']
        payment_info = dict(booking.payment_info or {})
        stray_payments = list(payment_info.get('stray_payments') or [])
        if any(entry.get('payment_intent_id') == intent_id for entry in stray_payments):
            logger.info(f"Stray payment {intent_id} of booking {booking.reference} already handled")
            return booking

        amount_minor_units = int(payment.get('amount') or 0)
        entry = {
            'payment_intent_id': intent_id,
            'amount_minor_units': amount_minor_units,
            'currency': payment.get('currency') or booking.currency,
            'received_at': timezone.now().isoformat(),
        }
        logger.warning(
            f"Unexpected payment {intent_id} ({amount_minor_units} minor units) for booking "
            f"{booking.reference} in {booking.status}/{booking.payment_status}; refunding it"
        )

        if amount_minor_units <= 0:
            logger.error(f"Stray payment {intent_id} for booking {booking.reference} has no amount; manual refund required")
            entry['refund_status'] = Booking.RefundStatus.FAILED
        else:
            try:
                refund = self.gateway.create_refund(intent_id, amount_minor_units, STRAY_PAYMENT_REFUND_REASON)
            except PaymentGatewayError:
                logger.error(
                    f"Refund of stray payment {intent_id} for booking {booking.reference} failed; "
                    f"manual refund required",
                    exc_info=True,
                )
                entry['refund_status'] = Booking.RefundStatus.FAILED
            else:
                entry.update(refund_id=refund.id, refund_status=Booking.RefundStatus.PROCESSING)

        payment_info['stray_payments'] = stray_payments + [entry]
        return self.repo.transition(booking, expected_status=booking.status, payment_info=payment_info)

    def _provider_payment(self, booking: Booking) -> OrderPayment:
        card_info = (booking.booking_data or {}).get('payment_card_info') or {}

        if self.strategy.pays_provider_with_guest_card(booking):
            if not card_info.get('encrypted'):
                raise ProviderError("Card details are no longer available for this booking")
            return OrderPayment(method=OrderPayment.CARD, card=decrypt_card(card_info['encrypted']))

        if self.strategy.pays_provider_with_agency_card(booking):
            return OrderPayment(method=OrderPayment.CARD, card=load_agency_card())

        if booking.provider != Provider.DUFFEL and card_info.get('encrypted'):
            return OrderPayment(method=OrderPayment.CARD, card=decrypt_card(card_info['encrypted']))

        # Amadeus only takes card payment; without a guest card the agency card pays
        if booking.provider == Provider.AMADEUS:
            return OrderPayment(method=OrderPayment.CARD, card=load_agency_card())

        pricing = (booking.booking_data or {}).get('pricing') or {}
        return OrderPayment(
            method=OrderPayment.BALANCE,
            amount=Decimal(pricing.get('original_amount') or booking.base_price),
            currency=pricing.get('original_currency') or booking.currency,
        )

    def _create_order(self, booking: Booking, uow) -> Booking:
        try:
            provider = self.registry.get(booking.provider)
            order = provider.create_order(
                booking.offer_id,
                booking.order_guests,
                self._provider_payment(booking),
                product_type=booking.product_type,
            )
        except ProviderError as e:
            return self._record_order_failure(booking, e.message, uow)
        except (AgencyCardNotConfigured, DecryptionError) as e:
            return self._record_order_failure(booking, str(e), uow)

        booking = self.repo.transition(
            booking,
            expected_status=Booking.Status.PAYMENT_PENDING,
            status=Booking.Status.CONFIRMED,
            provider_booking_id=order.order_id,
            provider_data=order.data,
            booking_data=booking.scrubbed_booking_data(),
        )
        uow.add_event(BookingConfirmed(
            aggregate_id=booking.pk,
            booking_id=str(booking.pk),
            provider_booking_id=order.order_id,
        ))

        logger.info(f"Booking {booking.reference} confirmed with {booking.provider} order {order.order_id}")
        return booking

    def _record_order_failure(self, booking: Booking, error: str, uow) -> Booking:
        logger.error(
            f"Provider order creation failed for paid booking {booking.reference}: {error}. "
            f"Booking left unconfirmed for reconciliation",
            exc_info=True,
        )

        provider_data = dict(booking.provider_data or {})
        provider_data.update({
            'orderCreationError': error,
            'orderCreationFailedAt': timezone.now().isoformat(),
            'orderCreationAttempts': int(provider_data.get('orderCreationAttempts', 0)) + 1,
        })
        booking = self.repo.transition(
            booking,
            expected_status=Booking.Status.PAYMENT_PENDING,
            provider_data=provider_data,
        )
        uow.add_event(ProviderOrderFailed(
            aggregate_id=booking.pk,
            booking_id=str(booking.pk),
            reference=booking.reference,
            error=error,
        ))
        return booking


class CancelBookingHandler:
    """
    Handler for customer cancellations

    Before the cancellation deadline the booking is cancelled at the
    provider and refunded immediately. At or after the deadline a
    CancellationRequest is queued for admin review instead.
    """

    def __init__(self, repo, registry, gateway, strategy):
        self.repo = repo
        self.registry = registry
        self.gateway = gateway
        self.strategy = strategy

    def handle(self, command: CancelBookingCommand) -> CancellationOutcome:
        booking = self.repo.get(command.booking_id)
        self._check_actor(booking, command)
        check_cancellable(booking)
        return self._cancel(booking, command.actor_id, PROVIDER_CANCEL_FAILED)

    def request_hotel_cancellation(self, command: CancelBookingCommand) -> CancellationOutcome:
        booking = self.repo.get(command.booking_id)
        self._check_actor(booking, command)
        if not is_amadeus_hotel(booking):
            raise InvalidState("Only Amadeus hotel bookings can be cancelled this way.")
        check_cancellable(booking)
        return self._cancel(booking, command.actor_id, HOTEL_CANCEL_FAILED)

    def _check_actor(self, booking: Booking, command: CancelBookingCommand) -> None:
        if not command.is_admin and booking.user_id != str(command.actor_id):
            raise Forbidden("You can only cancel your own booking.")

    def _cancel(self, booking: Booking, actor_id, failure_message: str) -> CancellationOutcome:
        if booking.deadline_passed():
            return self._queue_request(booking, str(actor_id))
        return self._cancel_before_deadline(booking, str(actor_id), failure_message)

    def _cancel_before_deadline(self, booking: Booking, actor_id: str, failure_message: str) -> CancellationOutcome:
        with DjangoUnitOfWork() as uow:
            booking = self.repo.get_for_update(booking.pk)
            check_cancellable(booking)

            provider_result = cancel_at_provider(self.registry, booking, failure_message)

            refund_amount = charge_amount(booking, recorded_charge_type(booking, self.strategy))
            refund, refund_failed = issue_refund(self.gateway, booking, refund_amount)

            booking = self.repo.transition(
                booking,
                expected_status=Booking.Status.CONFIRMED,
                status=Booking.Status.CANCELLED,
                cancelled_at=timezone.now(),
                cancelled_by=actor_id,
                refund_amount=refund_amount,
                refund_status=Booking.RefundStatus.PROCESSING,
                provider_data=_cancellation_provider_data(booking, provider_result, refund),
            )
            uow.add_event(BookingCancelled(
                aggregate_id=booking.pk,
                booking_id=str(booking.pk),
                cancelled_by=actor_id,
                refund_amount=refund_amount,
                refund_failed=refund_failed,
            ))

        logger.info(f"Booking {booking.reference} cancelled by {actor_id}, refund {refund_amount} {booking.currency}")

        message = "Your booking has been cancelled."
        if refund_amount > 0:
            message += f" A refund of {refund_amount} {booking.currency} is being processed."
        return CancellationOutcome(
            booking_id=str(booking.pk),
            reference=booking.reference,
            status=Booking.Status.CANCELLED,
            message=message,
            refund_amount=refund_amount,
            refund_failed=refund_failed,
        )

    def _queue_request(self, booking: Booking, actor_id: str) -> CancellationOutcome:
        with DjangoUnitOfWork() as uow:
            booking = self.repo.get_for_update(booking.pk)
            check_cancellable(booking)

            request = booking.cancellation_requests.filter(status=CancellationRequest.Status.PENDING).first()
            created = False
            if request is None:
                try:
                    with transaction.atomic():
                        request = CancellationRequest.objects.create(booking=booking, requested_by=actor_id)
                    created = True
                except IntegrityError:
                    # Lost the race against a concurrent request for the same booking
                    request = booking.cancellation_requests.get(status=CancellationRequest.Status.PENDING)

            if created:
                uow.add_event(CancellationRequested(
                    aggregate_id=booking.pk,
                    booking_id=str(booking.pk),
                    request_id=str(request.pk),
                ))

        if created:
            logger.info(f"Cancellation request {request.pk} queued for booking {booking.reference}")
            message = settings.CANCELLATION_SLA_MESSAGE
        else:
            message = f"A cancellation request for this booking is already pending. {settings.CANCELLATION_SLA_MESSAGE}"

        return CancellationOutcome(
            booking_id=str(booking.pk),
            reference=booking.reference,
            status='REQUEST_PENDING',
            message=message,
            cancellation_request_id=str(request.pk),
        )


class ProcessCancellationRequestHandler:
    """
    Handler for admin decisions on queued cancellation requests

    The request is claimed first with a conditional update, so a second
    decision on the same request fails before any provider or refund
    call is made.
    """

    REJECT = 'reject'
    PARTIAL_REFUND = 'partial_refund'
    FULL_REFUND = 'full_refund'
    ACTIONS = (REJECT, PARTIAL_REFUND, FULL_REFUND)

    def __init__(self, repo, registry, gateway, strategy):
        self.repo = repo
        self.registry = registry
        self.gateway = gateway
        self.strategy = strategy

    def handle(self, command: ProcessCancellationRequestCommand) -> CancellationRequest:
        self._validate(command)

        with DjangoUnitOfWork() as uow:
            request = self.repo.get_cancellation_request_for_update(command.request_id)
            if request.status != CancellationRequest.Status.PENDING:
                raise InvalidState(f"This cancellation request has already been {request.status.lower()}.")

            if command.action == self.REJECT:
                request = self._reject(request, command, uow)
            else:
                request = self._approve(request, command, uow)

        logger.info(f"Cancellation request {request.pk} {request.status.lower()} by {command.admin_id}")
        return request

    def _validate(self, command: ProcessCancellationRequestCommand) -> None:
        if command.action not in self.ACTIONS:
            raise InvalidState(f"Unknown action {command.action!r}; expected one of {', '.join(self.ACTIONS)}.")
        if command.action == self.REJECT and not (command.rejection_reason or '').strip():
            raise InvalidState("A rejection reason is required.")
        if command.action == self.PARTIAL_REFUND:
            if command.refund_amount is None or Decimal(str(command.refund_amount)) <= 0:
                raise InvalidState("A positive refund amount is required for a partial refund.")

    def _reject(self, request: CancellationRequest, command, uow) -> CancellationRequest:
        request = self.repo.claim_cancellation_request(
            request,
            status=CancellationRequest.Status.REJECTED,
            processed_at=timezone.now(),
            processed_by=str(command.admin_id),
            rejection_reason=command.rejection_reason.strip(),
            admin_notes=command.admin_notes or '',
        )
        uow.add_event(CancellationRequestRejected(
            aggregate_id=request.booking_id,
            booking_id=str(request.booking_id),
            request_id=str(request.pk),
            reason=request.rejection_reason,
        ))
        return request

    def _approve(self, request: CancellationRequest, command, uow) -> CancellationRequest:
        admin_id = str(command.admin_id)
        request = self.repo.claim_cancellation_request(
            request,
            status=CancellationRequest.Status.APPROVED,
            processed_at=timezone.now(),
            processed_by=admin_id,
            admin_notes=command.admin_notes or '',
        )

        booking = self.repo.get_for_update(request.booking_id)
        check_cancellable(booking)

        if command.action == self.FULL_REFUND:
            refund_amount = prorated_margin(booking)
        else:
            refund_amount = quantize_amount(command.refund_amount, booking.currency)
            charged = charge_amount(booking, recorded_charge_type(booking, self.strategy))
            if refund_amount > charged:
                raise InvalidState(
                    f"The refund amount cannot exceed the amount charged ({charged} {booking.currency})."
                )

        provider_result = cancel_at_provider(self.registry, booking, PROVIDER_CANCEL_FAILED)
        refund, refund_failed = issue_refund(self.gateway, booking, refund_amount)

        booking = self.repo.transition(
            booking,
            expected_status=Booking.Status.CONFIRMED,
            status=Booking.Status.CANCELLED,
            cancelled_at=timezone.now(),
            cancelled_by=admin_id,
            refund_amount=refund_amount,
            refund_status=Booking.RefundStatus.PROCESSING,
            provider_data=_cancellation_provider_data(booking, provider_result, refund),
        )

        CancellationRequest.objects.filter(pk=request.pk).update(
            refund_amount=refund_amount,
            refund_status=Booking.RefundStatus.FAILED if refund_failed else Booking.RefundStatus.PROCESSING,
        )
        request.refresh_from_db()

        uow.add_event(BookingCancelled(
            aggregate_id=booking.pk,
            booking_id=str(booking.pk),
            cancelled_by=admin_id,
            refund_amount=refund_amount,
            refund_failed=refund_failed,
        ))
        return request
