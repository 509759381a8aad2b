"""Booking service facade.

Wires the command handlers to their collaborators. Views, tasks and the
payment webhook all go through ``get_booking_service()``; tests build a
``BookingService`` with fakes instead.
"""

from __future__ import annotations

from apps.markup.services import PricingService
from apps.payments.gateway import SettlementGateway, StripeSettlementGateway
from apps.payments.strategies import ChargingStrategy, get_charging_strategy
from apps.providers.registry import ProviderRegistry, provider_registry
from apps.vouchers.services import VoucherService

from .application import queries
from .application.command_handlers import (
    CancelBookingHandler,
    ConfirmAfterPaymentHandler,
    CreateBookingHandler,
    IssuePaymentIntentHandler,
    ProcessCancellationRequestHandler,
)
from .application.commands import (
    CancelBookingCommand,
    CancellationOutcome,
    CreateBookingCommand,
    GuestPaymentIntentCommand,
    IssuePaymentIntentCommand,
    PaymentIntentResult,
    ProcessCancellationRequestCommand,
)
from .application.payment_events import PaymentEventHandler
from .application.provider_events import ProviderEventHandler
from .models import Booking, CancellationRequest
from .repositories import BookingRepository


class BookingService:
    def __init__(
        self,
        *,
        gateway: SettlementGateway | None = None,
        registry: ProviderRegistry | None = None,
        strategy: ChargingStrategy | None = None,
        pricing: PricingService | None = None,
        vouchers: VoucherService | None = None,
        repo: BookingRepository | None = None,
    ):
        self.gateway = gateway or StripeSettlementGateway()
        self.registry = registry or provider_registry
        self.strategy = strategy or get_charging_strategy()
        self.pricing = pricing or PricingService()
        self.vouchers = vouchers or VoucherService()
        self.repo = repo or BookingRepository()

        self._create = CreateBookingHandler(self.pricing, self.strategy)
        self._intents = IssuePaymentIntentHandler(self.repo, self.gateway, self.strategy, self.vouchers)
        self._confirm = ConfirmAfterPaymentHandler(
            self.repo, self.registry, self.strategy, self.vouchers, self.gateway
        )
        self._cancel = CancelBookingHandler(self.repo, self.registry, self.gateway, self.strategy)
        self._requests = ProcessCancellationRequestHandler(self.repo, self.registry, self.gateway, self.strategy)
        self._payment_events = PaymentEventHandler(self.repo, self._confirm)
        self._provider_events = ProviderEventHandler(self.repo)

    def create_booking(self, command: CreateBookingCommand) -> Booking:
        return self._create.handle(command)

    def create_payment_intent(self, command: IssuePaymentIntentCommand) -> PaymentIntentResult:
        return self._intents.handle(command)

    def create_guest_payment_intent(self, command: GuestPaymentIntentCommand) -> PaymentIntentResult:
        return self._intents.handle_guest(command)

    def confirm_after_payment(self, booking_id, payment: dict | None = None) -> Booking:
        return self._confirm.handle(booking_id, payment)

    def handle_payment_event(self, event: dict) -> str:
        return self._payment_events.handle(event)

    def handle_provider_event(self, event: dict) -> str:
        return self._provider_events.handle(event)

    def cancel_booking(self, command: CancelBookingCommand) -> CancellationOutcome:
        return self._cancel.handle(command)

    def request_hotel_cancellation(self, command: CancelBookingCommand) -> CancellationOutcome:
        return self._cancel.request_hotel_cancellation(command)

    def process_cancellation_request(self, command: ProcessCancellationRequestCommand) -> CancellationRequest:
        return self._requests.handle(command)

    def list_pending_cancellation_requests(self) -> list[dict]:
        return queries.list_pending_cancellation_requests()

    def get_dispute_evidence(self, booking_id) -> dict:
        return queries.get_dispute_evidence(self.repo.get(booking_id))


def get_booking_service() -> BookingService:
    return BookingService()
