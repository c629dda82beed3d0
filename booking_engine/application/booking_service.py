import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Callable
from uuid import uuid4

from booking_engine.application.duplicate_guard import DuplicateGuard
from booking_engine.application.payment_intent import PaymentIntentOrchestrator
from booking_engine.application.ports import BookingStore, DraftStore, FundingProvider
from booking_engine.domain.allocation import (
    AllocationResult,
    RemainingMethod,
    allocate,
    can_proceed,
)
from booking_engine.domain.exceptions import (
    CapacityError,
    DuplicateError,
    InfrastructureError,
    PaymentError,
    PersistenceError,
    ValidationError,
)
from booking_engine.domain.models import (
    Attendee,
    AttendeeSource,
    BookingRequest,
    Checkout,
    CostBreakdown,
    EventInfo,
    FundingSnapshot,
    GuestCheckout,
    MemberCheckout,
    RegistrationMode,
    TicketClass,
)
from booking_engine.domain.money import ZERO
from booking_engine.domain.pricing import PricingEngine, check_ticket_class, select_ticket_class
from booking_engine.domain.state_machine import PaymentIntentStatus

logger = logging.getLogger(__name__)

PENDING_FINALIZE_KEY = "pending_finalize"


@dataclass(frozen=True)
class PaymentSelection:
    """What the user picked on the payment panel."""

    voucher_ids: tuple[str, ...] = ()
    training_fund_amount: Decimal | None = None
    remaining_method: RemainingMethod | None = None
    purchase_order_number: str = ""
    po_supply_later: bool = False


@dataclass(frozen=True)
class BookingQuote:
    ticket_class: TicketClass | None
    cost: CostBreakdown
    allocation: AllocationResult
    can_proceed: bool


def build_quote(
    event: EventInfo,
    checkout: Checkout,
    funding: FundingSnapshot,
    selection: PaymentSelection,
    ticket_class: TicketClass | None = None,
    is_authenticated: bool = True,
) -> BookingQuote:
    """Price the checkout and spread the cost over the funding tiers."""
    is_guest = isinstance(checkout, GuestCheckout)
    return quote_tickets(
        event,
        checkout.tickets_required,
        funding,
        selection,
        role_id=None if is_guest else checkout.role_id,
        is_guest=is_guest,
        ticket_class=ticket_class,
        is_authenticated=is_authenticated,
    )


def quote_tickets(
    event: EventInfo,
    tickets_required: int,
    funding: FundingSnapshot,
    selection: PaymentSelection,
    role_id: str | None = None,
    is_guest: bool = False,
    ticket_class: TicketClass | None = None,
    is_authenticated: bool = True,
) -> BookingQuote:
    if event.is_one_off:
        if ticket_class is None:
            ticket_class = select_ticket_class(event.ticket_classes, role_id)
        else:
            check_ticket_class(event, ticket_class, role_id)
    else:
        ticket_class = None

    cost = PricingEngine.compute(ticket_class, tickets_required)
    allocation = allocate(
        cost.total_cost,
        funding.selected_voucher_value(selection.voucher_ids),
        funding.balances.training_fund_balance,
        selection.training_fund_amount,
        selection.remaining_method,
        purchase_order_number=selection.purchase_order_number,
        po_supply_later=selection.po_supply_later,
        is_guest=is_guest,
        is_authenticated=is_authenticated,
        vouchers_enabled=funding.vouchers_enabled,
        training_fund_enabled=funding.training_fund_enabled,
    )
    return BookingQuote(
        ticket_class=ticket_class,
        cost=cost,
        allocation=allocation,
        can_proceed=can_proceed(tickets_required, cost.total_cost, allocation),
    )


async def load_funding(provider: FundingProvider, organization_id: str | None) -> FundingSnapshot:
    """Fetch balances for the view; a failed fetch degrades to no credit."""
    if not organization_id:
        return FundingSnapshot()
    try:
        return await provider.get_funding(organization_id)
    except InfrastructureError:
        logger.warning(
            "Could not load funding for organization_id=%s; showing no vouchers or training fund.",
            organization_id,
            exc_info=True,
        )
        return FundingSnapshot()


class SubmissionStatus(str, Enum):
    BOOKED = "BOOKED"
    CANCELLED = "CANCELLED"
    IGNORED = "IGNORED"


@dataclass(frozen=True)
class SubmissionResult:
    status: SubmissionStatus
    booking_id: str | None = None
    payment_intent_id: str | None = None
    quote: BookingQuote | None = None


class BookingSubmissionController:
    """
    Runs one booking attempt for an event view, step by step:
    attendees -> quantity -> duplicates -> capacity -> allocation
    (card payment if needed) -> finalize.

    Only one attempt runs at a time; a second submit while the first
    is pending is ignored.
    """

    def __init__(
        self,
        event: EventInfo,
        duplicate_guard: DuplicateGuard,
        booking_store: BookingStore,
        draft_store: DraftStore,
        payment_factory: Callable[[], PaymentIntentOrchestrator] | None = None,
        is_authenticated: bool = True,
    ):
        self.event = event
        self.duplicate_guard = duplicate_guard
        self.booking_store = booking_store
        self.draft_store = draft_store
        self.payment_factory = payment_factory
        self.is_authenticated = is_authenticated
        self.in_flight = False
        self.payment: PaymentIntentOrchestrator | None = None
        self.pending_request: BookingRequest | None = self._restore_paid_request()

    async def submit(
        self,
        checkout: Checkout,
        funding: FundingSnapshot,
        selection: PaymentSelection,
        ticket_class: TicketClass | None = None,
    ) -> SubmissionResult:
        if self.in_flight:
            logger.info("Ignoring submit for event_id=%s; a booking attempt is in flight.", self.event.id)
            return SubmissionResult(status=SubmissionStatus.IGNORED)

        if self.pending_request is not None and self.pending_request.payment_intent_id:
            raise PaymentError(
                "Payment for this booking has already been taken. "
                "Retry completing the booking instead of paying again."
            )

        self.in_flight = True
        try:
            return await self._submit(checkout, funding, selection, ticket_class)
        finally:
            self.in_flight = False
            self.payment = None

    async def retry_finalize(self) -> SubmissionResult:
        """Resubmit the last assembled request without collecting payment again."""
        if self.in_flight:
            return SubmissionResult(status=SubmissionStatus.IGNORED)
        request = self.pending_request
        if request is None:
            raise PersistenceError("There is no booking waiting to be completed.")

        self.in_flight = True
        try:
            booking_id = await self._finalize(request)
        finally:
            self.in_flight = False
        return SubmissionResult(
            status=SubmissionStatus.BOOKED,
            booking_id=booking_id,
            payment_intent_id=request.payment_intent_id,
        )

    async def _submit(
        self,
        checkout: Checkout,
        funding: FundingSnapshot,
        selection: PaymentSelection,
        ticket_class: TicketClass | None,
    ) -> SubmissionResult:
        self._validate_attendees(checkout)

        tickets_required = checkout.tickets_required
        if tickets_required <= 0:
            raise ValidationError("Please add at least one attendee or specify number of links.")

        result = await self.duplicate_guard.check(self.event.id, self._emails_to_check(checkout))
        if result.has_duplicates:
            raise DuplicateError(list(result.duplicates))

        if not self.event.is_one_off:
            available = funding.balances.program_tickets_for(self.event.program_tag)
            if available < tickets_required:
                raise CapacityError(
                    f"Insufficient program tickets ({available} available, "
                    f"{tickets_required} required). Please purchase more tickets first."
                )

        quote = build_quote(
            self.event,
            checkout,
            funding,
            selection,
            ticket_class=ticket_class,
            is_authenticated=self.is_authenticated,
        )
        if not quote.can_proceed:
            raise ValidationError("Please enter a purchase order number or select 'Supply later'.")

        attempt_key = str(uuid4())
        intent_id = None
        if quote.allocation.needs_card_payment:
            intent_id = await self._collect_card_payment(checkout, quote, attempt_key)
            if intent_id is None:
                logger.info("Card payment cancelled for event_id=%s; nothing booked.", self.event.id)
                return SubmissionResult(status=SubmissionStatus.CANCELLED, quote=quote)

        request = self._assemble(attempt_key, checkout, funding, selection, quote, intent_id)
        self.pending_request = request
        if intent_id:
            self._remember_paid_request(request)

        booking_id = await self._finalize(request)
        return SubmissionResult(
            status=SubmissionStatus.BOOKED,
            booking_id=booking_id,
            payment_intent_id=intent_id,
            quote=quote,
        )

    async def _collect_card_payment(
        self,
        checkout: Checkout,
        quote: BookingQuote,
        attempt_key: str,
    ) -> str | None:
        if self.payment_factory is None:
            raise PaymentError("Card payments are not available for this booking.")

        payment = self.payment_factory()
        self.payment = payment
        try:
            await payment.request_intent(
                amount=quote.allocation.remaining_balance,
                payer_email=self._payer_email(checkout),
                metadata={
                    "event_id": self.event.id,
                    "event_title": self.event.title,
                    "organization_id": getattr(checkout, "organization_id", None),
                    "booking_type": "one_off_event",
                    "idempotency_key": attempt_key,
                },
            )
        except PaymentError:
            payment.reset()
            raise

        outcome = await payment.wait_for_outcome()
        if outcome != PaymentIntentStatus.SUCCEEDED:
            return None
        return payment.intent_id

    async def _finalize(self, request: BookingRequest) -> str:
        try:
            booking_id = await self.booking_store.create_booking(request)
        except PersistenceError:
            if request.payment_intent_id:
                logger.error(
                    "Booking failed after payment intent %s succeeded (event_id=%s, key=%s); "
                    "request kept for retry.",
                    request.payment_intent_id,
                    request.event_id,
                    request.idempotency_key,
                )
            raise

        self.pending_request = None
        self.draft_store.clear(self.event.id)
        logger.info("Booking %s created for event_id=%s.", booking_id, request.event_id)
        return booking_id

    def _remember_paid_request(self, request: BookingRequest) -> None:
        draft = dict(self.draft_store.load(self.event.id) or {})
        draft[PENDING_FINALIZE_KEY] = {
            "payment_intent_id": request.payment_intent_id,
            "request": request.to_payload(),
        }
        self.draft_store.save(self.event.id, draft)

    def _restore_paid_request(self) -> BookingRequest | None:
        """A request paid for on an earlier visit that never reached the booking store."""
        draft = self.draft_store.load(self.event.id) or {}
        pending = draft.get(PENDING_FINALIZE_KEY)
        if not pending:
            return None
        request = BookingRequest.from_payload(pending["request"])
        logger.warning(
            "Restored unfinished paid booking for event_id=%s (payment intent %s, key=%s).",
            self.event.id,
            request.payment_intent_id,
            request.idempotency_key,
        )
        return request

    def _assemble(
        self,
        attempt_key: str,
        checkout: Checkout,
        funding: FundingSnapshot,
        selection: PaymentSelection,
        quote: BookingQuote,
        intent_id: str | None,
    ) -> BookingRequest:
        allocation = quote.allocation
        remaining = allocation.remaining_balance
        on_account = allocation.payment_method == RemainingMethod.ACCOUNT.value
        on_card = allocation.payment_method == RemainingMethod.CARD.value

        voucher_ids: tuple[str, ...] = ()
        if allocation.voucher_applied > ZERO:
            known = {v.id for v in funding.vouchers}
            voucher_ids = tuple(v for v in selection.voucher_ids if v in known)

        if self.event.is_one_off:
            payment_method = allocation.payment_method
        else:
            payment_method = "program_tickets"

        common = dict(
            idempotency_key=attempt_key,
            event_id=self.event.id,
            tickets_required=checkout.tickets_required,
            ticket_class_id=quote.ticket_class.id if quote.ticket_class else None,
            total_cost=quote.cost.total_cost,
            voucher_ids=voucher_ids,
            voucher_applied=allocation.voucher_applied,
            training_fund_applied=allocation.training_fund_applied,
            account_amount=remaining if on_account else ZERO,
            card_amount=remaining if on_card else ZERO,
            payment_method=payment_method,
            purchase_order_number=(allocation.purchase_order_number or None) if on_account else None,
            po_to_follow=allocation.po_supply_later if on_account else False,
            payment_intent_id=intent_id,
            program_tag=self.event.program_tag,
        )

        if isinstance(checkout, GuestCheckout):
            guest = Attendee(
                email=checkout.email.strip(),
                first_name=checkout.first_name.strip(),
                last_name=checkout.last_name.strip(),
                source=AttendeeSource.EXTERNAL,
            )
            return BookingRequest(
                registration_mode=RegistrationMode.SELF,
                attendees=(guest,),
                guest_email=guest.email,
                guest_first_name=guest.first_name,
                guest_last_name=guest.last_name,
                **common,
            )

        attendees = () if checkout.registration_mode == RegistrationMode.LINKS else checkout.valid_attendees
        return BookingRequest(
            registration_mode=checkout.registration_mode,
            attendees=attendees,
            organization_id=checkout.organization_id,
            member_email=checkout.member_email,
            role_id=checkout.role_id,
            number_of_links=checkout.number_of_links if checkout.registration_mode == RegistrationMode.LINKS else 0,
            **common,
        )

    @staticmethod
    def _validate_attendees(checkout: Checkout) -> None:
        if isinstance(checkout, GuestCheckout):
            if not checkout.email.strip():
                raise ValidationError("Please enter your email address.")
            if not (checkout.first_name.strip() and checkout.last_name.strip()):
                raise ValidationError("Please provide your first and last name.")
            return

        if checkout.registration_mode == RegistrationMode.LINKS:
            return

        missing_names = [
            a
            for a in checkout.attendees
            if a.source != AttendeeSource.SELF
            and a.needs_manual_name
            and not (a.first_name.strip() and a.last_name.strip())
        ]
        if missing_names:
            raise ValidationError("Please provide first and last names for all attendees.")

        if checkout.registration_mode == RegistrationMode.COLLEAGUES and any(
            not a.is_valid for a in checkout.attendees
        ):
            raise ValidationError("Please remove or fix invalid attendee emails.")

    @staticmethod
    def _emails_to_check(checkout: Checkout) -> list[str]:
        if isinstance(checkout, GuestCheckout):
            return [checkout.email]
        if checkout.registration_mode == RegistrationMode.LINKS:
            return []
        return [a.email for a in checkout.valid_attendees]

    @staticmethod
    def _payer_email(checkout: Checkout) -> str:
        if isinstance(checkout, MemberCheckout):
            return checkout.member_email
        return checkout.email
