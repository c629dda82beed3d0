# booking_engine/application/registration_service.py

import logging

from sqlalchemy.orm import Session

from booking_engine.domain.exceptions import (
    CapacityError,
    DuplicateError,
    IdempotencyConflictError,
    PaymentError,
    StaleAllocationError,
    ValidationError,
)
from booking_engine.domain.models import (
    BookingRequest,
    EventInfo,
    RegistrationMode,
    VoucherStatus,
)
from booking_engine.domain.money import ZERO, from_minor_units, is_settled, to_minor_units
from booking_engine.domain.pricing import PricingEngine, check_ticket_class, select_ticket_class
from booking_engine.infrastructure.db.models import Booking, BookingAttendee
from booking_engine.infrastructure.repositories.booking_repository import BookingRepository
from booking_engine.infrastructure.repositories.event_repository import EventRepository
from booking_engine.infrastructure.repositories.funding_repository import FundingRepository
from booking_engine.infrastructure.repositories.payment_intent_repository import PaymentIntentRepository

logger = logging.getLogger(__name__)


class RegistrationService:
    """
    Server side of booking persistence.

    Re-prices the request, takes row locks on every balance it touches,
    decrements them and inserts the booking in one transaction. The
    caller's session commits or rolls back the whole unit.
    """

    def __init__(self, db: Session):
        self.db = db
        self.booking_repository = BookingRepository(db)
        self.event_repository = EventRepository(db)
        self.funding_repository = FundingRepository(db)
        self.intent_repository = PaymentIntentRepository(db)

    def check_duplicates(self, event_id: str, emails: list[str]) -> list[dict]:
        normalized = sorted({e.strip().casefold() for e in emails if e and e.strip()})
        return [
            {"name": f"{row.first_name} {row.last_name}".strip(), "email": row.email}
            for row in self.booking_repository.find_registered(event_id, normalized)
        ]

    def create_booking(self, request: BookingRequest) -> tuple[Booking, bool]:
        """Returns (booking, replayed)."""
        existing = self.booking_repository.get_by_idempotency_key(request.idempotency_key)
        if existing:
            if (
                existing.event_id != request.event_id
                or existing.payment_intent_id != request.payment_intent_id
            ):
                raise IdempotencyConflictError("Duplicate idempotent request")
            logger.info("Replaying booking %s for key=%s", existing.id, request.idempotency_key)
            return existing, True

        event = self.event_repository.get_event(request.event_id)
        if not event:
            raise ValueError("Event not found")

        self._validate_shape(request)

        attendees = self._attendee_rows(request)
        duplicates = self.check_duplicates(event.id, [a.email for a in attendees])
        if duplicates:
            raise DuplicateError(duplicates)

        if event.is_one_off:
            self._check_price(event, request)
            vouchers = self._consume_vouchers(request)
            self._debit_training_fund(request)
            intent = self._consume_payment_intent(request)
        else:
            self._debit_program_tickets(event, request)
            vouchers, intent = [], None

        booking = Booking(
            event_id=event.id,
            idempotency_key=request.idempotency_key,
            status="CONFIRMED",
            registration_mode=request.registration_mode.value,
            tickets_required=request.tickets_required,
            number_of_links=request.number_of_links,
            ticket_class_id=request.ticket_class_id,
            organization_id=request.organization_id,
            member_email=request.member_email,
            guest_email=request.guest_email,
            guest_first_name=request.guest_first_name,
            guest_last_name=request.guest_last_name,
            total_pence=to_minor_units(request.total_cost),
            voucher_pence=to_minor_units(request.voucher_applied),
            training_fund_pence=to_minor_units(request.training_fund_applied),
            account_pence=to_minor_units(request.account_amount),
            card_pence=to_minor_units(request.card_amount),
            payment_method=request.payment_method,
            purchase_order_number=request.purchase_order_number,
            po_to_follow=request.po_to_follow,
            payment_intent_id=request.payment_intent_id,
        )
        self.booking_repository.add_booking(booking, attendees)

        for voucher in vouchers:
            voucher.booking_id = booking.id
        if intent is not None:
            intent.status = "CONSUMED"
            intent.booking_id = booking.id

        self.db.flush()
        logger.info(
            "Booked %s tickets on event_id=%s as booking %s (method=%s)",
            request.tickets_required,
            event.id,
            booking.id,
            request.payment_method,
        )
        return booking, False

    def _validate_shape(self, request: BookingRequest) -> None:
        if request.tickets_required <= 0:
            raise ValidationError("At least one ticket is required.")

        if request.registration_mode == RegistrationMode.LINKS:
            if request.number_of_links != request.tickets_required:
                raise ValidationError("Number of links does not match tickets required.")
        elif len(request.attendees) != request.tickets_required:
            raise ValidationError("Attendee count does not match tickets required.")

        covered = (
            request.voucher_applied
            + request.training_fund_applied
            + request.account_amount
            + request.card_amount
        )
        if not is_settled(covered - request.total_cost):
            raise ValidationError("Payment allocation does not add up to the total cost.")

        member_only = request.voucher_applied + request.training_fund_applied + request.account_amount
        if member_only > ZERO and not request.organization_id:
            raise ValidationError("Only member organizations can pay by voucher, training fund or account.")

        if request.account_amount > ZERO and not (
            (request.purchase_order_number or "").strip() or request.po_to_follow
        ):
            raise ValidationError("Please enter a purchase order number or select 'Supply later'.")

        if request.card_amount > ZERO and not request.payment_intent_id:
            raise PaymentError("Card payment has not been taken.")

    @staticmethod
    def _attendee_rows(request: BookingRequest) -> list[BookingAttendee]:
        rows = []
        seen = set()
        for attendee in request.attendees:
            email = attendee.normalized_email
            if not email:
                raise ValidationError("Every attendee needs an email address.")
            if email in seen:
                raise ValidationError(f"{email} is listed more than once.")
            seen.add(email)
            rows.append(
                BookingAttendee(
                    email=email,
                    first_name=attendee.first_name.strip(),
                    last_name=attendee.last_name.strip(),
                    source=attendee.source.value,
                )
            )
        return rows

    @staticmethod
    def _check_price(event: EventInfo, request: BookingRequest) -> None:
        # Roles are a member concept; guests only see unrestricted classes.
        role_id = request.role_id if request.organization_id else None
        if request.ticket_class_id:
            ticket_class = next(
                (tc for tc in event.ticket_classes if tc.id == request.ticket_class_id),
                None,
            )
            if ticket_class is None:
                raise ValidationError("Unknown ticket class for this event.")
            check_ticket_class(event, ticket_class, role_id)
        else:
            ticket_class = select_ticket_class(event.ticket_classes, role_id)

        cost = PricingEngine.compute(ticket_class, request.tickets_required)
        if cost.total_cost != request.total_cost:
            raise StaleAllocationError(
                f"The price has changed to {cost.total_cost}; please review the booking."
            )

    def _consume_vouchers(self, request: BookingRequest) -> list:
        if request.voucher_applied <= ZERO:
            return []

        organization = self.funding_repository.lock_organization(request.organization_id)
        if not organization:
            raise ValueError("Organization not found")
        if not organization.vouchers_enabled:
            raise ValidationError("Vouchers are not available to this organization.")

        wanted = set(request.voucher_ids)
        vouchers = self.funding_repository.lock_vouchers(request.organization_id, sorted(wanted))
        if len(vouchers) != len(wanted) or any(v.status != VoucherStatus.ACTIVE for v in vouchers):
            raise StaleAllocationError("Selected vouchers are no longer available.")

        value = from_minor_units(sum(v.value_pence for v in vouchers))
        if request.voucher_applied > min(value, request.total_cost):
            raise StaleAllocationError("Selected vouchers do not cover the voucher amount.")

        # Vouchers are single-use: any unapplied value is forfeited.
        for voucher in vouchers:
            voucher.status = VoucherStatus.CONSUMED
        return vouchers

    def _debit_training_fund(self, request: BookingRequest) -> None:
        amount_pence = to_minor_units(request.training_fund_applied)
        if amount_pence <= 0:
            return

        organization = self.funding_repository.lock_organization(request.organization_id)
        if not organization:
            raise ValueError("Organization not found")
        if not organization.training_fund_enabled:
            raise ValidationError("Training fund payments are not available to this organization.")
        if organization.training_fund_pence < amount_pence:
            raise StaleAllocationError("Training fund balance is lower than when the booking was priced.")

        organization.training_fund_pence -= amount_pence

    def _consume_payment_intent(self, request: BookingRequest):
        card_pence = to_minor_units(request.card_amount)
        if card_pence <= 0:
            return None

        intent = self.intent_repository.lock(request.payment_intent_id)
        if intent and (intent.booking_id or intent.status == "CONSUMED"):
            raise IdempotencyConflictError("Payment already used by another booking.")
        if not intent or intent.status != "CONFIRMED":
            raise PaymentError("Card payment has not been confirmed.")
        if intent.amount_pence != card_pence:
            raise PaymentError("Card payment amount does not match the balance due.")
        return intent

    def _debit_program_tickets(self, event: EventInfo, request: BookingRequest) -> None:
        if not request.organization_id:
            raise CapacityError("Programme events can only be booked by member organizations.")

        balance = self.funding_repository.lock_program_balance(request.organization_id, event.program_tag)
        available = balance.tickets if balance else 0
        if available < request.tickets_required:
            raise CapacityError("Insufficient program tickets. Please purchase more tickets first.")

        balance.tickets -= request.tickets_required
