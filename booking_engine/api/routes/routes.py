import json
import logging
import os

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError

from booking_engine.infrastructure.db.session import SessionLocal
from booking_engine.application.booking_service import PaymentSelection, quote_tickets
from booking_engine.application.payment_service import PaymentIntentService
from booking_engine.application.registration_service import RegistrationService
from booking_engine.api.schemas.schemas import (
    BookingAttendeeResponse,
    BookingCreate,
    BookingCreatedResponse,
    BookingResponse,
    DuplicateAttendee,
    DuplicateCheckRequest,
    DuplicateCheckResponse,
    EventCreate,
    EventResponse,
    FundingResponse,
    OfferSchema,
    PaymentIntentConfirm,
    PaymentIntentConfirmResponse,
    PaymentIntentCreate,
    PaymentIntentResponse,
    PaymentsConfigResponse,
    QuoteRequest,
    QuoteResponse,
    TicketClassResponse,
    UnreconciledPaymentResponse,
    VoucherResponse,
)
from booking_engine.domain.allocation import RemainingMethod
from booking_engine.domain.exceptions import (
    CapacityError,
    DuplicateError,
    IdempotencyConflictError,
    InfrastructureError,
    PaymentError,
    PersistenceError,
    ValidationError,
)
from booking_engine.domain.models import EventInfo, FundingSnapshot
from booking_engine.domain.money import from_minor_units
from booking_engine.infrastructure.db.models import Booking
from booking_engine.infrastructure.gateway.razorpay_gateway import RazorpayGateway
from booking_engine.infrastructure.repositories.booking_repository import BookingRepository
from booking_engine.infrastructure.repositories.event_repository import EventRepository
from booking_engine.infrastructure.repositories.funding_repository import FundingRepository


router = APIRouter()
logger = logging.getLogger(__name__)


def get_db():
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_gateway() -> RazorpayGateway:
    try:
        return RazorpayGateway.from_env()
    except InfrastructureError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc),
        ) from exc


def _booking_currency() -> str:
    return os.getenv("BOOKING_CURRENCY", "GBP").upper()


def _razorpay_key_id() -> str:
    key_id = os.getenv("RAZORPAY_KEY_ID")
    if not key_id:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Razorpay key id not configured.",
        )
    return key_id


def _event_response(event: EventInfo) -> EventResponse:
    return EventResponse(
        id=event.id,
        title=event.title,
        program_tag=event.program_tag,
        currency=event.currency,
        is_one_off=event.is_one_off,
        ticket_classes=[
            TicketClassResponse(
                id=ticket_class.id,
                name=ticket_class.name,
                base_price=ticket_class.base_price,
                allowed_role_ids=sorted(ticket_class.allowed_role_ids),
                is_default=ticket_class.is_default,
                offer=OfferSchema.from_domain(ticket_class.offer),
            )
            for ticket_class in event.ticket_classes
        ],
    )


def _booking_response(booking: Booking, db: Session) -> BookingResponse:
    attendees = BookingRepository(db).list_attendees(booking.id)
    return BookingResponse(
        id=booking.id,
        event_id=booking.event_id,
        status=booking.status,
        registration_mode=booking.registration_mode,
        tickets_required=booking.tickets_required,
        number_of_links=booking.number_of_links,
        total_cost=from_minor_units(booking.total_pence),
        voucher_applied=from_minor_units(booking.voucher_pence),
        training_fund_applied=from_minor_units(booking.training_fund_pence),
        account_amount=from_minor_units(booking.account_pence),
        card_amount=from_minor_units(booking.card_pence),
        payment_method=booking.payment_method,
        purchase_order_number=booking.purchase_order_number,
        po_to_follow=booking.po_to_follow,
        payment_intent_id=booking.payment_intent_id,
        attendees=[
            BookingAttendeeResponse(
                email=attendee.email,
                first_name=attendee.first_name,
                last_name=attendee.last_name,
                source=attendee.source,
            )
            for attendee in attendees
        ],
    )


def _load_event(db: Session, event_id: str) -> EventInfo:
    event = EventRepository(db).get_event(event_id)
    if not event:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Event not found",
        )
    return event


def _load_funding(db: Session, organization_id: str) -> FundingSnapshot:
    funding = FundingRepository(db).get_funding(organization_id)
    if funding is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Organization not found",
        )
    return funding


@router.get("/health")
def health():
    return {"message": "Event Booking Engine is running"}


@router.post("/events", response_model=EventResponse)
def create_event(request: EventCreate, db: Session = Depends(get_db)):
    try:
        ticket_classes = [ticket_class.to_domain() for ticket_class in request.ticket_classes]
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc

    event = EventRepository(db).create_event(
        title=request.title,
        program_tag=request.program_tag or None,
        currency=request.currency.upper(),
        ticket_classes=ticket_classes,
    )
    logger.info("Created event %s with %s ticket class(es)", event.id, len(ticket_classes))
    return _event_response(event)


@router.get("/events/{event_id}", response_model=EventResponse)
def get_event(event_id: str, db: Session = Depends(get_db)):
    return _event_response(_load_event(db, event_id))


@router.post("/events/{event_id}/quote", response_model=QuoteResponse)
def quote_event(
    event_id: str,
    request: QuoteRequest,
    db: Session = Depends(get_db),
):
    event = _load_event(db, event_id)

    ticket_class = None
    if request.ticket_class_id:
        ticket_class = next(
            (tc for tc in event.ticket_classes if tc.id == request.ticket_class_id),
            None,
        )
        if ticket_class is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Ticket class not found",
            )

    if request.organization_id and not request.is_guest:
        funding = _load_funding(db, request.organization_id)
    else:
        funding = FundingSnapshot()

    selection = PaymentSelection(
        voucher_ids=tuple(request.voucher_ids),
        training_fund_amount=request.training_fund_amount,
        remaining_method=RemainingMethod(request.remaining_method) if request.remaining_method else None,
        purchase_order_number=request.purchase_order_number,
        po_supply_later=request.po_supply_later,
    )
    try:
        quote = quote_tickets(
            event,
            request.tickets_required,
            funding,
            selection,
            role_id=None if request.is_guest else request.role_id,
            is_guest=request.is_guest,
            ticket_class=ticket_class,
            is_authenticated=not request.is_guest,
        )
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc

    cost = quote.cost
    allocation = quote.allocation
    return QuoteResponse(
        ticket_class_id=quote.ticket_class.id if quote.ticket_class else None,
        base_price=cost.base_price,
        tickets_required=cost.tickets_required,
        payable_quantity=cost.payable_quantity,
        free_quantity=cost.free_quantity,
        discount_amount=cost.discount_amount,
        discount_description=cost.discount_description,
        total_cost=cost.total_cost,
        voucher_applied=allocation.voucher_applied,
        training_fund_applied=allocation.training_fund_applied,
        training_fund_max=allocation.training_fund_max,
        remaining_balance=allocation.remaining_balance,
        remaining_method=allocation.remaining_method.value,
        payment_method=allocation.payment_method,
        can_proceed=quote.can_proceed,
    )


@router.get("/organizations/{organization_id}/funding", response_model=FundingResponse)
def get_funding(organization_id: str, db: Session = Depends(get_db)):
    funding = _load_funding(db, organization_id)
    return FundingResponse(
        organization_id=organization_id,
        training_fund_balance=funding.balances.training_fund_balance,
        program_ticket_balances=dict(funding.balances.program_ticket_balances),
        vouchers=[VoucherResponse(id=v.id, value=v.value) for v in funding.vouchers],
        vouchers_enabled=funding.vouchers_enabled,
        training_fund_enabled=funding.training_fund_enabled,
    )


@router.post("/bookings/duplicates/check", response_model=DuplicateCheckResponse)
def check_duplicates(request: DuplicateCheckRequest, db: Session = Depends(get_db)):
    _load_event(db, request.event_id)
    duplicates = RegistrationService(db).check_duplicates(request.event_id, request.attendee_emails)
    return DuplicateCheckResponse(
        has_duplicates=bool(duplicates),
        duplicates=[DuplicateAttendee(**d) for d in duplicates],
    )


@router.post("/payment-intents", response_model=PaymentIntentResponse)
def create_payment_intent(
    request: PaymentIntentCreate,
    db: Session = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_gateway),
):
    service = PaymentIntentService(db, gateway)
    try:
        record = service.create_intent(
            amount=request.amount,
            currency=request.currency or _booking_currency(),
            payer_email=request.payer_email,
            metadata=request.metadata,
        )
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except PaymentError as exc:
        raise HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail=str(exc),
        ) from exc
    except InfrastructureError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(exc),
        ) from exc

    return PaymentIntentResponse(
        intent_id=record.id,
        client_secret=record.id,
        amount=from_minor_units(record.amount_pence),
        currency=record.currency,
        key_id=gateway.key_id,
    )


@router.post("/payment-intents/{intent_id}/confirm", response_model=PaymentIntentConfirmResponse)
def confirm_payment_intent(
    intent_id: str,
    request: PaymentIntentConfirm,
    db: Session = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_gateway),
):
    service = PaymentIntentService(db, gateway)
    try:
        record = service.confirm(
            intent_id=intent_id,
            payment_id=request.razorpay_payment_id,
            signature=request.razorpay_signature,
        )
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except PaymentError as exc:
        raise HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail=str(exc),
        ) from exc
    except IdempotencyConflictError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    except IntegrityError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Payment id already linked with another payment intent.",
        ) from exc

    return PaymentIntentConfirmResponse(
        intent_id=record.id,
        status=record.status,
        payment_id=record.payment_id,
    )


@router.get("/payment-intents/unreconciled", response_model=list[UnreconciledPaymentResponse])
def list_unreconciled_payments(
    limit: int = 50,
    db: Session = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_gateway),
):
    records = PaymentIntentService(db, gateway).list_unreconciled(limit=max(1, min(limit, 200)))
    return [
        UnreconciledPaymentResponse(
            intent_id=record.id,
            amount=from_minor_units(record.amount_pence),
            currency=record.currency,
            payer_email=record.payer_email,
            payment_id=record.payment_id,
            metadata=json.loads(record.intent_metadata or "{}"),
            created_at=record.created_at.isoformat(),
        )
        for record in records
    ]


@router.get("/payments/config", response_model=PaymentsConfigResponse)
def payments_config():
    return PaymentsConfigResponse(
        key_id=_razorpay_key_id(),
        currency=_booking_currency(),
    )


@router.post("/bookings", response_model=BookingCreatedResponse)
def create_booking(
    request: BookingCreate,
    db: Session = Depends(get_db),
):
    service = RegistrationService(db)

    try:
        booking, replayed = service.create_booking(request.to_domain())
    except DuplicateError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"message": str(exc), "duplicates": exc.duplicates},
        ) from exc
    except (IdempotencyConflictError, CapacityError, PersistenceError) as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except PaymentError as exc:
        raise HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail=str(exc),
        ) from exc
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except IntegrityError as exc:
        logger.warning("Booking insert conflicted for key=%s", request.idempotency_key)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Booking conflicts with an existing registration. Please retry.",
        ) from exc

    return BookingCreatedResponse(
        booking_id=booking.id,
        status=booking.status,
        replayed=replayed,
    )


@router.get("/bookings/{booking_id}", response_model=BookingResponse)
def get_booking(booking_id: str, db: Session = Depends(get_db)):
    booking = BookingRepository(db).get_by_id(booking_id)
    if not booking:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Booking not found",
        )
    return _booking_response(booking, db)
