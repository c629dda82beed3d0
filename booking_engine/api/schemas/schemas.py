from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

from booking_engine.domain import models as domain
from booking_engine.domain.money import to_money


class OfferSchema(BaseModel):
    type: Literal["NONE", "BOGO", "BULK_DISCOUNT"] = "NONE"
    buy_quantity: int | None = None
    free_quantity: int | None = None
    bogo_mode: domain.BogoMode = domain.BogoMode.ENTER_TOTAL_PAY_LESS
    threshold_quantity: int | None = None
    percentage: Decimal | None = None

    def to_domain(self) -> domain.OfferConfig:
        if self.type == "BOGO":
            return domain.BogoOffer(
                buy_quantity=self.buy_quantity or 0,
                free_quantity=self.free_quantity or 0,
                mode=self.bogo_mode,
            )
        if self.type == "BULK_DISCOUNT":
            return domain.BulkDiscountOffer(
                threshold_quantity=self.threshold_quantity or 0,
                percentage=self.percentage or Decimal("0"),
            )
        return domain.NoOffer()

    @classmethod
    def from_domain(cls, offer: domain.OfferConfig) -> "OfferSchema":
        if isinstance(offer, domain.BogoOffer):
            return cls(
                type="BOGO",
                buy_quantity=offer.buy_quantity,
                free_quantity=offer.free_quantity,
                bogo_mode=offer.mode,
            )
        if isinstance(offer, domain.BulkDiscountOffer):
            return cls(
                type="BULK_DISCOUNT",
                threshold_quantity=offer.threshold_quantity,
                percentage=offer.percentage,
            )
        return cls()


class TicketClassCreate(BaseModel):
    name: str
    base_price: Decimal = Field(ge=0)
    allowed_role_ids: list[str] = []
    is_default: bool = False
    offer: OfferSchema = OfferSchema()

    def to_domain(self) -> domain.TicketClass:
        return domain.TicketClass(
            id="",
            name=self.name,
            base_price=to_money(self.base_price),
            allowed_role_ids=frozenset(self.allowed_role_ids),
            is_default=self.is_default,
            offer=self.offer.to_domain(),
        )


class TicketClassResponse(BaseModel):
    id: str
    name: str
    base_price: Decimal
    allowed_role_ids: list[str]
    is_default: bool
    offer: OfferSchema


class EventCreate(BaseModel):
    title: str
    program_tag: str | None = None
    currency: str = "GBP"
    ticket_classes: list[TicketClassCreate] = []


class EventResponse(BaseModel):
    id: str
    title: str
    program_tag: str | None
    currency: str
    is_one_off: bool
    ticket_classes: list[TicketClassResponse]


class QuoteRequest(BaseModel):
    tickets_required: int = Field(ge=0)
    role_id: str | None = None
    organization_id: str | None = None
    is_guest: bool = False
    ticket_class_id: str | None = None
    voucher_ids: list[str] = []
    training_fund_amount: Decimal | None = None
    remaining_method: Literal["account", "card"] | None = None
    purchase_order_number: str = ""
    po_supply_later: bool = False


class QuoteResponse(BaseModel):
    success: bool = True
    ticket_class_id: str | None
    base_price: Decimal
    tickets_required: int
    payable_quantity: int
    free_quantity: int
    discount_amount: Decimal
    discount_description: str
    total_cost: Decimal
    voucher_applied: Decimal
    training_fund_applied: Decimal
    training_fund_max: Decimal
    remaining_balance: Decimal
    remaining_method: str
    payment_method: str
    can_proceed: bool


class VoucherResponse(BaseModel):
    id: str
    value: Decimal


class FundingResponse(BaseModel):
    success: bool = True
    organization_id: str
    training_fund_balance: Decimal
    program_ticket_balances: dict[str, int]
    vouchers: list[VoucherResponse]
    vouchers_enabled: bool
    training_fund_enabled: bool


class DuplicateCheckRequest(BaseModel):
    event_id: str
    attendee_emails: list[str] = []


class DuplicateAttendee(BaseModel):
    name: str
    email: str


class DuplicateCheckResponse(BaseModel):
    success: bool = True
    has_duplicates: bool
    duplicates: list[DuplicateAttendee]


class PaymentIntentCreate(BaseModel):
    amount: Decimal = Field(gt=0)
    currency: str | None = None
    payer_email: str
    metadata: dict = {}


class PaymentIntentResponse(BaseModel):
    success: bool = True
    intent_id: str
    client_secret: str
    amount: Decimal
    currency: str
    key_id: str


class PaymentIntentConfirm(BaseModel):
    razorpay_payment_id: str
    razorpay_signature: str


class PaymentIntentConfirmResponse(BaseModel):
    success: bool = True
    intent_id: str
    status: str
    payment_id: str | None


class UnreconciledPaymentResponse(BaseModel):
    intent_id: str
    amount: Decimal
    currency: str
    payer_email: str
    payment_id: str | None
    metadata: dict
    created_at: str


class PaymentsConfigResponse(BaseModel):
    key_id: str
    currency: str


class AttendeeSchema(BaseModel):
    email: str
    first_name: str = ""
    last_name: str = ""
    source: domain.AttendeeSource = domain.AttendeeSource.DIRECTORY_MATCH


class BookingCreate(BaseModel):
    idempotency_key: str = Field(min_length=1)
    event_id: str
    registration_mode: domain.RegistrationMode
    tickets_required: int = Field(gt=0)
    attendees: list[AttendeeSchema] = []
    ticket_class_id: str | None = None
    total_cost: Decimal = Field(ge=0)
    voucher_ids: list[str] = []
    voucher_applied: Decimal = Field(default=Decimal("0"), ge=0)
    training_fund_applied: Decimal = Field(default=Decimal("0"), ge=0)
    account_amount: Decimal = Field(default=Decimal("0"), ge=0)
    card_amount: Decimal = Field(default=Decimal("0"), ge=0)
    payment_method: str
    purchase_order_number: str | None = None
    po_to_follow: bool = False
    payment_intent_id: str | None = None
    program_tag: str | None = None
    organization_id: str | None = None
    member_email: str | None = None
    guest_email: str | None = None
    guest_first_name: str | None = None
    guest_last_name: str | None = None
    number_of_links: int = Field(default=0, ge=0)
    role_id: str | None = None

    def to_domain(self) -> domain.BookingRequest:
        return domain.BookingRequest(
            idempotency_key=self.idempotency_key,
            event_id=self.event_id,
            registration_mode=self.registration_mode,
            tickets_required=self.tickets_required,
            attendees=tuple(
                domain.Attendee(
                    email=a.email,
                    first_name=a.first_name,
                    last_name=a.last_name,
                    source=a.source,
                )
                for a in self.attendees
            ),
            ticket_class_id=self.ticket_class_id,
            total_cost=to_money(self.total_cost),
            voucher_ids=tuple(self.voucher_ids),
            voucher_applied=to_money(self.voucher_applied),
            training_fund_applied=to_money(self.training_fund_applied),
            account_amount=to_money(self.account_amount),
            card_amount=to_money(self.card_amount),
            payment_method=self.payment_method,
            purchase_order_number=self.purchase_order_number,
            po_to_follow=self.po_to_follow,
            payment_intent_id=self.payment_intent_id,
            program_tag=self.program_tag,
            organization_id=self.organization_id,
            member_email=self.member_email,
            guest_email=self.guest_email,
            guest_first_name=self.guest_first_name,
            guest_last_name=self.guest_last_name,
            number_of_links=self.number_of_links,
            role_id=self.role_id,
        )


class BookingCreatedResponse(BaseModel):
    success: bool = True
    booking_id: str
    status: str
    replayed: bool = False


class BookingAttendeeResponse(BaseModel):
    email: str
    first_name: str
    last_name: str
    source: str


class BookingResponse(BaseModel):
    id: str
    event_id: str
    status: str
    registration_mode: str
    tickets_required: int
    number_of_links: int
    total_cost: Decimal
    voucher_applied: Decimal
    training_fund_applied: Decimal
    account_amount: Decimal
    card_amount: Decimal
    payment_method: str
    purchase_order_number: str | None
    po_to_follow: bool
    payment_intent_id: str | None
    attendees: list[BookingAttendeeResponse]
