"""Domain records for event booking.

These are plain immutable values. Persistence rows live in
booking_engine/infrastructure/db/models.py and are mapped onto
these by the repositories.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Union


class BogoMode(str, Enum):
    ENTER_TOTAL_PAY_LESS = "ENTER_TOTAL_PAY_LESS"
    BUY_X_GET_Y_FREE = "BUY_X_GET_Y_FREE"


@dataclass(frozen=True)
class NoOffer:
    kind: str = "NONE"


@dataclass(frozen=True)
class BogoOffer:
    buy_quantity: int
    free_quantity: int
    mode: BogoMode = BogoMode.ENTER_TOTAL_PAY_LESS
    kind: str = "BOGO"


@dataclass(frozen=True)
class BulkDiscountOffer:
    threshold_quantity: int
    percentage: Decimal
    kind: str = "BULK_DISCOUNT"


OfferConfig = Union[NoOffer, BogoOffer, BulkDiscountOffer]


@dataclass(frozen=True)
class TicketClass:
    """A named price/offer bundle for an event, gated by role."""

    id: str
    name: str
    base_price: Decimal
    allowed_role_ids: frozenset[str] = frozenset()
    is_default: bool = False
    offer: OfferConfig = NoOffer()

    def __post_init__(self) -> None:
        if self.base_price < 0:
            raise ValueError("Ticket class base price cannot be negative")

    def is_available_to(self, role_id: str | None) -> bool:
        if not self.allowed_role_ids:
            return True
        return role_id is not None and role_id in self.allowed_role_ids


@dataclass(frozen=True)
class EventInfo:
    id: str
    title: str
    program_tag: str | None = None
    ticket_classes: tuple[TicketClass, ...] = ()
    currency: str = "GBP"

    @property
    def is_one_off(self) -> bool:
        # Programme events are paid for from ticket balances, not priced.
        return not self.program_tag


class VoucherStatus(str, Enum):
    ACTIVE = "ACTIVE"
    CONSUMED = "CONSUMED"


@dataclass(frozen=True)
class Voucher:
    id: str
    organization_id: str
    value: Decimal
    status: VoucherStatus = VoucherStatus.ACTIVE


@dataclass(frozen=True)
class OrganizationBalances:
    training_fund_balance: Decimal = Decimal("0.00")
    program_ticket_balances: dict[str, int] = field(default_factory=dict)

    def program_tickets_for(self, program_tag: str | None) -> int:
        if not program_tag:
            return 0
        return self.program_ticket_balances.get(program_tag, 0)


@dataclass(frozen=True)
class FundingSnapshot:
    """Balances and usable vouchers for one organization, read once per view."""

    balances: OrganizationBalances = field(default_factory=OrganizationBalances)
    vouchers: tuple[Voucher, ...] = ()
    vouchers_enabled: bool = True
    training_fund_enabled: bool = True

    def selected_voucher_value(self, voucher_ids) -> Decimal:
        wanted = set(voucher_ids)
        return sum(
            (v.value for v in self.vouchers if v.id in wanted and v.status == VoucherStatus.ACTIVE),
            Decimal("0.00"),
        )


class AttendeeSource(str, Enum):
    SELF = "SELF"
    DIRECTORY_MATCH = "DIRECTORY_MATCH"
    UNREGISTERED_DOMAIN_MATCH = "UNREGISTERED_DOMAIN_MATCH"
    EXTERNAL = "EXTERNAL"


_MANUAL_NAME_SOURCES = {
    AttendeeSource.UNREGISTERED_DOMAIN_MATCH,
    AttendeeSource.EXTERNAL,
}


@dataclass(frozen=True)
class Attendee:
    email: str
    first_name: str = ""
    last_name: str = ""
    source: AttendeeSource = AttendeeSource.DIRECTORY_MATCH
    is_valid: bool = True

    @property
    def needs_manual_name(self) -> bool:
        return self.source in _MANUAL_NAME_SOURCES

    @property
    def normalized_email(self) -> str:
        return self.email.strip().casefold()

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class RegistrationMode(str, Enum):
    SELF = "self"
    COLLEAGUES = "colleagues"
    LINKS = "links"


@dataclass(frozen=True)
class MemberCheckout:
    member_email: str
    organization_id: str
    role_id: str | None = None
    registration_mode: RegistrationMode = RegistrationMode.COLLEAGUES
    attendees: tuple[Attendee, ...] = ()
    number_of_links: int = 0

    @property
    def valid_attendees(self) -> tuple[Attendee, ...]:
        return tuple(a for a in self.attendees if a.is_valid)

    @property
    def tickets_required(self) -> int:
        if self.registration_mode == RegistrationMode.LINKS:
            return max(0, self.number_of_links)
        return len(self.valid_attendees)


@dataclass(frozen=True)
class GuestCheckout:
    email: str
    first_name: str
    last_name: str

    @property
    def tickets_required(self) -> int:
        return 1


Checkout = Union[MemberCheckout, GuestCheckout]


@dataclass(frozen=True)
class CostBreakdown:
    base_price: Decimal
    tickets_required: int
    payable_quantity: int
    free_quantity: int
    discount_amount: Decimal
    discount_description: str
    total_cost: Decimal


@dataclass(frozen=True)
class BookingRequest:
    """Everything the booking store needs, assembled once per attempt."""

    idempotency_key: str
    event_id: str
    registration_mode: RegistrationMode
    tickets_required: int
    attendees: tuple[Attendee, ...]
    ticket_class_id: str | None
    total_cost: Decimal
    voucher_ids: tuple[str, ...]
    voucher_applied: Decimal
    training_fund_applied: Decimal
    account_amount: Decimal
    card_amount: Decimal
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
    number_of_links: int = 0
    role_id: str | None = None

    def to_payload(self) -> dict:
        return {
            "idempotency_key": self.idempotency_key,
            "event_id": self.event_id,
            "registration_mode": self.registration_mode.value,
            "tickets_required": self.tickets_required,
            "attendees": [
                {
                    "email": a.email.strip(),
                    "first_name": a.first_name,
                    "last_name": a.last_name,
                    "source": a.source.value,
                }
                for a in self.attendees
            ],
            "ticket_class_id": self.ticket_class_id,
            "total_cost": str(self.total_cost),
            "voucher_ids": list(self.voucher_ids),
            "voucher_applied": str(self.voucher_applied),
            "training_fund_applied": str(self.training_fund_applied),
            "account_amount": str(self.account_amount),
            "card_amount": str(self.card_amount),
            "payment_method": self.payment_method,
            "purchase_order_number": self.purchase_order_number,
            "po_to_follow": self.po_to_follow,
            "payment_intent_id": self.payment_intent_id,
            "program_tag": self.program_tag,
            "organization_id": self.organization_id,
            "member_email": self.member_email,
            "guest_email": self.guest_email,
            "guest_first_name": self.guest_first_name,
            "guest_last_name": self.guest_last_name,
            "number_of_links": self.number_of_links,
            "role_id": self.role_id,
        }

    @classmethod
    def from_payload(cls, payload: dict) -> "BookingRequest":
        """Rebuild a request saved with to_payload."""
        money = ("total_cost", "voucher_applied", "training_fund_applied", "account_amount", "card_amount")
        fields = dict(payload)
        fields["registration_mode"] = RegistrationMode(payload["registration_mode"])
        fields["attendees"] = tuple(
            Attendee(
                email=a["email"],
                first_name=a["first_name"],
                last_name=a["last_name"],
                source=AttendeeSource(a["source"]),
            )
            for a in payload["attendees"]
        )
        fields["voucher_ids"] = tuple(payload["voucher_ids"])
        for name in money:
            fields[name] = Decimal(payload[name])
        return cls(**fields)
