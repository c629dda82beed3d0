# booking_engine/infrastructure/db/models.py

from sqlalchemy import (
    Boolean,
    String,
    Integer,
    DateTime,
    Enum,
    Numeric,
    Text,
    UniqueConstraint,
    CheckConstraint,
    ForeignKey,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from booking_engine.infrastructure.db.session import Base
from booking_engine.domain.models import VoucherStatus


def _uuid() -> str:
    return str(uuid4())


class Organization(Base):
    """
    Member organization and its prepaid training fund.
    Money columns hold pence.
    """

    __tablename__ = "organizations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    training_fund_pence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    vouchers_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    training_fund_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("training_fund_pence >= 0", name="ck_training_fund_nonnegative"),
    )


class ProgramTicketBalance(Base):
    __tablename__ = "program_ticket_balances"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    organization_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("organizations.id"),
        nullable=False,
    )
    program_tag: Mapped[str] = mapped_column(String(64), nullable=False)
    tickets: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("organization_id", "program_tag", name="uq_org_program_tag"),
        CheckConstraint("tickets >= 0", name="ck_program_tickets_nonnegative"),
    )


class Voucher(Base):
    __tablename__ = "vouchers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    organization_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("organizations.id"),
        nullable=False,
    )
    value_pence: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[VoucherStatus] = mapped_column(
        Enum(VoucherStatus, name="voucher_status"),
        nullable=False,
        default=VoucherStatus.ACTIVE,
    )
    booking_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("value_pence >= 0", name="ck_voucher_value_nonnegative"),
    )


class Event(Base):
    __tablename__ = "events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    title: Mapped[str] = mapped_column(String(128), nullable=False)
    program_tag: Mapped[str | None] = mapped_column(String(64), nullable=True)
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="GBP")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class TicketClass(Base):
    """
    Price and offer bundle for an event.
    offer_type is NONE, BOGO or BULK_DISCOUNT; only the
    columns for that offer are read.
    """

    __tablename__ = "ticket_classes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    event_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("events.id"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    base_price_pence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    allowed_role_ids: Mapped[str] = mapped_column(Text, nullable=False, default="")
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    offer_type: Mapped[str] = mapped_column(String(32), nullable=False, default="NONE")
    buy_quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    free_quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    bogo_mode: Mapped[str | None] = mapped_column(String(32), nullable=True)
    threshold_quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    discount_percentage: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)

    __table_args__ = (
        CheckConstraint("base_price_pence >= 0", name="ck_ticket_class_price_nonnegative"),
    )


class Booking(Base):
    """
    A confirmed registration. The idempotency key makes a retried
    finalize return the original row instead of booking twice.
    """

    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    event_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("events.id"),
        nullable=False,
    )
    idempotency_key: Mapped[str] = mapped_column(String(128), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="CONFIRMED")
    registration_mode: Mapped[str] = mapped_column(String(16), nullable=False)
    tickets_required: Mapped[int] = mapped_column(Integer, nullable=False)
    number_of_links: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ticket_class_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    organization_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    member_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    guest_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    guest_first_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    guest_last_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    total_pence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    voucher_pence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    training_fund_pence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    account_pence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    card_pence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    payment_method: Mapped[str] = mapped_column(String(32), nullable=False)
    purchase_order_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    po_to_follow: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    payment_intent_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("idempotency_key", name="uq_booking_idempotency_key"),
        UniqueConstraint("payment_intent_id", name="uq_booking_payment_intent_id"),
        CheckConstraint("tickets_required > 0", name="ck_tickets_required_positive"),
    )


class BookingAttendee(Base):
    __tablename__ = "booking_attendees"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    booking_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("bookings.id"),
        nullable=False,
    )
    event_id: Mapped[str] = mapped_column(String(36), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    first_name: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    source: Mapped[str] = mapped_column(String(32), nullable=False)

    __table_args__ = (
        UniqueConstraint("event_id", "email", name="uq_event_attendee_email"),
    )


class PaymentIntentRecord(Base):
    """
    Gateway order created for a card balance.
    CREATED -> CONFIRMED -> CONSUMED once a booking uses it. A rejected
    signature leaves the row CREATED so the payer can try again.
    CONFIRMED rows with no booking are the charged-but-not-booked cases.
    """

    __tablename__ = "payment_intents"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    amount_pence: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False)
    payer_email: Mapped[str] = mapped_column(String(255), nullable=False)
    intent_metadata: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="CREATED")
    payment_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    booking_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("payment_id", name="uq_payment_intent_payment_id"),
        CheckConstraint("amount_pence > 0", name="ck_payment_intent_amount_positive"),
    )
