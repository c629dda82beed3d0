# booking_engine/infrastructure/repositories/event_repository.py

from decimal import Decimal

from sqlalchemy.orm import Session
from sqlalchemy import select

from booking_engine.domain import models as domain
from booking_engine.domain.money import from_minor_units, to_minor_units
from booking_engine.infrastructure.db.models import Event, TicketClass


def _offer_from_row(row: TicketClass) -> domain.OfferConfig:
    if row.offer_type == "BOGO":
        return domain.BogoOffer(
            buy_quantity=row.buy_quantity or 0,
            free_quantity=row.free_quantity or 0,
            mode=domain.BogoMode(row.bogo_mode or domain.BogoMode.ENTER_TOTAL_PAY_LESS.value),
        )
    if row.offer_type == "BULK_DISCOUNT":
        return domain.BulkDiscountOffer(
            threshold_quantity=row.threshold_quantity or 0,
            percentage=Decimal(row.discount_percentage or 0),
        )
    return domain.NoOffer()


def _ticket_class_from_row(row: TicketClass) -> domain.TicketClass:
    role_ids = frozenset(r for r in row.allowed_role_ids.split(",") if r)
    return domain.TicketClass(
        id=row.id,
        name=row.name,
        base_price=from_minor_units(row.base_price_pence),
        allowed_role_ids=role_ids,
        is_default=row.is_default,
        offer=_offer_from_row(row),
    )


class EventRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_row(self, event_id: str) -> Event | None:
        stmt = select(Event).where(Event.id == event_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_event(self, event_id: str) -> domain.EventInfo | None:
        event = self.get_row(event_id)
        if not event:
            return None

        stmt = (
            select(TicketClass)
            .where(TicketClass.event_id == event.id)
            .order_by(TicketClass.position)
        )
        rows = list(self.db.execute(stmt).scalars().all())
        return domain.EventInfo(
            id=event.id,
            title=event.title,
            program_tag=event.program_tag,
            ticket_classes=tuple(_ticket_class_from_row(row) for row in rows),
            currency=event.currency,
        )

    def create_event(
        self,
        title: str,
        program_tag: str | None,
        currency: str,
        ticket_classes: list[domain.TicketClass],
    ) -> domain.EventInfo:
        event = Event(title=title, program_tag=program_tag, currency=currency)
        self.db.add(event)
        self.db.flush()

        for position, ticket_class in enumerate(ticket_classes):
            row = TicketClass(
                event_id=event.id,
                name=ticket_class.name,
                base_price_pence=to_minor_units(ticket_class.base_price),
                allowed_role_ids=",".join(sorted(ticket_class.allowed_role_ids)),
                is_default=ticket_class.is_default,
                position=position,
            )
            offer = ticket_class.offer
            if isinstance(offer, domain.BogoOffer):
                row.offer_type = "BOGO"
                row.buy_quantity = offer.buy_quantity
                row.free_quantity = offer.free_quantity
                row.bogo_mode = offer.mode.value
            elif isinstance(offer, domain.BulkDiscountOffer):
                row.offer_type = "BULK_DISCOUNT"
                row.threshold_quantity = offer.threshold_quantity
                row.discount_percentage = Decimal(str(offer.percentage))
            self.db.add(row)

        self.db.flush()
        return self.get_event(event.id)
