from sqlalchemy import delete, select

from booking_engine.domain.models import VoucherStatus
from booking_engine.infrastructure.db.models import (
    Base,
    Event,
    Organization,
    ProgramTicketBalance,
    TicketClass,
    Voucher,
)
from booking_engine.infrastructure.db.session import SessionLocal, engine


def seed_organizations(db) -> None:
    org_defs = [
        {
            "name": "Northwind Learning Trust",
            "training_fund_pence": 10000,
            "vouchers_pence": [5000, 2500],
            "program_tickets": {"LEADERSHIP-2026": 12},
        },
        {
            "name": "Harbour Primary Federation",
            "training_fund_pence": 0,
            "vouchers_pence": [],
            "program_tickets": {},
            "vouchers_enabled": False,
            "training_fund_enabled": False,
        },
    ]

    for item in org_defs:
        org = db.execute(
            select(Organization).where(Organization.name == item["name"])
        ).scalar_one_or_none()
        if org:
            db.execute(delete(Voucher).where(Voucher.organization_id == org.id))
            db.execute(delete(ProgramTicketBalance).where(ProgramTicketBalance.organization_id == org.id))
        else:
            org = Organization(name=item["name"])
            db.add(org)
            db.flush()

        org.training_fund_pence = item["training_fund_pence"]
        org.vouchers_enabled = item.get("vouchers_enabled", True)
        org.training_fund_enabled = item.get("training_fund_enabled", True)

        for value in item["vouchers_pence"]:
            db.add(Voucher(organization_id=org.id, value_pence=value, status=VoucherStatus.ACTIVE))
        for tag, tickets in item["program_tickets"].items():
            db.add(ProgramTicketBalance(organization_id=org.id, program_tag=tag, tickets=tickets))


def seed_events(db) -> None:
    event_defs = [
        {
            "title": "Safeguarding Update Workshop",
            "program_tag": None,
            "ticket_classes": [
                {"name": "Member", "base_price_pence": 2000, "allowed_role_ids": "member", "is_default": True,
                 "offer_type": "BULK_DISCOUNT", "threshold_quantity": 10, "discount_percentage": 15},
                {"name": "Standard", "base_price_pence": 3500, "allowed_role_ids": ""},
            ],
        },
        {
            "title": "Curriculum Design Day",
            "program_tag": None,
            "ticket_classes": [
                {"name": "Standard", "base_price_pence": 4500, "allowed_role_ids": "", "is_default": True,
                 "offer_type": "BOGO", "buy_quantity": 2, "free_quantity": 1,
                 "bogo_mode": "ENTER_TOTAL_PAY_LESS"},
            ],
        },
        {
            "title": "Leadership Programme: Session 3",
            "program_tag": "LEADERSHIP-2026",
            "ticket_classes": [],
        },
    ]

    for item in event_defs:
        event = db.execute(
            select(Event).where(Event.title == item["title"])
        ).scalar_one_or_none()
        if event:
            db.execute(delete(TicketClass).where(TicketClass.event_id == event.id))
            event.program_tag = item["program_tag"]
        else:
            event = Event(title=item["title"], program_tag=item["program_tag"], currency="GBP")
            db.add(event)
            db.flush()

        for position, ticket_class in enumerate(item["ticket_classes"]):
            db.add(TicketClass(event_id=event.id, position=position, **ticket_class))


def main() -> None:
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        seed_organizations(db)
        seed_events(db)
        db.commit()
        print("Seed complete: 2 organizations, 2 one-off events and 1 programme event added.")
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    main()
