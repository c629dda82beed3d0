from decimal import Decimal

from booking_engine.domain.models import VoucherStatus
from booking_engine.infrastructure.db.models import Organization, ProgramTicketBalance, Voucher
from booking_engine.infrastructure.db.session import get_db_session


def _money(value) -> Decimal:
    return Decimal(str(value))


def _create_event(client, price="40.00", offer=None, program_tag=None):
    ticket_classes = []
    if not program_tag:
        ticket_classes.append(
            {
                "name": "Standard",
                "base_price": price,
                "is_default": True,
                "offer": offer or {"type": "NONE"},
            }
        )
    response = client.post(
        "/events",
        json={"title": "Safeguarding Update", "program_tag": program_tag, "ticket_classes": ticket_classes},
    )
    assert response.status_code == 200
    return response.json()


def _seed_org(training_fund_pence=0, vouchers=(), program_tickets=None, consumed_vouchers=()):
    with get_db_session() as db:
        org = Organization(name="Northwind Learning Trust", training_fund_pence=training_fund_pence)
        db.add(org)
        db.flush()

        voucher_ids = []
        for value in vouchers:
            voucher = Voucher(organization_id=org.id, value_pence=value)
            db.add(voucher)
            db.flush()
            voucher_ids.append(voucher.id)
        for value in consumed_vouchers:
            db.add(Voucher(organization_id=org.id, value_pence=value, status=VoucherStatus.CONSUMED))
        for tag, tickets in (program_tickets or {}).items():
            db.add(ProgramTicketBalance(organization_id=org.id, program_tag=tag, tickets=tickets))
        return org.id, voucher_ids


def _training_fund_pence(org_id):
    with get_db_session() as db:
        return db.get(Organization, org_id).training_fund_pence


def _member_booking(event, org_id, key="key-1", email="ada@school.org", **overrides):
    payload = {
        "idempotency_key": key,
        "event_id": event["id"],
        "registration_mode": "colleagues",
        "tickets_required": 1,
        "attendees": [{"email": email, "first_name": "Ada", "last_name": "Lovelace", "source": "DIRECTORY_MATCH"}],
        "ticket_class_id": event["ticket_classes"][0]["id"] if event["ticket_classes"] else None,
        "total_cost": "40.00",
        "account_amount": "40.00",
        "payment_method": "account",
        "purchase_order_number": "PO-7",
        "organization_id": org_id,
        "member_email": "booker@school.org",
    }
    payload.update(overrides)
    return payload


# ---------------------
# EVENTS AND QUOTES
# ---------------------

def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["message"] == "Event Booking Engine is running"


def test_event_with_bulk_discount_quote(client):
    event = _create_event(
        client,
        price="20.00",
        offer={"type": "BULK_DISCOUNT", "threshold_quantity": 10, "percentage": "15"},
    )

    fetched = client.get(f"/events/{event['id']}").json()
    assert fetched["is_one_off"] is True
    assert fetched["ticket_classes"][0]["offer"]["type"] == "BULK_DISCOUNT"

    quote = client.post(f"/events/{event['id']}/quote", json={"tickets_required": 12, "is_guest": True}).json()

    assert _money(quote["discount_amount"]) == Decimal("36.00")
    assert _money(quote["total_cost"]) == Decimal("204.00")
    assert quote["discount_description"] == "15% bulk discount (10+ tickets)"
    assert quote["remaining_method"] == "card"
    assert quote["can_proceed"] is True


def test_unknown_event_is_404(client):
    assert client.get("/events/missing").status_code == 404
    assert client.post("/events/missing/quote", json={"tickets_required": 1}).status_code == 404


def test_funding_lists_only_usable_vouchers(client):
    org_id, voucher_ids = _seed_org(training_fund_pence=10000, vouchers=(3000, 0), consumed_vouchers=(5000,))

    funding = client.get(f"/organizations/{org_id}/funding").json()

    assert _money(funding["training_fund_balance"]) == Decimal("100.00")
    assert [v["id"] for v in funding["vouchers"]] == [voucher_ids[0]]
    assert client.get("/organizations/missing/funding").status_code == 404


def test_quote_voucher_then_training_fund(client):
    event = _create_event(client, price="50.00")
    org_id, voucher_ids = _seed_org(training_fund_pence=10000, vouchers=(3000,))

    quote = client.post(
        f"/events/{event['id']}/quote",
        json={"tickets_required": 1, "organization_id": org_id, "voucher_ids": voucher_ids},
    ).json()

    assert _money(quote["voucher_applied"]) == Decimal("30.00")
    assert _money(quote["training_fund_applied"]) == Decimal("20.00")
    assert _money(quote["remaining_balance"]) == Decimal("0.00")
    assert quote["payment_method"] == "fully_covered"
    assert quote["can_proceed"] is True


# ---------------------
# MEMBER BOOKINGS
# ---------------------

def test_account_booking_replay_and_duplicates(client):
    event = _create_event(client, price="40.00")
    org_id, _ = _seed_org(training_fund_pence=1000)
    payload = _member_booking(
        event,
        org_id,
        email="Ada@School.org",
        training_fund_applied="10.00",
        account_amount="30.00",
    )

    response = client.post("/bookings", json=payload)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["replayed"] is False
    assert _training_fund_pence(org_id) == 0

    booking = client.get(f"/bookings/{body['booking_id']}").json()
    assert booking["attendees"][0]["email"] == "ada@school.org"
    assert _money(booking["account_amount"]) == Decimal("30.00")
    assert booking["purchase_order_number"] == "PO-7"

    replay = client.post("/bookings", json=payload)
    assert replay.status_code == 200
    assert replay.json()["booking_id"] == body["booking_id"]
    assert replay.json()["replayed"] is True

    check = client.post(
        "/bookings/duplicates/check",
        json={"event_id": event["id"], "attendee_emails": [" ADA@school.org", "new@school.org"]},
    ).json()
    assert check["has_duplicates"] is True
    assert check["duplicates"] == [{"name": "Ada Lovelace", "email": "ada@school.org"}]

    again = client.post("/bookings", json={**payload, "idempotency_key": "key-2"})
    assert again.status_code == 409
    assert again.json()["detail"]["duplicates"][0]["email"] == "ada@school.org"


def test_voucher_is_single_use(client):
    event = _create_event(client, price="50.00")
    org_id, voucher_ids = _seed_org(training_fund_pence=10000, vouchers=(3000,))
    covered = dict(
        total_cost="50.00",
        voucher_ids=voucher_ids,
        voucher_applied="30.00",
        training_fund_applied="20.00",
        account_amount="0",
        payment_method="fully_covered",
        purchase_order_number=None,
    )

    first = client.post("/bookings", json=_member_booking(event, org_id, **covered))
    second = client.post(
        "/bookings",
        json=_member_booking(event, org_id, key="key-2", email="grace@school.org", **covered),
    )

    assert first.status_code == 200
    assert second.status_code == 409
    funding = client.get(f"/organizations/{org_id}/funding").json()
    assert funding["vouchers"] == []
    assert _money(funding["training_fund_balance"]) == Decimal("80.00")


def test_stale_price_is_rejected_without_side_effects(client):
    event = _create_event(client, price="40.00")
    org_id, _ = _seed_org(training_fund_pence=1000)

    response = client.post(
        "/bookings",
        json=_member_booking(event, org_id, total_cost="20.00", training_fund_applied="10.00", account_amount="10.00"),
    )

    assert response.status_code == 409
    assert _training_fund_pence(org_id) == 1000


def test_account_booking_needs_purchase_order(client):
    event = _create_event(client)
    org_id, _ = _seed_org()

    response = client.post("/bookings", json=_member_booking(event, org_id, purchase_order_number=None))

    assert response.status_code == 400


def test_allocation_must_add_up(client):
    event = _create_event(client)
    org_id, _ = _seed_org()

    response = client.post("/bookings", json=_member_booking(event, org_id, account_amount="35.00"))

    assert response.status_code == 400


def test_booking_unknown_event(client):
    response = client.post("/bookings", json=_member_booking({"id": "missing", "ticket_classes": []}, None))

    assert response.status_code == 404


# ---------------------
# ROLE-GATED TICKET CLASSES
# ---------------------

def _create_role_gated_event(client):
    response = client.post(
        "/events",
        json={
            "title": "Safeguarding Update",
            "ticket_classes": [
                {"name": "Standard", "base_price": "50.00", "is_default": True},
                {"name": "Staff", "base_price": "5.00", "allowed_role_ids": ["staff"]},
            ],
        },
    )
    assert response.status_code == 200
    event = response.json()
    staff_id = next(tc["id"] for tc in event["ticket_classes"] if tc["name"] == "Staff")
    return event, staff_id


def test_quote_refuses_class_reserved_for_another_role(client):
    event, staff_id = _create_role_gated_event(client)

    member = client.post(
        f"/events/{event['id']}/quote",
        json={"tickets_required": 1, "role_id": "member", "ticket_class_id": staff_id},
    )
    guest = client.post(
        f"/events/{event['id']}/quote",
        json={"tickets_required": 1, "role_id": "staff", "is_guest": True, "ticket_class_id": staff_id},
    )
    staff = client.post(
        f"/events/{event['id']}/quote",
        json={"tickets_required": 1, "role_id": "staff", "ticket_class_id": staff_id},
    )

    assert member.status_code == 400
    assert "not available to your role" in member.json()["detail"]
    assert guest.status_code == 400
    assert staff.status_code == 200
    assert _money(staff.json()["total_cost"]) == Decimal("5.00")


def test_booking_rechecks_role_for_ticket_class(client):
    event, staff_id = _create_role_gated_event(client)
    org_id, _ = _seed_org()
    staff_priced = dict(ticket_class_id=staff_id, total_cost="5.00", account_amount="5.00")

    member = client.post("/bookings", json=_member_booking(event, org_id, role_id="member", **staff_priced))
    staff = client.post(
        "/bookings",
        json=_member_booking(event, org_id, key="key-2", email="grace@school.org", role_id="staff", **staff_priced),
    )

    assert member.status_code == 400
    assert staff.status_code == 200


# ---------------------
# PROGRAMME EVENTS
# ---------------------

def test_programme_event_spends_ticket_balance(client):
    event = _create_event(client, program_tag="LEAD")
    org_id, _ = _seed_org(program_tickets={"LEAD": 2})
    programme = dict(total_cost="0", account_amount="0", payment_method="program_tickets", program_tag="LEAD")

    links = client.post(
        "/bookings",
        json=_member_booking(
            event,
            org_id,
            registration_mode="links",
            tickets_required=2,
            number_of_links=2,
            attendees=[],
            **programme,
        ),
    )
    short = client.post("/bookings", json=_member_booking(event, org_id, key="key-2", **programme))

    assert links.status_code == 200
    assert short.status_code == 409
    assert "Insufficient program tickets" in short.json()["detail"]
    funding = client.get(f"/organizations/{org_id}/funding").json()
    assert funding["program_ticket_balances"] == {"LEAD": 0}
