# tests/unit/test_http_clients.py

import json
from decimal import Decimal

import httpx
import pytest

from booking_engine.domain.exceptions import InfrastructureError, PaymentError, PersistenceError
from booking_engine.domain.models import BookingRequest, RegistrationMode
from booking_engine.infrastructure.clients.http_clients import (
    HttpBookingStore,
    HttpDuplicateCheckClient,
    HttpFundingProvider,
    HttpPaymentIntentClient,
    RazorpayCheckoutConfirmer,
    make_async_client,
)


def _client(handler):
    return make_async_client(base_url="http://booking.test", transport=httpx.MockTransport(handler))


def _request(**overrides):
    fields = dict(
        idempotency_key="key-1",
        event_id="event-1",
        registration_mode=RegistrationMode.LINKS,
        tickets_required=2,
        attendees=(),
        ticket_class_id=None,
        total_cost=Decimal("0.00"),
        voucher_ids=(),
        voucher_applied=Decimal("0.00"),
        training_fund_applied=Decimal("0.00"),
        account_amount=Decimal("0.00"),
        card_amount=Decimal("0.00"),
        payment_method="fully_covered",
        number_of_links=2,
    )
    fields.update(overrides)
    return BookingRequest(**fields)


def _refuse(request):
    raise httpx.ConnectError("connection refused", request=request)


@pytest.mark.asyncio
async def test_funding_provider_parses_snapshot():
    def handler(request):
        assert request.url.path == "/organizations/org-1/funding"
        return httpx.Response(
            200,
            json={
                "success": True,
                "organization_id": "org-1",
                "training_fund_balance": "100.00",
                "program_ticket_balances": {"LEAD": 4},
                "vouchers": [{"id": "v1", "value": "30.00"}],
                "vouchers_enabled": True,
                "training_fund_enabled": False,
            },
        )

    async with _client(handler) as client:
        funding = await HttpFundingProvider(client).get_funding("org-1")

    assert funding.balances.training_fund_balance == Decimal("100.00")
    assert funding.balances.program_tickets_for("LEAD") == 4
    assert funding.selected_voucher_value(["v1"]) == Decimal("30.00")
    assert funding.training_fund_enabled is False


@pytest.mark.asyncio
async def test_funding_provider_maps_errors():
    async with _client(lambda request: httpx.Response(404, json={"detail": "Organization not found"})) as client:
        with pytest.raises(InfrastructureError, match="Organization not found"):
            await HttpFundingProvider(client).get_funding("org-1")


@pytest.mark.asyncio
async def test_duplicate_check_posts_emails():
    seen = {}

    def handler(request):
        seen.update(json.loads(request.content))
        return httpx.Response(
            200,
            json={"success": True, "has_duplicates": True, "duplicates": [{"name": "Sam", "email": "a@x.org"}]},
        )

    async with _client(handler) as client:
        result = await HttpDuplicateCheckClient(client).check("event-1", ["a@x.org"])

    assert seen == {"event_id": "event-1", "attendee_emails": ["a@x.org"]}
    assert result.has_duplicates
    assert result.duplicates == ({"name": "Sam", "email": "a@x.org"},)


@pytest.mark.asyncio
async def test_duplicate_check_transport_error():
    async with _client(_refuse) as client:
        with pytest.raises(InfrastructureError):
            await HttpDuplicateCheckClient(client).check("event-1", ["a@x.org"])


@pytest.mark.asyncio
async def test_create_intent_returns_handle():
    def handler(request):
        body = json.loads(request.content)
        assert body["amount"] == "40.00"
        return httpx.Response(
            200,
            json={
                "success": True,
                "intent_id": "order_9",
                "client_secret": "order_9",
                "amount": "40.00",
                "currency": "GBP",
                "key_id": "rzp_test",
            },
        )

    async with _client(handler) as client:
        handle = await HttpPaymentIntentClient(client).create_intent(Decimal("40"), "GBP", "p@x.org", {})

    assert handle.intent_id == "order_9"
    assert handle.client_secret == "order_9"


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code, error", [(402, PaymentError), (502, InfrastructureError)])
async def test_create_intent_maps_status_codes(status_code, error):
    async with _client(lambda request: httpx.Response(status_code, json={"detail": "nope"})) as client:
        with pytest.raises(error, match="nope"):
            await HttpPaymentIntentClient(client).create_intent(Decimal("40"), "GBP", "p@x.org", {})


@pytest.mark.asyncio
async def test_checkout_confirmer_verifies_signature():
    posted = {}

    def handler(request):
        posted["path"] = request.url.path
        posted["body"] = json.loads(request.content)
        return httpx.Response(200, json={"success": True, "intent_id": "order_9", "status": "CONFIRMED"})

    async def widget(order_id):
        return {"razorpay_payment_id": "pay_1", "razorpay_signature": "sig"}

    async with _client(handler) as client:
        result = await RazorpayCheckoutConfirmer(client, widget).confirm("order_9")

    assert result.succeeded
    assert posted["path"] == "/payment-intents/order_9/confirm"
    assert posted["body"] == {"razorpay_payment_id": "pay_1", "razorpay_signature": "sig"}


@pytest.mark.asyncio
async def test_checkout_confirmer_reports_rejection():
    async def widget(order_id):
        return {"razorpay_payment_id": "pay_1", "razorpay_signature": "bad"}

    handler = lambda request: httpx.Response(402, json={"detail": "Invalid payment signature"})
    async with _client(handler) as client:
        result = await RazorpayCheckoutConfirmer(client, widget).confirm("order_9")

    assert not result.succeeded
    assert result.reason == "Invalid payment signature"


@pytest.mark.asyncio
async def test_checkout_confirmer_dismissed_widget():
    async def widget(order_id):
        return None

    async with _client(_refuse) as client:
        result = await RazorpayCheckoutConfirmer(client, widget).confirm("order_9")

    assert not result.succeeded


@pytest.mark.asyncio
async def test_booking_store_returns_booking_id():
    def handler(request):
        body = json.loads(request.content)
        assert body["idempotency_key"] == "key-1"
        assert body["registration_mode"] == "links"
        return httpx.Response(200, json={"success": True, "booking_id": "b-1", "status": "CONFIRMED"})

    async with _client(handler) as client:
        assert await HttpBookingStore(client).create_booking(_request()) == "b-1"


@pytest.mark.asyncio
async def test_booking_store_surfaces_duplicate_message():
    detail = {"message": "Already registered for this event: a@x.org", "duplicates": []}
    async with _client(lambda request: httpx.Response(409, json={"detail": detail})) as client:
        with pytest.raises(PersistenceError, match="Already registered"):
            await HttpBookingStore(client).create_booking(_request())


@pytest.mark.asyncio
async def test_booking_store_transport_error_is_persistence_error():
    async with _client(_refuse) as client:
        with pytest.raises(PersistenceError, match="Could not reach"):
            await HttpBookingStore(client).create_booking(_request())
