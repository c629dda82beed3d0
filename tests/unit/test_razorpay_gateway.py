# tests/unit/test_razorpay_gateway.py

from types import SimpleNamespace

import pytest
import requests

from booking_engine.domain.exceptions import InfrastructureError, PaymentError
from booking_engine.infrastructure.gateway import razorpay_gateway
from booking_engine.infrastructure.gateway.razorpay_gateway import RazorpayGateway


class BadRequestError(Exception):
    pass


class ServerError(Exception):
    pass


class GatewayError(Exception):
    pass


class SignatureVerificationError(Exception):
    pass


FAKE_ERRORS = SimpleNamespace(
    BadRequestError=BadRequestError,
    ServerError=ServerError,
    GatewayError=GatewayError,
    SignatureVerificationError=SignatureVerificationError,
)


class FakeOrders:

    def __init__(self, outcome):
        self.outcome = outcome
        self.payloads = []

    def create(self, payload):
        self.payloads.append(payload)
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


class FakeUtility:

    def verify_payment_signature(self, params):
        if params["razorpay_signature"] != "good":
            raise SignatureVerificationError("mismatch")
        return True


@pytest.fixture(autouse=True)
def fake_sdk(monkeypatch):
    monkeypatch.setattr(razorpay_gateway, "_sdk", lambda: SimpleNamespace(errors=FAKE_ERRORS))


def _gateway(outcome=None):
    gateway = RazorpayGateway(key_id="rzp_test", key_secret="secret")
    gateway._client = SimpleNamespace(order=FakeOrders(outcome or {"id": "order_1"}), utility=FakeUtility())
    return gateway


def test_create_order_sends_minor_units_and_notes():
    gateway = _gateway()

    order = gateway.create_order(4000, "gbp", "x" * 60, {"event_id": "e1", "organization_id": None})

    payload = gateway.client.order.payloads[0]
    assert order["id"] == "order_1"
    assert payload["amount"] == 4000
    assert payload["currency"] == "GBP"
    assert len(payload["receipt"]) == 40
    assert payload["notes"] == {"event_id": "e1"}


def test_notes_are_limited():
    notes = razorpay_gateway._notes_from_metadata({f"k{i:02d}": "v" * 300 for i in range(20)})

    assert len(notes) == razorpay_gateway.MAX_NOTES
    assert all(len(v) == 256 for v in notes.values())


@pytest.mark.parametrize(
    "error, expected",
    [
        (BadRequestError("amount too small"), PaymentError),
        (ServerError("boom"), InfrastructureError),
        (requests.ConnectionError("reset"), InfrastructureError),
    ],
)
def test_create_order_maps_gateway_errors(error, expected):
    with pytest.raises(expected):
        _gateway(error).create_order(4000, "GBP", "r1", {})


def test_create_order_without_id():
    with pytest.raises(PaymentError):
        _gateway({"status": "created"}).create_order(4000, "GBP", "r1", {})


def test_verify_payment():
    gateway = _gateway()

    assert gateway.verify_payment("order_1", "pay_1", "good")
    assert not gateway.verify_payment("order_1", "pay_1", "forged")


def test_from_env_requires_keys(monkeypatch):
    monkeypatch.delenv("RAZORPAY_KEY_ID", raising=False)
    monkeypatch.delenv("RAZORPAY_KEY_SECRET", raising=False)

    with pytest.raises(InfrastructureError):
        RazorpayGateway.from_env()

    monkeypatch.setenv("RAZORPAY_KEY_ID", "rzp_test")
    monkeypatch.setenv("RAZORPAY_KEY_SECRET", "secret")
    assert RazorpayGateway.from_env().key_id == "rzp_test"
