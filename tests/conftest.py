# tests/conftest.py

import os

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"

import pytest
from fastapi.testclient import TestClient

from booking_engine.api.routes.routes import get_gateway
from booking_engine.domain.exceptions import PaymentError
from booking_engine.infrastructure.db.models import Base
from booking_engine.infrastructure.db.session import SessionLocal, engine
from booking_engine.main import app


class FakeGateway:
    """Stands in for RazorpayGateway; a valid signature is 'sig:<order>:<payment>'."""

    key_id = "rzp_test_key"

    def __init__(self):
        self.orders: list[dict] = []
        self.fail_with: Exception | None = None

    def create_order(self, amount_pence, currency, receipt, metadata):
        if self.fail_with is not None:
            raise self.fail_with
        order = {
            "id": f"order_{len(self.orders) + 1}",
            "amount": amount_pence,
            "currency": currency,
            "receipt": receipt,
            "notes": metadata,
        }
        self.orders.append(order)
        return order

    def verify_payment(self, order_id, payment_id, signature):
        return signature == f"sig:{order_id}:{payment_id}"


@pytest.fixture(autouse=True)
def database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def client(gateway):
    app.dependency_overrides[get_gateway] = lambda: gateway
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def declining_gateway(gateway):
    gateway.fail_with = PaymentError("Card currency not supported")
    return gateway
