# booking_engine/application/payment_service.py

import logging
from decimal import Decimal
from uuid import uuid4

from sqlalchemy.orm import Session

from booking_engine.domain.exceptions import (
    IdempotencyConflictError,
    PaymentError,
    ValidationError,
)
from booking_engine.domain.money import to_minor_units
from booking_engine.infrastructure.db.models import PaymentIntentRecord
from booking_engine.infrastructure.gateway.razorpay_gateway import RazorpayGateway
from booking_engine.infrastructure.repositories.payment_intent_repository import PaymentIntentRepository

logger = logging.getLogger(__name__)

_SETTLED_STATUSES = ("CONFIRMED", "CONSUMED")


class PaymentIntentService:
    """Creates gateway orders for card balances and records their confirmation."""

    def __init__(self, db: Session, gateway: RazorpayGateway):
        self.db = db
        self.gateway = gateway
        self.repository = PaymentIntentRepository(db)

    def create_intent(
        self,
        amount: Decimal,
        currency: str,
        payer_email: str,
        metadata: dict,
    ) -> PaymentIntentRecord:
        amount_pence = to_minor_units(amount)
        if amount_pence <= 0:
            raise ValidationError("Payment amount must be greater than zero.")
        if not payer_email or not payer_email.strip():
            raise ValidationError("A payer email is required for card payments.")

        receipt = str(metadata.get("idempotency_key") or uuid4().hex)
        order = self.gateway.create_order(
            amount_pence=amount_pence,
            currency=currency,
            receipt=receipt,
            metadata=metadata,
        )

        record = self.repository.add(
            intent_id=order["id"],
            amount_pence=amount_pence,
            currency=currency.upper(),
            payer_email=payer_email.strip(),
            metadata=metadata,
        )
        self.db.flush()
        logger.info(
            "Created payment intent %s for %s pence (event_id=%s)",
            record.id,
            amount_pence,
            metadata.get("event_id"),
        )
        return record

    def confirm(self, intent_id: str, payment_id: str, signature: str) -> PaymentIntentRecord:
        record = self.repository.lock(intent_id)
        if not record:
            raise ValueError("Payment intent not found")

        if record.status in _SETTLED_STATUSES:
            if record.payment_id == payment_id:
                return record
            raise IdempotencyConflictError("Payment intent already confirmed with another payment.")

        if not self.gateway.verify_payment(intent_id, payment_id, signature):
            raise PaymentError("Invalid payment signature")

        record.status = "CONFIRMED"
        record.payment_id = payment_id
        self.db.flush()
        logger.info("Payment intent %s confirmed with payment %s", intent_id, payment_id)
        return record

    def list_unreconciled(self, limit: int = 50) -> list[PaymentIntentRecord]:
        records = self.repository.list_unreconciled(limit=limit)
        if records:
            logger.warning("%s confirmed payment(s) have no booking yet.", len(records))
        return records
