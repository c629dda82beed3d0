# booking_engine/infrastructure/repositories/payment_intent_repository.py

import json

from sqlalchemy.orm import Session
from sqlalchemy import select

from booking_engine.infrastructure.db.models import PaymentIntentRecord


class PaymentIntentRepository:

    def __init__(self, db: Session):
        self.db = db

    def add(
        self,
        intent_id: str,
        amount_pence: int,
        currency: str,
        payer_email: str,
        metadata: dict,
    ) -> PaymentIntentRecord:
        record = PaymentIntentRecord(
            id=intent_id,
            amount_pence=amount_pence,
            currency=currency,
            payer_email=payer_email,
            intent_metadata=json.dumps(metadata, sort_keys=True, default=str),
            status="CREATED",
        )
        self.db.add(record)
        return record

    def lock(self, intent_id: str) -> PaymentIntentRecord | None:
        stmt = (
            select(PaymentIntentRecord)
            .where(PaymentIntentRecord.id == intent_id)
            .with_for_update()
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def list_unreconciled(self, limit: int = 50) -> list[PaymentIntentRecord]:
        """Confirmed payments that no booking has consumed."""
        stmt = (
            select(PaymentIntentRecord)
            .where(PaymentIntentRecord.status == "CONFIRMED")
            .where(PaymentIntentRecord.booking_id.is_(None))
            .order_by(PaymentIntentRecord.created_at)
            .limit(limit)
        )
        return list(self.db.execute(stmt).scalars().all())
