# booking_engine/infrastructure/repositories/booking_repository.py

from sqlalchemy.orm import Session
from sqlalchemy import select

from booking_engine.infrastructure.db.models import Booking, BookingAttendee


class BookingRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_idempotency_key(
        self,
        idempotency_key: str,
    ) -> Booking | None:

        stmt = select(Booking).where(
            Booking.idempotency_key == idempotency_key
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def get_by_id(
        self,
        booking_id: str,
    ) -> Booking | None:

        stmt = select(Booking).where(Booking.id == booking_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def find_registered(
        self,
        event_id: str,
        emails: list[str],
    ) -> list[BookingAttendee]:
        """Attendees already booked on the event, matched on normalized email."""
        if not emails:
            return []
        stmt = (
            select(BookingAttendee)
            .where(BookingAttendee.event_id == event_id)
            .where(BookingAttendee.email.in_(emails))
            .order_by(BookingAttendee.email)
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_attendees(self, booking_id: str) -> list[BookingAttendee]:
        stmt = (
            select(BookingAttendee)
            .where(BookingAttendee.booking_id == booking_id)
            .order_by(BookingAttendee.email)
        )
        return list(self.db.execute(stmt).scalars().all())

    def add_booking(self, booking: Booking, attendees: list[BookingAttendee]) -> Booking:
        self.db.add(booking)
        self.db.flush()
        for attendee in attendees:
            attendee.booking_id = booking.id
            attendee.event_id = booking.event_id
            self.db.add(attendee)
        return booking
