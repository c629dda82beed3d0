

class EventBookingError(Exception):
    """
    Base exception for all domain-level errors
    inside the event booking engine.
    """


class InvalidStateTransitionError(EventBookingError):
    """
    Raised when an illegal payment intent state transition is attempted.
    """

    def __init__(self, from_state: str, to_state: str):
        self.from_state = from_state
        self.to_state = to_state

        message = (
            f"Illegal state transition attempted: "
            f"{from_state} -> {to_state}"
        )
        super().__init__(message)


class ValidationError(EventBookingError):
    """Raised when attendee, name or quantity input cannot be booked."""


class CapacityError(EventBookingError):
    """Raised when the organization holds too few programme tickets."""


class DuplicateError(EventBookingError):
    """
    Raised when attendees are already registered for the event.
    Carries the duplicate set so the caller can let the user resolve it.
    """

    def __init__(self, duplicates: list[dict]):
        self.duplicates = duplicates
        emails = ", ".join(item.get("email", "") for item in duplicates)
        super().__init__(f"Already registered for this event: {emails}")


class PaymentError(EventBookingError):
    """Raised when the card gateway declines or cannot create an intent."""


class PersistenceError(EventBookingError):
    """Raised when the booking store rejects the final booking."""


class StaleAllocationError(PersistenceError):
    """Raised when balances or vouchers changed since the allocation was computed."""


class InfrastructureError(EventBookingError):
    """Raised on transport failures talking to an external collaborator."""


class IdempotencyConflictError(EventBookingError):
    """Raised when an idempotent request conflicts with previous data."""
