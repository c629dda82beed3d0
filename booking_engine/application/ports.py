"""Collaborator interfaces the booking engine talks through.

Implementations must be swappable: the engine never knows whether it is
talking to the HTTP service, a database or a test double.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal

from booking_engine.domain.models import BookingRequest, FundingSnapshot


@dataclass(frozen=True)
class DuplicateCheckResult:
    has_duplicates: bool
    duplicates: tuple[dict, ...] = ()


@dataclass(frozen=True)
class IntentHandle:
    intent_id: str
    client_secret: str


@dataclass(frozen=True)
class ConfirmationResult:
    succeeded: bool
    reason: str | None = None


class FundingProvider(ABC):
    """Reads balances and vouchers for an organization."""

    @abstractmethod
    async def get_funding(self, organization_id: str) -> FundingSnapshot:
        """Raises InfrastructureError on transport failure."""
        ...


class DuplicateCheckClient(ABC):

    @abstractmethod
    async def check(self, event_id: str, attendee_emails: list[str]) -> DuplicateCheckResult:
        """Raises InfrastructureError when the check itself could not run."""
        ...


class PaymentIntentClient(ABC):

    @abstractmethod
    async def create_intent(
        self,
        amount: Decimal,
        currency: str,
        payer_email: str,
        metadata: dict,
    ) -> IntentHandle:
        """
        Raises PaymentError when the gateway refuses the intent and
        InfrastructureError on transport failure.
        """
        ...


class CardConfirmer(ABC):
    """The hosted payment SDK's client-side confirmation step."""

    @abstractmethod
    async def confirm(self, client_secret: str) -> ConfirmationResult:
        ...


class BookingStore(ABC):

    @abstractmethod
    async def create_booking(self, request: BookingRequest) -> str:
        """Returns the booking id. Raises PersistenceError on rejection."""
        ...


class DraftStore(ABC):
    """Per-event scratch space for in-progress registration input."""

    @abstractmethod
    def load(self, event_id: str) -> dict | None:
        ...

    @abstractmethod
    def save(self, event_id: str, draft: dict) -> None:
        ...

    @abstractmethod
    def clear(self, event_id: str) -> None:
        ...
