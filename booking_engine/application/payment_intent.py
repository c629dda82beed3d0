import asyncio
import logging
from decimal import Decimal

from booking_engine.application.ports import (
    CardConfirmer,
    ConfirmationResult,
    IntentHandle,
    PaymentIntentClient,
)
from booking_engine.domain.exceptions import InfrastructureError, PaymentError
from booking_engine.domain.money import ZERO, Amount, to_money
from booking_engine.domain.state_machine import PaymentIntentStateMachine, PaymentIntentStatus

logger = logging.getLogger(__name__)


class PaymentIntentOrchestrator:
    """
    Drives one card payment attempt through the hosted gateway:
    create intent -> collect card details -> confirm.

    One instance per booking attempt. Nothing here is persisted; the
    intent id only matters once the gateway reports success.
    """

    def __init__(
        self,
        intents: PaymentIntentClient,
        confirmer: CardConfirmer,
        currency: str = "GBP",
    ):
        self.intents = intents
        self.confirmer = confirmer
        self.currency = currency
        self.status = PaymentIntentStatus.IDLE
        self.amount: Decimal = ZERO
        self.intent_id: str | None = None
        self.client_secret: str | None = None
        self.error: str | None = None
        self.ready = asyncio.Event()
        self._outcome: asyncio.Future | None = None

    async def request_intent(
        self,
        amount: Amount,
        payer_email: str,
        metadata: dict | None = None,
    ) -> IntentHandle:
        amount = to_money(amount)
        if amount <= ZERO:
            raise PaymentError("There is no remaining balance to pay by card.")
        if not (payer_email or "").strip():
            raise PaymentError("An email address is required to pay by card.")

        self._transition(PaymentIntentStatus.INTENT_REQUESTED)
        self.amount = amount
        self.error = None

        try:
            handle = await self.intents.create_intent(
                amount=amount,
                currency=self.currency,
                payer_email=payer_email.strip(),
                metadata=dict(metadata or {}),
            )
        except (PaymentError, InfrastructureError) as exc:
            self.error = str(exc)
            self._transition(PaymentIntentStatus.FAILED)
            logger.warning("Payment intent creation failed: %s", exc)
            raise PaymentError(f"Failed to initialize payment: {exc}") from exc

        self.intent_id = handle.intent_id
        self.client_secret = handle.client_secret
        self._outcome = asyncio.get_running_loop().create_future()
        self._transition(PaymentIntentStatus.INTENT_READY)
        self.ready.set()
        return handle

    async def submit_card(self) -> ConfirmationResult:
        """
        Confirm the intent with the card details the user entered.
        After a decline the same client secret is reused.
        """
        if not self.client_secret:
            raise PaymentError("No payment is awaiting card details.")

        self._transition(PaymentIntentStatus.CONFIRMING)
        self.error = None
        try:
            result = await self.confirmer.confirm(self.client_secret)
        except InfrastructureError as exc:
            result = ConfirmationResult(succeeded=False, reason=str(exc))

        if not result.succeeded:
            self.error = result.reason or "Payment was declined."
            self._transition(PaymentIntentStatus.FAILED)
            raise PaymentError(self.error)

        self._transition(PaymentIntentStatus.SUCCEEDED)
        logger.info("Payment intent %s confirmed for %s %s.", self.intent_id, self.amount, self.currency)
        self._resolve(PaymentIntentStatus.SUCCEEDED)
        return result

    def cancel(self) -> None:
        """User dismissed card entry. Drops the intent and returns to IDLE."""
        self._transition(PaymentIntentStatus.CANCELLED)
        self._discard()
        self._resolve(PaymentIntentStatus.CANCELLED)
        self._transition(PaymentIntentStatus.IDLE)

    def reset(self) -> None:
        """
        Back to IDLE after a failure so the user can start over.
        An intent abandoned this way counts as cancelled for anyone
        waiting on the outcome.
        """
        if self.status == PaymentIntentStatus.IDLE:
            return
        self._transition(PaymentIntentStatus.IDLE)
        self._discard()
        self._resolve(PaymentIntentStatus.CANCELLED)

    async def wait_for_outcome(self) -> PaymentIntentStatus:
        """Suspends until the intent succeeds or is cancelled."""
        if self._outcome is None:
            raise PaymentError("No payment intent has been created.")
        return await self._outcome

    @property
    def is_pending(self) -> bool:
        return PaymentIntentStateMachine.is_pending(self.status)

    def _discard(self) -> None:
        self.intent_id = None
        self.client_secret = None
        self.ready.clear()

    def _resolve(self, status: PaymentIntentStatus) -> None:
        if self._outcome is not None and not self._outcome.done():
            self._outcome.set_result(status)

    def _transition(self, to_status: PaymentIntentStatus) -> None:
        PaymentIntentStateMachine.validate_transition(self.status, to_status)
        self.status = to_status
