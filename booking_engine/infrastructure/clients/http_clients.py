# booking_engine/infrastructure/clients/http_clients.py

import logging
import os
from decimal import Decimal
from typing import Awaitable, Callable

import httpx

from booking_engine.application.ports import (
    BookingStore,
    CardConfirmer,
    ConfirmationResult,
    DuplicateCheckClient,
    DuplicateCheckResult,
    FundingProvider,
    IntentHandle,
    PaymentIntentClient,
)
from booking_engine.domain.exceptions import InfrastructureError, PaymentError, PersistenceError
from booking_engine.domain.models import (
    BookingRequest,
    FundingSnapshot,
    OrganizationBalances,
    Voucher,
    VoucherStatus,
)
from booking_engine.domain.money import to_money

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0

# Opens the hosted checkout for an order id. Returns the gateway's
# payment id and signature, or None if the payer dismissed it.
CheckoutWidget = Callable[[str], Awaitable[dict | None]]


def make_async_client(
    base_url: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=base_url or os.getenv("BOOKING_API_URL", "http://localhost:8000"),
        timeout=DEFAULT_TIMEOUT_SECONDS,
        transport=transport,
    )


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"

    if not isinstance(body, dict):
        return str(body)
    detail = body.get("detail") or body.get("error")
    if isinstance(detail, dict):
        return str(detail.get("message") or detail)
    if isinstance(detail, list):
        # FastAPI request validation errors
        return "; ".join(str(item.get("msg", item)) for item in detail if isinstance(item, dict)) or str(detail)
    return str(detail or f"HTTP {response.status_code}")


class HttpFundingProvider(FundingProvider):

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def get_funding(self, organization_id: str) -> FundingSnapshot:
        try:
            response = await self.client.get(f"/organizations/{organization_id}/funding")
        except httpx.HTTPError as exc:
            raise InfrastructureError(f"Could not load funding: {exc}") from exc
        if response.status_code != 200:
            raise InfrastructureError(f"Could not load funding: {_error_detail(response)}")

        body = response.json()
        return FundingSnapshot(
            balances=OrganizationBalances(
                training_fund_balance=to_money(body.get("training_fund_balance")),
                program_ticket_balances={
                    tag: int(count) for tag, count in (body.get("program_ticket_balances") or {}).items()
                },
            ),
            vouchers=tuple(
                Voucher(
                    id=v["id"],
                    organization_id=organization_id,
                    value=to_money(v["value"]),
                    status=VoucherStatus.ACTIVE,
                )
                for v in body.get("vouchers") or []
            ),
            vouchers_enabled=bool(body.get("vouchers_enabled", True)),
            training_fund_enabled=bool(body.get("training_fund_enabled", True)),
        )


class HttpDuplicateCheckClient(DuplicateCheckClient):

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def check(self, event_id: str, attendee_emails: list[str]) -> DuplicateCheckResult:
        try:
            response = await self.client.post(
                "/bookings/duplicates/check",
                json={"event_id": event_id, "attendee_emails": list(attendee_emails)},
            )
        except httpx.HTTPError as exc:
            raise InfrastructureError(f"Duplicate check unavailable: {exc}") from exc
        if response.status_code != 200:
            raise InfrastructureError(f"Duplicate check failed: {_error_detail(response)}")

        body = response.json()
        if not body.get("success", True):
            raise InfrastructureError(f"Duplicate check failed: {body.get('error')}")
        return DuplicateCheckResult(
            has_duplicates=bool(body.get("has_duplicates")),
            duplicates=tuple(body.get("duplicates") or ()),
        )


class HttpPaymentIntentClient(PaymentIntentClient):

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def create_intent(
        self,
        amount: Decimal,
        currency: str,
        payer_email: str,
        metadata: dict,
    ) -> IntentHandle:
        try:
            response = await self.client.post(
                "/payment-intents",
                json={
                    "amount": str(to_money(amount)),
                    "currency": currency,
                    "payer_email": payer_email,
                    "metadata": metadata,
                },
            )
        except httpx.HTTPError as exc:
            raise InfrastructureError(f"Payment service unavailable: {exc}") from exc

        if response.status_code >= 500:
            raise InfrastructureError(_error_detail(response))
        if response.status_code != 200:
            raise PaymentError(_error_detail(response))

        body = response.json()
        if not body.get("success", True) or not body.get("client_secret"):
            raise PaymentError(body.get("error") or "Payment service did not return a client secret.")
        return IntentHandle(intent_id=body["intent_id"], client_secret=body["client_secret"])


class RazorpayCheckoutConfirmer(CardConfirmer):
    """
    Confirms a card payment through the hosted Razorpay checkout.

    The widget callback collects the card; the signature it hands back is
    then verified server side, which marks the intent CONFIRMED.
    """

    def __init__(self, client: httpx.AsyncClient, widget: CheckoutWidget):
        self.client = client
        self.widget = widget

    async def confirm(self, client_secret: str) -> ConfirmationResult:
        checkout = await self.widget(client_secret)
        if not checkout:
            return ConfirmationResult(succeeded=False, reason="Payment was not completed.")

        try:
            response = await self.client.post(
                f"/payment-intents/{client_secret}/confirm",
                json={
                    "razorpay_payment_id": checkout["razorpay_payment_id"],
                    "razorpay_signature": checkout["razorpay_signature"],
                },
            )
        except httpx.HTTPError as exc:
            raise InfrastructureError(f"Payment confirmation unavailable: {exc}") from exc

        if response.status_code != 200:
            return ConfirmationResult(succeeded=False, reason=_error_detail(response))
        return ConfirmationResult(succeeded=True)


class HttpBookingStore(BookingStore):

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def create_booking(self, request: BookingRequest) -> str:
        try:
            response = await self.client.post("/bookings", json=request.to_payload())
        except httpx.HTTPError as exc:
            logger.warning("Booking service unreachable for key=%s", request.idempotency_key)
            raise PersistenceError(f"Could not reach the booking service: {exc}") from exc

        if response.status_code != 200:
            raise PersistenceError(_error_detail(response))

        body = response.json()
        if not body.get("success", True) or not body.get("booking_id"):
            raise PersistenceError(body.get("error") or "Booking service did not return a booking id.")
        return body["booking_id"]
