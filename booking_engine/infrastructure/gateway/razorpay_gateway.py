# booking_engine/infrastructure/gateway/razorpay_gateway.py

import logging
import os

import requests

from booking_engine.domain.exceptions import InfrastructureError, PaymentError

logger = logging.getLogger(__name__)

# Razorpay accepts at most 15 notes per order.
MAX_NOTES = 15


def _sdk():
    # Imported on first use so the API can start without the gateway configured.
    import razorpay

    return razorpay


def _notes_from_metadata(metadata: dict) -> dict:
    notes = {}
    for key, value in sorted(metadata.items()):
        if value is None:
            continue
        notes[str(key)] = str(value)[:256]
        if len(notes) == MAX_NOTES:
            break
    return notes


class RazorpayGateway:
    """
    Hosted card gateway. A Razorpay order plays the part of the payment
    intent: its id is both the intent id and the token the checkout widget
    is opened with, and the checkout's signature confirms the payment.
    """

    def __init__(self, key_id: str, key_secret: str):
        self.key_id = key_id
        self._key_secret = key_secret
        self._client = None

    @classmethod
    def from_env(cls) -> "RazorpayGateway":
        key_id = os.getenv("RAZORPAY_KEY_ID")
        key_secret = os.getenv("RAZORPAY_KEY_SECRET")
        if not key_id or not key_secret:
            raise InfrastructureError(
                "Razorpay keys not configured. Set RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET."
            )
        return cls(key_id=key_id, key_secret=key_secret)

    @property
    def client(self):
        if self._client is None:
            self._client = _sdk().Client(auth=(self.key_id, self._key_secret))
        return self._client

    def create_order(
        self,
        amount_pence: int,
        currency: str,
        receipt: str,
        metadata: dict,
    ) -> dict:
        razorpay = _sdk()
        try:
            order = self.client.order.create(
                {
                    "amount": amount_pence,
                    "currency": currency.upper(),
                    "receipt": receipt[:40],
                    "notes": _notes_from_metadata(metadata),
                }
            )
        except razorpay.errors.BadRequestError as exc:
            raise PaymentError(str(exc)) from exc
        except (razorpay.errors.ServerError, razorpay.errors.GatewayError, requests.RequestException) as exc:
            logger.exception("Razorpay order creation failed for receipt=%s", receipt)
            raise InfrastructureError("Payment gateway unavailable.") from exc

        if not order.get("id"):
            raise PaymentError("Payment gateway did not return an order id.")
        return order

    def verify_payment(self, order_id: str, payment_id: str, signature: str) -> bool:
        razorpay = _sdk()
        try:
            self.client.utility.verify_payment_signature(
                {
                    "razorpay_order_id": order_id,
                    "razorpay_payment_id": payment_id,
                    "razorpay_signature": signature,
                }
            )
        except razorpay.errors.SignatureVerificationError:
            logger.warning("Invalid payment signature for order_id=%s payment_id=%s", order_id, payment_id)
            return False
        return True
