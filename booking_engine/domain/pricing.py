# booking_engine/domain/pricing.py

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence

from booking_engine.domain.exceptions import ValidationError
from booking_engine.domain.models import (
    BogoMode,
    BogoOffer,
    BulkDiscountOffer,
    CostBreakdown,
    EventInfo,
    NoOffer,
    OfferConfig,
    TicketClass,
)
from booking_engine.domain.money import ZERO, to_money

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class OfferOutcome:
    payable_quantity: int
    free_quantity: int
    discount_amount: Decimal
    discount_description: str


_NOTHING = OfferOutcome(0, 0, ZERO, "")


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"


def _bogo(offer: BogoOffer, tickets_required: int) -> OfferOutcome:
    bundle = offer.buy_quantity + offer.free_quantity
    full_bundles, remainder = divmod(tickets_required, bundle)

    if offer.mode == BogoMode.BUY_X_GET_Y_FREE:
        # Tickets past the buy portion of a partial bundle are already free.
        payable = full_bundles * offer.buy_quantity + min(remainder, offer.buy_quantity)
    else:
        # A partial bundle is paid in full.
        payable = full_bundles * offer.buy_quantity + remainder

    free = tickets_required - payable
    description = ""
    if free > 0:
        description = (
            f"Buy {offer.buy_quantity} get {offer.free_quantity} free: "
            f"{_plural(free, 'free ticket')}"
        )
    return OfferOutcome(payable, free, ZERO, description)


def _bulk(base_price: Decimal, offer: BulkDiscountOffer, tickets_required: int) -> OfferOutcome:
    percentage = min(HUNDRED, max(ZERO, Decimal(str(offer.percentage))))
    if tickets_required < offer.threshold_quantity or percentage == 0:
        return OfferOutcome(tickets_required, 0, ZERO, "")

    discount = to_money(base_price * tickets_required * percentage / HUNDRED)
    description = (
        f"{percentage.normalize():f}% bulk discount "
        f"({offer.threshold_quantity}+ tickets)"
    )
    return OfferOutcome(tickets_required, 0, discount, description)


def _is_degenerate(offer: OfferConfig) -> bool:
    if isinstance(offer, BogoOffer):
        return offer.buy_quantity <= 0 or offer.free_quantity <= 0
    if isinstance(offer, BulkDiscountOffer):
        return offer.threshold_quantity <= 0
    return False


def calculate_offer(
    base_price: Decimal,
    offer: OfferConfig | None,
    tickets_required: int,
) -> OfferOutcome:
    """
    Split the requested quantity into payable and free tickets
    and work out any money discount for the offer.
    """
    if tickets_required <= 0:
        return _NOTHING

    if offer is None or isinstance(offer, NoOffer):
        return OfferOutcome(tickets_required, 0, ZERO, "")

    if _is_degenerate(offer):
        logger.warning("Ignoring misconfigured offer %r; pricing as zero.", offer)
        return _NOTHING

    if isinstance(offer, BogoOffer):
        return _bogo(offer, tickets_required)
    if isinstance(offer, BulkDiscountOffer):
        return _bulk(to_money(base_price), offer, tickets_required)

    raise TypeError(f"Unsupported offer type: {type(offer)}")


def select_ticket_class(
    ticket_classes: Sequence[TicketClass],
    role_id: str | None,
) -> TicketClass | None:
    """Pick the default eligible ticket class for a role, else the first eligible one."""
    eligible = [tc for tc in ticket_classes if tc.is_available_to(role_id)]
    if not eligible:
        return None
    for ticket_class in eligible:
        if ticket_class.is_default:
            return ticket_class
    return eligible[0]


def check_ticket_class(event: EventInfo, ticket_class: TicketClass, role_id: str | None) -> None:
    """An explicitly chosen class must belong to the event and be open to the role."""
    if ticket_class not in event.ticket_classes:
        raise ValidationError("Unknown ticket class for this event.")
    if not ticket_class.is_available_to(role_id):
        raise ValidationError(f"The {ticket_class.name} ticket is not available to your role.")


class PricingEngine:
    """
    Turns a ticket class and a requested quantity into a cost breakdown.
    Stateless: every call recomputes from its inputs.
    """

    @staticmethod
    def compute(ticket_class: TicketClass | None, tickets_required: int) -> CostBreakdown:
        tickets_required = max(0, tickets_required)
        if ticket_class is None:
            base_price = ZERO
            offer: OfferConfig = NoOffer()
        else:
            base_price = to_money(ticket_class.base_price)
            offer = ticket_class.offer

        outcome = calculate_offer(base_price, offer, tickets_required)
        gross = base_price * outcome.payable_quantity
        total_cost = max(ZERO, to_money(gross - outcome.discount_amount))

        return CostBreakdown(
            base_price=base_price,
            tickets_required=tickets_required,
            payable_quantity=outcome.payable_quantity,
            free_quantity=outcome.free_quantity,
            discount_amount=outcome.discount_amount,
            discount_description=outcome.discount_description,
            total_cost=total_cost,
        )
