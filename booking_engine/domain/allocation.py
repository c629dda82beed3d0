# booking_engine/domain/allocation.py

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from booking_engine.domain.money import ZERO, Amount, is_settled, to_money


class RemainingMethod(str, Enum):
    ACCOUNT = "account"
    CARD = "card"


@dataclass(frozen=True)
class AllocationResult:
    """
    How a total cost is covered.
    voucher -> training fund -> remaining balance, in that order.
    """

    total_cost: Decimal
    voucher_applied: Decimal
    training_fund_applied: Decimal
    training_fund_max: Decimal
    remaining_balance: Decimal
    remaining_method: RemainingMethod
    purchase_order_number: str = ""
    po_supply_later: bool = False

    @property
    def is_fully_resolved(self) -> bool:
        if is_settled(self.remaining_balance):
            return True
        if self.remaining_method == RemainingMethod.CARD:
            return True
        return bool(self.purchase_order_number.strip()) or self.po_supply_later

    @property
    def needs_card_payment(self) -> bool:
        return (
            not is_settled(self.remaining_balance)
            and self.remaining_method == RemainingMethod.CARD
        )

    @property
    def payment_method(self) -> str:
        if is_settled(self.remaining_balance):
            return "fully_covered"
        return self.remaining_method.value


def resolve_remaining_method(
    requested: RemainingMethod | None,
    *,
    is_guest: bool = False,
    is_authenticated: bool = True,
) -> RemainingMethod:
    if is_guest:
        # Account billing is a member privilege.
        return RemainingMethod.CARD
    if requested is not None:
        return requested
    return RemainingMethod.ACCOUNT if is_authenticated else RemainingMethod.CARD


def allocate(
    total_cost: Amount,
    voucher_value: Amount,
    training_fund_balance: Amount,
    training_fund_requested: Amount | None = None,
    remaining_method: RemainingMethod | None = None,
    *,
    purchase_order_number: str = "",
    po_supply_later: bool = False,
    is_guest: bool = False,
    is_authenticated: bool = True,
    vouchers_enabled: bool = True,
    training_fund_enabled: bool = True,
) -> AllocationResult:
    """
    Spread total_cost over the funding tiers.

    Each tier is capped by what is left after the tiers before it;
    a caller-chosen training fund amount can only lower the applied
    amount, never raise it past the cap. Leaving training_fund_requested
    as None applies the full cap.
    """
    total = max(ZERO, to_money(total_cost))

    vouchers = max(ZERO, to_money(voucher_value)) if vouchers_enabled and not is_guest else ZERO
    voucher_applied = min(vouchers, total)

    if training_fund_enabled and not is_guest:
        fund_max = min(max(ZERO, to_money(training_fund_balance)), total - voucher_applied)
    else:
        fund_max = ZERO

    if training_fund_requested is None:
        fund_applied = fund_max
    else:
        fund_applied = min(fund_max, max(ZERO, to_money(training_fund_requested)))

    remaining = max(ZERO, total - voucher_applied - fund_applied)
    method = resolve_remaining_method(
        remaining_method,
        is_guest=is_guest,
        is_authenticated=is_authenticated,
    )

    return AllocationResult(
        total_cost=total,
        voucher_applied=voucher_applied,
        training_fund_applied=fund_applied,
        training_fund_max=fund_max,
        remaining_balance=remaining,
        remaining_method=method,
        purchase_order_number=(purchase_order_number or "").strip(),
        po_supply_later=bool(po_supply_later),
    )


def can_proceed(tickets_required: int, total_cost: Amount, allocation: AllocationResult) -> bool:
    if tickets_required <= 0:
        return False
    if to_money(total_cost) == ZERO:
        return True
    return allocation.is_fully_resolved
