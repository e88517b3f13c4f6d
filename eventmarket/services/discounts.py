"""Group and promo discount stacking."""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from eventmarket.models import Event

GROUP_DISCOUNT_MIN_QUANTITY = 5
GROUP_DISCOUNT_PCT = 20
DEFAULT_PROMO_PCT = 10


@dataclass(frozen=True)
class DiscountBreakdown:
    base_price: Decimal
    quantity: int
    group_discount_pct: int
    promo_discount_pct: int
    final_unit_price: Decimal
    total_price: Decimal
    total_savings: Decimal
    description: str

    @property
    def discount_type(self) -> str:
        if self.group_discount_pct and self.promo_discount_pct:
            return "group+promo"
        if self.group_discount_pct:
            return "group"
        if self.promo_discount_pct:
            return "promo"
        return "none"

    @property
    def discount_percentage(self) -> Decimal:
        """Effective combined reduction of the unit price, in percent."""
        if not self.base_price:
            return Decimal("0")
        reduction = (1 - self.final_unit_price / self.base_price) * 100
        return reduction.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    @property
    def unit_amount_cents(self) -> int:
        """Unit price in minor currency units, as charged by the provider."""
        return int((self.final_unit_price * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _describe(group_pct: int, promo_pct: int, savings: Decimal) -> str:
    if group_pct and promo_pct:
        text = f"{group_pct}% group + {promo_pct}% promo discounts applied"
    elif group_pct:
        text = f"{group_pct}% group discount applied"
    elif promo_pct:
        text = f"{promo_pct}% promo discount applied"
    else:
        return ""
    return f"{text} (You save: ${savings.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)})"


def calculate_discount(base_price, quantity: int, promo_percentage: Optional[int] = None) -> DiscountBreakdown:
    """
    Apply the group discount, then the promo discount, to a unit price.

    Both reductions multiply the unit price in that order; they are never
    summed. ``promo_percentage`` is only passed once the promo has actually
    been redeemed.
    """
    base = Decimal(str(base_price))
    group_pct = GROUP_DISCOUNT_PCT if quantity >= GROUP_DISCOUNT_MIN_QUANTITY else 0
    promo_pct = promo_percentage or 0

    unit = base * (1 - Decimal(group_pct) / 100) * (1 - Decimal(promo_pct) / 100)
    total = unit * quantity
    savings = base * quantity - total

    return DiscountBreakdown(
        base_price=base,
        quantity=quantity,
        group_discount_pct=group_pct,
        promo_discount_pct=promo_pct,
        final_unit_price=unit,
        total_price=total,
        total_savings=savings,
        description=_describe(group_pct, promo_pct, savings),
    )


def promo_matches(event: Event, code: Optional[str]) -> bool:
    if not code or not event.promo_code:
        return False
    return event.promo_code.lower() == code.strip().lower()


def promo_available(event: Event) -> bool:
    return not event.usage_limit or (event.usage_count or 0) < event.usage_limit


def promo_percentage(event: Event) -> int:
    return event.discount_percentage or DEFAULT_PROMO_PCT
