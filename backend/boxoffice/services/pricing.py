"""
Cart pricing engine. Pure functions, no database access.

Computation order is fixed:
  subtotal = sum(quantity * unit_price)
  discount = percentage of subtotal, or a fixed amount, never above subtotal
  fees     = sum(quantity * unit_fee) + platform percent of (subtotal - discount)
             + platform fixed fee
  total    = subtotal - discount + fees, floored at zero

Amounts are integer cents. Percentages round half-up to the cent.
"""

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from boxoffice.core.exceptions import CurrencyMismatch, InvalidQuantity

HUNDRED = Decimal(100)


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


@dataclass(frozen=True)
class Discount:
    """A pre-validated promo: percent (0-100) or a fixed amount in cents."""

    discount_type: DiscountType
    value: Decimal
    code: str | None = None

    def __post_init__(self) -> None:
        if self.value < 0:
            raise ValueError("Discount value cannot be negative")
        if self.discount_type is DiscountType.PERCENTAGE and self.value > HUNDRED:
            raise ValueError("Percentage discount cannot exceed 100")


@dataclass(frozen=True)
class FeeSchedule:
    """Platform / processing fee applied on the post-discount amount."""

    percent: Decimal = Decimal(0)
    fixed_cents: int = 0


@dataclass(frozen=True)
class PricedLine:
    ticket_type_id: int
    quantity: int
    unit_price_cents: int
    unit_fee_cents: int
    currency: str

    @property
    def amount_cents(self) -> int:
        return self.quantity * self.unit_price_cents

    @property
    def fee_cents(self) -> int:
        return self.quantity * self.unit_fee_cents


@dataclass(frozen=True)
class PriceQuote:
    subtotal: int
    discount: int
    fees: int
    total: int
    currency: str
    lines: list[PricedLine] = field(default_factory=list)
    promo_code: str | None = None


def percent_of(amount_cents: int, percent: Decimal) -> int:
    value = (Decimal(amount_cents) * Decimal(percent) / HUNDRED).quantize(
        Decimal(1), rounding=ROUND_HALF_UP
    )
    return int(value)


def compute_discount(subtotal: int, discount: Discount | None) -> int:
    if discount is None or subtotal <= 0:
        return 0
    if discount.discount_type is DiscountType.PERCENTAGE:
        amount = percent_of(subtotal, discount.value)
    else:
        amount = int(Decimal(discount.value).quantize(Decimal(1), rounding=ROUND_HALF_UP))
    return min(amount, subtotal)


def price_lines(
    lines: list[PricedLine],
    discount: Discount | None = None,
    fees: FeeSchedule | None = None,
    default_currency: str = "USD",
) -> PriceQuote:
    fees = fees or FeeSchedule()

    currencies = sorted({line.currency for line in lines})
    if len(currencies) > 1:
        raise CurrencyMismatch(currencies)
    currency = currencies[0] if currencies else default_currency

    for line in lines:
        if line.quantity < 1:
            raise InvalidQuantity(line.quantity)

    subtotal = sum(line.amount_cents for line in lines)
    discount_cents = compute_discount(subtotal, discount)

    # Platform fee is charged on what the buyer actually pays for tickets
    post_discount = subtotal - discount_cents
    fee_cents = sum(line.fee_cents for line in lines) + percent_of(post_discount, fees.percent)
    if lines:
        fee_cents += fees.fixed_cents

    total = max(subtotal - discount_cents + fee_cents, 0)

    return PriceQuote(
        subtotal=subtotal,
        discount=discount_cents,
        fees=fee_cents,
        total=total,
        currency=currency,
        lines=list(lines),
        promo_code=discount.code if discount else None,
    )
