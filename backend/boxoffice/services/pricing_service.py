"""
Resolves cart lines and promo codes from the database and hands them to
the pure pricing engine. Read-only: never touches ledger counters.
"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.config import get_settings
from boxoffice.core.exceptions import InvalidHoldScope, InvalidPromoCode, TicketTypeNotFound
from boxoffice.core.logging import get_logger
from boxoffice.core.metrics import price_quotes
from boxoffice.db.types import utcnow
from boxoffice.models.price_tier import TicketPriceTier
from boxoffice.models.promo_code import PromoCode
from boxoffice.models.ticket_type import TicketType
from boxoffice.services.hold_service import ensure_on_sale, merge_lines
from boxoffice.services.pricing import Discount, DiscountType, FeeSchedule, PricedLine, PriceQuote, price_lines

logger = get_logger(__name__)
settings = get_settings()


def default_fee_schedule() -> FeeSchedule:
    return FeeSchedule(
        percent=Decimal(settings.PLATFORM_FEE_PERCENT),
        fixed_cents=settings.PLATFORM_FEE_FIXED_CENTS,
    )


def select_tier(tiers: Iterable[TicketPriceTier], quantity: int, now: datetime) -> TicketPriceTier | None:
    """Highest min_qty among applicable tiers wins; ties go to the latest start."""
    applicable = [tier for tier in tiers if tier.is_applicable(now, quantity)]
    if not applicable:
        return None
    return max(applicable, key=lambda tier: (tier.min_qty, tier.starts_at, tier.id))


async def resolve_promo(
    db: AsyncSession,
    code: str,
    event_id: int | None,
    now: datetime,
) -> Discount:
    normalized = code.strip().upper()
    if not normalized:
        raise InvalidPromoCode(code, "missing")

    result = await db.execute(select(PromoCode).where(func.upper(PromoCode.code) == normalized))
    promo = result.scalar_one_or_none()

    if promo is None:
        raise InvalidPromoCode(code, "unknown")
    if not promo.active:
        raise InvalidPromoCode(code, "inactive")
    if promo.starts_at is not None and promo.starts_at > now:
        raise InvalidPromoCode(code, "not yet valid")
    if promo.ends_at is not None and promo.ends_at <= now:
        raise InvalidPromoCode(code, "expired")
    if promo.max_uses is not None and promo.redemptions >= promo.max_uses:
        raise InvalidPromoCode(code, "exhausted")
    if promo.event_id is not None and promo.event_id != event_id:
        raise InvalidPromoCode(code, "not valid for this event")

    return Discount(
        discount_type=DiscountType(promo.discount_type),
        value=Decimal(promo.discount_value),
        code=promo.code,
    )


async def price_cart(
    db: AsyncSession,
    lines: Iterable[tuple[int, int]],
    promo_code: str | None = None,
    fee_schedule: FeeSchedule | None = None,
    now: datetime | None = None,
) -> PriceQuote:
    """
    Price (ticket_type_id, quantity) lines with an optional promo code.
    Lines for the same ticket type are combined first, as they are when
    a cart is held, so group tiers see the full quantity.

    Raises TicketTypeNotFound, TicketTypeNotOnSale, InvalidQuantity,
    InvalidPromoCode, CurrencyMismatch, or InvalidHoldScope when the lines
    span more than one event.
    """
    now = now or utcnow()
    lines = merge_lines(lines)

    ticket_type_ids = {ticket_type_id for ticket_type_id, _ in lines}
    ticket_types: dict[int, TicketType] = {}
    if ticket_type_ids:
        result = await db.execute(select(TicketType).where(TicketType.id.in_(ticket_type_ids)))
        ticket_types = {tt.id: tt for tt in result.scalars().all()}

    missing = ticket_type_ids - ticket_types.keys()
    if missing:
        raise TicketTypeNotFound(min(missing))

    event_ids = {tt.event_id for tt in ticket_types.values()}
    if len(event_ids) > 1:
        raise InvalidHoldScope("Cart lines must belong to a single event")
    event_id = next(iter(event_ids), None)

    tiers_by_type: dict[int, list[TicketPriceTier]] = {}
    if ticket_type_ids:
        result = await db.execute(
            select(TicketPriceTier).where(TicketPriceTier.ticket_type_id.in_(ticket_type_ids))
        )
        for tier in result.scalars().all():
            tiers_by_type.setdefault(tier.ticket_type_id, []).append(tier)

    priced: list[PricedLine] = []
    for ticket_type_id, quantity in lines:
        ticket_type = ticket_types[ticket_type_id]
        ensure_on_sale(ticket_type, now)
        tier = select_tier(tiers_by_type.get(ticket_type_id, []), quantity, now)
        priced.append(
            PricedLine(
                ticket_type_id=ticket_type_id,
                quantity=quantity,
                unit_price_cents=tier.price_cents if tier else ticket_type.price_cents,
                unit_fee_cents=tier.fee_cents if tier else ticket_type.fee_cents,
                currency=ticket_type.currency,
            )
        )

    discount = None
    if promo_code is not None:
        try:
            discount = await resolve_promo(db, promo_code, event_id, now)
        except InvalidPromoCode as exc:
            price_quotes.labels(promo="rejected").inc()
            logger.info("promo_code_rejected", promo_code=promo_code, reason=exc.reason)
            raise

    quote = price_lines(
        priced,
        discount=discount,
        fees=fee_schedule or default_fee_schedule(),
        default_currency=settings.DEFAULT_CURRENCY,
    )
    price_quotes.labels(promo="applied" if discount else "none").inc()
    logger.debug(
        "cart_priced",
        subtotal=quote.subtotal,
        discount=quote.discount,
        fees=quote.fees,
        total=quote.total,
        currency=quote.currency,
    )
    return quote
