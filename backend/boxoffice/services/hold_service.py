"""
Hold lifecycle manager: create, commit, release holds against the ledger.

States:
  active -> committed   (terminal, success path)
  active -> released    (terminal, explicit cancel)
  active -> expired     (terminal, automatic timeout; see expiry_sweeper)

Every operation here owns its transaction: the hold row and the ledger
counters are written together and committed together, so a crash can
never leave `sold` incremented without the hold saying `committed`, or
the reverse. On any error the transaction is rolled back before the
error propagates.
"""

from datetime import datetime, timedelta
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.config import get_settings
from boxoffice.core.exceptions import (
    EventNotFound,
    HoldNotCommittable,
    HoldNotFound,
    InvalidHoldDuration,
    InvalidHoldScope,
    InvalidQuantity,
    TicketTypeNotFound,
    TicketTypeNotOnSale,
)
from boxoffice.core.logging import get_logger
from boxoffice.core.metrics import record_hold_operation
from boxoffice.db.types import utcnow
from boxoffice.models.event import Event
from boxoffice.models.hold import Hold, HoldReason, HoldStatus
from boxoffice.models.ticket_type import TicketType
from boxoffice.services import ledger_service
from boxoffice.services.ledger_service import ReservationToken

logger = get_logger(__name__)
settings = get_settings()

# Reasons that act on behalf of a buyer and are subject to per-order caps
BUYER_REASONS = (HoldReason.CHECKOUT, HoldReason.RESERVATION)


def resolve_ttl(reason: HoldReason, expires_in_hours: float | None = None) -> timedelta:
    """Caller-supplied lifetime, or the configured default for the reason."""
    if expires_in_hours is None:
        if reason is HoldReason.CHECKOUT:
            return timedelta(minutes=settings.CHECKOUT_HOLD_TTL_MINUTES)
        if reason is HoldReason.RESERVATION:
            return timedelta(hours=settings.RESERVATION_HOLD_TTL_HOURS)
        return timedelta(hours=settings.ORGANIZER_HOLD_TTL_HOURS)

    if expires_in_hours <= 0:
        raise InvalidHoldDuration()
    if expires_in_hours > settings.MAX_HOLD_TTL_HOURS:
        raise InvalidHoldDuration(f"Holds cannot last longer than {settings.MAX_HOLD_TTL_HOURS} hours")
    return timedelta(hours=expires_in_hours)


def ensure_on_sale(ticket_type: TicketType, now: datetime) -> None:
    """Raise TicketTypeNotOnSale unless the ticket type can be sold at `now`."""
    if not ticket_type.active:
        raise TicketTypeNotOnSale(ticket_type.id, "inactive")
    if ticket_type.sales_start is not None and ticket_type.sales_start > now:
        raise TicketTypeNotOnSale(ticket_type.id, "not yet on sale")
    if ticket_type.sales_end is not None and ticket_type.sales_end <= now:
        raise TicketTypeNotOnSale(ticket_type.id, "no longer on sale")


async def _get_hold(db: AsyncSession, hold_id: int) -> Hold:
    result = await db.execute(
        select(Hold).where(Hold.id == hold_id).execution_options(populate_existing=True)
    )
    hold = result.scalar_one_or_none()
    if hold is None:
        raise HoldNotFound(hold_id)
    return hold


async def get_hold(db: AsyncSession, hold_id: int) -> Hold:
    return await _get_hold(db, hold_id)


async def _validate_request(
    db: AsyncSession,
    event_id: int,
    ticket_type_id: int | None,
    quantity: int,
    reason: HoldReason,
    ttl: timedelta,
    now: datetime,
) -> None:
    if quantity < 1:
        raise InvalidQuantity(quantity)
    if ttl <= timedelta(0):
        raise InvalidHoldDuration()

    if await db.get(Event, event_id) is None:
        raise EventNotFound(event_id)

    if ticket_type_id is None:
        if reason is not HoldReason.ORGANIZER_HOLD:
            raise InvalidHoldScope("Event-wide holds are only available as organizer holds")
        return

    result = await db.execute(
        select(TicketType).where(TicketType.id == ticket_type_id, TicketType.event_id == event_id)
    )
    ticket_type = result.scalar_one_or_none()
    if ticket_type is None:
        raise TicketTypeNotFound(ticket_type_id)

    if reason in BUYER_REASONS:
        if ticket_type.per_order_limit is not None and quantity > ticket_type.per_order_limit:
            raise InvalidQuantity(quantity, ticket_type.per_order_limit)
        ensure_on_sale(ticket_type, now)


async def create_hold(
    db: AsyncSession,
    event_id: int,
    ticket_type_id: int | None,
    quantity: int,
    reason: HoldReason,
    ttl: timedelta,
    now: datetime | None = None,
) -> Hold:
    """
    Reserve `quantity` tickets and record an active hold expiring at now + ttl.

    Organizer holds bypass the per-order cap and the sales window.
    Nothing is persisted if the ledger rejects the reservation.
    """
    now = now or utcnow()
    reason = HoldReason(reason)

    try:
        await _validate_request(db, event_id, ticket_type_id, quantity, reason, ttl, now)

        hold = Hold(
            event_id=event_id,
            ticket_type_id=ticket_type_id,
            quantity=quantity,
            reason=reason.value,
            status=HoldStatus.ACTIVE.value,
            created_at=now,
            expires_at=now + ttl,
        )
        db.add(hold)
        await db.flush()

        if ticket_type_id is not None:
            await ledger_service.reserve(db, ticket_type_id, quantity, hold.id, now=now)

        await db.commit()
    except Exception:
        await db.rollback()
        record_hold_operation("create", "rejected")
        raise

    record_hold_operation("create", "ok")
    logger.info(
        "hold_created",
        hold_id=hold.id,
        event_id=event_id,
        ticket_type_id=ticket_type_id,
        quantity=quantity,
        reason=reason.value,
        expires_at=hold.expires_at.isoformat(),
    )
    return hold


def merge_lines(lines: Iterable[tuple[int, int]]) -> list[tuple[int, int]]:
    """Combine cart lines for the same ticket type, keeping first-seen order."""
    merged: dict[int, int] = {}
    for ticket_type_id, quantity in lines:
        if quantity < 1:
            raise InvalidQuantity(quantity)
        merged[ticket_type_id] = merged.get(ticket_type_id, 0) + quantity
    return list(merged.items())


async def create_cart_holds(
    db: AsyncSession,
    event_id: int,
    lines: Iterable[tuple[int, int]],
    reason: HoldReason,
    ttl: timedelta,
    now: datetime | None = None,
) -> list[Hold]:
    """
    Reserve every (ticket_type_id, quantity) line of a cart.

    Categories are reserved independently. If a later line fails, the
    holds already acquired by this call are released before the error
    is re-raised. A hold that cannot be released is logged and left for
    the sweeper.
    """
    merged = merge_lines(lines)
    if not merged:
        raise InvalidQuantity(0)

    acquired: list[Hold] = []
    acquired_ids: list[int] = []
    for ticket_type_id, quantity in merged:
        try:
            hold = await create_hold(db, event_id, ticket_type_id, quantity, reason, ttl, now=now)
        except Exception:
            # The failed line rolled the session back; only the ids are safe to use
            for hold_id in acquired_ids:
                try:
                    await release_hold(db, hold_id)
                except Exception:
                    # Left active; the sweeper reclaims it at expiry
                    logger.exception("cart_hold_release_failed", event_id=event_id, hold_id=hold_id)
            if acquired_ids:
                logger.info(
                    "cart_holds_rolled_back",
                    event_id=event_id,
                    released_hold_ids=acquired_ids,
                    failed_ticket_type_id=ticket_type_id,
                )
            raise
        acquired.append(hold)
        acquired_ids.append(hold.id)

    return acquired


async def commit_hold(db: AsyncSession, hold_id: int, now: datetime | None = None) -> Hold:
    """
    Turn an active hold into sold inventory.

    Raises HoldNotCommittable if the hold is already terminal. A hold that
    is still active but past its expiry is expired on the spot (returning
    its inventory) and then rejected the same way.
    """
    now = now or utcnow()
    try:
        hold = await _get_hold(db, hold_id)
        token = ReservationToken.for_hold(hold)

        if hold.status == HoldStatus.ACTIVE.value and hold.expires_at <= now:
            await ledger_service.release(db, token, status=HoldStatus.EXPIRED, now=now)
            hold = await _get_hold(db, hold_id)
            await db.commit()
            record_hold_operation("commit", "rejected")
            logger.info("hold_commit_rejected", hold_id=hold_id, status=hold.status)
            raise HoldNotCommittable(hold_id, hold.status)

        if hold.status != HoldStatus.ACTIVE.value:
            record_hold_operation("commit", "rejected")
            logger.info("hold_commit_rejected", hold_id=hold_id, status=hold.status)
            raise HoldNotCommittable(hold_id, hold.status)

        if not await ledger_service.commit(db, token, now=now):
            # Lost the race to a concurrent release / sweep
            await db.rollback()
            hold = await _get_hold(db, hold_id)
            record_hold_operation("commit", "rejected")
            logger.info("hold_commit_lost_race", hold_id=hold_id, status=hold.status)
            raise HoldNotCommittable(hold_id, hold.status)

        hold = await _get_hold(db, hold_id)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    record_hold_operation("commit", "ok")
    logger.info(
        "hold_committed",
        hold_id=hold.id,
        ticket_type_id=hold.ticket_type_id,
        quantity=hold.quantity,
    )
    return hold


async def release_hold(db: AsyncSession, hold_id: int, now: datetime | None = None) -> Hold:
    """
    Cancel a hold and return its inventory. Idempotent: releasing a hold
    that is already committed, released or expired changes nothing.
    """
    now = now or utcnow()
    try:
        hold = await _get_hold(db, hold_id)
        if hold.status != HoldStatus.ACTIVE.value:
            # Nothing written; end the read transaction without expiring `hold`
            await db.commit()
            record_hold_operation("release", "noop")
            logger.debug("hold_release_noop", hold_id=hold_id, status=hold.status)
            return hold

        applied = await ledger_service.release(
            db, ReservationToken.for_hold(hold), status=HoldStatus.RELEASED, now=now
        )
        hold = await _get_hold(db, hold_id)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    record_hold_operation("release", "ok" if applied else "noop")
    if applied:
        logger.info(
            "hold_released",
            hold_id=hold.id,
            ticket_type_id=hold.ticket_type_id,
            quantity=hold.quantity,
        )
    return hold


async def list_holds(db: AsyncSession, event_id: int) -> list[Hold]:
    """All holds for an event, soonest expiry first. Classification is left to the caller."""
    if await db.get(Event, event_id) is None:
        raise EventNotFound(event_id)

    result = await db.execute(
        select(Hold)
        .where(Hold.event_id == event_id)
        .order_by(Hold.expires_at.asc(), Hold.id.asc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())
