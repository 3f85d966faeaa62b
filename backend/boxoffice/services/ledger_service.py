"""
Inventory ledger: the authoritative capacity / sold / held counters.

CONCURRENCY STRATEGY: Guarded single-statement updates
======================================================

Problem:
  Two buyers try to reserve the last ticket simultaneously.
  Both read available=1, both increment held, both succeed.
  Result: Oversell.

Solution:
  The availability check and the increment are one UPDATE:

    UPDATE ticket_types SET held = held + :q, version = version + 1
    WHERE id = :id AND capacity - sold - held >= :q

  If rows_affected == 0 the category either does not exist or does not
  have :q tickets left; nothing was written. PostgreSQL re-evaluates the
  WHERE clause after waiting on the row lock, and SQLite serialises
  writers, so two concurrent callers can never both pass the guard when
  only one could. This holds across processes; no in-memory locks.

Terminal transitions (commit / release / expire) use the same idea on
the holds row:

    UPDATE holds SET status = :terminal WHERE id = :id AND status = 'active'

Only the caller whose UPDATE matched applies the counter arithmetic, so
commit, release and the expiry sweeper can race freely: the first
transition wins and the others become no-ops. Repeating a call never
re-applies arithmetic.

When reserve misses, the category's lapsed holds are expired through
that same transition before the guard is tried once more, so a seat
whose hold has run out is never reported sold out while the sweeper
catches up.

All functions run inside the caller's transaction and never commit.
The DB CHECK constraint sold + held <= capacity is the final safety net.
"""

import time
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import and_, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.exceptions import InsufficientInventory, TicketTypeNotFound
from boxoffice.core.logging import get_logger
from boxoffice.core.metrics import inventory_rejections, record_release, reserve_latency
from boxoffice.db.types import utcnow
from boxoffice.models.hold import Hold, HoldStatus
from boxoffice.models.ticket_type import TicketType

logger = get_logger(__name__)


@dataclass(frozen=True)
class ReservationToken:
    """Handle for a reserved quantity, bound to the hold that owns it."""

    hold_id: int
    ticket_type_id: int | None
    quantity: int

    @classmethod
    def for_hold(cls, hold: Hold) -> "ReservationToken":
        return cls(hold_id=hold.id, ticket_type_id=hold.ticket_type_id, quantity=hold.quantity)


async def _load_counters(db: AsyncSession, ticket_type_id: int) -> TicketType:
    result = await db.execute(
        select(TicketType)
        .where(TicketType.id == ticket_type_id)
        .execution_options(populate_existing=True)
    )
    ticket_type = result.scalar_one_or_none()
    if ticket_type is None:
        raise TicketTypeNotFound(ticket_type_id)
    return ticket_type


async def _guarded_reserve(db: AsyncSession, ticket_type_id: int, quantity: int) -> bool:
    result = await db.execute(
        update(TicketType)
        .where(
            TicketType.id == ticket_type_id,
            TicketType.capacity - TicketType.sold - TicketType.held >= quantity,
        )
        .values(
            held=TicketType.held + quantity,
            version=TicketType.version + 1,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def expire_lapsed(db: AsyncSession, ticket_type_id: int, now: datetime) -> int:
    """
    Expire this category's active holds that are already past expiry.
    Uses the same guarded transition as the sweeper; returns the quantity freed.
    """
    result = await db.execute(
        select(Hold.id, Hold.ticket_type_id, Hold.quantity).where(
            Hold.ticket_type_id == ticket_type_id,
            Hold.status == HoldStatus.ACTIVE.value,
            Hold.expires_at <= now,
        )
    )
    freed = 0
    for hold_id, hold_ticket_type_id, quantity in result.all():
        token = ReservationToken(hold_id=hold_id, ticket_type_id=hold_ticket_type_id, quantity=quantity)
        if await release(db, token, status=HoldStatus.EXPIRED, now=now):
            freed += quantity
    return freed


async def reserve(
    db: AsyncSession,
    ticket_type_id: int,
    quantity: int,
    hold_id: int,
    now: datetime | None = None,
) -> ReservationToken:
    """
    Atomically move `quantity` tickets from available to held.
    Raises InsufficientInventory if they are not there; the caller rolls
    back, so nothing is written.

    Lapsed holds the sweeper has not reached yet do not block a buyer:
    on a miss they are expired in this transaction and the guard is
    tried once more.
    """
    now = now or utcnow()
    started = time.perf_counter()
    reserved = await _guarded_reserve(db, ticket_type_id, quantity)
    if not reserved and await expire_lapsed(db, ticket_type_id, now):
        reserved = await _guarded_reserve(db, ticket_type_id, quantity)
    reserve_latency.observe(time.perf_counter() - started)

    if not reserved:
        ticket_type = await _load_counters(db, ticket_type_id)
        inventory_rejections.inc()
        logger.warning(
            "reserve_rejected",
            ticket_type_id=ticket_type_id,
            requested=quantity,
            available=ticket_type.available,
        )
        raise InsufficientInventory(ticket_type_id, quantity, ticket_type.available)

    logger.debug("reserve_applied", ticket_type_id=ticket_type_id, hold_id=hold_id, quantity=quantity)
    return ReservationToken(hold_id=hold_id, ticket_type_id=ticket_type_id, quantity=quantity)


async def _transition(
    db: AsyncSession,
    token: ReservationToken,
    status: HoldStatus,
    now: datetime,
    require_unexpired: bool = False,
) -> bool:
    """Guarded active -> terminal flip. True only for the caller that won."""
    conditions = [Hold.id == token.hold_id, Hold.status == HoldStatus.ACTIVE.value]
    if require_unexpired:
        conditions.append(Hold.expires_at > now)

    result = await db.execute(
        update(Hold)
        .where(and_(*conditions))
        .values(status=status.value, resolved_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def commit(db: AsyncSession, token: ReservationToken, now: datetime | None = None) -> bool:
    """
    Convert held inventory into sold inventory.
    Returns False (and changes nothing) if the hold is no longer active
    or has already passed its expiry.
    """
    now = now or utcnow()
    if not await _transition(db, token, HoldStatus.COMMITTED, now, require_unexpired=True):
        return False

    if token.ticket_type_id is not None:
        await db.execute(
            update(TicketType)
            .where(TicketType.id == token.ticket_type_id)
            .values(
                held=TicketType.held - token.quantity,
                sold=TicketType.sold + token.quantity,
                version=TicketType.version + 1,
            )
            .execution_options(synchronize_session=False)
        )

    logger.info(
        "ledger_committed",
        hold_id=token.hold_id,
        ticket_type_id=token.ticket_type_id,
        quantity=token.quantity,
    )
    return True


async def release(
    db: AsyncSession,
    token: ReservationToken,
    status: HoldStatus = HoldStatus.RELEASED,
    now: datetime | None = None,
) -> bool:
    """
    Return held inventory to the pool, marking the hold released or expired.
    Returns False (and changes nothing) if the hold is already terminal.
    """
    if status not in (HoldStatus.RELEASED, HoldStatus.EXPIRED):
        raise ValueError(f"release cannot move a hold to {status.value}")

    now = now or utcnow()
    if not await _transition(db, token, status, now):
        return False

    if token.ticket_type_id is not None:
        await db.execute(
            update(TicketType)
            .where(TicketType.id == token.ticket_type_id)
            .values(
                held=TicketType.held - token.quantity,
                version=TicketType.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        record_release(status.value, token.quantity)

    logger.info(
        "ledger_released",
        hold_id=token.hold_id,
        ticket_type_id=token.ticket_type_id,
        quantity=token.quantity,
        status=status.value,
    )
    return True


async def lapsed_quantity(db: AsyncSession, ticket_type_id: int, now: datetime) -> int:
    """Quantity still counted as held by active holds that are already past expiry."""
    result = await db.execute(
        select(func.coalesce(func.sum(Hold.quantity), 0)).where(
            Hold.ticket_type_id == ticket_type_id,
            Hold.status == HoldStatus.ACTIVE.value,
            Hold.expires_at <= now,
        )
    )
    return int(result.scalar_one())


async def availability(db: AsyncSession, ticket_type_id: int, now: datetime | None = None) -> int:
    """
    Tickets a buyer can see as available right now.

    Active holds that have lapsed but not yet been swept are treated as
    free so sweeper lag never shows phantom sell-outs. The counters
    themselves only change when the sweeper (or a commit/release) applies
    the terminal transition.
    """
    now = now or utcnow()
    ticket_type = await _load_counters(db, ticket_type_id)
    lapsed = await lapsed_quantity(db, ticket_type_id, now)
    return max(ticket_type.capacity - ticket_type.sold - ticket_type.held + lapsed, 0)
