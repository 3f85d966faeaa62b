"""
Tests for the inventory ledger: guarded reserve, commit and release.
"""

from datetime import timedelta

import pytest

from boxoffice.core.exceptions import InsufficientInventory, TicketTypeNotFound
from boxoffice.db.types import utcnow
from boxoffice.models.hold import Hold, HoldReason, HoldStatus
from boxoffice.services import ledger_service


async def _reserve(db, ticket_type, quantity, now, ttl=timedelta(minutes=15)):
    hold = Hold(
        event_id=ticket_type.event_id,
        ticket_type_id=ticket_type.id,
        quantity=quantity,
        reason=HoldReason.CHECKOUT.value,
        status=HoldStatus.ACTIVE.value,
        created_at=now,
        expires_at=now + ttl,
    )
    db.add(hold)
    await db.flush()
    token = await ledger_service.reserve(db, ticket_type.id, quantity, hold.id, now=now)
    return hold, token


@pytest.mark.asyncio
async def test_reserve_moves_tickets_to_held(db_session, general_admission, load_ticket_type):
    now = utcnow()
    hold, token = await _reserve(db_session, general_admission, 4, now)
    await db_session.commit()

    assert token.hold_id == hold.id
    assert token.quantity == 4

    ticket_type = await load_ticket_type(general_admission.id)
    assert ticket_type.held == 4
    assert ticket_type.sold == 0
    assert ticket_type.version == 2


@pytest.mark.asyncio
async def test_reserve_rejects_more_than_available(db_session, general_admission, load_ticket_type):
    """A rejected reserve reports what is left and writes nothing."""
    now = utcnow()
    await _reserve(db_session, general_admission, 7, now)
    await db_session.commit()

    with pytest.raises(InsufficientInventory) as exc_info:
        await _reserve(db_session, general_admission, 4, now)
    await db_session.rollback()

    assert exc_info.value.requested == 4
    assert exc_info.value.available == 3

    ticket_type = await load_ticket_type(general_admission.id)
    assert ticket_type.held == 7


@pytest.mark.asyncio
async def test_reserve_exact_remaining_quantity(db_session, general_admission, load_ticket_type):
    now = utcnow()
    await _reserve(db_session, general_admission, 10, now)
    await db_session.commit()

    ticket_type = await load_ticket_type(general_admission.id)
    assert ticket_type.held == 10
    assert ticket_type.available == 0


@pytest.mark.asyncio
async def test_reserve_unknown_ticket_type(db_session):
    with pytest.raises(TicketTypeNotFound):
        await ledger_service.reserve(db_session, 999, 1, hold_id=1)


@pytest.mark.asyncio
async def test_commit_converts_held_to_sold(db_session, general_admission, load_ticket_type):
    now = utcnow()
    _, token = await _reserve(db_session, general_admission, 3, now)
    before = await ledger_service.availability(db_session, general_admission.id, now=now)

    assert await ledger_service.commit(db_session, token, now=now) is True
    assert await ledger_service.availability(db_session, general_admission.id, now=now) == before
    await db_session.commit()

    ticket_type = await load_ticket_type(general_admission.id)
    assert ticket_type.held == 0
    assert ticket_type.sold == 3


@pytest.mark.asyncio
async def test_commit_twice_applies_once(db_session, general_admission, load_ticket_type):
    now = utcnow()
    _, token = await _reserve(db_session, general_admission, 3, now)

    assert await ledger_service.commit(db_session, token, now=now) is True
    assert await ledger_service.commit(db_session, token, now=now) is False
    await db_session.commit()

    ticket_type = await load_ticket_type(general_admission.id)
    assert ticket_type.sold == 3
    assert ticket_type.held == 0


@pytest.mark.asyncio
async def test_commit_after_expiry_is_refused(db_session, general_admission, load_ticket_type):
    now = utcnow()
    _, token = await _reserve(db_session, general_admission, 2, now)

    later = now + timedelta(minutes=16)
    assert await ledger_service.commit(db_session, token, now=later) is False
    await db_session.commit()

    ticket_type = await load_ticket_type(general_admission.id)
    assert ticket_type.sold == 0
    assert ticket_type.held == 2


@pytest.mark.asyncio
async def test_release_returns_tickets_once(db_session, general_admission, load_ticket_type):
    now = utcnow()
    _, token = await _reserve(db_session, general_admission, 5, now)

    assert await ledger_service.release(db_session, token, now=now) is True
    assert await ledger_service.release(db_session, token, now=now) is False
    assert await ledger_service.commit(db_session, token, now=now) is False
    await db_session.commit()

    ticket_type = await load_ticket_type(general_admission.id)
    assert ticket_type.held == 0
    assert ticket_type.sold == 0


@pytest.mark.asyncio
async def test_release_after_commit_is_noop(db_session, general_admission, load_ticket_type):
    now = utcnow()
    _, token = await _reserve(db_session, general_admission, 2, now)

    assert await ledger_service.commit(db_session, token, now=now) is True
    assert await ledger_service.release(db_session, token, status=HoldStatus.EXPIRED, now=now) is False
    await db_session.commit()

    ticket_type = await load_ticket_type(general_admission.id)
    assert ticket_type.sold == 2
    assert ticket_type.held == 0


@pytest.mark.asyncio
async def test_release_rejects_non_release_status(db_session, general_admission):
    now = utcnow()
    _, token = await _reserve(db_session, general_admission, 1, now)

    with pytest.raises(ValueError):
        await ledger_service.release(db_session, token, status=HoldStatus.COMMITTED, now=now)


@pytest.mark.asyncio
async def test_availability_treats_lapsed_holds_as_free(db_session, general_admission, load_ticket_type):
    """Lapsed-but-unswept holds count as available without touching the counters."""
    now = utcnow()
    await _reserve(db_session, general_admission, 4, now, ttl=timedelta(minutes=5))
    await _reserve(db_session, general_admission, 3, now, ttl=timedelta(hours=1))
    await db_session.commit()

    assert await ledger_service.availability(db_session, general_admission.id, now=now) == 3

    later = now + timedelta(minutes=10)
    assert await ledger_service.lapsed_quantity(db_session, general_admission.id, later) == 4
    assert await ledger_service.availability(db_session, general_admission.id, now=later) == 7
    await db_session.commit()

    ticket_type = await load_ticket_type(general_admission.id)
    assert ticket_type.held == 7


@pytest.mark.asyncio
async def test_reserve_reclaims_lapsed_holds_before_rejecting(db_session, general_admission, load_ticket_type):
    """A sold-out category whose holds have lapsed is bookable before the sweeper runs."""
    now = utcnow()
    stale, _ = await _reserve(db_session, general_admission, 10, now, ttl=timedelta(minutes=5))
    stale_id = stale.id
    await db_session.commit()

    later = now + timedelta(minutes=10)
    assert await ledger_service.availability(db_session, general_admission.id, now=later) == 10

    _, token = await _reserve(db_session, general_admission, 4, later)
    await db_session.commit()

    assert token.quantity == 4
    assert (await db_session.get(Hold, stale_id, populate_existing=True)).status == HoldStatus.EXPIRED.value
    await db_session.commit()

    ticket_type = await load_ticket_type(general_admission.id)
    assert ticket_type.held == 4


@pytest.mark.asyncio
async def test_reserve_still_rejects_when_lapsed_holds_are_not_enough(db_session, general_admission):
    now = utcnow()
    await _reserve(db_session, general_admission, 3, now, ttl=timedelta(minutes=5))
    await _reserve(db_session, general_admission, 7, now, ttl=timedelta(hours=1))
    await db_session.commit()

    with pytest.raises(InsufficientInventory) as exc_info:
        await _reserve(db_session, general_admission, 4, now + timedelta(minutes=10))

    assert exc_info.value.available == 3
