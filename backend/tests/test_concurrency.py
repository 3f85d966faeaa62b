"""
Concurrency scenarios: many buyers, one ledger row, no oversell.

Every task uses its own session, as separate API requests would.
"""

import asyncio
from datetime import timedelta

import pytest

from boxoffice.core.exceptions import HoldNotCommittable, InsufficientInventory
from boxoffice.db.types import utcnow
from boxoffice.models.hold import Hold, HoldReason, HoldStatus
from boxoffice.services import hold_service
from boxoffice.services.expiry_sweeper import ExpirySweeper

CHECKOUT_TTL = timedelta(minutes=15)


def _buyer(session_factory, event_id, ticket_type_id, quantity, now=None):
    async def attempt():
        async with session_factory() as session:
            hold = await hold_service.create_hold(
                session, event_id, ticket_type_id, quantity, HoldReason.CHECKOUT, CHECKOUT_TTL, now=now
            )
            return hold.id

    return attempt()


@pytest.mark.asyncio
async def test_concurrent_reserves_never_oversell(session_factory, test_event, general_admission, load_ticket_type):
    """Three buyers want 4 of 10 tickets at once: exactly two get them."""
    results = await asyncio.gather(
        *[_buyer(session_factory, test_event.id, general_admission.id, 4) for _ in range(3)],
        return_exceptions=True,
    )

    successes = [r for r in results if isinstance(r, int)]
    failures = [r for r in results if isinstance(r, InsufficientInventory)]
    assert len(successes) == 2
    assert len(failures) == 1
    assert failures[0].available == 2

    ticket_type = await load_ticket_type(general_admission.id)
    assert ticket_type.held == 8
    assert ticket_type.sold + ticket_type.held <= ticket_type.capacity


@pytest.mark.asyncio
async def test_last_seat_race_then_expiry_frees_it(session_factory, test_event, last_seat, load_ticket_type):
    now = utcnow()
    results = await asyncio.gather(
        *[_buyer(session_factory, test_event.id, last_seat.id, 1, now=now) for _ in range(10)],
        return_exceptions=True,
    )

    winners = [r for r in results if isinstance(r, int)]
    assert len(winners) == 1
    assert all(isinstance(r, InsufficientInventory) for r in results if not isinstance(r, int))
    assert (await load_ticket_type(last_seat.id)).held == 1

    # The winner never pays; once the hold lapses and is swept the seat is back
    later = now + timedelta(minutes=20)
    result = await ExpirySweeper(session_factory).sweep_once(now=later)
    assert result.expired == 1

    latecomer = await _buyer(session_factory, test_event.id, last_seat.id, 1, now=later)
    async with session_factory() as session:
        hold = await session.get(Hold, latecomer)
        assert hold.status == HoldStatus.ACTIVE.value

    ticket_type = await load_ticket_type(last_seat.id)
    assert ticket_type.held == 1
    assert ticket_type.sold == 0


@pytest.mark.asyncio
async def test_lapsed_last_seat_is_bookable_before_sweep(session_factory, test_event, last_seat, load_ticket_type):
    """The winner walks away; a later buyer gets the seat without waiting for the sweeper."""
    now = utcnow()
    results = await asyncio.gather(
        *[_buyer(session_factory, test_event.id, last_seat.id, 1, now=now) for _ in range(2)],
        return_exceptions=True,
    )
    winners = [r for r in results if isinstance(r, int)]
    assert len(winners) == 1

    later = now + timedelta(minutes=20)
    latecomer = await _buyer(session_factory, test_event.id, last_seat.id, 1, now=later)

    async with session_factory() as session:
        assert (await session.get(Hold, winners[0])).status == HoldStatus.EXPIRED.value
        assert (await session.get(Hold, latecomer)).status == HoldStatus.ACTIVE.value

    ticket_type = await load_ticket_type(last_seat.id)
    assert ticket_type.held == 1
    assert ticket_type.sold == 0

    # Nothing left for the sweeper to do
    assert (await ExpirySweeper(session_factory).sweep_once(now=later)).scanned == 0


@pytest.mark.asyncio
async def test_commit_and_release_race_has_one_winner(session_factory, test_event, general_admission, load_ticket_type):
    hold_id = await _buyer(session_factory, test_event.id, general_admission.id, 2)

    async def commit():
        async with session_factory() as session:
            return (await hold_service.commit_hold(session, hold_id)).status

    async def release():
        async with session_factory() as session:
            return (await hold_service.release_hold(session, hold_id)).status

    commit_result, release_result = await asyncio.gather(commit(), release(), return_exceptions=True)

    ticket_type = await load_ticket_type(general_admission.id)
    assert ticket_type.held == 0

    if commit_result == HoldStatus.COMMITTED.value:
        # Release lost: it saw the committed hold and changed nothing
        assert release_result == HoldStatus.COMMITTED.value
        assert ticket_type.sold == 2
    else:
        assert isinstance(commit_result, HoldNotCommittable)
        assert release_result == HoldStatus.RELEASED.value
        assert ticket_type.sold == 0


@pytest.mark.asyncio
async def test_commit_and_sweep_race_applies_once(session_factory, test_event, general_admission, load_ticket_type):
    """Sweeper and checkout hit the same hold right at its expiry boundary."""
    now = utcnow()
    hold_id = await _buyer(session_factory, test_event.id, general_admission.id, 3, now=now)
    boundary = now + CHECKOUT_TTL - timedelta(seconds=1)

    async def commit():
        async with session_factory() as session:
            return (await hold_service.commit_hold(session, hold_id, now=boundary)).status

    sweeper = ExpirySweeper(session_factory)
    commit_result, sweep_result = await asyncio.gather(
        commit(),
        sweeper.sweep_once(now=now + CHECKOUT_TTL),
        return_exceptions=True,
    )

    ticket_type = await load_ticket_type(general_admission.id)
    assert ticket_type.held == 0
    if commit_result == HoldStatus.COMMITTED.value:
        assert sweep_result.expired == 0
        assert ticket_type.sold == 3
    else:
        assert isinstance(commit_result, HoldNotCommittable)
        assert sweep_result.expired == 1
        assert ticket_type.sold == 0


@pytest.mark.asyncio
async def test_mixed_traffic_keeps_counters_consistent(
    session_factory, test_event, general_admission, load_ticket_type
):
    """Reserve, commit and release interleaved: counters always match the holds table."""

    async def buy_and_pay(quantity):
        async with session_factory() as session:
            hold = await hold_service.create_hold(
                session, test_event.id, general_admission.id, quantity, HoldReason.CHECKOUT, CHECKOUT_TTL
            )
            hold_id = hold.id
            await hold_service.commit_hold(session, hold_id)

    async def buy_and_abandon(quantity):
        async with session_factory() as session:
            hold = await hold_service.create_hold(
                session, test_event.id, general_admission.id, quantity, HoldReason.CHECKOUT, CHECKOUT_TTL
            )
            hold_id = hold.id
            await hold_service.release_hold(session, hold_id)

    tasks = [buy_and_pay(2) for _ in range(4)] + [buy_and_abandon(3) for _ in range(4)]
    await asyncio.gather(*tasks, return_exceptions=True)

    async with session_factory() as session:
        holds = await hold_service.list_holds(session, test_event.id)
        committed = sum(h.quantity for h in holds if h.status == HoldStatus.COMMITTED.value)
        active = sum(h.quantity for h in holds if h.status == HoldStatus.ACTIVE.value)

    ticket_type = await load_ticket_type(general_admission.id)
    assert ticket_type.sold == committed
    assert ticket_type.held == active == 0
    assert ticket_type.sold + ticket_type.held <= ticket_type.capacity
