"""
Per-event inventory report for organizers.
"""

from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.exceptions import EventNotFound
from boxoffice.db.types import utcnow
from boxoffice.models.event import Event
from boxoffice.models.hold import Hold, HoldStatus
from boxoffice.models.ticket_type import TicketType


async def get_event_inventory(db: AsyncSession, event_id: int, now: datetime | None = None) -> dict:
    """
    Capacity, sold, held and available counts per ticket type, plus totals.
    `available` applies the same lapsed-hold backstop as ledger availability.
    """
    now = now or utcnow()
    event = await db.get(Event, event_id)
    if event is None:
        raise EventNotFound(event_id)

    result = await db.execute(
        select(TicketType)
        .where(TicketType.event_id == event_id)
        .order_by(TicketType.id.asc())
        .execution_options(populate_existing=True)
    )
    ticket_types = list(result.scalars().all())

    lapsed_result = await db.execute(
        select(Hold.ticket_type_id, func.sum(Hold.quantity))
        .where(
            Hold.event_id == event_id,
            Hold.ticket_type_id.is_not(None),
            Hold.status == HoldStatus.ACTIVE.value,
            Hold.expires_at <= now,
        )
        .group_by(Hold.ticket_type_id)
    )
    lapsed = {tt_id: int(qty) for tt_id, qty in lapsed_result.all()}

    summaries = []
    for tt in ticket_types:
        available = max(tt.capacity - tt.sold - tt.held + lapsed.get(tt.id, 0), 0)
        summaries.append({
            "id": tt.id,
            "name": tt.name,
            "capacity": tt.capacity,
            "sold": tt.sold,
            "held": tt.held,
            "available": available,
            "currency": tt.currency,
        })

    totals = {"capacity": 0, "sold": 0, "held": 0, "available": 0}
    for summary in summaries:
        for key in totals:
            totals[key] += summary[key]

    return {
        "event": {"id": event.id, "title": event.title},
        "totals": totals,
        "ticket_types": summaries,
    }
