"""
Availability and inventory report endpoints.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.db.session import get_db
from boxoffice.schemas.inventory import AvailabilityResponse, EventInventoryResponse
from boxoffice.services import inventory_service, ledger_service
from boxoffice.services.cache_service import get_cached_availability, set_cached_availability

router = APIRouter(tags=["Inventory"])


@router.get("/ticket-types/{ticket_type_id}/availability", response_model=AvailabilityResponse)
async def get_availability_endpoint(ticket_type_id: int, db: AsyncSession = Depends(get_db)):
    """
    Tickets currently available for display.
    May be served from Redis for a few seconds; reservations never use this value.
    """
    cached = await get_cached_availability(ticket_type_id)
    if cached is not None:
        return AvailabilityResponse(ticket_type_id=ticket_type_id, available=cached, cached=True)

    available = await ledger_service.availability(db, ticket_type_id)
    await set_cached_availability(ticket_type_id, available)
    return AvailabilityResponse(ticket_type_id=ticket_type_id, available=available)


@router.get("/events/{event_id}/inventory", response_model=EventInventoryResponse)
async def get_event_inventory_endpoint(event_id: int, db: AsyncSession = Depends(get_db)):
    """Capacity, sold, held and available counts for every ticket type of an event."""
    return await inventory_service.get_event_inventory(db, event_id)
