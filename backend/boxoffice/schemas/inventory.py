"""
Pydantic schemas for availability and inventory reports.
"""

from boxoffice.schemas.common import CamelModel


class AvailabilityResponse(CamelModel):
    ticket_type_id: int
    available: int
    cached: bool = False


class InventoryCounts(CamelModel):
    capacity: int
    sold: int
    held: int
    available: int


class TicketTypeInventory(InventoryCounts):
    id: int
    name: str
    currency: str


class EventSummary(CamelModel):
    id: int
    title: str


class EventInventoryResponse(CamelModel):
    event: EventSummary
    totals: InventoryCounts
    ticket_types: list[TicketTypeInventory]
