from boxoffice.schemas.hold import CartHoldCreate, CartHoldResponse, HoldCreate, HoldResponse
from boxoffice.schemas.inventory import AvailabilityResponse, EventInventoryResponse
from boxoffice.schemas.pricing import CartLine, PriceCartRequest, PriceQuoteResponse

__all__ = [
    "HoldCreate", "HoldResponse", "CartHoldCreate", "CartHoldResponse",
    "CartLine", "PriceCartRequest", "PriceQuoteResponse",
    "AvailabilityResponse", "EventInventoryResponse",
]
