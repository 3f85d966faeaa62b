from boxoffice.models.event import Event
from boxoffice.models.hold import Hold, HoldReason, HoldStatus
from boxoffice.models.price_tier import TicketPriceTier
from boxoffice.models.promo_code import PromoCode
from boxoffice.models.ticket_type import TicketType

__all__ = [
    "Event", "TicketType", "TicketPriceTier", "PromoCode",
    "Hold", "HoldReason", "HoldStatus",
]
