"""
Pydantic schemas for hold-related request/response validation.
"""

from datetime import datetime
from typing import Optional

from pydantic import Field

from boxoffice.models.hold import HoldReason, HoldStatus
from boxoffice.schemas.common import CamelModel
from boxoffice.schemas.pricing import CartLine, PriceQuoteResponse


class HoldCreate(CamelModel):
    ticket_type_id: Optional[int] = None  # None = event-wide organizer hold
    quantity: int = Field(..., gt=0)
    reason: HoldReason = HoldReason.CHECKOUT
    expires_in_hours: Optional[float] = Field(None, gt=0)


class HoldResponse(CamelModel):
    id: int
    event_id: int
    ticket_type_id: Optional[int]
    quantity: int
    reason: HoldReason
    status: HoldStatus
    created_at: datetime
    expires_at: datetime
    resolved_at: Optional[datetime] = None


class CartHoldCreate(CamelModel):
    lines: list[CartLine] = Field(..., min_length=1)
    reason: HoldReason = HoldReason.CHECKOUT
    expires_in_hours: Optional[float] = Field(None, gt=0)
    promo_code: Optional[str] = Field(None, max_length=64)


class CartHoldResponse(CamelModel):
    holds: list[HoldResponse]
    quote: PriceQuoteResponse
