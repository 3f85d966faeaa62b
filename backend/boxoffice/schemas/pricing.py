"""
Pydantic schemas for cart pricing. Amounts are integer minor units (cents).
"""

from typing import Optional

from pydantic import Field

from boxoffice.schemas.common import CamelModel


class CartLine(CamelModel):
    ticket_type_id: int
    quantity: int = Field(..., gt=0)


class PriceCartRequest(CamelModel):
    lines: list[CartLine] = Field(..., min_length=1)
    promo_code: Optional[str] = Field(None, max_length=64)


class PricedLineResponse(CamelModel):
    ticket_type_id: int
    quantity: int
    unit_price_cents: int
    unit_fee_cents: int


class PriceQuoteResponse(CamelModel):
    subtotal: int
    discount: int
    fees: int
    total: int
    currency: str
    promo_code: Optional[str] = None
    lines: list[PricedLineResponse] = []
