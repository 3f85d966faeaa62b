"""
Cart pricing endpoint. Read-only: pricing never reserves inventory.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.db.session import get_db
from boxoffice.schemas.pricing import PriceCartRequest, PriceQuoteResponse
from boxoffice.services import pricing_service

router = APIRouter(prefix="/pricing", tags=["Pricing"])


@router.post("/cart", response_model=PriceQuoteResponse)
async def price_cart_endpoint(cart: PriceCartRequest, db: AsyncSession = Depends(get_db)):
    """Subtotal, discount, fees and total for a cart, with an optional promo code."""
    quote = await pricing_service.price_cart(
        db,
        [(line.ticket_type_id, line.quantity) for line in cart.lines],
        promo_code=cart.promo_code,
    )
    return PriceQuoteResponse.model_validate(quote)
