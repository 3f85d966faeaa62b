"""
Hold endpoints: create, list, commit and release holds.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.logging import get_logger
from boxoffice.db.session import get_db
from boxoffice.schemas.hold import CartHoldCreate, CartHoldResponse, HoldCreate, HoldResponse
from boxoffice.schemas.pricing import PriceQuoteResponse
from boxoffice.services import hold_service, pricing_service
from boxoffice.services.cache_service import invalidate_availability

logger = get_logger(__name__)
router = APIRouter(tags=["Holds"])


@router.post(
    "/events/{event_id}/holds",
    response_model=HoldResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_hold_endpoint(
    event_id: int,
    hold_data: HoldCreate,
    db: AsyncSession = Depends(get_db),
):
    """
    Reserve tickets for a buyer checkout, a reservation, or an organizer hold.

    Returns 409 when the category does not have enough tickets left.
    Organizer holds may omit ticketTypeId to record an event-wide hold.
    """
    ttl = hold_service.resolve_ttl(hold_data.reason, hold_data.expires_in_hours)
    hold = await hold_service.create_hold(
        db,
        event_id=event_id,
        ticket_type_id=hold_data.ticket_type_id,
        quantity=hold_data.quantity,
        reason=hold_data.reason,
        ttl=ttl,
    )
    await invalidate_availability([hold.ticket_type_id])
    return hold


@router.get("/events/{event_id}/holds", response_model=list[HoldResponse])
async def list_holds_endpoint(event_id: int, db: AsyncSession = Depends(get_db)):
    """All holds for an event, soonest expiry first."""
    return await hold_service.list_holds(db, event_id)


@router.post(
    "/events/{event_id}/cart/holds",
    response_model=CartHoldResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_cart_holds_endpoint(
    event_id: int,
    cart: CartHoldCreate,
    db: AsyncSession = Depends(get_db),
):
    """
    Reserve every line of a cart and price exactly what was reserved.
    If any line or the promo code fails, nothing stays held.
    """
    ttl = hold_service.resolve_ttl(cart.reason, cart.expires_in_hours)
    holds = await hold_service.create_cart_holds(
        db,
        event_id=event_id,
        lines=[(line.ticket_type_id, line.quantity) for line in cart.lines],
        reason=cart.reason,
        ttl=ttl,
    )

    hold_ids = [hold.id for hold in holds]
    ticket_type_ids = [hold.ticket_type_id for hold in holds]
    try:
        quote = await pricing_service.price_cart(
            db,
            [(hold.ticket_type_id, hold.quantity) for hold in holds],
            promo_code=cart.promo_code,
        )
    except Exception:
        await db.rollback()
        for hold_id in hold_ids:
            try:
                await hold_service.release_hold(db, hold_id)
            except Exception:
                logger.exception("cart_hold_release_failed", event_id=event_id, hold_id=hold_id)
        raise
    finally:
        await invalidate_availability(ticket_type_ids)

    return CartHoldResponse(
        holds=[HoldResponse.model_validate(hold) for hold in holds],
        quote=PriceQuoteResponse.model_validate(quote),
    )


@router.get("/holds/{hold_id}", response_model=HoldResponse)
async def get_hold_endpoint(hold_id: int, db: AsyncSession = Depends(get_db)):
    return await hold_service.get_hold(db, hold_id)


@router.post("/holds/{hold_id}/commit", response_model=HoldResponse)
async def commit_hold_endpoint(hold_id: int, db: AsyncSession = Depends(get_db)):
    """
    Convert a hold into sold tickets, typically after payment succeeded.
    Returns 409 with the hold's status if it already expired or was released.
    """
    hold = await hold_service.commit_hold(db, hold_id)
    await invalidate_availability([hold.ticket_type_id])
    return hold


@router.delete("/holds/{hold_id}", response_model=HoldResponse)
async def release_hold_endpoint(hold_id: int, db: AsyncSession = Depends(get_db)):
    """Release a hold. Releasing an already finished hold is a no-op."""
    hold = await hold_service.release_hold(db, hold_id)
    await invalidate_availability([hold.ticket_type_id])
    return hold
