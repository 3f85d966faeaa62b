"""
Maps domain errors to HTTP responses.

Body shape: {"error": {"code": ..., "message": ..., **details}}
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from boxoffice.core.exceptions import (
    CurrencyMismatch,
    DomainError,
    EventNotFound,
    HoldNotCommittable,
    HoldNotFound,
    InsufficientInventory,
    InvalidHoldDuration,
    InvalidHoldScope,
    InvalidPromoCode,
    InvalidQuantity,
    TicketTypeNotFound,
    TicketTypeNotOnSale,
)
from boxoffice.core.logging import get_logger

logger = get_logger(__name__)

# Literal code: the Starlette constant for 422 was renamed across releases
UNPROCESSABLE = 422

STATUS_BY_ERROR: dict[type[DomainError], int] = {
    InsufficientInventory: status.HTTP_409_CONFLICT,
    HoldNotCommittable: status.HTTP_409_CONFLICT,
    TicketTypeNotOnSale: status.HTTP_409_CONFLICT,
    InvalidQuantity: UNPROCESSABLE,
    InvalidHoldDuration: UNPROCESSABLE,
    InvalidHoldScope: UNPROCESSABLE,
    CurrencyMismatch: UNPROCESSABLE,
    InvalidPromoCode: status.HTTP_400_BAD_REQUEST,
    HoldNotFound: status.HTTP_404_NOT_FOUND,
    EventNotFound: status.HTTP_404_NOT_FOUND,
    TicketTypeNotFound: status.HTTP_404_NOT_FOUND,
}


def status_for(exc: DomainError) -> int:
    for error_type in type(exc).__mro__:
        if error_type in STATUS_BY_ERROR:
            return STATUS_BY_ERROR[error_type]
    return status.HTTP_400_BAD_REQUEST


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    status_code = status_for(exc)
    logger.info("domain_error", code=exc.code.value, status_code=status_code, path=request.url.path)
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": exc.code.value, "message": exc.message, **exc.details}},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, domain_error_handler)
