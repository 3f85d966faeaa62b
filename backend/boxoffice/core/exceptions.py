"""Domain errors raised by the inventory, hold and pricing services.

Services raise these; the API layer maps them to HTTP responses in
boxoffice.api.errors. None of them are retried inside the engine.
"""

from enum import Enum
from typing import Any


class ErrorCode(Enum):
    """Domain error codes."""

    INSUFFICIENT_INVENTORY = "INSUFFICIENT_INVENTORY"
    INVALID_QUANTITY = "INVALID_QUANTITY"
    INVALID_HOLD_DURATION = "INVALID_HOLD_DURATION"
    INVALID_HOLD_SCOPE = "INVALID_HOLD_SCOPE"
    HOLD_NOT_FOUND = "HOLD_NOT_FOUND"
    HOLD_NOT_COMMITTABLE = "HOLD_NOT_COMMITTABLE"
    INVALID_PROMO_CODE = "INVALID_PROMO_CODE"
    EVENT_NOT_FOUND = "EVENT_NOT_FOUND"
    TICKET_TYPE_NOT_FOUND = "TICKET_TYPE_NOT_FOUND"
    TICKET_TYPE_NOT_ON_SALE = "TICKET_TYPE_NOT_ON_SALE"
    CURRENCY_MISMATCH = "CURRENCY_MISMATCH"


class DomainError(Exception):
    """Base domain error with code and user-safe message."""

    code: ErrorCode

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class InsufficientInventory(DomainError):
    """Requested quantity exceeds current availability."""

    code = ErrorCode.INSUFFICIENT_INVENTORY

    def __init__(self, ticket_type_id: int, requested: int, available: int) -> None:
        message = "Sold out" if available <= 0 else f"Only {available} tickets remaining"
        super().__init__(
            message,
            ticket_type_id=ticket_type_id,
            requested=requested,
            available=max(available, 0),
        )
        self.ticket_type_id = ticket_type_id
        self.requested = requested
        self.available = max(available, 0)


class InvalidQuantity(DomainError):
    code = ErrorCode.INVALID_QUANTITY

    def __init__(self, quantity: int, limit: int | None = None) -> None:
        if limit is None:
            message = "Quantity must be at least 1"
        else:
            message = f"Quantity {quantity} exceeds the per-order limit of {limit}"
        super().__init__(message, quantity=quantity, limit=limit)
        self.quantity = quantity
        self.limit = limit


class InvalidHoldDuration(DomainError):
    code = ErrorCode.INVALID_HOLD_DURATION

    def __init__(self, message: str = "Hold duration must be positive") -> None:
        super().__init__(message)


class InvalidHoldScope(DomainError):
    code = ErrorCode.INVALID_HOLD_SCOPE


class HoldNotFound(DomainError):
    code = ErrorCode.HOLD_NOT_FOUND

    def __init__(self, hold_id: int) -> None:
        super().__init__("Hold not found", hold_id=hold_id)
        self.hold_id = hold_id


class HoldNotCommittable(DomainError):
    """Hold is no longer active; the buyer has to restart checkout."""

    code = ErrorCode.HOLD_NOT_COMMITTABLE

    def __init__(self, hold_id: int, status: str) -> None:
        super().__init__(f"Hold is {status} and cannot be committed", hold_id=hold_id, status=status)
        self.hold_id = hold_id
        self.status = status


class InvalidPromoCode(DomainError):
    code = ErrorCode.INVALID_PROMO_CODE

    def __init__(self, code: str, reason: str) -> None:
        super().__init__(f"Promo code is {reason}", promo_code=code, reason=reason)
        self.promo_code = code
        self.reason = reason


class EventNotFound(DomainError):
    code = ErrorCode.EVENT_NOT_FOUND

    def __init__(self, event_id: int) -> None:
        super().__init__("Event not found", event_id=event_id)
        self.event_id = event_id


class TicketTypeNotFound(DomainError):
    code = ErrorCode.TICKET_TYPE_NOT_FOUND

    def __init__(self, ticket_type_id: int) -> None:
        super().__init__("Ticket type not found", ticket_type_id=ticket_type_id)
        self.ticket_type_id = ticket_type_id


class TicketTypeNotOnSale(DomainError):
    code = ErrorCode.TICKET_TYPE_NOT_ON_SALE

    def __init__(self, ticket_type_id: int, reason: str) -> None:
        super().__init__(f"Ticket type is {reason}", ticket_type_id=ticket_type_id, reason=reason)
        self.ticket_type_id = ticket_type_id
        self.reason = reason


class CurrencyMismatch(DomainError):
    code = ErrorCode.CURRENCY_MISMATCH

    def __init__(self, currencies: list[str]) -> None:
        super().__init__("Cart lines must share one currency", currencies=currencies)
        self.currencies = currencies
