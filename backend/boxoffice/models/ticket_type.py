"""
Ticket type (category) model with inventory counters.

Key design decisions:
- `sold` and `held` are denormalized counters so availability is a single
  row read: available = capacity - sold - held
- Counters are only mutated through guarded UPDATE statements in
  ledger_service; the CHECK constraints are the final safety net
- `version` is bumped on every counter mutation so readers can detect change
"""

from sqlalchemy import Boolean, CheckConstraint, Column, ForeignKey, Index, Integer, String

from boxoffice.db.base import Base, TimestampMixin
from boxoffice.db.types import UTCDateTime


class TicketType(Base, TimestampMixin):
    __tablename__ = "ticket_types"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False)
    name = Column(String(100), nullable=False)

    capacity = Column(Integer, nullable=False)
    sold = Column(Integer, nullable=False, default=0)
    held = Column(Integer, nullable=False, default=0)

    price_cents = Column(Integer, nullable=False, default=0)
    fee_cents = Column(Integer, nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="USD")

    per_order_limit = Column(Integer, nullable=True)  # None = no cap
    sales_start = Column(UTCDateTime(), nullable=True)
    sales_end = Column(UTCDateTime(), nullable=True)
    active = Column(Boolean, nullable=False, default=True)

    # Optimistic concurrency marker
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint("capacity >= 0", name="check_ticket_type_capacity_non_negative"),
        CheckConstraint("sold >= 0", name="check_ticket_type_sold_non_negative"),
        CheckConstraint("held >= 0", name="check_ticket_type_held_non_negative"),
        # Oversell guard at the DB level
        CheckConstraint("sold + held <= capacity", name="check_ticket_type_no_oversell"),
        CheckConstraint("price_cents >= 0", name="check_ticket_type_price_non_negative"),
        CheckConstraint("fee_cents >= 0", name="check_ticket_type_fee_non_negative"),
        CheckConstraint(
            "per_order_limit IS NULL OR per_order_limit > 0",
            name="check_ticket_type_per_order_limit_positive",
        ),
        Index("ix_ticket_types_event_id", "event_id"),
    )

    @property
    def available(self) -> int:
        return max(self.capacity - self.sold - self.held, 0)

    def __repr__(self) -> str:
        return (
            f"<TicketType(id={self.id}, name={self.name}, "
            f"sold={self.sold}, held={self.held}, capacity={self.capacity})>"
        )
