"""
Hold model: a temporary claim against a ticket type's capacity.

Key design decisions:
- Status is never deleted or reset; terminal holds are immutable history
- Composite index on (status, expires_at) serves the expiry sweeper query
- ticket_type_id is nullable for event-wide organizer holds, which do
  not consume category inventory
"""

import enum

from sqlalchemy import CheckConstraint, Column, ForeignKey, Index, Integer, String

from boxoffice.db.base import Base
from boxoffice.db.types import UTCDateTime, utcnow


class HoldReason(str, enum.Enum):
    CHECKOUT = "checkout"
    RESERVATION = "reservation"
    ORGANIZER_HOLD = "organizer_hold"


class HoldStatus(str, enum.Enum):
    ACTIVE = "active"
    COMMITTED = "committed"
    RELEASED = "released"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self is not HoldStatus.ACTIVE


class Hold(Base):
    __tablename__ = "holds"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False)
    ticket_type_id = Column(Integer, ForeignKey("ticket_types.id"), nullable=True)
    quantity = Column(Integer, nullable=False)
    reason = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default=HoldStatus.ACTIVE.value)
    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)
    expires_at = Column(UTCDateTime(), nullable=False)
    resolved_at = Column(UTCDateTime(), nullable=True)

    __table_args__ = (
        CheckConstraint("quantity >= 1", name="check_hold_quantity_positive"),
        CheckConstraint("expires_at > created_at", name="check_hold_expires_after_created"),
        CheckConstraint(
            "reason IN ('checkout', 'reservation', 'organizer_hold')",
            name="check_hold_reason",
        ),
        CheckConstraint(
            "status IN ('active', 'committed', 'released', 'expired')",
            name="check_hold_status",
        ),
        # Sweeper: WHERE status = 'active' AND expires_at <= now
        Index("ix_holds_status_expires_at", "status", "expires_at"),
        Index("ix_holds_event_id_expires_at", "event_id", "expires_at"),
        Index("ix_holds_ticket_type_id_status", "ticket_type_id", "status"),
    )

    @property
    def hold_status(self) -> HoldStatus:
        return HoldStatus(self.status)

    def __repr__(self) -> str:
        return (
            f"<Hold(id={self.id}, ticket_type={self.ticket_type_id}, "
            f"qty={self.quantity}, status={self.status})>"
        )
