"""
Time- and quantity-dependent price overrides for a ticket type
(early-bird, group pricing).
"""

from sqlalchemy import CheckConstraint, Column, ForeignKey, Index, Integer

from boxoffice.db.base import Base, TimestampMixin
from boxoffice.db.types import UTCDateTime


class TicketPriceTier(Base, TimestampMixin):
    __tablename__ = "ticket_price_tiers"

    id = Column(Integer, primary_key=True, index=True)
    ticket_type_id = Column(Integer, ForeignKey("ticket_types.id", ondelete="CASCADE"), nullable=False)
    starts_at = Column(UTCDateTime(), nullable=False)
    ends_at = Column(UTCDateTime(), nullable=True)
    min_qty = Column(Integer, nullable=False, default=1)
    price_cents = Column(Integer, nullable=False)
    fee_cents = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("min_qty >= 1", name="check_price_tier_min_qty_positive"),
        CheckConstraint("price_cents >= 0", name="check_price_tier_price_non_negative"),
        CheckConstraint("fee_cents >= 0", name="check_price_tier_fee_non_negative"),
        Index("ix_price_tiers_ticket_type_starts_at", "ticket_type_id", "starts_at"),
    )

    def is_applicable(self, now, quantity: int) -> bool:
        if self.starts_at > now:
            return False
        if self.ends_at is not None and self.ends_at <= now:
            return False
        return quantity >= self.min_qty

    def __repr__(self) -> str:
        return f"<TicketPriceTier(id={self.id}, ticket_type={self.ticket_type_id}, price={self.price_cents})>"
