"""
Promo code model.

Only the discount definition and its validity window are evaluated by
the pricing engine; redemption bookkeeping belongs to the order flow.
"""

from sqlalchemy import Boolean, CheckConstraint, Column, ForeignKey, Integer, Numeric, String

from boxoffice.db.base import Base, TimestampMixin
from boxoffice.db.types import UTCDateTime


class PromoCode(Base, TimestampMixin):
    __tablename__ = "promo_codes"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(64), nullable=False, unique=True, index=True)  # stored upper-case
    event_id = Column(Integer, ForeignKey("events.id"), nullable=True)  # None = any event
    discount_type = Column(String(20), nullable=False)  # percentage, fixed
    discount_value = Column(Numeric(12, 2), nullable=False)  # percent, or cents for fixed
    starts_at = Column(UTCDateTime(), nullable=True)
    ends_at = Column(UTCDateTime(), nullable=True)
    max_uses = Column(Integer, nullable=True)
    redemptions = Column(Integer, nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("discount_type IN ('percentage', 'fixed')", name="check_promo_discount_type"),
        CheckConstraint("discount_value >= 0", name="check_promo_discount_value_non_negative"),
        CheckConstraint(
            "discount_type != 'percentage' OR discount_value <= 100",
            name="check_promo_percentage_lte_100",
        ),
    )

    def __repr__(self) -> str:
        return f"<PromoCode(id={self.id}, code={self.code}, {self.discount_type}={self.discount_value})>"
