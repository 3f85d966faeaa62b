"""
Event model.

Events are owned by the surrounding application; the inventory engine
only needs the id to scope ticket types and holds.
"""

from sqlalchemy import Column, Integer, String

from boxoffice.db.base import Base, TimestampMixin


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, title={self.title})>"
