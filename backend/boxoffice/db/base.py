"""
Declarative base and shared column mixins.
"""

from sqlalchemy import Column
from sqlalchemy.orm import DeclarativeBase

from boxoffice.db.types import UTCDateTime, utcnow


class Base(DeclarativeBase):
    pass


class TimestampMixin:
    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime(), nullable=False, default=utcnow, onupdate=utcnow)
