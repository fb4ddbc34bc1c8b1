"""Declarative base shared by every table."""

from sqlalchemy import Column, DateTime
from sqlalchemy.orm import declared_attr

from talentsync.database import Base
from talentsync.utils.time import utc_now


class TimestampMixin:
    """created_at on insert, updated_at on every ORM update (naive UTC)."""

    @declared_attr
    def created_at(cls):
        return Column(DateTime, default=utc_now, nullable=False)

    @declared_attr
    def updated_at(cls):
        return Column(DateTime, onupdate=utc_now, nullable=True)


class BaseModel(Base, TimestampMixin):
    __abstract__ = True

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(id={getattr(self, 'id', None)})>"
