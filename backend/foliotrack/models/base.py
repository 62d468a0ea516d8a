from datetime import datetime, timezone
from sqlalchemy import Column, DateTime, Integer, Numeric
from sqlalchemy.orm import declarative_mixin

# Quantities and money share one precision so SQL-side arithmetic never truncates
LedgerNumeric = Numeric(24, 8)


def utcnow() -> datetime:
    """Naive UTC timestamp, as stored in the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@declarative_mixin
class IdMixin:
    id = Column(Integer, primary_key=True, autoincrement=True)


@declarative_mixin
class TimestampMixin:
    """created_at is set on insert; updated_at on insert and on every ORM update."""
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
