from sqlalchemy import Column, String, Text
from foliotrack.core.database import Base
from foliotrack.models.base import IdMixin, TimestampMixin


class Platform(Base, IdMixin, TimestampMixin):
    """
    Broker, exchange or wallet where holdings and cash are kept.
    """
    __tablename__ = "platforms"

    name = Column(String(100), nullable=False, unique=True)
    description = Column(Text, nullable=True)
