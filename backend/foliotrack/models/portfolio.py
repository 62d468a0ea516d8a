from sqlalchemy import Column, String, Text
from foliotrack.core.database import Base
from foliotrack.models.base import IdMixin, TimestampMixin


class Portfolio(Base, IdMixin, TimestampMixin):
    """
    Named container of holdings, cash balances and transactions owned by a user.
    """
    __tablename__ = "portfolios"

    user_id = Column(String(128), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    base_currency = Column(String(3), nullable=False, default="USD")
