from sqlalchemy import Column, String, UniqueConstraint
from foliotrack.core.database import Base
from foliotrack.models.base import IdMixin, TimestampMixin


class Asset(Base, IdMixin, TimestampMixin):
    """
    Tradable instrument and where its price comes from.
    """
    __tablename__ = "assets"
    __table_args__ = (
        UniqueConstraint("symbol", "data_source", name="uq_assets_symbol_source"),
    )

    symbol = Column(String(32), nullable=False, index=True)
    name = Column(String(200), nullable=True)
    asset_type = Column(String(20), nullable=False, default="stock")  # stock, etf, crypto, fund, other
    data_source = Column(String(20), nullable=False, default="yfinance")  # eodhd, coingecko, yfinance
    exchange = Column(String(20), nullable=True)
    currency = Column(String(3), nullable=False, default="USD")
