from sqlalchemy import Column, Date, ForeignKey, Integer
from foliotrack.core.database import Base
from foliotrack.models.base import IdMixin, TimestampMixin, LedgerNumeric


class StockSplit(Base, IdMixin, TimestampMixin):
    """
    Split applied to a portfolio's holdings of an asset (ratio 2 means 2-for-1).
    """
    __tablename__ = "stock_splits"

    portfolio_id = Column(Integer, ForeignKey("portfolios.id"), nullable=False, index=True)
    asset_id = Column(Integer, ForeignKey("assets.id"), nullable=False)
    transaction_id = Column(Integer, ForeignKey("transactions.id"), nullable=True)
    split_date = Column(Date, nullable=False)
    split_ratio = Column(LedgerNumeric, nullable=False)
