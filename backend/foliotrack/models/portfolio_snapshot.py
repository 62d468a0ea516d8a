from sqlalchemy import Column, Date, ForeignKey, Integer, UniqueConstraint
from foliotrack.core.database import Base
from foliotrack.models.base import IdMixin, TimestampMixin, LedgerNumeric


class PortfolioSnapshot(Base, IdMixin, TimestampMixin):
    """
    Daily portfolio valuation snapshot. One row per portfolio per calendar day.
    """
    __tablename__ = "portfolio_snapshots"
    __table_args__ = (
        UniqueConstraint("portfolio_id", "snapshot_date", name="uq_portfolio_snapshots_portfolio_date"),
    )

    portfolio_id = Column(Integer, ForeignKey("portfolios.id"), nullable=False, index=True)
    snapshot_date = Column(Date, nullable=False)
    total_value = Column(LedgerNumeric, nullable=False)
    total_invested = Column(LedgerNumeric, nullable=False)
    total_gain_loss = Column(LedgerNumeric, nullable=False)
    percent_gain_loss = Column(LedgerNumeric, nullable=False)
    holdings_count = Column(Integer, nullable=False, default=0)
