from sqlalchemy import Column, ForeignKey, Integer, UniqueConstraint
from foliotrack.core.database import Base
from foliotrack.models.base import IdMixin, TimestampMixin, LedgerNumeric


class Holding(Base, IdMixin, TimestampMixin):
    """
    Derived position: quantity and cost basis of one asset in one portfolio on one platform.

    Only the holdings aggregator writes these rows, inside the unit of work of
    the transaction that caused the change.
    """
    __tablename__ = "holdings"
    __table_args__ = (
        UniqueConstraint(
            "portfolio_id",
            "asset_id",
            "platform_id",
            name="uq_holdings_portfolio_asset_platform",
        ),
    )

    portfolio_id = Column(Integer, ForeignKey("portfolios.id"), nullable=False, index=True)
    asset_id = Column(Integer, ForeignKey("assets.id"), nullable=False)
    platform_id = Column(Integer, ForeignKey("platforms.id"), nullable=False)
    quantity = Column(LedgerNumeric, nullable=False, default=0)
    total_cost_basis = Column(LedgerNumeric, nullable=False, default=0)
    average_cost_basis = Column(LedgerNumeric, nullable=False, default=0)
