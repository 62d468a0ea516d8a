from sqlalchemy import Column, ForeignKey, Integer, String, UniqueConstraint
from foliotrack.core.database import Base
from foliotrack.models.base import IdMixin, TimestampMixin, LedgerNumeric


class CashBalance(Base, IdMixin, TimestampMixin):
    """
    Derived cash position per (portfolio, platform, currency).
    """
    __tablename__ = "cash_balances"
    __table_args__ = (
        UniqueConstraint(
            "portfolio_id",
            "platform_id",
            "currency",
            name="uq_cash_balances_portfolio_platform_currency",
        ),
    )

    portfolio_id = Column(Integer, ForeignKey("portfolios.id"), nullable=False, index=True)
    platform_id = Column(Integer, ForeignKey("platforms.id"), nullable=False)
    currency = Column(String(3), nullable=False)
    balance = Column(LedgerNumeric, nullable=False, default=0)
