from sqlalchemy import Boolean, Column, Date, ForeignKey, Integer, String
from foliotrack.core.database import Base
from foliotrack.models.base import IdMixin, TimestampMixin, LedgerNumeric


class DividendPayment(Base, IdMixin, TimestampMixin):
    """
    Dividend received, recorded alongside every dividend transaction.
    """
    __tablename__ = "dividend_payments"

    portfolio_id = Column(Integer, ForeignKey("portfolios.id"), nullable=False, index=True)
    asset_id = Column(Integer, ForeignKey("assets.id"), nullable=False)
    transaction_id = Column(Integer, ForeignKey("transactions.id"), nullable=True)
    payment_date = Column(Date, nullable=False)
    amount_per_share = Column(LedgerNumeric, nullable=False, default=0)
    total_amount = Column(LedgerNumeric, nullable=False)
    currency = Column(String(3), nullable=False)
    is_reinvested = Column(Boolean, nullable=False, default=False)
