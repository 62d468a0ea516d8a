import enum

from sqlalchemy import Column, Date, ForeignKey, Integer, String, Text
from foliotrack.core.database import Base
from foliotrack.models.base import IdMixin, TimestampMixin, LedgerNumeric


class TransactionKind(str, enum.Enum):
    """Closed set of financial events the ledger understands."""

    BUY = "buy"
    SELL = "sell"
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    DIVIDEND = "dividend"
    TRANSFER_IN = "transfer_in"
    TRANSFER_OUT = "transfer_out"
    SPLIT = "split"
    FREE = "free"

    @property
    def affects_asset(self) -> bool:
        return self in ASSET_KINDS


ASSET_KINDS = frozenset({
    TransactionKind.BUY,
    TransactionKind.SELL,
    TransactionKind.TRANSFER_IN,
    TransactionKind.TRANSFER_OUT,
    TransactionKind.SPLIT,
    TransactionKind.FREE,
})


class Transaction(Base, IdMixin, TimestampMixin):
    """
    Immutable ledger entry. Holdings and cash balances are derived from these rows.

    For a split, ``quantity`` holds the split ratio.
    """
    __tablename__ = "transactions"

    user_id = Column(String(128), nullable=False, index=True)
    portfolio_id = Column(Integer, ForeignKey("portfolios.id"), nullable=False, index=True)
    asset_id = Column(Integer, ForeignKey("assets.id"), nullable=True, index=True)
    platform_id = Column(Integer, ForeignKey("platforms.id"), nullable=False)
    transaction_type = Column(String(20), nullable=False)
    quantity = Column(LedgerNumeric, nullable=False, default=0)
    price_per_unit = Column(LedgerNumeric, nullable=False, default=0)
    total_amount = Column(LedgerNumeric, nullable=False, default=0)
    currency = Column(String(3), nullable=False)
    fee_amount = Column(LedgerNumeric, nullable=False, default=0)
    transaction_date = Column(Date, nullable=False, index=True)
    notes = Column(Text, nullable=True)

    @property
    def kind(self) -> TransactionKind:
        return TransactionKind(self.transaction_type)
