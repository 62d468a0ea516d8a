# Base
from foliotrack.models.base import TimestampMixin, IdMixin

# Reference data
from foliotrack.models.portfolio import Portfolio
from foliotrack.models.asset import Asset
from foliotrack.models.platform import Platform

# Ledger
from foliotrack.models.transaction import Transaction, TransactionKind, ASSET_KINDS
from foliotrack.models.holding import Holding
from foliotrack.models.cash_balance import CashBalance
from foliotrack.models.dividend_payment import DividendPayment
from foliotrack.models.stock_split import StockSplit

# Reporting
from foliotrack.models.portfolio_snapshot import PortfolioSnapshot

__all__ = [
    "TimestampMixin",
    "IdMixin",
    "Portfolio",
    "Asset",
    "Platform",
    "Transaction",
    "TransactionKind",
    "ASSET_KINDS",
    "Holding",
    "CashBalance",
    "DividendPayment",
    "StockSplit",
    "PortfolioSnapshot",
]
