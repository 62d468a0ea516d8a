"""
Ledger error taxonomy.

Write-path errors abort and roll back the unit of work they are raised in.
Read-path price errors are isolated per asset and reported inline.
"""

from typing import Any, Optional


class LedgerError(Exception):
    """Base class for all domain errors raised by foliotrack services."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(LedgerError):
    """Malformed or incomplete input. Raised before any I/O."""

    status_code = 400

    def __init__(self, field: str, message: Optional[str] = None):
        self.field = field
        super().__init__(message or f"Invalid or missing field: {field}")


class UnsupportedTransactionKind(LedgerError):
    """No effect rule exists for the transaction kind."""

    status_code = 400

    def __init__(self, kind: Any):
        self.kind = kind
        super().__init__(f"Unsupported transaction type: {kind}")


class PortfolioNotFound(LedgerError):
    status_code = 404

    def __init__(self, portfolio_id: Any):
        self.portfolio_id = portfolio_id
        super().__init__(f"Portfolio not found: {portfolio_id}")


class TransactionNotFound(LedgerError):
    status_code = 404

    def __init__(self, transaction_id: Any):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction not found: {transaction_id}")


class AssetNotFound(LedgerError):
    status_code = 404

    def __init__(self, asset_ref: Any):
        self.asset_ref = asset_ref
        super().__init__(f"Asset not found: {asset_ref}")


class StoreFailure(LedgerError):
    """The relational store failed inside a unit of work. Nothing was committed."""

    status_code = 500


class PriceLookupFailure(LedgerError):
    """A single price could not be fetched."""

    status_code = 502

    def __init__(self, symbol: str, source: Optional[str], reason: str):
        self.symbol = symbol
        self.source = source
        self.reason = reason
        super().__init__(f"Price lookup failed for {symbol} ({source}): {reason}")


class UnsupportedOperation(LedgerError):
    """
    Update and delete of recorded transactions.

    Either would require recomputing every downstream holding and cash balance
    from the remaining history, which the ledger does not do.
    """

    status_code = 501


class InsufficientHoldings(LedgerError):
    status_code = 400

    def __init__(self, asset_id: Any, resulting_quantity: Any):
        self.asset_id = asset_id
        self.resulting_quantity = resulting_quantity
        super().__init__(
            f"Sell would leave asset {asset_id} with negative quantity {resulting_quantity}"
        )


class InsufficientCash(LedgerError):
    status_code = 400

    def __init__(self, currency: str, resulting_balance: Any):
        self.currency = currency
        self.resulting_balance = resulting_balance
        super().__init__(
            f"Transaction would leave {currency} cash balance at {resulting_balance}"
        )
