"""
Domain errors raised by the ledger services.

Each error carries a stable machine-readable code and the HTTP status the API
layer answers with. Batch operations report the code per item instead of
raising.
"""
from fastapi import status


class LedgerError(Exception):
    """Base class for all domain errors."""

    code = "LEDGER_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(LedgerError):
    """Portfolio or transaction is absent or not owned by the caller."""

    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND


class InvalidTickerError(LedgerError):
    """Ticker failed external validation."""

    code = "INVALID_TICKER"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, ticker: str):
        super().__init__(f"Invalid ticker: {ticker}")
        self.ticker = ticker


class InsufficientFundsError(LedgerError):
    """Operation would drive the cash balance negative."""

    code = "INSUFFICIENT_FUNDS"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, required: float, available: float):
        super().__init__(
            f"Insufficient cash: required {required:.2f}, available {available:.2f}"
        )
        self.required = required
        self.available = available


class InvalidAllocationError(LedgerError):
    """Asset weights are malformed."""

    code = "INVALID_ALLOCATION"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class ValidationError(LedgerError):
    """Malformed suggestion or transaction fields, or an illegal state change."""

    code = "VALIDATION_ERROR"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class PortfolioLimitExceededError(LedgerError):
    code = "PORTFOLIO_LIMIT"
    status_code = status.HTTP_403_FORBIDDEN


class PortfolioBusyError(LedgerError):
    """Another operation holds the portfolio lock."""

    code = "PORTFOLIO_BUSY"
    status_code = status.HTTP_409_CONFLICT


class QuoteUnavailableError(LedgerError):
    """Quote provider could not be reached."""

    code = "QUOTE_UNAVAILABLE"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
