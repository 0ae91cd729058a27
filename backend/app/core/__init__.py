"""
Core module - Security, domain errors and date utilities.
"""
from app.core.security import create_access_token, decode_token
from app.core.errors import (
    LedgerError,
    NotFoundError,
    InvalidTickerError,
    InsufficientFundsError,
    InvalidAllocationError,
    ValidationError,
    PortfolioLimitExceededError,
    PortfolioBusyError,
    QuoteUnavailableError,
)

__all__ = [
    "create_access_token",
    "decode_token",
    "LedgerError",
    "NotFoundError",
    "InvalidTickerError",
    "InsufficientFundsError",
    "InvalidAllocationError",
    "ValidationError",
    "PortfolioLimitExceededError",
    "PortfolioBusyError",
    "QuoteUnavailableError",
]
