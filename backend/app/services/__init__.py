"""
Service layer for business logic.
"""
from app.services.allocation_service import AllocationEngine, combine_rebalancing_suggestions, compute_drift
from app.services.dividend_service import DividendService
from app.services.history_service import PriceHistoryService
from app.services.ledger_service import LedgerService
from app.services.metrics_service import MetricsService
from app.services.outbox_service import OutboxService
from app.services.portfolio_lock import PortfolioLock
from app.services.portfolio_service import PortfolioService
from app.services.quote_service import QuoteService
from app.services.suggestion_service import SuggestionService
from app.services.wiring import LedgerServices, build_services

__all__ = [
    "AllocationEngine",
    "combine_rebalancing_suggestions",
    "compute_drift",
    "DividendService",
    "LedgerService",
    "MetricsService",
    "OutboxService",
    "PortfolioLock",
    "PortfolioService",
    "PriceHistoryService",
    "QuoteService",
    "SuggestionService",
    "LedgerServices",
    "build_services",
]
