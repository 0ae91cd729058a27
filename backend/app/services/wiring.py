"""
Service graph construction.

Services are cheap to build; routers build a fresh graph per request and the
outbox worker builds one per process.
"""
from dataclasses import dataclass
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from redis.asyncio import Redis

from app.services.allocation_service import AllocationEngine
from app.services.dividend_service import DividendService
from app.services.history_service import PriceHistoryService
from app.services.ledger_service import LedgerService
from app.services.metrics_service import MetricsService
from app.services.outbox_service import OutboxService
from app.services.portfolio_service import PortfolioService
from app.services.quote_service import QuoteAPI, QuoteService
from app.services.suggestion_service import SuggestionService


@dataclass
class LedgerServices:
    """Every ledger service, wired together."""
    quotes: QuoteService
    dividends: DividendService
    history: PriceHistoryService
    ledger: LedgerService
    engine: AllocationEngine
    outbox: OutboxService
    metrics: MetricsService
    suggestions: SuggestionService
    portfolios: PortfolioService


def build_services(
    ledger_database: AsyncIOMotorDatabase,
    market_database: AsyncIOMotorDatabase,
    redis: Redis,
    quote_api: Optional[QuoteAPI] = None,
) -> LedgerServices:
    quotes = QuoteService(redis, quote_api)
    dividends = DividendService(market_database, quote_api)
    history = PriceHistoryService(market_database, quote_api)
    ledger = LedgerService(ledger_database, quotes)
    engine = AllocationEngine(ledger_database, ledger, quotes, dividends)
    outbox = OutboxService(ledger_database)
    metrics = MetricsService(ledger_database, engine, history)
    suggestions = SuggestionService(ledger_database, ledger, engine, outbox, metrics)
    portfolios = PortfolioService(ledger_database, quotes, suggestions)
    return LedgerServices(
        quotes=quotes,
        dividends=dividends,
        history=history,
        ledger=ledger,
        engine=engine,
        outbox=outbox,
        metrics=metrics,
        suggestions=suggestions,
        portfolios=portfolios,
    )
