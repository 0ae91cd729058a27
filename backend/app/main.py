"""
Portfolio Ledger Backend - FastAPI Application

Transaction ledger and rebalancing-suggestion engine for long-term portfolios.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.errors import LedgerError
from app.database.connections import get_mongo_client, close_connections
from app.database.registry import sync_registry, create_indexes
from app.routers import health, portfolios, suggestions, transactions
from app.services.quote_service import close_quote_api

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup:
    - Initialize database connections
    - Sync database registry
    - Create indexes

    Shutdown:
    - Close the quote provider client
    - Close all database connections
    """
    logger.info("Starting up Portfolio Ledger Backend...")

    try:
        client = await get_mongo_client()
        await sync_registry(client)
        await create_indexes(client)
        logger.info("Database registry synced and indexes created")
    except Exception as e:
        logger.warning("Database initialization warning: %s", e)

    yield

    logger.info("Shutting down Portfolio Ledger Backend...")
    await close_quote_api()
    await close_connections()
    logger.info("Database connections closed")


# Create FastAPI application
app = FastAPI(
    title="Portfolio Ledger API",
    description="""
## Portfolio Ledger API

Tracks a long-term portfolio against its target allocation.

### Features
- **Portfolios**: Target allocations, contribution plan and backtest seeds
- **Ledger**: Cash movements, trades and dividends with a derived cash balance
- **Suggestions**: Contribution, dividend and rebalancing proposals with a
  confirm/reject lifecycle
- **Metrics**: Cached value, invested capital and return

### Authentication
All protected endpoints require a JWT token passed as a query parameter:
```
GET /portfolios?token=your_jwt_token
```

### Errors
Domain errors are returned as `{"detail": "...", "code": "INSUFFICIENT_FUNDS"}`.
    """,
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",  # Development
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    """Render domain errors with their status and machine-readable code."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


# Include routers
app.include_router(health.router)
app.include_router(portfolios.router)
app.include_router(transactions.router)
app.include_router(suggestions.router)


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "name": "Portfolio Ledger API",
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/health",
    }
