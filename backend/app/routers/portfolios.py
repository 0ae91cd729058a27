"""
Portfolios router for portfolio configuration, allocations and valuation.
"""
from typing import Annotated

from fastapi import APIRouter, Depends, status

from app.dependencies.auth import get_current_user
from app.dependencies.services import get_services
from app.models.user import User
from app.schemas.portfolio import (
    AssetAdd,
    AssetsReplace,
    BacktestSeedRequest,
    BacktestSeedResponse,
    PortfolioCreate,
    PortfolioMetricsResponse,
    PortfolioResponse,
    ReplaceAssetsResult,
)
from app.schemas.suggestion import ClosedPosition, Holding
from app.schemas.transaction import CashBalanceResponse, RecalculateResponse
from app.services.wiring import LedgerServices

router = APIRouter(prefix="/portfolios", tags=["Portfolios"])


# ==================== Portfolio CRUD ====================


@router.get(
    "",
    response_model=list[PortfolioResponse],
    summary="List portfolios",
)
async def list_portfolios(
    current_user: Annotated[User, Depends(get_current_user)],
    services: LedgerServices = Depends(get_services),
):
    """
    List all portfolios for the current user.

    Requires valid token as query parameter: `?token=xxx`
    """
    return await services.portfolios.list_portfolios(current_user.id)


@router.post(
    "",
    response_model=PortfolioResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create portfolio",
)
async def create_portfolio(
    body: PortfolioCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    services: LedgerServices = Depends(get_services),
):
    """
    Create a portfolio with its target allocation.

    - **name**: Portfolio name (required)
    - **assets**: Tickers with target weights summing to 1
    - **monthly_contribution**: Planned contribution per period
    - **rebalance_frequency**: monthly, quarterly, semiannual or yearly
    - **start_date**: First contribution period (defaults to today)

    Free accounts may own one portfolio.

    Requires valid token as query parameter: `?token=xxx`
    """
    return await services.portfolios.create_portfolio(current_user, body)


@router.get(
    "/{portfolio_id}",
    response_model=PortfolioResponse,
    summary="Get portfolio",
)
async def get_portfolio(
    portfolio_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    services: LedgerServices = Depends(get_services),
):
    """
    Get a portfolio with its active allocation and cash balance.

    Requires valid token as query parameter: `?token=xxx`
    """
    return await services.portfolios.get_portfolio(portfolio_id, current_user.id)


@router.delete(
    "/{portfolio_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete portfolio",
)
async def delete_portfolio(
    portfolio_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    services: LedgerServices = Depends(get_services),
):
    """
    Delete a portfolio with its allocations, transactions and metrics.

    **Warning**: This action cannot be undone.

    Requires valid token as query parameter: `?token=xxx`
    """
    await services.portfolios.delete_portfolio(portfolio_id, current_user.id)


# ==================== Asset Allocation ====================


@router.post(
    "/{portfolio_id}/assets",
    response_model=PortfolioResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add asset",
)
async def add_asset(
    portfolio_id: str,
    body: AssetAdd,
    current_user: Annotated[User, Depends(get_current_user)],
    services: LedgerServices = Depends(get_services),
):
    """
    Add an asset; the other weights are scaled down to make room.

    Pending suggestions are discarded and rebuilt in the background.
    """
    return await services.portfolios.add_asset(portfolio_id, current_user.id, body)


@router.delete(
    "/{portfolio_id}/assets/{ticker}",
    response_model=PortfolioResponse,
    summary="Remove asset",
)
async def remove_asset(
    portfolio_id: str,
    ticker: str,
    current_user: Annotated[User, Depends(get_current_user)],
    services: LedgerServices = Depends(get_services),
):
    """Deactivate an asset and renormalize the remaining weights."""
    return await services.portfolios.remove_asset(portfolio_id, current_user.id, ticker)


@router.put(
    "/{portfolio_id}/assets",
    response_model=ReplaceAssetsResult,
    summary="Replace all assets",
)
async def replace_assets(
    portfolio_id: str,
    body: AssetsReplace,
    current_user: Annotated[User, Depends(get_current_user)],
    services: LedgerServices = Depends(get_services),
):
    """
    Replace the whole allocation.

    Each asset is validated on its own; failures are reported per ticker and
    the valid assets are normalized to sum to 1.
    """
    return await services.portfolios.replace_all_assets(portfolio_id, current_user.id, body)


# ==================== Valuation ====================


@router.get(
    "/{portfolio_id}/holdings",
    response_model=list[Holding],
    summary="Current holdings",
)
async def get_holdings(
    portfolio_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    services: LedgerServices = Depends(get_services),
):
    """Open positions priced at the latest quote, with drift from target."""
    return await services.engine.get_holdings(portfolio_id, current_user.id)


@router.get(
    "/{portfolio_id}/closed-positions",
    response_model=list[ClosedPosition],
    summary="Closed positions",
)
async def get_closed_positions(
    portfolio_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    services: LedgerServices = Depends(get_services),
):
    return await services.engine.get_closed_positions(portfolio_id, current_user.id)


@router.get(
    "/{portfolio_id}/metrics",
    response_model=PortfolioMetricsResponse,
    summary="Portfolio metrics",
)
async def get_portfolio_metrics(
    portfolio_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    services: LedgerServices = Depends(get_services),
):
    """
    Summary metrics (value, invested, withdrawn, dividends, return).

    Served from cache when computed within the last few minutes.
    """
    return await services.metrics.get_metrics(portfolio_id, current_user.id)


@router.get(
    "/{portfolio_id}/cash-balance",
    response_model=CashBalanceResponse,
    summary="Current cash balance",
)
async def get_cash_balance(
    portfolio_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    services: LedgerServices = Depends(get_services),
):
    await services.ledger.ensure_owner(portfolio_id, current_user.id)
    balance = await services.ledger.get_current_cash_balance(portfolio_id)
    return CashBalanceResponse(portfolio_id=portfolio_id, cash_balance=balance)


@router.post(
    "/{portfolio_id}/cash-balance/recalculate",
    response_model=RecalculateResponse,
    summary="Rebuild cash balance snapshots",
)
async def recalculate_cash_balances(
    portfolio_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    services: LedgerServices = Depends(get_services),
):
    """Replay the ledger and rewrite each transaction's before/after balance."""
    await services.ledger.ensure_owner(portfolio_id, current_user.id)
    updated = await services.ledger.recalculate_cash_balances(portfolio_id)
    balance = await services.ledger.get_current_cash_balance(portfolio_id)
    return RecalculateResponse(portfolio_id=portfolio_id, updated=updated, cash_balance=balance)


# ==================== Backtesting ====================


@router.post(
    "/{portfolio_id}/backtest-seed",
    response_model=BacktestSeedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Generate backtest from portfolio",
)
async def generate_backtest_seed(
    portfolio_id: str,
    body: BacktestSeedRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    services: LedgerServices = Depends(get_services),
):
    """
    Build a backtest configuration from the live allocation.

    Tickers that no longer validate are excluded and the rest renormalized.
    Initial capital defaults to the current portfolio value.
    """
    return await services.portfolios.generate_backtest_seed(portfolio_id, current_user.id, body)
