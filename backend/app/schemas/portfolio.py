"""
Portfolio request/response schemas.
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from app.models.portfolio import RebalanceFrequency


class AssetInput(BaseModel):
    """Target allocation for one ticker."""
    ticker: str = Field(..., min_length=1, max_length=20, description="Ticker symbol")
    target_weight: float = Field(..., description="Target weight (0-1)")


class PortfolioCreate(BaseModel):
    """Create portfolio request."""
    name: str = Field(..., min_length=1, max_length=100, description="Portfolio name")
    description: Optional[str] = Field(None, max_length=500, description="Portfolio description")
    start_date: Optional[datetime] = Field(None, description="First contribution period (defaults to today)")
    monthly_contribution: float = Field(0.0, ge=0, description="Planned contribution per period")
    rebalance_frequency: RebalanceFrequency = Field(
        default=RebalanceFrequency.MONTHLY,
        description="Contribution cadence",
    )
    assets: list[AssetInput] = Field(..., min_length=1, description="Target allocations (sum to 1)")


class AssetResponse(BaseModel):
    """Active target allocation."""
    ticker: str
    target_weight: float


class PortfolioResponse(BaseModel):
    """Portfolio response."""
    id: str = Field(..., description="Portfolio ID")
    user_id: str = Field(..., description="Owner user ID")
    name: str = Field(..., description="Portfolio name")
    description: Optional[str] = Field(None, description="Portfolio description")
    start_date: datetime = Field(..., description="First contribution period")
    monthly_contribution: float = Field(..., description="Planned contribution per period")
    rebalance_frequency: str = Field(..., description="Contribution cadence")
    tracking_started: bool = Field(..., description="Whether suggestions are generated")
    last_suggestions_generated_at: Optional[datetime] = None
    assets: list[AssetResponse] = Field(default=[], description="Active target allocations")
    cash_balance: float = Field(..., description="Current cash balance")
    created_at: datetime = Field(..., description="Creation timestamp")


class AssetAdd(BaseModel):
    """Add (or reactivate) one asset."""
    ticker: str = Field(..., min_length=1, max_length=20)
    target_weight: float = Field(..., gt=0, le=1, description="Weight of the new asset; others are scaled down")


class AssetsReplace(BaseModel):
    """Replace every target allocation in one call."""
    assets: list[AssetInput] = Field(..., min_length=1)


class AssetItemResult(BaseModel):
    """Outcome for one asset in a bulk replace."""
    ticker: str
    success: bool
    target_weight: Optional[float] = None
    code: Optional[str] = None
    error: Optional[str] = None


class ReplaceAssetsResult(BaseModel):
    """Bulk replace outcome; fails overall only when every asset failed."""
    success: bool
    succeeded: int
    failed: int
    results: list[AssetItemResult]
    assets: list[AssetResponse] = Field(default=[], description="Active allocations after the call")


class MonthlyValue(BaseModel):
    """Portfolio value at a month-end."""
    month: str = Field(..., description="YYYY-MM")
    value: float
    cash_balance: float
    net_flow: float = Field(0.0, description="Contributions minus withdrawals during the month")
    monthly_return: Optional[float] = Field(None, description="Flow-adjusted return over the previous month-end")


class PortfolioMetricsResponse(BaseModel):
    """Cached portfolio metrics."""
    portfolio_id: str
    current_value: float = Field(..., description="Holdings market value plus cash")
    holdings_value: float
    cash_balance: float
    total_invested: float = Field(..., description="Sum of cash inflows")
    total_withdrawn: float
    total_dividends: float
    total_return: float = Field(..., description="Fractional return on invested capital")
    positions: int = Field(0, description="Number of open positions")
    annualized_return: Optional[float] = Field(None, description="Needs at least 12 months of history")
    volatility: Optional[float] = Field(None, description="Annualized standard deviation of monthly returns")
    sharpe_ratio: Optional[float] = None
    max_drawdown: Optional[float] = Field(None, description="Largest peak-to-trough fall of month-end value")
    evolution: list[MonthlyValue] = Field(default=[], description="Month-end values, oldest first")
    last_calculated_at: datetime


class BacktestSeedRequest(BaseModel):
    """Overrides for a backtest generated from a live portfolio."""
    name: Optional[str] = Field(None, max_length=100)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    initial_capital: Optional[float] = Field(None, ge=0, description="Defaults to the live portfolio value")
    monthly_contribution: Optional[float] = Field(None, ge=0)


class BacktestAsset(BaseModel):
    ticker: str
    allocation: float


class BacktestSeedResponse(BaseModel):
    """Backtest configuration derived from a portfolio."""
    id: str
    source_portfolio_id: str
    name: str
    assets: list[BacktestAsset]
    start_date: datetime
    end_date: datetime
    initial_capital: float
    monthly_contribution: float
    rebalance_frequency: str
    excluded_tickers: list[str] = Field(default=[], description="Tickers dropped after failed validation")
    created_at: datetime
