"""
Portfolio configuration and asset allocation models for ledger_db.
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class RebalanceFrequency(str, Enum):
    """Contribution and rebalancing cadence."""
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    SEMIANNUAL = "semiannual"
    YEARLY = "yearly"

    @property
    def months(self) -> int:
        """Number of months in one period."""
        return {
            RebalanceFrequency.MONTHLY: 1,
            RebalanceFrequency.QUARTERLY: 3,
            RebalanceFrequency.SEMIANNUAL: 6,
            RebalanceFrequency.YEARLY: 12,
        }[self]


class PortfolioConfig(BaseModel):
    """
    Portfolio document model for MongoDB ledger_db.portfolios collection.
    """
    id: Optional[str] = Field(None, alias="_id", description="MongoDB ObjectId as string")
    user_id: str = Field(..., description="Owner user ID")
    name: str = Field(..., description="Portfolio name")
    description: Optional[str] = Field(None, description="Optional description")
    start_date: datetime = Field(..., description="First contribution period")
    monthly_contribution: float = Field(0.0, ge=0, description="Planned contribution per period")
    rebalance_frequency: RebalanceFrequency = Field(
        default=RebalanceFrequency.MONTHLY,
        description="Contribution cadence",
    )
    tracking_started: bool = Field(default=True, description="Whether suggestions are generated")
    last_suggestions_generated_at: Optional[datetime] = Field(
        None,
        description="When suggestions were last materialized; null forces regeneration",
    )
    version: int = Field(default=0, description="Optimistic concurrency counter")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        populate_by_name = True
        use_enum_values = True


class AssetAllocation(BaseModel):
    """
    Target weight document for MongoDB ledger_db.asset_allocations collection.
    """
    id: Optional[str] = Field(None, alias="_id", description="MongoDB ObjectId as string")
    portfolio_id: str = Field(..., description="Parent portfolio ID")
    ticker: str = Field(..., description="Upper-cased ticker symbol")
    target_weight: float = Field(..., ge=0, le=1, description="Target weight (0-1)")
    is_active: bool = Field(default=True, description="False once removed from the portfolio")

    class Config:
        populate_by_name = True
