"""
Request and response schemas for API endpoints.
"""
from app.schemas.portfolio import (
    AssetInput,
    PortfolioCreate,
    PortfolioResponse,
    AssetAdd,
    AssetsReplace,
    ReplaceAssetsResult,
    PortfolioMetricsResponse,
    BacktestSeedRequest,
    BacktestSeedResponse,
)
from app.schemas.transaction import (
    TransactionCreate,
    TransactionUpdates,
    TransactionResponse,
    TransactionHistory,
    BatchResult,
)
from app.schemas.suggestion import (
    Suggestion,
    SuggestionKind,
    CombinedRebalancing,
    Holding,
    DriftEntry,
    ClosedPosition,
)

__all__ = [
    # Portfolio
    "AssetInput",
    "PortfolioCreate",
    "PortfolioResponse",
    "AssetAdd",
    "AssetsReplace",
    "ReplaceAssetsResult",
    "PortfolioMetricsResponse",
    "BacktestSeedRequest",
    "BacktestSeedResponse",
    # Transaction
    "TransactionCreate",
    "TransactionUpdates",
    "TransactionResponse",
    "TransactionHistory",
    "BatchResult",
    # Suggestion
    "Suggestion",
    "SuggestionKind",
    "CombinedRebalancing",
    "Holding",
    "DriftEntry",
    "ClosedPosition",
]
