"""
Pydantic models for database documents and data structures.
"""
from app.models.user import User, UserRole
from app.models.portfolio import PortfolioConfig, AssetAllocation, RebalanceFrequency
from app.models.transaction import (
    Transaction,
    TransactionType,
    TransactionStatus,
)
from app.models.outbox import OutboxTask, OutboxKind, OutboxStatus

__all__ = [
    "User",
    "UserRole",
    "PortfolioConfig",
    "AssetAllocation",
    "RebalanceFrequency",
    "Transaction",
    "TransactionType",
    "TransactionStatus",
    "OutboxTask",
    "OutboxKind",
    "OutboxStatus",
]
