"""
Outbox task model for ledger_db.outbox.
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class OutboxKind(str, Enum):
    REGENERATE_SUGGESTIONS = "regenerate_suggestions"


class OutboxStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"


class OutboxTask(BaseModel):
    """
    A unit of deferred work keyed by portfolio.

    Delivery is at-least-once; consumers must be idempotent per portfolio_id.
    """
    id: Optional[str] = Field(None, alias="_id")
    portfolio_id: str
    kind: OutboxKind
    status: OutboxStatus = OutboxStatus.PENDING
    attempts: int = 0
    available_at: float = Field(..., description="Epoch seconds when the task becomes due")
    locked_until: Optional[float] = Field(None, description="Epoch seconds; processing lease")
    last_error: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        populate_by_name = True
        use_enum_values = True
