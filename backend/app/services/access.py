"""
Ownership checks shared by the ledger services.
"""
from typing import Any

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorCollection

from app.core.errors import NotFoundError
from app.models.portfolio import PortfolioConfig


def parse_object_id(value: str, what: str = "Portfolio") -> ObjectId:
    """Parse an id from the API; malformed ids are reported as not found."""
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise NotFoundError(f"{what} not found")


async def load_portfolio_doc(
    portfolios: AsyncIOMotorCollection, portfolio_id: str, user_id: str
) -> dict[str, Any]:
    """Fetch a portfolio document owned by the user."""
    doc = await portfolios.find_one({
        "_id": parse_object_id(portfolio_id),
        "user_id": user_id,
    })
    if not doc:
        raise NotFoundError("Portfolio not found")
    return doc


def to_portfolio_config(doc: dict[str, Any]) -> PortfolioConfig:
    return PortfolioConfig(**{**doc, "_id": str(doc["_id"])})

