"""
API Routers module.
"""
from app.routers import health, portfolios, suggestions, transactions

__all__ = ["health", "portfolios", "suggestions", "transactions"]
