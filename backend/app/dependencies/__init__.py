"""
Dependencies for dependency injection in routes.
"""
from app.dependencies.auth import CurrentUser, get_current_user
from app.dependencies.services import get_services

__all__ = [
    "CurrentUser",
    "get_current_user",
    "get_services",
]
