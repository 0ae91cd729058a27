"""
Authenticated user model.

Users live in the identity provider; the ledger only sees the claims carried
by the access token.
"""
from enum import Enum

from pydantic import BaseModel, Field


class UserRole(str, Enum):
    """User role levels."""
    USER = "user"
    PREMIUM_USER = "premium_user"
    ADMIN = "admin"


class User(BaseModel):
    """Current user resolved from a JWT."""
    id: str = Field(..., description="User ID (token subject)")
    roles: list[UserRole] = Field(
        default=[UserRole.USER],
        description="List of roles assigned to user"
    )

    class Config:
        use_enum_values = True

    @property
    def is_premium(self) -> bool:
        """Premium users and admins may own more than one portfolio."""
        return bool({UserRole.PREMIUM_USER.value, UserRole.ADMIN.value} & set(self.roles))
