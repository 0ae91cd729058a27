"""
Authentication dependencies for route protection.
"""
from typing import Annotated

from fastapi import Depends, HTTPException, Query, status
from jose import JWTError

from app.core.security import decode_token
from app.models.user import User, UserRole


async def get_current_user(
    token: Annotated[str, Query(description="JWT access token")]
) -> User:
    """
    Dependency to get the current authenticated user from JWT token.

    Token is passed as query parameter: ?token=xxx

    Raises:
        HTTPException 401: If token is invalid, expired or has no subject
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = decode_token(token)
    except JWTError:
        raise credentials_exception

    user_id = payload.get("sub")
    if not user_id:
        raise credentials_exception

    # Unknown roles from the identity provider are ignored
    known = {r.value for r in UserRole}
    roles = [r for r in payload.get("roles") or [] if r in known] or [UserRole.USER.value]
    return User(id=user_id, roles=roles)


# Type alias for cleaner route signatures
CurrentUser = Annotated[User, Depends(get_current_user)]
