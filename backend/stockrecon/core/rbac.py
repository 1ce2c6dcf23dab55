"""Role-Based Access Control (RBAC) utilities."""

from enum import Enum
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from stockrecon.core.security import decode_access_token


class UserRole(str, Enum):
    """User roles for RBAC."""

    ADMIN = "admin"
    STAFF = "staff"


class TokenData:
    """Decoded token data.

    Attributes:
        user_id: The principal's id at the identity provider.
        email: The principal's email address.
        role: The principal's role (admin/staff).
    """

    def __init__(self, user_id: int, email: str, role: UserRole):
        self.user_id = user_id
        self.id = user_id
        self.email = email
        self.role = role

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


async def get_current_user(request: Request) -> TokenData:
    """Get the current authenticated principal from the bearer token."""
    payload = None

    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header.split(" ", 1)[1]
        if token:
            payload = decode_access_token(token)

    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("sub")
    email = payload.get("email")
    role = payload.get("role")

    if user_id is None or email is None or role is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )

    try:
        user_role = UserRole(role)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid role in token",
        )

    try:
        principal_id = int(user_id)
    except (TypeError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )

    return TokenData(user_id=principal_id, email=email, role=user_role)


CurrentUser = Annotated[TokenData, Depends(get_current_user)]
