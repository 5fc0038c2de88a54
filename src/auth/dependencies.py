# pyright: reportMissingTypeStubs=false
"""
Authentication and authorization dependencies for FastAPI.

The identity provider issues bearer tokens carrying the user id (`sub`) and
role; these dependencies verify the token and expose the caller as a
UserContext. Ownership checks on individual appointments happen in the
services.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from services.jwt_service import jwt_service, TokenPayload
from shared_types.scheduling import Actor, UserRole

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserContext(Actor):
    """Authenticated user context extracted from JWT token."""
    email: Optional[str] = None
    name: Optional[str] = None

    def has_role(self, role: UserRole) -> bool:
        """Check if user has a specific role (admins have every role)."""
        return self.role == role or self.is_admin()

    def __repr__(self) -> str:
        return f"UserContext(user_id='{self.user_id}', role='{self.role.value}')"


# HTTP Bearer token security scheme
security = HTTPBearer(auto_error=False)


def get_token_payload(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Optional[TokenPayload]:
    """Extract and validate JWT token payload."""
    if not credentials:
        return None

    token = credentials.credentials
    payload = jwt_service.verify_token(token)

    if not payload:
        return None

    return payload


def get_current_user(
    payload: Optional[TokenPayload] = Depends(get_token_payload),
) -> UserContext:
    """Get authenticated user context from JWT token."""
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication credentials not provided"
        )

    return UserContext(
        user_id=payload.sub,
        role=UserRole(payload.role),
        email=payload.email,
        name=payload.name,
    )


# Role-based authorization dependencies
def require_admin_role(user: UserContext = Depends(get_current_user)) -> UserContext:
    """Require admin role."""
    if not user.is_admin():
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return user


def require_practitioner_role(user: UserContext = Depends(get_current_user)) -> UserContext:
    """Require practitioner role (or admin)."""
    if not user.has_role(UserRole.PRACTITIONER):
        logger.warning(f"User {user.user_id} ({user.role.value}) denied practitioner-only access")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Practitioner access required"
        )
    return user
