"""
JWT Service for access token validation.

Access tokens are issued by the external identity provider and signed with
the shared secret. The service verifies them and exposes the asserted user
id and role; it can also mint tokens for local development and tests.
"""

import jwt
from datetime import datetime, timedelta, timezone
from typing import Optional
from pydantic import BaseModel, field_validator

from core.config import JWT_ACCESS_TOKEN_EXPIRE_MINUTES
from shared_types.scheduling import UserRole


class TokenPayload(BaseModel):
    """Payload structure for JWT tokens."""
    sub: str  # Identity-provider user id
    role: str  # "patient", "practitioner" or "admin"
    email: Optional[str] = None
    name: Optional[str] = None
    iat: Optional[int] = None  # Set by JWT service
    exp: Optional[int] = None  # Set by JWT service

    @field_validator("role")
    @classmethod
    def _known_role(cls, value: str) -> str:
        UserRole(value)
        return value


class JWTService:
    """Service for JWT token operations."""

    ACCESS_TOKEN_EXPIRE_MINUTES = JWT_ACCESS_TOKEN_EXPIRE_MINUTES

    @classmethod
    def create_access_token(cls, payload: TokenPayload, expires_in: Optional[timedelta] = None) -> str:
        """Create a JWT access token."""
        to_encode = payload.model_dump(exclude_none=True)
        now = datetime.now(timezone.utc)
        expire = now + (expires_in or timedelta(minutes=cls.ACCESS_TOKEN_EXPIRE_MINUTES))
        to_encode.update({"exp": expire, "iat": now})
        return jwt.encode(to_encode, cls._get_secret_key(), algorithm=cls._get_algorithm())

    @classmethod
    def verify_token(cls, token: str) -> Optional[TokenPayload]:
        """Verify and decode a JWT token; None if invalid, expired or malformed."""
        try:
            payload = jwt.decode(token, cls._get_secret_key(), algorithms=[cls._get_algorithm()])
            return TokenPayload(**payload)
        except jwt.ExpiredSignatureError:
            return None
        except jwt.InvalidTokenError:
            return None
        except ValueError:
            # Signature valid but claims missing or role unknown
            return None

    @classmethod
    def _get_secret_key(cls) -> str:
        """Get the JWT secret key."""
        from core.config import JWT_SECRET_KEY
        return JWT_SECRET_KEY

    @classmethod
    def _get_algorithm(cls) -> str:
        from core.config import JWT_ALGORITHM
        return JWT_ALGORITHM


# Global instance
jwt_service = JWTService()
