"""Dependency injection utilities."""
from typing import Annotated

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.database import get_db, get_session_factory
from src.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    InvalidTokenError,
    TokenExpiredError,
)
from src.core.security import TokenStatus, decode_token_detailed
from src.models.user import User
from src.services.auth import AuthService
from src.services.email import EmailService, email_service

security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """Get current authenticated user from JWT token."""
    if credentials is None:
        raise AuthenticationError("Missing bearer token.")

    token = credentials.credentials
    payload, token_status = decode_token_detailed(token)

    if token_status == TokenStatus.EXPIRED:
        raise TokenExpiredError()

    if token_status == TokenStatus.INVALID or payload is None:
        raise InvalidTokenError()

    auth_service = AuthService(db)
    user = await auth_service.validate_access_token(token)

    if not user:
        raise InvalidTokenError("User not found or token invalid.")

    return user


async def get_current_active_user(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Get current active user."""
    if not current_user.is_active:
        raise AuthorizationError("Inactive user.")
    return current_user


async def get_current_admin(
    current_user: Annotated[User, Depends(get_current_active_user)],
) -> User:
    """Get current user, requiring admin rights."""
    if not current_user.is_superuser:
        raise AuthorizationError("Admin privileges required.")
    return current_user


def get_email_service() -> EmailService:
    """Shared mail transport, overridable in tests."""
    return email_service


# Type aliases for cleaner code
CurrentUser = Annotated[User, Depends(get_current_active_user)]
CurrentAdmin = Annotated[User, Depends(get_current_admin)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
SessionFactory = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]
Mailer = Annotated[EmailService, Depends(get_email_service)]
