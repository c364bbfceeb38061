"""Security utilities for authentication and token handling."""
import hashlib
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

import structlog
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from src.core.config import settings

logger = structlog.get_logger()
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class TokenStatus(str, Enum):
    """Status of a JWT token."""
    VALID = "valid"
    EXPIRED = "expired"
    INVALID = "invalid"


# ===========================================
# Password Hashing
# ===========================================

def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against a hashed password."""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password."""
    return pwd_context.hash(password)


# ===========================================
# JWT Token Management
# ===========================================

def create_access_token(
    subject: str | int,
    expires_delta: timedelta | None = None,
    additional_claims: dict[str, Any] | None = None,
) -> str:
    """Create a JWT access token."""
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(
            minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )

    to_encode = {
        "exp": expire,
        "sub": str(subject),
        "type": "access",
        "jti": str(uuid.uuid4()),
    }
    if additional_claims:
        to_encode.update(additional_claims)

    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str) -> dict[str, Any] | None:
    """Decode and validate a JWT token."""
    payload, token_status = decode_token_detailed(token)
    return payload if token_status == TokenStatus.VALID else None


def decode_token_detailed(token: str) -> tuple[dict[str, Any] | None, TokenStatus]:
    """
    Decode a JWT token with detailed status information.

    Returns:
        Tuple of (payload or None, TokenStatus)
    """
    try:
        payload = jwt.decode(
            token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM]
        )
        return payload, TokenStatus.VALID
    except ExpiredSignatureError:
        return None, TokenStatus.EXPIRED
    except JWTError:
        return None, TokenStatus.INVALID


# ===========================================
# Subscriber tokens
# ===========================================

def generate_url_token() -> str:
    """Random 64-char hex token suitable for links in emails."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """SHA-256 hex digest; confirmation tokens are stored only in this form."""
    return hashlib.sha256(token.encode()).hexdigest()
