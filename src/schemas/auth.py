from datetime import datetime

from pydantic import BaseModel, EmailStr, Field

from src.schemas.common import CamelModel


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class UserResponse(CamelModel):
    id: int
    email: str
    full_name: str
    is_superuser: bool
    created_at: datetime
    last_login_at: datetime | None = None
