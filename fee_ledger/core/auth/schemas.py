from datetime import datetime

from pydantic import EmailStr

from fee_ledger.core.auth.models import UserRole
from fee_ledger.shared.schemas import BaseSchema


class LoginRequest(BaseSchema):
    email: EmailStr
    password: str


class RefreshRequest(BaseSchema):
    refresh_token: str


class TokenResponse(BaseSchema):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class UserResponse(BaseSchema):
    """Staff account as shown to clients (never the password hash)."""

    id: int
    email: str
    full_name: str
    role: UserRole
    is_active: bool
    last_login_at: datetime | None


class LoginResponse(TokenResponse):
    user: UserResponse
