from fee_ledger.core.auth.models import User, UserRole
from fee_ledger.core.auth.service import AuthService
from fee_ledger.core.auth.jwt import create_access_token, create_refresh_token, decode_token
from fee_ledger.core.auth.dependencies import get_current_user, require_roles

__all__ = [
    "User",
    "UserRole",
    "AuthService",
    "create_access_token",
    "create_refresh_token",
    "decode_token",
    "get_current_user",
    "require_roles",
]
