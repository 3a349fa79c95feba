from typing import Annotated

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from fee_ledger.core.auth.jwt import decode_token
from fee_ledger.core.auth.models import User, UserRole
from fee_ledger.core.auth.service import AuthService
from fee_ledger.core.database import get_db
from fee_ledger.core.exceptions import AuthenticationError, AuthorizationError


async def get_current_user(
    authorization: Annotated[str | None, Header()] = None,
    db: AsyncSession = Depends(get_db),
) -> User:
    """Resolve the staff user from the `Authorization: Bearer <token>` header."""
    if not authorization:
        raise AuthenticationError("Authorization header required")

    if not authorization.startswith("Bearer "):
        raise AuthenticationError("Invalid authorization header format")

    payload = decode_token(authorization.removeprefix("Bearer "), token_type="access")

    user = await AuthService(db).get_user_by_id(int(payload["sub"]))
    if not user:
        raise AuthenticationError("User not found")
    if not user.is_active:
        raise AuthenticationError("User account is deactivated")

    return user


def require_roles(*roles: UserRole):
    """
    Dependency factory to require specific roles.

    Usage:
        @router.delete("/ledger-entries/{entry_id}")
        async def delete_entry(user: User = Depends(require_roles(UserRole.ADMIN))):
            ...
    """

    async def role_checker(
        current_user: User = Depends(get_current_user),
    ) -> User:
        if not current_user.has_role(*roles):
            allowed = ", ".join(r.value for r in roles)
            raise AuthorizationError(f"Required role: {allowed}")
        return current_user

    return role_checker


# Role groups used by the fee routers
READ_ROLES = (UserRole.SUPER_ADMIN, UserRole.ADMIN, UserRole.ACCOUNTANT, UserRole.USER)
WRITE_ROLES = (UserRole.SUPER_ADMIN, UserRole.ADMIN, UserRole.ACCOUNTANT)
ADMIN_ROLES = (UserRole.SUPER_ADMIN, UserRole.ADMIN)

CurrentUser = Annotated[User, Depends(get_current_user)]
ReaderUser = Annotated[User, Depends(require_roles(*READ_ROLES))]
WriterUser = Annotated[User, Depends(require_roles(*WRITE_ROLES))]
AdminUser = Annotated[User, Depends(require_roles(*ADMIN_ROLES))]
