import logging
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fee_ledger.core.audit import AuditAction, AuditService
from fee_ledger.core.auth.jwt import create_access_token, create_refresh_token, decode_token
from fee_ledger.core.auth.models import User, UserRole
from fee_ledger.core.auth.password import hash_password, verify_password
from fee_ledger.core.exceptions import AuthenticationError, DuplicateError

logger = logging.getLogger(__name__)


class AuthService:
    """Staff accounts and token issuing."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.audit = AuditService(session)

    async def get_user_by_email(self, email: str) -> User | None:
        result = await self.session.execute(select(User).where(User.email == email.lower()))
        return result.scalar_one_or_none()

    async def get_user_by_id(self, user_id: int) -> User | None:
        result = await self.session.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def create_user(
        self,
        email: str,
        password: str,
        full_name: str,
        role: UserRole,
        created_by_id: int | None = None,
    ) -> User:
        """Add a staff account. Flushed only; the caller commits."""
        email = email.strip().lower()
        if await self.get_user_by_email(email):
            raise DuplicateError("User", "email", email)

        user = User(
            email=email,
            password_hash=hash_password(password),
            full_name=full_name,
            role=role.value,
            is_active=True,
        )
        self.session.add(user)
        await self.session.flush()

        await self.audit.log(
            action=AuditAction.CREATE,
            entity_type="User",
            entity_id=user.id,
            user_id=created_by_id,
            entity_identifier=user.email,
            new_values={"role": user.role, "full_name": user.full_name},
        )
        logger.info("Created %s account %s", user.role, user.email)
        return user

    async def authenticate(
        self, email: str, password: str, ip_address: str | None = None
    ) -> tuple[User, str, str]:
        """
        Check credentials and issue tokens.

        Returns:
            (user, access_token, refresh_token)
        """
        user = await self.get_user_by_email(email)
        if user is None or not verify_password(password, user.password_hash):
            logger.info("Failed login for %s", email)
            raise AuthenticationError("Invalid email or password")
        self._ensure_active(user)

        user.last_login_at = datetime.now(UTC)
        await self.audit.log(
            action=AuditAction.LOGIN,
            entity_type="User",
            entity_id=user.id,
            user_id=user.id,
            entity_identifier=user.email,
            ip_address=ip_address,
        )
        return user, *self._issue_tokens(user)

    async def refresh_tokens(self, refresh_token: str) -> tuple[str, str]:
        """Trade a refresh token for a fresh (access, refresh) pair."""
        payload = decode_token(refresh_token, token_type="refresh")

        user = await self.get_user_by_id(int(payload["sub"]))
        if user is None:
            raise AuthenticationError("User not found")
        self._ensure_active(user)
        return self._issue_tokens(user)

    @staticmethod
    def _ensure_active(user: User) -> None:
        if not user.is_active:
            raise AuthenticationError("User account is deactivated")

    @staticmethod
    def _issue_tokens(user: User) -> tuple[str, str]:
        return create_access_token(user.id, user.role), create_refresh_token(user.id)
