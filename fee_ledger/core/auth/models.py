from datetime import datetime
from enum import StrEnum

from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from fee_ledger.core.database.base import BaseModel


class UserRole(StrEnum):
    """Staff roles allowed to touch fee records."""

    SUPER_ADMIN = "SuperAdmin"
    ADMIN = "Admin"
    ACCOUNTANT = "Accountant"
    USER = "User"


class User(BaseModel):
    """
    Staff account. Only used to attribute and gate fee mutations
    (created_by on payments and ledger entries, deleted_by on deletions).
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    role: Mapped[str] = mapped_column(String(50), nullable=False, index=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def has_role(self, *roles: UserRole) -> bool:
        """Check if user has any of the specified roles."""
        return self.role in [r.value for r in roles]
