from fee_ledger.core.exceptions.base import (
    AppException,
    NotFoundError,
    ValidationError,
    ConflictError,
    ConcurrencyError,
    PersistenceError,
    AuthenticationError,
    AuthorizationError,
    DuplicateError,
    ServiceUnavailableError,
)

__all__ = [
    "AppException",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "ConcurrencyError",
    "PersistenceError",
    "AuthenticationError",
    "AuthorizationError",
    "DuplicateError",
    "ServiceUnavailableError",
]
