from typing import Any


class AppException(Exception):
    """Base application exception."""

    def __init__(
        self,
        message: str,
        status_code: int = 400,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class NotFoundError(AppException):
    """Resource not found."""

    def __init__(self, resource: str, identifier: Any = None):
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} with id={identifier} not found"
        super().__init__(message=message, status_code=404, details={"resource": resource})


class ValidationError(AppException):
    """Validation error."""

    def __init__(self, message: str, field: str | None = None):
        details = {"field": field} if field else {}
        super().__init__(message=message, status_code=422, details=details)


class ConflictError(AppException):
    """Operation conflicts with the current state (existing schedule, overpayment)."""

    def __init__(self, message: str, field: str | None = None, **extra: Any):
        details: dict[str, Any] = {"field": field} if field else {}
        details.update(extra)
        super().__init__(message=message, status_code=409, details=details)


class ConcurrencyError(AppException):
    """Lock contention or stale row version; the caller may retry."""

    def __init__(self, message: str = "Concurrent modification detected"):
        super().__init__(message=message, status_code=409)


class PersistenceError(AppException):
    """Transaction could not be committed and was rolled back."""

    def __init__(self, message: str = "Database error, no changes were saved"):
        super().__init__(message=message, status_code=500)


class AuthenticationError(AppException):
    """Authentication failed."""

    def __init__(self, message: str = "Invalid credentials"):
        super().__init__(message=message, status_code=401)


class AuthorizationError(AppException):
    """Not authorized to perform action."""

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message=message, status_code=403)


class DuplicateError(AppException):
    """Duplicate resource."""

    def __init__(self, resource: str, field: str, value: Any):
        message = f"{resource} with {field}={value} already exists"
        super().__init__(message=message, status_code=409, details={"field": field, "value": value})


class ServiceUnavailableError(AppException):
    """A delegated collaborator (e.g. reminder dispatch) is not configured."""

    def __init__(self, message: str):
        super().__init__(message=message, status_code=503)
