import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from fee_ledger.core.config import settings
from fee_ledger.core.exceptions import AppException
from fee_ledger.shared.schemas import ErrorDetail, ErrorResponse

logger = logging.getLogger(__name__)

# Request-location prefixes that add nothing to a field path
_LOCATIONS = ("body", "query", "path", "header")


def _error_response(status_code: int, message: str, errors: list[ErrorDetail]) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(message=message, errors=errors).model_dump(),
    )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Domain errors keep their status code; the offending field, if any, is reported."""
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return _error_response(
        exc.status_code,
        exc.message,
        [ErrorDetail(field=exc.details.get("field"), message=exc.message)],
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Schema violations (e.g. amount <= 0, unknown transaction type) become 422."""
    errors = []
    for error in exc.errors():
        loc = tuple(error.get("loc", ()))
        if loc and loc[0] in _LOCATIONS:
            loc = loc[1:]
        errors.append(
            ErrorDetail(
                field=".".join(str(part) for part in loc) or None,
                message=error.get("msg", "Invalid value"),
            )
        )
    return _error_response(422, "Validation error", errors)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = str(exc.detail) if exc.detail else "HTTP error"
    return _error_response(exc.status_code, message, [ErrorDetail(message=message)])


def _describe_db_error(exc: SQLAlchemyError) -> tuple[int, str]:
    """Map a raw driver error to (status, user-facing message)."""
    raw = str(getattr(exc, "orig", exc))
    lower = raw.lower()

    if "does not exist" in lower and ("column" in lower or "relation" in lower):
        return 500, "Database schema is out of date. Run the latest migrations and try again."
    if "foreign key" in lower:
        return 409, "Referenced record does not exist"
    if "unique" in lower or "duplicate key" in lower:
        return 409, "Record already exists"
    if "check constraint" in lower:
        return 422, "Value rejected by a ledger constraint"
    return 500, raw if settings.debug else "Database error"


async def sqlalchemy_db_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Last resort for storage errors raised outside atomic()."""
    logger.exception("Unhandled database error on %s %s", request.method, request.url.path)
    status_code, message = _describe_db_error(exc)
    return _error_response(status_code, message, [ErrorDetail(message=message)])
