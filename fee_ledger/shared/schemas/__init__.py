from fee_ledger.shared.schemas.base import (
    ApiResponse,
    BaseSchema,
    ErrorDetail,
    ErrorResponse,
    PaginatedResponse,
    SuccessResponse,
    page_offset,
)

__all__ = [
    "ApiResponse",
    "BaseSchema",
    "ErrorDetail",
    "ErrorResponse",
    "PaginatedResponse",
    "SuccessResponse",
    "page_offset",
]
