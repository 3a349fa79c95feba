"""Student fee ledger FastAPI application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from fee_ledger.core.auth.router import router as auth_router
from fee_ledger.core.config import settings
from fee_ledger.core.exceptions import AppException
from fee_ledger.core.exceptions.handlers import (
    app_exception_handler,
    http_exception_handler,
    sqlalchemy_db_error_handler,
    validation_exception_handler,
)
from fee_ledger.core.logging import configure_logging
from fee_ledger.modules.installments.router import (
    enrollments_router as installment_enrollments_router,
    router as installments_router,
)
from fee_ledger.modules.ledger.router import router as ledger_router
from fee_ledger.modules.payments.router import (
    methods_router as payment_methods_router,
    router as payments_router,
)
from fee_ledger.modules.reminders.router import router as reminders_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Fee ledger starting (env=%s)", settings.app_env)
    yield
    logger.info("Fee ledger stopped")


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    configure_logging()

    app = FastAPI(
        title="Student Fee Ledger",
        description="Installment schedules, fee payments and running-balance ledgers",
        version="0.1.0",
        debug=settings.debug,
        lifespan=lifespan,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_db_error_handler)

    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    # Routers (reminders before installments: /due-soon must not match /{installment_id})
    app.include_router(auth_router, prefix="/api/v1")
    app.include_router(installment_enrollments_router, prefix="/api/v1")
    app.include_router(reminders_router, prefix="/api/v1")
    app.include_router(installments_router, prefix="/api/v1")
    app.include_router(payments_router, prefix="/api/v1")
    app.include_router(payment_methods_router, prefix="/api/v1")
    app.include_router(ledger_router, prefix="/api/v1")

    return app


app = create_app()
