"""
FastAPI application factory
"""
import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.sessions import SessionMiddleware
from starlette.responses import Response

from ledger.config import get_settings
from ledger.domain.errors import (
    LedgerError, NotFoundError, FlowError, ConstraintViolation,
    InsufficientFundsError, ConcurrencyConflict, ConsistencyDriftError,
)
from ledger.infrastructure.db.session import check_db_connection
from ledger.api.v1 import budgets, transactions, envelopes, categories, references

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Most specific first
ERROR_STATUS = (
    (NotFoundError, 404),
    (FlowError, 422),
    (InsufficientFundsError, 409),
    (ConstraintViolation, 409),
    (ConcurrencyConflict, 503),
    (ConsistencyDriftError, 409),
)


class ErrorLoggingMiddleware(BaseHTTPMiddleware):
    """Catches every unhandled exception, including ones from sync routes"""

    async def dispatch(self, request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            tb_str = traceback.format_exc()
            logger.error(f"\n{'='*60}\nERROR on {request.method} {request.url.path}\n{tb_str}{'='*60}")
            return Response(content=f"Internal Server Error: {exc}", status_code=500)


async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    """Map domain errors to HTTP responses"""
    status_code = next((code for cls, code in ERROR_STATUS if isinstance(exc, cls)), 400)
    body = {"detail": str(exc), "error": type(exc).__name__}

    if isinstance(exc, InsufficientFundsError):
        body["requires_confirmation"] = True
        body["required"] = str(exc.required)
        body["available"] = str(exc.available)
    elif isinstance(exc, ConsistencyDriftError):
        body["failed_checks"] = exc.failed_checks

    if status_code >= 500:
        logger.warning("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content=body)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    if settings.SCHEDULER_ENABLED:
        from ledger.application.scheduler import start_scheduler, shutdown_scheduler
        start_scheduler()
        try:
            yield
        finally:
            shutdown_scheduler()
    else:
        yield


def create_app() -> FastAPI:
    """
    Application factory: builds and configures the FastAPI app

    Returns:
        Configured FastAPI app
    """
    settings = get_settings()

    app = FastAPI(
        title="Envelope Ledger",
        debug=settings.DEBUG,
        lifespan=lifespan,
    )

    app.add_middleware(ErrorLoggingMiddleware)

    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.SECRET_KEY
    )

    app.add_exception_handler(LedgerError, ledger_error_handler)

    app.include_router(budgets.router)
    app.include_router(transactions.router)
    app.include_router(envelopes.router)
    app.include_router(categories.router)
    app.include_router(references.payees_router)
    app.include_router(references.income_sources_router)

    # Health checks
    @app.get("/health", response_class=PlainTextResponse, tags=["system"])
    def health():
        """Health check endpoint"""
        return "ok"

    @app.get("/ready", response_class=PlainTextResponse, tags=["system"])
    def ready():
        """Readiness check endpoint (checks the database)"""
        check_db_connection()
        return "ok"

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "ledger.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
    )
