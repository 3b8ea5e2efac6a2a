"""
FastAPI application factory
"""
import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.middleware.base import BaseHTTPMiddleware

from coinledger.api.v1 import auth, bills, cards, ledger
from coinledger.config import get_settings
from coinledger.domain.errors import (
    CooldownActive, DuplicateId, LedgerError, NotFound, RateLimitExceeded, StorageFailure, Unauthorized,
)
from coinledger.infrastructure.db.session import check_db_connection, init_db

logger = logging.getLogger(__name__)


class ErrorLoggingMiddleware(BaseHTTPMiddleware):
    """Catches everything the exception handlers did not (including sync routes)"""

    async def dispatch(self, request, call_next):
        try:
            return await call_next(request)
        except Exception:
            tb_str = traceback.format_exc()
            logger.error("\n%s\nERROR on %s %s\n%s%s", "=" * 60, request.method, request.url.path, tb_str, "=" * 60)
            return JSONResponse(status_code=500, content={"error": "Internal error"})


def ledger_error_response(exc: LedgerError) -> JSONResponse:
    """Map a ledger failure to a generic JSON error"""
    if isinstance(exc, Unauthorized):
        return JSONResponse(status_code=403, content={"error": "operation failed"})
    if isinstance(exc, RateLimitExceeded):
        return JSONResponse(status_code=429, content={"error": exc.code})
    if isinstance(exc, StorageFailure):
        return JSONResponse(status_code=500, content={"error": "Internal error"})
    if isinstance(exc, CooldownActive):
        return JSONResponse(
            status_code=429,
            content={"error": str(exc), "code": exc.code, "retryAfterMs": exc.remaining_ms},
        )
    if isinstance(exc, NotFound):
        return JSONResponse(status_code=404, content={"error": str(exc), "code": exc.code})
    if isinstance(exc, DuplicateId):
        return JSONResponse(status_code=409, content={"error": str(exc), "code": exc.code})
    return JSONResponse(status_code=400, content={"error": str(exc), "code": exc.code})


@asynccontextmanager
async def lifespan(app: FastAPI):
    from coinledger.application.scheduler import shutdown_scheduler, start_scheduler

    init_db()
    if get_settings().SCHEDULER_ENABLED:
        start_scheduler()
    yield
    shutdown_scheduler()


def create_app() -> FastAPI:
    """
    Application factory - builds and wires the FastAPI app

    Returns:
        Configured FastAPI app
    """
    settings = get_settings()
    logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    app = FastAPI(
        title="coinledger",
        debug=settings.DEBUG,
        lifespan=lifespan,
    )

    app.add_middleware(ErrorLoggingMiddleware)

    @app.exception_handler(LedgerError)
    async def handle_ledger_error(request: Request, exc: LedgerError):
        if isinstance(exc, StorageFailure):
            logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
        return ledger_error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": "Invalid parameters"})

    # Routers
    app.include_router(auth.router)
    app.include_router(ledger.router)
    app.include_router(bills.router)
    app.include_router(cards.router)

    # Health checks
    @app.get("/health", response_class=PlainTextResponse, tags=["system"])
    def health():
        """Health check endpoint"""
        return "ok"

    @app.get("/ready", response_class=PlainTextResponse, tags=["system"])
    def ready():
        """Readiness check endpoint (database reachable)"""
        check_db_connection()
        return "ok"

    return app


# Create app instance
app = create_app()


def run():
    """Console entry point: serve the API with uvicorn"""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "coinledger.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
