"""Global error handler: consistent JSON error responses."""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DBAPIError
from starlette.exceptions import HTTPException as StarletteHTTPException

from studyhub.db.storage import STORAGE_UNAVAILABLE, is_unavailable
from studyhub.errors import ConcurrencyConflictError, GamificationError, StorageUnavailableError

logger = structlog.get_logger()


def _storage_unavailable() -> JSONResponse:
    return JSONResponse(
        status_code=StorageUnavailableError.status_code,
        content={"detail": STORAGE_UNAVAILABLE, "error": StorageUnavailableError.__name__},
        headers={"Retry-After": "1"},
    )


def _internal_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        exc_info=exc,
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


def setup_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(GamificationError)
    async def gamification_error_handler(request: Request, exc: GamificationError) -> JSONResponse:
        """Map core errors onto their status codes."""
        if isinstance(exc, StorageUnavailableError):
            logger.warning("storage_unavailable", path=request.url.path, error=str(exc.__cause__ or exc))
            return _storage_unavailable()
        if isinstance(exc, ConcurrencyConflictError):
            logger.warning("concurrency_conflict", path=request.url.path, error=exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "error": type(exc).__name__},
        )

    @app.exception_handler(DBAPIError)
    @app.exception_handler(OSError)
    async def driver_error_handler(request: Request, exc: Exception) -> JSONResponse:
        """Driver failures that escaped a service call; unreachable storage is retryable."""
        if not is_unavailable(exc):
            return _internal_error(request, exc)
        logger.warning("storage_unavailable", path=request.url.path, error=str(exc))
        return _storage_unavailable()

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"detail": "Validation error", "errors": jsonable_errors(exc)},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions: always return JSON."""
        return _internal_error(request, exc)


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    """Pydantic error dicts can carry exception objects in ``ctx``; stringify them."""
    errors = []
    for err in exc.errors():
        err = dict(err)
        if "ctx" in err:
            err["ctx"] = {k: str(v) for k, v in err["ctx"].items()}
        errors.append(err)
    return errors
