"""JSON error responses, including the gamification error taxonomy."""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from unihub.gamification.errors import (
    ConflictRetryableError,
    GamificationError,
    InvalidArgumentError,
    NotFoundError,
)

logger = structlog.get_logger()

# Most specific first; FanoutFailure never reaches a request
ERROR_STATUS: list[tuple[type[GamificationError], int]] = [
    (NotFoundError, 404),
    (InvalidArgumentError, 400),
    (ConflictRetryableError, 409),
]


def status_for(exc: GamificationError) -> int:
    for error_type, status in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status
    return 500


async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)


async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={"detail": "Validation error", "errors": exc.errors()},
    )


async def gamification_error_handler(request: Request, exc: GamificationError) -> JSONResponse:
    status = status_for(exc)
    if isinstance(exc, ConflictRetryableError):
        logger.warning("points_conflict", user_id=exc.user_id, attempts=exc.attempts)
    elif status == 500:
        logger.error("gamification_error", path=request.url.path, error=str(exc))
    detail = str(exc) if status != 500 else "Internal server error"
    return JSONResponse(status_code=status, content={"detail": detail})


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        exc_info=exc,
    )
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def setup_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(GamificationError, gamification_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
