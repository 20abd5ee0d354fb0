from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError, HTTPException
from slowapi.errors import RateLimitExceeded

from helpdesk.config.settings import settings
from helpdesk.utils.logger import logger
from helpdesk.utils.exceptions import BaseAPIException


def _failure(status_code: int, message, error: dict, headers=None) -> JSONResponse:
    content = {
        "status": "failure",
        "status_code": status_code,
        "message": message,
    }
    # Error detail is for debugging only; withheld in production
    if not settings.is_production:
        content["error"] = error
    return JSONResponse(status_code=status_code, content=content, headers=headers)


async def base_api_exception_handler(request: Request, exc: BaseAPIException):
    """Handle custom API exceptions and log them."""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        f"{exc.__class__.__name__}: {exc.detail}",
        extra={
            "status_code": exc.status_code,
            "path": request.url.path,
            "method": request.method,
        },
    )
    return _failure(
        exc.status_code,
        exc.detail,
        {"type": exc.__class__.__name__, "detail": exc.detail},
        headers=exc.headers,
    )


async def request_validation_exception_handler(
    request: Request, exc: RequestValidationError
):
    """Handle validation errors and log them."""
    errors = jsonable_encoder(exc.errors())
    logger.warning(
        f"Validation error on {request.method} {request.url.path}",
        extra={"errors": errors},
    )
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "status": "failure",
            "status_code": 422,
            "message": "Validation error",
            "error": {"details": errors},
        },
    )


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    """Per-IP limiter on the public auth routes."""
    logger.warning(
        f"Rate limit hit on {request.method} {request.url.path}",
        extra={"limit": str(exc.detail)},
    )
    return _failure(
        status.HTTP_429_TOO_MANY_REQUESTS,
        "Too many requests, please try again later.",
        {"detail": str(exc.detail)},
    )


async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTPException and log them."""
    logger.error(
        f"HTTP {exc.status_code}: {exc.detail}",
        extra={
            "path": request.url.path,
            "method": request.method,
        },
    )
    return _failure(exc.status_code, exc.detail, {"detail": exc.detail}, headers=exc.headers)


async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions and log them."""
    logger.exception(
        f"Unhandled exception on {request.method} {request.url.path}: {str(exc)}",
        exc_info=exc,
    )
    message = "Internal server error" if settings.is_production else str(exc)
    return _failure(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        message,
        {"type": exc.__class__.__name__, "detail": str(exc)},
    )
