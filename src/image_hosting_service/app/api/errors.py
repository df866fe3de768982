from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..services.domain import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    ImageHostingError,
    NotFoundError,
    PersistenceError,
    QuotaExceededError,
    StorageError,
    ValidationError,
)

# Checked in order; subclasses come before their bases
STATUS_CODES: list[tuple[type[ImageHostingError], int]] = [
    (AuthenticationError, 401),
    (AuthorizationError, 403),
    (QuotaExceededError, 413),
    (ValidationError, 400),
    (NotFoundError, 404),
    (ConflictError, 409),
    (StorageError, 500),
    (PersistenceError, 500),
]


def status_code_for(error: ImageHostingError) -> int:
    for error_type, status_code in STATUS_CODES:
        if isinstance(error, error_type):
            return status_code
    return 500


def error_body(message: str, code: str, details: dict | None = None) -> dict:
    body = {"error": message, "code": code}
    if details:
        body["details"] = details
    return body


async def handle_domain_error(request: Request, exc: ImageHostingError):
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(
            f"{request.method} {request.url.path} rejected ({status_code}): "
            f"{exc.message}"
        )

    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return JSONResponse(
        status_code=status_code,
        content=error_body(exc.message, exc.code, exc.details),
        headers=headers,
    )


async def handle_request_validation_error(
    request: Request, exc: RequestValidationError
):
    errors = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ())[1:]),
            "message": error.get("msg", ""),
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content=error_body("Invalid request", "validation_failed", {"errors": errors}),
    )


async def handle_http_exception(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail), f"http_{exc.status_code}"),
        headers=getattr(exc, "headers", None),
    )


async def handle_unexpected_error(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content=error_body("Internal server error", "internal_error"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ImageHostingError, handle_domain_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
    app.add_exception_handler(Exception, handle_unexpected_error)
