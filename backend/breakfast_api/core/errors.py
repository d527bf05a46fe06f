"""
Error taxonomy shared by services and routes.

Services raise these; the handlers registered in ``register_exception_handlers``
turn them into ``{"message": ...}`` JSON bodies with the matching HTTP status.
"""
import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DBAPIError, IntegrityError
from starlette.exceptions import HTTPException


logger = logging.getLogger(__name__)


class AppError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class AuthError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Not authenticated"


class ForbiddenError(AuthError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Insufficient role"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Concurrent update, please retry"


class UpstreamError(AppError):
    default_message = "Data store unavailable"


def _message(exc_message: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"message": exc_message})


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return _message(exc.message, exc.status_code)


async def http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg")}
        for err in exc.errors()
    ]
    first = errors[0]["msg"] if errors else "Invalid request"
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"message": first, "errors": errors},
    )


async def store_error_handler(request: Request, exc: DBAPIError) -> JSONResponse:
    logger.error("data store failure on %s %s", request.method, request.url.path, exc_info=exc)
    return _message(UpstreamError.default_message, UpstreamError.status_code)


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    logger.warning("constraint conflict on %s %s: %s", request.method, request.url.path, exc.orig)
    return _message("Conflicting update, please retry", ConflictError.status_code)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(DBAPIError, store_error_handler)
