"""
Error taxonomy and the handlers that turn exceptions into API responses.

Route handlers raise the ``APIException`` subclasses below. Errors coming
from the store (duplicate keys, malformed ObjectIds) are left to propagate
and are classified here at the boundary; anything unclassified becomes a
500 whose detail is only exposed in development.
"""

from datetime import datetime, timezone
from logging import getLogger
from traceback import format_exception
from typing import List, Optional

from bson.errors import InvalidId
from fastapi import FastAPI, Request, status, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pymongo.errors import DuplicateKeyError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = getLogger(__name__)


# ---------------------------------------------------------------------------
# Exception classes
# ---------------------------------------------------------------------------
class APIException(HTTPException):
    status_code = status.HTTP_400_BAD_REQUEST
    detail = None
    headers = None

    def __init__(self, *args, **kwargs):
        kwargs.setdefault("status_code", self.status_code)
        kwargs.setdefault("detail", self.detail)
        kwargs.setdefault("headers", self.headers)
        super().__init__(*args, **kwargs)


class BadRequest(APIException):
    status_code = status.HTTP_400_BAD_REQUEST


class ValidationFailed(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Validation failed"

    def __init__(self, errors: List[dict], detail: Optional[str] = None):
        super().__init__(detail=detail or self.detail)
        self.errors = errors


class DuplicateValue(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Duplicate field value entered"


class InvalidObjectId(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Invalid id"


class InvalidCredentials(APIException):
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Invalid credentials"


class InvalidToken(APIException):
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Invalid token"
    headers = {"WWW-Authenticate": "Bearer"}


class Forbidden(APIException):
    status_code = status.HTTP_403_FORBIDDEN
    detail = "Not authorized to access this resource"


class NotFound(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    detail = "Resource not found"


# ---------------------------------------------------------------------------
# Response helpers
# ---------------------------------------------------------------------------
def log_exception(e: Exception) -> None:
    detail = "".join(format_exception(type(e), e, e.__traceback__))
    logger.error(detail)


def error_response(status_code: int, message: str, headers: Optional[dict] = None, **extra) -> JSONResponse:
    body = {
        "success": False,
        "error": message,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    body.update(extra)
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def format_validation_errors(errors) -> List[dict]:
    items = []
    for err in errors:
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        items.append({"field": ".".join(loc), "message": err.get("msg", "Invalid value")})
    return items


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------
def register_exception_handlers(app: FastAPI, debug: bool = False) -> None:

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return error_response(
            status.HTTP_400_BAD_REQUEST,
            "Validation failed",
            errors=format_validation_errors(exc.errors()),
        )

    @app.exception_handler(ValidationFailed)
    async def validation_failed_handler(request: Request, exc: ValidationFailed):
        return error_response(exc.status_code, exc.detail, errors=exc.errors)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return error_response(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))

    @app.exception_handler(DuplicateKeyError)
    async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
        logger.warning(f"Duplicate key on {request.method} {request.url.path}: {exc.details}")
        return error_response(status.HTTP_400_BAD_REQUEST, DuplicateValue.detail)

    @app.exception_handler(InvalidId)
    async def invalid_id_handler(request: Request, exc: InvalidId):
        return error_response(status.HTTP_400_BAD_REQUEST, InvalidObjectId.detail)

    @app.exception_handler(Exception)
    async def unhandled_handler(request: Request, exc: Exception):
        log_exception(exc)
        if debug:
            return error_response(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                str(exc),
                originalError=str(exc),
                stack="".join(format_exception(type(exc), exc, exc.__traceback__)),
            )
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")
