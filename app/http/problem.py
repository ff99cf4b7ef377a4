"""Error payloads and global exception handlers.

Every error response is JSON shaped ``{"message": str, "fieldErrors"?: {path: message}}``.
Route handlers raise ``ApiError``; request-body validation failures are
reshaped into field errors keyed by dotted path; anything unexpected is
logged and reported as a generic 500.
"""

from __future__ import annotations

from typing import Any, Dict, Optional
import logging

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.logic.validation import CORRECT_FIELDS_MESSAGE, FieldErrors

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "Endpoint not found."
INTERNAL_ERROR_MESSAGE = "Internal server error."

_VALUE_ERROR_PREFIX = "Value error, "


class ApiError(Exception):
    """An error with an HTTP status, a message and optional field errors."""

    def __init__(self, status_code: int, message: str, field_errors: Optional[FieldErrors] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.field_errors = dict(field_errors) if field_errors else None

    def payload(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"message": self.message}
        if self.field_errors:
            body["fieldErrors"] = self.field_errors
        return body


def validation_failed(field_errors: FieldErrors) -> ApiError:
    return ApiError(400, CORRECT_FIELDS_MESSAGE, field_errors)


def field_errors_from_validation(errors: list[dict]) -> FieldErrors:
    """First message per dotted path, dropping the leading ``body`` location."""
    result: FieldErrors = {}
    for err in errors:
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        path = ".".join(loc)
        if not path or path in result:
            continue
        message = str(err.get("msg", "Invalid value."))
        if message.startswith(_VALUE_ERROR_PREFIX):
            message = message[len(_VALUE_ERROR_PREFIX):]
        result[path] = message
    return result


async def handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("api_error status=%s path=%s message=%s", exc.status_code, request.url.path, exc.message)
    return JSONResponse(exc.payload(), status_code=exc.status_code)


async def handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
    if exc.status_code == 404:
        return JSONResponse({"message": NOT_FOUND_MESSAGE}, status_code=404)
    message = exc.detail if isinstance(exc.detail, str) else INTERNAL_ERROR_MESSAGE
    return JSONResponse({"message": message}, status_code=exc.status_code, headers=getattr(exc, "headers", None))


async def handle_request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    field_errors = field_errors_from_validation(list(exc.errors()))
    logger.info("request_validation_failed path=%s fields=%s", request.url.path, sorted(field_errors))
    body: Dict[str, Any] = {"message": CORRECT_FIELDS_MESSAGE}
    if field_errors:
        body["fieldErrors"] = field_errors
    return JSONResponse(body, status_code=400)


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error("unexpected_error path=%s", request.url.path, exc_info=exc)
    return JSONResponse({"message": INTERNAL_ERROR_MESSAGE}, status_code=500)


__all__ = [
    "ApiError",
    "INTERNAL_ERROR_MESSAGE",
    "NOT_FOUND_MESSAGE",
    "field_errors_from_validation",
    "handle_api_error",
    "handle_http_exception",
    "handle_request_validation_error",
    "handle_unexpected_error",
    "validation_failed",
]
