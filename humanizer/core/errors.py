"""Error taxonomy and normalized FastAPI handlers."""

import logging
from typing import Any, Dict, Optional
from uuid import uuid4

from starlette.exceptions import HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.requests import Request

from humanizer.core.logging import get_request_id


class AppError(Exception):
    code = "app_error"
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        request_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.request_id = request_id
        self.details = details or {}


class ValidationError(AppError, ValueError):
    code = "validation_error"
    status_code = 400


class AuthError(AppError):
    code = "unauthorized"
    status_code = 401


class NotFoundError(AppError, ValueError):
    code = "not_found"
    status_code = 404


class NoActiveSubscriptionError(NotFoundError):
    code = "no_active_subscription"
    status_code = 404


class ConflictError(AppError):
    code = "conflict"
    status_code = 409


class InsufficientCreditsError(AppError):
    """Balance too low for the requested operation. Never retried automatically."""
    code = "insufficient_credits"
    status_code = 403

    def __init__(self, needed: int, remaining: int, **kwargs):
        super().__init__(
            "Insufficient credits",
            details={"creditsNeeded": needed, "creditsRemaining": remaining},
            **kwargs,
        )
        self.needed = needed
        self.remaining = remaining


class TransformationServiceError(AppError):
    """Remote strategy failed or timed out; recovered through the fallback chain."""
    code = "transformation_service_error"
    status_code = 502


class TransformationTotalFailureError(AppError):
    code = "transformation_failed"
    status_code = 500


class PersistenceError(AppError):
    """Write path failed after a successful transformation.

    The transformed text is carried in the payload so the caller does not lose it.
    """
    code = "persistence_error"
    status_code = 500

    def __init__(self, message: str, *, transformed_text: Optional[str] = None, **kwargs):
        details = {"transformedText": transformed_text} if transformed_text is not None else None
        super().__init__(message, details=details, **kwargs)
        self.transformed_text = transformed_text


def _extract_request_id(request: Request, fallback: Optional[str] = None) -> str:
    return (
        getattr(request.state, "request_id", None)
        or get_request_id()
        or fallback
        or str(uuid4())
    )


def _error_payload(code: str, message: str, request_id: str, details: Optional[Dict[str, Any]] = None) -> dict:
    payload = {
        "error": {"code": code, "message": message, "request_id": request_id},
        "detail": message,
        "message": message,
    }
    if details:
        payload.update(details)
    return payload


async def app_error_handler(request: Request, exc: AppError):
    rid = exc.request_id or _extract_request_id(request)
    payload = _error_payload(exc.code, exc.message, rid, exc.details)
    logger = logging.getLogger("humanizer")
    log_level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        log_level,
        "app.error",
        extra={"request_id": rid, "error_code": exc.code, "error_message": exc.message, "status": exc.status_code},
    )
    response = JSONResponse(status_code=exc.status_code, content=payload)
    response.headers["x-request-id"] = rid
    return response


async def http_error_handler(request: Request, exc: HTTPException):
    rid = _extract_request_id(request)
    code = "not_found" if exc.status_code == 404 else "http_error"
    message = exc.detail if exc.detail else "HTTP error"
    payload = _error_payload(code, message, rid)
    logger = logging.getLogger("humanizer")
    logger.warning("http.error", extra={"request_id": rid, "error_code": code, "status": exc.status_code})
    response = JSONResponse(status_code=exc.status_code, content=payload)
    response.headers["x-request-id"] = rid
    return response


async def request_validation_handler(request: Request, exc: RequestValidationError):
    rid = _extract_request_id(request)
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"Invalid {field}: {first.get('msg')}" if field else "Invalid request"
    payload = _error_payload("validation_error", message, rid)
    logging.getLogger("humanizer").warning(
        "request.invalid", extra={"request_id": rid, "error_code": "validation_error", "status": 400}
    )
    response = JSONResponse(status_code=400, content=payload)
    response.headers["x-request-id"] = rid
    return response


async def unhandled_exception_handler(request: Request, exc: Exception):
    rid = _extract_request_id(request)
    logger = logging.getLogger("humanizer")
    logger.error("unhandled.exception", exc_info=True, extra={"request_id": rid, "error_code": "internal_error"})
    payload = _error_payload("internal_error", "Unexpected error", rid)
    response = JSONResponse(status_code=500, content=payload)
    response.headers["x-request-id"] = rid
    return response
