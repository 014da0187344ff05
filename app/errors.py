"""
Exception handlers rendering the uniform ``{error, message}`` envelope.
"""

from __future__ import annotations

from http import HTTPStatus
from typing import Mapping, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

import core.config as config
from core.errors import AuthenticationError, NotFoundError, UpstreamFailure, ValidationIssue

logger = config.logger


HTTP_ERROR_KINDS = {
    400: "validation_error",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    503: "service_unavailable",
}


def error_response(
    status_code: int,
    error: str,
    message: str,
    headers: Optional[Mapping[str, str]] = None,
    **extra,
) -> JSONResponse:
    payload = {"error": error, "message": message}
    payload.update(extra)
    return JSONResponse(status_code=status_code, content=payload, headers=headers)


async def _validation_issue_handler(request: Request, exc: ValidationIssue) -> JSONResponse:
    logger.info(
        "request_validation_error",
        extra={"path": request.url.path, "field": exc.field, "error_type": exc.error_type},
    )
    return error_response(400, "validation_error", str(exc), field=exc.field)


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = [str(part) for part in first.get("loc", ()) if part not in {"body", "query", "path"}]
    field = ".".join(location) or "body"
    message = f"{field}: {first.get('msg', 'invalid request')}"
    return error_response(400, "validation_error", message, field=field)


async def _not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return error_response(404, "not_found", str(exc))


async def _authentication_handler(request: Request, exc: AuthenticationError) -> JSONResponse:
    return error_response(401, "unauthorized", str(exc))


async def _upstream_handler(request: Request, exc: UpstreamFailure) -> JSONResponse:
    logger.error(
        "upstream_failure",
        extra={"path": request.url.path, "error": exc.__class__.__name__},
    )
    return error_response(500, "upstream_failure", str(exc))


async def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    kind = HTTP_ERROR_KINDS.get(exc.status_code, "http_error")
    if isinstance(exc.detail, str):
        return error_response(exc.status_code, kind, exc.detail, headers=exc.headers)
    # Structured details (health probes) ride along next to the envelope.
    message = HTTPStatus(exc.status_code).phrase
    return error_response(exc.status_code, kind, message, headers=exc.headers, detail=exc.detail)


async def _internal_handler(request: Request, exc: Exception) -> JSONResponse:
    # Runs outside the request-id middleware, so the id comes from request state.
    request_id = getattr(request.state, "request_id", None) or "-"
    logger.exception("unhandled_error", extra={"path": request.url.path, "request_id": request_id})
    headers = {"X-Request-ID": request_id} if request_id != "-" else None
    return error_response(500, "internal_error", "An unexpected error occurred", headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ValidationIssue, _validation_issue_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(NotFoundError, _not_found_handler)
    app.add_exception_handler(AuthenticationError, _authentication_handler)
    app.add_exception_handler(UpstreamFailure, _upstream_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(Exception, _internal_handler)
