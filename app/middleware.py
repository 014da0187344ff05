"""
Middleware configuration for the FastAPI app.
"""

from __future__ import annotations

import os
import re
import uuid

from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware

from core.context import request_id_var

DEFAULT_ORIGINS = ("http://localhost:3000",)
REQUEST_ID_HEADER = "X-Request-ID"
_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


def _csv_env(name: str) -> list[str]:
    return [item.strip() for item in os.environ.get(name, "").split(",") if item.strip()]


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Adopt the caller's X-Request-ID (or mint one), expose it to logging, echo it back."""

    async def dispatch(self, request, call_next):
        incoming = request.headers.get(REQUEST_ID_HEADER, "")
        request_id = incoming if _REQUEST_ID_RE.match(incoming) else uuid.uuid4().hex
        request.state.request_id = request_id
        token = request_id_var.set(request_id)
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def configure_middleware(app) -> None:
    """Request ids, host allowlist (optional) and CORS for browser-based assistant clients."""
    # Added first so it sits innermost: error responses still carry the id.
    app.add_middleware(RequestIdMiddleware)

    trusted_hosts = _csv_env("TRUSTED_HOSTS")
    if trusted_hosts:
        app.add_middleware(TrustedHostMiddleware, allowed_hosts=trusted_hosts)

    allow_origins = _csv_env("CORS_ALLOWED_ORIGINS")
    if not allow_origins:
        frontend = os.environ.get("FRONTEND_URL")
        allow_origins = list(DEFAULT_ORIGINS) + ([frontend] if frontend else [])

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-API-Key", REQUEST_ID_HEADER],
        expose_headers=[REQUEST_ID_HEADER],
    )
