"""
Request-scoped context objects for core services.
"""

from __future__ import annotations

import logging
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Optional

AUTH_METHOD_JWT = "jwt"
AUTH_METHOD_API_KEY = "api-key"
AUTH_METHOD_ANONYMOUS = "anonymous"

# Set by the request-id middleware for the lifetime of one request.
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


class RequestIdFilter(logging.Filter):
    """Stamps each log record with the current request id ("-" outside requests)."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = request_id_var.get() or "-"
        return True


@dataclass(frozen=True)
class AuthResult:
    owner_id: str
    method: str
    email: Optional[str] = None


@dataclass(frozen=True)
class RequestContext:
    auth: AuthResult

    @property
    def owner_id(self) -> str:
        return self.auth.owner_id


__all__ = [
    "AUTH_METHOD_JWT",
    "AUTH_METHOD_API_KEY",
    "AUTH_METHOD_ANONYMOUS",
    "AuthResult",
    "RequestContext",
    "RequestIdFilter",
    "request_id_var",
]
