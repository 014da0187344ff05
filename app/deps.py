"""
Dependency helpers for the FastAPI app.
"""

from __future__ import annotations

from fastapi import Depends, Request

import core.config as config
from core.context import AUTH_METHOD_ANONYMOUS, AuthResult, RequestContext
from core.services import embeddings
from core.services.embeddings import EmbeddingProvider
from core.services.memory_store import MemoryStore
from app.auth import ApiKeyAuthenticator, Authenticator, JwtAuthenticator, authenticate_headers


def get_memory_store() -> MemoryStore:
    return MemoryStore()


def get_embedding_provider() -> EmbeddingProvider:
    return embeddings.embedding_provider


def get_jwt_authenticator() -> Authenticator:
    return JwtAuthenticator()


def get_api_key_authenticator() -> Authenticator:
    return ApiKeyAuthenticator()


async def get_auth_result(
    request: Request,
    jwt_authenticator: Authenticator = Depends(get_jwt_authenticator),
    api_key_authenticator: Authenticator = Depends(get_api_key_authenticator),
) -> AuthResult:
    if not config.REQUIRE_AUTH:
        return AuthResult(owner_id=config.DEFAULT_OWNER_ID, method=AUTH_METHOD_ANONYMOUS)
    return await authenticate_headers(request.headers, jwt_authenticator, api_key_authenticator)


async def get_request_context(auth: AuthResult = Depends(get_auth_result)) -> RequestContext:
    return RequestContext(auth=auth)
