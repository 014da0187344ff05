"""
Request authentication: JWT bearer tokens and API keys.

Both authenticators resolve a request to an ``AuthResult`` carrying the
owner id every memory query is scoped to.
"""

from __future__ import annotations

import asyncio
import hashlib
import secrets
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Mapping, Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError

import core.config as config
from core.context import AUTH_METHOD_API_KEY, AUTH_METHOD_JWT, AuthResult
from core.db import DB
from core.errors import AuthenticationError, StoreError
from core.models import ApiKey

logger = config.logger

API_KEY_PREFIX = "rb_"


def hash_api_key(raw_key: str) -> str:
    return hashlib.sha256(raw_key.encode("utf-8")).hexdigest()


def _key_prefix(raw_key: str) -> str:
    return raw_key[:10] + "..."


def issue_api_key(db, user_id: str, name: Optional[str] = None) -> str:
    """Create an API key for a user and return the raw key (only shown once)."""
    raw_key = API_KEY_PREFIX + secrets.token_urlsafe(32)
    db.add(
        ApiKey(
            user_id=user_id,
            key_hash=hash_api_key(raw_key),
            key_prefix=raw_key[:10],
            name=name,
        )
    )
    db.commit()
    return raw_key


class Authenticator(ABC):
    @abstractmethod
    async def authenticate(self, credential: str) -> AuthResult:
        raise NotImplementedError


class JwtAuthenticator(Authenticator):
    """Validates bearer tokens against the auth provider's user endpoint."""

    def __init__(
        self,
        user_url: Optional[str] = None,
        *,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.user_url = user_url if user_url is not None else config.AUTH_USER_URL
        self.api_key = api_key if api_key is not None else config.AUTH_API_KEY
        self._client = client

    async def _fetch_user(self, token: str) -> httpx.Response:
        headers = {"Authorization": f"Bearer {token}"}
        if self.api_key:
            headers["apikey"] = self.api_key
        if self._client is not None:
            return await self._client.get(self.user_url, headers=headers)
        async with httpx.AsyncClient(timeout=httpx.Timeout(config.AUTH_TIMEOUT_SECONDS)) as client:
            return await client.get(self.user_url, headers=headers)

    async def authenticate(self, credential: str) -> AuthResult:
        if not self.user_url:
            raise AuthenticationError("Invalid or expired token")
        try:
            response = await self._fetch_user(credential)
        except httpx.RequestError as exc:
            logger.error("jwt_validation_error", extra={"error": exc.__class__.__name__})
            raise AuthenticationError("Invalid or expired token") from exc
        if response.status_code != 200:
            logger.warning("jwt_rejected", extra={"status": response.status_code})
            raise AuthenticationError("Invalid or expired token")
        try:
            user = response.json()
            user_id = user["id"]
        except (ValueError, KeyError, TypeError) as exc:
            raise AuthenticationError("Invalid or expired token") from exc
        logger.info("jwt_auth_success", extra={"owner_id": user_id})
        return AuthResult(owner_id=str(user_id), method=AUTH_METHOD_JWT, email=user.get("email"))


class ApiKeyAuthenticator(Authenticator):
    """Looks up hashed API keys and records their last use."""

    def __init__(self, session_factory=None):
        self._session_factory = session_factory

    def _lookup(self, raw_key: str) -> AuthResult:
        factory = self._session_factory or DB.SessionLocal
        if factory is None:
            raise RuntimeError("Database not initialized - SessionLocal is None")
        db = factory()
        try:
            record = db.query(ApiKey).filter(ApiKey.key_hash == hash_api_key(raw_key)).first()
            if record is None:
                logger.warning("api_key_invalid", extra={"key_prefix": _key_prefix(raw_key)})
                raise AuthenticationError("Invalid API key")
            if not record.is_active:
                logger.warning("api_key_inactive", extra={"key_prefix": _key_prefix(raw_key)})
                raise AuthenticationError("API key is inactive")
            record.last_used_at = datetime.now(timezone.utc)
            db.commit()
            return AuthResult(owner_id=record.user_id, method=AUTH_METHOD_API_KEY)
        except SQLAlchemyError as exc:
            db.rollback()
            raise StoreError("Failed to validate API key") from exc
        finally:
            db.close()

    async def authenticate(self, credential: str) -> AuthResult:
        return await asyncio.to_thread(self._lookup, credential)


async def authenticate_headers(
    headers: Mapping[str, str],
    jwt_authenticator: Authenticator,
    api_key_authenticator: Authenticator,
) -> AuthResult:
    """Bearer token first, then X-API-Key."""
    auth_header = headers.get("authorization") or ""
    if auth_header.startswith("Bearer "):
        return await jwt_authenticator.authenticate(auth_header[len("Bearer "):].strip())
    api_key = headers.get("x-api-key")
    if not api_key:
        raise AuthenticationError(
            "Authentication required. Provide either Authorization: Bearer {token} or X-API-Key header"
        )
    return await api_key_authenticator.authenticate(api_key)
