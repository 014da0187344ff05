"""
Embedding provider client and ingest-time key information extraction.
"""

from __future__ import annotations

import asyncio
import random
import threading
import time
from abc import ABC, abstractmethod
from typing import List, Optional

import httpx

import core.config as config
from core.errors import EmbeddingProviderError
from core.validators import validate_required_text

logger = config.logger

RETRYABLE_STATUS = {429, 500, 502, 503, 504}

KEY_INFO_PROMPT = (
    "Extract only key information: decisions, code, facts. "
    "Remove explanations and filler."
)

http_client: Optional[httpx.AsyncClient] = None  # Reusable HTTP client for OpenAI API


def init_http_client() -> None:
    """Initialize HTTP client for OpenAI API calls."""
    global http_client
    headers = {"Content-Type": "application/json"}
    if config.OPENAI_API_KEY:
        headers["Authorization"] = f"Bearer {config.OPENAI_API_KEY}"
    http_client = httpx.AsyncClient(
        base_url=config.OPENAI_BASE_URL,
        timeout=httpx.Timeout(config.EMBEDDING_TIMEOUT_SECONDS),
        limits=httpx.Limits(max_keepalive_connections=10, max_connections=100),
        headers=headers,
    )
    logger.info("HTTP client initialized")


async def cleanup_http_client() -> None:
    """Clean up HTTP client on shutdown."""
    global http_client
    if http_client:
        await http_client.aclose()
        http_client = None
        logger.info("HTTP client closed")


class EmbeddingCircuitBreaker:
    """
    Fail-fast guard for one embedding provider.

    After ``failure_threshold`` consecutive failed embed calls the provider is
    skipped for ``cooldown_seconds``; one success closes it again. Each
    OpenAIEmbeddingProvider owns its own breaker, so health reports and
    cooldowns never leak between providers.
    """

    def __init__(self, failure_threshold: int, cooldown_seconds: float, clock=time.monotonic):
        self.failure_threshold = max(1, failure_threshold)
        self.cooldown_seconds = max(1, cooldown_seconds)
        self._clock = clock
        self._lock = threading.Lock()
        self._consecutive_failures = 0
        self._open_until = 0.0
        self._last_error: Optional[str] = None

    @classmethod
    def from_config(cls) -> "EmbeddingCircuitBreaker":
        return cls(config.EMBEDDING_FAILURE_THRESHOLD, config.EMBEDDING_COOLDOWN_SECONDS)

    def _remaining(self) -> float:
        return max(0.0, self._open_until - self._clock())

    def is_open(self) -> bool:
        with self._lock:
            return self._remaining() > 0

    def record_success(self) -> None:
        with self._lock:
            self._consecutive_failures = 0
            self._open_until = 0.0

    def record_failure(self, error: str) -> None:
        with self._lock:
            self._consecutive_failures += 1
            self._last_error = error
            if self._consecutive_failures < self.failure_threshold:
                return
            self._open_until = self._clock() + self.cooldown_seconds
            failures = self._consecutive_failures
        logger.warning(
            "embedding_breaker_opened",
            extra={"consecutive_failures": failures, "cooldown_seconds": self.cooldown_seconds, "error": error},
        )

    def status(self) -> dict:
        with self._lock:
            remaining = self._remaining()
            return {
                "open": remaining > 0,
                "consecutive_failures": self._consecutive_failures,
                "failure_threshold": self.failure_threshold,
                "cooldown_remaining_seconds": round(remaining, 1),
                "last_error": self._last_error,
            }


def _raise_embedding_unavailable(detail: str) -> None:
    logger.warning("Embedding provider unavailable", extra={"detail": detail})
    raise EmbeddingProviderError(f"embedding provider unavailable: {detail}")


async def _async_sleep_backoff(attempt: int) -> None:
    base = config.EMBEDDING_RETRY_BACKOFF_SECONDS * (2 ** attempt)
    jitter = random.uniform(0, config.EMBEDDING_RETRY_JITTER_SECONDS)
    await asyncio.sleep(base + jitter)


class EmbeddingProvider(ABC):
    """Turns text into a fixed-dimension embedding vector."""

    dimension: int = config.EMBEDDING_DIM

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        raise NotImplementedError

    def status(self) -> dict:
        return {"provider": "unknown"}


class DisabledEmbeddingProvider(EmbeddingProvider):
    async def embed(self, text: str) -> List[float]:
        _raise_embedding_unavailable("embedding provider disabled")

    def status(self) -> dict:
        return {"provider": "none", "status": "disabled"}


class OpenAIEmbeddingProvider(EmbeddingProvider):
    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        *,
        model: str = config.EMBEDDING_MODEL,
        dimension: int = config.EMBEDDING_DIM,
        retry_max: int = config.EMBEDDING_RETRY_MAX,
        breaker: Optional[EmbeddingCircuitBreaker] = None,
    ):
        self._client = client
        self.model = model
        self.dimension = dimension
        self.retry_max = retry_max
        self.breaker = breaker or EmbeddingCircuitBreaker.from_config()

    def _get_client(self) -> httpx.AsyncClient:
        client = self._client or http_client
        if client is None:
            init_http_client()
            client = http_client
        return client

    async def embed(self, text: str) -> List[float]:
        """Generate an embedding, retrying transient failures with backoff."""
        validate_required_text(text, "text", config.MAX_TEXT_LENGTH)
        if self.breaker.is_open():
            _raise_embedding_unavailable("circuit breaker open")
        client = self._get_client()
        for attempt in range(self.retry_max + 1):
            try:
                response = await client.post(
                    "/embeddings",
                    json={"model": self.model, "input": text},
                )
            except httpx.RequestError as exc:
                if attempt >= self.retry_max:
                    self.breaker.record_failure(str(exc))
                    _raise_embedding_unavailable(f"request error: {exc.__class__.__name__}")
                await _async_sleep_backoff(attempt)
                continue

            if response.status_code in RETRYABLE_STATUS:
                if attempt >= self.retry_max:
                    self.breaker.record_failure(f"status {response.status_code}")
                    _raise_embedding_unavailable(f"status {response.status_code}")
                await _async_sleep_backoff(attempt)
                continue
            if response.status_code >= 400:
                self.breaker.record_failure(f"status {response.status_code}")
                _raise_embedding_unavailable(f"status {response.status_code}")

            try:
                vector = response.json()["data"][0]["embedding"]
            except (ValueError, KeyError, IndexError, TypeError):
                self.breaker.record_failure("malformed response")
                _raise_embedding_unavailable("malformed response")
            if len(vector) != self.dimension:
                self.breaker.record_failure("dimension mismatch")
                _raise_embedding_unavailable(
                    f"expected {self.dimension} dimensions, got {len(vector)}"
                )
            self.breaker.record_success()
            return [float(value) for value in vector]
        _raise_embedding_unavailable("retries exhausted")

    def status(self) -> dict:
        return {
            "provider": "openai",
            "model": self.model,
            "circuit_breaker": self.breaker.status(),
        }


def build_embedding_provider() -> EmbeddingProvider:
    if config.EMBEDDING_PROVIDER == "none":
        return DisabledEmbeddingProvider()
    return OpenAIEmbeddingProvider()


embedding_provider = build_embedding_provider()


async def extract_key_info(text: str, client: Optional[httpx.AsyncClient] = None) -> str:
    """
    Condense memory text to its key information with a chat completion.

    Any failure (or a disabled/unconfigured extractor) returns the text unchanged.
    """
    if not config.KEY_INFO_EXTRACTION_ENABLED or not config.OPENAI_API_KEY:
        return text
    if client is None:
        if http_client is None:
            init_http_client()
        client = http_client
    try:
        response = await client.post(
            "/chat/completions",
            json={
                "model": config.KEY_INFO_MODEL,
                "messages": [
                    {"role": "system", "content": KEY_INFO_PROMPT},
                    {"role": "user", "content": text},
                ],
                "temperature": 0.3,
                "max_tokens": 500,
            },
        )
        response.raise_for_status()
        extracted = response.json()["choices"][0]["message"]["content"]
    except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as exc:
        logger.warning("key_info_extraction_failed", extra={"error": exc.__class__.__name__})
        return text
    extracted = (extracted or "").strip()
    return extracted or text
