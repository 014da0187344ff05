"""
Shared configuration for RecallBricks core.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from core.context import RequestIdFilter

LOG_FORMAT = "%(levelname)s:%(name)s:[%(request_id)s] %(message)s"

_log_handler = logging.StreamHandler()
_log_handler.addFilter(RequestIdFilter())
logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, handlers=[_log_handler])
logger = logging.getLogger("recallbricks")
logger.addFilter(RequestIdFilter())


def _get_bool(env_name: str, default: bool) -> bool:
    raw = os.environ.get(env_name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


def _get_number(env_name: str, default, cast):
    raw = os.environ.get(env_name, "").strip()
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r; using %r", env_name, raw, default)
        return default


def _get_int(env_name: str, default: int) -> int:
    return _get_number(env_name, default, int)


def _get_float(env_name: str, default: float) -> float:
    return _get_number(env_name, default, float)


def _derive_effective_backends(db_backend: str, vector_backend: str) -> tuple[str, str]:
    db_effective = db_backend if db_backend in {"postgres", "sqlite"} else "postgres"
    vector_effective = vector_backend if vector_backend in {"pgvector", "none"} else "none"
    if db_effective == "sqlite" and vector_effective == "pgvector":
        vector_effective = "none"
    return db_effective, vector_effective


# Database settings
DB_BACKEND = os.environ.get("DB_BACKEND", "postgres").strip().lower()
VECTOR_BACKEND = os.environ.get("VECTOR_BACKEND", "pgvector").strip().lower()
SQLITE_PATH = os.environ.get("SQLITE_PATH", "/data/recallbricks.db")
DATABASE_URL = os.environ.get("DATABASE_URL")
DB_BACKEND_EFFECTIVE, VECTOR_BACKEND_EFFECTIVE = _derive_effective_backends(
    DB_BACKEND,
    VECTOR_BACKEND,
)
AUTO_CREATE_EXTENSIONS = _get_bool("AUTO_CREATE_EXTENSIONS", True)

# Embedding settings
OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY")
OPENAI_BASE_URL = os.environ.get("OPENAI_BASE_URL", "https://api.openai.com/v1").rstrip("/")
EMBEDDING_PROVIDER = os.environ.get("EMBEDDING_PROVIDER", "openai").strip().lower()
EMBEDDING_MODEL = os.environ.get("EMBEDDING_MODEL", "text-embedding-3-small")
EMBEDDING_DIM = _get_int("EMBEDDING_DIM", 1536)
EMBEDDING_HEALTHCHECK_ENABLED = _get_bool("EMBEDDING_HEALTHCHECK_ENABLED", True)

# OpenAI retry/backoff
EMBEDDING_TIMEOUT_SECONDS = _get_float("EMBEDDING_TIMEOUT_SECONDS", 30.0)
EMBEDDING_RETRY_MAX = _get_int("EMBEDDING_RETRY_MAX", 2)
EMBEDDING_RETRY_BACKOFF_SECONDS = _get_float("EMBEDDING_RETRY_BACKOFF_SECONDS", 0.5)
EMBEDDING_RETRY_JITTER_SECONDS = _get_float("EMBEDDING_RETRY_JITTER_SECONDS", 0.25)
EMBEDDING_FAILURE_THRESHOLD = _get_int("EMBEDDING_FAILURE_THRESHOLD", 5)
EMBEDDING_COOLDOWN_SECONDS = _get_int("EMBEDDING_COOLDOWN_SECONDS", 60)

# Key information extraction on ingest
KEY_INFO_EXTRACTION_ENABLED = _get_bool("KEY_INFO_EXTRACTION_ENABLED", True)
KEY_INFO_MODEL = os.environ.get("KEY_INFO_MODEL", "gpt-4o-mini")

# Retrieval
VECTOR_MATCH_THRESHOLD = _get_float("VECTOR_MATCH_THRESHOLD", 0.5)
CONTEXT_DEFAULT_LIMIT = _get_int("CONTEXT_DEFAULT_LIMIT", 10)
CONTEXT_SEARCH_DEFAULT_LIMIT = _get_int("CONTEXT_SEARCH_DEFAULT_LIMIT", 50)
CONTEXT_ALL_DEFAULT_LIMIT = _get_int("CONTEXT_ALL_DEFAULT_LIMIT", 100)
CONTEXT_CANDIDATE_MULTIPLIER = _get_int("CONTEXT_CANDIDATE_MULTIPLIER", 5)
MAX_CANDIDATE_POOL = _get_int("MAX_CANDIDATE_POOL", 200)

# Request/input limits
MAX_RESULT_LIMIT = _get_int("RECALLBRICKS_MAX_RESULT_LIMIT", 100)
MAX_CONTEXT_ALL_LIMIT = _get_int("RECALLBRICKS_MAX_CONTEXT_ALL_LIMIT", 1000)
MAX_QUERY_LENGTH = _get_int("RECALLBRICKS_MAX_QUERY_LENGTH", 4000)
MAX_TEXT_LENGTH = _get_int("RECALLBRICKS_MAX_TEXT_LENGTH", 8000)
MAX_SHORT_TEXT_LENGTH = _get_int("RECALLBRICKS_MAX_SHORT_TEXT_LENGTH", 255)
MAX_HISTORY_ITEMS = _get_int("RECALLBRICKS_MAX_HISTORY_ITEMS", 100)
MAX_METADATA_BYTES = _get_int("RECALLBRICKS_MAX_METADATA_BYTES", 20000)
MAX_TAG_ITEMS = _get_int("RECALLBRICKS_MAX_TAG_ITEMS", 50)
MAX_TAG_LENGTH = _get_int("RECALLBRICKS_MAX_TAG_LENGTH", 100)

# Authentication
REQUIRE_AUTH = _get_bool("REQUIRE_AUTH", True)
DEFAULT_OWNER_ID = os.environ.get("DEFAULT_OWNER_ID", "00000000-0000-0000-0000-000000000001")
AUTH_USER_URL = os.environ.get("AUTH_USER_URL")
AUTH_API_KEY = os.environ.get("AUTH_API_KEY")
AUTH_TIMEOUT_SECONDS = _get_float("AUTH_TIMEOUT_SECONDS", 10.0)

DEFAULT_PROJECT_ID = "default"
DEFAULT_SOURCE = "api"
KNOWN_SOURCES = ("claude", "chatgpt", "cursor", "manual", "api")

STOP_WORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of",
    "with", "by", "from", "is", "was", "are", "were", "been", "be", "have",
    "has", "had", "do", "does", "did", "will", "would", "could", "should",
    "can", "may", "might", "what", "when", "where", "who", "how", "why",
    "this", "that", "these", "those",
})


@dataclass(frozen=True)
class RetrievalSettings:
    stop_words: frozenset = STOP_WORDS
    min_token_length: int = 3
    max_query_keywords: int = 10
    max_history_keywords: int = 5
    history_window: int = 3
    keyword_weight: float = 10.0
    recency_max_bonus: float = 5.0
    recency_decay_per_day: float = 0.1
    default_limit: int = 10
    candidate_multiplier: int = 5
    max_candidate_pool: int = 200
    vector_threshold: float = 0.5


def load_retrieval_settings() -> RetrievalSettings:
    """Build the process-wide retrieval settings from the environment values."""
    return RetrievalSettings(
        default_limit=CONTEXT_DEFAULT_LIMIT,
        candidate_multiplier=max(1, CONTEXT_CANDIDATE_MULTIPLIER),
        max_candidate_pool=max(1, MAX_CANDIDATE_POOL),
        vector_threshold=VECTOR_MATCH_THRESHOLD,
    )


RETRIEVAL_SETTINGS = load_retrieval_settings()


def validate_and_prepare_config() -> None:
    """Validate configuration and apply derived settings at startup."""
    global DATABASE_URL, DB_BACKEND_EFFECTIVE, VECTOR_BACKEND_EFFECTIVE

    errors = []
    if DB_BACKEND not in {"postgres", "sqlite"}:
        errors.append("DB_BACKEND must be 'postgres' or 'sqlite'")

    if VECTOR_BACKEND not in {"pgvector", "none"}:
        errors.append("VECTOR_BACKEND must be 'pgvector' or 'none'")

    if DB_BACKEND == "sqlite" and VECTOR_BACKEND == "pgvector":
        logger.warning("VECTOR_BACKEND=pgvector ignored for sqlite; using in-process similarity.")

    if not DATABASE_URL:
        if DB_BACKEND == "sqlite":
            if not SQLITE_PATH:
                errors.append("SQLITE_PATH environment variable is required for sqlite")
            else:
                DATABASE_URL = f"sqlite:///{SQLITE_PATH}"
        else:
            errors.append("DATABASE_URL environment variable is required")
    else:
        is_sqlite_url = DATABASE_URL.lower().startswith("sqlite")
        if DB_BACKEND == "sqlite" and not is_sqlite_url:
            errors.append("DATABASE_URL must be a sqlite URL when DB_BACKEND=sqlite")
        if DB_BACKEND == "postgres" and is_sqlite_url:
            errors.append("DATABASE_URL must be a postgres URL when DB_BACKEND=postgres")

    DB_BACKEND_EFFECTIVE, VECTOR_BACKEND_EFFECTIVE = _derive_effective_backends(
        DB_BACKEND,
        VECTOR_BACKEND,
    )

    if EMBEDDING_PROVIDER not in {"openai", "none"}:
        errors.append("EMBEDDING_PROVIDER must be 'openai' or 'none'")
    if EMBEDDING_PROVIDER == "openai" and not OPENAI_API_KEY:
        logger.warning("OPENAI_API_KEY is not set; embedding calls will fail.")
    if EMBEDDING_DIM <= 0:
        errors.append("EMBEDDING_DIM must be positive")

    if VECTOR_BACKEND_EFFECTIVE == "pgvector":
        from core.models import PGVECTOR_AVAILABLE

        if not PGVECTOR_AVAILABLE:
            errors.append("pgvector package is required when VECTOR_BACKEND=pgvector")

    if REQUIRE_AUTH and not AUTH_USER_URL:
        logger.warning("AUTH_USER_URL is not set; bearer tokens will be rejected.")
    if not REQUIRE_AUTH:
        logger.warning("REQUIRE_AUTH=false; requests run as owner %s", DEFAULT_OWNER_ID)

    if errors:
        raise RuntimeError("Configuration invalid: " + "; ".join(errors))
