"""
Liveness and dependency probes.
"""

from __future__ import annotations

import os
import time

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func, select, text

import core.config as config
from core.db import DB
from core.errors import EmbeddingProviderError
from core.models import Memory
from core.services.embeddings import EmbeddingProvider
from app.deps import get_embedding_provider


router = APIRouter()

SERVICE_NAME = "RecallBricks"
SERVICE_VERSION = "0.1.0"


def _pgvector_expected() -> bool:
    return config.DB_BACKEND_EFFECTIVE == "postgres" and config.VECTOR_BACKEND_EFFECTIVE == "pgvector"


def _store_status() -> dict:
    """Reachability of the memory store, plus pgvector when vector search depends on it."""
    if DB.engine is None:
        return {"ok": False, "error": "db_not_initialized"}

    status = {
        "ok": True,
        "backend": config.DB_BACKEND_EFFECTIVE,
        "vector_backend": config.VECTOR_BACKEND_EFFECTIVE,
    }
    try:
        with DB.engine.connect() as conn:
            status["memory_count"] = conn.execute(select(func.count()).select_from(Memory.__table__)).scalar()
            if _pgvector_expected():
                version = conn.execute(
                    text("SELECT extversion FROM pg_extension WHERE extname = 'vector'")
                ).scalar()
                status["pgvector_version"] = version
                status["ok"] = bool(version)
    except Exception as exc:
        config.logger.warning("health_store_check_failed", extra={"error": exc.__class__.__name__})
        return {"ok": False, "error": str(exc)}
    return status


async def _embedder_status(embedder: EmbeddingProvider, probe: bool) -> dict:
    status = {"status": "ready", "probed": False, **embedder.status()}
    if config.EMBEDDING_PROVIDER == "none":
        status["status"] = "disabled"
    elif status.get("circuit_breaker", {}).get("open"):
        status["status"] = "cooldown"
    elif probe and config.EMBEDDING_HEALTHCHECK_ENABLED:
        status["probed"] = True
        started = time.monotonic()
        try:
            await embedder.embed("healthcheck")
        except EmbeddingProviderError as exc:
            status["status"] = "error"
            status["error"] = str(exc)
        else:
            status["status"] = "ok"
            status["latency_ms"] = int((time.monotonic() - started) * 1000)
    elif probe:
        status["status"] = "skipped"
    return status


@router.get("/health")
async def health(embedder: EmbeddingProvider = Depends(get_embedding_provider)):
    store = _store_status()
    embedding = await _embedder_status(embedder, probe=False)
    if not store["ok"]:
        raise HTTPException(status_code=503, detail={"store": store, "embedding_provider": embedding})
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "instance_id": os.environ.get("RECALLBRICKS_INSTANCE_ID", "recallbricks-1"),
        "store": store,
        "embedding_provider": embedding,
    }


@router.get("/health/deps")
async def health_deps(embedder: EmbeddingProvider = Depends(get_embedding_provider)):
    """Like /health, but also round-trips a probe embedding when enabled."""
    store = _store_status()
    if not store["ok"]:
        raise HTTPException(status_code=503, detail={"store": store})
    embedding = await _embedder_status(embedder, probe=True)
    return {
        "status": "healthy" if embedding["status"] != "error" else "degraded",
        "service": SERVICE_NAME,
        "store": store,
        "embedding_provider": embedding,
    }
