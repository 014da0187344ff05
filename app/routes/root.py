"""
Root endpoint with service metadata.
"""

from __future__ import annotations

from fastapi import APIRouter

import core.config as config


router = APIRouter()


@router.get("/")
async def root():
    """Root endpoint with service info."""
    return {
        "service": "RecallBricks",
        "version": "0.1.0",
        "description": "Cross-LLM memory and context retrieval for AI assistants",
        "embedding_model": config.EMBEDDING_MODEL,
        "endpoints": {
            "health": "/health",
            "health_deps": "/health/deps",
            "context": "/api/v1/context",
            "context_search": "/api/v1/context/search",
            "memories": "/api/v1/memories",
            "memories_search": "/api/v1/memories/search",
            "memories_context": "/api/v1/memories/context",
            "memories_context_all": "/api/v1/memories/context/all",
        },
    }
