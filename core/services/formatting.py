"""
Response shapes for retrieval results.
"""

from __future__ import annotations

from typing import Optional, Sequence

from core.types import MemoryRecord, RetrievalResult, ScoredMemory


def serialize_memory(memory: MemoryRecord) -> dict:
    payload = {
        "id": memory.id,
        "user_id": memory.user_id,
        "text": memory.text,
        "source": memory.source,
        "project_id": memory.project_id,
        "tags": list(memory.tags),
        "metadata": memory.metadata,
        "created_at": memory.created_at.isoformat() if memory.created_at else None,
        "updated_at": memory.updated_at.isoformat() if memory.updated_at else None,
    }
    if memory.similarity is not None:
        payload["similarity"] = memory.similarity
    return payload


def serialize_scored(item: ScoredMemory) -> dict:
    payload = serialize_memory(item.memory)
    payload["relevance_score"] = item.relevance_score
    return payload


def format_enriched(
    query: str,
    result: RetrievalResult,
    llm: Optional[str],
    history_used: bool,
) -> dict:
    return {
        "query": query,
        "keywords_extracted": list(result.keywords),
        "memories": [serialize_scored(item) for item in result.memories],
        "count": result.count,
        "crossLLM": result.cross_llm,
        "llm": llm or "unknown",
        "intelligence": {
            "keyword_extraction": True,
            "relevance_scoring": True,
            "conversation_context": history_used,
        },
    }


def format_records(memories: Sequence[MemoryRecord], query: Optional[str] = None) -> dict:
    payload = {
        "memories": [serialize_memory(memory) for memory in memories],
        "count": len(memories),
    }
    if query is not None:
        payload["query"] = query
    return payload


def format_text_only(texts: Sequence[str]) -> dict:
    context = list(texts)
    return {"context": context, "count": len(context)}


def format_text_page(texts: Sequence[str], limit: int, offset: int) -> dict:
    payload = format_text_only(texts)
    payload["limit"] = limit
    payload["offset"] = offset
    return payload
