"""
Context retrieval entry points.

Each entry point is one linear pipeline: validate, retrieve, and for the
lexical path score and rank, then format.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Optional, Sequence

import core.config as config
from core.config import (
    MAX_HISTORY_ITEMS,
    MAX_QUERY_LENGTH,
    MAX_RESULT_LIMIT,
    MAX_CONTEXT_ALL_LIMIT,
    MAX_SHORT_TEXT_LENGTH,
    MAX_TAG_ITEMS,
    MAX_TAG_LENGTH,
    MAX_TEXT_LENGTH,
    RETRIEVAL_SETTINGS,
    RetrievalSettings,
)
from core.services.embeddings import EmbeddingProvider
from core.services.formatting import (
    format_enriched,
    format_records,
    format_text_only,
    format_text_page,
)
from core.services.keywords import extract_keywords
from core.services.query_builder import (
    build_filter_query,
    build_lexical_query,
    prepare_embedding_input,
)
from core.services.ranking import is_cross_llm, rank, score_candidates
from core.services.retrievers import LexicalRetriever, VectorRetriever
from core.types import RetrievalRequest, RetrievalResult
from core.validators import (
    validate_limit,
    validate_offset,
    validate_optional_text,
    validate_required_text,
    validate_source,
    validate_string_list,
)

logger = config.logger


def _resolve_limit(limit: Optional[int], default: int, max_value: int = MAX_RESULT_LIMIT) -> int:
    if limit is None:
        return default
    validate_limit(limit, "limit", max_value)
    return limit


def validate_retrieval_request(request: RetrievalRequest) -> None:
    validate_required_text(request.query, "query", MAX_QUERY_LENGTH)
    validate_optional_text(request.llm, "llm", MAX_SHORT_TEXT_LENGTH)
    validate_optional_text(request.project_id, "project_id", MAX_SHORT_TEXT_LENGTH)
    validate_string_list(
        request.conversation_history,
        "conversation_history",
        MAX_HISTORY_ITEMS,
        MAX_TEXT_LENGTH,
    )


async def retrieve_ranked(
    owner_id: str,
    request: RetrievalRequest,
    store,
    *,
    settings: RetrievalSettings = RETRIEVAL_SETTINGS,
    now: Optional[datetime] = None,
) -> RetrievalResult:
    """Keyword extraction, lexical candidates, heuristic scoring and ranking."""
    validate_retrieval_request(request)
    limit = _resolve_limit(request.limit, settings.default_limit)
    keywords = extract_keywords(request.query, request.conversation_history, settings)
    plan = build_lexical_query(
        owner_id,
        keywords,
        limit,
        project_id=request.project_id,
        settings=settings,
    )
    candidates = await LexicalRetriever(store).retrieve(plan)
    evaluated_at = now or datetime.now(timezone.utc)
    ranked = rank(score_candidates(candidates, keywords, evaluated_at, settings), limit)
    return RetrievalResult(
        memories=ranked,
        keywords=keywords,
        cross_llm=is_cross_llm((item.memory for item in ranked), request.llm),
    )


async def recall_context(
    owner_id: str,
    request: RetrievalRequest,
    store,
    *,
    settings: RetrievalSettings = RETRIEVAL_SETTINGS,
    now: Optional[datetime] = None,
) -> dict:
    result = await retrieve_ranked(owner_id, request, store, settings=settings, now=now)
    logger.info(
        "context_recalled",
        extra={
            "owner_id": owner_id,
            "keyword_count": len(result.keywords),
            "count": result.count,
            "cross_llm": result.cross_llm,
        },
    )
    return format_enriched(
        request.query,
        result,
        request.llm,
        history_used=bool(request.conversation_history),
    )


async def search_context(
    owner_id: str,
    store,
    *,
    query: Optional[str] = None,
    tags: Optional[Sequence[str]] = None,
    source: Optional[str] = None,
    project_id: Optional[str] = None,
    limit: Optional[int] = None,
) -> dict:
    """Filter-only search over an owner's memories (no keyword extraction, no scoring)."""
    validate_optional_text(query, "query", MAX_QUERY_LENGTH)
    validate_string_list(tags, "tags", MAX_TAG_ITEMS, MAX_TAG_LENGTH)
    validate_source(source)
    validate_optional_text(project_id, "project_id", MAX_SHORT_TEXT_LENGTH)
    limit = _resolve_limit(limit, config.CONTEXT_SEARCH_DEFAULT_LIMIT)
    plan = build_filter_query(
        owner_id,
        query,
        limit,
        project_id=project_id,
        tags=tags,
        source=source,
    )
    memories = await LexicalRetriever(store).retrieve(plan)
    return format_records(memories)


async def vector_search(
    owner_id: str,
    query: str,
    store,
    embedder: EmbeddingProvider,
    *,
    limit: Optional[int] = None,
    settings: RetrievalSettings = RETRIEVAL_SETTINGS,
) -> dict:
    limit = _resolve_limit(limit, settings.default_limit)
    plan = prepare_embedding_input(owner_id, query, limit, settings)
    memories = await VectorRetriever(store, embedder).retrieve(plan)
    return format_records(memories, query=query)


async def vector_context(
    owner_id: str,
    query: str,
    store,
    embedder: EmbeddingProvider,
    *,
    limit: Optional[int] = None,
    settings: RetrievalSettings = RETRIEVAL_SETTINGS,
) -> dict:
    """Vector search projected to memory text only, for direct prompt injection."""
    limit = _resolve_limit(limit, settings.default_limit)
    plan = prepare_embedding_input(owner_id, query, limit, settings)
    memories = await VectorRetriever(store, embedder).retrieve(plan)
    return format_text_only([memory.text for memory in memories])


async def all_context(
    owner_id: str,
    store,
    *,
    limit: Optional[int] = None,
    offset: int = 0,
) -> dict:
    """Page through every memory text by recency, bypassing extraction and scoring."""
    limit = _resolve_limit(limit, config.CONTEXT_ALL_DEFAULT_LIMIT, MAX_CONTEXT_ALL_LIMIT)
    validate_offset(offset, "offset")
    texts = await asyncio.to_thread(store.list_texts, owner_id, limit, offset)
    return format_text_page(texts, limit, offset)
