"""
Store query plans for lexical and vector retrieval.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from core.config import MAX_QUERY_LENGTH, RETRIEVAL_SETTINGS, RetrievalSettings
from core.types import MemoryFilters
from core.validators import validate_required_text

MATCH_ANY = " | "


@dataclass(frozen=True)
class LexicalQuery:
    owner_id: str
    search_expression: Optional[str]
    filters: MemoryFilters
    fetch_limit: int
    websearch: bool = False


@dataclass(frozen=True)
class VectorQuery:
    owner_id: str
    text: str
    limit: int
    threshold: float


def candidate_pool_size(limit: int, settings: RetrievalSettings = RETRIEVAL_SETTINGS) -> int:
    """Number of recency-ordered candidates fetched before scoring."""
    pool = limit * settings.candidate_multiplier
    return max(limit, min(pool, settings.max_candidate_pool))


def join_keywords(keywords: Sequence[str]) -> str:
    return MATCH_ANY.join(keywords)


def build_lexical_query(
    owner_id: str,
    keywords: Sequence[str],
    limit: int,
    *,
    project_id: Optional[str] = None,
    tags: Optional[Sequence[str]] = None,
    source: Optional[str] = None,
    settings: RetrievalSettings = RETRIEVAL_SETTINGS,
) -> LexicalQuery:
    return LexicalQuery(
        owner_id=owner_id,
        search_expression=join_keywords(keywords),
        filters=MemoryFilters(project_id=project_id, tags=tuple(tags or ()), source=source),
        fetch_limit=candidate_pool_size(limit, settings),
    )


def build_filter_query(
    owner_id: str,
    query: Optional[str],
    limit: int,
    *,
    project_id: Optional[str] = None,
    tags: Optional[Sequence[str]] = None,
    source: Optional[str] = None,
) -> LexicalQuery:
    """Filter-only search: raw query text (if any) as a web-search expression, no scoring."""
    expression = query.strip() if query and query.strip() else None
    return LexicalQuery(
        owner_id=owner_id,
        search_expression=expression,
        filters=MemoryFilters(project_id=project_id, tags=tuple(tags or ()), source=source),
        fetch_limit=limit,
        websearch=True,
    )


def prepare_embedding_input(
    owner_id: str,
    query: str,
    limit: int,
    settings: RetrievalSettings = RETRIEVAL_SETTINGS,
) -> VectorQuery:
    validate_required_text(query, "query", MAX_QUERY_LENGTH)
    return VectorQuery(
        owner_id=owner_id,
        text=query.strip(),
        limit=limit,
        threshold=settings.vector_threshold,
    )
