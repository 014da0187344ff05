"""
Heuristic relevance scoring and ranking for lexical retrieval.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, Optional, Sequence

from core.config import RETRIEVAL_SETTINGS, RetrievalSettings
from core.types import MemoryRecord, ScoredMemory

SECONDS_PER_DAY = 86400.0


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def age_in_days(created_at: datetime, now: datetime) -> float:
    return (_as_utc(now) - _as_utc(created_at)).total_seconds() / SECONDS_PER_DAY


def recency_bonus(
    created_at: datetime,
    now: datetime,
    settings: RetrievalSettings = RETRIEVAL_SETTINGS,
) -> float:
    bonus = settings.recency_max_bonus - settings.recency_decay_per_day * age_in_days(created_at, now)
    return min(settings.recency_max_bonus, max(0.0, bonus))


def keyword_hits(text: str, keywords: Iterable[str]) -> int:
    lowered = text.lower()
    return sum(1 for keyword in set(keywords) if keyword.lower() in lowered)


def score_memory(
    text: str,
    created_at: datetime,
    keywords: Iterable[str],
    now: datetime,
    settings: RetrievalSettings = RETRIEVAL_SETTINGS,
) -> float:
    """keyword_weight per distinct matching keyword plus a linearly decaying recency bonus."""
    return settings.keyword_weight * keyword_hits(text, keywords) + recency_bonus(created_at, now, settings)


def score_candidates(
    candidates: Sequence[MemoryRecord],
    keywords: Sequence[str],
    now: datetime,
    settings: RetrievalSettings = RETRIEVAL_SETTINGS,
) -> list[ScoredMemory]:
    return [
        ScoredMemory(
            memory=memory,
            relevance_score=score_memory(memory.text, memory.created_at, keywords, now, settings),
        )
        for memory in candidates
    ]


def rank(scored: Sequence[ScoredMemory], limit: int) -> list[ScoredMemory]:
    """Sort by score (then newest first, then id) and truncate to limit."""
    ordered = sorted(scored, key=lambda item: item.memory.id)
    ordered.sort(key=lambda item: _as_utc(item.memory.created_at), reverse=True)
    ordered.sort(key=lambda item: item.relevance_score, reverse=True)
    return ordered[:limit]


def is_cross_llm(memories: Iterable[MemoryRecord], llm: Optional[str]) -> bool:
    if not llm:
        return False
    sources = {memory.source for memory in memories}
    return len(sources) > 1 and llm not in sources
