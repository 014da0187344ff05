"""
Request-local value types shared by the retrieval pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Sequence


@dataclass(frozen=True)
class MemoryRecord:
    id: str
    user_id: str
    text: str
    source: str
    project_id: str
    tags: tuple[str, ...]
    metadata: dict
    created_at: datetime
    updated_at: datetime
    similarity: Optional[float] = None

    @staticmethod
    def from_row(row, similarity: Optional[float] = None) -> "MemoryRecord":
        return MemoryRecord(
            id=row.id,
            user_id=row.user_id,
            text=row.text,
            source=row.source,
            project_id=row.project_id,
            tags=tuple(row.tags or ()),
            metadata=dict(row.metadata_ or {}),
            created_at=row.created_at,
            updated_at=row.updated_at,
            similarity=similarity,
        )


@dataclass(frozen=True)
class ScoredMemory:
    memory: MemoryRecord
    relevance_score: float


@dataclass(frozen=True)
class MemoryFilters:
    project_id: Optional[str] = None
    tags: tuple[str, ...] = ()
    source: Optional[str] = None


@dataclass(frozen=True)
class RetrievalRequest:
    query: str
    llm: Optional[str] = None
    limit: Optional[int] = None
    project_id: Optional[str] = None
    conversation_history: Optional[Sequence[str]] = None


@dataclass
class RetrievalResult:
    memories: list = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)
    cross_llm: bool = False

    @property
    def count(self) -> int:
        return len(self.memories)
