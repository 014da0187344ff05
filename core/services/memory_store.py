"""
SQLAlchemy-backed memory store.

PostgreSQL uses its full-text engine and pgvector; SQLite falls back to
ILIKE term matching and in-process cosine similarity.
"""

from __future__ import annotations

import re
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Optional, Sequence

import numpy as np
from sqlalchemy import and_, desc, false, func, or_
from sqlalchemy.exc import SQLAlchemyError

import core.config as config
from core.db import DB
from core.errors import NotFoundError, StoreError
from core.models import Memory
from core.types import MemoryFilters, MemoryRecord

logger = config.logger

UPDATABLE_FIELDS = {"text", "tags", "metadata", "project_id", "embedding"}


def _is_postgres(db) -> bool:
    return db.get_bind().dialect.name == "postgresql"


def _pgvector_enabled(db) -> bool:
    return _is_postgres(db) and config.VECTOR_BACKEND_EFFECTIVE == "pgvector"


_WEBSEARCH_TOKEN_RE = re.compile(r'-?"[^"]*"?|\S+')


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _tags_contain(row_tags, wanted: Sequence[str]) -> bool:
    return set(wanted).issubset({str(tag) for tag in (row_tags or [])})


def _websearch_groups(expression: str) -> list[list[tuple[str, bool]]]:
    """Split web-search syntax into OR groups of (substring, negated) terms.

    Quoted phrases become one substring, ``or`` separates groups and a leading
    ``-`` negates a term.
    """
    groups: list[list[tuple[str, bool]]] = [[]]
    for token in _WEBSEARCH_TOKEN_RE.findall(expression):
        if token.lower() == "or":
            groups.append([])
            continue
        negated = token.startswith("-")
        term = token.lstrip("-").strip('"').strip()
        if term:
            groups[-1].append((term, negated))
    return [group for group in groups if group]


def _ilike(term: str):
    return Memory.text.ilike(_like_pattern(term), escape="\\")


def _text_match(expression: str, websearch: bool, is_postgres: bool):
    if is_postgres:
        document = func.to_tsvector("english", Memory.text)
        if websearch:
            return document.op("@@")(func.websearch_to_tsquery("english", expression))
        return document.op("@@")(func.to_tsquery("english", expression))
    if websearch:
        groups = _websearch_groups(expression)
        if not groups:
            return false()
        return or_(
            *[and_(*[~_ilike(term) if negated else _ilike(term) for term, negated in group]) for group in groups]
        )
    terms = [term.strip() for term in expression.split("|") if term.strip()]
    return or_(*[_ilike(term) for term in terms])


def cosine_similarity(query: Sequence[float], vectors: Sequence[Sequence[float]]) -> np.ndarray:
    matrix = np.asarray(vectors, dtype=float)
    target = np.asarray(query, dtype=float)
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(target)
    with np.errstate(divide="ignore", invalid="ignore"):
        scores = matrix @ target / norms
    return np.nan_to_num(scores, nan=0.0)


class MemoryStore:
    """Owner-scoped queries and mutations over the memories table."""

    def __init__(self, session_factory=None):
        self._session_factory = session_factory

    def _open(self):
        factory = self._session_factory or DB.SessionLocal
        if factory is None:
            raise RuntimeError("Database not initialized - SessionLocal is None")
        return factory()

    @contextmanager
    def _session_scope(self) -> Iterator:
        db = self._open()
        try:
            yield db
        except SQLAlchemyError as exc:
            db.rollback()
            detail = getattr(exc, "orig", None) or exc
            logger.error("store_query_failed", extra={"error": exc.__class__.__name__})
            raise StoreError(f"store query failed: {detail}") from exc
        finally:
            db.close()

    def _apply_filters(self, query, filters: MemoryFilters, is_postgres: bool):
        if filters.project_id:
            query = query.filter(Memory.project_id == filters.project_id)
        if filters.source:
            query = query.filter(Memory.source == filters.source)
        if filters.tags and is_postgres:
            query = query.filter(Memory.tags.contains(list(filters.tags)))
        return query

    def _fetch(self, db, query, filters: MemoryFilters, limit: Optional[int], offset: int = 0):
        query = query.order_by(desc(Memory.created_at), Memory.id)
        if filters.tags and not _is_postgres(db):
            rows = [row for row in query.all() if _tags_contain(row.tags, filters.tags)]
            end = None if limit is None else offset + limit
            return rows[offset:end]
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    # -------------------------------------------------------------------------
    # Retrieval
    # -------------------------------------------------------------------------

    def lexical_query(
        self,
        owner_id: str,
        filters: MemoryFilters,
        search_expression: Optional[str],
        limit: int,
        *,
        websearch: bool = False,
    ) -> list[MemoryRecord]:
        """Full-text candidates for an owner, newest first, capped at limit."""
        with self._session_scope() as db:
            is_postgres = _is_postgres(db)
            query = db.query(Memory).filter(Memory.user_id == owner_id)
            query = self._apply_filters(query, filters, is_postgres)
            if search_expression:
                query = query.filter(_text_match(search_expression, websearch, is_postgres))
            rows = self._fetch(db, query, filters, limit)
            return [MemoryRecord.from_row(row) for row in rows]

    def vector_query(
        self,
        owner_id: str,
        embedding: Sequence[float],
        threshold: float,
        limit: int,
    ) -> list[MemoryRecord]:
        """Nearest neighbours above the similarity threshold, most similar first."""
        with self._session_scope() as db:
            if _pgvector_enabled(db):
                distance = Memory.embedding.cosine_distance(list(embedding))
                rows = (
                    db.query(Memory, (1 - distance).label("similarity"))
                    .filter(Memory.user_id == owner_id)
                    .filter(Memory.embedding.isnot(None))
                    .filter(distance < 1 - threshold)
                    .order_by(distance)
                    .limit(limit)
                    .all()
                )
                return [MemoryRecord.from_row(row, float(similarity)) for row, similarity in rows]

            rows = (
                db.query(Memory)
                .filter(Memory.user_id == owner_id)
                .filter(Memory.embedding.isnot(None))
                .order_by(desc(Memory.created_at), Memory.id)
                .all()
            )
            rows = [row for row in rows if row.embedding and len(row.embedding) == len(embedding)]
            if not rows:
                return []
            scores = cosine_similarity(embedding, [row.embedding for row in rows])
            ranked = sorted(
                (
                    (float(score), index)
                    for index, score in enumerate(scores)
                    if score > threshold
                ),
                key=lambda item: (-item[0], item[1]),
            )
            return [MemoryRecord.from_row(rows[index], score) for score, index in ranked[:limit]]

    def list_texts(self, owner_id: str, limit: int, offset: int = 0) -> list[str]:
        with self._session_scope() as db:
            rows = (
                db.query(Memory.text)
                .filter(Memory.user_id == owner_id)
                .order_by(desc(Memory.created_at), Memory.id)
                .offset(offset)
                .limit(limit)
                .all()
            )
            return [row[0] for row in rows]

    def list_memories(
        self,
        owner_id: str,
        filters: MemoryFilters,
        limit: Optional[int] = None,
    ) -> list[MemoryRecord]:
        with self._session_scope() as db:
            query = db.query(Memory).filter(Memory.user_id == owner_id)
            query = self._apply_filters(query, filters, _is_postgres(db))
            rows = self._fetch(db, query, filters, limit)
            return [MemoryRecord.from_row(row) for row in rows]

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def _get_row(self, db, owner_id: str, memory_id: str) -> Memory:
        row = (
            db.query(Memory)
            .filter(Memory.id == memory_id, Memory.user_id == owner_id)
            .first()
        )
        if row is None:
            raise NotFoundError("Memory", memory_id)
        return row

    def get_memory(self, owner_id: str, memory_id: str) -> MemoryRecord:
        with self._session_scope() as db:
            return MemoryRecord.from_row(self._get_row(db, owner_id, memory_id))

    def create_memory(
        self,
        owner_id: str,
        *,
        text: str,
        source: str,
        project_id: str,
        tags: Sequence[str],
        metadata: dict,
        embedding: Optional[Sequence[float]],
    ) -> MemoryRecord:
        with self._session_scope() as db:
            row = Memory(
                user_id=owner_id,
                text=text,
                source=source,
                project_id=project_id,
                tags=list(tags),
                metadata_=metadata,
                embedding=list(embedding) if embedding is not None else None,
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            return MemoryRecord.from_row(row)

    def update_memory(self, owner_id: str, memory_id: str, updates: dict) -> MemoryRecord:
        unknown = set(updates) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unsupported memory fields: {sorted(unknown)}")
        with self._session_scope() as db:
            row = self._get_row(db, owner_id, memory_id)
            for field, value in updates.items():
                if field == "metadata":
                    row.metadata_ = value
                elif field == "tags":
                    row.tags = list(value)
                elif field == "embedding":
                    row.embedding = list(value)
                else:
                    setattr(row, field, value)
            row.updated_at = datetime.now(timezone.utc)
            db.commit()
            db.refresh(row)
            return MemoryRecord.from_row(row)

    def delete_memory(self, owner_id: str, memory_id: str) -> None:
        with self._session_scope() as db:
            row = self._get_row(db, owner_id, memory_id)
            db.delete(row)
            db.commit()
