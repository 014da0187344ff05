"""
Retriever capability: lexical and vector candidate retrieval.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import List

import core.config as config
from core.services.embeddings import EmbeddingProvider
from core.services.query_builder import LexicalQuery, VectorQuery
from core.types import MemoryRecord

logger = config.logger


class Retriever(ABC):
    """Fetches an ordered candidate set from the memory store."""

    @abstractmethod
    async def retrieve(self, plan) -> List[MemoryRecord]:
        raise NotImplementedError


class LexicalRetriever(Retriever):
    """Full-text candidates in store recency order, already capped."""

    def __init__(self, store):
        self.store = store

    async def retrieve(self, plan: LexicalQuery) -> List[MemoryRecord]:
        if plan.search_expression == "" and not plan.websearch:
            # Every keyword was filtered out; nothing can match.
            return []
        return await asyncio.to_thread(
            self.store.lexical_query,
            plan.owner_id,
            plan.filters,
            plan.search_expression,
            plan.fetch_limit,
            websearch=plan.websearch,
        )


class VectorRetriever(Retriever):
    """Nearest neighbours to the query embedding, in store similarity order."""

    def __init__(self, store, embedder: EmbeddingProvider):
        self.store = store
        self.embedder = embedder

    async def retrieve(self, plan: VectorQuery) -> List[MemoryRecord]:
        embedding = await self.embedder.embed(plan.text)
        results = await asyncio.to_thread(
            self.store.vector_query,
            plan.owner_id,
            embedding,
            plan.threshold,
            plan.limit,
        )
        logger.debug(
            "vector_retrieval_complete",
            extra={"owner_id": plan.owner_id, "count": len(results)},
        )
        return results
