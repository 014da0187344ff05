"""
Memory ingestion and CRUD services.
"""

from __future__ import annotations

import asyncio
from typing import List, Optional

import core.config as config
from core.config import (
    DEFAULT_PROJECT_ID,
    DEFAULT_SOURCE,
    MAX_RESULT_LIMIT,
    MAX_SHORT_TEXT_LENGTH,
    MAX_TAG_ITEMS,
    MAX_TAG_LENGTH,
    MAX_TEXT_LENGTH,
)
from core.errors import ValidationIssue
from core.services.embeddings import EmbeddingProvider, extract_key_info
from core.services.formatting import format_records, serialize_memory
from core.types import MemoryFilters
from core.validators import (
    validate_limit,
    validate_metadata,
    validate_optional_text,
    validate_required_text,
    validate_source,
    validate_string_list,
)

logger = config.logger


async def create_memory(
    owner_id: str,
    store,
    embedder: EmbeddingProvider,
    *,
    text: str,
    source: Optional[str] = None,
    project_id: Optional[str] = None,
    tags: Optional[List[str]] = None,
    metadata: Optional[dict] = None,
) -> dict:
    """
    Store a new memory.

    The text is condensed to its key information when extraction is enabled
    (the original is kept in metadata), then embedded. An embedding failure
    rejects the whole request.
    """
    validate_required_text(text, "text", MAX_TEXT_LENGTH)
    validate_source(source)
    validate_optional_text(project_id, "project_id", MAX_SHORT_TEXT_LENGTH)
    validate_string_list(tags, "tags", MAX_TAG_ITEMS, MAX_TAG_LENGTH)
    validate_metadata(metadata, "metadata")

    stored_text = await extract_key_info(text)
    embedding = await embedder.embed(stored_text)
    memory_metadata = dict(metadata or {})
    memory_metadata["original_text"] = text
    memory_metadata["extracted"] = stored_text != text

    record = await asyncio.to_thread(
        store.create_memory,
        owner_id,
        text=stored_text,
        source=source or DEFAULT_SOURCE,
        project_id=project_id or DEFAULT_PROJECT_ID,
        tags=tags or [],
        metadata=memory_metadata,
        embedding=embedding,
    )
    logger.info("memory_created", extra={"owner_id": owner_id, "memory_id": record.id})
    return serialize_memory(record)


async def list_memories(
    owner_id: str,
    store,
    *,
    limit: Optional[int] = None,
    source: Optional[str] = None,
    project_id: Optional[str] = None,
) -> dict:
    if limit is not None:
        validate_limit(limit, "limit", MAX_RESULT_LIMIT)
    validate_source(source)
    validate_optional_text(project_id, "project_id", MAX_SHORT_TEXT_LENGTH)
    memories = await asyncio.to_thread(
        store.list_memories,
        owner_id,
        MemoryFilters(project_id=project_id, source=source),
        limit,
    )
    return format_records(memories)


async def get_memory(owner_id: str, memory_id: str, store) -> dict:
    validate_required_text(memory_id, "id", MAX_SHORT_TEXT_LENGTH)
    record = await asyncio.to_thread(store.get_memory, owner_id, memory_id)
    return serialize_memory(record)


async def update_memory(
    owner_id: str,
    memory_id: str,
    store,
    embedder: EmbeddingProvider,
    *,
    text: Optional[str] = None,
    tags: Optional[List[str]] = None,
    metadata: Optional[dict] = None,
    project_id: Optional[str] = None,
) -> dict:
    """Apply a partial update; new text gets a fresh embedding."""
    validate_required_text(memory_id, "id", MAX_SHORT_TEXT_LENGTH)
    updates: dict = {}
    if text is not None:
        validate_required_text(text, "text", MAX_TEXT_LENGTH)
        updates["text"] = text
    if tags is not None:
        validate_string_list(tags, "tags", MAX_TAG_ITEMS, MAX_TAG_LENGTH)
        updates["tags"] = tags
    if metadata is not None:
        validate_metadata(metadata, "metadata")
        updates["metadata"] = metadata
    if project_id is not None:
        validate_required_text(project_id, "project_id", MAX_SHORT_TEXT_LENGTH)
        updates["project_id"] = project_id
    if not updates:
        raise ValidationIssue(
            "at least one of text, tags, metadata or project_id is required",
            field="body",
            error_type="required",
        )

    # Ownership is checked before paying for an embedding.
    await asyncio.to_thread(store.get_memory, owner_id, memory_id)
    if "text" in updates:
        updates["embedding"] = await embedder.embed(text)
    record = await asyncio.to_thread(store.update_memory, owner_id, memory_id, updates)
    logger.info(
        "memory_updated",
        extra={"owner_id": owner_id, "memory_id": memory_id, "fields": sorted(updates)},
    )
    return serialize_memory(record)


async def delete_memory(owner_id: str, memory_id: str, store) -> dict:
    validate_required_text(memory_id, "id", MAX_SHORT_TEXT_LENGTH)
    await asyncio.to_thread(store.delete_memory, owner_id, memory_id)
    logger.info("memory_deleted", extra={"owner_id": owner_id, "memory_id": memory_id})
    return {"message": "Memory deleted successfully.", "id": memory_id}
