"""
Memory CRUD and vector search endpoints.
"""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from core.context import RequestContext
from core.services import context_service, memory_service
from app.deps import get_embedding_provider, get_memory_store, get_request_context


router = APIRouter(prefix="/api/v1/memories", tags=["memories"])


class CreateMemoryBody(BaseModel):
    text: Optional[str] = None
    source: Optional[str] = None
    project_id: Optional[str] = None
    tags: Optional[List[str]] = None
    metadata: Optional[dict] = None


class UpdateMemoryBody(BaseModel):
    text: Optional[str] = None
    tags: Optional[List[str]] = None
    metadata: Optional[dict] = None
    project_id: Optional[str] = None


class VectorSearchBody(BaseModel):
    query: Optional[str] = None
    limit: Optional[int] = None


@router.post("", status_code=201)
async def create_memory(
    body: CreateMemoryBody,
    context: RequestContext = Depends(get_request_context),
    store=Depends(get_memory_store),
    embedder=Depends(get_embedding_provider),
):
    return await memory_service.create_memory(
        context.owner_id,
        store,
        embedder,
        text=body.text,
        source=body.source,
        project_id=body.project_id,
        tags=body.tags,
        metadata=body.metadata,
    )


@router.get("")
async def list_memories(
    limit: Optional[int] = None,
    source: Optional[str] = None,
    project_id: Optional[str] = None,
    context: RequestContext = Depends(get_request_context),
    store=Depends(get_memory_store),
):
    return await memory_service.list_memories(
        context.owner_id,
        store,
        limit=limit,
        source=source,
        project_id=project_id,
    )


@router.get("/search")
async def vector_search_get(
    q: Optional[str] = None,
    limit: Optional[int] = None,
    context: RequestContext = Depends(get_request_context),
    store=Depends(get_memory_store),
    embedder=Depends(get_embedding_provider),
):
    """Semantic search using vector similarity."""
    return await context_service.vector_search(context.owner_id, q, store, embedder, limit=limit)


@router.post("/search")
async def vector_search_post(
    body: VectorSearchBody,
    context: RequestContext = Depends(get_request_context),
    store=Depends(get_memory_store),
    embedder=Depends(get_embedding_provider),
):
    return await context_service.vector_search(
        context.owner_id, body.query, store, embedder, limit=body.limit
    )


@router.get("/context")
async def vector_context(
    q: Optional[str] = None,
    limit: Optional[int] = None,
    context: RequestContext = Depends(get_request_context),
    store=Depends(get_memory_store),
    embedder=Depends(get_embedding_provider),
):
    """Text-only semantic matches for direct use as model context."""
    return await context_service.vector_context(context.owner_id, q, store, embedder, limit=limit)


@router.get("/context/all")
async def all_context(
    limit: Optional[int] = None,
    offset: int = 0,
    context: RequestContext = Depends(get_request_context),
    store=Depends(get_memory_store),
):
    return await context_service.all_context(context.owner_id, store, limit=limit, offset=offset)


@router.get("/{memory_id}")
async def get_memory(
    memory_id: str,
    context: RequestContext = Depends(get_request_context),
    store=Depends(get_memory_store),
):
    return await memory_service.get_memory(context.owner_id, memory_id, store)


@router.put("/{memory_id}")
async def update_memory(
    memory_id: str,
    body: UpdateMemoryBody,
    context: RequestContext = Depends(get_request_context),
    store=Depends(get_memory_store),
    embedder=Depends(get_embedding_provider),
):
    return await memory_service.update_memory(
        context.owner_id,
        memory_id,
        store,
        embedder,
        text=body.text,
        tags=body.tags,
        metadata=body.metadata,
        project_id=body.project_id,
    )


@router.delete("/{memory_id}")
async def delete_memory(
    memory_id: str,
    context: RequestContext = Depends(get_request_context),
    store=Depends(get_memory_store),
):
    return await memory_service.delete_memory(context.owner_id, memory_id, store)
