"""
Context retrieval endpoints (keyword-scored recall and filter search).
"""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from core.context import RequestContext
from core.services import context_service
from core.types import RetrievalRequest
from app.deps import get_memory_store, get_request_context


router = APIRouter(prefix="/api/v1/context", tags=["context"])


class ContextBody(BaseModel):
    query: Optional[str] = None
    llm: Optional[str] = None
    limit: Optional[int] = None
    project_id: Optional[str] = None
    conversation_history: Optional[List[str]] = None


class ContextSearchBody(BaseModel):
    query: Optional[str] = None
    tags: Optional[List[str]] = None
    source: Optional[str] = None
    project_id: Optional[str] = None
    limit: Optional[int] = None


@router.post("")
async def recall_context(
    body: ContextBody,
    context: RequestContext = Depends(get_request_context),
    store=Depends(get_memory_store),
):
    """Intelligent context retrieval: extract keywords, then score and rank matches."""
    request = RetrievalRequest(
        query=body.query,
        llm=body.llm,
        limit=body.limit,
        project_id=body.project_id,
        conversation_history=body.conversation_history,
    )
    return await context_service.recall_context(context.owner_id, request, store)


@router.post("/search")
async def search_context(
    body: ContextSearchBody,
    context: RequestContext = Depends(get_request_context),
    store=Depends(get_memory_store),
):
    return await context_service.search_context(
        context.owner_id,
        store,
        query=body.query,
        tags=body.tags,
        source=body.source,
        project_id=body.project_id,
        limit=body.limit,
    )
