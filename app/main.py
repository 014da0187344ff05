"""
FastAPI app wiring for RecallBricks.
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

import core.config as config
from core.db import dispose_db, init_db
from core.services import embeddings
from app.errors import register_exception_handlers
from app.middleware import configure_middleware
from app.routes.context import router as context_router
from app.routes.health import router as health_router
from app.routes.memories import router as memories_router
from app.routes.root import router as root_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize on startup, cleanup on shutdown."""
    init_db()
    embeddings.init_http_client()
    try:
        yield
    finally:
        await embeddings.cleanup_http_client()
        dispose_db()
        config.logger.info("Shutdown complete")


app = FastAPI(title="RecallBricks", redirect_slashes=False, lifespan=lifespan)
configure_middleware(app)
register_exception_handlers(app)

# Health and root endpoints
app.include_router(health_router)
app.include_router(root_router)

# Memory and context API
app.include_router(context_router)
app.include_router(memories_router)


def run() -> None:
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "8080")),
    )


if __name__ == "__main__":
    run()
