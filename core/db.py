"""
Engine and session factory for the memory store.
"""

from __future__ import annotations

from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker

import core.config as config


class DB:
    """Process-wide engine and session factory, set by init_db()."""

    engine = None
    SessionLocal = None


def _engine_options() -> dict:
    options = {"pool_pre_ping": True}
    if config.DB_BACKEND_EFFECTIVE == "sqlite":
        options["connect_args"] = {"check_same_thread": False}
    return options


def _ensure_pgvector(engine) -> None:
    if not config.AUTO_CREATE_EXTENSIONS:
        config.logger.info("pgvector extension creation disabled")
        return
    with engine.begin() as conn:
        conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))


def init_db() -> None:
    """Validate configuration, connect, and create the memories and api_keys tables."""
    config.validate_and_prepare_config()
    # Imported late: column types depend on the validated backend.
    from core.models import Base

    engine = create_engine(config.DATABASE_URL, **_engine_options())
    if config.DB_BACKEND_EFFECTIVE == "postgres" and config.VECTOR_BACKEND_EFFECTIVE == "pgvector":
        _ensure_pgvector(engine)
    Base.metadata.create_all(engine)

    DB.engine = engine
    DB.SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)
    config.logger.info(
        "Database initialized",
        extra={"backend": config.DB_BACKEND_EFFECTIVE, "vector_backend": config.VECTOR_BACKEND_EFFECTIVE},
    )


def dispose_db() -> None:
    if DB.engine is not None:
        DB.engine.dispose()
    DB.engine = None
    DB.SessionLocal = None
