"""
RecallBricks Database Models
PostgreSQL + pgvector schema (SQLite for local runs)
"""

from datetime import datetime, timezone
import uuid
from sqlalchemy import (
    Column, String, Text, Boolean, DateTime, Index, JSON
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base

import core.config as config

DB_BACKEND_EFFECTIVE = config.DB_BACKEND_EFFECTIVE
VECTOR_BACKEND_EFFECTIVE = config.VECTOR_BACKEND_EFFECTIVE

try:
    from pgvector.sqlalchemy import Vector as PgVector
    PGVECTOR_AVAILABLE = True
except ImportError:
    PgVector = None
    PGVECTOR_AVAILABLE = False

if (
    DB_BACKEND_EFFECTIVE == "postgres"
    and VECTOR_BACKEND_EFFECTIVE == "pgvector"
    and PGVECTOR_AVAILABLE
):
    EMBEDDING_COLUMN_TYPE = PgVector(config.EMBEDDING_DIM)
else:
    EMBEDDING_COLUMN_TYPE = JSON

JSON_TYPE = JSONB if DB_BACKEND_EFFECTIVE == "postgres" else JSON


def _uuid_default() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


Base = declarative_base()


# =============================================================================
# Memories
# =============================================================================

class Memory(Base):
    __tablename__ = "memories"

    id = Column(String(36), primary_key=True, default=_uuid_default)
    user_id = Column(String(100), nullable=False)
    text = Column(Text, nullable=False)
    source = Column(String(50), nullable=False, default=config.DEFAULT_SOURCE)  # claude, chatgpt, cursor, manual, api
    project_id = Column(String(255), nullable=False, default=config.DEFAULT_PROJECT_ID)
    tags = Column(JSON_TYPE, default=list, nullable=False)
    metadata_ = Column("metadata", JSON_TYPE, default=dict)
    embedding = Column(EMBEDDING_COLUMN_TYPE)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    __table_args__ = (
        Index("ix_memories_user_created", "user_id", "created_at"),
        Index("ix_memories_user_project", "user_id", "project_id"),
    )


# =============================================================================
# API keys
# =============================================================================

class ApiKey(Base):
    __tablename__ = "api_keys"

    id = Column(String(36), primary_key=True, default=_uuid_default)
    user_id = Column(String(100), nullable=False)
    key_hash = Column(String(64), nullable=False, unique=True)
    key_prefix = Column(String(16))
    name = Column(String(255))
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    last_used_at = Column(DateTime(timezone=True))
