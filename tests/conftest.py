import os

os.environ.setdefault("DB_BACKEND", "sqlite")
os.environ.setdefault("VECTOR_BACKEND", "none")
os.environ.setdefault("EMBEDDING_PROVIDER", "none")
os.environ.setdefault("KEY_INFO_EXTRACTION_ENABLED", "false")
os.environ.setdefault("REQUIRE_AUTH", "false")

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from core.db import DB
from core.errors import EmbeddingProviderError
from core.models import Base, Memory
from core.services.embeddings import EmbeddingProvider
from core.services.memory_store import MemoryStore

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
OWNER = "owner-1"


class FakeEmbedder(EmbeddingProvider):
    dimension = 3

    def __init__(self, vectors=None, default=(1.0, 0.0, 0.0)):
        self.vectors = dict(vectors or {})
        self.default = list(default)
        self.calls = []
        self.fail = False

    async def embed(self, text):
        self.calls.append(text)
        if self.fail:
            raise EmbeddingProviderError("embedding provider unavailable: status 503")
        return list(self.vectors.get(text, self.default))

    def status(self):
        return {"provider": "fake"}


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'recallbricks.sqlite'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, expire_on_commit=False)
    try:
        yield factory
    finally:
        engine.dispose()


@pytest.fixture
def store(session_factory):
    return MemoryStore(session_factory)


@pytest.fixture
def server_db(session_factory):
    previous_engine = DB.engine
    previous_session = DB.SessionLocal
    DB.SessionLocal = session_factory
    DB.engine = session_factory.kw["bind"]
    try:
        yield session_factory
    finally:
        DB.engine = previous_engine
        DB.SessionLocal = previous_session


@pytest.fixture
def add_memory(session_factory):
    def _add(
        text,
        *,
        owner=OWNER,
        source="api",
        project_id="default",
        tags=None,
        age_days=0.0,
        embedding=None,
        metadata=None,
    ):
        created = NOW - timedelta(days=age_days)
        db = session_factory()
        try:
            row = Memory(
                user_id=owner,
                text=text,
                source=source,
                project_id=project_id,
                tags=tags or [],
                metadata_=metadata or {},
                embedding=embedding,
                created_at=created,
                updated_at=created,
            )
            db.add(row)
            db.commit()
            return row.id
        finally:
            db.close()

    return _add


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()
