import pytest
from fastapi.testclient import TestClient

import core.config as config
from app.deps import get_embedding_provider
from app.main import app
from conftest import FakeEmbedder

OWNER = config.DEFAULT_OWNER_ID


@pytest.fixture
def embedder():
    return FakeEmbedder(vectors={"Prefers spaces over tabs": [0.0, 1.0, 0.0]})


@pytest.fixture
def client(server_db, embedder):
    app.dependency_overrides[get_embedding_provider] = lambda: embedder
    try:
        yield TestClient(app, raise_server_exceptions=False)
    finally:
        app.dependency_overrides.clear()


def _create(client, **body):
    body.setdefault("text", "Prefers tabs over spaces")
    response = client.post("/api/v1/memories", json=body)
    assert response.status_code == 201, response.text
    return response.json()


def test_create_memory_defaults_and_metadata(client, embedder):
    created = _create(client, tags=["style"], metadata={"origin": "ide"})

    assert created["user_id"] == OWNER
    assert created["text"] == "Prefers tabs over spaces"
    assert created["source"] == "api"
    assert created["project_id"] == "default"
    assert created["tags"] == ["style"]
    assert created["metadata"] == {
        "origin": "ide",
        "original_text": "Prefers tabs over spaces",
        "extracted": False,
    }
    assert "embedding" not in created
    assert embedder.calls == ["Prefers tabs over spaces"]


def test_created_memory_is_found_by_vector_search(client):
    created = _create(client, source="cursor")

    response = client.get("/api/v1/memories/search", params={"q": "tabs"})

    assert response.status_code == 200
    payload = response.json()
    assert payload["query"] == "tabs"
    assert [memory["id"] for memory in payload["memories"]] == [created["id"]]
    assert payload["memories"][0]["similarity"] == pytest.approx(1.0)


def test_create_requires_text(client, embedder):
    response = client.post("/api/v1/memories", json={"source": "claude"})

    assert response.status_code == 400
    assert response.json()["field"] == "text"
    assert embedder.calls == []


def test_create_rejects_unknown_source(client):
    response = client.post("/api/v1/memories", json={"text": "note", "source": "bard"})

    assert response.status_code == 400
    assert response.json()["field"] == "source"


def test_create_fails_when_embedding_fails(client, embedder):
    embedder.fail = True

    response = client.post("/api/v1/memories", json={"text": "note"})

    assert response.status_code == 500
    assert response.json()["error"] == "upstream_failure"
    assert client.get("/api/v1/memories").json()["count"] == 0


def test_list_filters_by_source_newest_first(client, add_memory):
    add_memory("older cursor note", owner=OWNER, source="cursor", age_days=2)
    add_memory("newer cursor note", owner=OWNER, source="cursor", age_days=1)
    add_memory("claude note", owner=OWNER, source="claude")

    response = client.get("/api/v1/memories", params={"source": "cursor"})

    assert response.status_code == 200
    assert [memory["text"] for memory in response.json()["memories"]] == [
        "newer cursor note",
        "older cursor note",
    ]


def test_get_update_and_delete(client, embedder):
    created = _create(client)
    memory_id = created["id"]

    fetched = client.get(f"/api/v1/memories/{memory_id}")
    assert fetched.status_code == 200
    assert fetched.json()["text"] == "Prefers tabs over spaces"

    updated = client.put(
        f"/api/v1/memories/{memory_id}",
        json={"text": "Prefers spaces over tabs", "tags": ["fmt"]},
    )
    assert updated.status_code == 200
    assert updated.json()["text"] == "Prefers spaces over tabs"
    assert updated.json()["tags"] == ["fmt"]
    assert embedder.calls[-1] == "Prefers spaces over tabs"

    deleted = client.delete(f"/api/v1/memories/{memory_id}")
    assert deleted.status_code == 200
    assert deleted.json() == {"message": "Memory deleted successfully.", "id": memory_id}

    missing = client.get(f"/api/v1/memories/{memory_id}")
    assert missing.status_code == 404
    assert missing.json() == {
        "error": "not_found",
        "message": f"Memory not found: {memory_id}",
    }


def test_update_without_fields_is_rejected(client):
    created = _create(client)

    response = client.put(f"/api/v1/memories/{created['id']}", json={})

    assert response.status_code == 400
    assert response.json()["field"] == "body"


def test_update_missing_memory_does_not_embed(client, embedder):
    response = client.put("/api/v1/memories/does-not-exist", json={"text": "new text"})

    assert response.status_code == 404
    assert embedder.calls == []


def test_delete_missing_memory_is_not_found(client):
    response = client.delete("/api/v1/memories/does-not-exist")

    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


def test_memories_of_other_owners_are_invisible(client, add_memory):
    memory_id = add_memory("someone else's note", owner="someone-else")

    assert client.get(f"/api/v1/memories/{memory_id}").status_code == 404
    assert client.get("/api/v1/memories").json()["count"] == 0
