import asyncio

import pytest

from conftest import NOW, OWNER, FakeEmbedder
from core.config import RetrievalSettings
from core.errors import EmbeddingProviderError, ValidationIssue
from core.services import context_service
from core.types import RetrievalRequest


def _recall(store, settings=None, **kwargs):
    request = RetrievalRequest(**kwargs)
    if settings is None:
        return asyncio.run(context_service.recall_context(OWNER, request, store, now=NOW))
    return asyncio.run(
        context_service.recall_context(OWNER, request, store, settings=settings, now=NOW)
    )


def test_recall_returns_enriched_shape(store, add_memory):
    add_memory("Decided to use PostgreSQL for the billing service", source="chatgpt", age_days=1)
    add_memory("Prefers dark mode in every editor", source="cursor", age_days=2)

    response = _recall(store, query="I prefer dark mode and decided to use PostgreSQL", llm="claude")

    assert response["query"] == "I prefer dark mode and decided to use PostgreSQL"
    assert response["keywords_extracted"] == ["prefer", "dark", "mode", "decided", "use", "postgresql"]
    assert response["count"] == 2
    assert response["crossLLM"] is True
    assert response["llm"] == "claude"
    assert response["intelligence"] == {
        "keyword_extraction": True,
        "relevance_scoring": True,
        "conversation_context": False,
    }
    first, second = response["memories"]
    assert first["text"].startswith("Decided")
    assert first["relevance_score"] == pytest.approx(30 + 4.9)
    assert second["relevance_score"] == pytest.approx(30 + 4.8)
    assert "embedding" not in first


def test_recall_scores_are_sorted_descending(store, add_memory):
    add_memory("kafka", age_days=0)
    add_memory("kafka streams with flink", age_days=30)
    add_memory("flink jobs", age_days=10)

    response = _recall(store, query="kafka flink pipelines")

    scores = [memory["relevance_score"] for memory in response["memories"]]
    assert scores == sorted(scores, reverse=True)
    assert response["memories"][0]["text"] == "kafka streams with flink"


def test_unknown_llm_and_single_source(store, add_memory):
    add_memory("terraform modules", source="claude")
    add_memory("terraform state", source="claude")

    response = _recall(store, query="terraform")

    assert response["llm"] == "unknown"
    assert response["crossLLM"] is False


def test_caller_source_present_disables_cross_llm(store, add_memory):
    add_memory("terraform modules", source="claude")
    add_memory("terraform state", source="chatgpt")

    assert _recall(store, query="terraform", llm="claude")["crossLLM"] is False
    assert _recall(store, query="terraform", llm="cursor")["crossLLM"] is True


def test_history_keywords_widen_the_match(store, add_memory):
    add_memory("grafana dashboards for the api", age_days=1)

    without = _recall(store, query="show alerts")
    with_history = _recall(
        store,
        query="show alerts",
        conversation_history=["we talked about grafana"],
    )

    assert without["count"] == 0
    assert with_history["count"] == 1
    assert "grafana" in with_history["keywords_extracted"]
    assert with_history["intelligence"]["conversation_context"] is True


def test_fully_filtered_query_returns_empty_result(store, add_memory):
    add_memory("anything at all")

    response = _recall(store, query="is it on?")

    assert response["keywords_extracted"] == []
    assert response["memories"] == []
    assert response["count"] == 0


def test_candidate_pool_surfaces_older_relevant_memory(store, add_memory):
    add_memory("postgresql replication lag postgresql failover runbook", age_days=40)
    for index in range(4):
        add_memory(f"postgresql note {index}", age_days=index * 0.1)

    corrected = RetrievalSettings(candidate_multiplier=5)
    faithful = RetrievalSettings(candidate_multiplier=1)

    corrected_top = _recall(store, corrected, query="postgresql failover runbook", limit=2)
    faithful_top = _recall(store, faithful, query="postgresql failover runbook", limit=2)

    assert corrected_top["memories"][0]["text"].endswith("failover runbook")
    assert all("runbook" not in memory["text"] for memory in faithful_top["memories"])
    assert corrected_top["count"] == faithful_top["count"] == 2


def test_project_filter_limits_candidates(store, add_memory):
    add_memory("redis cache alpha", project_id="alpha")
    add_memory("redis cache beta", project_id="beta")

    response = _recall(store, query="redis cache", project_id="beta")

    assert [memory["text"] for memory in response["memories"]] == ["redis cache beta"]


def test_recall_is_idempotent(store, add_memory):
    for index in range(6):
        add_memory(f"deploy pipeline step {index}", age_days=index % 3)

    first = _recall(store, query="deploy pipeline", limit=4)
    second = _recall(store, query="deploy pipeline", limit=4)

    assert first == second


class ExplodingStore:
    def __getattr__(self, name):
        raise AssertionError(f"store.{name} must not be called")


@pytest.mark.parametrize(
    "kwargs",
    [
        {"query": None},
        {"query": "   "},
        {"query": "redis", "limit": 0},
        {"query": "redis", "limit": 10_000},
        {"query": "redis", "conversation_history": "not a list"},
    ],
)
def test_validation_fails_before_any_store_call(kwargs):
    with pytest.raises(ValidationIssue):
        _recall(ExplodingStore(), **kwargs)


def test_search_context_is_filter_only(store, add_memory):
    add_memory("dark mode", source="cursor", tags=["ui"], age_days=2)
    add_memory("dark theme", source="cursor", tags=["ui"], age_days=1)
    add_memory("dark mode", source="claude", tags=["ui"])

    response = asyncio.run(
        context_service.search_context(OWNER, store, tags=["ui"], source="cursor")
    )

    assert response["count"] == 2
    assert [memory["text"] for memory in response["memories"]] == ["dark theme", "dark mode"]
    assert all("relevance_score" not in memory for memory in response["memories"])


@pytest.mark.parametrize(
    "query, expected",
    [
        ('"dark mode"', ["I like dark mode a lot"]),
        ("dark or light", ["light theme mode", "I like dark mode a lot"]),
        ("mode -light", ["I like dark mode a lot"]),
    ],
)
def test_search_context_understands_web_search_syntax(store, add_memory, query, expected):
    add_memory("I like dark mode a lot", age_days=2)
    add_memory("light theme mode", age_days=1)

    response = asyncio.run(context_service.search_context(OWNER, store, query=query))

    assert [memory["text"] for memory in response["memories"]] == expected


def test_search_context_rejects_unknown_source(store):
    with pytest.raises(ValidationIssue):
        asyncio.run(context_service.search_context(OWNER, store, source="bard"))


def test_vector_context_is_text_only(store, add_memory):
    add_memory("close match", embedding=[1.0, 0.0, 0.0], tags=["secret-tag"], source="claude")
    add_memory("far away", embedding=[0.0, 0.0, 1.0])

    response = asyncio.run(
        context_service.vector_context(OWNER, "find it", store, FakeEmbedder())
    )

    assert response == {"context": ["close match"], "count": 1}


def test_vector_search_returns_records_with_similarity(store, add_memory):
    add_memory("close match", embedding=[1.0, 0.0, 0.0])

    response = asyncio.run(
        context_service.vector_search(OWNER, "find it", store, FakeEmbedder(), limit=3)
    )

    assert response["query"] == "find it"
    assert response["count"] == 1
    assert response["memories"][0]["similarity"] == pytest.approx(1.0)


def test_vector_search_rejects_whole_request_when_embedding_fails(store, add_memory):
    add_memory("close match", embedding=[1.0, 0.0, 0.0])
    embedder = FakeEmbedder()
    embedder.fail = True

    with pytest.raises(EmbeddingProviderError):
        asyncio.run(context_service.vector_search(OWNER, "find it", store, embedder))


def test_all_context_pages_unranked_text(store, add_memory):
    for index in range(3):
        add_memory(f"note {index}", age_days=index, tags=["t"], source="cursor")

    response = asyncio.run(context_service.all_context(OWNER, store, limit=2, offset=1))

    assert response == {"context": ["note 1", "note 2"], "count": 2, "limit": 2, "offset": 1}


def test_all_context_rejects_negative_offset(store):
    with pytest.raises(ValidationIssue):
        asyncio.run(context_service.all_context(OWNER, store, offset=-1))
