import asyncio
import json

import httpx
import pytest

import core.config as config
from core.errors import EmbeddingProviderError, ValidationIssue
from core.services import embeddings
from core.services.embeddings import (
    DisabledEmbeddingProvider,
    EmbeddingCircuitBreaker,
    OpenAIEmbeddingProvider,
    extract_key_info,
)

BASE_URL = "https://api.example.test/v1"


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    async def _no_sleep(attempt):
        return None

    monkeypatch.setattr(embeddings, "_async_sleep_backoff", _no_sleep)


def _breaker():
    return EmbeddingCircuitBreaker(failure_threshold=2, cooldown_seconds=60)


def _embed(handler, text="hello", *, dimension=3, retry_max=2, breaker=None):
    async def _run():
        transport = httpx.MockTransport(handler)
        async with httpx.AsyncClient(base_url=BASE_URL, transport=transport) as client:
            provider = OpenAIEmbeddingProvider(
                client,
                model="text-embedding-3-small",
                dimension=dimension,
                retry_max=retry_max,
                breaker=breaker or _breaker(),
            )
            return await provider.embed(text)

    return asyncio.run(_run())


def _embedding_response(vector):
    return httpx.Response(200, json={"data": [{"embedding": vector}]})


def test_embed_posts_model_and_input():
    seen = []

    def handler(request):
        seen.append((request.url.path, json.loads(request.content)))
        return _embedding_response([0.1, 0.2, 0.3])

    assert _embed(handler) == [0.1, 0.2, 0.3]
    assert seen == [("/v1/embeddings", {"model": "text-embedding-3-small", "input": "hello"})]


def test_transient_errors_are_retried():
    responses = [httpx.Response(503), httpx.Response(429), _embedding_response([1, 0, 0])]

    assert _embed(lambda request: responses.pop(0)) == [1.0, 0.0, 0.0]
    assert responses == []


def test_retries_exhausted_raise_provider_error():
    breaker = _breaker()

    with pytest.raises(EmbeddingProviderError, match="status 503"):
        _embed(lambda request: httpx.Response(503), retry_max=1, breaker=breaker)
    assert breaker.status()["consecutive_failures"] == 1


def test_client_errors_are_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(400, json={"error": "bad input"})

    with pytest.raises(EmbeddingProviderError, match="status 400"):
        _embed(handler)
    assert len(calls) == 1


def test_dimension_mismatch_is_rejected():
    with pytest.raises(EmbeddingProviderError, match="expected 3 dimensions, got 2"):
        _embed(lambda request: _embedding_response([0.1, 0.2]))


def test_malformed_payload_is_rejected():
    with pytest.raises(EmbeddingProviderError, match="malformed response"):
        _embed(lambda request: httpx.Response(200, json={"data": []}))


def test_breaker_opens_after_repeated_failures():
    breaker = _breaker()
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(400)

    for _ in range(2):
        with pytest.raises(EmbeddingProviderError):
            _embed(handler, breaker=breaker)

    with pytest.raises(EmbeddingProviderError, match="circuit breaker open"):
        _embed(handler, breaker=breaker)
    assert len(calls) == 2
    assert breaker.status()["open"] is True


def test_breaker_closes_after_cooldown():
    now = [100.0]
    breaker = EmbeddingCircuitBreaker(failure_threshold=1, cooldown_seconds=30, clock=lambda: now[0])

    breaker.record_failure("status 503")
    assert breaker.is_open()
    assert breaker.status()["cooldown_remaining_seconds"] == 30.0
    assert breaker.status()["last_error"] == "status 503"

    now[0] += 31
    assert not breaker.is_open()
    breaker.record_success()
    assert breaker.status()["consecutive_failures"] == 0


def test_breaker_logs_when_it_opens(caplog):
    breaker = _breaker()

    with caplog.at_level("WARNING", logger="recallbricks"):
        breaker.record_failure("status 500")
        assert not caplog.records
        breaker.record_failure("status 500")

    assert [record.getMessage() for record in caplog.records] == ["embedding_breaker_opened"]
    assert caplog.records[0].consecutive_failures == 2


def test_each_provider_owns_its_breaker(monkeypatch):
    monkeypatch.setattr(config, "EMBEDDING_FAILURE_THRESHOLD", 3)
    first = OpenAIEmbeddingProvider()
    second = OpenAIEmbeddingProvider()

    first.breaker.record_failure("status 503")

    assert first.breaker is not second.breaker
    assert first.breaker.failure_threshold == 3
    assert second.status()["circuit_breaker"]["consecutive_failures"] == 0


def test_blank_text_is_a_validation_error():
    with pytest.raises(ValidationIssue):
        _embed(lambda request: _embedding_response([1, 0, 0]), text="  ")


def test_disabled_provider_always_fails():
    with pytest.raises(EmbeddingProviderError, match="disabled"):
        asyncio.run(DisabledEmbeddingProvider().embed("hello"))


def _extract(handler, text):
    async def _run():
        async with httpx.AsyncClient(
            base_url=BASE_URL, transport=httpx.MockTransport(handler)
        ) as client:
            return await extract_key_info(text, client=client)

    return asyncio.run(_run())


@pytest.fixture
def extraction_enabled(monkeypatch):
    monkeypatch.setattr(config, "KEY_INFO_EXTRACTION_ENABLED", True)
    monkeypatch.setattr(config, "OPENAI_API_KEY", "sk-test")


def test_key_info_extraction_condenses_text(extraction_enabled):
    def handler(request):
        body = json.loads(request.content)
        assert request.url.path == "/v1/chat/completions"
        assert body["messages"][1] == {"role": "user", "content": "So basically we chose Redis."}
        return httpx.Response(200, json={"choices": [{"message": {"content": " Chose Redis. "}}]})

    assert _extract(handler, "So basically we chose Redis.") == "Chose Redis."


def test_key_info_extraction_falls_back_on_failure(extraction_enabled):
    assert _extract(lambda request: httpx.Response(500), "keep me") == "keep me"
    assert _extract(lambda request: httpx.Response(200, json={}), "keep me") == "keep me"


def test_key_info_extraction_disabled_skips_the_call(monkeypatch):
    monkeypatch.setattr(config, "KEY_INFO_EXTRACTION_ENABLED", False)

    def handler(request):
        raise AssertionError("extraction must not call the provider")

    assert _extract(handler, "keep me") == "keep me"
