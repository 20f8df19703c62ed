from __future__ import annotations

import asyncio
from types import SimpleNamespace

from proposal_api.services import embeddings as embeddings_module
from proposal_api.services.embeddings import MAX_EMBEDDING_CHARS, EmbeddingService


class _FakeEmbeddings:
    def __init__(self, fail_on: set[str] | None = None) -> None:
        self.fail_on = fail_on or set()
        self.inputs: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def create(self, *, model: str, input: str):
        self.inputs.append(input)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if input in self.fail_on:
                raise RuntimeError("embedding backend unavailable")
            return SimpleNamespace(data=[SimpleNamespace(embedding=[float(len(input)), 0.5])])
        finally:
            self.in_flight -= 1


async def _no_sleep(_delay: float) -> None:
    return None


def test_embed_returns_vector_and_truncates_input() -> None:
    fake = _FakeEmbeddings()
    service = EmbeddingService(SimpleNamespace(embeddings=fake), sleep=_no_sleep)

    vector = asyncio.run(service.embed("x" * 9000))

    assert vector == [float(MAX_EMBEDDING_CHARS), 0.5]
    assert len(fake.inputs[0]) == MAX_EMBEDDING_CHARS


def test_embed_failure_yields_empty_vector(monkeypatch) -> None:
    failures = {"count": 0}
    monkeypatch.setattr(
        embeddings_module, "record_embedding_failure", lambda: failures.__setitem__("count", failures["count"] + 1)
    )
    service = EmbeddingService(SimpleNamespace(embeddings=_FakeEmbeddings(fail_on={"roto"})), sleep=_no_sleep)

    assert asyncio.run(service.embed("roto")) == []
    assert failures["count"] == 1


def test_without_client_embeddings_are_empty() -> None:
    service = EmbeddingService(None)

    assert asyncio.run(service.embed("texto")) == []
    assert asyncio.run(service.embed_many(["a", "b"])) == [[], []]


def test_embed_many_preserves_order_and_bounds_concurrency() -> None:
    fake = _FakeEmbeddings(fail_on={"bb"})
    service = EmbeddingService(SimpleNamespace(embeddings=fake), sleep=_no_sleep)
    texts = ["a", "bb", "ccc", "dddd", "eeeee", "ffffff"]

    vectors = asyncio.run(service.embed_many(texts, concurrency=2))

    assert vectors[0] == [1.0, 0.5]
    assert vectors[1] == []
    assert vectors[5] == [6.0, 0.5]
    assert fake.max_in_flight <= 2
