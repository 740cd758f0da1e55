# ============================================================
# Tests : tests/test_pinecone_index.py
# Objet  : Client HTTP Pinecone (httpx.MockTransport, sans réseau).
# ============================================================

from __future__ import annotations

import json

import httpx
import pytest

from backend.domain.retrieval_types import VectorRecord
from backend.infra.vecstores.base import VectorIndexError
from backend.infra.vecstores.pinecone_index import PineconeIndex


def _index(handler, **kw) -> PineconeIndex:
    return PineconeIndex(
        host="idx-test.svc.pinecone.io",
        api_key="pk-test",
        transport=httpx.MockTransport(handler),
        sleep=lambda _s: None,
        **kw,
    )


def test_query_request_and_response_mapping():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "matches": [
                    {"id": "v2", "score": 0.8, "metadata": {"text": "b"}},
                    {"id": "v1", "score": 0.5},
                ]
            },
        )

    idx = _index(handler)
    matches = idx.query("chatbot-7", [0.1, 0.2], top_k=2, filter={"sourceId": "d1"})

    assert [m.id for m in matches] == ["v2", "v1"]
    assert matches[0].metadata == {"text": "b"}
    assert matches[1].metadata == {}
    req = seen[0]
    assert str(req.url) == "https://idx-test.svc.pinecone.io/query"
    assert req.headers["Api-Key"] == "pk-test"
    body = json.loads(req.content)
    assert body == {
        "vector": [0.1, 0.2],
        "topK": 2,
        "includeMetadata": True,
        "namespace": "chatbot-7",
        "filter": {"sourceId": "d1"},
    }


def test_namespace_omitted_when_flag_off(monkeypatch):
    monkeypatch.setenv("FF_PINECONE_USE_NAMESPACES", "off")
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"matches": []})

    assert _index(handler).query("chatbot-7", [1.0], top_k=1) == []
    assert "namespace" not in bodies[0]


def test_retries_on_5xx_then_succeeds():
    statuses = iter([503, 502, 200])
    calls = []

    def handler(request):
        calls.append(1)
        code = next(statuses)
        return httpx.Response(code, json={"matches": []} if code == 200 else {})

    assert _index(handler).query("ns", [1.0], top_k=1) == []
    assert len(calls) == 3


def test_gives_up_after_max_attempts():
    calls = []

    def handler(request):
        calls.append(1)
        return httpx.Response(500)

    with pytest.raises(VectorIndexError) as info:
        _index(handler, max_attempts=2).query("ns", [1.0], top_k=1)
    assert info.value.status_code == 500
    assert len(calls) == 2


def test_client_errors_are_not_retried():
    calls = []

    def handler(request):
        calls.append(1)
        return httpx.Response(400, json={"message": "bad vector"})

    with pytest.raises(VectorIndexError) as info:
        _index(handler).query("ns", [1.0], top_k=1)
    assert info.value.status_code == 400
    assert len(calls) == 1


def test_network_errors_are_retried_then_raised():
    calls = []

    def handler(request):
        calls.append(1)
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(VectorIndexError):
        _index(handler).query("ns", [1.0], top_k=1)
    assert len(calls) == 3


def test_upsert_posts_vectors():
    bodies = []

    def handler(request):
        assert request.url.path == "/vectors/upsert"
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"upsertedCount": 1})

    n = _index(handler).upsert(
        "chatbot-1", [VectorRecord(id="r1", values=[0.1], metadata={"text": "x"})]
    )
    assert n == 1
    assert bodies[0] == {
        "vectors": [{"id": "r1", "values": [0.1], "metadata": {"text": "x"}}],
        "namespace": "chatbot-1",
    }


def test_upsert_requires_records():
    with pytest.raises(ValueError):
        _index(lambda r: httpx.Response(200)).upsert("ns", [])


def test_host_is_required():
    with pytest.raises(ValueError):
        PineconeIndex(host="", api_key="k")
