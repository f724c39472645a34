"""Tests for the Ollama embedding client."""

from __future__ import annotations

import json
from typing import Any, Callable

import httpx
import pytest

from duckbake.embeddings import OllamaEmbeddingClient
from duckbake.errors import (
    EmbeddingError,
    EmbeddingResponseError,
    EmbeddingServiceUnavailableError,
    EmbeddingTimeoutError,
)

BASE_URL = "http://ollama.test"


# ---------------------------------------------------------------------------
# Mock helpers
# ---------------------------------------------------------------------------


class _Recorder:
    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.handler = handler
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    def bodies(self) -> list[dict[str, Any]]:
        return [json.loads(r.content) for r in self.requests if r.content]


def _make_client(handler: Callable[[httpx.Request], httpx.Response], **kwargs: Any):
    recorder = _Recorder(handler)
    client = OllamaEmbeddingClient(
        base_url=BASE_URL,
        model=kwargs.pop("model", "nomic-embed-text"),
        timeout=kwargs.pop("timeout", 5.0),
        keep_alive="10m",
        client=httpx.Client(transport=httpx.MockTransport(recorder)),
    )
    return client, recorder


def _echo_embeddings(request: httpx.Request) -> httpx.Response:
    body = json.loads(request.content)
    vectors = [[float(i), 0.5] for i, _ in enumerate(body["input"])]
    return httpx.Response(200, json={"model": body["model"], "embeddings": vectors})


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


def test_embed_texts_posts_batch_and_returns_vectors_in_order() -> None:
    client, recorder = _make_client(_echo_embeddings)

    vectors = client.embed_texts(["alpha", "beta", "gamma"])

    assert vectors == [[0.0, 0.5], [1.0, 0.5], [2.0, 0.5]]
    request = recorder.requests[0]
    assert request.method == "POST"
    assert str(request.url) == f"{BASE_URL}/api/embed"
    assert recorder.bodies() == [
        {"model": "nomic-embed-text", "input": ["alpha", "beta", "gamma"], "keep_alive": "10m"}
    ]


def test_embed_texts_with_no_input_skips_request() -> None:
    client, recorder = _make_client(_echo_embeddings)

    assert client.embed_texts([]) == []
    assert recorder.requests == []


def test_warm_up_sends_placeholder_input() -> None:
    client, recorder = _make_client(_echo_embeddings)

    client.warm_up()

    assert recorder.bodies()[0]["input"] == ["warmup"]


def test_embed_query_returns_single_vector() -> None:
    client, _ = _make_client(_echo_embeddings)

    assert client.embed_query("where is my cat") == [0.0, 0.5]


def test_embed_query_rejects_wrong_vector_count() -> None:
    client, _ = _make_client(
        lambda request: httpx.Response(200, json={"embeddings": [[1.0], [2.0]]})
    )

    with pytest.raises(EmbeddingResponseError):
        client.embed_query("q")


# ---------------------------------------------------------------------------
# Failure mapping
# ---------------------------------------------------------------------------


def test_error_status_includes_body_and_model_hint() -> None:
    client, _ = _make_client(
        lambda request: httpx.Response(500, text="model 'nomic-embed-text' not found")
    )

    with pytest.raises(EmbeddingResponseError) as exc_info:
        client.embed_texts(["x"])

    error = exc_info.value
    assert error.status_code == 500
    assert "(500)" in str(error)
    assert "not found" in str(error)
    assert "ollama pull nomic-embed-text" in str(error)


def test_long_error_body_is_truncated() -> None:
    client, _ = _make_client(lambda request: httpx.Response(400, text="e" * 5000))

    with pytest.raises(EmbeddingResponseError) as exc_info:
        client.embed_texts(["x"])

    assert len(exc_info.value.body) == 500


def test_connection_refused_maps_to_service_unavailable() -> None:
    def _refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("Connection refused", request=request)

    client, _ = _make_client(_refuse)

    with pytest.raises(EmbeddingServiceUnavailableError) as exc_info:
        client.embed_texts(["x"])

    assert BASE_URL in str(exc_info.value)


def test_timeout_maps_to_retry_hint() -> None:
    def _slow(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    client, _ = _make_client(_slow, timeout=300.0)

    with pytest.raises(EmbeddingTimeoutError) as exc_info:
        client.warm_up()

    message = str(exc_info.value)
    assert message.startswith("Model warmup timed out after 300 seconds")
    assert "try again" in message


def test_other_transport_errors_are_embedding_errors() -> None:
    def _broken(request: httpx.Request) -> httpx.Response:
        raise httpx.RemoteProtocolError("peer closed connection", request=request)

    client, _ = _make_client(_broken)

    with pytest.raises(EmbeddingError) as exc_info:
        client.embed_texts(["x"])

    assert not isinstance(exc_info.value, EmbeddingServiceUnavailableError)


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, text="not json"),
        httpx.Response(200, json={"model": "nomic-embed-text"}),
        httpx.Response(200, json=["unexpected"]),
    ],
)
def test_malformed_body_is_response_error(response: httpx.Response) -> None:
    client, _ = _make_client(lambda request: response)

    with pytest.raises(EmbeddingResponseError):
        client.embed_texts(["x"])


# ---------------------------------------------------------------------------
# Status and configuration
# ---------------------------------------------------------------------------


def test_check_status_reports_version() -> None:
    client, recorder = _make_client(
        lambda request: httpx.Response(200, json={"version": "0.5.7"})
    )

    assert client.check_status() == {"connected": True, "version": "0.5.7"}
    assert recorder.requests[0].url.path == "/api/version"


def test_check_status_when_service_is_down() -> None:
    def _refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("Connection refused", request=request)

    client, _ = _make_client(_refuse)

    assert client.check_status() == {"connected": False, "version": None}


def test_list_models_parses_tags() -> None:
    payload = {
        "models": [
            {"name": "nomic-embed-text:latest", "size": 274302450, "digest": "abc", "modified_at": "2024-01-01"},
            {"name": "llama3:8b", "size": 1, "digest": "def", "modified_at": "2024-02-01"},
        ]
    }
    client, recorder = _make_client(lambda request: httpx.Response(200, json=payload))

    models = client.list_models()

    assert [m["name"] for m in models] == ["nomic-embed-text:latest", "llama3:8b"]
    assert models[0]["size"] == 274302450
    assert recorder.requests[0].url.path == "/api/tags"


def test_check_status_tolerates_non_object_body() -> None:
    client, _ = _make_client(lambda request: httpx.Response(200, json=[1]))

    assert client.check_status() == {"connected": True, "version": None}


def test_list_models_rejects_non_object_body() -> None:
    client, _ = _make_client(lambda request: httpx.Response(200, json=[1]))

    with pytest.raises(EmbeddingResponseError):
        client.list_models()


def test_settings_come_from_environment(monkeypatch) -> None:
    monkeypatch.setenv("DUCKBAKE_OLLAMA_URL", "http://gpu-box:11434/")
    monkeypatch.setenv("DUCKBAKE_EMBEDDING_MODEL", "mxbai-embed-large")
    monkeypatch.setenv("DUCKBAKE_EMBEDDING_TIMEOUT", "42")

    client = OllamaEmbeddingClient()
    try:
        assert client.base_url == "http://gpu-box:11434"
        assert client.model == "mxbai-embed-large"
        assert client.timeout == 42.0
        assert client.keep_alive == "10m"
    finally:
        client.close()


def test_explicit_arguments_override_environment(monkeypatch) -> None:
    monkeypatch.setenv("DUCKBAKE_EMBEDDING_MODEL", "mxbai-embed-large")

    client = OllamaEmbeddingClient(model="all-minilm")
    try:
        assert client.model == "all-minilm"
    finally:
        client.close()
