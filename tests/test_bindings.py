import json

import httpx
import pytest

from conftest import http_model
from forge_gateway import bindings
from forge_gateway.backend_client import ROLE_TIMEOUTS, BackendClient, CircuitBreaker, client
from forge_gateway.config import ServerSettings
from forge_gateway.errors import ModelResolutionError, UnsupportedModelConfigError


@pytest.fixture
def requests_seen():
    return []


@pytest.fixture
async def mock_engine(requests_seen):
    """Point the shared backend client at an in-process transport."""

    def handler(request: httpx.Request) -> httpx.Response:
        requests_seen.append(request)
        body = json.loads(request.content or b"{}")
        path = request.url.path
        if path.startswith("/broken"):
            return httpx.Response(500, text="boom")
        if path.endswith("/chat/completions") and body.get("stream"):
            return httpx.Response(200, content=b"data: one\n\ndata: [DONE]\n\n")
        if path.endswith("/completions") and "chat" not in path:
            return httpx.Response(200, json={"choices": [{"text": f"<{body['prompt']}>"}]})
        if path.endswith("/completion"):
            return httpx.Response(200, json={"content": "llama"})
        if path.endswith("/api/generate"):
            return httpx.Response(200, json={"response": "ollama"})
        if path.endswith("/embeddings") and "api" not in path:
            return httpx.Response(200, json={"data": [{"embedding": [0.1, 0.2]}]})
        if path.endswith("/embedding"):
            return httpx.Response(200, json={"embedding": [0.3]})
        if path.endswith("/api/embeddings"):
            return httpx.Response(200, json={"embedding": [0.4]})
        if path.endswith("/chat/completions"):
            return httpx.Response(200, json={"model": body.get("model")})
        return httpx.Response(404)

    client._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    yield
    await client.stop()
    client.timeouts = dict(ROLE_TIMEOUTS)


# --- factory selection ---


@pytest.mark.parametrize(
    "factory, kind, expected",
    [
        (bindings.create_completion, "openai/completion", bindings.HttpCompletionEngine),
        (bindings.create_completion, "llama.cpp/completion", bindings.HttpCompletionEngine),
        (bindings.create_chat, "ollama/chat", bindings.HttpChatEngine),
        (bindings.create_embedding, "LLAMA.CPP/embedding", bindings.HttpEmbedding),
    ],
)
def test_factory_by_kind(factory, kind, expected):
    assert isinstance(factory(http_model(kind)), expected)


def test_unknown_engine_is_unsupported():
    with pytest.raises(UnsupportedModelConfigError, match="unsupported model kind"):
        bindings.create_chat(http_model("llama.cpp/chat"))


def test_kind_without_role_is_unsupported():
    with pytest.raises(UnsupportedModelConfigError):
        bindings.create_embedding(http_model("openai"))


def test_openai_requires_model_name():
    with pytest.raises(ModelResolutionError, match="model_name"):
        bindings.create_completion(http_model("openai/completion", model_name=None))


def test_llama_cpp_needs_no_model_name():
    engine = bindings.create_completion(http_model("llama.cpp/completion", model_name=None))
    assert engine.api_endpoint == "http://engine.local"


def test_build_completion_prompt():
    config = http_model("openai/completion", prompt_template="{prefix}", chat_template="{messages}")
    assert bindings.build_completion_prompt(config) == ("{prefix}", "{messages}")


# --- requests ---


@pytest.mark.asyncio
async def test_openai_completion_request(mock_engine, requests_seen):
    engine = bindings.create_completion(http_model("openai/completion", api_key="secret"))

    text = await engine.generate("def f():", max_tokens=8, temperature=0.1)

    assert text == "<def f():>"
    sent = requests_seen[0]
    assert str(sent.url) == "http://engine.local/completions"
    assert sent.headers["authorization"] == "Bearer secret"
    assert json.loads(sent.content) == {
        "model": "test-model", "prompt": "def f():", "max_tokens": 8, "temperature": 0.1,
    }


@pytest.mark.asyncio
async def test_llama_cpp_and_ollama_completion(mock_engine, requests_seen):
    llama = bindings.create_completion(http_model("llama.cpp/completion"))
    ollama = bindings.create_completion(http_model("ollama/completion"))

    assert await llama.generate("x", max_tokens=4, seed=3) == "llama"
    assert await ollama.generate("x", max_tokens=4) == "ollama"
    assert json.loads(requests_seen[0].content) == {"prompt": "x", "n_predict": 4, "seed": 3}
    assert "authorization" not in requests_seen[0].headers


@pytest.mark.asyncio
async def test_embeddings(mock_engine):
    assert await bindings.create_embedding(http_model("openai/embedding")).embed("q") == [0.1, 0.2]
    assert await bindings.create_embedding(http_model("llama.cpp/embedding")).embed("q") == [0.3]
    assert await bindings.create_embedding(http_model("ollama/embedding")).embed("q") == [0.4]


@pytest.mark.asyncio
async def test_chat_fills_model_name(mock_engine, requests_seen):
    chat = bindings.create_chat(http_model("ollama/chat", model_name="qwen"))

    resp = await chat.chat({"messages": []})

    assert resp.json() == {"model": "qwen"}
    assert str(requests_seen[0].url) == "http://engine.local/v1/chat/completions"


@pytest.mark.asyncio
async def test_engine_error_status_raises(mock_engine):
    engine = bindings.create_embedding(http_model("openai/embedding", api_endpoint="http://engine.local/broken"))
    with pytest.raises(httpx.HTTPStatusError):
        await engine.embed("q")


@pytest.mark.asyncio
async def test_client_must_be_started():
    with pytest.raises(RuntimeError, match="not started"):
        await BackendClient().request("x", "GET", "http://engine.local", role="completion")


@pytest.mark.asyncio
async def test_chat_stream_relays_engine_bytes(mock_engine):
    chat = bindings.create_chat(http_model("openai/chat"))
    chunks = [chunk async for chunk in chat.stream({"messages": [], "stream": True})]
    assert b"".join(chunks) == b"data: one\n\ndata: [DONE]\n\n"


@pytest.mark.asyncio
async def test_chat_stream_error_status_raises_before_any_bytes(mock_engine):
    chat = bindings.create_chat(http_model("openai/chat", api_endpoint="http://engine.local/broken"))
    received = []
    with pytest.raises(httpx.HTTPStatusError):
        async for chunk in chat.stream({"messages": [], "stream": True}):
            received.append(chunk)
    assert received == []


# --- timeouts ---


def test_configure_caps_route_bound_roles():
    backend = BackendClient()
    backend.configure(ServerSettings(completion_timeout=12))
    assert backend.timeout_for("completion") == 12.0
    assert backend.timeout_for("chat") == 12.0
    assert backend.timeout_for("embedding") == 12.0
    assert backend.timeout_for("chat_stream") == ROLE_TIMEOUTS["chat_stream"]


def test_configure_never_raises_above_role_bound():
    backend = BackendClient()
    backend.configure(ServerSettings(completion_timeout=900))
    assert backend.timeout_for("completion") == ROLE_TIMEOUTS["completion"]


@pytest.mark.asyncio
async def test_engine_request_uses_configured_timeout(mock_engine, requests_seen):
    client.configure(ServerSettings(completion_timeout=2))

    await bindings.create_embedding(http_model("openai/embedding")).embed("q")

    assert requests_seen[0].extensions["timeout"]["read"] == 2.0


@pytest.mark.asyncio
async def test_retries_stop_once_breaker_opens(monkeypatch):
    attempts = []

    def refuse(request):
        attempts.append(request)
        raise httpx.ConnectError("refused", request=request)

    monkeypatch.setattr("forge_gateway.backend_client.RETRY_DELAYS", (0.0,))
    backend = BackendClient()
    backend._client = httpx.AsyncClient(transport=httpx.MockTransport(refuse))
    backend._breakers["down"] = CircuitBreaker(engine="down", threshold=2, cooldown=60.0)

    with pytest.raises(httpx.ConnectError):
        await backend.request("down", "POST", "http://down.local", role="completion", retries=5)
    with pytest.raises(httpx.ConnectError, match="paused"):
        await backend.request("down", "POST", "http://down.local", role="completion")

    assert len(attempts) == 2
    await backend.stop()


# --- circuit breaker ---


def test_circuit_breaker_opens_after_threshold():
    breaker = CircuitBreaker(threshold=2, cooldown=60.0)
    breaker.record_failure()
    assert breaker.allow_request()
    breaker.record_failure()
    assert breaker.state == "open"
    assert not breaker.allow_request()


def test_circuit_breaker_half_opens_after_cooldown():
    breaker = CircuitBreaker(threshold=1, cooldown=0.0)
    breaker.record_failure()
    assert breaker.allow_request()
    assert breaker.state == "half-open"
    breaker.record_success()
    assert breaker.state == "closed"


def test_failed_trial_request_reopens_circuit():
    breaker = CircuitBreaker(threshold=3, cooldown=0.0)
    for _ in range(3):
        breaker.record_failure()
    assert breaker.allow_request()
    assert breaker.state == "half-open"
    breaker.cooldown = 60.0
    breaker.record_failure()
    assert breaker.state == "open"
    assert not breaker.allow_request()
