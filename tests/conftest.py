import httpx
import pytest

from forge_gateway.assembler import ResolvedServices
from forge_gateway.completion import CompletionService
from forge_gateway.config import (
    CompletionConfig,
    Config,
    HttpModelConfig,
    LocalModelConfig,
    ModelConfigGroup,
    Settings,
)
from forge_gateway.event_logger import EventLogger
from forge_gateway.model_loader import PromptInfo
from forge_gateway.search import CodeSearch, DocSearch, IndexReaderProvider


class FakeEmbedding:
    def __init__(self, vectors: dict | None = None):
        self.vectors = vectors or {}
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        return self.vectors.get(text, [1.0, 0.0])


class FakeEngine:
    def __init__(self, text: str = "return a + b"):
        self.text = text
        self.prompts: list[str] = []
        self.kwargs: list[dict] = []

    async def generate(self, prompt, *, max_tokens, temperature=None, seed=None):
        self.prompts.append(prompt)
        self.kwargs.append({"max_tokens": max_tokens, "temperature": temperature, "seed": seed})
        return self.text


class FakeChat:
    def __init__(self):
        self.payloads: list[dict] = []

    async def chat(self, payload: dict) -> httpx.Response:
        self.payloads.append(payload)
        return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": "hi"}}]})

    async def stream(self, payload: dict):
        self.payloads.append(payload)
        yield b'data: {"delta": "hi"}\n\n'
        yield b"data: [DONE]\n\n"


def http_model(kind: str, **kwargs) -> HttpModelConfig:
    kwargs.setdefault("api_endpoint", "http://engine.local")
    kwargs.setdefault("model_name", "test-model")
    return HttpModelConfig(kind=kind, **kwargs)


def make_config(completion=None, chat=None, embedding=None, **kwargs) -> Config:
    return Config(
        model=ModelConfigGroup(completion=completion, chat=chat, embedding=embedding),
        **kwargs,
    )


@pytest.fixture
def settings(tmp_path):
    return Settings(
        config_path=str(tmp_path / "config.yaml"),
        events_dir=str(tmp_path / "events"),
        index_path=str(tmp_path / "index.jsonl"),
        disable_client_side_telemetry=True,
    )


@pytest.fixture
def event_logger(tmp_path):
    return EventLogger(str(tmp_path / "events"))


@pytest.fixture
def embedding():
    return FakeEmbedding()


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def chat():
    return FakeChat()


@pytest.fixture
def make_services(embedding, event_logger):
    """Build ResolvedServices from fakes; completion/chat toggled per test."""

    def _make(*, engine=None, chat=None, config: Config | None = None, prompt_info=None):
        provider = IndexReaderProvider(None)
        code = CodeSearch(embedding, provider)
        completion = None
        if engine is not None:
            completion = CompletionService(
                engine, code, event_logger, prompt_info,
                config.completion if config else CompletionConfig(),
            )
        return ResolvedServices(
            embedding=embedding,
            code=code,
            docsearch=DocSearch(embedding, provider),
            logger=event_logger,
            completion=completion,
            chat=chat,
            prompt_info=prompt_info,
        )

    return _make


@pytest.fixture
def local_model():
    return LocalModelConfig(model_id="/models/StarCoder-1B")


@pytest.fixture
def prompt_info():
    return PromptInfo(prompt_template="<PRE> {prefix} <SUF>{suffix} <MID>")
