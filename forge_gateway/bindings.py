"""HTTP bindings for remote completion, chat and embedding engines.

A binding is picked from ``HttpModelConfig.kind``, written ``<engine>/<role>``
(``openai/completion``, ``llama.cpp/embedding``, ``ollama/chat`` ...).
Creating a binding never touches the network; requests go through the shared
``BackendClient`` at call time.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Any, Callable

import httpx

from .backend_client import client
from .config import HttpModelConfig
from .errors import ModelResolutionError, UnsupportedModelConfigError

logger = logging.getLogger(__name__)


class HttpBinding:
    """Common plumbing: endpoint, auth header and backend name."""

    role = "default"

    def __init__(self, engine: str, config: HttpModelConfig):
        self.engine = engine
        self.api_endpoint = (config.api_endpoint or "").rstrip("/")
        self.api_key = config.api_key
        self.model_name = config.model_name
        self.backend_name = f"{engine}/{self.role}@{self.api_endpoint}"

    def _headers(self) -> dict[str, str]:
        if not self.api_key:
            return {}
        return {"Authorization": f"Bearer {self.api_key}"}

    async def _post_json(self, path: str, payload: dict) -> dict[str, Any]:
        resp = await client.request(
            self.backend_name, "POST", f"{self.api_endpoint}{path}",
            json=payload,
            headers=self._headers(),
            role=self.role,
        )
        resp.raise_for_status()
        return resp.json()


class HttpCompletionEngine(HttpBinding):
    role = "completion"

    async def generate(
        self,
        prompt: str,
        *,
        max_tokens: int,
        temperature: float | None = None,
        seed: int | None = None,
    ) -> str:
        if self.engine == "llama.cpp":
            payload: dict[str, Any] = {"prompt": prompt, "n_predict": max_tokens}
            if temperature is not None:
                payload["temperature"] = temperature
            if seed is not None:
                payload["seed"] = seed
            data = await self._post_json("/completion", payload)
            return data.get("content", "")

        if self.engine == "ollama":
            options: dict[str, Any] = {"num_predict": max_tokens}
            if temperature is not None:
                options["temperature"] = temperature
            if seed is not None:
                options["seed"] = seed
            data = await self._post_json(
                "/api/generate",
                {"model": self.model_name, "prompt": prompt, "stream": False, "raw": True, "options": options},
            )
            return data.get("response", "")

        payload = {"model": self.model_name, "prompt": prompt, "max_tokens": max_tokens}
        if temperature is not None:
            payload["temperature"] = temperature
        if seed is not None:
            payload["seed"] = seed
        data = await self._post_json("/completions", payload)
        choices = data.get("choices") or [{}]
        return choices[0].get("text", "")


class HttpChatEngine(HttpBinding):
    role = "chat"

    def _url(self) -> str:
        if self.engine == "ollama":
            return f"{self.api_endpoint}/v1/chat/completions"
        return f"{self.api_endpoint}/chat/completions"

    def _payload(self, payload: dict) -> dict:
        body = dict(payload)
        if self.model_name and not body.get("model"):
            body["model"] = self.model_name
        return body

    async def chat(self, payload: dict) -> httpx.Response:
        return await client.request(
            self.backend_name, "POST", self._url(),
            json=self._payload(payload),
            headers=self._headers(),
            role="chat",
        )

    def stream(self, payload: dict) -> AsyncIterator[bytes]:
        return client.stream_bytes(
            self.backend_name, "POST", self._url(),
            json=self._payload(payload),
            headers=self._headers(),
            role="chat_stream",
        )


class HttpEmbedding(HttpBinding):
    role = "embedding"

    async def embed(self, text: str) -> list[float]:
        if self.engine == "llama.cpp":
            data = await self._post_json("/embedding", {"content": text})
            return list(data["embedding"])
        if self.engine == "ollama":
            data = await self._post_json("/api/embeddings", {"model": self.model_name, "prompt": text})
            return list(data["embedding"])
        data = await self._post_json("/embeddings", {"model": self.model_name, "input": text})
        return list(data["data"][0]["embedding"])


_BINDINGS: dict[tuple[str, str], Callable[[str, HttpModelConfig], HttpBinding]] = {
    ("openai", "completion"): HttpCompletionEngine,
    ("llama.cpp", "completion"): HttpCompletionEngine,
    ("ollama", "completion"): HttpCompletionEngine,
    ("openai", "chat"): HttpChatEngine,
    ("ollama", "chat"): HttpChatEngine,
    ("openai", "embedding"): HttpEmbedding,
    ("llama.cpp", "embedding"): HttpEmbedding,
    ("ollama", "embedding"): HttpEmbedding,
}

_NEEDS_MODEL_NAME = {"openai", "ollama"}


def _split_kind(kind: str) -> tuple[str, str]:
    engine, sep, role = kind.partition("/")
    if not sep:
        return kind, ""
    return engine.strip().lower(), role.strip().lower()


def _create(config: HttpModelConfig, role: str) -> HttpBinding:
    engine, kind_role = _split_kind(config.kind)
    if kind_role != role:
        raise UnsupportedModelConfigError(
            role, f"model kind '{config.kind}' cannot serve the {role} role"
        )
    factory = _BINDINGS.get((engine, role))
    if factory is None:
        raise UnsupportedModelConfigError(role, f"unsupported model kind '{config.kind}'")
    if not config.api_endpoint:
        raise ModelResolutionError(role, f"'{config.kind}' requires api_endpoint")
    if engine in _NEEDS_MODEL_NAME and not config.model_name:
        raise ModelResolutionError(role, f"'{config.kind}' requires model_name")
    binding = factory(engine, config)
    logger.info("Using %s %s engine at %s", engine, role, binding.api_endpoint)
    return binding


def create_completion(config: HttpModelConfig) -> HttpCompletionEngine:
    return _create(config, "completion")


def create_chat(config: HttpModelConfig) -> HttpChatEngine:
    return _create(config, "chat")


def create_embedding(config: HttpModelConfig) -> HttpEmbedding:
    return _create(config, "embedding")


def build_completion_prompt(config: HttpModelConfig) -> tuple[str | None, str | None]:
    """Templates reported for a remote completion engine."""
    return config.prompt_template, config.chat_template
