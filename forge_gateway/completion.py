"""Code completion service: prompt building, snippet retrieval, event logging."""

from __future__ import annotations

import logging
import re
import uuid
from typing import Protocol

from .config import CompletionConfig, RepositoryConfig
from .event_logger import EventLogger
from .model_loader import PromptInfo
from .models import Choice, CompletionRequest, CompletionResponse
from .search import CodeSearch, normalize_git_url

logger = logging.getLogger(__name__)

SNIPPET_LIMIT = 3
SNIPPET_QUERY_CHARS = 1500

_PLACEHOLDER = re.compile(r"\{(prefix|suffix)\}")


class CompletionEngine(Protocol):
    async def generate(
        self,
        prompt: str,
        *,
        max_tokens: int,
        temperature: float | None = None,
        seed: int | None = None,
    ) -> str: ...


class AllowedCodeRepository:
    """Repositories whose indexed code may be used to enrich completions."""

    def __init__(self, repositories: list[RepositoryConfig]):
        self._urls = {normalize_git_url(repo.git_url): repo.git_url for repo in repositories}

    def closest_match(self, git_url: str | None) -> str | None:
        if not git_url:
            return None
        return self._urls.get(normalize_git_url(git_url))


def _comment_out(text: str, language: str | None) -> str:
    prefix = "#" if language in {"python", "ruby", "shell", "bash", "yaml", "toml"} else "//"
    return "\n".join(f"{prefix} {line}" if line else prefix for line in text.splitlines())


class CompletionService:
    def __init__(
        self,
        engine: CompletionEngine,
        code: CodeSearch,
        event_logger: EventLogger,
        prompt_info: PromptInfo | None,
        config: CompletionConfig,
    ):
        self.engine = engine
        self.code = code
        self.event_logger = event_logger
        self.prompt_info = prompt_info or PromptInfo()
        self.config = config

    async def _snippets(self, request: CompletionRequest, git_url: str) -> str:
        query = request.segments.prefix[-SNIPPET_QUERY_CHARS:]
        hits = await self.code.search(query, git_url=git_url, limit=SNIPPET_LIMIT)
        blocks = []
        for hit in hits:
            path = hit.doc.attributes.get("filepath", hit.doc.id)
            blocks.append(_comment_out(f"Path: {path}\n{hit.doc.text}", request.language))
        return "\n".join(blocks)

    async def build_prompt(
        self,
        request: CompletionRequest,
        allowed: AllowedCodeRepository | None = None,
    ) -> str:
        limit = self.config.max_input_length
        prefix = request.segments.prefix[-limit:]
        suffix = (request.segments.suffix or "")[:limit]

        git_url = allowed.closest_match(request.segments.git_url) if allowed else None
        if git_url:
            snippets = await self._snippets(request, git_url)
            if snippets:
                prefix = f"{snippets}\n{prefix}"

        template = self.prompt_info.prompt_template
        if not template:
            return prefix
        values = {"prefix": prefix, "suffix": suffix}
        return _PLACEHOLDER.sub(lambda m: values[m.group(1)], template)

    async def generate(
        self,
        request: CompletionRequest,
        allowed: AllowedCodeRepository | None = None,
    ) -> CompletionResponse:
        completion_id = f"cmpl-{uuid.uuid4()}"
        prompt = await self.build_prompt(request, allowed)
        text = await self.engine.generate(
            prompt,
            max_tokens=self.config.max_decoding_tokens,
            temperature=request.temperature,
            seed=request.seed,
        )
        self.event_logger.log(
            "completion",
            {
                "completion_id": completion_id,
                "language": request.language,
                "user": request.user,
                "prompt": prompt,
                "choices": [{"index": 0, "text": text}],
            },
        )
        return CompletionResponse(id=completion_id, choices=[Choice(index=0, text=text)])
