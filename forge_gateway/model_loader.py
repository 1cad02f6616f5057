"""Resolve configured model roles into running backends."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from . import bindings
from .config import HttpModelConfig, LocalModelConfig
from .errors import ModelResolutionError, UnsupportedModelConfigError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PromptInfo:
    prompt_template: str | None = None
    chat_template: str | None = None


def _reject_local(role: str, config: LocalModelConfig) -> None:
    raise UnsupportedModelConfigError(
        role, f"local {role} model '{config.model_id}' is not supported"
    )


async def load_embedding(config: LocalModelConfig | HttpModelConfig | None) -> bindings.HttpEmbedding:
    if config is None:
        raise ModelResolutionError("embedding", "an embedding model must be configured")
    if isinstance(config, LocalModelConfig):
        _reject_local("embedding", config)
    return bindings.create_embedding(config)


async def load_completion_and_chat(
    completion_model: LocalModelConfig | HttpModelConfig | None,
    chat_model: LocalModelConfig | HttpModelConfig | None,
) -> tuple[
    bindings.HttpCompletionEngine | None,
    PromptInfo | None,
    bindings.HttpChatEngine | None,
]:
    engine = None
    prompt_info = None
    if completion_model is not None:
        if isinstance(completion_model, LocalModelConfig):
            _reject_local("completion", completion_model)
        engine = bindings.create_completion(completion_model)
        prompt_template, chat_template = bindings.build_completion_prompt(completion_model)
        prompt_info = PromptInfo(prompt_template=prompt_template, chat_template=chat_template)

    chat = None
    if chat_model is not None:
        if isinstance(chat_model, LocalModelConfig):
            _reject_local("chat", chat_model)
        chat = bindings.create_chat(chat_model)

    return engine, prompt_info, chat


def check_local_model(path: str) -> bool:
    """Log whether a model is already present at ``path``. Never raises."""
    if os.path.exists(path):
        logger.info("Loading model from local path %s", path)
        return True
    logger.warning("Model not found at local path: %s", path)
    return False
