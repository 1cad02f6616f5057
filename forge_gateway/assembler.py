"""Build model-backed services in dependency order.

embedding -> code/doc search -> completion -> chat. Each stage only reads the
finished output of the stages before it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from . import bindings
from .backend_client import client
from .completion import CompletionService
from .config import Config, Settings
from .event_logger import EventLogger, create_event_logger
from .model_loader import PromptInfo, load_completion_and_chat, load_embedding
from .search import CodeSearch, DocSearch, Embedding, IndexReaderProvider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedServices:
    embedding: Embedding
    code: CodeSearch
    docsearch: DocSearch
    logger: EventLogger
    completion: CompletionService | None = None
    chat: bindings.HttpChatEngine | None = None
    prompt_info: PromptInfo | None = None


async def assemble(
    config: Config,
    *,
    settings: Settings | None = None,
    event_logger: EventLogger | None = None,
    index_reader_provider: IndexReaderProvider | None = None,
) -> ResolvedServices:
    settings = settings or Settings()
    client.configure(config.server)

    embedding = await load_embedding(config.model.embedding)

    provider = index_reader_provider or IndexReaderProvider(settings.index_path)
    code = CodeSearch(embedding, provider)
    docsearch = DocSearch(embedding, provider)

    event_logger = event_logger or create_event_logger(settings.events_dir)

    engine, prompt_info, chat = await load_completion_and_chat(
        config.model.completion, config.model.chat
    )
    completion = None
    if engine is not None:
        completion = CompletionService(engine, code, event_logger, prompt_info, config.completion)

    logger.info(
        "Services ready: completion=%s chat=%s",
        "yes" if completion else "no",
        "yes" if chat else "no",
    )
    return ResolvedServices(
        embedding=embedding,
        code=code,
        docsearch=docsearch,
        logger=event_logger,
        completion=completion,
        chat=chat,
        prompt_info=prompt_info,
    )
