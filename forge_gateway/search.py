"""Embedding-backed code and doc search over a shared index reader."""

from __future__ import annotations

import json
import logging
import math
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class Embedding(Protocol):
    async def embed(self, text: str) -> list[float]: ...


@dataclass(frozen=True)
class IndexedDocument:
    id: str
    corpus: str  # code | doc
    text: str
    embedding: tuple[float, ...]
    attributes: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SearchHit:
    score: float
    doc: IndexedDocument


def normalize_git_url(url: str) -> str:
    url = url.strip().rstrip("/")
    if url.endswith(".git"):
        url = url[:-4]
    return url.lower()


def _cosine(a: tuple[float, ...] | list[float], b: tuple[float, ...] | list[float]) -> float:
    if len(a) != len(b) or not a:
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    if norm == 0.0:
        return 0.0
    return dot / norm


class IndexReader:
    """Immutable snapshot of indexed documents."""

    def __init__(self, documents: list[IndexedDocument]):
        self._documents = documents

    def __len__(self) -> int:
        return len(self._documents)

    def search(
        self,
        corpus: str,
        vector: list[float],
        limit: int,
        *,
        git_url: str | None = None,
    ) -> list[SearchHit]:
        repo = normalize_git_url(git_url) if git_url is not None else None
        hits = []
        for doc in self._documents:
            if doc.corpus != corpus:
                continue
            if repo is not None and normalize_git_url(doc.attributes.get("git_url") or "") != repo:
                continue
            hits.append(SearchHit(score=_cosine(vector, doc.embedding), doc=doc))
        hits.sort(key=lambda hit: hit.score, reverse=True)
        return hits[:limit]


def _parse_line(raw: str, lineno: int) -> IndexedDocument | None:
    try:
        item = json.loads(raw)
        return IndexedDocument(
            id=str(item.get("id", lineno)),
            corpus=item.get("corpus", "code"),
            text=item["text"],
            embedding=tuple(float(x) for x in item["embedding"]),
            attributes={
                key: value for key, value in item.items()
                if key not in {"id", "corpus", "text", "embedding"}
            },
        )
    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        logger.warning("Skipping malformed index line %d: %s", lineno, e)
        return None


class IndexReaderProvider:
    """Loads the JSONL index once, on first use, and hands out the same reader."""

    def __init__(self, path: str | None = None):
        self._path = Path(path).expanduser() if path else None
        self._lock = threading.Lock()
        self._reader: IndexReader | None = None

    def reader(self) -> IndexReader:
        with self._lock:
            if self._reader is None:
                self._reader = IndexReader(self._load())
                logger.info("Loaded %d indexed documents from %s", len(self._reader), self._path)
            return self._reader

    def _load(self) -> list[IndexedDocument]:
        if self._path is None or not self._path.exists():
            logger.info("No search index found, code and doc search will return no hits")
            return []
        documents = []
        with open(self._path, encoding="utf-8") as f:
            for lineno, raw in enumerate(f, start=1):
                if not raw.strip():
                    continue
                doc = _parse_line(raw, lineno)
                if doc is not None:
                    documents.append(doc)
        return documents


class CodeSearch:
    def __init__(self, embedding: Embedding, provider: IndexReaderProvider):
        self.embedding = embedding
        self.provider = provider

    async def search(self, query: str, *, git_url: str | None = None, limit: int = 5) -> list[SearchHit]:
        vector = await self.embedding.embed(query)
        return self.provider.reader().search("code", vector, limit, git_url=git_url)


class DocSearch:
    def __init__(self, embedding: Embedding, provider: IndexReaderProvider):
        self.embedding = embedding
        self.provider = provider

    async def search(self, query: str, *, limit: int = 5) -> list[SearchHit]:
        vector = await self.embedding.embed(query)
        return self.provider.reader().search("doc", vector, limit)
