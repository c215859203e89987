"""In-memory collaborators for tests and local prototyping."""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from hashlib import blake2b
from math import sqrt

from crossdoc.types import DocumentHandle, VectorHit

_WORD = re.compile(r"\w+")


def hashed_embedding(text: str, dimension: int = 256) -> list[float]:
    """Signed feature hashing of lower-cased word tokens, L2-normalized.

    Two texts with the same vocabulary embed identically, so their dot
    product is 1.0; an empty text embeds as the zero vector.
    """

    vector = [0.0] * dimension
    for token in _WORD.findall(text.lower()):
        digest = blake2b(token.encode("utf-8"), digest_size=8).digest()
        bucket = int.from_bytes(digest[:4], "little") % dimension
        vector[bucket] += -1.0 if digest[4] & 1 else 1.0
    norm = sqrt(sum(value * value for value in vector))
    return vector if norm == 0 else [value / norm for value in vector]


def _relevance(query: list[float], chunk: list[float]) -> float:
    # both sides are unit length (or zero), so the dot product is the cosine
    if len(query) != len(chunk):
        return 0.0
    return max(0.0, min(1.0, sum(q * c for q, c in zip(query, chunk))))


@dataclass(slots=True)
class _StoredChunk:
    owner_id: str
    source_id: str
    chunk_index: int
    content: str
    embedding: list[float]


class InMemoryDocumentRegistry:
    """Deterministic registry keeping sources in insertion (creation) order."""

    def __init__(self) -> None:
        self._sources: dict[str, DocumentHandle] = {}

    def add(self, handle: DocumentHandle) -> None:
        self._sources[handle.id] = handle

    async def list_sources(self, owner_id: str) -> list[DocumentHandle]:
        return [handle for handle in self._sources.values() if handle.owner_id == owner_id]

    async def get_source(self, source_id: str, owner_id: str) -> DocumentHandle | None:
        handle = self._sources.get(source_id)
        if handle is None or handle.owner_id != owner_id:
            return None
        return handle


class InMemoryTextStore:
    """Stored preview/full text keyed by source id."""

    def __init__(self, preview_chars: int = 500) -> None:
        self._full: dict[str, str] = {}
        self._preview: dict[str, str] = {}
        self.preview_chars = preview_chars

    def put(self, source_id: str, text: str, *, preview: str | None = None) -> None:
        self._full[source_id] = text
        self._preview[source_id] = preview if preview is not None else text[: self.preview_chars]

    async def get_preview_text(self, source_id: str) -> str | None:
        return self._preview.get(source_id)

    async def get_full_text(self, source_id: str) -> str | None:
        return self._full.get(source_id)


class InMemoryVectorIndex:
    """Relevance search over hashed embeddings of fixed-size word windows."""

    def __init__(
        self,
        embed: Callable[[str], list[float]] = hashed_embedding,
        *,
        chunk_words: int = 120,
    ) -> None:
        if chunk_words < 1:
            raise ValueError("chunk_words must be positive")
        self._embed = embed
        self._chunk_words = chunk_words
        self._chunks: list[_StoredChunk] = []

    def index_text(self, owner_id: str, source_id: str, text: str) -> int:
        """Replace the source's chunks with word windows of `text`. Returns chunk count."""

        words = text.split()
        windows = [
            " ".join(words[start : start + self._chunk_words])
            for start in range(0, len(words), self._chunk_words)
        ]
        self._chunks = [
            chunk
            for chunk in self._chunks
            if (chunk.owner_id, chunk.source_id) != (owner_id, source_id)
        ]
        self._chunks.extend(
            _StoredChunk(
                owner_id=owner_id,
                source_id=source_id,
                chunk_index=index,
                content=window,
                embedding=self._embed(window),
            )
            for index, window in enumerate(windows)
        )
        return len(windows)

    async def query_similar(
        self,
        query_text: str,
        owner_id: str,
        source_id: str,
        top_k: int,
    ) -> list[VectorHit]:
        query = self._embed(query_text)
        hits = [
            VectorHit(
                content=chunk.content,
                relevance_score=_relevance(query, chunk.embedding),
                chunk_index=chunk.chunk_index,
            )
            for chunk in self._chunks
            if chunk.owner_id == owner_id and chunk.source_id == source_id
        ]
        hits.sort(key=lambda hit: (-hit.relevance_score, hit.chunk_index))
        return hits[:top_k]
