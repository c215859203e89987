"""Fan-out search across an owner's document and knowledge-base sources."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from math import ceil

from pydantic import BaseModel, Field

from crossdoc.config import SearchConfig
from crossdoc.errors import DeadlineExceeded, SourceUnavailable
from crossdoc.obs.tracing import Timer
from crossdoc.resilience.invoker import RetryingInvoker
from crossdoc.retrieval.collaborators import DocumentRegistry, VectorSimilarityService
from crossdoc.types import (
    DocumentHandle,
    DocumentStatus,
    SearchOutcome,
    SourceKind,
    SourceReference,
    VectorHit,
)

logger = logging.getLogger(__name__)


class SearchOptions(BaseModel):
    limit: int = Field(default=10, ge=1)
    min_relevance: float = Field(default=0.3, ge=0.0, le=1.0)
    exclude_source_ids: list[str] = Field(default_factory=list)
    include_source_ids: list[str] = Field(default_factory=list)
    source_kinds: set[SourceKind] | None = None


@dataclass(slots=True)
class _SourceFetch:
    source: DocumentHandle
    hits: list[VectorHit] = field(default_factory=list)
    error: SourceUnavailable | None = None


class SourceSearch:
    """Queries every candidate source and merges hits into one ranking.

    One vector query is issued per source, concurrently, through the shared
    invoker. A failing source is logged and left out; the search itself only
    fails when the candidate list cannot be resolved at all.
    """

    def __init__(
        self,
        registry: DocumentRegistry,
        vectors: VectorSimilarityService,
        invoker: RetryingInvoker,
        config: SearchConfig | None = None,
    ) -> None:
        self.registry = registry
        self.vectors = vectors
        self.invoker = invoker
        self.config = config or SearchConfig()

    def default_options(self) -> SearchOptions:
        return SearchOptions(
            limit=self.config.default_limit,
            min_relevance=self.config.default_min_relevance,
        )

    async def candidate_sources(
        self,
        owner_id: str,
        options: SearchOptions,
        *,
        deadline: float | None = None,
    ) -> list[DocumentHandle]:
        sources = await self.invoker.invoke(
            lambda: self.registry.list_sources(owner_id), deadline=deadline
        )
        excluded = set(options.exclude_source_ids)
        included = set(options.include_source_ids)
        return [
            source
            for source in sources
            if source.status is DocumentStatus.COMPLETED
            and source.id not in excluded
            and (not included or source.id in included)
            and (options.source_kinds is None or source.kind in options.source_kinds)
        ]

    async def search(
        self,
        query: str,
        owner_id: str,
        options: SearchOptions | None = None,
        *,
        deadline: float | None = None,
    ) -> SearchOutcome:
        options = options or self.default_options()

        with Timer() as timer:
            candidates = await self.candidate_sources(owner_id, options, deadline=deadline)
            fetches: list[_SourceFetch] = []
            if candidates:
                per_source_k = ceil(options.limit / len(candidates)) + self.config.per_source_padding
                fetches = list(
                    await asyncio.gather(
                        *(
                            self._fetch(query, owner_id, source, per_source_k, deadline)
                            for source in candidates
                        )
                    )
                )
            merged = _merge(fetches, options.min_relevance)

        failed = [fetch.source.id for fetch in fetches if fetch.error is not None]
        if failed:
            logger.warning(
                "Partial search failure: %d of %d sources unavailable for owner %s",
                len(failed),
                len(candidates),
                owner_id,
            )

        return SearchOutcome(
            query=query,
            total_candidates=len(merged),
            sources_searched=len(candidates),
            results=merged[: options.limit],
            elapsed_ms=timer.elapsed_ms,
            failed_sources=failed,
        )

    async def _fetch(
        self,
        query: str,
        owner_id: str,
        source: DocumentHandle,
        top_k: int,
        deadline: float | None,
    ) -> _SourceFetch:
        try:
            hits = await self.invoker.invoke(
                lambda: self.vectors.query_similar(query, owner_id, source.id, top_k),
                deadline=deadline,
            )
        except DeadlineExceeded:
            raise
        except Exception as exc:
            error = SourceUnavailable(source.id, exc)
            logger.warning("%s", error)
            return _SourceFetch(source=source, error=error)
        return _SourceFetch(source=source, hits=list(hits))


def _merge(fetches: list[_SourceFetch], min_relevance: float) -> list[SourceReference]:
    best: dict[tuple[str, int], SourceReference] = {}
    for fetch in fetches:
        for hit in fetch.hits:
            score = min(1.0, max(0.0, hit.relevance_score))
            if score < min_relevance:
                continue
            key = (fetch.source.id, hit.chunk_index)
            current = best.get(key)
            if current is None or score > current.relevance_score:
                best[key] = SourceReference(
                    source_id=fetch.source.id,
                    source_name=fetch.source.display_name,
                    chunk_index=hit.chunk_index,
                    content=hit.content,
                    relevance_score=score,
                )
    return sorted(
        best.values(),
        key=lambda ref: (-ref.relevance_score, ref.source_id, ref.chunk_index),
    )
