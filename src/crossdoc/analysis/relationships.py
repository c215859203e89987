"""Pairwise relationship discovery across an owner's documents."""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from itertools import combinations

from pydantic import BaseModel, Field

from crossdoc.analysis.heuristics import DocumentSample, SimilarityHeuristic
from crossdoc.config import RelationshipConfig
from crossdoc.errors import DeadlineExceeded
from crossdoc.resilience.invoker import RetryingInvoker
from crossdoc.retrieval.collaborators import DocumentRegistry, TextAccess
from crossdoc.types import (
    CrossDocumentStats,
    DocumentHandle,
    DocumentStatus,
    RelationshipEdge,
    RelationshipKind,
)

logger = logging.getLogger(__name__)


class DiscoveryOptions(BaseModel):
    min_similarity: float = Field(default=0.4, ge=0.0, le=1.0)
    max_relationships: int = Field(default=50, ge=1)


class RelationshipDiscovery:
    """Builds a relationship graph from the heuristic similarity of each pair.

    Only the first `max_candidate_sources` completed sources (creation order)
    are paired, which bounds the quadratic loop. Discovery is advisory: a pair
    that cannot be scored is skipped and the remaining pairs still count.
    """

    def __init__(
        self,
        registry: DocumentRegistry,
        texts: TextAccess,
        invoker: RetryingInvoker,
        heuristic: SimilarityHeuristic | None = None,
        config: RelationshipConfig | None = None,
    ) -> None:
        self.registry = registry
        self.texts = texts
        self.invoker = invoker
        self.config = config or RelationshipConfig()
        self.heuristic = heuristic or SimilarityHeuristic(preview_chars=self.config.preview_chars)

    async def discover(
        self,
        owner_id: str,
        options: DiscoveryOptions | None = None,
        *,
        deadline: float | None = None,
    ) -> list[RelationshipEdge]:
        options = options or DiscoveryOptions()
        sources = await self.invoker.invoke(
            lambda: self.registry.list_sources(owner_id), deadline=deadline
        )
        completed = [source for source in sources if source.status is DocumentStatus.COMPLETED]
        if len(completed) < 2:
            return []

        candidates = completed[: self.config.max_candidate_sources]
        if len(completed) > len(candidates):
            logger.info(
                "Relationship discovery capped at %d of %d sources for owner %s",
                len(candidates),
                len(completed),
                owner_id,
            )
        samples = await self._load_samples(candidates, deadline)

        edges: list[RelationshipEdge] = []
        for left, right in combinations(candidates, 2):
            if len(edges) >= options.max_relationships:
                break
            sample_a = samples.get(left.id)
            sample_b = samples.get(right.id)
            if sample_a is None or sample_b is None:
                continue
            try:
                strength = self.heuristic.estimate(sample_a, sample_b)
            except Exception:
                logger.warning(
                    "Failed to compare documents %s and %s", left.id, right.id, exc_info=True
                )
                continue
            if strength >= options.min_similarity:
                edges.append(self._edge(left.id, right.id, strength))

        edges.sort(key=lambda edge: edge.strength, reverse=True)
        return edges[: options.max_relationships]

    async def stats(self, owner_id: str, *, deadline: float | None = None) -> CrossDocumentStats:
        """Aggregate relationship metrics using a relaxed similarity threshold."""

        sources = await self.invoker.invoke(
            lambda: self.registry.list_sources(owner_id), deadline=deadline
        )
        processed = [source for source in sources if source.status is DocumentStatus.COMPLETED]
        if len(processed) < 2:
            return CrossDocumentStats(
                total_documents=len(sources),
                processed_documents=len(processed),
                total_relationships=0,
                average_similarity=0.0,
                top_themes=[],
            )

        edges = await self.discover(
            owner_id,
            DiscoveryOptions(
                min_similarity=self.config.stats_min_similarity,
                max_relationships=self.config.stats_max_relationships,
            ),
            deadline=deadline,
        )
        average = sum(edge.strength for edge in edges) / len(edges) if edges else 0.0
        themes = Counter(item for edge in edges for item in edge.evidence)
        return CrossDocumentStats(
            total_documents=len(sources),
            processed_documents=len(processed),
            total_relationships=len(edges),
            average_similarity=average,
            top_themes=[theme for theme, _ in themes.most_common(10)],
        )

    def classify(self, strength: float) -> RelationshipKind:
        if strength > self.config.similar_threshold:
            return RelationshipKind.SIMILAR
        if strength > self.config.supplements_threshold:
            return RelationshipKind.SUPPLEMENTS
        return RelationshipKind.REFERENCES

    def _edge(self, first_id: str, second_id: str, strength: float) -> RelationshipEdge:
        source_id, target_id = sorted((first_id, second_id))
        kind = self.classify(strength)
        return RelationshipEdge(
            source_doc_id=source_id,
            target_doc_id=target_id,
            kind=kind,
            strength=strength,
            evidence=[
                f"Documents share {round(strength * 100)}% similarity",
                "Based on content analysis",
                f"Relationship strength: {kind.value}",
            ],
        )

    async def _load_samples(
        self,
        sources: list[DocumentHandle],
        deadline: float | None,
    ) -> dict[str, DocumentSample]:
        texts = await asyncio.gather(
            *(self._preview(source, deadline) for source in sources),
            return_exceptions=True,
        )
        samples: dict[str, DocumentSample] = {}
        for source, text in zip(sources, texts, strict=True):
            if isinstance(text, (asyncio.CancelledError, DeadlineExceeded)):
                raise text
            if isinstance(text, BaseException):
                logger.warning("Preview unavailable for %s: %s", source.id, text)
                continue
            samples[source.id] = DocumentSample(handle=source, text=text)
        return samples

    async def _preview(self, source: DocumentHandle, deadline: float | None) -> str:
        preview = await self.invoker.invoke(
            lambda: self.texts.get_preview_text(source.id), deadline=deadline
        )
        if preview:
            return preview
        full_text = await self.invoker.invoke(
            lambda: self.texts.get_full_text(source.id), deadline=deadline
        )
        return full_text or ""
