"""Unified answers built from the best passages across an owner's sources."""

from __future__ import annotations

import logging
import math

from pydantic import BaseModel, Field

from crossdoc.config import SynthesisConfig
from crossdoc.llm.router import ModelRouter
from crossdoc.retrieval.search import SearchOptions, SourceSearch
from crossdoc.synthesis.parsing import clamp_unit, parse_synthesis
from crossdoc.synthesis.prompts import synthesis_messages
from crossdoc.types import DegradedReason, RoutingDecision, SynthesizedAnswer

logger = logging.getLogger(__name__)

NO_RESULTS_TEMPLATE = (
    'I couldn\'t find relevant information about "{query}" in your documents. '
    "Try rephrasing your question or check if you've uploaded relevant documents."
)


class SynthesisOptions(BaseModel):
    max_sources: int = Field(default=8, ge=1)
    include_conflicts: bool = True
    min_confidence: float = Field(default=0.3, ge=0.0, le=1.0)


class KnowledgeSynthesizer:
    """Searches, then asks the routed model for one consolidated answer.

    An empty search answers with a fixed message and confidence 0 without
    calling a model. A reply that is not the requested JSON is kept as the
    answer text with a confidence derived from the result count, and the
    answer is marked degraded.
    """

    def __init__(
        self,
        search: SourceSearch,
        router: ModelRouter,
        config: SynthesisConfig | None = None,
    ) -> None:
        self.search = search
        self.router = router
        self.config = config or SynthesisConfig()

    async def synthesize(
        self,
        query: str,
        owner_id: str,
        options: SynthesisOptions | None = None,
        *,
        routing: RoutingDecision | None = None,
        deadline: float | None = None,
    ) -> SynthesizedAnswer:
        options = options or SynthesisOptions()
        search_options = SearchOptions(
            limit=options.max_sources * self.config.oversample_factor,
            min_relevance=options.min_confidence,
            source_kinds=routing.source_kinds() if routing is not None else None,
        )
        outcome = await self.search.search(query, owner_id, search_options, deadline=deadline)

        if not outcome.results:
            logger.info("No relevant sources for owner %s, skipping model call", owner_id)
            return SynthesizedAnswer(
                query=query,
                consolidated_answer=NO_RESULTS_TEMPLATE.format(query=query),
                sources=[],
                confidence=0.0,
            )

        top_sources = outcome.results[: options.max_sources]
        completion = await self.router.complete(
            synthesis_messages(query, top_sources, include_conflicts=options.include_conflicts),
            query=query,
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
            deadline=deadline,
        )

        payload = parse_synthesis(completion.text)
        if payload is None:
            logger.warning(
                "Unstructured synthesis reply from %s, using raw text",
                completion.selection.model_id,
            )
            return SynthesizedAnswer(
                query=query,
                consolidated_answer=completion.text,
                sources=top_sources,
                confidence=min(
                    len(outcome.results) / options.max_sources,
                    self.config.fallback_confidence_cap,
                ),
                degraded=DegradedReason.UNPARSEABLE_RESPONSE,
                selection=completion.selection,
            )

        confidence = payload.confidence
        if confidence is None or math.isnan(confidence):
            confidence = self.config.default_confidence
        conflicts = None
        if options.include_conflicts:
            conflicts = [item.to_conflict() for item in payload.conflicting_info]

        return SynthesizedAnswer(
            query=query,
            consolidated_answer=payload.consolidated_answer,
            sources=top_sources,
            confidence=clamp_unit(confidence),
            conflicts=conflicts,
            selection=completion.selection,
        )
