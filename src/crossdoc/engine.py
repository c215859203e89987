"""Explicit wiring of the engine's components."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass

from crossdoc.analysis.comparator import DocumentComparator
from crossdoc.analysis.relationships import RelationshipDiscovery
from crossdoc.config import EngineSettings
from crossdoc.llm.providers import ChatProvider, build_openai_compatible_provider
from crossdoc.llm.router import ModelRouter, recommendations
from crossdoc.resilience.invoker import InvokerPool
from crossdoc.retrieval.collaborators import DocumentRegistry, TextAccess, VectorSimilarityService
from crossdoc.retrieval.routing import QueryContext, RoutingSignalClassifier
from crossdoc.retrieval.search import SourceSearch
from crossdoc.synthesis.chat import DocumentChat
from crossdoc.synthesis.synthesizer import KnowledgeSynthesizer, SynthesisOptions
from crossdoc.types import ProviderKind, SynthesizedAnswer

logger = logging.getLogger(__name__)

STORAGE_INVOKER_KEY = "storage"


@dataclass(slots=True)
class Engine:
    settings: EngineSettings
    invokers: InvokerPool
    router: ModelRouter
    search: SourceSearch
    relationships: RelationshipDiscovery
    comparator: DocumentComparator
    synthesizer: KnowledgeSynthesizer
    chat: DocumentChat
    classifier: RoutingSignalClassifier

    async def ask(
        self,
        query: str,
        context: QueryContext,
        options: SynthesisOptions | None = None,
        *,
        deadline: float | None = None,
    ) -> SynthesizedAnswer:
        """Route the query to document and/or knowledge-base sources, then synthesize."""

        decision = self.classifier.route(query, context)
        return await self.synthesizer.synthesize(
            query,
            context.owner_id,
            options,
            routing=decision,
            deadline=deadline,
        )

    async def status(self) -> dict[str, object]:
        statuses = await self.router.system_status()
        return {
            "providers": statuses,
            "recommendations": recommendations(statuses),
            "invocations": self.invokers.log.summary(),
        }


def build_default_providers(settings: EngineSettings) -> dict[ProviderKind, ChatProvider]:
    return {
        ProviderKind.LOCAL: build_openai_compatible_provider(
            settings.local,
            ProviderKind.LOCAL,
            probe_timeout_s=settings.router.probe_timeout_s,
        ),
        ProviderKind.CLOUD: build_openai_compatible_provider(
            settings.cloud,
            ProviderKind.CLOUD,
            probe_timeout_s=settings.router.probe_timeout_s,
        ),
    }


def build_engine(
    settings: EngineSettings,
    registry: DocumentRegistry,
    vectors: VectorSimilarityService,
    texts: TextAccess,
    providers: Mapping[ProviderKind, ChatProvider] | None = None,
    invokers: InvokerPool | None = None,
) -> Engine:
    """Construct every component from `settings` and the given collaborators.

    Storage calls (registry, vectors, stored text) share one invoker; each
    language-model provider gets its own, keyed by provider name.
    """

    invokers = invokers or InvokerPool(settings.invoker)
    providers = providers or build_default_providers(settings)
    storage = invokers.get(STORAGE_INVOKER_KEY)

    router = ModelRouter(providers, invokers, settings.router)
    search = SourceSearch(registry, vectors, storage, settings.search)
    engine = Engine(
        settings=settings,
        invokers=invokers,
        router=router,
        search=search,
        relationships=RelationshipDiscovery(
            registry, texts, storage, config=settings.relationships
        ),
        comparator=DocumentComparator(
            registry, vectors, texts, storage, router, settings.comparison
        ),
        synthesizer=KnowledgeSynthesizer(search, router, settings.synthesis),
        chat=DocumentChat(vectors, storage, router),
        classifier=RoutingSignalClassifier(),
    )
    logger.info(
        "Engine ready with providers %s",
        ", ".join(provider.name for provider in router.providers.values()),
    )
    return engine
