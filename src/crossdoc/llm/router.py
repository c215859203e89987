"""Provider selection by availability and query complexity, with one-shot fallback."""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Mapping

from langchain_core.messages import BaseMessage

from crossdoc.config import RouterConfig
from crossdoc.errors import AllProvidersFailed, DeadlineExceeded, ProvidersUnavailable
from crossdoc.llm.providers import ChatProvider
from crossdoc.resilience.invoker import InvokerPool
from crossdoc.types import (
    ModelSelection,
    ProviderKind,
    ProviderStatus,
    QueryComplexity,
    RoutedCompletion,
)

logger = logging.getLogger(__name__)

_ANALYTIC_TRIGGERS = re.compile(
    r"\b(analyze|compare|explain|summarize|detailed|comprehensive|how does|why does"
    r"|what are the implications)\b",
    re.IGNORECASE,
)


def estimate_query_complexity(
    query: str,
    *,
    simple_max_words: int = 10,
    medium_max_words: int = 25,
) -> QueryComplexity:
    """Classify a query by length, analytic trigger phrases and question count."""

    word_count = len(query.split())
    analytic = _ANALYTIC_TRIGGERS.search(query) is not None
    multiple_questions = query.count("?") > 1

    if word_count < simple_max_words and not analytic and not multiple_questions:
        return QueryComplexity.SIMPLE
    if word_count < medium_max_words and not multiple_questions:
        return QueryComplexity.MEDIUM
    return QueryComplexity.COMPLEX


class ModelRouter:
    """Chooses a provider per query and re-routes once on failure.

    Availability is probed on every selection:

    - neither provider alive: `ProvidersUnavailable`;
    - exactly one alive: that one, whatever the query;
    - both alive: simple queries go to the local model, medium ones to the
      small cloud model and complex ones to the large cloud model.

    Calls run through the provider's own invoker from the shared pool.
    """

    def __init__(
        self,
        providers: Mapping[ProviderKind, ChatProvider],
        invokers: InvokerPool,
        config: RouterConfig | None = None,
    ) -> None:
        missing = [kind.value for kind in ProviderKind if kind not in providers]
        if missing:
            raise ValueError(f"Missing provider(s): {', '.join(missing)}")
        self.providers = dict(providers)
        self.invokers = invokers
        self.config = config or RouterConfig()

    def classify_complexity(self, query: str) -> QueryComplexity:
        return estimate_query_complexity(
            query,
            simple_max_words=self.config.simple_max_words,
            medium_max_words=self.config.medium_max_words,
        )

    def model_for(self, kind: ProviderKind, complexity: QueryComplexity) -> str:
        if kind is ProviderKind.LOCAL:
            return self.config.local_model
        if complexity is QueryComplexity.COMPLEX:
            return self.config.cloud_large_model
        return self.config.cloud_small_model

    async def probe(self) -> dict[ProviderKind, bool]:
        kinds = list(self.providers)
        results = await asyncio.gather(*(self._is_alive(self.providers[kind]) for kind in kinds))
        return dict(zip(kinds, results, strict=True))

    async def select(
        self,
        query: str,
        *,
        force_provider: ProviderKind | None = None,
    ) -> ModelSelection:
        complexity = self.classify_complexity(query)
        if force_provider is not None:
            return ModelSelection(
                provider=force_provider,
                model_id=self.model_for(force_provider, complexity),
                reason="User-specified provider",
            )

        alive = await self.probe()
        local_up = alive[ProviderKind.LOCAL]
        cloud_up = alive[ProviderKind.CLOUD]
        local_name = self.providers[ProviderKind.LOCAL].name
        cloud_name = self.providers[ProviderKind.CLOUD].name

        if not local_up and not cloud_up:
            raise ProvidersUnavailable(f"Neither {local_name} nor {cloud_name} is available")
        if local_up and not cloud_up:
            return ModelSelection(
                provider=ProviderKind.LOCAL,
                model_id=self.model_for(ProviderKind.LOCAL, complexity),
                reason=f"{cloud_name} unavailable, using {local_name}",
            )
        if cloud_up and not local_up:
            return ModelSelection(
                provider=ProviderKind.CLOUD,
                model_id=self.model_for(ProviderKind.CLOUD, complexity),
                reason=f"{local_name} unavailable, using {cloud_name}",
            )

        if complexity is QueryComplexity.SIMPLE:
            kind, reason = ProviderKind.LOCAL, f"Simple query - using fast local {local_name}"
        elif complexity is QueryComplexity.MEDIUM:
            kind, reason = ProviderKind.CLOUD, f"Medium complexity - using {cloud_name} for better quality"
        else:
            kind, reason = ProviderKind.CLOUD, f"Complex query - using {cloud_name} larger model"
        return ModelSelection(
            provider=kind,
            model_id=self.model_for(kind, complexity),
            reason=reason,
        )

    async def complete(
        self,
        messages: list[BaseMessage],
        *,
        query: str,
        force_provider: ProviderKind | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        deadline: float | None = None,
    ) -> RoutedCompletion:
        """Route `messages` to a provider, retrying exactly once on the other one.

        Raises:
            ProvidersUnavailable: no provider passed its liveness check.
            AllProvidersFailed: the selected provider and the fallback failed.
        """

        selection = await self.select(query, force_provider=force_provider)
        try:
            text = await self._run(selection, messages, temperature, max_tokens, deadline)
        except DeadlineExceeded:
            raise
        except Exception as primary_error:
            primary = self.providers[selection.provider]
            fallback_kind = selection.provider.other
            fallback = ModelSelection(
                provider=fallback_kind,
                model_id=self.model_for(fallback_kind, self.classify_complexity(query)),
                reason=f"Fallback to {self.providers[fallback_kind].name} after {primary.name} failure",
            )
            logger.warning(
                "%s failed (%s), falling back to %s",
                primary.name,
                primary_error,
                self.providers[fallback_kind].name,
            )
            try:
                text = await self._run(fallback, messages, temperature, max_tokens, deadline)
            except Exception as fallback_error:
                raise AllProvidersFailed(
                    {
                        primary.name: primary_error,
                        self.providers[fallback_kind].name: fallback_error,
                    }
                ) from fallback_error
            return RoutedCompletion(text=text, selection=fallback, fell_back=True)
        return RoutedCompletion(text=text, selection=selection)

    async def system_status(self) -> list[ProviderStatus]:
        statuses: list[ProviderStatus] = []
        for kind, provider in self.providers.items():
            try:
                available = await asyncio.wait_for(
                    provider.is_available(), self.config.probe_timeout_s
                )
                error = None if available else "liveness check failed"
            except asyncio.TimeoutError:
                available, error = False, "liveness check timed out"
            statuses.append(
                ProviderStatus(name=provider.name, kind=kind, available=available, error=error)
            )
        return statuses

    async def _is_alive(self, provider: ChatProvider) -> bool:
        try:
            return await asyncio.wait_for(provider.is_available(), self.config.probe_timeout_s)
        except asyncio.TimeoutError:
            logger.warning("%s liveness check timed out", provider.name)
            return False

    async def _run(
        self,
        selection: ModelSelection,
        messages: list[BaseMessage],
        temperature: float | None,
        max_tokens: int | None,
        deadline: float | None,
    ) -> str:
        provider = self.providers[selection.provider]
        invoker = self.invokers.get(provider.name)
        return await invoker.invoke(
            lambda: provider.chat_complete(
                messages,
                selection.model_id,
                temperature=temperature,
                max_tokens=max_tokens,
            ),
            deadline=deadline,
        )


def recommendations(statuses: list[ProviderStatus]) -> list[str]:
    """Operator hints derived from provider liveness."""

    down = [status for status in statuses if not status.available]
    if not down:
        return ["All providers available - routing by query complexity"]
    if len(down) == len(statuses):
        return [
            "No language-model provider is reachable",
            "Check that the local model server is running and the cloud API key is set",
        ]
    hints: list[str] = []
    for status in down:
        if status.kind is ProviderKind.LOCAL:
            hints.append(f"Start the local model server ({status.name}) for faster simple queries")
        else:
            hints.append(f"Configure the {status.name} API key for better quality on complex queries")
    return hints
