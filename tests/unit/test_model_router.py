import asyncio

import pytest
from langchain_core.messages import HumanMessage

from crossdoc.config import InvokerConfig, RouterConfig
from crossdoc.errors import AllProvidersFailed, DeadlineExceeded, ProvidersUnavailable
from crossdoc.llm.providers import ChatProvider
from crossdoc.llm.router import ModelRouter, estimate_query_complexity, recommendations
from crossdoc.resilience.invoker import InvokerPool
from crossdoc.types import ProviderKind, QueryComplexity

SIMPLE = "What is the deadline?"
MEDIUM = "Which of the listed vendors delivered their hardware orders late during the last fiscal quarter?"
COMPLEX = "Why does the budget differ? What are the implications for hiring?"


class StubProvider(ChatProvider):
    def __init__(
        self,
        name: str,
        kind: ProviderKind,
        *,
        available: bool = True,
        reply: str = "ok",
        error: Exception | None = None,
        hang: bool = False,
    ) -> None:
        super().__init__(name, kind)
        self.available = available
        self.reply = reply
        self.error = error
        self.hang = hang
        self.calls: list[str] = []

    async def chat_complete(self, messages, model_id, *, temperature=None, max_tokens=None) -> str:
        self.calls.append(model_id)
        if self.error is not None:
            raise self.error
        return self.reply

    async def is_available(self) -> bool:
        if self.hang:
            await asyncio.sleep(10)
        return self.available


def _router(local: StubProvider, cloud: StubProvider, **config) -> ModelRouter:
    pool = InvokerPool(InvokerConfig(min_interval_ms=0))
    return ModelRouter(
        {ProviderKind.LOCAL: local, ProviderKind.CLOUD: cloud},
        pool,
        RouterConfig(**config),
    )


@pytest.mark.parametrize(
    ("query", "expected"),
    [
        (SIMPLE, QueryComplexity.SIMPLE),
        ("Summarize it", QueryComplexity.MEDIUM),
        ("Compare the two proposals", QueryComplexity.MEDIUM),
        (COMPLEX, QueryComplexity.COMPLEX),
        ("Who? When?", QueryComplexity.COMPLEX),
        (MEDIUM, QueryComplexity.MEDIUM),
        (" ".join(["word"] * 30), QueryComplexity.COMPLEX),
    ],
)
def test_query_complexity(query: str, expected: QueryComplexity) -> None:
    assert estimate_query_complexity(query) is expected


@pytest.mark.asyncio
async def test_no_provider_available_raises() -> None:
    router = _router(
        StubProvider("ollama", ProviderKind.LOCAL, available=False),
        StubProvider("mistral", ProviderKind.CLOUD, available=False),
    )

    with pytest.raises(ProvidersUnavailable):
        await router.select(SIMPLE)


@pytest.mark.asyncio
@pytest.mark.parametrize("query", [SIMPLE, MEDIUM, COMPLEX])
async def test_single_available_provider_is_always_chosen(query: str) -> None:
    only_local = _router(
        StubProvider("ollama", ProviderKind.LOCAL),
        StubProvider("mistral", ProviderKind.CLOUD, available=False),
    )
    only_cloud = _router(
        StubProvider("ollama", ProviderKind.LOCAL, available=False),
        StubProvider("mistral", ProviderKind.CLOUD),
    )

    assert (await only_local.select(query)).provider is ProviderKind.LOCAL
    assert (await only_cloud.select(query)).provider is ProviderKind.CLOUD


@pytest.mark.asyncio
async def test_both_available_routes_by_complexity() -> None:
    router = _router(StubProvider("ollama", ProviderKind.LOCAL), StubProvider("mistral", ProviderKind.CLOUD))

    assert router.classify_complexity(SIMPLE) is QueryComplexity.SIMPLE
    simple = await router.select(SIMPLE)
    medium = await router.select(MEDIUM)
    complex_ = await router.select(COMPLEX)

    assert (simple.provider, simple.model_id) == (ProviderKind.LOCAL, "llama3.2")
    assert (medium.provider, medium.model_id) == (ProviderKind.CLOUD, "mistral-small-latest")
    assert (complex_.provider, complex_.model_id) == (ProviderKind.CLOUD, "mistral-medium-latest")


@pytest.mark.asyncio
async def test_hanging_liveness_check_counts_as_unavailable() -> None:
    router = _router(
        StubProvider("ollama", ProviderKind.LOCAL, hang=True),
        StubProvider("mistral", ProviderKind.CLOUD),
        probe_timeout_s=0.05,
    )

    selection = await router.select(SIMPLE)

    assert selection.provider is ProviderKind.CLOUD
    assert selection.reason == "ollama unavailable, using mistral"


@pytest.mark.asyncio
async def test_forced_provider_skips_liveness() -> None:
    router = _router(
        StubProvider("ollama", ProviderKind.LOCAL, available=False),
        StubProvider("mistral", ProviderKind.CLOUD, available=False),
    )

    selection = await router.select(COMPLEX, force_provider=ProviderKind.LOCAL)

    assert selection.provider is ProviderKind.LOCAL
    assert selection.reason == "User-specified provider"


@pytest.mark.asyncio
async def test_complete_falls_back_once_to_other_provider() -> None:
    local = StubProvider("ollama", ProviderKind.LOCAL, error=RuntimeError("connection refused"))
    cloud = StubProvider("mistral", ProviderKind.CLOUD, reply="from cloud")
    router = _router(local, cloud)

    completion = await router.complete([HumanMessage(content=SIMPLE)], query=SIMPLE)

    assert completion.text == "from cloud"
    assert completion.fell_back
    assert completion.selection.provider is ProviderKind.CLOUD
    assert completion.selection.model_id == "mistral-small-latest"
    assert local.calls == ["llama3.2"]
    assert cloud.calls == ["mistral-small-latest"]


@pytest.mark.asyncio
async def test_complete_raises_when_both_providers_fail() -> None:
    local = StubProvider("ollama", ProviderKind.LOCAL, error=RuntimeError("connection refused"))
    cloud = StubProvider("mistral", ProviderKind.CLOUD, error=RuntimeError("invalid api key"))
    router = _router(local, cloud)

    with pytest.raises(AllProvidersFailed) as info:
        await router.complete([HumanMessage(content=SIMPLE)], query=SIMPLE)

    assert set(info.value.errors) == {"ollama", "mistral"}
    assert len(local.calls) == 1
    assert len(cloud.calls) == 1


@pytest.mark.asyncio
async def test_deadline_is_not_retried_on_other_provider() -> None:
    local = StubProvider("ollama", ProviderKind.LOCAL, error=DeadlineExceeded("late"))
    cloud = StubProvider("mistral", ProviderKind.CLOUD)
    router = _router(local, cloud)

    with pytest.raises(DeadlineExceeded):
        await router.complete([HumanMessage(content=SIMPLE)], query=SIMPLE)

    assert cloud.calls == []


def test_router_requires_both_provider_kinds() -> None:
    with pytest.raises(ValueError):
        ModelRouter({ProviderKind.LOCAL: StubProvider("ollama", ProviderKind.LOCAL)}, InvokerPool())


@pytest.mark.asyncio
async def test_system_status_and_recommendations() -> None:
    router = _router(
        StubProvider("ollama", ProviderKind.LOCAL),
        StubProvider("mistral", ProviderKind.CLOUD, available=False),
    )

    statuses = await router.system_status()

    assert [(status.name, status.available) for status in statuses] == [("ollama", True), ("mistral", False)]
    hints = recommendations(statuses)
    assert len(hints) == 1
    assert "mistral" in hints[0]
