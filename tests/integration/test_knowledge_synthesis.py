from collections.abc import Callable

import pytest
from langchain_core.language_models import FakeListChatModel

from crossdoc.config import InvokerConfig
from crossdoc.llm.providers import LangChainChatProvider
from crossdoc.llm.router import ModelRouter
from crossdoc.resilience.invoker import InvokerPool
from crossdoc.retrieval.memory import InMemoryDocumentRegistry, InMemoryVectorIndex
from crossdoc.retrieval.search import SourceSearch
from crossdoc.synthesis.synthesizer import KnowledgeSynthesizer, SynthesisOptions
from crossdoc.types import (
    DegradedReason,
    DocumentHandle,
    DocumentStatus,
    ProviderKind,
    RoutingDecision,
    RoutingTarget,
    SourceKind,
)

OWNER = "owner-1"
QUERY = "encryption policy for customer data"


def _factory(reply: str, calls: list[str]) -> Callable[[str], FakeListChatModel]:
    def factory(model_id: str) -> FakeListChatModel:
        calls.append(model_id)
        return FakeListChatModel(responses=[reply])

    return factory


def _synthesizer(
    reply: str,
    *,
    calls: list[str] | None = None,
    with_sources: bool = True,
) -> KnowledgeSynthesizer:
    calls = calls if calls is not None else []
    registry = InMemoryDocumentRegistry()
    vectors = InMemoryVectorIndex(chunk_words=12)
    if with_sources:
        registry.add(
            DocumentHandle(
                id="policy", owner_id=OWNER, display_name="policy.pdf", status=DocumentStatus.COMPLETED
            )
        )
        registry.add(
            DocumentHandle(
                id="wiki",
                owner_id=OWNER,
                display_name="security wiki",
                status=DocumentStatus.COMPLETED,
                kind=SourceKind.KNOWLEDGE_BASE,
            )
        )
        vectors.index_text(OWNER, "policy", "encryption policy for customer data at rest is mandatory")
        vectors.index_text(OWNER, "wiki", "customer data encryption policy applies to backups too")

    pool = InvokerPool(InvokerConfig(min_interval_ms=0))
    router = ModelRouter(
        {
            ProviderKind.LOCAL: LangChainChatProvider("ollama", ProviderKind.LOCAL, _factory(reply, calls)),
            ProviderKind.CLOUD: LangChainChatProvider("mistral", ProviderKind.CLOUD, _factory(reply, calls)),
        },
        pool,
    )
    return KnowledgeSynthesizer(SourceSearch(registry, vectors, pool.get("storage")), router)


@pytest.mark.asyncio
async def test_no_matching_sources_answers_without_model_call() -> None:
    calls: list[str] = []
    synthesizer = _synthesizer("unused", calls=calls, with_sources=False)

    answer = await synthesizer.synthesize(QUERY, OWNER)

    assert answer.confidence == 0.0
    assert answer.sources == []
    assert '"encryption policy for customer data"' in answer.consolidated_answer
    assert calls == []


@pytest.mark.asyncio
async def test_structured_reply_is_parsed_and_clamped() -> None:
    reply = (
        '{"consolidatedAnswer": "Customer data must be encrypted at rest, including backups.",'
        ' "confidence": 1.4,'
        ' "conflictingInfo": [{"topic": "scope", "conflicts": ['
        '{"document": "policy.pdf", "position": "at rest"},'
        '{"document": "security wiki", "position": "backups"}]}]}'
    )

    answer = await _synthesizer(reply).synthesize(QUERY, OWNER)

    assert answer.consolidated_answer.startswith("Customer data must be encrypted")
    assert answer.confidence == 1.0
    assert answer.degraded is None
    assert {source.source_id for source in answer.sources} == {"policy", "wiki"}
    assert answer.conflicts is not None
    assert answer.conflicts[0].topic == "scope"
    assert answer.selection is not None


@pytest.mark.asyncio
async def test_missing_confidence_defaults_and_conflicts_can_be_dropped() -> None:
    reply = '{"consolidatedAnswer": "Encrypt it.", "conflictingInfo": [{"topic": "x", "conflicts": []}]}'

    answer = await _synthesizer(reply).synthesize(
        QUERY, OWNER, SynthesisOptions(include_conflicts=False)
    )

    assert answer.confidence == 0.5
    assert answer.conflicts is None


@pytest.mark.asyncio
async def test_explicit_zero_confidence_is_kept() -> None:
    answer = await _synthesizer('{"consolidatedAnswer": "Unclear.", "confidence": 0}').synthesize(
        QUERY, OWNER
    )

    assert answer.confidence == 0.0


@pytest.mark.asyncio
async def test_unstructured_reply_falls_back_to_raw_text() -> None:
    answer = await _synthesizer("Data is encrypted everywhere.").synthesize(QUERY, OWNER)

    assert answer.consolidated_answer == "Data is encrypted everywhere."
    assert answer.degraded is DegradedReason.UNPARSEABLE_RESPONSE
    assert answer.confidence == pytest.approx(len(answer.sources) / 8)
    assert answer.conflicts is None


@pytest.mark.asyncio
async def test_routing_decision_limits_source_kinds() -> None:
    decision = RoutingDecision(target=RoutingTarget.KNOWLEDGE_BASES_ONLY, confidence=0.8, reasoning="kb")

    answer = await _synthesizer('{"consolidatedAnswer": "From the wiki."}').synthesize(
        QUERY, OWNER, routing=decision
    )

    assert [source.source_id for source in answer.sources] == ["wiki"]
