import pytest

from crossdoc.retrieval.routing import QueryContext, RoutingSignalClassifier, routing_statistics
from crossdoc.types import (
    ChatTurn,
    DocumentHandle,
    DocumentStatus,
    RoutingDecision,
    RoutingTarget,
    SourceKind,
)

_REPORT = DocumentHandle(
    id="doc-1", owner_id="owner-1", display_name="report.pdf", status=DocumentStatus.COMPLETED
)
_DOCS_SITE = DocumentHandle(
    id="kb-1",
    owner_id="owner-1",
    display_name="docs.example.com",
    status=DocumentStatus.COMPLETED,
    kind=SourceKind.KNOWLEDGE_BASE,
)


def test_document_keywords_and_current_document_route_to_documents() -> None:
    decision = RoutingSignalClassifier().route(
        "Find the budget numbers in my document",
        QueryContext(owner_id="owner-1", current_document=_REPORT),
    )

    assert decision.target is RoutingTarget.DOCUMENTS_ONLY
    assert decision.confidence == 0.95
    assert 'Contains document keyword: "my document"' in decision.reasoning
    assert decision.suggested_sources is not None
    assert decision.suggested_sources[0].id == "doc-1"
    assert decision.suggested_sources[0].relevance == 1.0
    assert decision.source_kinds() == {SourceKind.DOCUMENT}


def test_website_question_routes_to_knowledge_bases() -> None:
    decision = RoutingSignalClassifier().route(
        "What does the website say about pricing?",
        QueryContext(owner_id="owner-1", available_knowledge_bases=[_DOCS_SITE]),
    )

    assert decision.target is RoutingTarget.KNOWLEDGE_BASES_ONLY
    assert decision.source_kinds() == {SourceKind.KNOWLEDGE_BASE}
    assert [source.id for source in decision.suggested_sources or []] == ["kb-1"]


def test_keywords_for_unavailable_side_are_ignored() -> None:
    decision = RoutingSignalClassifier().route(
        "What does the website say about pricing?",
        QueryContext(owner_id="owner-1"),
    )

    assert decision.target is RoutingTarget.GENERAL
    assert decision.source_kinds() is None


def test_both_contexts_with_search_intent_route_to_both() -> None:
    decision = RoutingSignalClassifier().route(
        "List every file and web page about onboarding",
        QueryContext(owner_id="owner-1", current_document=_REPORT, current_knowledge_base=_DOCS_SITE),
    )

    assert decision.target is RoutingTarget.BOTH
    assert {source.kind for source in decision.suggested_sources or []} == {
        SourceKind.DOCUMENT,
        SourceKind.KNOWLEDGE_BASE,
    }


def test_internal_failure_falls_back_to_context() -> None:
    broken_history = [ChatTurn(role="user", content="earlier", source_kinds=None)]  # type: ignore[arg-type]

    decision = RoutingSignalClassifier().route(
        "anything",
        QueryContext(owner_id="owner-1", current_document=_REPORT, conversation_history=broken_history),
    )

    assert decision.target is RoutingTarget.DOCUMENTS_ONLY
    assert decision.confidence == 0.7
    assert decision.reasoning.startswith("Fallback")


def test_routing_statistics() -> None:
    decisions = [
        RoutingDecision(target=RoutingTarget.BOTH, confidence=0.9, reasoning=""),
        RoutingDecision(target=RoutingTarget.GENERAL, confidence=0.5, reasoning=""),
    ]

    stats = routing_statistics(decisions)

    assert stats["both"] == 1
    assert stats["general"] == 1
    assert stats["documents_only"] == 0
    assert stats["average_confidence"] == pytest.approx(0.7)
