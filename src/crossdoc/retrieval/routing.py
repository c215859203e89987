"""Heuristic routing between document and knowledge-base search."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from crossdoc.types import (
    ChatTurn,
    DocumentHandle,
    DocumentStatus,
    RoutingDecision,
    RoutingTarget,
    SourceKind,
    SuggestedSource,
)

logger = logging.getLogger(__name__)

_DOCUMENT_KEYWORDS = (
    "document",
    "file",
    "pdf",
    "page",
    "chapter",
    "section",
    "attachment",
    "uploaded",
    "my document",
    "this file",
)
_KNOWLEDGE_BASE_KEYWORDS = (
    "website",
    "site",
    "web",
    "online",
    "link",
    "url",
    "blog",
    "article",
    "page",
    "portal",
    "documentation",
    "knowledge base",
)
_GENERAL_PATTERNS = (
    re.compile(r"^(what|how|why|when|where|who)\s", re.IGNORECASE),
    re.compile(r"^(can you|could you|please)\s", re.IGNORECASE),
    re.compile(r"^(tell me|explain|describe|summarize)\s", re.IGNORECASE),
)
_SEARCH_INTENT = re.compile(r"^\s*(find|search|list|show|look up|locate)\b", re.IGNORECASE)


@dataclass(slots=True)
class QueryContext:
    owner_id: str
    current_document: DocumentHandle | None = None
    current_knowledge_base: DocumentHandle | None = None
    available_documents: list[DocumentHandle] = field(default_factory=list)
    available_knowledge_bases: list[DocumentHandle] = field(default_factory=list)
    conversation_history: list[ChatTurn] = field(default_factory=list)


@dataclass(slots=True)
class _Signals:
    document: int = 0
    knowledge_base: int = 0
    general: int = 0
    hints: list[str] = field(default_factory=list)


class RoutingSignalClassifier:
    """Decides whether a query should search documents, knowledge bases, or both."""

    def route(self, query: str, context: QueryContext) -> RoutingDecision:
        try:
            signals = _analyze_signals(query, context)
            decision = _decide(query, signals, context)
        except Exception:
            logger.exception("Routing analysis failed, using context fallback")
            return _fallback(context)
        logger.debug(
            "Routing decision for %r: %s (confidence %.2f)",
            query,
            decision.target.value,
            decision.confidence,
        )
        return decision


def _analyze_signals(query: str, context: QueryContext) -> _Signals:
    signals = _Signals()
    lowered = query.lower()

    for keyword in _DOCUMENT_KEYWORDS:
        if keyword in lowered:
            signals.document += 1
            signals.hints.append(f'Contains document keyword: "{keyword}"')

    for keyword in _KNOWLEDGE_BASE_KEYWORDS:
        if keyword in lowered:
            signals.knowledge_base += 1
            signals.hints.append(f'Contains knowledge base keyword: "{keyword}"')

    for pattern in _GENERAL_PATTERNS:
        if pattern.search(query):
            signals.general += 1
            signals.hints.append("Matches general question pattern")

    if context.current_document is not None:
        signals.document += 2
        signals.hints.append(f"Current document context: {context.current_document.display_name}")
    if context.current_knowledge_base is not None:
        signals.knowledge_base += 2
        signals.hints.append(
            f"Current knowledge base context: {context.current_knowledge_base.display_name}"
        )

    recent = [kind for turn in context.conversation_history[-3:] for kind in turn.source_kinds]
    document_turns = sum(1 for kind in recent if kind is SourceKind.DOCUMENT)
    kb_turns = sum(1 for kind in recent if kind is SourceKind.KNOWLEDGE_BASE)
    if document_turns > kb_turns:
        signals.document += 1
        signals.hints.append("Recent conversation focused on documents")
    elif kb_turns > document_turns:
        signals.knowledge_base += 1
        signals.hints.append("Recent conversation focused on knowledge bases")

    return signals


def _decide(query: str, signals: _Signals, context: QueryContext) -> RoutingDecision:
    document_score = signals.document * 0.3
    kb_score = signals.knowledge_base * 0.3
    both_score = min(signals.document, signals.knowledge_base) * 0.4
    general_score = signals.general * 0.2

    if _SEARCH_INTENT.search(query):
        both_score += 0.2
    elif query.strip().endswith("?"):
        if context.current_document is not None:
            document_score += 0.2
        if context.current_knowledge_base is not None:
            kb_score += 0.2

    has_documents = context.current_document is not None or bool(context.available_documents)
    has_kbs = context.current_knowledge_base is not None or any(
        kb.status is DocumentStatus.COMPLETED for kb in context.available_knowledge_bases
    )
    if not has_documents:
        document_score = 0.0
    if not has_kbs:
        kb_score = 0.0

    max_score = max(document_score, kb_score, both_score, general_score)
    confidence = min(0.95, max_score + 0.5)
    hints = ", ".join(signals.hints) or "none"

    if both_score == max_score and both_score > 0.3:
        target = RoutingTarget.BOTH
        reasoning = f"Query suggests searching both documents and knowledge bases. Signals: {hints}"
    elif document_score == max_score and document_score > 0.2:
        target = RoutingTarget.DOCUMENTS_ONLY
        reasoning = f"Query suggests document search. Signals: {hints}"
    elif kb_score == max_score and kb_score > 0.2:
        target = RoutingTarget.KNOWLEDGE_BASES_ONLY
        reasoning = f"Query suggests knowledge base search. Signals: {hints}"
    else:
        target = RoutingTarget.GENERAL
        reasoning = f"General query or insufficient context for specific routing. Signals: {hints}"

    return RoutingDecision(
        target=target,
        confidence=confidence,
        reasoning=reasoning,
        suggested_sources=_suggest(target, context) or None,
    )


def _suggest(target: RoutingTarget, context: QueryContext) -> list[SuggestedSource]:
    suggestions: list[SuggestedSource] = []
    if target in (RoutingTarget.DOCUMENTS_ONLY, RoutingTarget.BOTH):
        if context.current_document is not None:
            suggestions.append(_suggestion(context.current_document, 1.0))
        else:
            suggestions.extend(_suggestion(doc, 0.5) for doc in context.available_documents[:3])
    if target in (RoutingTarget.KNOWLEDGE_BASES_ONLY, RoutingTarget.BOTH):
        if context.current_knowledge_base is not None:
            suggestions.append(_suggestion(context.current_knowledge_base, 1.0))
        else:
            completed = [
                kb
                for kb in context.available_knowledge_bases
                if kb.status is DocumentStatus.COMPLETED
            ]
            suggestions.extend(_suggestion(kb, 0.5) for kb in completed[:3])
    return suggestions


def _suggestion(handle: DocumentHandle, relevance: float) -> SuggestedSource:
    return SuggestedSource(
        kind=handle.kind,
        id=handle.id,
        name=handle.display_name,
        relevance=relevance,
    )


def _fallback(context: QueryContext) -> RoutingDecision:
    if context.current_document is not None and context.current_knowledge_base is not None:
        return RoutingDecision(
            target=RoutingTarget.BOTH,
            confidence=0.6,
            reasoning="Fallback: Both document and knowledge base available",
        )
    if context.current_document is not None:
        return RoutingDecision(
            target=RoutingTarget.DOCUMENTS_ONLY,
            confidence=0.7,
            reasoning="Fallback: Current document available",
        )
    if context.current_knowledge_base is not None:
        return RoutingDecision(
            target=RoutingTarget.KNOWLEDGE_BASES_ONLY,
            confidence=0.7,
            reasoning="Fallback: Current knowledge base available",
        )
    return RoutingDecision(
        target=RoutingTarget.GENERAL,
        confidence=0.5,
        reasoning="Fallback: No specific context available",
    )


def routing_statistics(decisions: list[RoutingDecision]) -> dict[str, float | int]:
    """Counts per routing target and the mean confidence."""

    stats: dict[str, float | int] = {target.value: 0 for target in RoutingTarget}
    stats["average_confidence"] = 0.0
    if not decisions:
        return stats
    for decision in decisions:
        stats[decision.target.value] += 1
    stats["average_confidence"] = sum(d.confidence for d in decisions) / len(decisions)
    return stats
