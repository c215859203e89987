"""Shared domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class DocumentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class SourceKind(str, Enum):
    DOCUMENT = "document"
    KNOWLEDGE_BASE = "knowledge_base"


class RelationshipKind(str, Enum):
    SIMILAR = "similar"
    SUPPLEMENTS = "supplements"
    REFERENCES = "references"


class RoutingTarget(str, Enum):
    DOCUMENTS_ONLY = "documents_only"
    KNOWLEDGE_BASES_ONLY = "knowledge_bases_only"
    BOTH = "both"
    GENERAL = "general"


class ProviderKind(str, Enum):
    LOCAL = "local"
    CLOUD = "cloud"

    @property
    def other(self) -> "ProviderKind":
        return ProviderKind.CLOUD if self is ProviderKind.LOCAL else ProviderKind.LOCAL


class QueryComplexity(str, Enum):
    SIMPLE = "simple"
    MEDIUM = "medium"
    COMPLEX = "complex"


class DegradedReason(str, Enum):
    """Why a result carries placeholder content instead of model output."""

    PENDING_CONTENT = "pending_content"
    UNPARSEABLE_RESPONSE = "unparseable_response"


@dataclass(slots=True)
class DocumentHandle:
    """A source as known to the document registry."""

    id: str
    owner_id: str
    display_name: str
    status: DocumentStatus = DocumentStatus.PENDING
    word_count: int | None = None
    file_type: str | None = None
    kind: SourceKind = SourceKind.DOCUMENT


@dataclass(slots=True, frozen=True)
class VectorHit:
    """One hit returned by the vector similarity service."""

    content: str
    relevance_score: float
    chunk_index: int


@dataclass(slots=True, frozen=True)
class SourceReference:
    """A retrieved chunk attributed to its source."""

    source_id: str
    source_name: str
    chunk_index: int
    content: str
    relevance_score: float


@dataclass(slots=True)
class SearchOutcome:
    query: str
    total_candidates: int
    sources_searched: int
    results: list[SourceReference]
    elapsed_ms: float
    failed_sources: list[str] = field(default_factory=list)


@dataclass(slots=True)
class RelationshipEdge:
    """Undirected relationship stored with `source_doc_id < target_doc_id`."""

    source_doc_id: str
    target_doc_id: str
    kind: RelationshipKind
    strength: float
    evidence: list[str] = field(default_factory=list)


@dataclass(slots=True)
class CrossDocumentStats:
    total_documents: int
    processed_documents: int
    total_relationships: int
    average_similarity: float
    top_themes: list[str]


@dataclass(slots=True, frozen=True)
class DocumentRef:
    id: str
    name: str


@dataclass(slots=True)
class ComparisonResult:
    doc1: DocumentRef
    doc2: DocumentRef
    similarity: float
    common_themes: list[str]
    unique_to_doc1: list[str]
    unique_to_doc2: list[str]
    key_differences: list[str]
    degraded: DegradedReason | None = None


@dataclass(slots=True)
class ConflictPosition:
    source_name: str
    position: str


@dataclass(slots=True)
class Conflict:
    topic: str
    positions: list[ConflictPosition]


@dataclass(slots=True)
class ModelSelection:
    provider: ProviderKind
    model_id: str
    reason: str


@dataclass(slots=True)
class SynthesizedAnswer:
    query: str
    consolidated_answer: str
    sources: list[SourceReference]
    confidence: float
    conflicts: list[Conflict] | None = None
    degraded: DegradedReason | None = None
    selection: ModelSelection | None = None


@dataclass(slots=True)
class SuggestedSource:
    kind: SourceKind
    id: str
    name: str
    relevance: float


@dataclass(slots=True)
class RoutingDecision:
    target: RoutingTarget
    confidence: float
    reasoning: str
    suggested_sources: list[SuggestedSource] | None = None

    def source_kinds(self) -> set[SourceKind] | None:
        """Source kinds a search should cover; None means no restriction."""
        if self.target is RoutingTarget.DOCUMENTS_ONLY:
            return {SourceKind.DOCUMENT}
        if self.target is RoutingTarget.KNOWLEDGE_BASES_ONLY:
            return {SourceKind.KNOWLEDGE_BASE}
        return None


@dataclass(slots=True)
class ChatTurn:
    role: str
    content: str
    source_kinds: list[SourceKind] = field(default_factory=list)


@dataclass(slots=True)
class RoutedCompletion:
    """Model output plus the selection that actually produced it."""

    text: str
    selection: ModelSelection
    fell_back: bool = False


@dataclass(slots=True)
class ChatReply:
    response: str
    selection: ModelSelection
    fell_back: bool = False


@dataclass(slots=True)
class ProviderStatus:
    name: str
    kind: ProviderKind
    available: bool
    error: str | None = None
