import pytest

from crossdoc.analysis.heuristics import DocumentSample
from crossdoc.analysis.relationships import DiscoveryOptions, RelationshipDiscovery
from crossdoc.config import InvokerConfig, RelationshipConfig
from crossdoc.errors import DeadlineExceeded
from crossdoc.resilience.invoker import RetryingInvoker
from crossdoc.retrieval.memory import InMemoryDocumentRegistry, InMemoryTextStore
from crossdoc.types import DocumentHandle, DocumentStatus, RelationshipKind


class FixedHeuristic:
    """Scores pairs from a lookup table keyed by sorted ids."""

    def __init__(self, scores: dict[tuple[str, str], float | Exception], default: float = 0.0) -> None:
        self.scores = scores
        self.default = default
        self.pairs: list[tuple[str, ...]] = []

    def estimate(self, a: DocumentSample, b: DocumentSample) -> float:
        key = tuple(sorted((a.handle.id, b.handle.id)))
        self.pairs.append(key)
        value = self.scores.get(key, self.default)
        if isinstance(value, Exception):
            raise value
        return value


def _setup(ids: list[str], *, status: DocumentStatus = DocumentStatus.COMPLETED):
    registry = InMemoryDocumentRegistry()
    texts = InMemoryTextStore()
    for doc_id in ids:
        registry.add(
            DocumentHandle(id=doc_id, owner_id="owner-1", display_name=f"{doc_id}.txt", status=status)
        )
        texts.put(doc_id, f"text for {doc_id}")
    return registry, texts


def _discovery(registry, texts, heuristic, **config) -> RelationshipDiscovery:
    return RelationshipDiscovery(
        registry,
        texts,
        RetryingInvoker("storage", InvokerConfig(min_interval_ms=0)),
        heuristic=heuristic,
        config=RelationshipConfig(**config),
    )


@pytest.mark.asyncio
async def test_edges_respect_threshold_order_and_canonical_ids() -> None:
    registry, texts = _setup(["d3", "d1", "d2"])
    heuristic = FixedHeuristic({("d1", "d3"): 0.85, ("d1", "d2"): 0.65, ("d2", "d3"): 0.3})

    edges = await _discovery(registry, texts, heuristic).discover(
        "owner-1", DiscoveryOptions(min_similarity=0.4)
    )

    assert [(edge.source_doc_id, edge.target_doc_id) for edge in edges] == [("d1", "d3"), ("d1", "d2")]
    assert [edge.kind for edge in edges] == [RelationshipKind.SIMILAR, RelationshipKind.SUPPLEMENTS]
    assert all(edge.strength >= 0.4 for edge in edges)
    assert edges[0].evidence[0] == "Documents share 85% similarity"


@pytest.mark.asyncio
async def test_never_returns_more_than_max_relationships() -> None:
    registry, texts = _setup([f"doc{index}" for index in range(6)])
    heuristic = FixedHeuristic({}, default=0.5)

    edges = await _discovery(registry, texts, heuristic).discover(
        "owner-1", DiscoveryOptions(min_similarity=0.4, max_relationships=4)
    )

    assert len(edges) == 4
    assert len(heuristic.pairs) == 4


@pytest.mark.asyncio
async def test_candidate_cap_bounds_pairs() -> None:
    registry, texts = _setup([f"doc{index:02d}" for index in range(8)])
    heuristic = FixedHeuristic({}, default=0.9)

    edges = await _discovery(registry, texts, heuristic, max_candidate_sources=4).discover(
        "owner-1", DiscoveryOptions(max_relationships=100)
    )

    assert len(edges) == 6
    involved = {doc for edge in edges for doc in (edge.source_doc_id, edge.target_doc_id)}
    assert involved == {"doc00", "doc01", "doc02", "doc03"}


@pytest.mark.asyncio
async def test_failing_pair_is_skipped() -> None:
    registry, texts = _setup(["a", "b", "c"])
    heuristic = FixedHeuristic({("a", "b"): RuntimeError("bad preview"), ("a", "c"): 0.7, ("b", "c"): 0.7})

    edges = await _discovery(registry, texts, heuristic).discover("owner-1")

    assert [(edge.source_doc_id, edge.target_doc_id) for edge in edges] == [("a", "c"), ("b", "c")]


@pytest.mark.asyncio
async def test_fewer_than_two_completed_sources_yields_nothing() -> None:
    registry, texts = _setup(["a", "b"], status=DocumentStatus.PENDING)

    assert await _discovery(registry, texts, FixedHeuristic({})).discover("owner-1") == []


@pytest.mark.asyncio
async def test_stats_aggregates_relationships() -> None:
    registry, texts = _setup(["a", "b", "c"])
    registry.add(DocumentHandle(id="p", owner_id="owner-1", display_name="p.txt"))
    heuristic = FixedHeuristic({("a", "b"): 0.9, ("a", "c"): 0.3}, default=0.1)

    stats = await _discovery(registry, texts, heuristic).stats("owner-1")

    assert stats.total_documents == 4
    assert stats.processed_documents == 3
    assert stats.total_relationships == 2
    assert stats.average_similarity == pytest.approx(0.6)
    assert "Based on content analysis" in stats.top_themes


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class _SlowRegistry(InMemoryDocumentRegistry):
    """Listing takes long enough to use up the caller's deadline."""

    def __init__(self, clock: _Clock) -> None:
        super().__init__()
        self.clock = clock

    async def list_sources(self, owner_id: str) -> list[DocumentHandle]:
        self.clock.now += 10.0
        return await super().list_sources(owner_id)


@pytest.mark.asyncio
async def test_deadline_expiry_while_loading_previews_propagates() -> None:
    clock = _Clock()
    registry = _SlowRegistry(clock)
    _, texts = _setup([])
    for doc_id in ("d1", "d2"):
        registry.add(
            DocumentHandle(
                id=doc_id, owner_id="owner-1", display_name=f"{doc_id}.txt", status=DocumentStatus.COMPLETED
            )
        )
        texts.put(doc_id, f"text for {doc_id}")
    discovery = RelationshipDiscovery(
        registry,
        texts,
        RetryingInvoker("storage", InvokerConfig(min_interval_ms=0), clock=clock),
        heuristic=FixedHeuristic({}, default=0.9),
    )

    with pytest.raises(DeadlineExceeded):
        await discovery.discover("owner-1", deadline=5.0)
