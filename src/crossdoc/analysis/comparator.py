"""Model-assisted comparison of two documents."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from crossdoc.config import ComparisonConfig
from crossdoc.errors import DeadlineExceeded, DocumentNotFound
from crossdoc.llm.router import ModelRouter
from crossdoc.resilience.invoker import RetryingInvoker
from crossdoc.retrieval.collaborators import DocumentRegistry, TextAccess, VectorSimilarityService
from crossdoc.synthesis.parsing import clamp_unit, parse_comparison
from crossdoc.synthesis.prompts import comparison_messages
from crossdoc.types import ComparisonResult, DegradedReason, DocumentHandle, DocumentRef

logger = logging.getLogger(__name__)


def pending_comparison(doc1: DocumentRef, doc2: DocumentRef) -> ComparisonResult:
    return ComparisonResult(
        doc1=doc1,
        doc2=doc2,
        similarity=0.3,
        common_themes=["Document analysis pending"],
        unique_to_doc1=["Content not yet processed"],
        unique_to_doc2=["Content not yet processed"],
        key_differences=["Documents require processing"],
        degraded=DegradedReason.PENDING_CONTENT,
    )


def unparsed_comparison(doc1: DocumentRef, doc2: DocumentRef) -> ComparisonResult:
    return ComparisonResult(
        doc1=doc1,
        doc2=doc2,
        similarity=0.5,
        common_themes=["General content similarity"],
        unique_to_doc1=["Unique content in first document"],
        unique_to_doc2=["Unique content in second document"],
        key_differences=["Documents have different focus areas"],
        degraded=DegradedReason.UNPARSEABLE_RESPONSE,
    )


class DocumentComparator:
    """Compares two documents through the routed language model.

    Content comes from vector retrieval with a fixed probe query, then from
    stored text. When either side still has nothing to show, or the model's
    reply cannot be read, a fixed placeholder comparison is returned with its
    `degraded` reason set.
    """

    def __init__(
        self,
        registry: DocumentRegistry,
        vectors: VectorSimilarityService,
        texts: TextAccess,
        invoker: RetryingInvoker,
        router: ModelRouter,
        config: ComparisonConfig | None = None,
    ) -> None:
        self.registry = registry
        self.vectors = vectors
        self.texts = texts
        self.invoker = invoker
        self.router = router
        self.config = config or ComparisonConfig()

    async def compare(
        self,
        doc1_id: str,
        doc2_id: str,
        owner_id: str,
        *,
        deadline: float | None = None,
    ) -> ComparisonResult:
        doc1, doc2 = await self._resolve(doc1_id, doc2_id, owner_id, deadline)
        ref1 = DocumentRef(id=doc1.id, name=doc1.display_name)
        ref2 = DocumentRef(id=doc2.id, name=doc2.display_name)

        content1, content2 = await asyncio.gather(
            self._content(doc1, owner_id, deadline),
            self._content(doc2, owner_id, deadline),
        )
        if not content1.strip() or not content2.strip():
            logger.info("No content yet for comparison of %s and %s", doc1.id, doc2.id)
            return pending_comparison(ref1, ref2)

        completion = await self.router.complete(
            comparison_messages(doc1.display_name, content1, doc2.display_name, content2),
            query=f"Compare {doc1.display_name} with {doc2.display_name}",
            deadline=deadline,
        )
        payload = parse_comparison(completion.text)
        if payload is None:
            logger.warning(
                "Unstructured comparison reply from %s for %s and %s",
                completion.selection.model_id,
                doc1.id,
                doc2.id,
            )
            return unparsed_comparison(ref1, ref2)

        return ComparisonResult(
            doc1=ref1,
            doc2=ref2,
            similarity=clamp_unit(payload.similarity),
            common_themes=payload.common_themes,
            unique_to_doc1=payload.unique_to_doc1,
            unique_to_doc2=payload.unique_to_doc2,
            key_differences=payload.key_differences,
        )

    async def _resolve(
        self,
        doc1_id: str,
        doc2_id: str,
        owner_id: str,
        deadline: float | None,
    ) -> tuple[DocumentHandle, DocumentHandle]:
        found = await asyncio.gather(
            self.invoker.invoke(lambda: self.registry.get_source(doc1_id, owner_id), deadline=deadline),
            self.invoker.invoke(lambda: self.registry.get_source(doc2_id, owner_id), deadline=deadline),
            return_exceptions=True,
        )
        for item in found:
            if isinstance(item, (asyncio.CancelledError, DeadlineExceeded)):
                raise item
            if isinstance(item, BaseException):
                logger.warning("Direct document lookup failed, scanning owner sources: %s", item)
        doc1, doc2 = (None if isinstance(item, BaseException) else item for item in found)
        if doc1 is None or doc2 is None:
            # Ids may come from a different index than the registry's primary key.
            sources = await self.invoker.invoke(
                lambda: self.registry.list_sources(owner_id), deadline=deadline
            )
            by_id = {source.id: source for source in sources}
            doc1 = doc1 or by_id.get(doc1_id)
            doc2 = doc2 or by_id.get(doc2_id)

        missing = [
            doc_id for doc_id, doc in ((doc1_id, doc1), (doc2_id, doc2)) if doc is None
        ]
        if missing:
            raise DocumentNotFound(missing, owner_id)
        return doc1, doc2

    async def _content(self, doc: DocumentHandle, owner_id: str, deadline: float | None) -> str:
        try:
            hits = await self.invoker.invoke(
                lambda: self.vectors.query_similar(
                    self.config.probe_query, owner_id, doc.id, self.config.max_chunks
                ),
                deadline=deadline,
            )
        except DeadlineExceeded:
            raise
        except Exception as exc:
            logger.warning("Chunk retrieval failed for %s: %s", doc.id, exc)
            hits = []

        joined = " ".join(hit.content for hit in hits)
        if joined.strip():
            return joined[: self.config.char_budget]

        stored = await self._stored_text(doc.id, self.texts.get_full_text, deadline)
        if not stored:
            stored = await self._stored_text(doc.id, self.texts.get_preview_text, deadline)
        return stored[: self.config.char_budget]

    async def _stored_text(
        self,
        doc_id: str,
        fetch: Callable[[str], Awaitable[str | None]],
        deadline: float | None,
    ) -> str:
        try:
            text = await self.invoker.invoke(lambda: fetch(doc_id), deadline=deadline)
        except DeadlineExceeded:
            raise
        except Exception as exc:
            logger.warning("Stored text unavailable for %s: %s", doc_id, exc)
            return ""
        return text or ""
