"""Question answering and summaries over a single source."""

from __future__ import annotations

import logging

from crossdoc.errors import DeadlineExceeded
from crossdoc.llm.router import ModelRouter
from crossdoc.resilience.invoker import RetryingInvoker
from crossdoc.retrieval.collaborators import VectorSimilarityService
from crossdoc.synthesis.prompts import basic_chat_messages, document_chat_messages, summary_messages
from crossdoc.types import ChatReply, ChatTurn, ProviderKind, VectorHit

logger = logging.getLogger(__name__)

CHAT_CHUNKS = 5
SUMMARY_CHUNKS = 10
SUMMARY_PROBE = "document summary overview main points"
SUMMARY_MAX_CHARS = 3000
TRUNCATION_MARKER = "\n\n[Content truncated due to length]"
NO_CONTEXT_NOTE = (
    "\n\n*Note: I don't have access to the full document content for this search. "
    "Please try asking more specific questions or check if the document was processed correctly.*"
)
EMPTY_SUMMARY = (
    "Unable to generate summary - no document content found. "
    "Please ensure the document was processed correctly."
)


class DocumentChat:
    def __init__(
        self,
        vectors: VectorSimilarityService,
        invoker: RetryingInvoker,
        router: ModelRouter,
    ) -> None:
        self.vectors = vectors
        self.invoker = invoker
        self.router = router

    async def chat(
        self,
        question: str,
        owner_id: str,
        source_id: str,
        *,
        file_name: str,
        history: list[ChatTurn] | None = None,
        force_provider: ProviderKind | None = None,
        deadline: float | None = None,
    ) -> ChatReply:
        """Answer `question` from the source's most relevant chunks.

        Without chunks the model still answers, from a prompt that admits the
        missing context, and the reply carries a note saying so.
        """

        history = history or []
        chunks = await self._chunks(question, owner_id, source_id, CHAT_CHUNKS, deadline)
        if chunks:
            messages = document_chat_messages(question, chunks, history)
        else:
            messages = basic_chat_messages(question, file_name, history)

        completion = await self.router.complete(
            messages,
            query=question,
            force_provider=force_provider,
            deadline=deadline,
        )
        response = completion.text if chunks else completion.text + NO_CONTEXT_NOTE
        return ChatReply(
            response=response,
            selection=completion.selection,
            fell_back=completion.fell_back,
        )

    async def summarize(
        self,
        source_id: str,
        owner_id: str,
        file_name: str,
        *,
        deadline: float | None = None,
    ) -> str:
        chunks = await self._chunks(SUMMARY_PROBE, owner_id, source_id, SUMMARY_CHUNKS, deadline)
        content = " ".join(chunk.content for chunk in chunks)
        if not content.strip():
            return EMPTY_SUMMARY
        if len(content) > SUMMARY_MAX_CHARS:
            content = content[:SUMMARY_MAX_CHARS] + TRUNCATION_MARKER

        completion = await self.router.complete(
            summary_messages(file_name, content),
            query=f'Summarize the document "{file_name}"',
            deadline=deadline,
        )
        return completion.text

    async def _chunks(
        self,
        query: str,
        owner_id: str,
        source_id: str,
        top_k: int,
        deadline: float | None,
    ) -> list[VectorHit]:
        try:
            hits = await self.invoker.invoke(
                lambda: self.vectors.query_similar(query, owner_id, source_id, top_k),
                deadline=deadline,
            )
        except DeadlineExceeded:
            raise
        except Exception as exc:
            logger.warning("Chunk retrieval failed for %s: %s", source_id, exc)
            return []
        return list(hits)
