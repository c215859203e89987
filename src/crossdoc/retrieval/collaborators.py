"""Contracts for the external systems the engine reads from."""

from __future__ import annotations

from typing import Protocol

from crossdoc.types import DocumentHandle, VectorHit


class DocumentRegistry(Protocol):
    """Document database view. Listing order is creation order."""

    async def list_sources(self, owner_id: str) -> list[DocumentHandle]:
        """Return every source the owner can see, in creation order."""

    async def get_source(self, source_id: str, owner_id: str) -> DocumentHandle | None:
        """Direct lookup by id; None when the id is unknown to this index."""


class VectorSimilarityService(Protocol):
    """Vector search scoped to one owner and one source."""

    async def query_similar(
        self,
        query_text: str,
        owner_id: str,
        source_id: str,
        top_k: int,
    ) -> list[VectorHit]:
        """Return up to `top_k` hits ordered by descending relevance."""


class TextAccess(Protocol):
    """Raw stored text, used only when vector retrieval yields nothing."""

    async def get_preview_text(self, source_id: str) -> str | None:
        """Short stored preview of the source, if any."""

    async def get_full_text(self, source_id: str) -> str | None:
        """Full stored text of the source, if any."""
