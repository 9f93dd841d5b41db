"""Protocols for the collaborators the orchestration layer depends on."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from code_search.schemas.indexing import ProgressCallback, SearchHit
from code_search.schemas.snapshot import IndexStats

__all__ = [
    'EmbeddingProvider',
    'IndexingEngine',
    'VectorStore',
]


class EmbeddingProvider(Protocol):
    """Turns text into embedding vectors.

    Injected into the indexing engine at construction; any implementation
    works, there is no provider special-casing downstream.
    """

    async def embed(self, text: str) -> Sequence[float]: ...

    async def embed_batch(self, texts: Sequence[str]) -> Sequence[Sequence[float]]:
        """Embed texts. Output length and order match the input exactly."""
        ...

    def get_dimension(self) -> int: ...

    def get_provider(self) -> str: ...

    async def close(self) -> None: ...


class IndexingEngine(Protocol):
    """Chunks, embeds and stores one codebase; answers semantic queries."""

    async def index_codebase(
        self,
        path: str,
        *,
        splitter: str,
        custom_extensions: Sequence[str],
        ignore_patterns: Sequence[str],
        progress: ProgressCallback,
    ) -> IndexStats: ...

    async def clear_index(self, path: str) -> None: ...

    async def has_index(self, path: str) -> bool: ...

    async def semantic_search(
        self,
        path: str,
        query: str,
        *,
        limit: int,
        threshold: float,
        extensions: Sequence[str],
    ) -> Sequence[SearchHit]: ...

    async def can_create_collection(self) -> bool:
        """Pre-flight capacity check. Provider errors propagate unchanged."""
        ...


class VectorStore(Protocol):
    """The slice of the vector store that reconciliation reads."""

    @property
    def is_remote(self) -> bool: ...

    async def list_collections(self) -> Sequence[str]: ...

    async def first_payload(
        self, collection_name: str
    ) -> Mapping[str, Any] | None: ...
