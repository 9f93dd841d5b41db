"""Test doubles for the indexing engine, vector store, embedding provider and clock."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping, Sequence
from typing import Any
from uuid import UUID

from code_search.schemas.indexing import ProgressCallback, SearchHit
from code_search.schemas.snapshot import IndexStats


class ManualClock:
    """Monotonic clock advanced by hand."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeEngine:
    """IndexingEngine whose jobs block until released.

    Tests drive progress through the captured callback, then release the job
    to finish it (or fail it with fail_with).
    """

    def __init__(self) -> None:
        self.indexed: set[str] = set()
        self.can_create: bool | Exception = True
        self.fail_with: Exception | None = None
        self.stats = IndexStats(indexed_files=120, total_chunks=900, status='completed')
        self.hits: Sequence[SearchHit] = ()
        self.calls: list[tuple[str, str]] = []
        self.search_calls: list[Mapping[str, Any]] = []
        self.on_clear: Callable[[str], None] | None = None
        self.progress: ProgressCallback | None = None
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def index_codebase(
        self,
        path: str,
        *,
        splitter: str,
        custom_extensions: Sequence[str],
        ignore_patterns: Sequence[str],
        progress: ProgressCallback,
    ) -> IndexStats:
        self.calls.append(('index', path))
        self.progress = progress
        self.started.set()
        await self.release.wait()
        if self.fail_with is not None:
            raise self.fail_with
        self.indexed.add(path)
        return self.stats

    async def clear_index(self, path: str) -> None:
        self.calls.append(('clear', path))
        if self.on_clear is not None:
            self.on_clear(path)
        self.indexed.discard(path)

    async def has_index(self, path: str) -> bool:
        return path in self.indexed

    async def semantic_search(
        self,
        path: str,
        query: str,
        *,
        limit: int,
        threshold: float,
        extensions: Sequence[str],
    ) -> Sequence[SearchHit]:
        self.search_calls.append(
            {'path': path, 'query': query, 'limit': limit, 'threshold': threshold, 'extensions': list(extensions)}
        )
        return self.hits

    async def can_create_collection(self) -> bool:
        if isinstance(self.can_create, Exception):
            raise self.can_create
        return self.can_create


class FakeVectorStore:
    """VectorStore serving a fixed collection listing.

    payloads maps collection name to its first payload; an Exception value
    makes inspecting that collection fail.
    """

    def __init__(
        self,
        payloads: Mapping[str, Mapping[str, Any] | Exception | None] | None = None,
        *,
        remote: bool = True,
        list_error: Exception | None = None,
    ) -> None:
        self.payloads = dict(payloads or {})
        self.remote = remote
        self.list_error = list_error
        self.inspected: list[str] = []

    @property
    def is_remote(self) -> bool:
        return self.remote

    async def list_collections(self) -> Sequence[str]:
        if self.list_error is not None:
            raise self.list_error
        return list(self.payloads)

    async def first_payload(self, collection_name: str) -> Mapping[str, Any] | None:
        self.inspected.append(collection_name)
        payload = self.payloads[collection_name]
        if isinstance(payload, Exception):
            raise payload
        return payload


class MemoryQdrant:
    """QdrantClient stand-in recording collections and upserted payloads."""

    def __init__(self) -> None:
        self.collections: dict[str, int] = {}
        self.points: dict[str, dict[UUID, Mapping[str, Any]]] = {}
        self.search_args: dict[str, Any] = {}

    async def can_create_collection(self) -> bool:
        return True

    async def collection_exists(self, collection_name: str) -> bool:
        return collection_name in self.collections

    async def ensure_collection(self, collection_name: str, vector_dimension: int) -> None:
        self.collections.setdefault(collection_name, vector_dimension)
        self.points.setdefault(collection_name, {})

    async def delete_collection(self, collection_name: str) -> None:
        self.collections.pop(collection_name, None)
        self.points.pop(collection_name, None)

    async def upsert(
        self, collection_name: str, points: Sequence[tuple[UUID, Sequence[float], Mapping[str, Any]]]
    ) -> int:
        for point_id, _, payload in points:
            self.points[collection_name][point_id] = payload
        return len(points)

    async def search(self, collection_name: str, vector: Sequence[float], **kwargs: Any) -> Sequence[dict[str, Any]]:
        self.search_args = kwargs
        return [
            {
                'id': str(point_id),
                'score': 0.9,
                'relative_path': payload['relative_path'],
                'start_line': payload['start_line'],
                'end_line': payload['end_line'],
                'file_extension': payload['file_extension'],
                'language': payload['language'],
                'content': payload['content'],
            }
            for point_id, payload in self.points[collection_name].items()
        ]


class ConstantEmbedding:
    """Three-dimensional constant vectors.

    With fail_after set, batches after that many successful ones raise
    fail_with.
    """

    def __init__(self, *, fail_after: int | None = None, fail_with: Exception | None = None) -> None:
        self.batches: list[int] = []
        self.fail_after = fail_after
        self.fail_with = fail_with or RuntimeError('401 bad key')

    async def embed(self, text: str) -> Sequence[float]:
        return [1.0, 0.0, 0.0]

    async def embed_batch(self, texts: Sequence[str]) -> Sequence[Sequence[float]]:
        if self.fail_after is not None and len(self.batches) >= self.fail_after:
            raise self.fail_with
        self.batches.append(len(texts))
        return [[1.0, 0.0, 0.0] for _ in texts]

    def get_dimension(self) -> int:
        return 3

    def get_provider(self) -> str:
        return 'Constant'

    async def close(self) -> None:
        pass
