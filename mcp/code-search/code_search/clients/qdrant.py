"""Low-level Qdrant vector database client.

Thin wrapper around qdrant-client. Handles API calls only - no business logic.
Uses AsyncQdrantClient for non-blocking I/O in async contexts.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from typing import Any, TypedDict
from uuid import UUID

import tenacity
from qdrant_client import AsyncQdrantClient
from qdrant_client.http.models import (
    Distance,
    FieldCondition,
    Filter,
    MatchAny,
    PayloadSchemaType,
    PointStruct,
    VectorParams,
)

from code_search.clients import _retry
from code_search.schemas.config import VectorStoreConfig

__all__ = [
    'CodeHitDict',
    'QdrantClient',
]

logger = logging.getLogger(__name__)


class CodeHitDict(TypedDict):
    """Raw search result from Qdrant."""

    id: str
    score: float
    relative_path: str
    start_line: int
    end_line: int
    file_extension: str
    language: str
    content: str


class QdrantClient:
    """Async Qdrant client for code chunk collections.

    Collection name is passed explicitly to each method - no default collection.
    """

    # Max concurrent upsert operations
    DEFAULT_MAX_CONCURRENT_UPSERTS = 4
    DEFAULT_TIMEOUT = 30

    def __init__(
        self,
        config: VectorStoreConfig,
        *,
        max_concurrent_upserts: int = DEFAULT_MAX_CONCURRENT_UPSERTS,
        timeout: int = DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize client.

        Args:
            config: Connection settings (url, api key, collection quota).
            max_concurrent_upserts: Max concurrent upsert API calls.
            timeout: HTTP timeout in seconds.
        """
        self._config = config
        self._client = AsyncQdrantClient(url=config.url, api_key=config.api_key, timeout=timeout)
        self._upsert_semaphore = asyncio.Semaphore(max_concurrent_upserts)

    @property
    def is_remote(self) -> bool:
        """True for managed instances, where reconciliation applies."""
        return self._config.is_remote

    async def list_collections(self) -> Sequence[str]:
        """Names of every collection on the server."""
        response = await self._client.get_collections()
        return [c.name for c in response.collections]

    async def collection_exists(self, collection_name: str) -> bool:
        return collection_name in await self.list_collections()

    async def can_create_collection(self) -> bool:
        """Whether one more collection fits under the configured quota.

        Without max_collections there is no quota and the answer is True.
        Errors from the server propagate unchanged.
        """
        if self._config.max_collections is None:
            return True
        existing = len(await self.list_collections())
        logger.debug(f'[QDRANT] {existing}/{self._config.max_collections} collections in use')
        return existing < self._config.max_collections

    async def ensure_collection(self, collection_name: str, vector_dimension: int) -> None:
        """Create a dense cosine collection if it doesn't exist.

        Also ensures a keyword index on file_extension for filtered search.
        """
        if not await self.collection_exists(collection_name):
            await self._client.create_collection(
                collection_name=collection_name,
                vectors_config=VectorParams(size=vector_dimension, distance=Distance.COSINE),
            )
            logger.info(f'[QDRANT] Created collection {collection_name} ({vector_dimension}d)')

        await self._client.create_payload_index(
            collection_name=collection_name,
            field_name='file_extension',
            field_schema=PayloadSchemaType.KEYWORD,
        )

    async def delete_collection(self, collection_name: str) -> None:
        """Delete a collection. Missing collections are ignored by the server."""
        await self._client.delete_collection(collection_name)

    @_retry.qdrant_breaker
    @tenacity.retry(
        retry=tenacity.retry_if_exception(_retry.is_retryable_qdrant_error),
        stop=tenacity.stop_after_attempt(3),
        wait=tenacity.wait_exponential(multiplier=0.5, max=5),
        before_sleep=_retry.log_qdrant_retry,
    )
    async def upsert(
        self,
        collection_name: str,
        points: Sequence[tuple[UUID, Sequence[float], Mapping[str, Any]]],
    ) -> int:
        """Insert or update points.

        Retries on transient network errors and 408/502/503/504.

        Args:
            collection_name: Collection name.
            points: Sequence of (id, vector, payload) tuples.

        Returns:
            Number of points upserted.
        """
        point_structs = [
            PointStruct(id=str(point_id), vector=list(vector), payload=dict(payload))
            for point_id, vector, payload in points
        ]
        async with self._upsert_semaphore:
            await self._client.upsert(collection_name=collection_name, points=point_structs)
        return len(point_structs)

    async def search(
        self,
        collection_name: str,
        vector: Sequence[float],
        *,
        limit: int = 10,
        score_threshold: float | None = None,
        extensions: Sequence[str] = (),
    ) -> Sequence[CodeHitDict]:
        """Dense similarity search, optionally restricted to file extensions."""
        query_filter = None
        if extensions:
            query_filter = Filter(must=[FieldCondition(key='file_extension', match=MatchAny(any=list(extensions)))])

        results = await self._client.query_points(
            collection_name=collection_name,
            query=list(vector),
            limit=limit,
            score_threshold=score_threshold,
            query_filter=query_filter,
            with_payload=True,
        )

        return [
            CodeHitDict(
                id=str(hit.id),
                score=hit.score,
                relative_path=hit.payload['relative_path'],
                start_line=hit.payload['start_line'],
                end_line=hit.payload['end_line'],
                file_extension=hit.payload['file_extension'],
                language=hit.payload.get('language', 'text'),
                content=hit.payload['content'],
            )
            for hit in results.points
            if hit.payload is not None
        ]

    async def first_payload(self, collection_name: str) -> Mapping[str, Any] | None:
        """Payload of one arbitrary point, or None for an empty collection."""
        points, _ = await self._client.scroll(
            collection_name=collection_name,
            limit=1,
            with_payload=True,
            with_vectors=False,
        )
        if not points or points[0].payload is None:
            return None
        return points[0].payload

    async def close(self) -> None:
        await self._client.close()
