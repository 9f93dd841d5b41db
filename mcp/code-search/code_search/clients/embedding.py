"""Batched embedding with per-provider concurrency windows.

Providers differ only in how one chunk of texts becomes one HTTP request;
splitting, windowing, validation and ordering live here.

For a batch of N texts with tuning (concurrent_requests=C, chunk_size=S,
batch_delay_ms=D): texts are cut into ceil(N/S) chunks, at most C chunk
requests are in flight at once, and D milliseconds pass between windows.
A failed chunk fails the whole batch; there is no retry inside the client.
"""

from __future__ import annotations

import abc
import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Literal

from code_search.exceptions import DimensionMismatchError, EmbeddingResponseError
from code_search.schemas.tuning import ProviderTuning
from code_search.utils import Timer

__all__ = [
    'KNOWN_MODEL_DIMENSIONS',
    'BatchEmbeddingClient',
    'TaskIntent',
]

logger = logging.getLogger(__name__)

# 'document' for indexing, 'query' for search
type TaskIntent = Literal['document', 'query']

KNOWN_MODEL_DIMENSIONS: Mapping[str, int] = {
    'text-embedding-ada-002': 1536,
    'text-embedding-3-small': 1536,
    'text-embedding-3-large': 3072,
    'voyage-code-3': 1024,
    'voyage-3': 1024,
    'gemini-embedding-001': 3072,
    'nomic-embed-text': 768,
}

DEFAULT_DIMENSION = 1536


class BatchEmbeddingClient(abc.ABC):
    """Base class implementing EmbeddingProvider on top of one chunk request.

    Subclasses implement _embed_chunk. Dimension is taken from the first
    successful response; any later response with a different size raises
    DimensionMismatchError instead of silently mixing vector sizes.
    """

    DEFAULT_MAX_TOKENS = 8192
    # Rough characters-per-token ratio used for truncation
    CHARS_PER_TOKEN = 4

    def __init__(
        self,
        provider: str,
        model: str,
        tuning: ProviderTuning,
        *,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._provider = provider
        self._model = model
        self._tuning = tuning
        self._max_chars = max_tokens * self.CHARS_PER_TOKEN
        self._sleep = sleep
        self._dimension: int | None = None

    @property
    def model(self) -> str:
        return self._model

    @property
    def tuning(self) -> ProviderTuning:
        return self._tuning

    def get_provider(self) -> str:
        return self._provider

    def get_dimension(self) -> int:
        """Detected dimension, else the known size for the model, else 1536."""
        if self._dimension is not None:
            return self._dimension
        return KNOWN_MODEL_DIMENSIONS.get(self._model, DEFAULT_DIMENSION)

    def preprocess_text(self, text: str) -> str:
        """Normalize line endings, replace empty input, truncate to the token budget."""
        normalized = text.replace('\r\n', '\n').replace('\x00', '')
        if not normalized.strip():
            return ' '
        return normalized[: self._max_chars]

    async def embed(self, text: str) -> Sequence[float]:
        """Embed a single (query) text."""
        vectors = await self._embed_chunk_checked([self.preprocess_text(text)], intent='query')
        return vectors[0]

    async def embed_batch(self, texts: Sequence[str]) -> Sequence[Sequence[float]]:
        """Embed texts in tuned chunks and windows.

        Returns:
            One vector per input text, in input order.

        Raises:
            EmbeddingError: If any chunk fails. No partial results are returned.
        """
        if not texts:
            return []

        timer = Timer()
        processed = [self.preprocess_text(t) for t in texts]
        size = self._tuning.chunk_size
        chunks = [processed[i : i + size] for i in range(0, len(processed), size)]
        window_size = self._tuning.concurrent_requests
        windows = [chunks[i : i + window_size] for i in range(0, len(chunks), window_size)]

        vectors: list[Sequence[float]] = []
        for index, window in enumerate(windows):
            if index > 0 and self._tuning.batch_delay_ms > 0:
                await self._sleep(self._tuning.batch_delay_ms / 1000)
            vectors.extend(await self._embed_window(window))

        logger.debug(
            f'[EMBED] {self._provider}: {len(texts)} texts in {len(chunks)} chunks / '
            f'{len(windows)} windows ({timer.elapsed():.2f}s)'
        )
        return vectors

    async def close(self) -> None:
        """Release resources. Default: nothing to release."""

    async def _embed_window(self, window: Sequence[Sequence[str]]) -> list[Sequence[float]]:
        """Embed one window of chunks concurrently; the first failure cancels the rest."""
        try:
            async with asyncio.TaskGroup() as group:
                tasks = [group.create_task(self._embed_chunk_checked(chunk, intent='document')) for chunk in window]
        except ExceptionGroup as eg:
            raise eg.exceptions[0] from None
        return [vector for task in tasks for vector in task.result()]

    async def _embed_chunk_checked(self, texts: Sequence[str], *, intent: TaskIntent) -> Sequence[Sequence[float]]:
        raw = await self._embed_chunk(texts, intent=intent)
        if len(raw) != len(texts):
            raise EmbeddingResponseError(
                f'Invalid embedding data in response: expected {len(texts)} embeddings, got {len(raw)}'
            )
        vectors: list[Sequence[float]] = []
        for vector in raw:
            if not vector:
                raise EmbeddingResponseError('Invalid embedding data in response')
            self._record_dimension(len(vector))
            vectors.append(vector)
        return vectors

    def _record_dimension(self, dimension: int) -> None:
        if self._dimension is None:
            self._dimension = dimension
            logger.debug(f'[EMBED] {self._provider} {self._model} dimension: {dimension}')
        elif dimension != self._dimension:
            raise DimensionMismatchError(self._provider, self._dimension, dimension)

    @abc.abstractmethod
    async def _embed_chunk(self, texts: Sequence[str], *, intent: TaskIntent) -> Sequence[Sequence[float] | None]:
        """Send one request. Return one entry per text; None marks a missing vector."""
