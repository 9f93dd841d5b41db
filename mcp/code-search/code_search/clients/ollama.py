"""Embedding client for a local Ollama server (POST /api/embed)."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence

import httpx

from code_search.clients.embedding import BatchEmbeddingClient, TaskIntent
from code_search.exceptions import EmbeddingApiError, EmbeddingResponseError
from code_search.schemas.tuning import ProviderTuning

__all__ = [
    'OllamaClient',
]


class OllamaClient(BatchEmbeddingClient):
    """httpx client for Ollama's batch embed endpoint."""

    # Local models can be slow on first load
    DEFAULT_TIMEOUT_S = 120

    def __init__(
        self,
        model: str,
        tuning: ProviderTuning,
        *,
        host: str,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        super().__init__('Ollama', model, tuning, sleep=sleep)
        self._client = httpx.AsyncClient(base_url=host.rstrip('/'), timeout=timeout_s, transport=transport)

    async def _embed_chunk(self, texts: Sequence[str], *, intent: TaskIntent) -> Sequence[Sequence[float] | None]:
        response = await self._client.post('/api/embed', json={'model': self._model, 'input': list(texts)})
        if response.is_error:
            raise EmbeddingApiError(self._provider, response.status_code, response.reason_phrase, response.text)

        data = response.json()
        embeddings = data.get('embeddings') if isinstance(data, dict) else None
        if not isinstance(embeddings, list):
            raise EmbeddingResponseError('Invalid embedding data in response')
        return [e if isinstance(e, list) else None for e in embeddings]

    async def close(self) -> None:
        """Close HTTP client and release resources."""
        await self._client.aclose()
