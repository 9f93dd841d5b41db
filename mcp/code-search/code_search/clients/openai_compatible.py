"""Embedding client for OpenAI-compatible /embeddings APIs.

Covers OpenAI, the Ibthink gateway and VoyageAI: all accept
``{"model": ..., "input": [...]}`` and answer ``{"data": [{"index", "embedding"}]}``.

API Reference: https://platform.openai.com/docs/api-reference/embeddings/create
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence

import httpx

from code_search.clients.embedding import BatchEmbeddingClient, TaskIntent
from code_search.exceptions import EmbeddingApiError, EmbeddingResponseError
from code_search.schemas.tuning import ProviderTuning

__all__ = [
    'OpenAICompatibleClient',
]


class OpenAICompatibleClient(BatchEmbeddingClient):
    """httpx client for OpenAI-shaped embedding endpoints."""

    # HTTP client configuration
    DEFAULT_TIMEOUT_S = 60
    DEFAULT_MAX_CONNECTIONS = 20
    DEFAULT_KEEPALIVE_EXPIRY = 30  # Seconds before idle close

    def __init__(
        self,
        provider: str,
        model: str,
        tuning: ProviderTuning,
        *,
        api_key: str,
        base_url: str,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize client.

        Args:
            provider: Display name used in errors and logs ('OpenAI', 'Ibthink', 'VoyageAI').
            model: Embedding model identifier.
            tuning: Batch window settings for this provider.
            api_key: Bearer token.
            base_url: API root; '/embeddings' is appended.
            timeout_s: Request timeout in seconds.
            transport: Optional httpx transport (tests use httpx.MockTransport).
            sleep: Awaitable sleep used between windows.
        """
        super().__init__(provider, model, tuning, sleep=sleep)
        limits = httpx.Limits(
            max_connections=max(self.DEFAULT_MAX_CONNECTIONS, tuning.concurrent_requests),
            keepalive_expiry=self.DEFAULT_KEEPALIVE_EXPIRY,
        )
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip('/'),
            headers={
                'Authorization': f'Bearer {api_key}',
                'Content-Type': 'application/json',
            },
            timeout=timeout_s,
            limits=limits,
            transport=transport,
        )

    async def _embed_chunk(self, texts: Sequence[str], *, intent: TaskIntent) -> Sequence[Sequence[float] | None]:
        response = await self._client.post('/embeddings', json={'input': list(texts), 'model': self._model})
        if response.is_error:
            raise EmbeddingApiError(self._provider, response.status_code, response.reason_phrase, response.text)

        data = response.json()
        items = data.get('data') if isinstance(data, dict) else None
        if not isinstance(items, list):
            raise EmbeddingResponseError('Invalid embedding data in response')

        # Sort by index to ensure order matches input
        if all(isinstance(item, dict) and isinstance(item.get('index'), int) for item in items):
            items = sorted(items, key=lambda item: item['index'])
        return [item.get('embedding') if isinstance(item, dict) else None for item in items]

    async def close(self) -> None:
        """Close HTTP client and release resources."""
        await self._client.aclose()
