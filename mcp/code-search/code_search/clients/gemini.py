"""Gemini embedding client.

Thin wrapper around google-genai's native async API (client.aio).
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Literal

from google import genai
from google.genai.types import EmbedContentConfig, HttpOptions

from code_search.clients.embedding import BatchEmbeddingClient, TaskIntent
from code_search.schemas.tuning import ProviderTuning

__all__ = [
    'GeminiClient',
]

type GeminiTaskType = Literal['RETRIEVAL_DOCUMENT', 'CODE_RETRIEVAL_QUERY']


class GeminiClient(BatchEmbeddingClient):
    """Gemini embeddings with task types for asymmetric code retrieval."""

    DEFAULT_TIMEOUT_MS = 60_000

    INTENT_TO_GEMINI_TASK: Mapping[TaskIntent, GeminiTaskType] = {
        'document': 'RETRIEVAL_DOCUMENT',
        'query': 'CODE_RETRIEVAL_QUERY',
    }

    def __init__(
        self,
        model: str,
        tuning: ProviderTuning,
        *,
        api_key: str,
        base_url: str | None = None,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ) -> None:
        super().__init__('Gemini', model, tuning)
        http_options = HttpOptions(timeout=timeout_ms, base_url=base_url)
        self._client = genai.Client(api_key=api_key, http_options=http_options)

    async def _embed_chunk(self, texts: Sequence[str], *, intent: TaskIntent) -> Sequence[Sequence[float] | None]:
        result = await self._client.aio.models.embed_content(
            model=self._model,
            contents=list(texts),
            config=EmbedContentConfig(task_type=self.INTENT_TO_GEMINI_TASK[intent]),
        )
        embeddings = result.embeddings or []
        return [list(e.values) if e.values else None for e in embeddings]

    async def close(self) -> None:
        """No-op: google-genai Client manages its own HTTP lifecycle."""
