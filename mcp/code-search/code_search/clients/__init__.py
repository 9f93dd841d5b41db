"""API clients for embedding providers and the vector store."""

from __future__ import annotations

from code_search.clients.embedding import KNOWN_MODEL_DIMENSIONS, BatchEmbeddingClient
from code_search.clients.gemini import GeminiClient
from code_search.clients.ollama import OllamaClient
from code_search.clients.openai_compatible import OpenAICompatibleClient
from code_search.clients.protocols import EmbeddingProvider, IndexingEngine, VectorStore
from code_search.clients.qdrant import QdrantClient
from code_search.schemas.config import (
    EmbeddingConfig,
    GeminiConfig,
    IbthinkConfig,
    OllamaConfig,
    OpenAIConfig,
    VoyageAIConfig,
)
from code_search.schemas.tuning import TuningProfile

__all__ = [
    'KNOWN_MODEL_DIMENSIONS',
    'BatchEmbeddingClient',
    'EmbeddingProvider',
    'GeminiClient',
    'IndexingEngine',
    'OllamaClient',
    'OpenAICompatibleClient',
    'QdrantClient',
    'VectorStore',
    'create_embedding_provider',
]


def create_embedding_provider(config: EmbeddingConfig, tuning: TuningProfile) -> BatchEmbeddingClient:
    """Create the embedding client for a provider config.

    Raises:
        InvalidRequestError: If the provider needs an API key and none is set.
    """
    provider_tuning = tuning.for_provider(config.provider)
    match config:
        case OpenAIConfig() | IbthinkConfig() | VoyageAIConfig():
            return OpenAICompatibleClient(
                config.display_name,
                config.model,
                provider_tuning,
                api_key=config.require_api_key(),
                base_url=config.base_url,
            )
        case GeminiConfig():
            return GeminiClient(
                config.model,
                provider_tuning,
                api_key=config.require_api_key(),
                base_url=config.base_url,
            )
        case OllamaConfig():
            return OllamaClient(config.model, provider_tuning, host=config.host)
        case _:
            raise TypeError(f'Unknown embedding config type: {type(config)}')
