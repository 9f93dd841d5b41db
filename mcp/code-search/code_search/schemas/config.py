"""Server configuration schema.

Everything is sourced from environment variables. Over the HTTP transport the
embedding and vector store connection parameters, and the default
project/branch, can be reset per request with headers (see
HEADER_ENVIRONMENT_MAP); the headers are overlaid on the environment and the
result loaded through the same path.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Annotated, ClassVar, Literal

from pydantic import Field, TypeAdapter

from code_search.exceptions import InvalidRequestError
from code_search.schemas.base import StrictModel
from code_search.schemas.tuning import ProviderName

__all__ = [
    'HEADER_ENVIRONMENT_MAP',
    'EmbeddingConfig',
    'GeminiConfig',
    'IbthinkConfig',
    'OllamaConfig',
    'OpenAIConfig',
    'ServerConfig',
    'Transport',
    'VectorStoreConfig',
    'VoyageAIConfig',
    'environ_with_headers',
    'load_config',
    'load_embedding_config',
]

logger = logging.getLogger(__name__)

type Transport = Literal['stdio', 'sse', 'streamable-http']

DEFAULT_OPENAI_BASE_URL = 'https://api.openai.com/v1'

# Request header -> environment variable it overrides
HEADER_ENVIRONMENT_MAP: Mapping[str, str] = {
    'x-embedding-provider': 'EMBEDDING_PROVIDER',
    'x-embedding-model': 'EMBEDDING_MODEL',
    'x-openai-api-key': 'OPENAI_API_KEY',
    'x-openai-base-url': 'OPENAI_BASE_URL',
    'x-qdrant-url': 'QDRANT_URL',
    'x-qdrant-api-key': 'QDRANT_API_KEY',
    'x-default-project': 'DEFAULT_PROJECT',
    'x-default-branch': 'DEFAULT_BRANCH',
}


class _ApiKeyConfig(StrictModel):
    """Shared credential check for hosted providers."""

    display_name: ClassVar[str]
    api_key_variable: ClassVar[str]

    api_key: Annotated[str | None, Field(repr=False)] = None

    def require_api_key(self) -> str:
        if not self.api_key:
            raise InvalidRequestError(
                f'{self.display_name} embedding requires an API key. Set {self.api_key_variable}.'
            )
        return self.api_key


class OpenAIConfig(_ApiKeyConfig):
    """OpenAI embeddings API."""

    display_name: ClassVar[str] = 'OpenAI'
    api_key_variable: ClassVar[str] = 'OPENAI_API_KEY'

    provider: Literal['openai'] = 'openai'
    model: str = 'text-embedding-3-small'
    base_url: str = DEFAULT_OPENAI_BASE_URL


class IbthinkConfig(_ApiKeyConfig):
    """Ibthink gateway: OpenAI-compatible embeddings behind a private base URL."""

    display_name: ClassVar[str] = 'Ibthink'
    api_key_variable: ClassVar[str] = 'IBTHINK_API_KEY'

    provider: Literal['ibthink'] = 'ibthink'
    model: str = 'text-embedding-3-small'
    base_url: str = DEFAULT_OPENAI_BASE_URL


class VoyageAIConfig(_ApiKeyConfig):
    """VoyageAI embeddings API (OpenAI-shaped responses)."""

    display_name: ClassVar[str] = 'VoyageAI'
    api_key_variable: ClassVar[str] = 'VOYAGEAI_API_KEY'

    provider: Literal['voyageai'] = 'voyageai'
    model: str = 'voyage-code-3'
    base_url: str = 'https://api.voyageai.com/v1'


class GeminiConfig(_ApiKeyConfig):
    """Gemini embeddings through google-genai."""

    display_name: ClassVar[str] = 'Gemini'
    api_key_variable: ClassVar[str] = 'GEMINI_API_KEY'

    provider: Literal['gemini'] = 'gemini'
    model: str = 'gemini-embedding-001'
    base_url: str | None = None


class OllamaConfig(StrictModel):
    """Local Ollama server. No credentials."""

    display_name: ClassVar[str] = 'Ollama'

    provider: Literal['ollama'] = 'ollama'
    model: str = 'nomic-embed-text'
    host: str = 'http://127.0.0.1:11434'


# Discriminated union - type alias for annotations
type EmbeddingConfig = OpenAIConfig | IbthinkConfig | VoyageAIConfig | GeminiConfig | OllamaConfig

# TypeAdapter for deserializing with discriminator
_embedding_config_adapter: TypeAdapter[
    OpenAIConfig | IbthinkConfig | VoyageAIConfig | GeminiConfig | OllamaConfig
] = TypeAdapter(
    Annotated[
        OpenAIConfig | IbthinkConfig | VoyageAIConfig | GeminiConfig | OllamaConfig,
        Field(discriminator='provider'),
    ]
)


class VectorStoreConfig(StrictModel):
    """Qdrant connection.

    max_collections caps how many collections may exist (managed plans
    enforce a quota); None means unlimited.
    """

    url: str = 'http://localhost:6333'
    api_key: Annotated[str | None, Field(repr=False)] = None
    max_collections: int | None = None

    @property
    def is_remote(self) -> bool:
        """True for managed/cloud instances, detected by address shape."""
        return self.url.startswith('https') or 'cloud.qdrant.io' in self.url


class ServerConfig(StrictModel):
    """Complete server configuration."""

    embedding: Annotated[
        OpenAIConfig | IbthinkConfig | VoyageAIConfig | GeminiConfig | OllamaConfig,
        Field(discriminator='provider'),
    ]
    vector_store: VectorStoreConfig
    repos_base_path: Path
    default_project: str | None = None
    default_branch: str = 'prod'
    server_name: str = 'code-search'
    transport: Transport = 'stdio'
    http_host: str = 'localhost'
    http_port: int = 3000

    @property
    def default_codebase_path(self) -> Path | None:
        """{base}/{project}/{branch}, or None without a default project."""
        if not self.default_project:
            return None
        return self.repos_base_path / self.default_project / self.default_branch


_PROVIDER_ALIASES: Mapping[str, ProviderName] = {
    'openai': 'openai',
    'ibthink': 'ibthink',
    'voyageai': 'voyageai',
    'voyage': 'voyageai',
    'gemini': 'gemini',
    'ollama': 'ollama',
}


def load_embedding_config(environ: Mapping[str, str]) -> EmbeddingConfig:
    """Build the embedding config for EMBEDDING_PROVIDER.

    Raises:
        InvalidRequestError: If the provider name is unknown.
    """
    raw_provider = environ.get('EMBEDDING_PROVIDER', 'OpenAI')
    provider = _PROVIDER_ALIASES.get(raw_provider.strip().lower())
    if provider is None:
        supported = 'OpenAI, Ibthink, VoyageAI, Gemini, Ollama'
        raise InvalidRequestError(f"Unknown EMBEDDING_PROVIDER '{raw_provider}'. Supported: {supported}")

    data: dict[str, object] = {'provider': provider}
    model = environ.get('EMBEDDING_MODEL')
    if model:
        data['model'] = model

    match provider:
        case 'openai':
            data['api_key'] = environ.get('OPENAI_API_KEY')
            data['base_url'] = environ.get('OPENAI_BASE_URL') or DEFAULT_OPENAI_BASE_URL
        case 'ibthink':
            data['api_key'] = environ.get('IBTHINK_API_KEY') or environ.get('OPENAI_API_KEY')
            data['base_url'] = (
                environ.get('IBTHINK_BASE_URL') or environ.get('OPENAI_BASE_URL') or DEFAULT_OPENAI_BASE_URL
            )
        case 'voyageai':
            data['api_key'] = environ.get('VOYAGEAI_API_KEY')
        case 'gemini':
            data['api_key'] = environ.get('GEMINI_API_KEY')
            data['base_url'] = environ.get('GEMINI_BASE_URL') or None
        case 'ollama':
            # OLLAMA_MODEL takes priority over EMBEDDING_MODEL
            ollama_model = environ.get('OLLAMA_MODEL')
            if ollama_model:
                data['model'] = ollama_model
            host = environ.get('OLLAMA_HOST')
            if host:
                data['host'] = host

    return _embedding_config_adapter.validate_python(data)


def load_config(environ: Mapping[str, str] | None = None) -> ServerConfig:
    """Load server configuration from environment variables.

    Raises:
        InvalidRequestError: If a variable holds an unusable value.
    """
    env = os.environ if environ is None else environ

    max_collections = _optional_int(env, 'QDRANT_MAX_COLLECTIONS')
    vector_store = VectorStoreConfig(
        url=env.get('QDRANT_URL') or 'http://localhost:6333',
        api_key=env.get('QDRANT_API_KEY') or None,
        max_collections=max_collections,
    )

    base_path = env.get('REPOS_BASE_PATH')
    repos_base_path = Path(base_path).expanduser() if base_path else Path.cwd() / 'repos'

    transport = env.get('MCP_TRANSPORT', 'stdio')
    if transport not in ('stdio', 'sse', 'streamable-http'):
        raise InvalidRequestError(f"Unknown MCP_TRANSPORT '{transport}'. Use stdio, sse or streamable-http.")

    return ServerConfig(
        embedding=load_embedding_config(env),
        vector_store=vector_store,
        repos_base_path=repos_base_path.resolve(),
        default_project=env.get('DEFAULT_PROJECT') or None,
        default_branch=env.get('DEFAULT_BRANCH') or 'prod',
        server_name=env.get('MCP_SERVER_NAME') or 'code-search',
        transport=transport,
        http_host=env.get('MCP_HTTP_HOST') or 'localhost',
        http_port=_optional_int(env, 'MCP_HTTP_PORT') or 3000,
    )


def environ_with_headers(environ: Mapping[str, str], headers: Mapping[str, str]) -> Mapping[str, str]:
    """Overlay recognised request headers onto an environment mapping.

    Header names are matched case-insensitively; empty values are ignored.
    """
    overlay: dict[str, str] = {}
    lowered = {name.lower(): value for name, value in headers.items()}
    for header, variable in HEADER_ENVIRONMENT_MAP.items():
        value = lowered.get(header)
        if value:
            overlay[variable] = value
    if not overlay:
        return environ
    logger.debug(f'[CONFIG] Request headers override: {sorted(overlay)}')
    return {**environ, **overlay}


def _optional_int(environ: Mapping[str, str], name: str) -> int | None:
    value = environ.get(name)
    if not value:
        return None
    try:
        return int(value)
    except ValueError as e:
        raise InvalidRequestError(f'{name} must be an integer, got {value!r}') from e
