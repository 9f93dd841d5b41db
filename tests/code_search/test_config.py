"""Tests for environment configuration, header overrides and tuning profiles."""

from __future__ import annotations

from pathlib import Path

import pytest
from code_search.clients import GeminiClient, OllamaClient, OpenAICompatibleClient, create_embedding_provider
from code_search.exceptions import InvalidRequestError
from code_search.schemas.config import (
    GeminiConfig,
    IbthinkConfig,
    OllamaConfig,
    OpenAIConfig,
    VectorStoreConfig,
    VoyageAIConfig,
    environ_with_headers,
    load_config,
    load_embedding_config,
)
from code_search.schemas.tuning import FALLBACK_PROVIDER_TUNING, load_tuning


class TestLoadConfig:
    """Environment variables to ServerConfig."""

    def test_defaults(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        config = load_config({})

        assert isinstance(config.embedding, OpenAIConfig)
        assert config.embedding.model == 'text-embedding-3-small'
        assert config.vector_store.url == 'http://localhost:6333'
        assert config.repos_base_path == (tmp_path / 'repos').resolve()
        assert config.default_branch == 'prod'
        assert config.default_codebase_path is None
        assert config.transport == 'stdio'
        assert config.http_port == 3000

    def test_default_codebase_path(self, tmp_path: Path) -> None:
        config = load_config({'REPOS_BASE_PATH': str(tmp_path), 'DEFAULT_PROJECT': 'shop', 'DEFAULT_BRANCH': 'dev'})
        assert config.default_codebase_path == tmp_path.resolve() / 'shop' / 'dev'

    @pytest.mark.parametrize(
        'environ, message',
        [
            ({'QDRANT_MAX_COLLECTIONS': 'many'}, 'QDRANT_MAX_COLLECTIONS must be an integer'),
            ({'MCP_TRANSPORT': 'carrier-pigeon'}, 'Unknown MCP_TRANSPORT'),
            ({'EMBEDDING_PROVIDER': 'Cohere'}, 'Unknown EMBEDDING_PROVIDER'),
        ],
    )
    def test_invalid_values(self, environ: dict[str, str], message: str) -> None:
        with pytest.raises(InvalidRequestError, match=message):
            load_config(environ)


class TestEmbeddingConfig:
    """Provider selection and credential fallbacks."""

    @pytest.mark.parametrize(
        'provider, expected_type, model',
        [
            ('OpenAI', OpenAIConfig, 'text-embedding-3-small'),
            ('ibthink', IbthinkConfig, 'text-embedding-3-small'),
            ('VoyageAI', VoyageAIConfig, 'voyage-code-3'),
            ('GEMINI', GeminiConfig, 'gemini-embedding-001'),
            ('Ollama', OllamaConfig, 'nomic-embed-text'),
        ],
    )
    def test_provider_defaults(self, provider: str, expected_type: type, model: str) -> None:
        config = load_embedding_config({'EMBEDDING_PROVIDER': provider})
        assert isinstance(config, expected_type)
        assert config.model == model

    def test_ibthink_falls_back_to_openai_credentials(self) -> None:
        config = load_embedding_config(
            {'EMBEDDING_PROVIDER': 'Ibthink', 'OPENAI_API_KEY': 'sk-1', 'OPENAI_BASE_URL': 'https://gw.test/v1'}
        )
        assert isinstance(config, IbthinkConfig)
        assert config.api_key == 'sk-1'
        assert config.base_url == 'https://gw.test/v1'

    def test_ollama_model_wins(self) -> None:
        config = load_embedding_config(
            {'EMBEDDING_PROVIDER': 'Ollama', 'EMBEDDING_MODEL': 'a', 'OLLAMA_MODEL': 'b', 'OLLAMA_HOST': 'http://h:1'}
        )
        assert isinstance(config, OllamaConfig)
        assert (config.model, config.host) == ('b', 'http://h:1')

    def test_api_key_not_in_repr(self) -> None:
        config = load_embedding_config({'OPENAI_API_KEY': 'sk-secret'})
        assert 'sk-secret' not in repr(config)


class TestHeaderOverrides:
    """Per-request headers overlay the environment."""

    def test_headers_override_environment(self, tmp_path: Path) -> None:
        environ = {'REPOS_BASE_PATH': str(tmp_path), 'DEFAULT_PROJECT': 'shop', 'QDRANT_URL': 'http://localhost:6333'}
        headers = {
            'X-Default-Project': 'blog',
            'x-qdrant-url': 'https://abc.cloud.qdrant.io',
            'x-embedding-provider': '',
            'authorization': 'Bearer ignored',
        }

        config = load_config(environ_with_headers(environ, headers))

        assert config.default_project == 'blog'
        assert config.vector_store.is_remote
        assert isinstance(config.embedding, OpenAIConfig)

    def test_no_recognised_headers_returns_same_mapping(self) -> None:
        environ = {'DEFAULT_PROJECT': 'shop'}
        assert environ_with_headers(environ, {'accept': 'application/json'}) is environ


class TestVectorStoreConfig:
    @pytest.mark.parametrize(
        'url, remote',
        [
            ('http://localhost:6333', False),
            ('https://qdrant.internal:6333', True),
            ('http://xyz.eu-central.aws.cloud.qdrant.io:6333', True),
        ],
    )
    def test_is_remote(self, url: str, remote: bool) -> None:
        assert VectorStoreConfig(url=url).is_remote is remote


class TestTuning:
    """Tuning profiles per environment."""

    def test_production_defaults(self) -> None:
        tuning = load_tuning({})
        assert tuning.environment == 'production'
        openai = tuning.for_provider('OpenAI')
        assert (openai.concurrent_requests, openai.chunk_size, openai.batch_delay_ms) == (5, 100, 200)
        assert tuning.for_provider('ollama').concurrent_requests == 1
        assert tuning.snapshot.save_interval_ms == 15_000
        assert not tuning.debug_logging

    def test_development_overrides(self) -> None:
        tuning = load_tuning({'CODE_SEARCH_ENV': 'development'})
        assert tuning.for_provider('ibthink').concurrent_requests == 2
        assert tuning.for_provider('openai').concurrent_requests == 3
        assert tuning.debug_logging

    def test_test_overrides(self) -> None:
        tuning = load_tuning({'CODE_SEARCH_ENV': 'test'})
        assert tuning.for_provider('openai').concurrent_requests == 1
        assert tuning.snapshot.save_interval_ms == 5_000

    def test_unknown_provider_uses_fallback(self) -> None:
        assert load_tuning({}).for_provider('mystery') == FALLBACK_PROVIDER_TUNING

    def test_unknown_environment_is_production(self) -> None:
        assert load_tuning({'CODE_SEARCH_ENV': 'staging'}).environment == 'production'


class TestCreateEmbeddingProvider:
    """Factory dispatch per provider config."""

    async def test_openai_compatible(self) -> None:
        client = create_embedding_provider(VoyageAIConfig(api_key='pa-1'), load_tuning({}))
        assert isinstance(client, OpenAICompatibleClient)
        assert client.get_provider() == 'VoyageAI'
        assert client.tuning.concurrent_requests == 4
        await client.close()

    async def test_ollama(self) -> None:
        client = create_embedding_provider(OllamaConfig(), load_tuning({}))
        assert isinstance(client, OllamaClient)
        await client.close()

    def test_gemini(self) -> None:
        client = create_embedding_provider(GeminiConfig(api_key='g-1'), load_tuning({}))
        assert isinstance(client, GeminiClient)

    def test_missing_api_key(self) -> None:
        with pytest.raises(InvalidRequestError, match='OPENAI_API_KEY'):
            create_embedding_provider(OpenAIConfig(), load_tuning({}))
