"""Pydantic schemas for code search."""

from __future__ import annotations

from code_search.schemas.base import CamelModel, JsonDatetime, StrictModel
from code_search.schemas.config import (
    EmbeddingConfig,
    GeminiConfig,
    IbthinkConfig,
    OllamaConfig,
    OpenAIConfig,
    ServerConfig,
    VectorStoreConfig,
    VoyageAIConfig,
    load_config,
)
from code_search.schemas.indexing import (
    IndexOptions,
    ProgressCallback,
    SearchHit,
    Splitter,
    StartedIndexing,
)
from code_search.schemas.snapshot import (
    CodebaseIndexed,
    CodebaseIndexFailed,
    CodebaseIndexing,
    CodebaseRecord,
    CodebaseSnapshot,
    IndexStats,
    LegacySnapshot,
    parse_snapshot,
)
from code_search.schemas.tools import ToolResult
from code_search.schemas.tuning import ProviderTuning, SnapshotTuning, TuningProfile, load_tuning

__all__ = [
    # Base
    'CamelModel',
    'JsonDatetime',
    'StrictModel',
    # Config
    'EmbeddingConfig',
    'GeminiConfig',
    'IbthinkConfig',
    'OllamaConfig',
    'OpenAIConfig',
    'ServerConfig',
    'VectorStoreConfig',
    'VoyageAIConfig',
    'load_config',
    # Indexing
    'IndexOptions',
    'ProgressCallback',
    'SearchHit',
    'Splitter',
    'StartedIndexing',
    # Snapshot
    'CodebaseIndexFailed',
    'CodebaseIndexed',
    'CodebaseIndexing',
    'CodebaseRecord',
    'CodebaseSnapshot',
    'IndexStats',
    'LegacySnapshot',
    'parse_snapshot',
    # Tools
    'ToolResult',
    # Tuning
    'ProviderTuning',
    'SnapshotTuning',
    'TuningProfile',
    'load_tuning',
]
