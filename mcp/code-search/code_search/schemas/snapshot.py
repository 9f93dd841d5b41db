"""Indexing state snapshot schemas.

One CodebaseRecord per codebase path, tagged by ``status``. The snapshot file
is written in the v2 layout only; the legacy v1 layout (flat path lists) is
read and upgraded in memory.

v2 on disk::

    {
      "formatVersion": "v2",
      "codebases": {
        "/repos/p/prod": {"status": "indexed", "indexedFiles": 120, ...}
      },
      "lastUpdated": "2026-01-01T00:00:00Z"
    }

v1 on disk::

    {"indexedCodebases": ["/a"], "indexingCodebases": ["/b"] | {"/b": 42}, "lastUpdated": "..."}
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import Annotated, Any, Literal

from pydantic import Field, TypeAdapter

from code_search.schemas.base import CamelModel, JsonDatetime

__all__ = [
    'CodebaseIndexFailed',
    'CodebaseIndexed',
    'CodebaseIndexing',
    'CodebaseRecord',
    'CodebaseSnapshot',
    'CodebaseStatus',
    'IndexCompletionStatus',
    'IndexStats',
    'LegacySnapshot',
    'parse_snapshot',
]

type CodebaseStatus = Literal['indexing', 'indexed', 'indexfailed']
type IndexCompletionStatus = Literal['completed', 'limit_reached']

type Percentage = Annotated[float, Field(ge=0, le=100)]


class CodebaseIndexing(CamelModel):
    """Indexing job in flight."""

    status: Literal['indexing'] = 'indexing'
    indexing_percentage: Percentage
    last_updated: JsonDatetime


class CodebaseIndexed(CamelModel):
    """Indexing finished. Counts are None when upgraded from a v1 snapshot."""

    status: Literal['indexed'] = 'indexed'
    indexed_files: int | None
    total_chunks: int | None
    index_status: IndexCompletionStatus
    last_updated: JsonDatetime


class CodebaseIndexFailed(CamelModel):
    """Last indexing attempt failed. Retry is always allowed."""

    status: Literal['indexfailed'] = 'indexfailed'
    error_message: Annotated[str, Field(min_length=1)]
    last_attempted_percentage: Percentage | None = None
    last_updated: JsonDatetime


type CodebaseRecord = CodebaseIndexing | CodebaseIndexed | CodebaseIndexFailed


class IndexStats(CamelModel):
    """Summary reported by the indexing engine on success."""

    indexed_files: int
    total_chunks: int
    status: IndexCompletionStatus


class CodebaseSnapshot(CamelModel):
    """Current (v2) snapshot layout."""

    format_version: Literal['v2'] = 'v2'
    codebases: Mapping[
        str,
        Annotated[
            CodebaseIndexing | CodebaseIndexed | CodebaseIndexFailed,
            Field(discriminator='status'),
        ],
    ]
    last_updated: JsonDatetime

    @classmethod
    def empty(cls) -> CodebaseSnapshot:
        return cls(codebases={}, last_updated=datetime.now(UTC))


class LegacySnapshot(CamelModel):
    """v1 layout: indexed paths plus indexing paths (list, or map to percentage)."""

    indexed_codebases: Sequence[str] = ()
    indexing_codebases: Sequence[str] | Mapping[str, float] = ()
    last_updated: JsonDatetime | None = None

    def upgrade(self) -> CodebaseSnapshot:
        """Map v1 entries onto v2 records.

        Indexed paths get unknown counts. Indexing entries without a percentage
        start at 0. A path listed in both is treated as indexing, the more
        recent of the two states.
        """
        stamp = self.last_updated or datetime.now(UTC)
        codebases: dict[str, CodebaseRecord] = {}
        for path in self.indexed_codebases:
            codebases[path] = CodebaseIndexed(
                indexed_files=None,
                total_chunks=None,
                index_status='completed',
                last_updated=stamp,
            )

        if isinstance(self.indexing_codebases, Mapping):
            indexing = dict(self.indexing_codebases)
        else:
            indexing = dict.fromkeys(self.indexing_codebases, 0.0)
        for path, percentage in indexing.items():
            codebases[path] = CodebaseIndexing(
                indexing_percentage=min(max(float(percentage), 0.0), 100.0),
                last_updated=stamp,
            )

        return CodebaseSnapshot(codebases=codebases, last_updated=stamp)


_snapshot_adapter: TypeAdapter[CodebaseSnapshot] = TypeAdapter(CodebaseSnapshot)


def parse_snapshot(data: Mapping[str, Any]) -> CodebaseSnapshot:
    """Validate raw snapshot JSON, upgrading the v1 layout when detected.

    Raises:
        pydantic.ValidationError: If the data matches neither layout.
        ValueError: If formatVersion names an unknown version.
    """
    version = data.get('formatVersion')
    if version == 'v2':
        return _snapshot_adapter.validate_python(data)
    if version is None or version == 'v1':
        legacy_data = {k: v for k, v in data.items() if k != 'formatVersion'}
        return LegacySnapshot.model_validate(legacy_data).upgrade()
    raise ValueError(f'Unsupported snapshot formatVersion: {version!r}')

