"""Indexing request and result schemas."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Literal

from code_search.schemas.base import StrictModel

__all__ = [
    'IndexOptions',
    'ProgressCallback',
    'SearchHit',
    'Splitter',
    'StartedIndexing',
]

type Splitter = Literal['ast', 'langchain']

# Receives overall progress as a percentage in [0, 100]
type ProgressCallback = Callable[[float], None]


class IndexOptions(StrictModel):
    """Options for one index request."""

    force: bool = False
    splitter: str = 'ast'  # validated by the orchestrator so the caller gets a readable error
    custom_extensions: Sequence[str] = ()
    ignore_patterns: Sequence[str] = ()


class StartedIndexing(StrictModel):
    """Acknowledgement returned once a background job has been dispatched."""

    path: str
    splitter: Splitter
    custom_extensions: Sequence[str] = ()
    ignore_patterns: Sequence[str] = ()
    retried_failure: str | None = None  # error message of the failed record being retried

    def to_message(self) -> str:
        splitter_name = 'AST' if self.splitter == 'ast' else 'LangChain'
        lines = [
            f"Started background indexing for codebase '{self.path}' using {splitter_name} splitter.",
        ]
        if self.retried_failure is not None:
            lines.append(f'Retrying after previous failure: {self.retried_failure}')
        if self.custom_extensions:
            lines.append(f'Using {len(self.custom_extensions)} custom extensions: {", ".join(self.custom_extensions)}')
        if self.ignore_patterns:
            lines.append(
                f'Using {len(self.ignore_patterns)} custom ignore patterns: {", ".join(self.ignore_patterns)}'
            )
        lines.append('')
        lines.append('Indexing is running in the background. Use get_indexing_status to check progress.')
        return '\n'.join(lines)


class SearchHit(StrictModel):
    """One ranked code snippet returned by the indexing engine."""

    relative_path: str
    start_line: int
    end_line: int
    language: str
    content: str
    score: float
