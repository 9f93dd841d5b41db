"""Tool handlers - request validation, orchestration calls and text rendering.

Independent of the MCP transport: server.py resolves the per-request config,
calls a handler and wraps the ToolResult. Every CodeSearchError becomes an
error result with its message; other exceptions are logged with traceback
and rendered as 'Error <doing thing>: <message>'.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from code_search.clients.protocols import IndexingEngine, VectorStore
from code_search.exceptions import (
    CodeSearchError,
    CollectionLimitError,
    InvalidRequestError,
    NotIndexedError,
)
from code_search.repositories.snapshot_store import SnapshotStore
from code_search.schemas.config import ServerConfig
from code_search.schemas.indexing import IndexOptions, SearchHit
from code_search.schemas.snapshot import CodebaseIndexed, CodebaseIndexFailed, CodebaseIndexing
from code_search.schemas.tools import ToolResult
from code_search.services import projects
from code_search.services.indexing import IndexingOrchestrator
from code_search.services.reconciliation import CloudReconciler
from code_search.utils import humanize_seconds

__all__ = [
    'MAX_SEARCH_LIMIT',
    'SEARCH_SCORE_THRESHOLD',
    'Backend',
    'ToolHandlers',
]

logger = logging.getLogger(__name__)

MAX_SEARCH_LIMIT = 50
SEARCH_SCORE_THRESHOLD = 0.3
MAX_SNIPPET_CHARS = 5000

EXPECTED_STRUCTURE = 'Expected structure: {base}/{project}/{branch}/{component}'


@dataclass(frozen=True)
class Backend:
    """Engine and vector store bound to one connection configuration."""

    engine: IndexingEngine
    vector_store: VectorStore


class ToolHandlers:
    """One method per tool. Shares the store, orchestrator and reconciler."""

    def __init__(
        self,
        store: SnapshotStore,
        orchestrator: IndexingOrchestrator,
        reconciler: CloudReconciler,
        backend_for: Callable[[ServerConfig], Backend],
    ) -> None:
        self._store = store
        self._orchestrator = orchestrator
        self._reconciler = reconciler
        self._backend_for = backend_for

    # Indexing

    async def index_codebase(
        self,
        config: ServerConfig,
        *,
        force: bool = False,
        splitter: str = 'ast',
        custom_extensions: Sequence[str] = (),
        ignore_patterns: Sequence[str] = (),
        path: Path | None = None,
    ) -> ToolResult:
        try:
            target = str(path or _require_default_path(config))
            backend = self._backend_for(config)
            await self._reconciler.reconcile(backend.vector_store)
            started = await self._orchestrator.start(
                target,
                IndexOptions(
                    force=force,
                    splitter=splitter,
                    custom_extensions=tuple(custom_extensions),
                    ignore_patterns=tuple(ignore_patterns),
                ),
                engine=backend.engine,
            )
        except CodeSearchError as e:
            return ToolResult.error(str(e))
        except Exception as e:
            logger.exception('[TOOLS] index_codebase failed')
            return ToolResult.error(f'Error starting indexing: {e}')
        return ToolResult.ok(started.to_message())

    async def index_project(self, config: ServerConfig, *, force: bool = False, splitter: str = 'ast') -> ToolResult:
        """Start indexing for every component of the default project/branch."""
        if not config.default_project:
            return ToolResult.error(_NO_DEFAULT_PROJECT)

        project_path = projects.build_project_path(
            config.repos_base_path, config.default_project, config.default_branch
        )
        components = projects.list_components(
            config.repos_base_path, config.default_project, config.default_branch
        )
        if not components:
            return ToolResult.error(
                f"No components found in '{project_path}'.\n{EXPECTED_STRUCTURE}"
            )

        started: list[str] = []
        failed: list[tuple[str, str]] = []
        for component in components:
            result = await self.index_codebase(
                config,
                force=force,
                splitter=splitter,
                path=project_path / component,
            )
            if result.is_error:
                failed.append((component, result.text))
            else:
                started.append(component)

        lines = [
            f"Project '{config.default_project}' (branch '{config.default_branch}'): "
            f'{len(started)} of {len(components)} components started, {len(failed)} failed.',
        ]
        if started:
            lines.append('')
            lines.append('Started:')
            lines.extend(f'  - {component}' for component in started)
        if failed:
            lines.append('')
            lines.append('Failed:')
            lines.extend(f'  - {component}: {message}' for component, message in failed)
        lines.append('')
        lines.append('Use get_indexing_status to check progress.')
        text = '\n'.join(lines)
        return ToolResult.error(text) if failed else ToolResult.ok(text)

    async def clear_index(self, config: ServerConfig) -> ToolResult:
        if not self._store.codebases():
            return ToolResult.ok('No codebases are currently indexed or being indexed.')
        try:
            target = str(_require_default_path(config))
            backend = self._backend_for(config)
            await self._reconciler.reconcile(backend.vector_store)
            removed = await self._orchestrator.clear(target, engine=backend.engine)
        except CodeSearchError as e:
            return ToolResult.error(str(e))
        except Exception as e:
            logger.exception('[TOOLS] clear_index failed')
            return ToolResult.error(f'Error clearing index: {e}')

        if not removed:
            return ToolResult.error(f"Error: Codebase '{target}' is not indexed.")

        indexed = len(self._store.get_indexed())
        indexing = len(self._store.get_indexing())
        lines = [f"Successfully cleared codebase '{target}'"]
        if indexed or indexing:
            lines.append(f'{indexed} other indexed codebase(s) and {indexing} indexing codebase(s) remain')
        return ToolResult.ok('\n'.join(lines))

    # Search

    async def search_code(
        self,
        config: ServerConfig,
        query: str,
        *,
        limit: int = 10,
        extension_filter: Sequence[str] = (),
    ) -> ToolResult:
        try:
            target = str(_require_default_path(config))
            extensions = _validate_extensions(extension_filter)
            if not Path(target).is_dir():
                raise InvalidRequestError(f"Error: Path '{target}' does not exist or is not a directory")

            backend = self._backend_for(config)
            await self._reconciler.reconcile(backend.vector_store)

            record = self._store.get_info(target)
            if not isinstance(record, (CodebaseIndexed, CodebaseIndexing)):
                raise NotIndexedError(target)

            hits = await backend.engine.semantic_search(
                target,
                query,
                limit=max(1, min(limit, MAX_SEARCH_LIMIT)),
                threshold=SEARCH_SCORE_THRESHOLD,
                extensions=extensions,
            )
        except CollectionLimitError as e:
            return ToolResult.ok(str(e))
        except CodeSearchError as e:
            return ToolResult.error(str(e))
        except Exception as e:
            logger.exception('[TOOLS] search_code failed')
            return ToolResult.error(f'Error searching code: {e}')

        note = ''
        if isinstance(record, CodebaseIndexing):
            note = (
                f'\nNote: this codebase is still being indexed ({record.indexing_percentage:.1f}% complete). '
                'Results may be incomplete until indexing completes.'
            )

        if not hits:
            return ToolResult.ok(f"No results found for query: \"{query}\" in codebase '{target}'{note}")

        header = f"Found {len(hits)} results for query: \"{query}\" in codebase '{target}'{note}\n"
        body = '\n'.join(_format_hit(rank, hit, Path(target).name) for rank, hit in enumerate(hits, start=1))
        return ToolResult.ok(f'{header}\n{body}')

    # Status and discovery

    def get_indexing_status(self) -> ToolResult:
        records = self._store.codebases()
        if not records:
            return ToolResult.ok('No codebases are currently indexed or being indexed.')

        now = datetime.now(UTC)
        indexed: list[str] = []
        indexing: list[str] = []
        failed: list[str] = []
        for path, record in sorted(records.items()):
            age = _age(now, record.last_updated)
            match record:
                case CodebaseIndexed():
                    files = '?' if record.indexed_files is None else record.indexed_files
                    chunks = '?' if record.total_chunks is None else record.total_chunks
                    suffix = ' (chunk limit reached)' if record.index_status == 'limit_reached' else ''
                    indexed.append(f'  - {path}: {files} files, {chunks} chunks{suffix}, updated {age} ago')
                case CodebaseIndexing():
                    indexing.append(f'  - {path}: {record.indexing_percentage:.1f}%, updated {age} ago')
                case CodebaseIndexFailed():
                    at = (
                        ''
                        if record.last_attempted_percentage is None
                        else f' at {record.last_attempted_percentage:.1f}%'
                    )
                    failed.append(f'  - {path}: failed{at}, {age} ago: {record.error_message}')

        sections = []
        for title, lines in (('Indexed', indexed), ('Indexing', indexing), ('Failed', failed)):
            if lines:
                sections.append(f'{title} codebases ({len(lines)}):\n' + '\n'.join(lines))
        return ToolResult.ok('\n\n'.join(sections))

    def list_projects(self, config: ServerConfig) -> ToolResult:
        names = projects.list_projects(config.repos_base_path)
        if not names:
            return ToolResult.ok(f"No projects found in '{config.repos_base_path}'.\n{EXPECTED_STRUCTURE}")
        return ToolResult.ok(_numbered(f"Projects in '{config.repos_base_path}'", names))

    def list_branches(self, config: ServerConfig) -> ToolResult:
        if not config.default_project:
            return ToolResult.error(_NO_DEFAULT_PROJECT)
        names = projects.list_branches(config.repos_base_path, config.default_project)
        if not names:
            return ToolResult.ok(
                f"No branches found for project '{config.default_project}'.\n{EXPECTED_STRUCTURE}"
            )
        return ToolResult.ok(_numbered(f"Branches of project '{config.default_project}'", names))

    def list_components(self, config: ServerConfig) -> ToolResult:
        if not config.default_project:
            return ToolResult.error(_NO_DEFAULT_PROJECT)
        names = projects.list_components(config.repos_base_path, config.default_project, config.default_branch)
        label = f"project '{config.default_project}' (branch '{config.default_branch}')"
        if not names:
            return ToolResult.ok(f'No components found in {label}.\n{EXPECTED_STRUCTURE}')
        return ToolResult.ok(_numbered(f'Components of {label}', names))


_NO_DEFAULT_PROJECT = (
    'Error: No default project configured. Set DEFAULT_PROJECT (or the x-default-project header).'
)


def _require_default_path(config: ServerConfig) -> Path:
    path = config.default_codebase_path
    if path is None:
        raise InvalidRequestError(_NO_DEFAULT_PROJECT)
    return path


def _validate_extensions(extensions: Sequence[str]) -> Sequence[str]:
    invalid = [
        ext for ext in extensions if not ext.startswith('.') or len(ext) < 2 or any(c.isspace() for c in ext)
    ]
    if invalid:
        raise InvalidRequestError(
            f'Error: Invalid file extensions in extension_filter: {invalid}. '
            "Use proper extensions like '.ts', '.py'."
        )
    return list(extensions)


def _format_hit(rank: int, hit: SearchHit, codebase_name: str) -> str:
    content = hit.content
    if len(content) > MAX_SNIPPET_CHARS:
        content = content[:MAX_SNIPPET_CHARS] + '...'
    return (
        f'{rank}. Code snippet ({hit.language}) [{codebase_name}]\n'
        f'   Location: {hit.relative_path}:{hit.start_line}-{hit.end_line}\n'
        f'   Rank: {rank}\n'
        f'   Context: \n```{hit.language}\n{content}\n```\n'
    )


def _age(now: datetime, then: datetime) -> str:
    if then.tzinfo is None:
        then = then.replace(tzinfo=UTC)
    return humanize_seconds(max(0.0, (now - then).total_seconds()))


def _numbered(title: str, names: Sequence[str]) -> str:
    lines = [f'{title} ({len(names)}):']
    lines.extend(f'{index}. {name}' for index, name in enumerate(names, start=1))
    return '\n'.join(lines)
