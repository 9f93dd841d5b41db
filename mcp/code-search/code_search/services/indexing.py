"""Indexing orchestrator - safe start, tracking and completion of indexing jobs.

Per codebase path:

    Absent ──start──▶ Indexing ──ok──▶ Indexed
                          │  ▲            │
                        fail └──force─────┘
                          ▼  │
                     IndexFailed ──retry──▶ Indexing

Only this class writes state transitions. At most one job runs per path
(single-flight); different paths index concurrently. A start request that
is accepted has persisted Indexing{0} before it returns, so a concurrent
caller always observes the in-flight job.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from pathlib import Path

from code_search.clients.protocols import IndexingEngine
from code_search.exceptions import (
    AlreadyIndexedError,
    AlreadyIndexingError,
    CollectionLimitError,
    InvalidRequestError,
    PreflightCheckError,
)
from code_search.repositories.snapshot_store import SnapshotStore
from code_search.schemas.indexing import IndexOptions, StartedIndexing
from code_search.schemas.snapshot import CodebaseIndexed, CodebaseIndexFailed, CodebaseIndexing
from code_search.services.chunking import SPLITTERS
from code_search.services.jobs import JobRunner
from code_search.utils import Timer

__all__ = [
    'INTERRUPTED_MESSAGE',
    'IndexingOrchestrator',
]

logger = logging.getLogger(__name__)

INTERRUPTED_MESSAGE = 'Indexing interrupted before completion (server stopped). Run index_codebase again to retry.'

DEFAULT_PROGRESS_SAVE_INTERVAL = 2.0


class IndexingOrchestrator:
    """Drives the indexing lifecycle over a SnapshotStore."""

    def __init__(
        self,
        store: SnapshotStore,
        *,
        progress_save_interval: float = DEFAULT_PROGRESS_SAVE_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize orchestrator.

        Args:
            store: State store shared with the status readers.
            progress_save_interval: Minimum seconds between progress persists.
            clock: Monotonic clock, injectable for tests.
        """
        self._store = store
        self._progress_save_interval = progress_save_interval
        self._clock = clock
        self._jobs = JobRunner('index')
        # Paths between the single-flight check and the Indexing{0} write
        self._starting: set[str] = set()

    @property
    def store(self) -> SnapshotStore:
        return self._store

    def is_running(self, path: str) -> bool:
        """True while a job for path is in flight in this process."""
        return self._jobs.is_active(path)

    async def start(self, path: str, options: IndexOptions, *, engine: IndexingEngine) -> StartedIndexing:
        """Validate, guard and dispatch an indexing job.

        Returns as soon as the job is dispatched.

        Raises:
            InvalidRequestError: Bad splitter or path.
            AlreadyIndexingError: A job for path is running.
            AlreadyIndexedError: Indexed and force not set.
            CollectionLimitError: Pre-flight says no capacity (terminal).
            PreflightCheckError: Pre-flight check failed at the provider (terminal).
        """
        splitter = _validate_splitter(options.splitter)
        _validate_directory(path)

        if path in self._starting or isinstance(self._store.get_info(path), CodebaseIndexing):
            raise AlreadyIndexingError(path)

        self._starting.add(path)
        try:
            previous = self._store.get_info(path)
            if isinstance(previous, CodebaseIndexed) and not options.force:
                raise AlreadyIndexedError(path)

            # A path that already owns a collection re-uses it; only new ones count against the quota
            has_index = await engine.has_index(path)
            if not has_index:
                await _preflight(engine)

            if options.force and (previous is not None or has_index):
                logger.info(f'[INDEX] Force re-index of {path}: clearing previous index')
                self._store.remove(path)
                if has_index:
                    await engine.clear_index(path)

            retried_failure = None
            if isinstance(previous, CodebaseIndexFailed):
                retried_failure = previous.error_message
                logger.info(
                    f'[INDEX] Retrying {path} after failure at '
                    f'{_format_percentage(previous.last_attempted_percentage)}: {previous.error_message}'
                )

            self._store.set_indexing(path, 0.0)
            self._store.save()
            self._jobs.submit(path, self._run_job(path, options, engine))
        finally:
            self._starting.discard(path)

        logger.info(f'[INDEX] Started background indexing of {path} (splitter={splitter})')
        return StartedIndexing(
            path=path,
            splitter=splitter,
            custom_extensions=tuple(options.custom_extensions),
            ignore_patterns=tuple(options.ignore_patterns),
            retried_failure=retried_failure,
        )

    async def clear(self, path: str, *, engine: IndexingEngine) -> bool:
        """Drop the remote index and the local record for path.

        Returns:
            True if there was a record or a remote index to remove.

        Raises:
            AlreadyIndexingError: A job for path is running.
        """
        if path in self._starting or self.is_running(path):
            raise AlreadyIndexingError(path)

        has_index = await engine.has_index(path)
        if has_index:
            await engine.clear_index(path)
        removed = self._store.remove(path)
        if removed:
            self._store.save()
        return removed or has_index

    def recover_interrupted(self) -> Sequence[str]:
        """Mark Indexing records with no job in this process as failed.

        A record left Indexing by a previous process would otherwise block
        the path forever. Call once at startup, after load().
        """
        recovered = [path for path in self._store.get_indexing() if not self.is_running(path)]
        for path in recovered:
            self._mark_interrupted(path)
        if recovered:
            self._store.save()
            logger.warning(f'[INDEX] Marked {len(recovered)} interrupted jobs as failed: {recovered}')
        return recovered

    async def shutdown(self) -> None:
        """Cancel running jobs, record them as interrupted, and save."""
        cancelled = await self._jobs.cancel_all()
        for path in cancelled:
            self._mark_interrupted(path)
        self._store.save()

    async def wait(self, path: str) -> None:
        """Wait for the job for path to finish (tests and graceful shutdown)."""
        await self._jobs.wait(path)

    def _mark_interrupted(self, path: str) -> None:
        record = self._store.get_info(path)
        if isinstance(record, CodebaseIndexing):
            self._store.set_index_failed(path, INTERRUPTED_MESSAGE, record.indexing_percentage)

    async def _run_job(self, path: str, options: IndexOptions, engine: IndexingEngine) -> None:
        """Background job body. Converts every failure into an IndexFailed record."""
        timer = Timer()
        last_percentage: float | None = None
        last_persist = self._clock()

        def on_progress(percentage: float) -> None:
            nonlocal last_percentage, last_persist
            last_percentage = percentage
            self._store.set_indexing(path, percentage)
            now = self._clock()
            if now - last_persist >= self._progress_save_interval:
                self._store.save()
                last_persist = now

        try:
            stats = await engine.index_codebase(
                path,
                splitter=options.splitter,
                custom_extensions=options.custom_extensions,
                ignore_patterns=options.ignore_patterns,
                progress=on_progress,
            )
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.error(
                f'[INDEX] Indexing failed for {path} at {_format_percentage(last_percentage)}: {message}',
                exc_info=True,
            )
            self._store.set_index_failed(path, message, last_percentage)
            self._store.save()
            return

        self._store.set_indexed(path, stats)
        self._store.save()
        if stats.status == 'limit_reached':
            logger.warning(
                f'[INDEX] {path}: chunk limit reached, index is partial '
                f'({stats.indexed_files} files, {stats.total_chunks} chunks)'
            )
        logger.info(
            f'[INDEX] Completed {path}: {stats.indexed_files} files, {stats.total_chunks} chunks '
            f'in {timer.elapsed():.1f}s'
        )


async def _preflight(engine: IndexingEngine) -> None:
    try:
        can_create = await engine.can_create_collection()
    except Exception as e:
        raise PreflightCheckError(f'Error validating collection creation: {e}') from e
    if not can_create:
        raise CollectionLimitError()


def _validate_splitter(splitter: str) -> str:
    if splitter not in SPLITTERS:
        raise InvalidRequestError(
            f"Error: Invalid splitter type '{splitter}'. Must be one of: {', '.join(SPLITTERS)}"
        )
    return splitter


def _validate_directory(path: str) -> None:
    target = Path(path)
    if not target.exists():
        raise InvalidRequestError(f"Error: Path '{path}' does not exist")
    if not target.is_dir():
        raise InvalidRequestError(f"Error: Path '{path}' is not a directory")


def _format_percentage(value: float | None) -> str:
    return 'unknown progress' if value is None else f'{value:.1f}%'
