"""Durable indexing state: one CodebaseRecord per codebase path.

Mutations are synchronous and only touch the in-memory map. Persistence is
explicit through save()/flush() so the caller controls write frequency.
Records are replaced wholesale, never patched, so a crash between mutation
and save loses at most the unsaved transitions and cannot corrupt a record.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from pathlib import Path

import filelock
import pydantic

from code_search.schemas.snapshot import (
    CodebaseIndexed,
    CodebaseIndexFailed,
    CodebaseIndexing,
    CodebaseRecord,
    CodebaseSnapshot,
    CodebaseStatus,
    IndexStats,
    parse_snapshot,
)

__all__ = [
    'SnapshotStore',
]

logger = logging.getLogger(__name__)


class SnapshotStore:
    """In-memory snapshot with atomic, lock-guarded JSON persistence.

    Single instance per process, constructed at startup and shared by
    reference with the orchestrator and the tool handlers.
    """

    def __init__(self, state_path: Path, lock_path: Path | None = None) -> None:
        self._state_path = state_path
        self._lock_path = lock_path or state_path.with_suffix('.lock')
        self._lock = filelock.FileLock(self._lock_path)
        self._codebases: dict[str, CodebaseRecord] = {}
        self._last_updated = datetime.now(UTC)
        self._dirty = False

    @property
    def path(self) -> Path:
        return self._state_path

    @property
    def dirty(self) -> bool:
        """True when there are mutations not yet written to disk."""
        return self._dirty

    # Lifecycle

    def load(self) -> None:
        """Load the snapshot from disk, replacing in-memory state.

        Absent file → empty snapshot. Legacy v1 content is upgraded in memory
        and rewritten as v2 on the next save. Unreadable content is logged
        and treated as empty so startup is never blocked.
        """
        snapshot = self._read()
        self._codebases = dict(snapshot.codebases)
        self._last_updated = snapshot.last_updated
        self._dirty = False
        logger.info(
            f'[SNAPSHOT] Loaded {len(self._codebases)} codebases from {self._state_path} '
            f'({len(self.get_indexed())} indexed, {len(self.get_indexing())} indexing, '
            f'{len(self.get_failed())} failed)'
        )

    def save(self) -> bool:
        """Write the snapshot atomically. Idempotent.

        The top-level lastUpdated only moves on mutation, so repeated saves
        without mutation produce byte-identical files.

        Returns:
            True on success. Write errors are logged, the store stays dirty
            and the next save retries.
        """
        snapshot = CodebaseSnapshot(codebases=dict(self._codebases), last_updated=self._last_updated)
        content = json.dumps(snapshot.model_dump(mode='json', by_alias=True), indent=2) + '\n'
        try:
            with self._lock:
                self._state_path.parent.mkdir(parents=True, exist_ok=True)
                temp_path = self._state_path.with_suffix('.tmp')
                temp_path.write_text(content)
                temp_path.rename(self._state_path)
        except (OSError, filelock.Timeout) as e:
            logger.error(f'[SNAPSHOT] Failed to save {self._state_path}: {e}')
            self._dirty = True
            return False
        self._dirty = False
        return True

    def flush(self) -> bool:
        """Save only when there are unsaved mutations."""
        if not self._dirty:
            return True
        return self.save()

    # Reads

    def codebases(self) -> Mapping[str, CodebaseRecord]:
        """Read-only view of every record."""
        return dict(self._codebases)

    def get_indexed(self) -> Sequence[str]:
        return [path for path, record in self._codebases.items() if isinstance(record, CodebaseIndexed)]

    def get_indexing(self) -> Mapping[str, float]:
        """Indexing paths mapped to their current percentage."""
        return {
            path: record.indexing_percentage
            for path, record in self._codebases.items()
            if isinstance(record, CodebaseIndexing)
        }

    def get_failed(self) -> Sequence[str]:
        return [path for path, record in self._codebases.items() if isinstance(record, CodebaseIndexFailed)]

    def get_status(self, path: str) -> CodebaseStatus | None:
        record = self._codebases.get(path)
        return record.status if record is not None else None

    def get_info(self, path: str) -> CodebaseRecord | None:
        return self._codebases.get(path)

    # Transitions (replace the record, mark dirty)

    def set_indexing(self, path: str, percentage: float) -> None:
        self._replace(
            path,
            CodebaseIndexing(indexing_percentage=_clamp_percentage(percentage), last_updated=_now()),
        )

    def set_indexed(self, path: str, stats: IndexStats) -> None:
        self._replace(
            path,
            CodebaseIndexed(
                indexed_files=stats.indexed_files,
                total_chunks=stats.total_chunks,
                index_status=stats.status,
                last_updated=_now(),
            ),
        )

    def set_index_failed(self, path: str, message: str, last_percentage: float | None = None) -> None:
        self._replace(
            path,
            CodebaseIndexFailed(
                error_message=message or 'Unknown error',
                last_attempted_percentage=(
                    _clamp_percentage(last_percentage) if last_percentage is not None else None
                ),
                last_updated=_now(),
            ),
        )

    def remove(self, path: str) -> bool:
        """Delete the record for path. Returns False if there was none."""
        if self._codebases.pop(path, None) is None:
            return False
        self._touch()
        return True

    def _replace(self, path: str, record: CodebaseRecord) -> None:
        self._codebases[path] = record
        self._touch()

    def _touch(self) -> None:
        self._last_updated = _now()
        self._dirty = True

    def _read(self) -> CodebaseSnapshot:
        if not self._state_path.exists():
            logger.info(f'[SNAPSHOT] No snapshot at {self._state_path}, starting empty')
            return CodebaseSnapshot.empty()
        try:
            data = json.loads(self._state_path.read_text())
            if not isinstance(data, dict):
                raise ValueError(f'expected a JSON object, got {type(data).__name__}')
            snapshot = parse_snapshot(data)
        except (OSError, ValueError, pydantic.ValidationError) as e:
            logger.warning(f'[SNAPSHOT] Unreadable snapshot at {self._state_path}, starting empty: {e}')
            return CodebaseSnapshot.empty()

        if data.get('formatVersion') != 'v2':
            logger.info(f'[SNAPSHOT] Upgraded legacy v1 snapshot ({len(snapshot.codebases)} codebases)')
        return snapshot


def _now() -> datetime:
    return datetime.now(UTC)


def _clamp_percentage(value: float) -> float:
    return min(max(float(value), 0.0), 100.0)
