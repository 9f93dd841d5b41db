"""Tests for SnapshotStore - persistence, legacy upgrade and fail-soft loading."""

from __future__ import annotations

import json
from pathlib import Path

import filelock
import pytest
from code_search.repositories.snapshot_store import SnapshotStore
from code_search.schemas.snapshot import (
    CodebaseIndexed,
    CodebaseIndexFailed,
    CodebaseIndexing,
    IndexStats,
    parse_snapshot,
)


@pytest.fixture
def state_path(tmp_path: Path) -> Path:
    return tmp_path / 'state' / 'codebase-snapshot.json'


@pytest.fixture
def store(state_path: Path) -> SnapshotStore:
    store = SnapshotStore(state_path)
    store.load()
    return store


class TestLoad:
    """Loading from disk never blocks startup."""

    def test_missing_file_is_empty(self, store: SnapshotStore) -> None:
        assert store.codebases() == {}
        assert not store.dirty

    @pytest.mark.parametrize(
        'content',
        [
            'not json at all',
            '[1, 2, 3]',
            '{"formatVersion": "v9", "codebases": {}}',
            '{"formatVersion": "v2", "codebases": {"/a": {"status": "bogus"}}, "lastUpdated": "2026-01-01T00:00:00Z"}',
        ],
    )
    def test_corrupt_content_is_empty(self, state_path: Path, content: str) -> None:
        state_path.parent.mkdir(parents=True)
        state_path.write_text(content)
        store = SnapshotStore(state_path)
        store.load()
        assert store.codebases() == {}

    def test_legacy_snapshot_is_upgraded(self, state_path: Path) -> None:
        """v1 {indexed: [a], indexing: {b: 42}} upgrades to Indexed(unknown counts) and Indexing(42)."""
        state_path.parent.mkdir(parents=True)
        state_path.write_text(
            json.dumps(
                {
                    'indexedCodebases': ['/repos/a'],
                    'indexingCodebases': {'/repos/b': 42},
                    'lastUpdated': '2026-01-01T00:00:00Z',
                }
            )
        )
        store = SnapshotStore(state_path)
        store.load()

        indexed = store.get_info('/repos/a')
        assert isinstance(indexed, CodebaseIndexed)
        assert indexed.indexed_files is None
        assert indexed.total_chunks is None
        assert indexed.index_status == 'completed'
        assert store.get_indexing() == {'/repos/b': 42.0}

    def test_legacy_upgrade_is_rewritten_as_v2(self, state_path: Path) -> None:
        state_path.parent.mkdir(parents=True)
        state_path.write_text(json.dumps({'indexedCodebases': ['/repos/a'], 'indexingCodebases': ['/repos/b']}))
        store = SnapshotStore(state_path)
        store.load()
        assert store.save()

        data = json.loads(state_path.read_text())
        assert data['formatVersion'] == 'v2'
        assert data['codebases']['/repos/a']['status'] == 'indexed'
        assert data['codebases']['/repos/b'] == {
            'status': 'indexing',
            'indexingPercentage': 0.0,
            'lastUpdated': data['codebases']['/repos/b']['lastUpdated'],
        }


class TestSave:
    """Atomic, idempotent persistence."""

    def test_round_trip(self, store: SnapshotStore, state_path: Path) -> None:
        store.set_indexed('/repos/a', IndexStats(indexed_files=3, total_chunks=7, status='completed'))
        store.set_indexing('/repos/b', 12.5)
        store.set_index_failed('/repos/c', 'boom', 40)
        assert store.save()

        reloaded = SnapshotStore(state_path)
        reloaded.load()
        assert reloaded.codebases() == store.codebases()

    def test_save_is_byte_identical_without_mutation(self, store: SnapshotStore, state_path: Path) -> None:
        store.set_indexing('/repos/a', 10)
        assert store.save()
        first = state_path.read_bytes()
        assert store.save()
        assert state_path.read_bytes() == first
        assert not state_path.with_suffix('.tmp').exists()

    def test_flush_skips_clean_store(self, store: SnapshotStore, state_path: Path) -> None:
        assert store.flush()
        assert not state_path.exists()
        store.set_indexing('/repos/a', 1)
        assert store.flush()
        assert state_path.exists()
        assert not store.dirty

    def test_write_error_keeps_store_dirty(self, tmp_path: Path) -> None:
        """A save that cannot write logs, returns False and retries on the next flush."""
        blocker = tmp_path / 'blocker'
        blocker.write_text('')
        store = SnapshotStore(blocker / 'codebase-snapshot.json', lock_path=tmp_path / 'snapshot.lock')
        store.set_indexing('/repos/a', 5)
        assert not store.save()
        assert store.dirty

    def test_lock_timeout_keeps_store_dirty(self, store: SnapshotStore, monkeypatch: pytest.MonkeyPatch) -> None:
        def timeout(*args: object, **kwargs: object) -> None:
            raise filelock.Timeout('locked')

        monkeypatch.setattr(filelock.FileLock, 'acquire', timeout)
        store.set_indexing('/repos/a', 5)
        assert not store.save()
        assert store.dirty


class TestTransitions:
    """Each path holds exactly one record; mutations replace it."""

    def test_one_state_per_path(self, store: SnapshotStore) -> None:
        path = '/repos/a'
        store.set_indexing(path, 50)
        assert store.get_status(path) == 'indexing'
        store.set_indexed(path, IndexStats(indexed_files=1, total_chunks=2, status='limit_reached'))
        assert store.get_status(path) == 'indexed'
        assert path not in store.get_indexing()
        assert path not in store.get_failed()
        store.set_index_failed(path, 'network down')
        assert store.get_indexed() == []
        assert store.get_failed() == [path]

    @pytest.mark.parametrize('value, expected', [(-5, 0.0), (42, 42.0), (250, 100.0)])
    def test_percentage_is_clamped(self, store: SnapshotStore, value: float, expected: float) -> None:
        store.set_indexing('/repos/a', value)
        assert store.get_indexing()['/repos/a'] == expected

    def test_failed_record_keeps_last_percentage(self, store: SnapshotStore) -> None:
        store.set_index_failed('/repos/a', 'connection reset', 42)
        record = store.get_info('/repos/a')
        assert isinstance(record, CodebaseIndexFailed)
        assert record.error_message == 'connection reset'
        assert record.last_attempted_percentage == 42.0

    def test_empty_failure_message_gets_placeholder(self, store: SnapshotStore) -> None:
        store.set_index_failed('/repos/a', '')
        record = store.get_info('/repos/a')
        assert isinstance(record, CodebaseIndexFailed)
        assert record.error_message == 'Unknown error'

    def test_remove(self, store: SnapshotStore) -> None:
        store.set_indexing('/repos/a', 1)
        assert store.remove('/repos/a')
        assert not store.remove('/repos/a')
        assert store.get_info('/repos/a') is None


class TestParseSnapshot:
    """Format detection."""

    def test_legacy_path_in_both_lists_is_indexing(self) -> None:
        snapshot = parse_snapshot({'indexedCodebases': ['/a'], 'indexingCodebases': {'/a': 30}})
        record = snapshot.codebases['/a']
        assert isinstance(record, CodebaseIndexing)
        assert record.indexing_percentage == 30.0

    def test_unknown_version_rejected(self) -> None:
        with pytest.raises(ValueError, match='v3'):
            parse_snapshot({'formatVersion': 'v3'})
