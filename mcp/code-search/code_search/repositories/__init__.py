"""Persistence for indexing state."""

from __future__ import annotations

from code_search.repositories.snapshot_store import SnapshotStore

__all__ = [
    'SnapshotStore',
]
