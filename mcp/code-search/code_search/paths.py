"""Centralized file paths for code search.

All persistent file locations in one place for consistency.
"""

from __future__ import annotations

import os
from pathlib import Path

__all__ = [
    'CODE_SEARCH_DIR',
    'SNAPSHOT_PATH',
    'snapshot_path',
]

# Base directory
CODE_SEARCH_DIR = Path.home() / '.code-search'

# Indexing state snapshot (one per deployment)
SNAPSHOT_PATH = CODE_SEARCH_DIR / 'codebase-snapshot.json'


def snapshot_path() -> Path:
    """Snapshot location, honoring CODE_SEARCH_SNAPSHOT_PATH when set."""
    override = os.environ.get('CODE_SEARCH_SNAPSHOT_PATH')
    if override:
        return Path(override).expanduser()
    return SNAPSHOT_PATH
