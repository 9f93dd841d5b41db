"""Keep tests away from the user's real snapshot file.

The server resolves its state file from CODE_SEARCH_SNAPSHOT_PATH; pointing
it at a per-test temporary directory means no test can touch
~/.code-search even when it reaches code that reads the default path.
"""

from __future__ import annotations

from pathlib import Path

import pytest


@pytest.fixture(autouse=True)
def _isolated_snapshot_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv('CODE_SEARCH_SNAPSHOT_PATH', str(tmp_path / 'codebase-snapshot.json'))
