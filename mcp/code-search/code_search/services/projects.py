"""Project discovery over the {base}/{project}/{branch}/{component} layout.

Listings are sorted directory names, hidden directories excluded. A missing
or unreadable directory yields an empty list.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path

__all__ = [
    'build_project_path',
    'list_branches',
    'list_components',
    'list_projects',
]

logger = logging.getLogger(__name__)


def build_project_path(base: Path, project: str, branch: str, component: str | None = None) -> Path:
    """Join the triple against the base directory. Pure naming, no filesystem access."""
    path = base / project / branch
    if component:
        path = path / component
    return path


def list_projects(base: Path) -> Sequence[str]:
    return _list_directories(base)


def list_branches(base: Path, project: str) -> Sequence[str]:
    return _list_directories(base / project)


def list_components(base: Path, project: str, branch: str) -> Sequence[str]:
    return _list_directories(build_project_path(base, project, branch))


def _list_directories(path: Path) -> Sequence[str]:
    try:
        return sorted(entry.name for entry in path.iterdir() if entry.is_dir() and not entry.name.startswith('.'))
    except FileNotFoundError:
        return []
    except OSError as e:
        logger.warning(f'[PROJECTS] Cannot list {path}: {e}')
        return []
