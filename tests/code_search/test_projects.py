"""Tests for project discovery over {base}/{project}/{branch}/{component}."""

from __future__ import annotations

from pathlib import Path

import pytest
from code_search.services.projects import build_project_path, list_branches, list_components, list_projects


@pytest.fixture
def base(tmp_path: Path) -> Path:
    for relative in ['shop/prod/api', 'shop/prod/web', 'shop/dev/api', 'blog/prod/site', 'shop/prod/.cache']:
        (tmp_path / relative).mkdir(parents=True)
    (tmp_path / 'shop' / 'prod' / 'README.md').write_text('not a component')
    return tmp_path


class TestBuildProjectPath:
    def test_without_component(self) -> None:
        assert build_project_path(Path('/repos'), 'shop', 'prod') == Path('/repos/shop/prod')

    def test_with_component(self) -> None:
        assert build_project_path(Path('/repos'), 'shop', 'prod', 'api') == Path('/repos/shop/prod/api')


class TestListings:
    """Sorted directory names; hidden entries and files are skipped."""

    def test_projects(self, base: Path) -> None:
        assert list_projects(base) == ['blog', 'shop']

    def test_branches(self, base: Path) -> None:
        assert list_branches(base, 'shop') == ['dev', 'prod']

    def test_components(self, base: Path) -> None:
        assert list_components(base, 'shop', 'prod') == ['api', 'web']

    @pytest.mark.parametrize(
        'call',
        [
            lambda base: list_projects(base / 'missing'),
            lambda base: list_branches(base, 'missing'),
            lambda base: list_components(base, 'shop', 'missing'),
        ],
    )
    def test_missing_directory_is_empty(self, base: Path, call: object) -> None:
        assert call(base) == []  # type: ignore[operator]
