"""Tests for CodeIndexingEngine over in-memory Qdrant and embedding fakes."""

from __future__ import annotations

from pathlib import Path

import pytest
from code_search.services import engine as engine_module
from code_search.services.engine import CodeIndexingEngine, collection_name_for

from tests.code_search.fakes import ConstantEmbedding, MemoryQdrant


@pytest.fixture
def codebase(tmp_path: Path) -> Path:
    root = tmp_path / 'shop'
    (root / 'src').mkdir(parents=True)
    (root / 'node_modules' / 'lib').mkdir(parents=True)
    (root / 'src' / 'cart.py').write_text('def total(items):\n    return sum(items)\n')
    (root / 'src' / 'view.vue').write_text('<template><div/></template>\n')
    (root / 'src' / 'notes.bin').write_bytes(b'\x00\x01')
    (root / 'node_modules' / 'lib' / 'index.js').write_text('module.exports = 1\n')
    (root / 'README.md').write_text('# Shop\n')
    return root


@pytest.fixture
def qdrant() -> MemoryQdrant:
    return MemoryQdrant()


@pytest.fixture
def engine(qdrant: MemoryQdrant) -> CodeIndexingEngine:
    return CodeIndexingEngine(qdrant, ConstantEmbedding())  # type: ignore[arg-type]


class TestIndexCodebase:
    """Discovery, chunking and storage."""

    async def test_indexes_matching_files(
        self, engine: CodeIndexingEngine, qdrant: MemoryQdrant, codebase: Path
    ) -> None:
        progress: list[float] = []
        stats = await engine.index_codebase(
            str(codebase),
            splitter='ast',
            custom_extensions=(),
            ignore_patterns=(),
            progress=progress.append,
        )

        assert stats.status == 'completed'
        assert stats.indexed_files == 2
        payloads = list(qdrant.points[collection_name_for(str(codebase))].values())
        assert sorted(p['relative_path'] for p in payloads) == ['README.md', 'src/cart.py']
        assert {p['codebase_path'] for p in payloads} == {str(codebase)}
        assert qdrant.collections[collection_name_for(str(codebase))] == 3
        assert progress == [100.0]

    async def test_custom_extensions_and_ignore_patterns(
        self, engine: CodeIndexingEngine, qdrant: MemoryQdrant, codebase: Path
    ) -> None:
        stats = await engine.index_codebase(
            str(codebase),
            splitter='langchain',
            custom_extensions=('.vue',),
            ignore_patterns=('*.md',),
            progress=lambda _: None,
        )

        payloads = qdrant.points[collection_name_for(str(codebase))].values()
        assert sorted(p['relative_path'] for p in payloads) == ['src/cart.py', 'src/view.vue']
        assert stats.indexed_files == 2

    async def test_empty_codebase_still_gets_collection(
        self, engine: CodeIndexingEngine, qdrant: MemoryQdrant, tmp_path: Path
    ) -> None:
        empty = tmp_path / 'empty'
        empty.mkdir()
        stats = await engine.index_codebase(
            str(empty), splitter='ast', custom_extensions=(), ignore_patterns=(), progress=lambda _: None
        )
        assert (stats.indexed_files, stats.total_chunks) == (0, 0)
        assert await engine.has_index(str(empty))

    async def test_chunk_limit(
        self, engine: CodeIndexingEngine, codebase: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(engine_module, 'MAX_CHUNKS', 1)
        stats = await engine.index_codebase(
            str(codebase), splitter='ast', custom_extensions=(), ignore_patterns=(), progress=lambda _: None
        )
        assert stats.status == 'limit_reached'
        assert stats.total_chunks == 1


class TestProgress:
    """Progress counts files whose chunks are all stored."""

    async def test_reported_after_each_stored_batch(
        self, engine: CodeIndexingEngine, codebase: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(engine_module, 'EMBED_BATCH_SIZE', 1)
        progress: list[float] = []

        await engine.index_codebase(
            str(codebase), splitter='ast', custom_extensions=(), ignore_patterns=(), progress=progress.append
        )

        assert progress == [50.0, 100.0, 100.0]

    async def test_nothing_reported_when_first_batch_fails(self, qdrant: MemoryQdrant, codebase: Path) -> None:
        engine = CodeIndexingEngine(qdrant, ConstantEmbedding(fail_after=0))  # type: ignore[arg-type]
        progress: list[float] = []

        with pytest.raises(RuntimeError, match='401 bad key'):
            await engine.index_codebase(
                str(codebase), splitter='ast', custom_extensions=(), ignore_patterns=(), progress=progress.append
            )

        assert progress == []

    async def test_failure_keeps_last_stored_percentage(
        self, qdrant: MemoryQdrant, codebase: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(engine_module, 'EMBED_BATCH_SIZE', 1)
        engine = CodeIndexingEngine(qdrant, ConstantEmbedding(fail_after=1))  # type: ignore[arg-type]
        progress: list[float] = []

        with pytest.raises(RuntimeError):
            await engine.index_codebase(
                str(codebase), splitter='ast', custom_extensions=(), ignore_patterns=(), progress=progress.append
            )

        assert progress == [50.0]


class TestSearchAndClear:
    async def test_search_missing_collection_is_empty(self, engine: CodeIndexingEngine, codebase: Path) -> None:
        hits = await engine.semantic_search(str(codebase), 'total', limit=5, threshold=0.3, extensions=())
        assert hits == []

    async def test_search_and_clear(self, engine: CodeIndexingEngine, qdrant: MemoryQdrant, codebase: Path) -> None:
        await engine.index_codebase(
            str(codebase), splitter='ast', custom_extensions=(), ignore_patterns=(), progress=lambda _: None
        )

        hits = await engine.semantic_search(str(codebase), 'sum items', limit=5, threshold=0.3, extensions=['.py'])

        assert {hit.relative_path for hit in hits} == {'README.md', 'src/cart.py'}
        assert qdrant.search_args == {'limit': 5, 'score_threshold': 0.3, 'extensions': ['.py']}

        await engine.clear_index(str(codebase))
        assert not await engine.has_index(str(codebase))

    def test_collection_name_is_stable(self) -> None:
        name = collection_name_for('/repos/shop/prod')
        assert name == collection_name_for('/repos/shop/prod')
        assert name.startswith('code_chunks_')
        assert len(name) == len('code_chunks_') + 8
        assert name != collection_name_for('/repos/shop/dev')
