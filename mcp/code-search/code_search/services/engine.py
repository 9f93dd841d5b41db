"""Default indexing engine: files → chunks → embeddings → Qdrant.

One collection per codebase path, named from a hash of the path so that
reconciliation can recognise collections written by any instance. Each point
carries the codebase path in its payload.

Progress is reported as the percentage of files processed. Indexing stops
at MAX_CHUNKS with status 'limit_reached'.
"""

from __future__ import annotations

import asyncio
import functools
import hashlib
import logging
import os
import subprocess
from collections.abc import Sequence
from pathlib import Path
from uuid import UUID

import git

from code_search.clients.protocols import EmbeddingProvider
from code_search.clients.qdrant import QdrantClient
from code_search.schemas.indexing import ProgressCallback, SearchHit
from code_search.schemas.snapshot import IndexStats
from code_search.services.chunking import (
    DEFAULT_EXTENSIONS,
    DEFAULT_IGNORE_PATTERNS,
    CodeChunk,
    CodeSplitter,
    is_ignored,
)
from code_search.utils import Timer

__all__ = [
    'COLLECTION_PREFIX',
    'HYBRID_COLLECTION_PREFIX',
    'MAX_CHUNKS',
    'CodeIndexingEngine',
    'collection_name_for',
]

logger = logging.getLogger(__name__)

COLLECTION_PREFIX = 'code_chunks_'
HYBRID_COLLECTION_PREFIX = 'hybrid_code_chunks_'

# Hard cap per codebase; beyond it the index is kept but marked limit_reached
MAX_CHUNKS = 450_000

# Chunks embedded and upserted together
EMBED_BATCH_SIZE = 100

# Files larger than this are skipped (generated or vendored code)
MAX_FILE_BYTES = 1_000_000


def collection_name_for(path: str) -> str:
    """Deterministic collection name for a codebase path."""
    digest = hashlib.md5(path.encode(), usedforsecurity=False).hexdigest()[:8]
    return f'{COLLECTION_PREFIX}{digest}'


class CodeIndexingEngine:
    """IndexingEngine over a QdrantClient and an injected EmbeddingProvider."""

    def __init__(self, qdrant: QdrantClient, embedding: EmbeddingProvider) -> None:
        self._qdrant = qdrant
        self._embedding = embedding

    @property
    def embedding(self) -> EmbeddingProvider:
        return self._embedding

    async def can_create_collection(self) -> bool:
        return await self._qdrant.can_create_collection()

    async def has_index(self, path: str) -> bool:
        return await self._qdrant.collection_exists(collection_name_for(path))

    async def clear_index(self, path: str) -> None:
        collection_name = collection_name_for(path)
        if await self._qdrant.collection_exists(collection_name):
            await self._qdrant.delete_collection(collection_name)
            logger.info(f'[ENGINE] Dropped collection {collection_name} for {path}')

    async def index_codebase(
        self,
        path: str,
        *,
        splitter: str,
        custom_extensions: Sequence[str],
        ignore_patterns: Sequence[str],
        progress: ProgressCallback,
    ) -> IndexStats:
        """Index every matching file under path.

        Raises:
            Exception: Any embedding or vector store failure propagates; the
                orchestrator records it.
        """
        timer = Timer()
        code_splitter = CodeSplitter(splitter)
        directory = Path(path)
        extensions = frozenset(e.lower() for e in (*DEFAULT_EXTENSIONS, *custom_extensions))
        patterns = (*DEFAULT_IGNORE_PATTERNS, *ignore_patterns)

        files = await asyncio.to_thread(_discover_files, directory, extensions, patterns)
        logger.info(f'[ENGINE] {path}: {len(files)} files to index')

        collection_name = collection_name_for(path)
        created = False
        total_chunks = 0
        indexed_files = 0
        stored_files = 0
        limit_reached = False
        # Chunks tagged with the 1-based index of the file they came from
        pending: list[tuple[int, CodeChunk]] = []

        for file_index, file_path in enumerate(files, start=1):
            relative_path = file_path.relative_to(directory).as_posix()
            content = await asyncio.to_thread(_read_text, file_path)
            if content is not None:
                chunks = await asyncio.to_thread(code_splitter.split, content, relative_path)
                remaining = MAX_CHUNKS - total_chunks - len(pending)
                if len(chunks) > remaining:
                    chunks = chunks[:remaining]
                    limit_reached = True
                pending.extend((file_index, chunk) for chunk in chunks)
                indexed_files += 1

            while len(pending) >= EMBED_BATCH_SIZE:
                batch, pending = pending[:EMBED_BATCH_SIZE], pending[EMBED_BATCH_SIZE:]
                total_chunks += await self._store(collection_name, path, [c for _, c in batch], create=not created)
                created = True
                # Every file before the first still-pending chunk is fully stored
                done = pending[0][0] - 1 if pending else file_index
                if done > stored_files:
                    stored_files = done
                    progress(stored_files / len(files) * 100)

            if limit_reached:
                logger.warning(f'[ENGINE] {path}: chunk limit {MAX_CHUNKS:,} reached, stopping')
                break

        if pending:
            total_chunks += await self._store(collection_name, path, [c for _, c in pending], create=not created)
            created = True
        if not created:
            # Empty codebases still get a collection so the index is visible remotely
            await self._qdrant.ensure_collection(collection_name, self._embedding.get_dimension())

        progress(100.0)
        logger.info(
            f'[ENGINE] {path}: {indexed_files} files, {total_chunks} chunks in {timer.elapsed():.1f}s'
            f'{" (chunk limit reached)" if limit_reached else ""}'
        )
        return IndexStats(
            indexed_files=indexed_files,
            total_chunks=total_chunks,
            status='limit_reached' if limit_reached else 'completed',
        )

    async def semantic_search(
        self,
        path: str,
        query: str,
        *,
        limit: int,
        threshold: float,
        extensions: Sequence[str],
    ) -> Sequence[SearchHit]:
        collection_name = collection_name_for(path)
        if not await self._qdrant.collection_exists(collection_name):
            return []
        vector = await self._embedding.embed(query)
        hits = await self._qdrant.search(
            collection_name,
            vector,
            limit=limit,
            score_threshold=threshold,
            extensions=extensions,
        )
        return [
            SearchHit(
                relative_path=hit['relative_path'],
                start_line=hit['start_line'],
                end_line=hit['end_line'],
                language=hit['language'],
                content=hit['content'],
                score=hit['score'],
            )
            for hit in hits
        ]

    async def _store(
        self,
        collection_name: str,
        codebase_path: str,
        chunks: Sequence[CodeChunk],
        *,
        create: bool,
    ) -> int:
        vectors = await self._embedding.embed_batch([c.content for c in chunks])
        if create:
            # Size the collection from real vectors; configured defaults can be wrong
            await self._qdrant.ensure_collection(collection_name, len(vectors[0]))
        points = [
            (
                _chunk_id(codebase_path, chunk),
                vector,
                {
                    'codebase_path': codebase_path,
                    'relative_path': chunk.relative_path,
                    'start_line': chunk.start_line,
                    'end_line': chunk.end_line,
                    'file_extension': chunk.file_extension,
                    'language': chunk.language,
                    'content': chunk.content,
                },
            )
            for chunk, vector in zip(chunks, vectors, strict=True)
        ]
        return await self._qdrant.upsert(collection_name, points)


def _discover_files(directory: Path, extensions: frozenset[str], patterns: Sequence[str]) -> Sequence[Path]:
    """Files under directory with a matching extension and no ignore match.

    Inside a git work tree, .gitignore is honoured through git ls-files.
    """
    if _find_git_root(str(directory)) is not None:
        candidates = _git_files(directory)
    else:
        candidates = _walk_files(directory)

    files: list[Path] = []
    for file_path in candidates:
        if file_path.suffix.lower() not in extensions:
            continue
        relative_path = file_path.relative_to(directory).as_posix()
        if is_ignored(relative_path, patterns):
            continue
        files.append(file_path)
    return sorted(files)


def _walk_files(directory: Path) -> Sequence[Path]:
    files: list[Path] = []
    for root, _, filenames in os.walk(directory):
        root_path = Path(root)
        files.extend(root_path / filename for filename in filenames)
    return files


def _git_files(directory: Path) -> Sequence[Path]:
    """Tracked and untracked-but-not-ignored files, via git ls-files."""
    result = subprocess.run(
        ['git', 'ls-files', '--cached', '--others', '--exclude-standard'],
        capture_output=True,
        text=True,
        cwd=directory,
        timeout=60,
    )
    if result.returncode != 0:
        raise RuntimeError(f'git ls-files failed: {result.stderr}')
    # ls-files output is relative to cwd; deleted-but-tracked files are skipped
    return [directory / line for line in result.stdout.splitlines() if (directory / line).is_file()]


@functools.lru_cache(maxsize=128)
def _find_git_root(directory: str) -> str | None:
    """Find the git root directory containing this path. Cached."""
    try:
        repo = git.Repo(directory, search_parent_directories=True)
        return str(repo.working_dir)
    except (git.InvalidGitRepositoryError, git.NoSuchPathError):
        return None


def _read_text(path: Path) -> str | None:
    """File content, or None for oversized, binary or unreadable files."""
    try:
        if path.stat().st_size > MAX_FILE_BYTES:
            logger.debug(f'[ENGINE] Skipping large file {path}')
            return None
        return path.read_text(encoding='utf-8')
    except UnicodeDecodeError:
        logger.debug(f'[ENGINE] Skipping non-UTF-8 file {path}')
        return None
    except OSError as e:
        logger.warning(f'[ENGINE] Cannot read {path}: {e}')
        return None


def _chunk_id(codebase_path: str, chunk: CodeChunk) -> UUID:
    """Deterministic point ID from chunk provenance, so re-indexing overwrites."""
    content_hash = hashlib.sha256(chunk.content.encode()).hexdigest()[:16]
    key = f'{codebase_path}|{chunk.relative_path}|{chunk.start_line}|{chunk.end_line}|{content_hash}'
    return UUID(bytes=hashlib.sha256(key.encode()).digest()[:16])
