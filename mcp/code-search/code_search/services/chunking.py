"""Code chunking - splits source files into embeddable, line-addressed chunks.

Two strategies, selected per request:
- ast: language-aware separators (classes, functions, blocks) through
  langchain's per-language recursive splitter; falls back to the generic
  splitter for languages it does not know.
- langchain: generic recursive character splitting.
"""

from __future__ import annotations

import fnmatch
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import PurePosixPath

from langchain_text_splitters import Language, RecursiveCharacterTextSplitter

from code_search.exceptions import InvalidRequestError
from code_search.schemas.indexing import Splitter

__all__ = [
    'DEFAULT_EXTENSIONS',
    'DEFAULT_IGNORE_PATTERNS',
    'SPLITTERS',
    'CodeChunk',
    'CodeSplitter',
    'is_ignored',
    'language_for_extension',
]

logger = logging.getLogger(__name__)

SPLITTERS: Sequence[Splitter] = ('ast', 'langchain')

DEFAULT_EXTENSIONS: Sequence[str] = (
    # Programming languages
    '.ts', '.tsx', '.js', '.jsx', '.mjs', '.cjs',
    '.py', '.java', '.kt', '.scala', '.go', '.rs',
    '.c', '.h', '.cpp', '.hpp', '.cc', '.cs',
    '.php', '.rb', '.swift', '.m', '.mm', '.lua', '.sol',
    # Docs and notebooks
    '.md', '.markdown', '.ipynb',
)  # fmt: skip

DEFAULT_IGNORE_PATTERNS: Sequence[str] = (
    # Dependencies and build output
    'node_modules/**', 'dist/**', 'build/**', 'out/**', 'target/**', 'coverage/**', '.nyc_output/**',
    # IDE and VCS
    '.vscode/**', '.idea/**', '.git/**', '.svn/**', '.hg/**', '*.swp', '*.swo',
    # Caches, logs, temp
    '.cache/**', '__pycache__/**', '.pytest_cache/**', 'logs/**', 'tmp/**', 'temp/**', '*.log',
    # Environment files
    '.env', '.env.*', '*.local',
    # Minified and bundled assets
    '*.min.js', '*.min.css', '*.min.map', '*.bundle.js', '*.bundle.css', '*.chunk.js', '*.map',
)  # fmt: skip

# Extension -> (display language, langchain Language or None)
_LANGUAGES: Mapping[str, tuple[str, Language | None]] = {
    '.ts': ('typescript', Language.TS),
    '.tsx': ('typescript', Language.TS),
    '.js': ('javascript', Language.JS),
    '.jsx': ('javascript', Language.JS),
    '.mjs': ('javascript', Language.JS),
    '.cjs': ('javascript', Language.JS),
    '.py': ('python', Language.PYTHON),
    '.java': ('java', Language.JAVA),
    '.kt': ('kotlin', Language.KOTLIN),
    '.scala': ('scala', Language.SCALA),
    '.go': ('go', Language.GO),
    '.rs': ('rust', Language.RUST),
    '.c': ('c', Language.C),
    '.h': ('c', Language.C),
    '.cpp': ('cpp', Language.CPP),
    '.hpp': ('cpp', Language.CPP),
    '.cc': ('cpp', Language.CPP),
    '.cs': ('csharp', Language.CSHARP),
    '.php': ('php', Language.PHP),
    '.rb': ('ruby', Language.RUBY),
    '.swift': ('swift', Language.SWIFT),
    '.lua': ('lua', Language.LUA),
    '.sol': ('solidity', Language.SOL),
    '.md': ('markdown', Language.MARKDOWN),
    '.markdown': ('markdown', Language.MARKDOWN),
    '.m': ('objective-c', None),
    '.mm': ('objective-c', None),
    '.ipynb': ('jupyter', None),
}


@dataclass(frozen=True)
class CodeChunk:
    """One searchable unit with its 1-based inclusive line range."""

    content: str
    relative_path: str
    start_line: int
    end_line: int
    language: str
    file_extension: str


def language_for_extension(extension: str) -> str:
    """Display language for a file extension ('text' when unknown)."""
    entry = _LANGUAGES.get(extension.lower())
    return entry[0] if entry else 'text'


def is_ignored(relative_path: str, patterns: Sequence[str]) -> bool:
    """Match a POSIX relative path against gitignore-style patterns.

    - 'dir/**' ignores everything below any directory named dir
    - patterns containing '/' match the whole relative path
    - bare patterns ('*.log', 'node_modules') match any path segment
    """
    parts = PurePosixPath(relative_path).parts
    for raw in patterns:
        pattern = raw.strip()
        if not pattern or pattern.startswith('#'):
            continue
        pattern = pattern.rstrip('/')
        if pattern.endswith('/**'):
            directory = pattern[:-3]
            if '/' in directory:
                if fnmatch.fnmatch(relative_path, f'{directory}/*'):
                    return True
            elif any(fnmatch.fnmatch(part, directory) for part in parts[:-1]):
                return True
        elif '/' in pattern:
            if fnmatch.fnmatch(relative_path, pattern.lstrip('/')):
                return True
        elif any(fnmatch.fnmatch(part, pattern) for part in parts):
            return True
    return False


class CodeSplitter:
    """Split file content into CodeChunks for one splitter strategy."""

    # Larger chunks for language-aware splitting: boundaries already follow code structure
    AST_CHUNK_SIZE = 2500
    AST_CHUNK_OVERLAP = 300
    GENERIC_CHUNK_SIZE = 1000
    GENERIC_CHUNK_OVERLAP = 200

    def __init__(self, splitter: str) -> None:
        if splitter not in SPLITTERS:
            raise InvalidRequestError(f"Invalid splitter '{splitter}'. Must be one of: {', '.join(SPLITTERS)}")
        self._splitter = splitter
        self._generic = RecursiveCharacterTextSplitter(
            chunk_size=self.GENERIC_CHUNK_SIZE,
            chunk_overlap=self.GENERIC_CHUNK_OVERLAP,
        )
        self._by_language: dict[Language, RecursiveCharacterTextSplitter] = {}

    def split(self, content: str, relative_path: str) -> Sequence[CodeChunk]:
        extension = PurePosixPath(relative_path).suffix.lower()
        language, lc_language = _LANGUAGES.get(extension, ('text', None))
        splitter = self._splitter_for(lc_language)

        chunks: list[CodeChunk] = []
        search_from = 0
        for text in splitter.split_text(content):
            if not text.strip():
                continue
            start = content.find(text, search_from)
            if start == -1:
                start = max(content.find(text), 0)
            search_from = start + 1
            start_line = content.count('\n', 0, start) + 1
            chunks.append(
                CodeChunk(
                    content=text,
                    relative_path=relative_path,
                    start_line=start_line,
                    end_line=start_line + text.count('\n'),
                    language=language,
                    file_extension=extension,
                )
            )
        return chunks

    def _splitter_for(self, language: Language | None) -> RecursiveCharacterTextSplitter:
        if self._splitter != 'ast' or language is None:
            return self._generic
        if language not in self._by_language:
            self._by_language[language] = RecursiveCharacterTextSplitter.from_language(
                language=language,
                chunk_size=self.AST_CHUNK_SIZE,
                chunk_overlap=self.AST_CHUNK_OVERLAP,
            )
        return self._by_language[language]
