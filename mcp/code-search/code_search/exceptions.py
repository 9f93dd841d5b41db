"""Exception hierarchy for code search.

Tool handlers render any CodeSearchError as an error result with its message.
Terminal errors are final answers: retrying the same request cannot succeed.
"""

from __future__ import annotations

__all__ = [
    'AlreadyIndexedError',
    'AlreadyIndexingError',
    'CodeSearchError',
    'CollectionLimitError',
    'DimensionMismatchError',
    'EmbeddingApiError',
    'EmbeddingError',
    'EmbeddingResponseError',
    'InvalidRequestError',
    'NotIndexedError',
    'PreflightCheckError',
]


class CodeSearchError(Exception):
    """Base class for errors reported to tool callers."""

    terminal = False


class InvalidRequestError(CodeSearchError):
    """Bad arguments or missing configuration. Never retried automatically."""


class AlreadyIndexingError(CodeSearchError):
    """A job for this path is already running."""

    def __init__(self, path: str) -> None:
        super().__init__(
            f"Codebase '{path}' is already being indexed in the background. Please wait for completion."
        )
        self.path = path


class AlreadyIndexedError(CodeSearchError):
    """Path is indexed and force was not requested."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Codebase '{path}' is already indexed. Use force=true to re-index.")
        self.path = path


class NotIndexedError(CodeSearchError):
    """Search against a path with no indexed or indexing record."""

    def __init__(self, path: str) -> None:
        super().__init__(
            f"Error: Codebase '{path}' is not indexed. Please index it first using the index_codebase tool."
        )
        self.path = path


class CollectionLimitError(CodeSearchError):
    """Vector store cannot accept another collection."""

    terminal = True

    MESSAGE = (
        'Your vector database has reached its collection limit, so no new codebase can be indexed. '
        'Clear an existing index with clear_index or raise QDRANT_MAX_COLLECTIONS, then try again.'
    )

    def __init__(self) -> None:
        super().__init__(self.MESSAGE)


class PreflightCheckError(CodeSearchError):
    """The collection-capacity check itself failed at the provider."""

    terminal = True


class EmbeddingError(CodeSearchError):
    """Base for embedding provider failures."""


class EmbeddingApiError(EmbeddingError):
    """Provider answered with a non-success HTTP status."""

    def __init__(self, provider: str, status_code: int, reason: str, body: str) -> None:
        super().__init__(f'{provider} API error: {status_code} {reason} - {body}')
        self.status_code = status_code


class EmbeddingResponseError(EmbeddingError):
    """Provider response is missing vectors or has the wrong shape."""


class DimensionMismatchError(EmbeddingError):
    """Provider returned vectors of a different size than previously recorded."""

    def __init__(self, provider: str, expected: int, actual: int) -> None:
        super().__init__(
            f'{provider} returned {actual}-dimensional embeddings, expected {expected}. '
            f'Clear the index before switching embedding models.'
        )
        self.expected = expected
        self.actual = actual
