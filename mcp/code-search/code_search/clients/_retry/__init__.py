"""Retry helpers for transient vector store errors.

Private submodule - not exported by the package.

Retry Policy
------------
- **RETRY** = timeouts, network errors, invalid HTTP from the server, and
  Qdrant 408/502/503/504 responses
- **PROPAGATE** = everything else (bugs, config errors, quota errors)

qdrant-client wraps httpx transport errors in ResponseHandlingException;
the underlying error is in ``exc.source``.

Embedding requests are deliberately not retried: a failed chunk aborts the
batch and the indexing job records the failure for an explicit retry.
"""

from __future__ import annotations

from code_search.clients._retry.httpx_errors import is_retryable_httpx_error
from code_search.clients._retry.qdrant import is_retryable_qdrant_error, log_qdrant_retry, qdrant_breaker

__all__ = [
    'is_retryable_httpx_error',
    'is_retryable_qdrant_error',
    'log_qdrant_retry',
    'qdrant_breaker',
]
