"""Shared httpx error detection for retry logic.

Private module - import from _retry package.
"""

from __future__ import annotations

import httpx

__all__ = [
    'is_retryable_httpx_error',
]


def is_retryable_httpx_error(exc: BaseException | None) -> bool:
    """Check if exception is a transient httpx transport error.

    Retries timeouts (connect/read/write/pool), network errors and
    RemoteProtocolError. LocalProtocolError, ProxyError and
    UnsupportedProtocol are configuration or code errors and propagate.
    """
    return isinstance(exc, (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError))
