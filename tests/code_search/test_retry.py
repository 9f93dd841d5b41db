"""Tests for the Qdrant retry classification."""

from __future__ import annotations

import httpx
import pytest
import qdrant_client.http.exceptions
from code_search.clients._retry import is_retryable_httpx_error, is_retryable_qdrant_error


def unexpected_response(status_code: int) -> qdrant_client.http.exceptions.UnexpectedResponse:
    return qdrant_client.http.exceptions.UnexpectedResponse(
        status_code=status_code,
        reason_phrase='error',
        content=b'',
        headers=httpx.Headers(),
    )


class TestIsRetryableQdrantError:
    @pytest.mark.parametrize(
        'status_code, expected',
        [(408, True), (502, True), (503, True), (504, True), (500, False), (400, False), (404, False)],
    )
    def test_status_codes(self, status_code: int, expected: bool) -> None:
        assert is_retryable_qdrant_error(unexpected_response(status_code)) is expected

    def test_wrapped_transport_error(self) -> None:
        exc = qdrant_client.http.exceptions.ResponseHandlingException(httpx.ConnectError('refused'))
        assert is_retryable_qdrant_error(exc)

    def test_wrapped_other_error(self) -> None:
        exc = qdrant_client.http.exceptions.ResponseHandlingException(ValueError('bad json'))
        assert not is_retryable_qdrant_error(exc)

    @pytest.mark.parametrize(
        'exc, expected',
        [
            (httpx.ReadTimeout('slow'), True),
            (httpx.RemoteProtocolError('eof'), True),
            (httpx.LocalProtocolError('bad'), False),
            (ValueError('bug'), False),
            (None, False),
        ],
    )
    def test_httpx_errors(self, exc: BaseException | None, expected: bool) -> None:
        assert is_retryable_httpx_error(exc) is expected
