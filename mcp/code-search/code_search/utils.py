"""Shared utilities for the MCP server."""

from __future__ import annotations

import logging
import time
import typing

import mcp.server.fastmcp

__all__ = [
    'DualLogger',
    'Timer',
    'humanize_seconds',
]


class DualLogger:
    """Logs messages to both the server log and the MCP client context.

    stdout carries the stdio transport, so the server side goes through
    logging (stderr) rather than print.
    """

    def __init__(
        self,
        ctx: mcp.server.fastmcp.Context[typing.Any, typing.Any, typing.Any] | None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.ctx = ctx
        self._logger = logger or logging.getLogger('code_search.tools')

    async def info(self, msg: str) -> None:
        self._logger.info(msg)
        if self.ctx is not None:
            await self.ctx.info(msg)

    async def debug(self, msg: str) -> None:
        self._logger.debug(msg)
        if self.ctx is not None:
            await self.ctx.debug(msg)

    async def warning(self, msg: str) -> None:
        self._logger.warning(msg)
        if self.ctx is not None:
            await self.ctx.warning(msg)

    async def error(self, msg: str) -> None:
        self._logger.error(msg)
        if self.ctx is not None:
            await self.ctx.error(msg)


class Timer:
    """Simple stopwatch-style timer for measuring elapsed time."""

    def __init__(self) -> None:
        self._start = time.perf_counter()

    def elapsed(self) -> float:
        """Return elapsed time in seconds."""
        return time.perf_counter() - self._start


def humanize_seconds(seconds: float) -> str:
    """Convert seconds to a terse duration: '45 sec', '1.5 min', '2.5 hr', '3 d'."""
    intervals = [
        ('d', 86400),
        ('hr', 3600),
        ('min', 60),
        ('sec', 1),
    ]

    for unit, count in intervals:
        if seconds >= count:
            value = seconds / count
            value_str = f'{value:.1f}'.rstrip('0').rstrip('.')
            return f'{value_str} {unit}'

    return '0 sec'
