"""Tool response schema."""

from __future__ import annotations

from code_search.schemas.base import StrictModel

__all__ = [
    'ToolResult',
]


class ToolResult(StrictModel):
    """Plain-text tool response with an error flag."""

    text: str
    is_error: bool = False

    @classmethod
    def ok(cls, text: str) -> ToolResult:
        return cls(text=text)

    @classmethod
    def error(cls, text: str) -> ToolResult:
        return cls(text=text, is_error=True)
