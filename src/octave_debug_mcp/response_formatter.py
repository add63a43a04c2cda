"""MCP response formatting.

Uses an XML-wrapped format that LLM clients parse reliably:
    - <answer>: REPL output for the request
    - <error>: failure description
    - <status>: key/value lines for status queries
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mcp.types import TextContent

__all__ = [
    "ResponseData",
    "ResponseFormatter",
    "format_error_response",
    "format_response",
]


@dataclass
class ResponseData:
    """Data for one tool response."""

    answer: str = ""
    status: dict[str, str] = field(default_factory=dict)
    success: bool = True
    error: str | None = None


class ResponseFormatter:
    """Formats ResponseData as XML-wrapped text.

    Example:
        >>> formatter = ResponseFormatter()
        >>> formatter.format(ResponseData(answer="ans = 2"))
        '<response>\\n<answer>\\nans = 2\\n</answer>\\n</response>'
    """

    def format(self, data: ResponseData) -> str:
        parts = ["<response>"]

        if not data.success:
            parts.append(f"<error>\n{data.error or 'Unknown error'}\n</error>")
        else:
            if data.status:
                lines = "\n".join(f"{key}: {value}" for key, value in data.status.items())
                parts.append(f"<status>\n{lines}\n</status>")
            if data.answer or not data.status:
                parts.append(f"<answer>\n{data.answer}\n</answer>")

        parts.append("</response>")
        return "\n".join(parts)


_formatter: ResponseFormatter | None = None


def get_formatter() -> ResponseFormatter:
    global _formatter
    if _formatter is None:
        _formatter = ResponseFormatter()
    return _formatter


def format_response(answer: str = "", status: dict[str, str] | None = None) -> list[TextContent]:
    from mcp.types import TextContent

    data = ResponseData(answer=answer, status=status or {})
    return [TextContent(type="text", text=get_formatter().format(data))]


def format_error_response(error: str) -> list[TextContent]:
    """Uniform error response so every failure keeps the same contract."""
    from mcp.types import TextContent

    data = ResponseData(success=False, error=error)
    return [TextContent(type="text", text=get_formatter().format(data))]
