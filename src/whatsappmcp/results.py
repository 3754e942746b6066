from dataclasses import dataclass, field
from typing import List

import mcp.types as types


@dataclass
class ToolResult:
    """Content items plus an error flag, built fresh for each tool call."""
    content: List[types.TextContent] = field(default_factory=list)
    is_error: bool = False

    @classmethod
    def text(cls, text: str) -> "ToolResult":
        return cls(content=[types.TextContent(type="text", text=text)])

    @classmethod
    def error(cls, text: str) -> "ToolResult":
        return cls(content=[types.TextContent(type="text", text=text)], is_error=True)

    @property
    def texts(self) -> List[str]:
        return [item.text for item in self.content]

    def to_call_tool_result(self) -> types.CallToolResult:
        return types.CallToolResult(content=list(self.content), isError=self.is_error)
