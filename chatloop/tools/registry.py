"""Tools registry for managing model-callable tools."""

import json
from typing import Any

from langchain_core.tools import BaseTool

from chatloop.config import SearchConfig
from chatloop.exceptions import ToolExecutionFailed
from chatloop.models.messages import ToolInvocation
from chatloop.tools.web_search import create_web_search_tool
from chatloop.utils.logging import get_logger

logger = get_logger(__name__)

EMPTY_RESULT = "The tool returned no output."


class ToolsRegistry:
    """Registry of named tools the model may invoke."""

    def __init__(self, tools: list[BaseTool] | None = None):
        """Initialize the registry with an optional initial tool set."""
        self._tools: dict[str, BaseTool] = {}
        for tool in tools or []:
            self.register_tool(tool)

    def register_tool(self, tool: BaseTool) -> None:
        """Register a new tool in the registry."""
        if tool.name in self._tools:
            logger.warning(f"Replacing already registered tool {tool.name}")
        self._tools[tool.name] = tool

    def get_tools(self) -> list[BaseTool]:
        """Get the registered tools for binding to a chat model."""
        return list(self._tools.values())

    def get_tool_names(self) -> list[str]:
        """Get list of all registered tool names."""
        return list(self._tools.keys())

    def has_tool(self, name: str) -> bool:
        """Check if a tool is registered."""
        return name in self._tools

    async def invoke(self, call: ToolInvocation) -> str:
        """Run one tool call and render its payload as text.

        Raises:
            ToolExecutionFailed: If the tool is unknown or raises
        """
        tool = self._tools.get(call.name)
        if tool is None:
            raise ToolExecutionFailed(call.name, call.id, f"unknown tool {call.name}")

        logger.debug(f"Executing tool: {call.name} with input: {call.arguments_dict()}")
        try:
            result = await tool.ainvoke(call.arguments_dict())
        except ToolExecutionFailed:
            raise
        except Exception as e:
            raise ToolExecutionFailed(call.name, call.id, str(e) or type(e).__name__) from e

        return render_payload(result)

    def __len__(self) -> int:
        return len(self._tools)


def render_payload(result: Any) -> str:
    """Render a tool result as message content."""
    if isinstance(result, str):
        return result if result.strip() else EMPTY_RESULT
    if result is None:
        return EMPTY_RESULT
    return json.dumps(result, default=str, ensure_ascii=False)


def create_default_registry(search_config: SearchConfig | None = None) -> ToolsRegistry:
    """Build the registry holding the default tool set."""
    return ToolsRegistry([create_web_search_tool(search_config or SearchConfig())])
