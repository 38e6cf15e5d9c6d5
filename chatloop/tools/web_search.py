"""Web search tool backed by Tavily."""

from typing import Any

from langchain_core.tools import ToolException, tool
from langchain_tavily import TavilySearch
from pydantic import BaseModel, Field

from chatloop.config import SearchConfig


class WebSearchInput(BaseModel):
    """Input schema for the web search tool."""

    query: str = Field(
        ...,
        min_length=1,
        max_length=400,
        description="Search query describing what to look up on the web",
        examples=["latest AI news", "population of Lisbon 2024"],
    )


def create_web_search_tool(config: SearchConfig, search: TavilySearch | None = None):
    """Create the ``web_search`` tool.

    Args:
        config: Result count and topic filter
        search: Optional preconfigured Tavily client
    """
    if search is None:
        options = {"max_results": config.max_results, "topic": config.topic}
        if config.api_key:
            options["tavily_api_key"] = config.api_key
        search = TavilySearch(**options)

    @tool("web_search", args_schema=WebSearchInput)
    async def web_search_handler(query: str) -> str:
        """Search the web for current information.

        Use this when the user asks about recent events, news, or facts that may
        have changed after your training data. Returns the top results with
        title, URL and a short excerpt for each. Summarise the findings for the
        user and mention the sources you relied on.
        """
        response = await search.ainvoke({"query": query})

        if isinstance(response, dict) and response.get("error"):
            raise ToolException(f"Search failed: {response['error']}")

        return format_results(query, response)

    return web_search_handler


def format_results(query: str, response: Any) -> str:
    """Format a Tavily response as plain text for the model."""
    if isinstance(response, str):
        return response

    results = response.get("results", []) if isinstance(response, dict) else []
    if not results:
        return f"No web results found for: {query}"

    lines = [f"Web results for: {query}", ""]
    for index, item in enumerate(results, start=1):
        lines.append(f"{index}. {item.get('title') or 'Untitled'}")
        if item.get("url"):
            lines.append(f"   URL: {item['url']}")
        if item.get("content"):
            lines.append(f"   {item['content'].strip()}")
        lines.append("")

    return "\n".join(lines).strip()
