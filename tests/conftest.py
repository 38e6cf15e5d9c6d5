"""Shared fixtures: recording tools, registry, store and controller factory."""

import pytest
from langchain_core.tools import tool

from chatloop.config import ControllerConfig
from chatloop.services.session_store import InMemorySessionStore
from chatloop.services.turn_controller import TurnController
from chatloop.tools.registry import ToolsRegistry


@pytest.fixture
def search_log() -> list[str]:
    return []


@pytest.fixture
def fake_search(search_log):
    @tool("web_search")
    async def web_search(query: str) -> str:
        """Search the web."""
        search_log.append(query)
        return f"Results for {query}: AI model released."

    return web_search


@pytest.fixture
def failing_search():
    @tool("web_search")
    async def web_search(query: str) -> str:
        """Search the web."""
        raise RuntimeError("search backend down")

    return web_search


@pytest.fixture
def registry(fake_search) -> ToolsRegistry:
    return ToolsRegistry([fake_search])


@pytest.fixture
def store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def make_controller(registry, store):
    def _make(model, tools: ToolsRegistry | None = None, **config) -> TurnController:
        return TurnController(model, tools if tools is not None else registry, store, ControllerConfig(**config))

    return _make
