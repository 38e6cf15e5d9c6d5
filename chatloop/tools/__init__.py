"""Tools the model can call during a turn."""

from chatloop.tools.registry import ToolsRegistry, create_default_registry

__all__ = ["ToolsRegistry", "create_default_registry"]
