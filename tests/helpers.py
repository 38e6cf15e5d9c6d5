"""Test doubles shared across test modules."""

from collections.abc import Sequence

from chatloop.models.messages import Message, ToolInvocation


class ScriptedModel:
    """Model service that replays scripted replies or raises scripted errors."""

    def __init__(self, *replies: Message | Exception):
        self.replies = list(replies)
        self.calls: list[tuple[Message, ...]] = []

    async def ainvoke(self, messages: Sequence[Message]) -> Message:
        self.calls.append(tuple(messages))
        if not self.replies:
            raise AssertionError("ScriptedModel ran out of replies")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def tool_request(*names: str, query: str = "latest AI news") -> Message:
    """Build an assistant reply requesting the named tools."""
    calls = [
        ToolInvocation(id=f"call_{index}", name=name, arguments={"query": query})
        for index, name in enumerate(names, start=1)
    ]
    return Message.assistant("", tool_calls=calls)
