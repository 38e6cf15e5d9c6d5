"""Message and conversation data models."""

from collections.abc import Iterable, Iterator, Mapping
from types import MappingProxyType
from typing import Any, Literal

from pydantic import BaseModel, Field, field_serializer, field_validator, model_validator

from chatloop.models.llm import TokenUsage

Role = Literal["user", "assistant", "tool"]


def _freeze(value: Any) -> Any:
    """Return a read-only copy of a JSON-like value."""
    if isinstance(value, Mapping):
        return MappingProxyType({key: _freeze(item) for key, item in value.items()})
    if isinstance(value, list | tuple):
        return tuple(_freeze(item) for item in value)
    return value


def _thaw(value: Any) -> Any:
    """Return a plain, mutable copy of a value built by ``_freeze``."""
    if isinstance(value, Mapping):
        return {key: _thaw(item) for key, item in value.items()}
    if isinstance(value, tuple):
        return [_thaw(item) for item in value]
    return value


class ToolInvocation(BaseModel):
    """A structured request from the model to run a named tool.

    ``arguments`` is stored read-only; use ``arguments_dict()`` for a mutable copy.
    """

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    arguments: Mapping[str, Any] = Field(default_factory=lambda: MappingProxyType({}))

    class Config:
        frozen = True

    @field_validator("arguments", mode="after")
    @classmethod
    def freeze_arguments(cls, value: Mapping[str, Any]) -> Mapping[str, Any]:
        return _freeze(value)

    @field_serializer("arguments")
    def serialize_arguments(self, value: Mapping[str, Any]) -> dict[str, Any]:
        return _thaw(value)

    def arguments_dict(self) -> dict[str, Any]:
        return _thaw(self.arguments)


class Message(BaseModel):
    """A single conversation record.

    ``content`` may only be empty on an assistant reply that carries tool calls.
    Tool results must name the call they answer through ``tool_call_id``.
    """

    role: Role
    content: str
    tool_calls: tuple[ToolInvocation, ...] = ()
    tool_call_id: str | None = None
    name: str | None = None
    is_error: bool = False
    usage: TokenUsage | None = None

    class Config:
        frozen = True

    @model_validator(mode="after")
    def check_shape(self) -> "Message":
        """Validate the role-dependent fields."""
        if not self.content and not self.tool_calls:
            raise ValueError("content may only be empty when tool_calls is non-empty")

        if self.tool_calls and self.role != "assistant":
            raise ValueError("only assistant messages may carry tool_calls")

        if self.role == "tool" and not self.tool_call_id:
            raise ValueError("tool messages require a tool_call_id")

        if self.role != "tool" and self.tool_call_id is not None:
            raise ValueError("tool_call_id is only valid on tool messages")

        return self

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role="user", content=content)

    @classmethod
    def assistant(
        cls, content: str, tool_calls: Iterable[ToolInvocation] | None = None, usage: TokenUsage | None = None
    ) -> "Message":
        return cls(role="assistant", content=content, tool_calls=tuple(tool_calls or ()), usage=usage)

    @classmethod
    def tool_result(cls, call: ToolInvocation, content: str, is_error: bool = False) -> "Message":
        return cls(role="tool", content=content, tool_call_id=call.id, name=call.name, is_error=is_error)


class Conversation:
    """Ordered, append-only message history for one session."""

    def __init__(self, messages: Iterable[Message] = ()):
        self._messages: list[Message] = []
        for message in messages:
            self.append(message)

    def append(self, message: Message) -> None:
        """Add one message to the end of the history."""
        if not isinstance(message, Message):
            raise TypeError(f"Expected Message, got {type(message).__name__}")
        self._messages.append(message)

    def snapshot(self) -> tuple[Message, ...]:
        """Return the full ordered history."""
        return tuple(self._messages)

    @property
    def last(self) -> Message | None:
        return self._messages[-1] if self._messages else None

    def to_records(self) -> list[dict[str, Any]]:
        """Serialize to plain dictionaries for storage."""
        return [message.model_dump() for message in self._messages]

    @classmethod
    def from_records(cls, records: Iterable[dict[str, Any]]) -> "Conversation":
        """Rebuild a conversation from stored records."""
        return cls(Message.model_validate(record) for record in records)

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(self.snapshot())

    def __repr__(self) -> str:
        return f"Conversation(messages={len(self._messages)})"
