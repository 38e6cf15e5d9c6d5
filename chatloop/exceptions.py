"""Error hierarchy for turn processing.

Every error aborts the current turn only. History appended before the failure
stays in the conversation.
"""


class ChatLoopError(Exception):
    """Base for all turn-level failures."""


class ModelUnavailable(ChatLoopError):
    """The model call failed after its configured retries were exhausted."""

    def __init__(self, message: str = "Model service unavailable", attempts: int = 0) -> None:
        self.attempts = attempts
        if attempts:
            message = f"{message} (after {attempts} attempts)"
        super().__init__(message)


class ModelTimeout(ModelUnavailable):
    """The last model attempt ran past its deadline."""


class MalformedReply(ChatLoopError):
    """The model reply could not be turned into a message."""


class ToolExecutionFailed(ChatLoopError):
    """A requested tool call errored.

    Attributes:
        tool_name: Name the model asked for.
        call_id: Identifier of the tool call being resolved.
    """

    def __init__(self, tool_name: str, call_id: str, reason: str) -> None:
        self.tool_name = tool_name
        self.call_id = call_id
        self.reason = reason
        super().__init__(f"Tool {tool_name} failed: {reason}")


class ToolTimeout(ToolExecutionFailed):
    """A tool call ran past its deadline."""


class ToolLoopExceeded(ChatLoopError):
    """The model kept requesting tools past the round limit."""

    def __init__(self, rounds: int) -> None:
        self.rounds = rounds
        super().__init__(f"Tool loop exceeded {rounds} rounds without a final answer")


class SessionBusy(ChatLoopError):
    """A turn is already in flight for this session."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Session {session_id} is already processing a message")
