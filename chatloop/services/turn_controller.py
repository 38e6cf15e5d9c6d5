"""Turn controller: the model/tool loop for one user turn."""

import asyncio
from enum import StrEnum

from chatloop.clients.chat_model import ModelService
from chatloop.config import ControllerConfig
from chatloop.exceptions import ToolExecutionFailed, ToolLoopExceeded, ToolTimeout
from chatloop.models.llm import TokenUsage, TurnResult
from chatloop.models.messages import Conversation, Message, ToolInvocation
from chatloop.services.session_store import SessionStore
from chatloop.tools.registry import ToolsRegistry
from chatloop.utils.logging import get_logger

logger = get_logger(__name__)

NOT_EXECUTED = "Error: not executed, the tool round limit for this turn was reached."


class TurnState(StrEnum):
    """States of the per-turn state machine."""

    AWAITING_MODEL = "awaiting_model"
    AWAITING_TOOLS = "awaiting_tools"
    DONE = "done"


def route_reply(message: Message) -> TurnState:
    """Decide where a turn goes after an assistant reply.

    The decision depends only on whether the reply requested tools.
    """
    if message.tool_calls:
        return TurnState.AWAITING_TOOLS
    return TurnState.DONE


class TurnController:
    """Runs user turns against a model and a tool registry.

    Tool failures are reported back to the model as ``tool`` messages flagged
    with ``is_error`` and the loop continues. Model failures, malformed replies
    and the round limit abort the turn.
    """

    def __init__(
        self,
        model: ModelService,
        tools: ToolsRegistry,
        store: SessionStore,
        config: ControllerConfig | None = None,
    ):
        self.model = model
        self.tools = tools
        self.store = store
        self.config = config or ControllerConfig()

    async def process_turn(self, session_id: str, user_text: str) -> TurnResult:
        """Process one user message for a session.

        The session's conversation is saved whether the turn succeeds or not.

        Args:
            session_id: Session identifier
            user_text: The user's message

        Returns:
            The final answer with turn metadata

        Raises:
            ModelUnavailable: If the model call failed after its retries
            MalformedReply: If a model reply could not be parsed
            ToolLoopExceeded: If the model kept requesting tools past the limit
        """
        conversation = self.store.load(session_id)
        start_length = len(conversation)

        try:
            result = await self.run(conversation, user_text)
        finally:
            self.store.save(session_id, conversation)

        result.session_id = session_id
        result.messages_added = len(conversation) - start_length
        return result

    async def run(self, conversation: Conversation, user_text: str) -> TurnResult:
        """Run the model/tool loop on a conversation until a final answer."""
        conversation.append(Message.user(user_text))

        usage = TokenUsage()
        rounds = 0

        while True:
            logger.debug(f"Calling model with {len(conversation)} messages (round {rounds})")
            reply = await self.model.ainvoke(conversation.snapshot())
            conversation.append(reply)

            if reply.usage:
                usage += reply.usage

            state = route_reply(reply)
            if state is TurnState.DONE:
                logger.info(f"Turn completed after {rounds} tool rounds")
                return TurnResult(answer=reply.content, session_id="", rounds=rounds, usage=usage)

            if rounds >= self.config.max_tool_rounds:
                logger.warning(f"Tool round limit ({self.config.max_tool_rounds}) reached, aborting turn")
                for call in reply.tool_calls:
                    conversation.append(Message.tool_result(call, NOT_EXECUTED, is_error=True))
                raise ToolLoopExceeded(self.config.max_tool_rounds)

            rounds += 1
            logger.info(f"Model requested {len(reply.tool_calls)} tool calls (round {rounds})")
            for call in reply.tool_calls:
                conversation.append(await self._resolve(call))

    async def _resolve(self, call: ToolInvocation) -> Message:
        """Run one tool call and wrap its payload in a tool message."""
        try:
            payload = await self._invoke_with_timeout(call)
        except ToolExecutionFailed as e:
            logger.error(f"{type(e).__name__}: {e}")
            return Message.tool_result(call, f"Error: {e.reason}", is_error=True)

        logger.debug(f"Tool {call.name} succeeded: {payload[:100]}...")
        return Message.tool_result(call, payload)

    async def _invoke_with_timeout(self, call: ToolInvocation) -> str:
        try:
            return await asyncio.wait_for(self.tools.invoke(call), timeout=self.config.tool_timeout)
        except TimeoutError as e:
            raise ToolTimeout(call.name, call.id, f"timed out after {self.config.tool_timeout}s") from e
