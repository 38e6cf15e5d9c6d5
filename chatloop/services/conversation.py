"""Conversation service shared by the terminal and HTTP front-ends."""

from chatloop.clients.chat_model import ChatModelClient
from chatloop.config import ControllerConfig, Settings
from chatloop.exceptions import SessionBusy
from chatloop.models.llm import TurnResult
from chatloop.models.messages import Message
from chatloop.services.session_store import InMemorySessionStore, SessionStore
from chatloop.services.turn_controller import TurnController
from chatloop.tools.registry import create_default_registry
from chatloop.utils.logging import get_logger

logger = get_logger(__name__)


class ConversationService:
    """Service for handling conversational turns per session."""

    def __init__(
        self,
        controller: TurnController,
        store: SessionStore,
        model: ChatModelClient | None = None,
        config: ControllerConfig | None = None,
    ):
        """Initialize conversation service.

        Args:
            controller: Turn controller running the model/tool loop
            store: Session store shared with the controller
            model: Model client, used for token estimation when available
            config: Per-turn limits
        """
        self.controller = controller
        self.store = store
        self.model = model
        self.config = config or ControllerConfig()
        self._active_sessions: set[str] = set()

    async def process_message(self, message: str, session_id: str | None = None) -> TurnResult:
        """Process a user message and return the turn result.

        Args:
            message: User's message
            session_id: Existing session, or None to start a new one

        Returns:
            Turn result carrying the answer and the session id

        Raises:
            ValueError: If the message is empty or exceeds the token limit
            SessionBusy: If the session already has a turn in flight
        """
        self._validate_message(message)

        session_id = session_id or self.new_session()
        if session_id in self._active_sessions:
            raise SessionBusy(session_id)

        logger.info(f"Processing message for session {session_id}: {message[:50]}...")
        self._active_sessions.add(session_id)
        try:
            result = await self.controller.process_turn(session_id, message)
        finally:
            self._active_sessions.discard(session_id)

        if result.usage.total_tokens:
            logger.info(
                f"Token usage - Input: {result.usage.input_tokens}, "
                f"Output: {result.usage.output_tokens}, "
                f"Rounds: {result.rounds}"
            )

        return result

    def new_session(self) -> str:
        """Allocate a new session id."""
        return self.store.new_session_id()

    def has_session(self, session_id: str) -> bool:
        return self.store.exists(session_id)

    def history(self, session_id: str) -> tuple[Message, ...]:
        """Return the stored messages of a session."""
        return self.store.load(session_id).snapshot()

    def reset(self, session_id: str) -> bool:
        """Forget a session's history."""
        logger.info(f"Resetting session {session_id}")
        return self.store.delete(session_id)

    def _validate_message(self, message: str) -> None:
        """Validate message content and size.

        Raises:
            ValueError: If message is blank or exceeds token limit
        """
        if not message or not message.strip():
            raise ValueError("Message cannot be empty.")

        max_tokens = self.config.max_message_tokens
        if self.model is not None:
            token_count = self.model.estimate_tokens(message)
        else:
            # Roughly 4 characters per token
            token_count = len(message) // 4

        if max_tokens and token_count > max_tokens:
            raise ValueError(f"Your message is too long. Please keep messages under {max_tokens} tokens.")


def create_conversation_service(settings: Settings | None = None) -> ConversationService:
    """Wire the model client, tools, store and controller together.

    Raises:
        ValueError: If a required API key is missing
    """
    settings = settings or Settings.from_env()

    registry = create_default_registry(settings.search)
    model = ChatModelClient(settings.model, tools=registry.get_tools())
    store = InMemorySessionStore()
    controller = TurnController(model, registry, store, settings.controller)

    logger.info(
        f"ConversationService initialized with {settings.model.provider}:{settings.model.model}, "
        f"tools: {registry.get_tool_names()}"
    )
    return ConversationService(controller, store, model=model, config=settings.controller)


_conversation_service: ConversationService | None = None


def get_conversation_service() -> ConversationService:
    """Get or create conversation service instance."""
    global _conversation_service
    if _conversation_service is None:
        _conversation_service = create_conversation_service()
    return _conversation_service
