"""Session storage keyed by session id."""

from datetime import UTC, datetime, timedelta
from typing import Protocol

from cuid2 import cuid_wrapper

from chatloop.models.messages import Conversation
from chatloop.models.session import Session
from chatloop.utils.logging import get_logger

logger = get_logger(__name__)

cuid = cuid_wrapper()


class SessionStore(Protocol):
    """Interface for conversation persistence scoped by session id."""

    def load(self, session_id: str) -> Conversation:
        """Load the conversation for a session.

        Args:
            session_id: Session identifier

        Returns:
            The stored conversation, or an empty one for unknown sessions
        """
        ...

    def save(self, session_id: str, conversation: Conversation) -> None:
        """Persist the conversation for a session."""
        ...

    def exists(self, session_id: str) -> bool:
        """Check whether a session is stored."""
        ...

    def delete(self, session_id: str) -> bool:
        """Delete a session, returning False if it was not stored."""
        ...

    def new_session_id(self) -> str:
        """Allocate a fresh session identifier."""
        ...


class InMemorySessionStore:
    """In-memory session store with idle expiry.

    Conversations are kept as plain message records, so every ``load`` hands
    out a fresh ``Conversation`` that callers own until they ``save`` it.
    """

    def __init__(self, session_timeout_minutes: int = 60):
        """Initialize session store.

        Args:
            session_timeout_minutes: Minutes of inactivity before a session expires
        """
        self.sessions: dict[str, Session] = {}
        self.session_timeout = timedelta(minutes=session_timeout_minutes)

    def load(self, session_id: str) -> Conversation:
        self._cleanup_expired_sessions()

        session = self.sessions.get(session_id)
        if session is None:
            return Conversation()

        session.update_activity()
        return Conversation.from_records(session.records)

    def save(self, session_id: str, conversation: Conversation) -> None:
        session = self.sessions.get(session_id)
        if session is None:
            session = Session(session_id=session_id)
            self.sessions[session_id] = session
            logger.debug(f"Created session {session_id}")

        session.records = conversation.to_records()
        session.update_activity()

    def exists(self, session_id: str) -> bool:
        self._cleanup_expired_sessions()
        return session_id in self.sessions

    def delete(self, session_id: str) -> bool:
        if session_id in self.sessions:
            del self.sessions[session_id]
            return True
        return False

    def new_session_id(self) -> str:
        """Generate a new CUID-based session ID."""
        return cuid()

    def get_session_count(self) -> int:
        """Get current number of active sessions."""
        self._cleanup_expired_sessions()
        return len(self.sessions)

    def _cleanup_expired_sessions(self) -> None:
        """Remove expired sessions from memory."""
        current_time = datetime.now(UTC)
        expired_sessions = [
            session_id
            for session_id, session in self.sessions.items()
            if current_time - session.last_activity > self.session_timeout
        ]

        for session_id in expired_sessions:
            logger.info(f"Expiring idle session {session_id}")
            del self.sessions[session_id]
