"""In-memory chat history per client session, with a sliding window."""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field

from src.chat.models import ChatMessage, Role
from src.config import settings

logger = logging.getLogger(__name__)


@dataclass
class Session:
    """Conversation history for a single client."""

    messages: list[ChatMessage] = field(default_factory=list)
    window_size: int = field(default_factory=lambda: settings.conversation_window_size)

    def add(self, role: Role, content: str) -> ChatMessage:
        """Append a message and trim to the sliding window."""
        message = ChatMessage(role=role, content=content)
        self.messages.append(message)
        if len(self.messages) > self.window_size:
            self.messages = self.messages[-self.window_size :]
        return message

    def clear(self) -> int:
        """Clear all messages. Returns the count of cleared messages."""
        count = len(self.messages)
        self.messages.clear()
        return count

    def to_api_messages(self) -> list[dict[str, str]]:
        return [m.to_api() for m in self.messages]


_sessions: OrderedDict[str, Session] = OrderedDict()


def get_session(session_id: str) -> Session:
    """Get or create the session for a client id.

    At most ``settings.max_sessions`` are kept; the least recently used one
    is forgotten when a new client pushes past the limit.
    """
    session = _sessions.get(session_id)
    if session is not None:
        _sessions.move_to_end(session_id)
        return session

    session = _sessions[session_id] = Session()
    logger.debug("New chat session: %s", session_id)
    while len(_sessions) > max(settings.max_sessions, 1):
        evicted, _ = _sessions.popitem(last=False)
        logger.debug("Evicted idle chat session: %s", evicted)
    return session


def drop_session(session_id: str) -> bool:
    return _sessions.pop(session_id, None) is not None
