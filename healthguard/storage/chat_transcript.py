"""Chat assistant transcript kept in the per-session store."""

import json
import logging
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Callable, List

from .kv_store import KeyValueStore

logger = logging.getLogger(__name__)

CHAT_MESSAGES_KEY = "chat_messages"

WELCOME_MESSAGES = (
    "Hello! I'm your HealthGuard Assistant. I can help you understand fraud "
    "detection results and recommend next steps for your claim investigation.",
)


@dataclass
class ChatMessage:
    id: str
    is_user: bool
    text: str
    timestamp: str
    status: str = "sent"  # "sent" | "error"


def _format_time(moment: datetime) -> str:
    return moment.strftime("%H:%M")


class ChatTranscript:
    """Ordered chat messages for one browser session."""

    def __init__(self, store: KeyValueStore, clock: Callable[[], datetime] = datetime.now):
        self.store = store
        self.clock = clock

    def _new_message(self, is_user: bool, text: str, status: str = "sent") -> ChatMessage:
        return ChatMessage(
            id=uuid.uuid4().hex[:8],
            is_user=is_user,
            text=text,
            timestamp=_format_time(self.clock()),
            status=status,
        )

    def messages(self) -> List[ChatMessage]:
        """Stored messages; a fresh or unreadable transcript starts with the welcome."""
        raw = self.store.get(CHAT_MESSAGES_KEY)
        if raw is not None:
            try:
                return [ChatMessage(**item) for item in json.loads(raw)]
            except (json.JSONDecodeError, TypeError) as e:
                logger.warning(f"Discarding unreadable chat transcript: {str(e)}")
        return [self._new_message(False, text) for text in WELCOME_MESSAGES]

    def append(self, is_user: bool, text: str, status: str = "sent") -> ChatMessage:
        message = self._new_message(is_user, text, status)
        history = self.messages()
        history.append(message)
        self.store.set(CHAT_MESSAGES_KEY, json.dumps([asdict(m) for m in history]))
        return message

    def reset(self) -> None:
        self.store.delete(CHAT_MESSAGES_KEY)
