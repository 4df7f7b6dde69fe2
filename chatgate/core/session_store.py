"""
In-memory chat session store. Keyed by session_id; history is not sent from frontend.

The mapping lock only guards insert/lookup/remove of entries. Each session
carries its own lock, so appends to unrelated sessions never contend and one
session's history stays ordered under concurrent requests.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from chatgate.core.errors import NotFound

logger = logging.getLogger(__name__)

SENDER_USER = "user"
SENDER_BOT = "bot"


@dataclass(frozen=True)
class Message:
    """One chat message. Immutable once appended."""

    sender: str
    text: str
    timestamp: float


class Session:
    """A conversation thread: ordered messages plus activity timestamps."""

    def __init__(self, session_id: str, now: float) -> None:
        self.session_id = session_id
        self.created_at = now
        self._last_activity = now
        self._messages: list[Message] = []
        self._lock = threading.Lock()

    @property
    def last_activity(self) -> float:
        with self._lock:
            return self._last_activity

    def add(self, sender: str, text: str, now: float, reply_to: Message | None = None) -> Message:
        """
        Append a message. With ``reply_to`` the message is placed directly after
        that message, so a request's user/bot pair stays adjacent even when
        another request from the same session finished first.
        """
        message = Message(sender=sender, text=text or "", timestamp=now)
        with self._lock:
            index = len(self._messages)
            if reply_to is not None:
                for i in range(len(self._messages) - 1, -1, -1):
                    if self._messages[i] is reply_to:
                        index = i + 1
                        break
            self._messages.insert(index, message)
            self._last_activity = max(self._last_activity, now)
        return message

    def messages(self) -> list[Message]:
        """Copy of the history so the caller cannot mutate the store."""
        with self._lock:
            return list(self._messages)

    def is_idle(self, now: float, idle_timeout: float) -> bool:
        with self._lock:
            return now - self._last_activity > idle_timeout


class SessionStore:
    """Per-session history and liveness, reaped by ``sweep``."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def get_or_create(self, session_id: str) -> Session:
        """Return the session, creating it on a miss. Never fails."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                session = Session(session_id, self._clock())
                self._sessions[session_id] = session
                logger.info("[session_store:get_or_create] created session_id=%s", session_id[:16])
        return session

    def append(
        self,
        session_id: str,
        sender: str,
        text: str,
        reply_to: Message | None = None,
    ) -> Message:
        """Append one message; a session that vanished mid-call is recreated."""
        session = self.get_or_create(session_id)
        message = session.add(sender, text, self._clock(), reply_to=reply_to)
        with self._lock:
            current = self._sessions.get(session_id)
            if current is None:
                self._sessions[session_id] = session
                current = session
        if current is not session:
            # Reaped and recreated by another request between lookup and append.
            message = current.add(sender, text, self._clock())
        logger.info(
            "[session_store:append] session_id=%s sender=%s content_len=%d",
            session_id[:16],
            sender,
            len(text or ""),
        )
        return message

    def history(self, session_id: str) -> list[Message]:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise NotFound("Session not found", stage="history")
        return session.messages()

    def remove(self, session_id: str) -> bool:
        """Drop the session. Idempotent; returns whether anything was removed."""
        with self._lock:
            removed = self._sessions.pop(session_id, None) is not None
        logger.info("[session_store:remove] session_id=%s removed=%s", session_id[:16], removed)
        return removed

    def sweep(self, idle_timeout: float, now: float | None = None) -> int:
        """Remove every session idle for longer than ``idle_timeout``. Idempotent."""
        now = self._clock() if now is None else now
        removed = 0
        with self._lock:
            for session_id, session in list(self._sessions.items()):
                if session.is_idle(now, idle_timeout):
                    del self._sessions[session_id]
                    removed += 1
        return removed
