# =============================================================================
# Conversation Memory — In-Process, Per-Session Turn Log
# =============================================================================
#
# Append-only log of chat turns, partitioned by session id. Lives for the
# lifetime of the process; there is no expiry and no persistence.
#
# Mutations hold a lock; reads copy the requested slice under the same lock,
# so a reader never sees half of an extend() call.
# =============================================================================

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

logger = logging.getLogger(__name__)


class Role(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Turn:
    """One message of a conversation."""

    role: Role
    content: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def as_message(self) -> dict[str, str]:
        """Render as a model-backend chat message."""
        return {"role": self.role.value, "content": self.content}


class ConversationMemory:
    """In-memory chat history keyed by session id."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._turns: defaultdict[str, list[Turn]] = defaultdict(list)

    def append(self, session_id: str, turn: Turn) -> None:
        with self._lock:
            self._turns[session_id].append(turn)

    def extend(self, session_id: str, turns: Iterable[Turn]) -> None:
        """Append several turns as one step (e.g. a question and its answer)."""
        turns = list(turns)
        with self._lock:
            self._turns[session_id].extend(turns)
        logger.debug("Session %s: appended %d turns", session_id, len(turns))

    def recent(self, session_id: str, limit: int) -> list[Turn]:
        """
        The most recent `limit` turns of a session, oldest first.

        Unknown sessions return []. limit=0 returns [].

        Raises:
            ValueError: If limit is negative.
        """
        if limit < 0:
            raise ValueError("limit must be >= 0")
        if limit == 0:
            return []
        with self._lock:
            turns = self._turns.get(session_id)
            return list(turns[-limit:]) if turns else []

    def clear(self, session_id: str) -> None:
        with self._lock:
            self._turns.pop(session_id, None)

    def sessions(self) -> list[str]:
        with self._lock:
            return list(self._turns)
