"""Per-session conversation history and the active model setting.

Sessions are keyed by strings like "<guild_id>:<channel_id>",
"priv:<user_id>" or "dm:<user_id>". Each keeps at most HISTORY_LIMIT
turns; the oldest are dropped first.

Not locked: callers must not run two exchanges for the same key at once.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Literal

logger = logging.getLogger("raphael.session")

HISTORY_LIMIT = 150

Role = Literal["system", "user", "assistant"]


@dataclass(frozen=True)
class Turn:
    role: Role
    content: str

    def to_dict(self) -> dict:
        return {"role": self.role, "content": self.content}


class SessionStore:
    """History ring buffers keyed by session, plus the active model name.

    One instance is built at startup and handed to whoever needs it;
    tests build their own.
    """

    def __init__(self, default_model: str, limit: int = HISTORY_LIMIT):
        """Initialize the store.

        Args:
            default_model: Model name in use until set_active_model() is called
            limit: Maximum turns kept per session
        """
        self.limit = limit
        self._active_model = default_model
        self._history: dict[str, list[Turn]] = {}

    @property
    def active_model(self) -> str:
        return self._active_model

    def set_active_model(self, name: str):
        self._active_model = name
        logger.info(f"Active model set to {name}")

    def get(self, key: str) -> list[Turn]:
        """Turns for a session, oldest first. Unknown keys give []."""
        return list(self._history.get(key, ()))

    def replace(self, key: str, turns: Iterable[Turn]):
        """Store turns for a session, keeping only the most recent `limit`."""
        turns = list(turns)
        if len(turns) > self.limit:
            turns = turns[-self.limit:]
        self._history[key] = turns

    def append(self, key: str, user_content: str, assistant_content: str):
        """Record one exchange: the user turn, then the assistant turn."""
        self.replace(key, [
            *self._history.get(key, ()),
            Turn(role="user", content=user_content),
            Turn(role="assistant", content=assistant_content),
        ])

    def clear_all(self):
        """Forget every session's history. The active model is kept."""
        count = len(self._history)
        self._history.clear()
        logger.info(f"Conversation history cleared ({count} sessions)")

    def __contains__(self, key: str) -> bool:
        return key in self._history

    def __len__(self) -> int:
        return len(self._history)
