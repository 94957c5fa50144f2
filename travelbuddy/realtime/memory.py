"""
Conversation Log Module

Holds the session's ordered, append-only list of conversation turns.
Turns are immutable and timestamps never go backwards along the log.
"""

import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Tuple

from travelbuddy.logger import get_logger

logger = get_logger(__name__)


class Role(Enum):
    """Who produced a turn."""
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class ConversationTurn:
    """Single conversation entry."""
    role: Role
    text: str
    occurred_at: float

    @property
    def display_time(self) -> str:
        """HH:MM in local time, as shown next to chat bubbles."""
        return datetime.fromtimestamp(self.occurred_at).strftime("%H:%M")


class ConversationLog:
    """
    Append-only conversation history for one session.

    Usage:
        log = ConversationLog()
        log.append(Role.USER, "今日はどこに行けばいい？")
        log.append(Role.ASSISTANT, "浅草はいかがでしょう。")
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._clock = clock or time.time
        self._turns: List[ConversationTurn] = []

    def append(self, role: Role, text: str) -> ConversationTurn:
        """Create and append a turn stamped with the current time."""
        now = self._clock()
        if self._turns and now < self._turns[-1].occurred_at:
            # Wall clock stepped backwards; keep the log ordered
            now = self._turns[-1].occurred_at
        turn = ConversationTurn(role=role, text=text, occurred_at=now)
        self._turns.append(turn)
        logger.debug(f"{role.value}: {text}")
        return turn

    @property
    def turns(self) -> Tuple[ConversationTurn, ...]:
        """Read-only view of all turns."""
        return tuple(self._turns)

    @property
    def last(self) -> Optional[ConversationTurn]:
        return self._turns[-1] if self._turns else None

    def count(self, role: Optional[Role] = None) -> int:
        """Number of turns, optionally for one role."""
        if role is None:
            return len(self._turns)
        return sum(1 for turn in self._turns if turn.role == role)

    def __len__(self) -> int:
        return len(self._turns)
