"""Call session models."""
import asyncio
import time
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from agentcall.services.telephony.base import Call


class Speaker(str, Enum):
    """Who said a line in the conversation."""

    ASSISTANT = "assistant"
    USER = "user"

    def __str__(self) -> str:
        """Return the string value of the speaker."""
        return self.value


class ConversationTurn(BaseModel):
    """A single spoken line. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    speaker: Speaker
    text: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class CallSession:
    """One active call: identity, lifecycle clock and conversation log."""

    def __init__(self, call_id: str, call: Call):
        self.call_id = call_id
        self.call = call  # Owned; hung up exactly once by the manager
        self.started_at = datetime.now(timezone.utc)
        self._started_monotonic = time.monotonic()
        self._turns: List[ConversationTurn] = []
        self.last_user_utterance: Optional[str] = None
        self._lock = asyncio.Lock()

    @property
    def turns(self) -> List[ConversationTurn]:
        """Snapshot of the conversation in order."""
        return list(self._turns)

    async def append_turn(self, speaker: Speaker, text: str) -> ConversationTurn:
        """Append a turn to the conversation log."""
        async with self._lock:
            turn = ConversationTurn(speaker=speaker, text=text)
            self._turns.append(turn)
            if speaker == Speaker.USER:
                self.last_user_utterance = text
            return turn

    def elapsed(self) -> float:
        """Seconds since the session was created."""
        return time.monotonic() - self._started_monotonic

    def get_transcript_text(self) -> str:
        """Get full transcript as text."""
        return "\n".join(f"{turn.speaker}: {turn.text}" for turn in self._turns)
