"""Signaling backend and audio transport interfaces."""
from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional


class CallStatus(str, Enum):
    """Lifecycle status of an outbound call leg."""

    DIALING = "dialing"
    RINGING = "ringing"
    ANSWERED = "answered"
    ENDED = "ended"
    FAILED = "failed"
    BUSY = "busy"
    NO_ANSWER = "no_answer"

    @property
    def is_terminal(self) -> bool:
        """Whether the call can never become answered from this status."""
        return self in (
            CallStatus.ENDED,
            CallStatus.FAILED,
            CallStatus.BUSY,
            CallStatus.NO_ANSWER,
        )

    def __str__(self) -> str:
        """Return the string value of the status."""
        return self.value


class AudioSource(ABC):
    """Inbound audio from the caller."""

    @abstractmethod
    async def read(self) -> bytes:
        """Read the next frame. Returns b"" at end of stream."""
        pass


class AudioSink(ABC):
    """Outbound audio to the caller."""

    @abstractmethod
    async def write(self, data: bytes) -> None:
        """Write one frame to the call."""
        pass


class AudioTransport(ABC):
    """Duplex audio channel of an answered call."""

    @property
    @abstractmethod
    def inbound(self) -> Optional[AudioSource]:
        """Audio spoken by the user."""
        pass

    @property
    @abstractmethod
    def outbound(self) -> Optional[AudioSink]:
        """Audio played to the user."""
        pass


class Call(ABC):
    """A single call leg placed through a signaling backend."""

    @property
    @abstractmethod
    def sid(self) -> str:
        """Backend-assigned identifier of the call leg."""
        pass

    @abstractmethod
    async def status(self) -> CallStatus:
        """Current lifecycle status."""
        pass

    @abstractmethod
    async def hangup(self) -> None:
        """Terminate the call leg."""
        pass

    @abstractmethod
    def transport(self) -> Optional[AudioTransport]:
        """Duplex audio transport, or None until media is connected."""
        pass


class CallSystem(ABC):
    """Places outbound calls."""

    @abstractmethod
    async def dial(self, to: str) -> Call:
        """Place a call to the given E.164 number."""
        pass

    async def close(self) -> None:
        """Release backend resources."""
        return None
