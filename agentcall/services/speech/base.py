"""Speech synthesis and recognition interfaces."""
from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional

from pydantic import BaseModel, ConfigDict


class SynthesisConfig(BaseModel):
    """Voice and output encoding for a synthesis request."""

    voice: str
    model: str
    output_encoding: str = "ulaw"  # Native mu-law for phone calls
    sample_rate: int = 8000


class AudioChunk(BaseModel):
    """One frame of synthesized audio."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    audio: bytes = b""
    is_final: bool = False
    error: Optional[Exception] = None


class TranscriptionConfig(BaseModel):
    """Recognition settings for a streaming transcription session."""

    language: str
    model: str
    encoding: str = "mulaw"
    sample_rate: int = 8000
    channels: int = 1
    punctuation: bool = True
    endpointing_ms: Optional[int] = None


class TranscriptEvent(BaseModel):
    """A transcript fragment emitted by a recognition stream."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    transcript: str = ""
    is_final: bool = False
    error: Optional[Exception] = None


class Synthesizer(ABC):
    """Streaming text-to-speech backend."""

    @abstractmethod
    async def synthesize_stream(
        self, text: str, config: SynthesisConfig
    ) -> AsyncIterator[AudioChunk]:
        """
        Start synthesizing text.

        Raises if the backend rejects the request. The returned iterator
        yields audio chunks in playback order and ends with a final chunk.
        """
        pass

    async def close(self) -> None:
        """Release backend resources."""
        return None


class TranscriptionStream(ABC):
    """An open recognition session: an audio writer plus transcript events."""

    @abstractmethod
    async def write(self, audio: bytes) -> None:
        """Send audio to the recognizer."""
        pass

    @abstractmethod
    def events(self) -> AsyncIterator[TranscriptEvent]:
        """Transcript events in the order the recognizer produced them."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Finish the session and release its connection."""
        pass

    async def __aenter__(self) -> "TranscriptionStream":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


class Recognizer(ABC):
    """Streaming speech-to-text backend."""

    @abstractmethod
    async def transcribe_stream(
        self, config: TranscriptionConfig
    ) -> TranscriptionStream:
        """Open a streaming recognition session."""
        pass

    async def close(self) -> None:
        """Release backend resources."""
        return None
