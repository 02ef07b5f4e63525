"""Speech-to-text service."""
import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional
from urllib.parse import urlencode

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, ConnectionClosedError

from agentcall.services.speech.base import (
    Recognizer,
    TranscriptEvent,
    TranscriptionConfig,
    TranscriptionStream,
)

logger = logging.getLogger(__name__)

DEEPGRAM_LISTEN_URL = "wss://api.deepgram.com/v1/listen"


def build_listen_url(config: TranscriptionConfig, base_url: str = DEEPGRAM_LISTEN_URL) -> str:
    """Build the Deepgram live transcription URL for a config."""
    params: Dict[str, Any] = {
        "model": config.model,
        "language": config.language,
        "encoding": config.encoding,
        "sample_rate": config.sample_rate,
        "channels": config.channels,
        "punctuate": str(config.punctuation).lower(),
        "interim_results": "true",
    }
    if config.endpointing_ms:
        params["endpointing"] = config.endpointing_ms
        # UtteranceEnd needs at least 1000 ms
        params["utterance_end_ms"] = max(1000, config.endpointing_ms)
    return f"{base_url}?{urlencode(params)}"


class DeepgramError(Exception):
    """Error reported by Deepgram on an open stream."""


class TranscriptAssembler:
    """
    Folds Deepgram live results into utterance-level transcript events.

    Deepgram finalizes an utterance in segments (`is_final`) and marks the
    end of speech with `speech_final` or a separate `UtteranceEnd` message.
    Each emitted event carries the whole utterance heard so far; the event
    is final once the speaker has stopped.
    """

    def __init__(self):
        self._segments: List[str] = []

    def _text(self, extra: str = "") -> str:
        parts = self._segments + ([extra] if extra else [])
        return " ".join(parts)

    def _finish(self) -> Optional[TranscriptEvent]:
        text = self._text()
        self._segments = []
        if not text:
            return None
        return TranscriptEvent(transcript=text, is_final=True)

    def handle(self, data: Dict[str, Any]) -> Optional[TranscriptEvent]:
        msg_type = data.get("type")

        if msg_type == "Results":
            alternatives = data.get("channel", {}).get("alternatives") or [{}]
            fragment = (alternatives[0].get("transcript") or "").strip()
            if data.get("is_final"):
                if fragment:
                    self._segments.append(fragment)
                if data.get("speech_final"):
                    return self._finish()
                text = self._text()
            else:
                text = self._text(fragment)
            return TranscriptEvent(transcript=text) if text else None

        if msg_type == "UtteranceEnd":
            return self._finish()

        if msg_type == "Error":
            description = data.get("description") or data.get("message") or "unknown error"
            return TranscriptEvent(error=DeepgramError(description))

        return None


class DeepgramTranscriptionStream(TranscriptionStream):
    """An open Deepgram live transcription websocket."""

    def __init__(self, websocket: ClientConnection):
        self._ws = websocket
        self._assembler = TranscriptAssembler()
        self._closing = False

    async def write(self, audio: bytes) -> None:
        await self._ws.send(audio)

    async def events(self) -> AsyncIterator[TranscriptEvent]:
        try:
            async for message in self._ws:
                if isinstance(message, bytes):
                    continue
                try:
                    data = json.loads(message)
                except json.JSONDecodeError:
                    logger.debug("[STT] Ignoring non-JSON message")
                    continue
                event = self._assembler.handle(data)
                if event is not None:
                    yield event
        except ConnectionClosedError as e:
            if not self._closing:
                yield TranscriptEvent(error=e)

    async def close(self) -> None:
        if self._closing:
            return
        self._closing = True
        try:
            await self._ws.send(json.dumps({"type": "CloseStream"}))
        except ConnectionClosed:
            pass
        await self._ws.close()


class DeepgramRecognizer(Recognizer):
    """Service for converting call audio to text with Deepgram live streaming."""

    def __init__(self, api_key: str, base_url: str = DEEPGRAM_LISTEN_URL):
        self.api_key = api_key
        self.base_url = base_url

    async def transcribe_stream(self, config: TranscriptionConfig) -> TranscriptionStream:
        url = build_listen_url(config, self.base_url)
        logger.debug(f"[STT] Opening Deepgram stream - Model: {config.model}")
        websocket = await connect(
            url,
            additional_headers={"Authorization": f"Token {self.api_key}"},
            max_size=16 * 1024 * 1024,
            ping_interval=20,
            ping_timeout=10,
            close_timeout=1,
        )
        return DeepgramTranscriptionStream(websocket)
