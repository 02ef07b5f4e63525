"""Twilio Media Streams duplex audio transport."""
import asyncio
import base64
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from agentcall.services.telephony.base import AudioSink, AudioSource, AudioTransport

logger = logging.getLogger(__name__)

# 20 ms mu-law frames at 8 kHz; 250 frames is five seconds of audio
INBOUND_QUEUE_FRAMES = 250


class InboundAudio(AudioSource):
    """Bounded queue of caller audio. Drops the oldest frame when full."""

    def __init__(self, max_frames: int = INBOUND_QUEUE_FRAMES):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_frames)
        self._closed = False

    def push(self, data: bytes) -> None:
        """Queue a frame received from the caller."""
        if self._closed:
            return
        if self._queue.full():
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                pass
        self._queue.put_nowait(data)

    def close(self) -> None:
        """Signal end of stream to readers."""
        if self._closed:
            return
        self._closed = True
        if self._queue.full():
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                pass
        self._queue.put_nowait(b"")

    async def read(self) -> bytes:
        data = await self._queue.get()
        if not data:
            # Leave the marker for any later reader
            self._queue.put_nowait(b"")
        return data


class OutboundAudio(AudioSink):
    """Sends audio to Twilio as base64 media frames."""

    def __init__(self, send_text: Callable[[str], Awaitable[None]], stream_sid: str):
        self._send_text = send_text
        self.stream_sid = stream_sid
        self.closed = False

    async def write(self, data: bytes) -> None:
        if self.closed:
            raise ConnectionError("media stream closed")
        payload = base64.b64encode(data).decode("utf-8")
        await self._send_text(
            json.dumps(
                {
                    "event": "media",
                    "streamSid": self.stream_sid,
                    "media": {"payload": payload},
                }
            )
        )


class TwilioMediaStream(AudioTransport):
    """Audio transport bound to one Twilio media stream websocket."""

    def __init__(
        self,
        call_sid: str,
        stream_sid: str,
        send_text: Callable[[str], Awaitable[None]],
    ):
        self.call_sid = call_sid
        self.stream_sid = stream_sid
        self._inbound = InboundAudio()
        self._outbound = OutboundAudio(send_text, stream_sid)

    @property
    def inbound(self) -> Optional[AudioSource]:
        return self._inbound

    @property
    def outbound(self) -> Optional[AudioSink]:
        return self._outbound

    def receive_media(self, payload: str) -> None:
        """Decode a base64 media payload from Twilio and queue it."""
        if payload:
            self._inbound.push(base64.b64decode(payload))

    def close(self) -> None:
        """Mark both directions closed."""
        self._inbound.close()
        self._outbound.closed = True


class MediaStreamSession:
    """
    Parses the Twilio Media Streams protocol for one websocket.

    Twilio sends JSON frames: connected, start, media, mark and stop. On
    start a transport is created and handed to `on_start`; on stop or
    disconnect it is closed and handed to `on_stop`.
    """

    def __init__(
        self,
        send_text: Callable[[str], Awaitable[None]],
        on_start: Callable[[TwilioMediaStream], None],
        on_stop: Callable[[TwilioMediaStream], None],
    ):
        self._send_text = send_text
        self._on_start = on_start
        self._on_stop = on_stop
        self.transport: Optional[TwilioMediaStream] = None

    def handle_message(self, message: str) -> bool:
        """Handle one frame. Returns False once the stream has stopped."""
        try:
            data: Dict[str, Any] = json.loads(message)
        except json.JSONDecodeError:
            logger.warning("[MEDIA STREAM] Ignoring non-JSON frame")
            return True

        event = data.get("event", "")
        if event == "connected":
            logger.debug("[MEDIA STREAM] Connected")
        elif event == "start":
            start = data.get("start", {})
            call_sid = start.get("callSid", "")
            stream_sid = start.get("streamSid", "") or data.get("streamSid", "")
            self.transport = TwilioMediaStream(call_sid, stream_sid, self._send_text)
            logger.info(
                f"[MEDIA STREAM] Started - CallSid: {call_sid}, StreamSid: {stream_sid}"
            )
            self._on_start(self.transport)
        elif event == "media":
            if self.transport is not None:
                self.transport.receive_media(data.get("media", {}).get("payload", ""))
        elif event == "mark":
            logger.debug(f"[MEDIA STREAM] Mark: {data.get('mark', {}).get('name')}")
        elif event == "stop":
            logger.info("[MEDIA STREAM] Stop received")
            self.close()
            return False
        return True

    def close(self) -> None:
        """End the stream, if it started."""
        if self.transport is None:
            return
        transport, self.transport = self.transport, None
        transport.close()
        self._on_stop(transport)
