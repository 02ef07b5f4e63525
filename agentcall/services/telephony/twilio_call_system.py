"""Twilio signaling backend."""
import logging
from typing import Dict, Optional

from twilio.base.exceptions import TwilioRestException
from twilio.http.async_http_client import AsyncTwilioHttpClient
from twilio.rest import Client
from twilio.twiml.voice_response import Connect, VoiceResponse

from agentcall.services.telephony.base import (
    AudioTransport,
    Call,
    CallStatus,
    CallSystem,
)
from agentcall.services.telephony.media_stream import TwilioMediaStream

logger = logging.getLogger(__name__)

MEDIA_STREAM_PATH = "/webhooks/voice/media-stream"
STATUS_CALLBACK_PATH = "/webhooks/voice/status"

# Twilio CallStatus values -> lifecycle status
TWILIO_STATUS_MAP: Dict[str, CallStatus] = {
    "queued": CallStatus.DIALING,
    "initiated": CallStatus.DIALING,
    "ringing": CallStatus.RINGING,
    "in-progress": CallStatus.ANSWERED,
    "completed": CallStatus.ENDED,
    "busy": CallStatus.BUSY,
    "no-answer": CallStatus.NO_ANSWER,
    "failed": CallStatus.FAILED,
    "canceled": CallStatus.FAILED,
}


def media_stream_url(base_url: str) -> str:
    """Websocket URL Twilio should stream call audio to."""
    base = base_url.rstrip("/")
    if base.startswith("https://"):
        base = "wss://" + base[len("https://"):]
    elif base.startswith("http://"):
        base = "ws://" + base[len("http://"):]
    return base + MEDIA_STREAM_PATH


def generate_stream_twiml(base_url: str) -> str:
    """
    Generate TwiML that connects the call audio to our media stream.

    Args:
        base_url: Public URL of this server

    Returns:
        TwiML XML string
    """
    response = VoiceResponse()
    connect = Connect()
    connect.stream(url=media_stream_url(base_url))
    response.append(connect)
    return str(response)


class TwilioCall(Call):
    """An outbound Twilio call leg."""

    def __init__(self, system: "TwilioCallSystem", sid: str, status: str = "queued"):
        self._system = system
        self._sid = sid
        self._twilio_status = status
        self._transport: Optional[TwilioMediaStream] = None

    @property
    def sid(self) -> str:
        return self._sid

    def update_status(self, twilio_status: str) -> None:
        """Record a status reported by Twilio."""
        self._twilio_status = twilio_status

    def attach_transport(self, transport: TwilioMediaStream) -> None:
        self._transport = transport

    def detach_transport(self) -> None:
        self._transport = None

    async def status(self) -> CallStatus:
        status = TWILIO_STATUS_MAP.get(self._twilio_status, CallStatus.DIALING)
        if status == CallStatus.ANSWERED and self._transport is None:
            # Answered but media not connected yet
            return CallStatus.RINGING
        if self._transport is not None and not status.is_terminal:
            return CallStatus.ANSWERED
        return status

    async def hangup(self) -> None:
        status = TWILIO_STATUS_MAP.get(self._twilio_status)
        if status is not None and status.is_terminal:
            return
        await self._system.hangup(self._sid)
        self._twilio_status = "completed"

    def transport(self) -> Optional[AudioTransport]:
        return self._transport


class TwilioCallSystem(CallSystem):
    """Places calls through the Twilio REST API and tracks them by call SID."""

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        phone_number: str,
        base_url: Optional[str],
        client: Optional[Client] = None,
    ):
        self.phone_number = phone_number
        self.base_url = base_url
        self._http_client: Optional[AsyncTwilioHttpClient] = None
        if client is None:
            self._http_client = AsyncTwilioHttpClient()
            client = Client(account_sid, auth_token, http_client=self._http_client)
        self.client = client
        self._calls: Dict[str, TwilioCall] = {}

    async def dial(self, to: str) -> Call:
        if not self.base_url:
            raise RuntimeError("base_url is not configured; Twilio cannot reach the media stream")

        base = self.base_url.rstrip("/")
        logger.info(f"[TWILIO] Placing call - To: {to}, From: {self.phone_number}")
        try:
            instance = await self.client.calls.create_async(
                to=to,
                from_=self.phone_number,
                twiml=generate_stream_twiml(base),
                status_callback=base + STATUS_CALLBACK_PATH,
                status_callback_event=["initiated", "ringing", "answered", "completed"],
                status_callback_method="POST",
            )
        except TwilioRestException as e:
            raise RuntimeError(f"Twilio rejected the call: {e.msg}") from e

        call = TwilioCall(self, instance.sid, instance.status or "queued")
        self._calls[instance.sid] = call
        logger.info(f"[TWILIO] Call placed - CallSid: {instance.sid}")
        return call

    async def hangup(self, call_sid: str) -> None:
        """Complete a call through the REST API."""
        logger.info(f"[TWILIO] Hanging up - CallSid: {call_sid}")
        await self.client.calls(call_sid).update_async(status="completed")

    def get_call(self, call_sid: str) -> Optional[TwilioCall]:
        return self._calls.get(call_sid)

    def handle_status_callback(self, call_sid: str, twilio_status: str) -> None:
        """Apply a Twilio status callback to the tracked call."""
        call = self._calls.get(call_sid)
        if call is None:
            logger.debug(f"[TWILIO] Status for untracked call - CallSid: {call_sid}")
            return
        call.update_status(twilio_status)
        status = TWILIO_STATUS_MAP.get(twilio_status)
        if status is not None and status.is_terminal:
            call.detach_transport()
            del self._calls[call_sid]

    def attach_stream(self, transport: TwilioMediaStream) -> bool:
        """Bind a started media stream to its call. Returns False if unknown."""
        call = self._calls.get(transport.call_sid)
        if call is None:
            logger.warning(
                f"[TWILIO] Media stream for untracked call - CallSid: {transport.call_sid}"
            )
            return False
        call.attach_transport(transport)
        return True

    def detach_stream(self, transport: TwilioMediaStream) -> None:
        call = self._calls.get(transport.call_sid)
        if call is not None and call.transport() is transport:
            call.detach_transport()

    async def close(self) -> None:
        self._calls.clear()
        if self._http_client is not None:
            await self._http_client.close()
