"""Twilio voice webhook endpoints."""
import logging
from fastapi import APIRouter, Depends, Form, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import Response

from agentcall.core.config import settings
from agentcall.core.dependencies import get_call_manager
from agentcall.services.call_session.manager import CallManager
from agentcall.services.telephony.media_stream import MediaStreamSession
from agentcall.services.telephony.twilio_call_system import (
    TwilioCallSystem,
    generate_stream_twiml,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def get_base_url(request: Request) -> str:
    """
    Get the base URL for constructing absolute URLs.

    Uses BASE_URL from settings if set (e.g. the ngrok tunnel),
    otherwise constructs from request.
    """
    if settings.base_url:
        return settings.base_url.rstrip('/')

    return str(request.base_url).rstrip('/')


def get_twilio_call_system(manager: CallManager) -> TwilioCallSystem | None:
    call_system = manager.call_system
    return call_system if isinstance(call_system, TwilioCallSystem) else None


@router.post("/voice/incoming")
async def handle_incoming_call(
    request: Request,
    CallSid: str = Form(...),
):
    """
    Handle an incoming call from Twilio.

    Connects the call's audio to the media stream.
    """
    logger.info(f"[INCOMING CALL] Received incoming call webhook - CallSid: {CallSid}")
    twiml = generate_stream_twiml(get_base_url(request))
    return Response(content=twiml, media_type="application/xml")


@router.post("/voice/status")
async def handle_call_status(
    request: Request,
    CallSid: str = Form(...),
    CallStatus: str = Form(...),
    manager: CallManager = Depends(get_call_manager),
):
    """
    Handle call status updates from Twilio.

    This endpoint is called when call status changes (ringing, answered, completed, etc.).
    """
    logger.info(
        f"[CALL STATUS] Received status update - CallSid: {CallSid}, "
        f"CallStatus: {CallStatus}"
    )
    call_system = get_twilio_call_system(manager)
    if call_system is not None:
        call_system.handle_status_callback(CallSid, CallStatus)
    # Drop the session once the user has hung up
    await manager.release_call(CallSid)

    # Always OK so Twilio does not retry
    return Response(content="OK", media_type="text/plain")


@router.websocket("/voice/media-stream")
async def handle_media_stream(
    websocket: WebSocket,
    manager: CallManager = Depends(get_call_manager),
):
    """Bridge a Twilio media stream to the call it belongs to."""
    await websocket.accept()
    call_system = get_twilio_call_system(manager)
    if call_system is None:
        logger.error("[MEDIA STREAM] Phone provider is not Twilio; closing stream")
        await websocket.close(code=1011, reason="Media streams require the Twilio provider")
        return

    stream = MediaStreamSession(
        send_text=websocket.send_text,
        on_start=call_system.attach_stream,
        on_stop=call_system.detach_stream,
    )
    try:
        while stream.handle_message(await websocket.receive_text()):
            pass
    except WebSocketDisconnect:
        logger.info("[MEDIA STREAM] Websocket disconnected")
    finally:
        stream.close()
