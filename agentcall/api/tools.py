"""Call tool endpoints for the assistant."""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from agentcall.core.dependencies import get_call_manager
from agentcall.services.call_session.errors import CallError
from agentcall.services.call_session.manager import CallManager

router = APIRouter()
logger = logging.getLogger(__name__)


class InitiateCallRequest(BaseModel):
    """Input for initiate_call."""
    message: str


class InitiateCallResponse(BaseModel):
    """Output of initiate_call."""
    call_id: str
    response: str


class ContinueCallRequest(BaseModel):
    """Input for continue_call."""
    call_id: str
    message: str


class ContinueCallResponse(BaseModel):
    """Output of continue_call."""
    response: str


class SpeakToUserRequest(BaseModel):
    """Input for speak_to_user."""
    call_id: str
    message: str


class SpeakToUserResponse(BaseModel):
    """Output of speak_to_user."""
    success: bool


class EndCallRequest(BaseModel):
    """Input for end_call."""
    call_id: str
    message: Optional[str] = None


class EndCallResponse(BaseModel):
    """Output of end_call."""
    duration_seconds: float


class TurnResponse(BaseModel):
    """One line of a call's conversation."""
    speaker: str
    text: str
    timestamp: str


class CallStateResponse(BaseModel):
    """State of an active call."""
    call_id: str
    duration_seconds: float
    last_user_message: Optional[str] = None
    turns: List[TurnResponse] = []


def _to_http_error(tool: str, error: CallError) -> HTTPException:
    logger.warning(f"[TOOLS] {tool} failed - {type(error).__name__}: {error.message}")
    return HTTPException(status_code=error.status_code, detail=f"failed to {tool}: {error.message}")


@router.post("/tools/initiate_call", response_model=InitiateCallResponse)
async def initiate_call(
    body: InitiateCallRequest,
    manager: CallManager = Depends(get_call_manager),
):
    """
    Call the user on the phone, speak the message once they answer and
    return their spoken reply.
    """
    try:
        call_id, response = await manager.initiate_call(body.message)
    except CallError as e:
        raise _to_http_error("initiate call", e) from e
    return InitiateCallResponse(call_id=call_id, response=response)


@router.post("/tools/continue_call", response_model=ContinueCallResponse)
async def continue_call(
    body: ContinueCallRequest,
    manager: CallManager = Depends(get_call_manager),
):
    """Speak another message on an active call and return the reply."""
    try:
        response = await manager.continue_call(body.call_id, body.message)
    except CallError as e:
        raise _to_http_error("continue call", e) from e
    return ContinueCallResponse(response=response)


@router.post("/tools/speak_to_user", response_model=SpeakToUserResponse)
async def speak_to_user(
    body: SpeakToUserRequest,
    manager: CallManager = Depends(get_call_manager),
):
    """Speak a message without waiting for a reply."""
    try:
        await manager.speak_to_user(body.call_id, body.message)
    except CallError as e:
        raise _to_http_error("speak", e) from e
    return SpeakToUserResponse(success=True)


@router.post("/tools/end_call", response_model=EndCallResponse)
async def end_call(
    body: EndCallRequest,
    manager: CallManager = Depends(get_call_manager),
):
    """End an active call, optionally speaking a final message first."""
    try:
        duration = await manager.end_call(body.call_id, body.message)
    except CallError as e:
        raise _to_http_error("end call", e) from e
    return EndCallResponse(duration_seconds=duration)


@router.get("/calls/{call_id}", response_model=CallStateResponse)
async def get_call(
    call_id: str,
    manager: CallManager = Depends(get_call_manager),
):
    """Get the conversation of an active call."""
    session = await manager.get_session(call_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"call not found: {call_id}")
    return CallStateResponse(
        call_id=session.call_id,
        duration_seconds=session.elapsed(),
        last_user_message=session.last_user_utterance,
        turns=[
            TurnResponse(
                speaker=turn.speaker.value,
                text=turn.text,
                timestamp=turn.timestamp.isoformat(),
            )
            for turn in session.turns
        ],
    )
