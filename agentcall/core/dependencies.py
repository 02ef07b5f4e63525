"""Provider wiring and FastAPI dependencies."""
from fastapi import HTTPException
from fastapi.requests import HTTPConnection

from agentcall.core.config import Settings
from agentcall.services.call_session.manager import CallManager
from agentcall.services.speech.base import Recognizer, Synthesizer
from agentcall.services.speech.stt import DeepgramRecognizer
from agentcall.services.speech.tts import ElevenLabsSynthesizer
from agentcall.services.telephony.base import CallSystem
from agentcall.services.telephony.twilio_call_system import TwilioCallSystem


def build_call_system(settings: Settings) -> CallSystem:
    """Create the signaling backend named by `phone_provider`."""
    provider = settings.phone_provider.lower()
    if provider == "twilio":
        return TwilioCallSystem(
            account_sid=settings.phone_account_sid,
            auth_token=settings.phone_auth_token,
            phone_number=settings.phone_number,
            base_url=settings.base_url,
        )
    raise ValueError(f"unsupported phone provider: {settings.phone_provider}")


def build_synthesizer(settings: Settings) -> Synthesizer:
    """Create the speech synthesis backend named by `tts_provider`."""
    provider = settings.tts_provider.lower()
    if provider == "elevenlabs":
        return ElevenLabsSynthesizer(api_key=settings.elevenlabs_api_key)
    raise ValueError(f"unsupported TTS provider: {settings.tts_provider}")


def build_recognizer(settings: Settings) -> Recognizer:
    """Create the speech recognition backend named by `stt_provider`."""
    provider = settings.stt_provider.lower()
    if provider == "deepgram":
        return DeepgramRecognizer(api_key=settings.deepgram_api_key)
    raise ValueError(f"unsupported STT provider: {settings.stt_provider}")


def build_call_manager(settings: Settings) -> CallManager:
    """Create a call manager with the configured providers."""
    return CallManager(
        settings=settings,
        call_system=build_call_system(settings),
        synthesizer=build_synthesizer(settings),
        recognizer=build_recognizer(settings),
    )


def get_call_manager(conn: HTTPConnection) -> CallManager:
    """Get the process-wide call manager."""
    manager = getattr(conn.app.state, "call_manager", None)
    if manager is None:
        raise HTTPException(status_code=503, detail="call manager not initialized")
    return manager
