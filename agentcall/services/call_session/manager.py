"""Call session manager."""
import asyncio
import itertools
import logging
import time
from typing import Dict, Optional, Tuple

from agentcall.core.config import Settings
from agentcall.services.call_session.errors import (
    CallNotAnswered,
    CallNotFound,
    DialFailed,
    HangupFailed,
)
from agentcall.services.call_session.models import CallSession
from agentcall.services.speech.base import (
    Recognizer,
    SynthesisConfig,
    Synthesizer,
    TranscriptionConfig,
)
from agentcall.services.speech.pipeline import listen, speak
from agentcall.services.telephony.base import Call, CallStatus, CallSystem

logger = logging.getLogger(__name__)


class CallManager:
    """Manages active calls and orchestrates the conversation flow."""

    def __init__(
        self,
        settings: Settings,
        call_system: CallSystem,
        synthesizer: Synthesizer,
        recognizer: Recognizer,
    ):
        self.settings = settings
        self.call_system = call_system
        self.synthesizer = synthesizer
        self.recognizer = recognizer
        self.synthesis_config = SynthesisConfig(
            voice=settings.tts_voice,
            model=settings.tts_model,
            output_encoding="ulaw",
            sample_rate=8000,
        )
        self.transcription_config = TranscriptionConfig(
            language=settings.stt_language,
            model=settings.stt_model,
            encoding="mulaw",
            sample_rate=8000,
            channels=1,
            punctuation=True,
            endpointing_ms=settings.stt_silence_duration_ms,
        )

        # Active calls; the registry is the only record of a live call
        self._sessions: Dict[str, CallSession] = {}
        self._sessions_lock = asyncio.Lock()
        self._call_counter = itertools.count(1)

    def generate_call_id(self) -> str:
        """Generate a call id unique within this process."""
        return f"call-{next(self._call_counter)}-{int(time.time())}"

    async def get_session(self, call_id: str) -> Optional[CallSession]:
        """Get an active call session."""
        async with self._sessions_lock:
            return self._sessions.get(call_id)

    async def active_call_ids(self) -> list[str]:
        async with self._sessions_lock:
            return list(self._sessions)

    async def _require_session(self, call_id: str) -> CallSession:
        session = await self.get_session(call_id)
        if session is None:
            raise CallNotFound(f"call not found: {call_id}")
        status = await session.call.status()
        if status.is_terminal:
            # The other party hung up without an end_call
            await self._evict(call_id)
            logger.info(f"[CALL MANAGER] Call already over - Call: {call_id}, Status: {status}")
            raise CallNotFound(f"call not found: {call_id} ({status})")
        return session

    async def release_call(self, call_sid: str) -> Optional[str]:
        """
        Evict the session of a call leg that has terminated.

        Called when the signaling backend reports a final status, e.g. the
        user hanging up. Returns the evicted call id, if any.
        """
        async with self._sessions_lock:
            session = next(
                (s for s in self._sessions.values() if s.call.sid == call_sid), None
            )
        if session is None:
            return None
        status = await session.call.status()
        if not status.is_terminal:
            return None
        await self._evict(session.call_id)
        logger.info(
            f"[CALL MANAGER] Call ended remotely - Call: {session.call_id}, Status: {status}"
        )
        return session.call_id

    async def _register(self, session: CallSession) -> None:
        async with self._sessions_lock:
            self._sessions[session.call_id] = session

    async def _evict(self, call_id: str) -> None:
        async with self._sessions_lock:
            self._sessions.pop(call_id, None)

    async def initiate_call(self, message: str) -> Tuple[str, str]:
        """
        Call the user, speak a message and wait for their reply.

        Args:
            message: Text spoken once the user answers

        Returns:
            (call_id, transcribed reply)
        """
        to = self.settings.user_phone_number
        try:
            call = await self.call_system.dial(to)
        except Exception as e:
            logger.error(f"[CALL MANAGER] Dial failed - Error: {type(e).__name__}: {e}")
            raise DialFailed(f"failed to make call: {e}") from e

        session = CallSession(self.generate_call_id(), call)
        await self._register(session)
        logger.info(
            f"[CALL MANAGER] Call placed - Call: {session.call_id}, CallSid: {call.sid}"
        )

        try:
            status = await self._wait_for_answer(call)
        except asyncio.CancelledError:
            logger.info(f"[CALL MANAGER] Answer wait cancelled - Call: {session.call_id}")
            await self._abandon(session)
            raise

        if status != CallStatus.ANSWERED:
            logger.info(
                f"[CALL MANAGER] Call not answered - Call: {session.call_id}, "
                f"Status: {status}"
            )
            await self._abandon(session)
            raise CallNotAnswered(f"call not answered: {status}")

        logger.info(f"[CALL MANAGER] Call answered - Call: {session.call_id}")
        response = await self._speak_and_listen(session, message)
        return session.call_id, response

    async def continue_call(self, call_id: str, message: str) -> str:
        """Speak another message on an active call and return the reply."""
        session = await self._require_session(call_id)
        return await self._speak_and_listen(session, message)

    async def speak_to_user(self, call_id: str, message: str) -> None:
        """Speak a message without waiting for a reply."""
        session = await self._require_session(call_id)
        await speak(session, self.synthesizer, self.synthesis_config, message)

    async def end_call(self, call_id: str, message: Optional[str] = None) -> float:
        """
        End an active call, optionally speaking a final message first.

        The session is evicted even when hangup fails.

        Returns:
            Call duration in seconds
        """
        session = await self._require_session(call_id)

        if message:
            try:
                await speak(session, self.synthesizer, self.synthesis_config, message)
            except Exception as e:
                # Best effort; the call is torn down regardless
                logger.warning(
                    f"[CALL MANAGER] Final message failed - Call: {call_id}, "
                    f"Error: {type(e).__name__}: {e}"
                )
            # Let trailing audio play out before hanging up
            await asyncio.sleep(self.settings.hangup_grace_seconds)

        duration = session.elapsed()
        try:
            await session.call.hangup()
        except Exception as e:
            logger.error(
                f"[CALL MANAGER] Hangup failed - Call: {call_id}, "
                f"Error: {type(e).__name__}: {e}"
            )
            raise HangupFailed(f"failed to hangup: {e}", duration_seconds=duration) from e
        finally:
            await self._evict(call_id)

        logger.info(f"[CALL MANAGER] Call ended - Call: {call_id}, Duration: {duration:.1f}s")
        return duration

    async def shutdown(self) -> None:
        """Hang up every active call and clear the registry."""
        async with self._sessions_lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()

        for session in sessions:
            try:
                await session.call.hangup()
            except Exception as e:
                logger.warning(
                    f"[CALL MANAGER] Hangup on shutdown failed - Call: {session.call_id}, "
                    f"Error: {type(e).__name__}: {e}"
                )
        if sessions:
            logger.info(f"[CALL MANAGER] Hung up {len(sessions)} call(s) on shutdown")

    async def _speak_and_listen(self, session: CallSession, message: str) -> str:
        await speak(session, self.synthesizer, self.synthesis_config, message)
        return await listen(
            session,
            self.recognizer,
            self.transcription_config,
            self.settings.transcript_timeout_seconds,
        )

    async def _wait_for_answer(self, call: Call) -> CallStatus:
        """Poll the call until it is answered, fails, or the wait runs out."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.settings.answer_timeout_seconds
        while True:
            status = await call.status()
            if status == CallStatus.ANSWERED or status.is_terminal:
                return status
            if loop.time() >= deadline:
                return CallStatus.NO_ANSWER
            await asyncio.sleep(self.settings.answer_poll_interval_seconds)

    async def _abandon(self, session: CallSession) -> None:
        """Hang up (best effort) and evict a call that never got going."""
        try:
            await session.call.hangup()
        except Exception as e:
            logger.warning(
                f"[CALL MANAGER] Hangup of unanswered call failed - Call: {session.call_id}, "
                f"Error: {type(e).__name__}: {e}"
            )
        finally:
            await self._evict(session.call_id)
