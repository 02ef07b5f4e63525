"""Speech-out and speech-in pipelines for a live call."""
import asyncio
import logging
from contextlib import aclosing

from agentcall.services.call_session.errors import (
    DeliveryInterrupted,
    RecognitionStreamError,
    RecognitionUnavailable,
    SynthesisFailed,
    TransportUnavailable,
)
from agentcall.services.call_session.models import CallSession, Speaker
from agentcall.services.speech.base import (
    Recognizer,
    SynthesisConfig,
    Synthesizer,
    TranscriptionConfig,
    TranscriptionStream,
)
from agentcall.services.telephony.base import AudioSource

logger = logging.getLogger(__name__)


async def speak(
    session: CallSession,
    synthesizer: Synthesizer,
    config: SynthesisConfig,
    message: str,
) -> None:
    """
    Synthesize a message and stream it to the call.

    The message is recorded as an assistant turn before anything is sent,
    so the log reflects intent even if delivery fails.

    Raises:
        TransportUnavailable: the call has no outbound audio sink
        SynthesisFailed: the synthesis backend rejected or aborted the request
        DeliveryInterrupted: a frame could not be written to the call
    """
    await session.append_turn(Speaker.ASSISTANT, message)

    transport = session.call.transport()
    sink = transport.outbound if transport else None
    if sink is None:
        raise TransportUnavailable("no transport connection available")

    try:
        stream = await synthesizer.synthesize_stream(message, config)
    except SynthesisFailed:
        raise
    except Exception as e:
        raise SynthesisFailed(f"TTS synthesis failed: {e}") from e

    frames = 0
    async with aclosing(stream):
        async for chunk in stream:
            if chunk.error is not None:
                raise SynthesisFailed(f"TTS stream error: {chunk.error}") from chunk.error
            if chunk.audio:
                try:
                    await sink.write(chunk.audio)
                except Exception as e:
                    raise DeliveryInterrupted(f"failed to write audio: {e}") from e
                frames += 1
            if chunk.is_final:
                break

    logger.debug(f"[SPEAK] Delivered {frames} frames - Call: {session.call_id}")


async def _forward_audio(source: AudioSource, stream: TranscriptionStream) -> None:
    """Pump inbound call audio into the recognizer until end of stream."""
    try:
        while True:
            data = await source.read()
            if not data:
                return
            await stream.write(data)
    except asyncio.CancelledError:
        raise
    except Exception as e:
        # The listen loop owns the timeout; a dead audio feed just stops here.
        logger.debug(f"[LISTEN] Audio forwarding stopped: {type(e).__name__}: {e}")


async def listen(
    session: CallSession,
    recognizer: Recognizer,
    config: TranscriptionConfig,
    timeout: float,
) -> str:
    """
    Wait for the user's next reply and resolve it to text.

    Resolves on the first final transcript, on the recognizer closing the
    stream, or after `timeout` seconds, whichever comes first. In the last
    two cases the latest interim transcript is used. A non-empty result is
    recorded as a user turn. Cancellation propagates, after recording any
    partial transcript the same way.

    Raises:
        TransportUnavailable: the call has no inbound audio source
        RecognitionUnavailable: the recognition session could not start
        RecognitionStreamError: the recognizer reported an error; carries
            the partial transcript resolved so far
    """
    transport = session.call.transport()
    source = transport.inbound if transport else None
    if source is None:
        raise TransportUnavailable("no transport connection available")

    try:
        stream = await recognizer.transcribe_stream(config)
    except Exception as e:
        raise RecognitionUnavailable(f"failed to start transcription: {e}") from e

    transcript = ""
    async with stream:
        forwarder = asyncio.create_task(_forward_audio(source, stream))
        try:
            async with asyncio.timeout(timeout), aclosing(stream.events()) as events:
                async for event in events:
                    if event.error is not None:
                        raise RecognitionStreamError(
                            f"transcription stream error: {event.error}",
                            partial_transcript=transcript,
                        ) from event.error
                    if event.transcript:
                        transcript = event.transcript
                        if event.is_final:
                            break
        except TimeoutError:
            logger.info(
                f"[LISTEN] Timed out after {timeout:.1f}s - Call: {session.call_id}, "
                f"Partial length: {len(transcript)}"
            )
        except asyncio.CancelledError:
            logger.info(
                f"[LISTEN] Cancelled - Call: {session.call_id}, Partial: {transcript!r}"
            )
            # Keep what was heard so far in the log
            if transcript:
                await session.append_turn(Speaker.USER, transcript)
            raise
        finally:
            forwarder.cancel()
            try:
                await forwarder
            except asyncio.CancelledError:
                pass

    if transcript:
        await session.append_turn(Speaker.USER, transcript)
    return transcript
