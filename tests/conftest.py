"""Shared test fixtures and configuration."""
import asyncio
import os
from typing import AsyncIterator, Iterable, List, Optional, Sequence

import pytest
from fastapi.testclient import TestClient

# Set test environment variables before importing app
os.environ.setdefault("AGENTCALL_PHONE_ACCOUNT_SID", "ACtest")
os.environ.setdefault("AGENTCALL_PHONE_AUTH_TOKEN", "test-token")
os.environ.setdefault("AGENTCALL_PHONE_NUMBER", "+15551234567")
os.environ.setdefault("AGENTCALL_USER_PHONE_NUMBER", "+15559876543")
os.environ.setdefault("AGENTCALL_ELEVENLABS_API_KEY", "test-elevenlabs-key")
os.environ.setdefault("AGENTCALL_DEEPGRAM_API_KEY", "test-deepgram-key")
os.environ.setdefault("AGENTCALL_BASE_URL", "https://agentcall.example.test")

from agentcall.main import app
from agentcall.core.config import Settings
from agentcall.core.dependencies import get_call_manager
from agentcall.services.call_session.manager import CallManager
from agentcall.services.speech.base import (
    AudioChunk,
    Recognizer,
    SynthesisConfig,
    Synthesizer,
    TranscriptEvent,
    TranscriptionConfig,
    TranscriptionStream,
)
from agentcall.services.telephony.base import (
    AudioSink,
    AudioSource,
    AudioTransport,
    Call,
    CallStatus,
    CallSystem,
)


class FakeSource(AudioSource):
    """Inbound audio that yields the given frames, then stays open or ends."""

    def __init__(self, frames: Iterable[bytes] = (), hold_open: bool = True):
        self.frames = list(frames)
        self.hold_open = hold_open

    async def read(self) -> bytes:
        await asyncio.sleep(0)
        if self.frames:
            return self.frames.pop(0)
        if self.hold_open:
            await asyncio.Event().wait()
        return b""


class FakeSink(AudioSink):
    """Outbound audio that records frames and can fail after N writes."""

    def __init__(self, fail_after: Optional[int] = None):
        self.frames: List[bytes] = []
        self.fail_after = fail_after

    async def write(self, data: bytes) -> None:
        if self.fail_after is not None and len(self.frames) >= self.fail_after:
            raise ConnectionError("media stream closed")
        self.frames.append(data)


class FakeTransport(AudioTransport):
    def __init__(
        self,
        source: Optional[AudioSource] = None,
        sink: Optional[AudioSink] = None,
    ):
        self._source = source
        self._sink = sink

    @property
    def inbound(self) -> Optional[AudioSource]:
        return self._source

    @property
    def outbound(self) -> Optional[AudioSink]:
        return self._sink


class FakeCall(Call):
    """Call whose status follows a script; the last status repeats."""

    def __init__(
        self,
        statuses: Sequence[CallStatus] = (CallStatus.ANSWERED,),
        transport: Optional[AudioTransport] = None,
        hangup_error: Optional[Exception] = None,
    ):
        self.statuses = list(statuses)
        self.status_polls = 0
        self.hangups = 0
        self.hangup_error = hangup_error
        self._transport = transport if transport is not None else FakeTransport(
            FakeSource(), FakeSink()
        )

    @property
    def sid(self) -> str:
        return "CAfake"

    async def status(self) -> CallStatus:
        self.status_polls += 1
        if len(self.statuses) > 1:
            return self.statuses.pop(0)
        return self.statuses[0]

    async def hangup(self) -> None:
        self.hangups += 1
        if self.hangup_error is not None:
            raise self.hangup_error

    def transport(self) -> Optional[AudioTransport]:
        return self._transport


class FakeCallSystem(CallSystem):
    def __init__(self, call: Optional[FakeCall] = None, error: Optional[Exception] = None):
        self.call = call or FakeCall()
        self.error = error
        self.dialed: List[str] = []

    async def dial(self, to: str) -> Call:
        self.dialed.append(to)
        if self.error is not None:
            raise self.error
        return self.call


class FakeSynthesizer(Synthesizer):
    """Synthesizer that streams canned chunks."""

    def __init__(
        self,
        chunks: Optional[Sequence[AudioChunk]] = None,
        error: Optional[Exception] = None,
    ):
        self.chunks = list(chunks) if chunks is not None else [
            AudioChunk(audio=b"\x7f" * 160),
            AudioChunk(audio=b"\xff" * 160),
            AudioChunk(is_final=True),
        ]
        self.error = error
        self.requests: List[tuple] = []

    async def synthesize_stream(
        self, text: str, config: SynthesisConfig
    ) -> AsyncIterator[AudioChunk]:
        self.requests.append((text, config))
        if self.error is not None:
            raise self.error
        return self._iter(list(self.chunks))

    async def _iter(self, chunks: List[AudioChunk]) -> AsyncIterator[AudioChunk]:
        for chunk in chunks:
            await asyncio.sleep(0)
            yield chunk


class FakeTranscriptionStream(TranscriptionStream):
    def __init__(self, events: Sequence[TranscriptEvent], hold_open: bool):
        self._events = list(events)
        self.hold_open = hold_open
        self.written: List[bytes] = []
        self.closed = False
        self.events_closed = False

    async def write(self, audio: bytes) -> None:
        self.written.append(audio)

    async def events(self) -> AsyncIterator[TranscriptEvent]:
        try:
            for event in self._events:
                await asyncio.sleep(0)
                yield event
            if self.hold_open:
                await asyncio.Event().wait()
        finally:
            self.events_closed = True

    async def close(self) -> None:
        self.closed = True


class FakeRecognizer(Recognizer):
    """Recognizer whose sessions emit scripted events for each listen."""

    def __init__(
        self,
        scripts: Sequence[Sequence[TranscriptEvent]] = (),
        hold_open: bool = False,
        error: Optional[Exception] = None,
    ):
        self.scripts = [list(script) for script in scripts]
        self.hold_open = hold_open
        self.error = error
        self.streams: List[FakeTranscriptionStream] = []
        self.configs: List[TranscriptionConfig] = []

    async def transcribe_stream(self, config: TranscriptionConfig) -> TranscriptionStream:
        self.configs.append(config)
        if self.error is not None:
            raise self.error
        events = self.scripts.pop(0) if self.scripts else []
        stream = FakeTranscriptionStream(events, self.hold_open)
        self.streams.append(stream)
        return stream


def final(text: str) -> TranscriptEvent:
    return TranscriptEvent(transcript=text, is_final=True)


def interim(text: str) -> TranscriptEvent:
    return TranscriptEvent(transcript=text, is_final=False)


@pytest.fixture
def test_settings():
    """Settings with short orchestration intervals for testing."""
    return Settings(
        phone_account_sid="ACtest",
        phone_auth_token="test-token",
        phone_number="+15551234567",
        user_phone_number="+15559876543",
        elevenlabs_api_key="test-elevenlabs-key",
        deepgram_api_key="test-deepgram-key",
        base_url="https://agentcall.example.test",
        transcript_timeout_ms=500,
        answer_timeout_seconds=0.3,
        answer_poll_interval_seconds=0.01,
        hangup_grace_seconds=0.0,
    )


@pytest.fixture
def make_manager(test_settings):
    """Build a CallManager over fake backends."""
    def _make_manager(
        call_system: Optional[CallSystem] = None,
        synthesizer: Optional[Synthesizer] = None,
        recognizer: Optional[Recognizer] = None,
        settings: Optional[Settings] = None,
    ) -> CallManager:
        return CallManager(
            settings=settings or test_settings,
            call_system=call_system or FakeCallSystem(),
            synthesizer=synthesizer or FakeSynthesizer(),
            recognizer=recognizer or FakeRecognizer(),
        )
    return _make_manager


@pytest.fixture
def fakes():
    """Expose the fake backend classes to tests."""
    class Fakes:
        Source = FakeSource
        Sink = FakeSink
        Transport = FakeTransport
        Call = FakeCall
        CallSystem = FakeCallSystem
        Synthesizer = FakeSynthesizer
        Recognizer = FakeRecognizer
        final = staticmethod(final)
        interim = staticmethod(interim)
    return Fakes


@pytest.fixture
def test_client():
    """Create FastAPI test client whose call manager the test provides."""
    holder = {}

    def _override_get_call_manager():
        return holder["manager"]

    app.dependency_overrides[get_call_manager] = _override_get_call_manager

    def _client(manager: CallManager) -> TestClient:
        holder["manager"] = manager
        return TestClient(app)

    yield _client

    app.dependency_overrides.clear()


# Pytest configuration
def pytest_configure(config):
    """Configure pytest."""
    config.addinivalue_line(
        "markers", "asyncio: mark test as an asyncio test"
    )
