"""Call orchestration errors."""


class CallError(Exception):
    """Base class for errors surfaced by call operations."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class TransportUnavailable(CallError):
    """The call has no audio sink or source yet."""

    status_code = 503


class SynthesisFailed(CallError):
    """The synthesis backend rejected the text or failed mid-stream."""

    status_code = 502


class DeliveryInterrupted(CallError):
    """An audio frame could not be written to the call."""

    status_code = 502


class RecognitionUnavailable(CallError):
    """The recognition backend could not start a session."""

    status_code = 502


class RecognitionStreamError(CallError):
    """The recognition stream reported an error after it started."""

    status_code = 502

    def __init__(self, message: str, partial_transcript: str = ""):
        super().__init__(message)
        self.partial_transcript = partial_transcript


class DialFailed(CallError):
    """The signaling backend refused to place the call."""

    status_code = 502


class CallNotAnswered(CallError):
    """The call never reached the answered state."""

    status_code = 409


class CallNotFound(CallError):
    """No active call is registered under the given id."""

    status_code = 404


class HangupFailed(CallError):
    """The signaling backend failed to hang up. The call is evicted anyway."""

    status_code = 502

    def __init__(self, message: str, duration_seconds: float = 0.0):
        super().__init__(message)
        self.duration_seconds = duration_seconds
