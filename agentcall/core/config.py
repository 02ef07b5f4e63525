"""Application configuration."""
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Server
    host: str = "0.0.0.0"
    port: int = 3333
    log_level: str = "INFO"

    # Public URL the webhooks are reachable at (e.g. an ngrok tunnel)
    base_url: str | None = None

    # Provider selection
    phone_provider: str = "twilio"
    tts_provider: str = "elevenlabs"
    stt_provider: str = "deepgram"

    # Phone provider (Twilio)
    phone_account_sid: str
    phone_auth_token: str
    phone_number: str  # E.164, e.g. +15551234567
    user_phone_number: str  # E.164

    # ElevenLabs TTS
    elevenlabs_api_key: str = Field(
        validation_alias=AliasChoices(
            "AGENTCALL_ELEVENLABS_API_KEY", "ELEVENLABS_API_KEY"
        )
    )
    tts_voice: str = "21m00Tcm4TlvDq8ikWAM"  # "Rachel"
    tts_model: str = "eleven_turbo_v2_5"

    # Deepgram STT
    deepgram_api_key: str = Field(
        validation_alias=AliasChoices(
            "AGENTCALL_DEEPGRAM_API_KEY", "DEEPGRAM_API_KEY"
        )
    )
    stt_model: str = "nova-2"
    stt_language: str = "en-US"
    stt_silence_duration_ms: int = 800

    # Timeouts
    transcript_timeout_ms: int = 180000  # 3 minutes
    answer_timeout_seconds: float = 30.0
    answer_poll_interval_seconds: float = 0.5
    hangup_grace_seconds: float = 2.0

    model_config = SettingsConfigDict(
        env_prefix="AGENTCALL_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def transcript_timeout_seconds(self) -> float:
        """Speech-in maximum wait, in seconds."""
        return self.transcript_timeout_ms / 1000.0


settings = Settings()
