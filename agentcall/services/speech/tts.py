"""Text-to-speech service."""
import logging
from typing import AsyncIterator, Optional

import httpx

from agentcall.services.call_session.errors import SynthesisFailed
from agentcall.services.speech.base import AudioChunk, SynthesisConfig, Synthesizer

logger = logging.getLogger(__name__)

ELEVENLABS_BASE_URL = "https://api.elevenlabs.io"

# (encoding, sample rate) -> ElevenLabs output_format
OUTPUT_FORMATS = {
    ("ulaw", 8000): "ulaw_8000",
    ("pcm", 8000): "pcm_8000",
    ("pcm", 16000): "pcm_16000",
    ("pcm", 22050): "pcm_22050",
    ("pcm", 24000): "pcm_24000",
}


def output_format(config: SynthesisConfig) -> str:
    """Map a synthesis config onto an ElevenLabs output format."""
    key = (config.output_encoding.lower(), config.sample_rate)
    if key not in OUTPUT_FORMATS:
        raise SynthesisFailed(
            f"unsupported output encoding {config.output_encoding}@{config.sample_rate}"
        )
    return OUTPUT_FORMATS[key]


class ElevenLabsSynthesizer(Synthesizer):
    """Service for converting text to speech with ElevenLabs streaming."""

    def __init__(
        self,
        api_key: str,
        base_url: str = ELEVENLABS_BASE_URL,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(30.0, connect=10.0),
        )

    async def synthesize_stream(
        self, text: str, config: SynthesisConfig
    ) -> AsyncIterator[AudioChunk]:
        """
        Request streaming synthesis of text.

        Args:
            text: Text to convert to speech
            config: Voice, model and output encoding

        Returns:
            Async iterator of audio chunks, ending with a final chunk
        """
        request = self.client.build_request(
            "POST",
            f"/v1/text-to-speech/{config.voice}/stream",
            params={"output_format": output_format(config)},
            headers={"xi-api-key": self.api_key, "Accept": "audio/basic"},
            json={"text": text, "model_id": config.model},
        )
        try:
            response = await self.client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise SynthesisFailed(f"TTS request failed: {e}") from e

        if response.is_error:
            body = await response.aread()
            await response.aclose()
            raise SynthesisFailed(
                f"TTS synthesis failed: HTTP {response.status_code}: "
                f"{body.decode('utf-8', errors='replace')[:200]}"
            )

        return self._iter_chunks(response)

    async def _iter_chunks(self, response: httpx.Response) -> AsyncIterator[AudioChunk]:
        try:
            async for data in response.aiter_bytes():
                if data:
                    yield AudioChunk(audio=data)
        except httpx.HTTPError as e:
            logger.warning(f"[TTS] Stream interrupted: {type(e).__name__}: {e}")
            yield AudioChunk(error=e, is_final=True)
            return
        finally:
            await response.aclose()
        yield AudioChunk(is_final=True)

    async def close(self) -> None:
        await self.client.aclose()
