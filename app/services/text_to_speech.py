import logging
from typing import Optional

from google import genai
from google.genai import types

from app import config
from app.exceptions import ProviderError, SpeechSynthesisError
from app.services.content_providers import call_with_timeout, gemini_client
from app.utils.b64 import transport_text_to_bytes

logger = logging.getLogger(__name__)


class TextToSpeech:
    name = "gemini-tts"

    def __init__(
        self,
        client: Optional[genai.Client] = None,
        model: Optional[str] = None,
        voice: Optional[str] = None,
        timeout: float = config.TTS_TIMEOUT_S,
        sample_rate: int = config.TTS_SAMPLE_RATE,
    ):
        self.client = client or gemini_client()
        self.model = model or config.GEMINI_TTS_MODEL
        self.voice = voice or config.TTS_VOICE
        self.timeout = timeout
        # The provider always answers with 16-bit mono PCM at this rate.
        self.sample_rate = sample_rate

    async def synthesize(self, text: str, voice: Optional[str] = None) -> bytes:
        """
        Synthesize speech for `text`.

        Args:
            text: Exact text to read.
            voice: Prebuilt voice name; defaults to the configured voice.

        Returns:
            Raw PCM samples (no container header).
        """
        voice_name = voice or self.voice
        try:
            response = await call_with_timeout(
                self.client.aio.models.generate_content(
                    model=self.model,
                    contents=text,
                    config=types.GenerateContentConfig(
                        response_modalities=["AUDIO"],
                        speech_config=types.SpeechConfig(
                            voice_config=types.VoiceConfig(
                                prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=voice_name)
                            )
                        ),
                    ),
                ),
                self.timeout,
                self.name,
            )
        except ProviderError as exc:
            raise SpeechSynthesisError(f"Failed to generate audio: {exc}") from exc

        pcm = self._inline_audio(response)
        if not pcm:
            raise SpeechSynthesisError("Failed to generate audio: no audio in response")
        logger.info("Synthesized %d bytes of PCM with voice %s", len(pcm), voice_name)
        return pcm

    @staticmethod
    def _inline_audio(response) -> Optional[bytes]:
        try:
            data = response.candidates[0].content.parts[0].inline_data.data
        except (AttributeError, IndexError, TypeError):
            return None
        if isinstance(data, str):
            data = transport_text_to_bytes(data)
        return data
