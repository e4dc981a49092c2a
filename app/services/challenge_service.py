"""Challenge production: passage text first, then reference audio from that exact text."""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from app import config
from app.exceptions import (
    DocumentExtractionError,
    ProviderError,
    ProviderUnavailableError,
)
from app.models.challenge import Challenge, Level, Mode
from app.schemas import Passage, SourceDocument
from app.services.content_providers import (
    ContentProvider,
    GeminiContentProvider,
    OpenAIContentProvider,
    first_success,
    gemini_client,
)
from app.services.text_to_speech import TextToSpeech
from app.utils.wav import encode_to_container

logger = logging.getLogger(__name__)

NO_AI_PROVIDER_MESSAGE = (
    "No AI provider configured. Please set at least one of: GEMINI_API_KEY or OPENAI_API_KEY."
)


class ChallengeService:
    def __init__(self, providers: Sequence[ContentProvider], tts: Optional[TextToSpeech]):
        """
        Args:
            providers: content providers in fallback order; the first one is the primary.
            tts: speech synthesizer for the reference audio.
        """
        self.providers: List[ContentProvider] = list(providers)
        self.tts = tts

    @property
    def primary(self) -> Optional[ContentProvider]:
        return self.providers[0] if self.providers else None

    async def generate_passage(
        self, level: Level, mode: Mode, source_document: Optional[SourceDocument] = None
    ) -> Passage:
        if not self.providers:
            raise ProviderUnavailableError(NO_AI_PROVIDER_MESSAGE)

        if source_document is not None:
            # Only the primary provider can read the uploaded document.
            extract = getattr(self.primary, "extract_from_document", None)
            if extract is None:
                raise DocumentExtractionError(
                    f"Provider {self.primary.name} cannot read reference documents"
                )
            try:
                return await extract(source_document, level, mode)
            except ProviderError as exc:
                logger.error("Document extraction failed for %s: %s", source_document.uri, exc)
                raise DocumentExtractionError(f"Failed to extract passage from document: {exc}") from exc

        return await first_success(
            [(p.name, lambda p=p: p.generate_passage(level, mode)) for p in self.providers]
        )

    async def synthesize_reference_audio(self, text: str, voice: Optional[str] = None) -> bytes:
        """Return a WAV container with the reference reading of `text`."""
        if self.tts is None:
            raise ProviderUnavailableError("No speech provider configured (GEMINI_API_KEY).", provider="gemini-tts")
        pcm = await self.tts.synthesize(text, voice=voice)
        return encode_to_container(pcm, self.tts.sample_rate)

    async def generate_challenge(
        self, level: Level, mode: Mode, source_document: Optional[SourceDocument] = None
    ) -> Challenge:
        passage = await self.generate_passage(level, mode, source_document)
        reference_audio = await self.synthesize_reference_audio(passage.text)
        logger.info("Challenge ready: topic=%r level=%s mode=%s", passage.topic, level.value, mode.value)
        return Challenge(
            topic=passage.topic,
            text=passage.text,
            reference_audio=reference_audio,
            source_url=source_document.uri if source_document is not None else None,
        )

    async def fetch(self, level: Level, mode: Mode) -> Challenge:
        """Fetcher used by the challenge cache."""
        return await self.generate_challenge(level, mode)


def build_challenge_service() -> ChallengeService:
    """Wire providers from the configured API keys (missing keys simply drop a provider)."""
    providers: List[ContentProvider] = []
    tts: Optional[TextToSpeech] = None
    if config.GEMINI_API_KEY:
        client = gemini_client()
        providers.append(GeminiContentProvider(client))
        tts = TextToSpeech(client)
    if config.OPENAI_API_KEY:
        providers.append(OpenAIContentProvider())
    if not providers:
        logger.warning(NO_AI_PROVIDER_MESSAGE)
    return ChallengeService(providers, tts)
