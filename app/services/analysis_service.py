"""Word-level comparison of the learner's attempt against the reference reading."""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from google import genai
from google.genai import types

from app import config
from app.exceptions import ProviderUnavailableError
from app.schemas import AlignmentRequest, AnalysisResult
from app.services.content_providers import call_with_timeout, gemini_client
from app.utils.b64 import bytes_to_transport_text, transport_text_to_bytes
from app.utils.json_utils import parse_provider_model

logger = logging.getLogger(__name__)

ALIGNMENT_INSTRUCTION = """
Role: Strict Dialect Coach with Audio Timing Analysis.
Reference Text: "{reference_text}"

Task:
1. Listen to both "Reference Audio" (Native Speaker) and "User Audio" (Student).
2. Compare pronunciation, intonation, and rhythm. Be strict.
3. For EACH word of the reference text, in order, estimate the time position (in seconds)
   where it appears in BOTH audios.

Output strictly valid JSON (no markdown) with this structure:
{{
  "words": [
    {{
      "word": "string",
      "status": "good"|"average"|"poor",
      "issue": "string",
      "phonetic": "string",
      "refStartTime": number (seconds, e.g., 0.5),
      "refEndTime": number (seconds, e.g., 1.2),
      "userStartTime": number (seconds, e.g., 0.8),
      "userEndTime": number (seconds, e.g., 1.6)
    }}
  ],
  "score": number (0-100),
  "fluency": "string",
  "pronunciation": {{ "strengths": ["string"], "weaknesses": ["string"] }},
  "intonation": "string",
  "suggestions": "string"
}}

IMPORTANT: Estimate timing accurately by listening to when each word is spoken in both audios.
"""


def clean_mime_type(mime_type: Optional[str], default: str = "audio/webm") -> str:
    """Drop codec parameters: 'audio/webm;codecs=opus' -> 'audio/webm'."""
    if not mime_type:
        return default
    clean = mime_type.split(";", 1)[0].strip().lower()
    return clean or default


class AnalysisProvider(Protocol):
    name: str

    async def analyze(self, request: AlignmentRequest) -> str:
        """Send the request and return the raw JSON reply text."""
        ...


class GeminiAnalysisProvider:
    name = "gemini"

    def __init__(
        self,
        client: Optional[genai.Client] = None,
        model: Optional[str] = None,
        timeout: float = config.ANALYSIS_TIMEOUT_S,
    ):
        self.client = client or gemini_client()
        self.model = model or config.GEMINI_ANALYSIS_MODEL
        self.timeout = timeout

    async def analyze(self, request: AlignmentRequest) -> str:
        contents = [
            types.Content(
                role="user",
                parts=[
                    types.Part.from_text(text="Reference Audio (Native Speaker):"),
                    types.Part.from_bytes(data=transport_text_to_bytes(request.ref_audio), mime_type="audio/wav"),
                    types.Part.from_text(text="User Audio (Student):"),
                    types.Part.from_bytes(data=transport_text_to_bytes(request.user_audio), mime_type=request.user_mime),
                    types.Part.from_text(text=request.instruction_text),
                ],
            )
        ]
        response = await call_with_timeout(
            self.client.aio.models.generate_content(
                model=self.model,
                contents=contents,
                config=types.GenerateContentConfig(response_mime_type="application/json"),
            ),
            self.timeout,
            self.name,
        )
        return response.text or ""


class AlignmentAnalysisClient:
    def __init__(self, provider: Optional[AnalysisProvider] = None):
        self.provider = provider

    async def analyze(
        self, user_audio: bytes, user_mime: Optional[str], ref_audio: bytes, ref_text: str
    ) -> AnalysisResult:
        """
        Ask the provider to align and grade the learner's reading.

        Raises:
            ValueError: empty audio or reference text.
            InvalidResponseError: the reply is not a valid analysis document.
            ProviderTransportError / ProviderTimeoutError: the provider did not answer.
        """
        if not user_audio:
            raise ValueError("user_audio is empty")
        if not ref_audio:
            raise ValueError("ref_audio is empty")
        if not ref_text or not ref_text.strip():
            raise ValueError("ref_text is empty")
        if self.provider is None:
            raise ProviderUnavailableError("Gemini API key not configured", provider="gemini")

        request = AlignmentRequest(
            user_audio=bytes_to_transport_text(user_audio),
            user_mime=clean_mime_type(user_mime),
            ref_audio=bytes_to_transport_text(ref_audio),
            ref_text=ref_text,
            instruction_text=ALIGNMENT_INSTRUCTION.format(reference_text=ref_text.strip()),
        )
        logger.info(
            "Analyzing attempt: user=%d bytes (%s) ref=%d bytes",
            len(user_audio), request.user_mime, len(ref_audio),
        )
        text = await self.provider.analyze(request)
        result = parse_provider_model(text, AnalysisResult, provider=self.provider.name)
        logger.info("Analysis score=%.0f words=%d", result.score, len(result.words))
        return result


def build_analysis_client() -> AlignmentAnalysisClient:
    if not config.GEMINI_API_KEY:
        logger.warning("GEMINI_API_KEY not set; pronunciation analysis disabled")
        return AlignmentAnalysisClient(None)
    return AlignmentAnalysisClient(GeminiAnalysisProvider())
