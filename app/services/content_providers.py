"""
Passage generation providers and the fallback combinator that chains them.

Gemini is the primary provider: it writes passages and is the only one that
can read an uploaded reference document. OpenAI is the secondary provider and
gets its own prompt so a template problem on one side does not repeat on the
other.
"""

from __future__ import annotations

import asyncio
import io
import logging
from typing import Awaitable, Callable, List, Optional, Protocol, Sequence, Tuple, TypeVar

import openai
from google import genai
from google.genai import types
from openai import AsyncOpenAI

from app import config
from app.exceptions import (
    InvalidResponseError,
    ProviderChainError,
    ProviderError,
    ProviderFailure,
    ProviderTimeoutError,
    ProviderTransportError,
    ProviderUnavailableError,
)
from app.models.challenge import Level, Mode
from app.schemas import Passage, SourceDocument
from app.utils.json_utils import parse_provider_model

logger = logging.getLogger(__name__)

T = TypeVar("T")

LEVEL_HINTS = {
    Level.BEGINNER: "Use simple vocabulary (A2). Short, clear sentences.",
    Level.INTERMEDIATE: "Use moderate vocabulary (B2). Natural, everyday sentences.",
    Level.ADVANCED: "Use advanced vocabulary (C1). Nuanced, idiomatic expressions.",
}

DAILY_CONTENT = """
Daily Life Content:
Generate passages reflecting everyday Western life:
- Personal monologue: describing a moment, thought, or routine
- Movie/speech quote: iconic 2-3 sentence passage
- Article/blog snippet: lifestyle, culture, or how-to
- Popular science/news: plain language explanation
- Scene description: Western daily life (street, room, commute)
"""

IELTS_CONTENT = """
IELTS Mode Content:
Generate passages that reflect IELTS Speaking test topics and styles:
- Academic topics: Education, Technology, Environment, Globalization
- Social topics: Family, Culture, Work-life balance, Media
- Personal development: Hobbies, Travel, Health, Future plans
- Opinion pieces: should require analytical thinking and detailed responses
- Use formal-to-neutral register, appropriate for IELTS Band 6-8

Content types:
- Expert opinion excerpt: 3 sentences from an academic or professional discussing a topic
- IELTS cue card response sample: 3 sentences describing an experience/person/place
- News analysis: 3 sentences analyzing a current trend or issue
- Cultural comparison: 3 sentences comparing aspects of different cultures
- Future prediction: 3 sentences discussing likely future developments
"""

MODE_CONTENT = {Mode.DAILY: DAILY_CONTENT, Mode.IELTS: IELTS_CONTENT}

JSON_CONTRACT = '{ "topic": "short label", "text": "Your three sentences here." }'


def build_passage_prompt(level: Level, mode: Mode) -> str:
    return f"""
You are creating a short reading passage for an English learner. Do NOT use web search. Do NOT write dialogue.

Practice Mode: {mode.value}

{MODE_CONTENT[mode]}

Rules:
- Write exactly 3 sentences. No dialogue. Single voice or narrative only.
- Sound natural in American or British English. Target: {level.value} learner. {LEVEL_HINTS[level]}
- Topic field: short label describing the content

Output strictly valid JSON only (no markdown, no explanation):
{JSON_CONTRACT}
"""


def build_fallback_prompt(level: Level, mode: Mode) -> str:
    style = (
        "an IELTS Speaking style excerpt (opinion, cue card answer, or trend analysis) in a neutral-formal register"
        if mode == Mode.IELTS
        else "a snippet of everyday life (a routine, a scene, a short blog or news style explanation)"
    )
    return (
        f"Write {style} for a {level.value} English learner to read aloud. "
        f"{LEVEL_HINTS[level]} "
        "It must be exactly three sentences, one speaker, no dialogue, no quotation marks around the whole text. "
        f"Return a JSON object with exactly these keys: {JSON_CONTRACT}"
    )


def build_extraction_prompt(level: Level, mode: Mode) -> str:
    return f"""
The attached document is study material chosen by an English learner.
Pick exactly 3 consecutive or representative sentences from it that are good for reading aloud.
Keep the wording of the document; only fix obvious OCR or line-break artifacts.
Learner level: {level.value}. Practice mode: {mode.value}. Prefer sentences that suit this level.

Output strictly valid JSON only (no markdown, no explanation):
{JSON_CONTRACT}
"""


# ---------------------------------
# Helpers shared by the providers
# ---------------------------------
def gemini_client(api_key: Optional[str] = None) -> genai.Client:
    key = api_key or config.GEMINI_API_KEY
    if not key:
        raise ProviderUnavailableError("GEMINI_API_KEY not set in environment variables.", provider="gemini")
    return genai.Client(api_key=key)


async def call_with_timeout(call: Awaitable[T], timeout: float, provider: str) -> T:
    """Await a provider call; a timeout or transport failure becomes a ProviderError."""
    try:
        return await asyncio.wait_for(call, timeout)
    except asyncio.TimeoutError as e:
        raise ProviderTimeoutError(f"{provider} request timeout after {timeout:g}s", provider=provider) from e
    except ProviderError:
        raise
    except Exception as e:
        raise ProviderTransportError(f"{provider} request failed: {e}", provider=provider) from e


async def first_success(attempts: Sequence[Tuple[str, Callable[[], Awaitable[T]]]]) -> T:
    """
    Run each attempt in order and return the first result.

    Every failure is kept as a ProviderFailure; if none succeeds the
    resulting ProviderChainError names all of them.
    """
    failures: List[ProviderFailure] = []
    for name, attempt in attempts:
        try:
            result = await attempt()
        except Exception as e:
            kind = "invalid response" if isinstance(e, InvalidResponseError) else type(e).__name__
            logger.warning("Provider %s failed (%s): %s", name, kind, e)
            failures.append(ProviderFailure(name, e))
            continue
        if failures:
            logger.info("Provider %s succeeded after %d failure(s)", name, len(failures))
        return result
    raise ProviderChainError(failures)


class ContentProvider(Protocol):
    name: str

    async def generate_passage(self, level: Level, mode: Mode) -> Passage:
        ...


# ---------------------------------
# Providers
# ---------------------------------
class GeminiContentProvider:
    name = "gemini"

    def __init__(
        self,
        client: Optional[genai.Client] = None,
        model: Optional[str] = None,
        timeout: float = config.CONTENT_TIMEOUT_S,
        poll_interval: float = config.DOCUMENT_POLL_INTERVAL_S,
        poll_max_wait: float = config.DOCUMENT_POLL_MAX_WAIT_S,
    ):
        self.client = client or gemini_client()
        self.model = model or config.GEMINI_TEXT_MODEL
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.poll_max_wait = poll_max_wait

    async def _generate_json(self, contents) -> str:
        response = await call_with_timeout(
            self.client.aio.models.generate_content(
                model=self.model,
                contents=contents,
                config=types.GenerateContentConfig(response_mime_type="application/json"),
            ),
            self.timeout,
            self.name,
        )
        text = response.text
        if not text:
            raise InvalidResponseError("No content generated", provider=self.name)
        return text

    async def generate_passage(self, level: Level, mode: Mode) -> Passage:
        text = await self._generate_json(build_passage_prompt(level, mode))
        return parse_provider_model(text, Passage, provider=self.name)

    async def extract_from_document(self, document: SourceDocument, level: Level, mode: Mode) -> Passage:
        contents = [
            types.Part.from_uri(file_uri=document.uri, mime_type=document.mime_type),
            build_extraction_prompt(level, mode),
        ]
        text = await self._generate_json(contents)
        return parse_provider_model(text, Passage, provider=self.name)

    async def upload_document(self, data: bytes, display_name: str, mime_type: str) -> SourceDocument:
        """Upload a reference document to the File API and wait until it can be used."""
        uploaded = await call_with_timeout(
            self.client.aio.files.upload(
                file=io.BytesIO(data),
                config=types.UploadFileConfig(display_name=display_name, mime_type=mime_type),
            ),
            self.timeout,
            self.name,
        )
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.poll_max_wait
        while uploaded.state == types.FileState.PROCESSING:
            if loop.time() >= deadline:
                raise ProviderTimeoutError(
                    f"Document {uploaded.name} still processing after {self.poll_max_wait:g}s", provider=self.name
                )
            await asyncio.sleep(self.poll_interval)
            uploaded = await call_with_timeout(
                self.client.aio.files.get(name=uploaded.name), self.timeout, self.name
            )
        if uploaded.state == types.FileState.FAILED or not uploaded.uri:
            raise ProviderTransportError(f"Document processing failed: {uploaded.name}", provider=self.name)
        logger.info("Document uploaded: %s (%s)", uploaded.name, uploaded.mime_type or mime_type)
        return SourceDocument(
            uri=uploaded.uri,
            mime_type=uploaded.mime_type or mime_type,
            display_name=uploaded.display_name or display_name,
        )


class OpenAIContentProvider:
    name = "openai"

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        model: Optional[str] = None,
        timeout: float = config.CONTENT_TIMEOUT_S,
    ):
        if client is None:
            if not config.OPENAI_API_KEY:
                raise ProviderUnavailableError("OPENAI_API_KEY not set in environment variables.", provider=self.name)
            client = AsyncOpenAI(api_key=config.OPENAI_API_KEY, max_retries=0)
        self.client = client
        self.model = model or config.OPENAI_MODEL
        self.timeout = timeout

    async def generate_passage(self, level: Level, mode: Mode) -> Passage:
        try:
            response = await call_with_timeout(
                self.client.chat.completions.create(
                    model=self.model,
                    messages=[
                        {"role": "system", "content": "You write short read-aloud passages. Always return valid JSON."},
                        {"role": "user", "content": build_fallback_prompt(level, mode)},
                    ],
                    response_format={"type": "json_object"},
                    temperature=0.8,
                ),
                self.timeout,
                self.name,
            )
        except ProviderTransportError as e:
            if isinstance(e.__cause__, openai.APITimeoutError):
                raise ProviderTimeoutError(str(e), provider=self.name) from e.__cause__
            raise
        if not response.choices:
            raise InvalidResponseError("Empty response from OpenAI", provider=self.name)
        return parse_provider_model(response.choices[0].message.content, Passage, provider=self.name)
