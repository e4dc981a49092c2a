# tests/conftest.py
import asyncio
from datetime import datetime, timezone
from typing import List, Optional

import numpy as np
import pytest
from fastapi.testclient import TestClient

from app.models.challenge import Challenge
from app.schemas import Passage, SourceDocument
from app.utils.wav import encode_to_container

PASSAGE_TEXT = "I wake up early. I make a cup of coffee. Then I read the news."


def make_wav(seconds: float = 1.0, sample_rate: int = 16000) -> bytes:
    """Mono 16-bit WAV of a quiet sine, `seconds` long."""
    t = np.arange(int(seconds * sample_rate)) / sample_rate
    pcm = (np.sin(2 * np.pi * 220 * t) * 3000).astype("<i2").tobytes()
    return encode_to_container(pcm, sample_rate)


class FakeProvider:
    """Content provider double; optionally blocks on `gate` and/or raises `error`."""

    def __init__(self, name: str, topic: str = "Morning routine", text: str = PASSAGE_TEXT,
                 error: Optional[Exception] = None, gate: Optional[asyncio.Event] = None,
                 events: Optional[List[str]] = None):
        self.name = name
        self.topic = topic
        self.text = text
        self.error = error
        self.gate = gate
        self.events = events if events is not None else []
        self.calls = []

    async def generate_passage(self, level, mode):
        self.calls.append((level, mode))
        self.events.append(f"passage:{self.name}")
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return Passage(topic=f"{self.topic} ({level.value}/{mode.value})", text=self.text)


class FakeDocumentProvider(FakeProvider):
    def __init__(self, name: str = "gemini", extraction_error: Optional[Exception] = None, **kwargs):
        super().__init__(name, **kwargs)
        self.extraction_error = extraction_error
        self.documents = []

    async def extract_from_document(self, document: SourceDocument, level, mode):
        self.documents.append(document)
        if self.extraction_error is not None:
            raise self.extraction_error
        return Passage(topic="From your document", text="First line. Second line. Third line.")

    async def upload_document(self, data: bytes, display_name: str, mime_type: str) -> SourceDocument:
        self.documents.append(display_name)
        return SourceDocument(uri=f"https://files.example/{display_name}", mime_type=mime_type,
                              display_name=display_name)


class FakeTTS:
    name = "fake-tts"
    sample_rate = 24000

    def __init__(self, pcm: bytes = b"\x01\x00\x02\x00\x03\x00\x04\x00", error: Optional[Exception] = None,
                 events: Optional[List[str]] = None):
        self.pcm = pcm
        self.error = error
        self.events = events if events is not None else []
        self.calls = []

    async def synthesize(self, text: str, voice: Optional[str] = None) -> bytes:
        self.calls.append((text, voice))
        self.events.append("tts")
        if self.error is not None:
            raise self.error
        return self.pcm


class FakeFetcher:
    """Cache fetcher double; counts calls and can be held open with a gate."""

    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.gate: Optional[asyncio.Event] = None
        self.calls = []

    async def __call__(self, level, mode) -> Challenge:
        self.calls.append((level, mode))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return Challenge(
            topic=f"{level.value}/{mode.value}",
            text=PASSAGE_TEXT,
            reference_audio=make_wav(0.5, 24000),
        )


class Clock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture()
def fixed_now():
    # 2025-10-20 15:30:00 UTC
    return datetime(2025, 10, 20, 15, 30, 0, tzinfo=timezone.utc)


@pytest.fixture()
def clock(fixed_now):
    return Clock(fixed_now)


@pytest.fixture()
def wav_factory():
    return make_wav


@pytest.fixture()
def fake_provider():
    return FakeProvider


@pytest.fixture()
def fake_document_provider():
    return FakeDocumentProvider


@pytest.fixture()
def fake_tts():
    return FakeTTS


@pytest.fixture()
def fake_fetcher():
    return FakeFetcher


@pytest.fixture()
def app_client(monkeypatch, fixed_now):
    """TestClient whose services are replaced through dependency overrides.

    Yields (client, overrides) where overrides is the dict to fill with
    service/cache/analysis doubles before issuing requests.
    """
    import api

    # freeze the clock
    monkeypatch.setattr(api, "utc_now", lambda: fixed_now, raising=True)

    with TestClient(api.app) as client:
        yield client, api.app.dependency_overrides

    api.app.dependency_overrides.clear()
