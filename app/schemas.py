"""Pydantic schemas for request and response payloads and for provider replies."""

from __future__ import annotations

import math
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.challenge import Level, Mode


class CamelModel(BaseModel):
    """Fields are snake_case in Python and camelCase on the wire."""
    model_config = ConfigDict(populate_by_name=True)


# ------------------------
# Provider replies
# ------------------------
class Passage(BaseModel):
    topic: str = Field(..., min_length=1, description="Short label describing the content")
    text: str = Field(..., min_length=1, description="Exactly three sentences")

    @field_validator("topic", "text", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value


def _optional_seconds(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(seconds) or math.isinf(seconds) or seconds < 0:
        return None
    return seconds


class WordAlignment(CamelModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    word: str
    status: Literal["good", "average", "poor"]
    phonetic: Optional[str] = None
    issue: Optional[str] = None
    ref_start: Optional[float] = Field(None, alias="refStartTime")
    ref_end: Optional[float] = Field(None, alias="refEndTime")
    user_start: Optional[float] = Field(None, alias="userStartTime")
    user_end: Optional[float] = Field(None, alias="userEndTime")

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("ref_start", "ref_end", "user_start", "user_end", mode="before")
    @classmethod
    def _seconds_or_none(cls, value: Any) -> Optional[float]:
        return _optional_seconds(value)

    @property
    def has_timestamps(self) -> bool:
        return None not in (self.ref_start, self.ref_end, self.user_start, self.user_end)


class PronunciationFeedback(BaseModel):
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)


class AnalysisResult(CamelModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    score: float = Field(..., ge=0, le=100)
    fluency: str = ""
    words: List[WordAlignment]
    pronunciation: PronunciationFeedback = Field(default_factory=PronunciationFeedback)
    intonation: str = ""
    suggestions: str = ""

    @field_validator("score", mode="before")
    @classmethod
    def _clamp_score(cls, value: Any) -> Any:
        if isinstance(value, bool):
            return value
        try:
            score = float(value)
        except (TypeError, ValueError):
            return value
        return min(100.0, max(0.0, score))


class SourceDocument(CamelModel):
    """Opaque handle to a reference document previously uploaded to the primary provider."""
    uri: str = Field(..., min_length=1)
    mime_type: str = Field("application/pdf", alias="mimeType")
    display_name: Optional[str] = Field(None, alias="displayName")


class AlignmentRequest(CamelModel):
    """What is sent to the analysis provider; audio travels as transport text."""
    user_audio: str = Field(..., alias="userAudio")
    user_mime: str = Field(..., alias="userMime")
    ref_audio: str = Field(..., alias="refAudio")
    ref_text: str = Field(..., alias="refText")
    instruction_text: str = Field(..., alias="instructionText")


# ------------------------
# Consumer-facing API
# ------------------------
class ChallengeRequest(CamelModel):
    level: Level = Level.BEGINNER
    mode: Mode = Mode.DAILY
    source_document: Optional[SourceDocument] = Field(None, alias="sourceDocument")
    refresh: bool = Field(False, description="Drop the cached challenge and fetch a new one")


class ChallengeOut(CamelModel):
    topic: str
    text: str
    source_url: Optional[str] = Field(None, alias="sourceUrl")
    reference_audio_transport: str = Field(..., alias="referenceAudioTransport")


class PrefetchRequest(CamelModel):
    level: Level = Level.BEGINNER
    mode: Mode = Mode.DAILY


class PrefetchOut(BaseModel):
    status: Literal["scheduled", "skipped"]


class AnalyzeRequest(CamelModel):
    user_audio_transport: str = Field(..., min_length=1, alias="userAudioTransport",
                                      description="User recording, base64 (data URL accepted)")
    user_mime: str = Field("audio/webm", alias="userMime")
    reference_audio_transport: str = Field(..., min_length=1, alias="referenceAudioTransport")
    reference_text: str = Field(..., min_length=1, alias="referenceText")


class RefAudioRequest(CamelModel):
    text: str = Field(..., min_length=1)
    voice_name: Optional[str] = Field(None, alias="voiceName")

    @field_validator("text")
    @classmethod
    def _text_non_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("text must not be blank")
        return value.strip()


class RefAudioOut(CamelModel):
    reference_audio_transport: str = Field(..., alias="referenceAudioTransport")
