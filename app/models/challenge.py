from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class Level(str, Enum):
    BEGINNER = "Beginner"
    INTERMEDIATE = "Intermediate"
    ADVANCED = "Advanced"


class Mode(str, Enum):
    DAILY = "Daily"
    IELTS = "IELTS"


@dataclass(frozen=True)
class Challenge:
    """A practice passage together with its synthesized reference recording (WAV bytes)."""
    topic: str
    text: str
    reference_audio: bytes = field(repr=False)
    source_url: Optional[str] = None


@dataclass(frozen=True)
class CacheEntry:
    challenge: Challenge
    created_at: datetime
    level: Level
    mode: Mode

    def matches(self, level: Level, mode: Mode) -> bool:
        return self.level == level and self.mode == mode
