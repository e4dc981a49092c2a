"""Application configuration constants."""

from __future__ import annotations

import os
from dotenv import load_dotenv

load_dotenv()

from datetime import timezone
from pathlib import Path
from typing import List

BASE_DIR = Path(__file__).resolve().parent.parent
TIMEZONE = timezone.utc

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Provider credentials
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")

# Gemini models (primary content provider, speech synthesis, alignment analysis)
GEMINI_TEXT_MODEL = os.getenv("GEMINI_TEXT_MODEL", "gemini-3-flash-preview")
GEMINI_TTS_MODEL = os.getenv("GEMINI_TTS_MODEL", "gemini-2.5-flash-preview-tts")
GEMINI_ANALYSIS_MODEL = os.getenv("GEMINI_ANALYSIS_MODEL", "gemini-3-flash-preview")

# OpenAI Configuration (secondary content provider)
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")

# Speech synthesis
TTS_VOICE = os.getenv("TTS_VOICE", "Kore")
TEXTBOOK_TTS_VOICE = os.getenv("TEXTBOOK_TTS_VOICE", "Puck")
TTS_SAMPLE_RATE: int = int(os.getenv("TTS_SAMPLE_RATE", "24000"))

# Provider timeouts (seconds)
CONTENT_TIMEOUT_S: float = float(os.getenv("CONTENT_TIMEOUT_S", "30"))
TTS_TIMEOUT_S: float = float(os.getenv("TTS_TIMEOUT_S", "60"))
ANALYSIS_TIMEOUT_S: float = float(os.getenv("ANALYSIS_TIMEOUT_S", "60"))

# Document upload polling (File API)
DOCUMENT_POLL_INTERVAL_S: float = float(os.getenv("DOCUMENT_POLL_INTERVAL_S", "2"))
DOCUMENT_POLL_MAX_WAIT_S: float = float(os.getenv("DOCUMENT_POLL_MAX_WAIT_S", "120"))

# Challenge cache
CHALLENGE_CACHE_TTL_S: int = int(os.getenv("CHALLENGE_CACHE_TTL_S", "300"))

# Recording
RECORDING_SAMPLE_RATE: int = int(os.getenv("RECORDING_SAMPLE_RATE", "16000"))
RECORDING_TIMESLICE_MS: int = int(os.getenv("RECORDING_TIMESLICE_MS", "250"))
RECORDING_FORMAT = os.getenv("RECORDING_FORMAT", "WAV").upper()

# Comparative playback
PLAYBACK_SEGMENT_S: float = 0.8
PLAYBACK_PAUSE_S: float = 0.3
PLAYBACK_DEFAULT_DURATION_S: float = 10.0

# CORS
CORS_ORIGINS: List[str] = os.getenv("CORS_ORIGINS", "*").split(",")

# API Server
API_HOST = os.getenv("API_HOST", "127.0.0.1")
API_PORT = int(os.getenv("API_PORT", "8000"))
API_RELOAD = os.getenv("API_RELOAD", "True").lower() in ("true", "1", "yes")
