"""
One learner's practice session: load a challenge, record an attempt, analyze
it and replay words side by side.

The session owns the decoded audio of the current challenge and of the
current attempt and releases them whenever they are replaced and on close().
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Optional

from app.exceptions import (
    DevicePermissionError,
    InvalidAudioError,
    ProviderUnavailableError,
    RecordingStateError,
)
from app.models.challenge import Challenge, Level, Mode
from app.models.word_segment import WordBounds
from app.schemas import AnalysisResult
from app.services.analysis_service import AlignmentAnalysisClient
from app.services.audio_service import AudioHandle
from app.services.challenge_cache import ChallengeCache
from app.services.playback_service import ComparativePlaybackScheduler, SegmentPlayer, SoundDevicePlayer
from app.services.recording_service import RecordedAudio, RecordingCapture

logger = logging.getLogger(__name__)

RETRY_MESSAGE = "Could not load a challenge. Check your connection and try again."
ANALYSIS_RETRY_MESSAGE = "Analysis failed. Please try again."
UNAVAILABLE_MESSAGE = "AI service unavailable. Please check your API keys and try again."
MIC_DENIED_MESSAGE = "Microphone access denied."
RECORDING_RETRY_MESSAGE = "Recording failed. Please try again."


class SessionState(str, Enum):
    LOADING = "loading"
    READY = "ready"
    RECORDING = "recording"
    HAS_RECORDING = "has_recording"
    ANALYZING = "analyzing"
    RESULTS = "results"
    ERROR = "error"


def user_message(exc: BaseException, default: str = RETRY_MESSAGE) -> str:
    if isinstance(exc, DevicePermissionError):
        return MIC_DENIED_MESSAGE
    if isinstance(exc, ProviderUnavailableError):
        return UNAVAILABLE_MESSAGE
    return default


class ShadowSession:
    def __init__(
        self,
        cache: ChallengeCache,
        analysis_client: AlignmentAnalysisClient,
        recorder: Optional[RecordingCapture] = None,
        player: Optional[SegmentPlayer] = None,
        level: Level = Level.BEGINNER,
        mode: Mode = Mode.DAILY,
    ):
        self.cache = cache
        self.analysis_client = analysis_client
        self.recorder = recorder or RecordingCapture()
        self.player = player
        self.level = level
        self.mode = mode

        self.state = SessionState.LOADING
        self.error: Optional[str] = None
        self.challenge: Optional[Challenge] = None
        self.recording: Optional[RecordedAudio] = None
        self.analysis: Optional[AnalysisResult] = None
        self.scheduler: Optional[ComparativePlaybackScheduler] = None

        self._reference_audio: Optional[AudioHandle] = None
        self._user_audio: Optional[AudioHandle] = None
        self._load_task: Optional[asyncio.Task] = None
        # Bumped by every load and by close(); results from an older load are dropped.
        self._load_generation = 0

    # ------------------------
    # Challenge
    # ------------------------
    async def load_challenge(self) -> Optional[Challenge]:
        """
        Load a challenge for the session's level and mode.

        A newer load (or close()) supersedes this one; a superseded load
        returns None and leaves the session untouched. Failures clear the
        cache and put the session in the error state with a user message.
        """
        self._cancel_pending_load()
        self._load_generation += 1
        generation = self._load_generation

        self._discard_attempt()
        self._release_reference()
        self.challenge = None
        self.error = None
        self.state = SessionState.LOADING

        task = asyncio.ensure_future(self.cache.load(self.level, self.mode))
        self._load_task = task
        try:
            challenge = await task
            if generation != self._load_generation:
                return None
            reference = AudioHandle.from_bytes(challenge.reference_audio, "audio/wav")
        except asyncio.CancelledError:
            if generation != self._load_generation:
                logger.debug("Superseded challenge load cancelled")
                return None
            raise
        except Exception as e:
            if generation != self._load_generation:
                return None
            logger.error("Failed to load challenge level=%s mode=%s: %s", self.level.value, self.mode.value, e)
            self.cache.clear()
            self.error = user_message(e)
            self.state = SessionState.ERROR
            return None
        finally:
            if self._load_task is task:
                self._load_task = None

        self._reference_audio = reference
        self.challenge = challenge
        self.state = SessionState.READY
        return challenge

    async def refresh(self) -> Optional[Challenge]:
        self.cache.clear()
        return await self.load_challenge()

    def prefetch(self, level: Optional[Level] = None, mode: Optional[Mode] = None) -> Optional[asyncio.Task]:
        return self.cache.prefetch(level or self.level, mode or self.mode)

    # ------------------------
    # Recording
    # ------------------------
    def start_recording(self) -> bool:
        if self.state not in (SessionState.READY, SessionState.HAS_RECORDING, SessionState.RESULTS):
            raise RecordingStateError(f"Cannot record while {self.state.value}")
        self._discard_attempt()
        self.error = None
        try:
            self.recorder.start()
        except DevicePermissionError as e:
            logger.error("Microphone unavailable: %s", e)
            self.error = MIC_DENIED_MESSAGE
            self.state = SessionState.READY
            return False
        self.state = SessionState.RECORDING
        return True

    def stop_recording(self) -> Optional[RecordedAudio]:
        if self.state != SessionState.RECORDING:
            raise RecordingStateError("No recording in progress")
        try:
            recording = self.recorder.stop()
        except Exception:
            logger.exception("Stopping the recorder failed")
            self.error = RECORDING_RETRY_MESSAGE
            self.state = SessionState.READY
            return None
        try:
            self._user_audio = AudioHandle.from_bytes(recording.data, recording.mime_type)
        except InvalidAudioError as e:
            logger.warning("Recorded audio could not be decoded for playback: %s", e)
            self._user_audio = None
        self.recording = recording
        self.state = SessionState.HAS_RECORDING
        return recording

    def reset_recording(self) -> None:
        self.recorder.abort()
        self._discard_attempt()
        self.error = None
        self.state = SessionState.READY if self.challenge is not None else SessionState.LOADING

    # ------------------------
    # Analysis and playback
    # ------------------------
    async def run_analysis(self) -> Optional[AnalysisResult]:
        if self.recording is None or self.challenge is None or self.state not in (
            SessionState.HAS_RECORDING, SessionState.RESULTS,
        ):
            raise RecordingStateError("Analysis needs a finished recording")

        self.state = SessionState.ANALYZING
        self.error = None
        try:
            result = await self.analysis_client.analyze(
                self.recording.data,
                self.recording.mime_type,
                self.challenge.reference_audio,
                self.challenge.text,
            )
        except Exception as e:
            logger.error("Analysis failed: %s: %s", type(e).__name__, e)
            self.error = user_message(e, default=ANALYSIS_RETRY_MESSAGE)
            # the recording is kept so the learner can retry
            self.state = SessionState.HAS_RECORDING
            return None

        self.analysis = result
        if self._user_audio is not None and self._reference_audio is not None:
            self.scheduler = ComparativePlaybackScheduler(
                self.player or SoundDevicePlayer(), result, self._user_audio, self._reference_audio,
            )
        self.state = SessionState.RESULTS
        return result

    async def play_word(self, word_index: int) -> WordBounds:
        if self.scheduler is None:
            raise RecordingStateError("Nothing to play back yet")
        return await self.scheduler.play_word_comparison(word_index)

    # ------------------------
    # Lifecycle
    # ------------------------
    def close(self) -> None:
        self._cancel_pending_load()
        self._load_generation += 1
        self.recorder.abort()
        self._discard_attempt()
        self._release_reference()

    def _cancel_pending_load(self) -> None:
        task, self._load_task = self._load_task, None
        if task is not None and not task.done():
            task.cancel()

    def _discard_attempt(self) -> None:
        self.recording = None
        self.analysis = None
        self.scheduler = None
        if self._user_audio is not None:
            self._user_audio.release()
            self._user_audio = None

    def _release_reference(self) -> None:
        if self._reference_audio is not None:
            self._reference_audio.release()
            self._reference_audio = None
