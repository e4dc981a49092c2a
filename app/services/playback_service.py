"""
Word-by-word comparison playback: the learner's take, a short pause, then the
reference reading of the same word.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Callable, Optional, Protocol

import numpy as np

from app import config
from app.models.word_segment import WordBounds, WordSegment
from app.schemas import AnalysisResult
from app.services.audio_service import AudioHandle

logger = logging.getLogger(__name__)

# Extra time allowed for a stream to report completion before it is aborted.
COMPLETION_GRACE_S = 1.0


class SegmentPlayer(Protocol):
    async def play_segment(self, handle: AudioHandle, start: float, end: float) -> None:
        ...


class SoundDevicePlayer:
    """Plays a slice of an AudioHandle on the default output device."""

    def __init__(
        self,
        device: Optional[Any] = None,
        stream_factory: Optional[Callable[..., Any]] = None,
        grace: float = COMPLETION_GRACE_S,
    ):
        self.device = device
        self._stream_factory = stream_factory
        self.grace = grace

    async def play_segment(self, handle: AudioHandle, start: float, end: float) -> None:
        samples = handle.segment(start, end)
        if len(samples) == 0:
            logger.debug("Nothing to play between %.2fs and %.2fs", start, end)
            return

        import sounddevice as sd

        loop = asyncio.get_running_loop()
        done = asyncio.Event()
        position = 0
        lock = threading.Lock()

        def callback(outdata, frames, time_info, status):
            nonlocal position
            with lock:
                chunk = samples[position:position + frames]
                position += len(chunk)
            outdata[:len(chunk)] = chunk
            if len(chunk) < frames:
                outdata[len(chunk):] = 0
                raise sd.CallbackStop()

        def finished():
            loop.call_soon_threadsafe(done.set)

        stream = (self._stream_factory or sd.OutputStream)(
            samplerate=handle.sample_rate,
            channels=samples.shape[1] if samples.ndim > 1 else 1,
            dtype=np.float32,
            device=self.device,
            callback=callback,
            finished_callback=finished,
        )
        timeout = len(samples) / handle.sample_rate + self.grace
        try:
            stream.start()
            await asyncio.wait_for(done.wait(), timeout)
        except asyncio.TimeoutError:
            logger.warning("Playback did not finish within %.2fs, aborting stream", timeout)
            stream.abort()
        finally:
            stream.close()


class ComparativePlaybackScheduler:
    def __init__(
        self,
        player: SegmentPlayer,
        analysis: AnalysisResult,
        user_audio: AudioHandle,
        reference_audio: AudioHandle,
        segment_length: float = config.PLAYBACK_SEGMENT_S,
        pause: float = config.PLAYBACK_PAUSE_S,
        default_duration: float = config.PLAYBACK_DEFAULT_DURATION_S,
    ):
        self.player = player
        self.analysis = analysis
        self.user_audio = user_audio
        self.reference_audio = reference_audio
        self.segment_length = segment_length
        self.pause = pause
        self.default_duration = default_duration

    def _duration(self, handle: Optional[AudioHandle]) -> float:
        if handle is None or not handle.duration:
            return self.default_duration
        return handle.duration

    def resolve_bounds(self, word_index: int) -> WordBounds:
        words = self.analysis.words
        if not 0 <= word_index < len(words):
            raise IndexError(f"word index {word_index} out of range (0..{len(words) - 1})")
        word = words[word_index]

        if word.has_timestamps:
            return WordBounds(
                word=word.word,
                user=WordSegment(word.user_start, word.user_end),
                reference=WordSegment(word.ref_start, word.ref_end),
                estimated=False,
            )

        # Linear estimate: the word sits at the same relative position in both takes.
        ratio = word_index / len(words)
        user_start = ratio * self._duration(self.user_audio)
        ref_start = ratio * self._duration(self.reference_audio)
        return WordBounds(
            word=word.word,
            user=WordSegment(user_start, user_start + self.segment_length),
            reference=WordSegment(ref_start, ref_start + self.segment_length),
            estimated=True,
        )

    async def play_word_comparison(self, word_index: int) -> WordBounds:
        bounds = self.resolve_bounds(word_index)
        logger.debug(
            "Comparing %r: user %.2f-%.2f ref %.2f-%.2f%s",
            bounds.word, bounds.user.start, bounds.user.end,
            bounds.reference.start, bounds.reference.end,
            " (estimated)" if bounds.estimated else "",
        )
        await self.player.play_segment(self.user_audio, bounds.user.start, bounds.user.end)
        await asyncio.sleep(self.pause)
        await self.player.play_segment(self.reference_audio, bounds.reference.start, bounds.reference.end)
        return bounds
