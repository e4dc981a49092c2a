"""
Microphone capture for the learner's attempt.

Chunks arrive from the PortAudio thread every time slice and are kept in
order; stop() turns them into one immutable encoded recording.
"""

from __future__ import annotations

import io
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Optional

import numpy as np
import soundfile as sf

from app import config
from app.exceptions import DevicePermissionError, RecordingStateError
from app.services.audio_service import probe_duration

logger = logging.getLogger(__name__)

FORMAT_MIME_TYPES = {
    "WAV": ("PCM_16", "audio/wav"),
    "FLAC": ("PCM_16", "audio/flac"),
    "OGG": ("VORBIS", "audio/ogg"),
}


class CaptureState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"


@dataclass(frozen=True)
class CaptureSettings:
    sample_rate: int = config.RECORDING_SAMPLE_RATE
    channels: int = 1
    # Short enough that even a very short attempt flushes at least one chunk.
    timeslice_ms: int = config.RECORDING_TIMESLICE_MS
    format: str = config.RECORDING_FORMAT
    echo_cancellation: bool = True
    noise_suppression: bool = True
    device: Optional[Any] = None

    @property
    def blocksize(self) -> int:
        return max(1, self.sample_rate * self.timeslice_ms // 1000)


@dataclass(frozen=True)
class RecordedAudio:
    data: bytes = field(repr=False)
    mime_type: str
    duration: Optional[float]
    chunk_count: int


def open_input_stream(**kwargs) -> Any:
    """Open and start a sounddevice InputStream; device failures become DevicePermissionError."""
    try:
        import sounddevice as sd
    except OSError as e:
        # PortAudio library not installed
        raise DevicePermissionError(f"No audio input available: {e}") from e
    try:
        stream = sd.InputStream(**kwargs)
        stream.start()
    except (sd.PortAudioError, ValueError) as e:
        raise DevicePermissionError(f"Microphone access denied: {e}") from e
    return stream


class RecordingCapture:
    def __init__(
        self,
        settings: Optional[CaptureSettings] = None,
        stream_factory: Optional[Callable[..., Any]] = None,
    ):
        """
        Args:
            settings: capture parameters.
            stream_factory: opens and starts an input stream with sounddevice's
                InputStream keyword arguments.
        """
        self.settings = settings or CaptureSettings()
        if self.settings.format not in FORMAT_MIME_TYPES:
            raise ValueError(f"Unsupported recording format: {self.settings.format}")
        self._stream_factory = stream_factory or open_input_stream
        self._stream = None
        self._chunks: List[np.ndarray] = []
        self._lock = threading.Lock()
        self.state = CaptureState.IDLE
        self.overflows = 0

    @property
    def mime_type(self) -> str:
        return FORMAT_MIME_TYPES[self.settings.format][1]

    def start(self) -> None:
        if self.state != CaptureState.IDLE:
            raise RecordingStateError("start() called while already recording")

        s = self.settings
        with self._lock:
            self._chunks = []
        self.overflows = 0
        logger.debug(
            "Opening input device=%s sr=%d echo_cancellation=%s noise_suppression=%s",
            s.device, s.sample_rate, s.echo_cancellation, s.noise_suppression,
        )
        try:
            stream = self._stream_factory(
                samplerate=s.sample_rate,
                channels=s.channels,
                dtype="int16",
                blocksize=s.blocksize,
                device=s.device,
                callback=self._on_chunk,
            )
        except DevicePermissionError as e:
            logger.error("Microphone unavailable: %s", e)
            raise
        self._stream = stream
        self.state = CaptureState.RECORDING
        logger.info("Recording started (%d ms chunks)", s.timeslice_ms)

    def _on_chunk(self, indata, frames, time_info, status) -> None:
        if status and getattr(status, "input_overflow", False):
            self.overflows += 1
        if frames == 0:
            return
        # PortAudio reuses the buffer
        chunk = indata.copy()
        with self._lock:
            self._chunks.append(chunk)

    def stop(self) -> RecordedAudio:
        if self.state != CaptureState.RECORDING:
            raise RecordingStateError("stop() called while not recording")

        stream, self._stream = self._stream, None
        self.state = CaptureState.IDLE
        try:
            stream.stop()
        finally:
            stream.close()

        with self._lock:
            chunks, self._chunks = self._chunks, []

        s = self.settings
        if chunks:
            samples = np.concatenate(chunks, axis=0)
        else:
            samples = np.zeros((0, s.channels), dtype=np.int16)

        subtype, mime_type = FORMAT_MIME_TYPES[s.format]
        buf = io.BytesIO()
        sf.write(buf, samples, s.sample_rate, format=s.format, subtype=subtype)
        data = buf.getvalue()

        recorded = RecordedAudio(
            data=data,
            mime_type=mime_type,
            duration=probe_duration(data),
            chunk_count=len(chunks),
        )
        logger.info(
            "Recording stopped: %d chunks, %d bytes, duration=%s, overflows=%d",
            recorded.chunk_count, len(data), recorded.duration, self.overflows,
        )
        return recorded

    def abort(self) -> None:
        """Close the device without producing a recording (session teardown)."""
        if self.state != CaptureState.RECORDING:
            return
        stream, self._stream = self._stream, None
        self.state = CaptureState.IDLE
        try:
            stream.abort()
        finally:
            stream.close()
        with self._lock:
            self._chunks = []
