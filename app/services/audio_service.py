import io
import logging
from typing import Optional

import numpy as np
import soundfile as sf

from app.exceptions import InvalidAudioError
from app.utils.b64 import guess_mime_type

logger = logging.getLogger(__name__)


def probe_duration(data: bytes) -> Optional[float]:
    """Best-effort duration in seconds; None when the container cannot be read."""
    if not data:
        return None
    try:
        return float(sf.info(io.BytesIO(data)).duration)
    except (RuntimeError, TypeError, ValueError) as e:
        logger.debug("Could not read audio duration: %s", e)
        return None


class AudioHandle:
    """
    Decoded audio owned by one practice session.

    The samples stay in memory until release() is called; a session releases
    the old handle whenever it replaces it and when it ends.
    """

    def __init__(self, samples: np.ndarray, sample_rate: int, mime_type: str = "audio/wav"):
        if sample_rate <= 0:
            raise InvalidAudioError("sample_rate must be positive")
        self._samples: Optional[np.ndarray] = samples
        self.sample_rate = sample_rate
        self.mime_type = mime_type
        self._frames = int(samples.shape[0])

    @classmethod
    def from_bytes(cls, data: bytes, mime_type: Optional[str] = None) -> "AudioHandle":
        if not data:
            raise InvalidAudioError("Empty audio")
        try:
            samples, sample_rate = sf.read(io.BytesIO(data), dtype="float32", always_2d=True)
        except (RuntimeError, TypeError, ValueError) as e:
            raise InvalidAudioError(f"Could not decode audio: {e}") from e
        return cls(samples, int(sample_rate), mime_type or guess_mime_type(data[:16]))

    @property
    def released(self) -> bool:
        return self._samples is None

    @property
    def frames(self) -> int:
        return self._frames

    @property
    def channels(self) -> int:
        return int(self.samples.shape[1]) if self.samples.ndim > 1 else 1

    @property
    def duration(self) -> float:
        return self._frames / self.sample_rate

    @property
    def samples(self) -> np.ndarray:
        if self._samples is None:
            raise InvalidAudioError("Audio handle already released")
        return self._samples

    def frame_at(self, seconds: float) -> int:
        return min(self._frames, max(0, int(round(seconds * self.sample_rate))))

    def segment(self, start: float, end: float) -> np.ndarray:
        """Samples between `start` and `end` seconds, clamped to the recording."""
        first = self.frame_at(start)
        last = max(first, self.frame_at(end))
        return self.samples[first:last]

    def release(self) -> None:
        self._samples = None

    def __enter__(self) -> "AudioHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
