"""
RIFF/WAVE framing for raw 16-bit PCM.

The speech provider returns bare little-endian PCM samples. Generic players
need the canonical 44-byte header in front of them, so it is built here field
by field rather than through the ``wave`` module, which would hide the
computed values.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass

from app.exceptions import InvalidAudioError

HEADER_SIZE = 44
CHANNELS = 1
BITS_PER_SAMPLE = 16
PCM_FORMAT = 1

_RIFF_HEADER = struct.Struct("<4sI4s")
_CHUNK_HEADER = struct.Struct("<4sI")
_FMT_BODY = struct.Struct("<HHIIHH")


@dataclass(frozen=True)
class WavInfo:
    sample_rate: int
    channels: int
    bits_per_sample: int
    byte_rate: int
    block_align: int
    data_offset: int
    data_size: int

    @property
    def duration(self) -> float:
        return pcm_duration(self.data_size, self.sample_rate, self.channels, self.bits_per_sample)


def pcm_duration(data_size: int, sample_rate: int, channels: int = CHANNELS,
                 bits_per_sample: int = BITS_PER_SAMPLE) -> float:
    """Seconds of audio held by `data_size` bytes of PCM."""
    bytes_per_second = sample_rate * channels * bits_per_sample // 8
    if bytes_per_second <= 0:
        return 0.0
    return data_size / bytes_per_second


def encode_to_container(pcm: bytes, sample_rate: int) -> bytes:
    """Prefix mono 16-bit PCM with a RIFF/WAVE header."""
    if sample_rate <= 0:
        raise ValueError("sample_rate must be positive")
    data_size = len(pcm)
    byte_rate = sample_rate * CHANNELS * BITS_PER_SAMPLE // 8
    block_align = CHANNELS * BITS_PER_SAMPLE // 8
    chunk_size = 36 + data_size

    header = b"".join(
        (
            _RIFF_HEADER.pack(b"RIFF", chunk_size, b"WAVE"),
            _CHUNK_HEADER.pack(b"fmt ", _FMT_BODY.size),
            _FMT_BODY.pack(PCM_FORMAT, CHANNELS, sample_rate, byte_rate, block_align, BITS_PER_SAMPLE),
            _CHUNK_HEADER.pack(b"data", data_size),
        )
    )
    assert len(header) == HEADER_SIZE
    return header + bytes(pcm)


def decode_container(wav: bytes) -> WavInfo:
    """Parse a RIFF/WAVE header, walking sub-chunks until ``data``."""
    if len(wav) < HEADER_SIZE:
        raise InvalidAudioError(f"WAV too short: {len(wav)} bytes")
    riff, _chunk_size, wave_id = _RIFF_HEADER.unpack_from(wav, 0)
    if riff != b"RIFF" or wave_id != b"WAVE":
        raise InvalidAudioError("Not a RIFF/WAVE container")

    fmt = None
    offset = _RIFF_HEADER.size
    while offset + _CHUNK_HEADER.size <= len(wav):
        chunk_id, size = _CHUNK_HEADER.unpack_from(wav, offset)
        body = offset + _CHUNK_HEADER.size
        if chunk_id == b"fmt ":
            if size < _FMT_BODY.size or body + _FMT_BODY.size > len(wav):
                raise InvalidAudioError("Truncated fmt chunk")
            fmt = _FMT_BODY.unpack_from(wav, body)
        elif chunk_id == b"data":
            if fmt is None:
                raise InvalidAudioError("data chunk before fmt chunk")
            _audio_format, channels, sample_rate, byte_rate, block_align, bits = fmt
            # Streaming encoders sometimes leave the size unset; clamp to what is there.
            data_size = min(size, len(wav) - body)
            return WavInfo(
                sample_rate=sample_rate,
                channels=channels,
                bits_per_sample=bits,
                byte_rate=byte_rate,
                block_align=block_align,
                data_offset=body,
                data_size=data_size,
            )
        # chunks are word aligned
        offset = body + size + (size & 1)
    raise InvalidAudioError("No data chunk found")


def extract_pcm(wav: bytes) -> bytes:
    """Return the PCM payload of a WAV container."""
    info = decode_container(wav)
    return wav[info.data_offset:info.data_offset + info.data_size]
