import struct

import pytest

from app.exceptions import InvalidAudioError
from app.utils.wav import HEADER_SIZE, decode_container, encode_to_container, extract_pcm, pcm_duration


def test_eight_byte_payload_is_framed_in_52_bytes():
    pcm = bytes(range(8))
    wav = encode_to_container(pcm, 24000)

    assert len(wav) == 52
    assert wav[0:4] == b"RIFF"
    assert wav[8:12] == b"WAVE"
    assert wav[12:16] == b"fmt "
    assert wav[36:40] == b"data"
    assert wav[44:52] == pcm


def test_header_fields_are_computed_from_rate_and_size():
    wav = encode_to_container(b"\x00" * 100, 24000)

    chunk_size, = struct.unpack_from("<I", wav, 4)
    fmt_size, audio_format, channels, rate, byte_rate, block_align, bits = struct.unpack_from("<IHHIIHH", wav, 16)
    data_size, = struct.unpack_from("<I", wav, 40)

    assert chunk_size == 36 + 100
    assert (fmt_size, audio_format, channels, bits) == (16, 1, 1, 16)
    assert rate == 24000
    assert byte_rate == 48000
    assert block_align == 2
    assert data_size == 100


def test_zero_length_payload_yields_bare_header():
    wav = encode_to_container(b"", 16000)
    assert len(wav) == HEADER_SIZE
    assert extract_pcm(wav) == b""


def test_decode_reads_back_what_was_encoded():
    pcm = b"\x10\x00\x20\x00" * 1200
    info = decode_container(encode_to_container(pcm, 24000))

    assert info.sample_rate == 24000
    assert info.channels == 1
    assert info.bits_per_sample == 16
    assert info.data_offset == HEADER_SIZE
    assert info.data_size == len(pcm)
    assert info.duration == pytest.approx(0.1)
    assert extract_pcm(encode_to_container(pcm, 24000)) == pcm


def test_decode_skips_unknown_chunks():
    pcm = b"\x01\x02\x03\x04"
    wav = encode_to_container(pcm, 8000)
    # insert an odd-sized LIST chunk (padded to an even length) between fmt and data
    extra = b"LIST" + struct.pack("<I", 3) + b"abc\x00"
    patched = wav[:36] + extra + wav[36:]

    assert extract_pcm(patched) == pcm


@pytest.mark.parametrize("blob", [b"", b"RIFF", b"RIFX" + b"\x00" * 40, b"RIFF\x00\x00\x00\x00AVI " + b"\x00" * 32])
def test_decode_rejects_non_wav(blob):
    with pytest.raises(InvalidAudioError):
        decode_container(blob)


def test_encode_rejects_non_positive_rate():
    with pytest.raises(ValueError):
        encode_to_container(b"\x00\x00", 0)


def test_pcm_duration():
    assert pcm_duration(48000, 24000) == pytest.approx(1.0)
    assert pcm_duration(100, 0) == 0.0
