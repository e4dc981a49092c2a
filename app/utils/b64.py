import base64
import binascii

from app.exceptions import InvalidAudioError


def guess_audio_extension(header: bytes) -> str:
    if header.startswith(b"RIFF"):  # WAV
        return ".wav"
    if header.startswith(b"ID3") or header[:2] == b"\xff\xfb":  # MP3
        return ".mp3"
    if header.startswith(b"fLaC"):  # FLAC
        return ".flac"
    if header.startswith(b"OggS"):  # OGG
        return ".ogg"
    # WebM/Matroska (EBML) header 0x1A45DFA3
    if len(header) >= 4 and header[:4] == b"\x1aE\xdf\xa3":
        return ".webm"
    # ISO-BMFF (MP4/M4A)
    if header[4:8] == b"ftyp":
        return ".m4a"
    return ".wav"


_EXTENSION_TO_MIME = {
    ".wav": "audio/wav",
    ".mp3": "audio/mpeg",
    ".flac": "audio/flac",
    ".ogg": "audio/ogg",
    ".webm": "audio/webm",
    ".m4a": "audio/mp4",
}


def guess_mime_type(header: bytes) -> str:
    return _EXTENSION_TO_MIME[guess_audio_extension(header)]


def bytes_to_transport_text(data: bytes) -> str:
    """Encode binary audio as plain base64 for JSON bodies."""
    return base64.b64encode(data).decode("ascii")


def transport_text_to_bytes(text: str) -> bytes:
    """
    Decode a base64 string produced by `bytes_to_transport_text`.

    Data URLs (``data:audio/webm;base64,...``) are accepted as well, since
    browsers hand recordings over in that form.
    """
    if text is None:
        raise InvalidAudioError("Missing audio payload")
    payload = text.strip()
    if payload.startswith("data:"):
        payload = payload.split(",", 1)[-1]
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidAudioError(f"Invalid base64 audio: {e}") from e
