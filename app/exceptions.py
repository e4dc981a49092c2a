"""Error taxonomy shared by the shadow-reading services."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence


class ShadowEngineError(Exception):
    """Base class for every error raised by the practice engine."""


class ProviderError(ShadowEngineError):
    """A call to an external provider failed."""

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.provider = provider


class ProviderTransportError(ProviderError):
    """The provider did not answer (network failure, HTTP error, empty body)."""


class ProviderTimeoutError(ProviderTransportError):
    """The provider did not answer within its time budget."""


class InvalidResponseError(ProviderError):
    """The provider answered but the payload does not have the expected shape."""


class ProviderUnavailableError(ProviderError):
    """The provider is not configured (missing API key)."""


@dataclass(frozen=True)
class ProviderFailure:
    provider: str
    error: BaseException

    def describe(self) -> str:
        return f"{self.provider}: {type(self.error).__name__}: {self.error}"


class ProviderChainError(ShadowEngineError):
    """Every provider of a fallback chain failed."""

    def __init__(self, failures: Sequence[ProviderFailure]):
        self.failures = list(failures)
        joined = "; ".join(f.describe() for f in self.failures) or "no providers configured"
        super().__init__(f"All content providers failed ({joined})")


class DocumentExtractionError(ShadowEngineError):
    """Passage extraction from an uploaded reference document failed."""


class SpeechSynthesisError(ShadowEngineError):
    """The speech provider could not synthesize the reference audio."""


class InvalidAudioError(ShadowEngineError, ValueError):
    """Audio bytes or their transport encoding could not be decoded."""


class DevicePermissionError(ShadowEngineError):
    """The audio input device could not be acquired."""


class RecordingStateError(ShadowEngineError, RuntimeError):
    """start()/stop() was called out of turn."""
