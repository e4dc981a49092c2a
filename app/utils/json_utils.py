import json
import re
from typing import Any, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from app.exceptions import InvalidResponseError

M = TypeVar("M", bound=BaseModel)

_FENCE_RE = re.compile(r"```(?:json)?\s*|\s*```", re.IGNORECASE)


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text or "").strip()


def parse_provider_json(text: Optional[str], provider: Optional[str] = None) -> Any:
    """Decode a model reply that should be a JSON document (markdown fences tolerated)."""
    if not text or not text.strip():
        raise InvalidResponseError("Empty response", provider=provider)
    clean = strip_code_fences(text)
    try:
        return json.loads(clean)
    except json.JSONDecodeError as e:
        raise InvalidResponseError(f"Invalid response format from AI: {e}", provider=provider) from e


def parse_provider_model(text: Optional[str], model: Type[M], provider: Optional[str] = None) -> M:
    """Decode and validate a model reply against `model`."""
    data = parse_provider_json(text, provider=provider)
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise InvalidResponseError(
            f"Response does not match {model.__name__}: {e.error_count()} error(s)", provider=provider
        ) from e
