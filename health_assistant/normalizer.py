"""
Reshape Gemini replies for the front-end.
"""
import base64
import logging
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from .json_utils import extract_json
from .models import RESULT_MODELS, AnalysisResult

logger = logging.getLogger(__name__)


def _first_part(response: Any) -> Optional[Any]:
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return None
    content = getattr(candidates[0], "content", None)
    parts = getattr(content, "parts", None) or []
    return parts[0] if parts else None


def extract_text(response: Any) -> str:
    """Text of the first part of the first candidate, or ""."""
    part = _first_part(response)
    return (getattr(part, "text", None) or "") if part is not None else ""


def extract_audio(response: Any) -> Optional[str]:
    """Base64 audio from the first part of the first candidate, or None.

    The SDK decodes inline data to bytes; the front-end expects base64 text.
    """
    part = _first_part(response)
    inline_data = getattr(part, "inline_data", None) if part is not None else None
    data = getattr(inline_data, "data", None) if inline_data is not None else None
    if not data:
        return None
    if isinstance(data, str):
        return data
    return base64.b64encode(data).decode("ascii")


def parse_analysis_result(mode: Optional[str], data: Any) -> Optional[AnalysisResult]:
    """Typed result for the mode, or None if the mode is unknown or data doesn't fit."""
    result_model = RESULT_MODELS.get(mode or "")
    if result_model is None:
        return None
    try:
        return result_model.model_validate(data)
    except PydanticValidationError as e:
        logger.warning(f"{mode} reply does not match schema ({e.error_count()} errors); passing through")
        return None


def coerce_analysis_result(mode: Optional[str], data: Any) -> Any:
    """Check parsed JSON against the mode's schema.

    A matching reply is returned as its validated dump (extra keys kept).
    Anything else passes through untouched so the front-end still gets it.
    """
    result = parse_analysis_result(mode, data)
    if result is None:
        return data
    return result.model_dump()


def normalize_analysis(mode: Optional[str], text: str) -> Any:
    """Extract, parse and schema-check an analysis reply."""
    return coerce_analysis_result(mode, extract_json(text))
