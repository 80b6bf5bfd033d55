"""
JSON extraction for free-form Gemini replies.

The model is asked for bare JSON but often wraps it in a ```json fence or
surrounds it with prose. Exactly one extraction strategy is applied, in order:

1. the first ```json fenced block
2. the span from the first "{" to the last "}"
3. the raw text

The result is parsed as-is. There is no repair pass; invalid JSON is a
ParseError.
"""
import json
import logging
import re
from typing import Any

from .errors import ParseError

logger = logging.getLogger(__name__)

FENCED_JSON_RE = re.compile(r"```json\s*([\s\S]*?)\s*```")
BRACED_RE = re.compile(r"\{[\s\S]*\}")


def extract_json_text(text: str) -> str:
    """Return the substring that should hold the JSON value."""
    fenced = FENCED_JSON_RE.search(text)
    if fenced:
        return fenced.group(1)

    braced = BRACED_RE.search(text)
    if braced:
        return braced.group(0)

    return text


def _reject_constant(name: str) -> Any:
    # NaN and Infinity are not JSON and cannot be sent back to the client.
    raise ParseError(f"Model response contains non-JSON constant {name}")


def extract_json(text: str) -> Any:
    """Extract and parse the JSON value in a model reply."""
    candidate = extract_json_text(text or "")
    try:
        return json.loads(candidate, parse_constant=_reject_constant)
    except json.JSONDecodeError as e:
        logger.error(f"Model reply is not valid JSON ({e}): {candidate[:200]}...")
        raise ParseError(f"Failed to parse model response as JSON: {e}") from e
