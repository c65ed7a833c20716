"""Pull a JSON value out of free-form model output.

Candidates are tried in order and the first that parses wins:
the whole trimmed text, a ```json fenced block, any fenced block, and
finally the span from the first ``{`` to the last ``}``. Only syntax is
checked; callers apply their own field-level defaults.
"""

from __future__ import annotations

import json
import re
from typing import Any

from flowdesk.errors import ExtractionError

JSON_FENCE_RE = re.compile(r"```json([\s\S]*?)```", re.IGNORECASE)
ANY_FENCE_RE = re.compile(r"```([\s\S]*?)```")


def _parses(candidate: str) -> bool:
    try:
        json.loads(candidate)
    except (json.JSONDecodeError, ValueError):
        return False
    return True


def extract_json(text: str) -> str:
    """Return the first syntactically valid JSON candidate in ``text``.

    Raises ExtractionError if none is found.
    """
    trimmed = (text or "").strip()
    if trimmed and _parses(trimmed):
        return trimmed

    for pattern in (JSON_FENCE_RE, ANY_FENCE_RE):
        match = pattern.search(trimmed)
        if match:
            candidate = match.group(1).strip()
            if _parses(candidate):
                return candidate

    first, last = trimmed.find("{"), trimmed.rfind("}")
    if first != -1 and last > first:
        candidate = trimmed[first:last + 1]
        if _parses(candidate):
            return candidate

    raise ExtractionError(f"Unable to extract JSON from model response: {trimmed[:200]!r}")


def extract_json_object(text: str) -> dict[str, Any]:
    """Like extract_json, but decoded and required to be a JSON object."""
    value = json.loads(extract_json(text))
    if not isinstance(value, dict):
        raise ExtractionError(f"Expected a JSON object, got {type(value).__name__}")
    return value
