from __future__ import annotations
from typing import Any, Dict
import json
import logging
import re

logger = logging.getLogger(__name__)

#unified sanitizer errors
class MalformedResponseError(ValueError): ...
class NoJsonFoundError(MalformedResponseError): ...
class InvalidJsonError(MalformedResponseError): ...

_LEADING_FENCE = re.compile(r"^```[a-zA-Z0-9_-]*\s*")
_TRAILING_FENCE = re.compile(r"\s*```$")


def sanitize_json_text(text: str) -> str:
    """
    Reduce raw model output to the text of a single JSON object.

    Strips markdown fences and any prose around the outermost braces. When the
    output was cut off before its closing brace, the open structures are closed
    by recover_truncated_json. Raises NoJsonFoundError when there is no '{'.
    """
    if not text or not isinstance(text, str):
        raise NoJsonFoundError("No JSON object found in AI response")

    cleaned = text.strip()
    cleaned = _LEADING_FENCE.sub("", cleaned)
    cleaned = _TRAILING_FENCE.sub("", cleaned)
    cleaned = cleaned.replace("```", "").strip()

    first_brace = cleaned.find("{")
    last_brace = cleaned.rfind("}")

    if first_brace != -1 and last_brace != -1 and last_brace > first_brace:
        cleaned = cleaned[first_brace:last_brace + 1]
    elif first_brace != -1:
        logger.warning("Attempting JSON recovery (truncated response detected)")
        cleaned = recover_truncated_json(cleaned[first_brace:])
    else:
        raise NoJsonFoundError("No JSON object found in AI response")

    return cleaned.strip()


def recover_truncated_json(truncated: str) -> str:
    """
    Close every structure left open by a truncated JSON document.

    Brace and bracket depth is counted outside string literals only. An open
    string is closed first, then all pending arrays, then all pending objects.
    Closing arrays before objects does not track real nesting order, so input
    like {"a": [{"b": 1 comes back unbalanced and fails at parse time.
    """
    brace_count = 0
    bracket_count = 0
    in_string = False
    escaped = False

    for char in truncated:
        if escaped:
            escaped = False
            continue
        if char == "\\":
            escaped = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char == "{":
            brace_count += 1
        elif char == "}":
            brace_count -= 1
        elif char == "[":
            bracket_count += 1
        elif char == "]":
            bracket_count -= 1

    if in_string:
        truncated += '"'
    if bracket_count > 0:
        truncated += "]" * bracket_count
    if brace_count > 0:
        truncated += "}" * brace_count
    return truncated


def parse_json_object(text: str, correlation_id: str | None = None) -> Dict[str, Any]:
    """Sanitize raw model output and parse it into a dict."""
    cleaned = sanitize_json_text(text)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.error(f"[{correlation_id}] JSON parse failed: {e}; preview={cleaned[:500]!r}")
        raise InvalidJsonError(f"Invalid JSON from AI: {e}") from e

    if not isinstance(data, dict):
        raise InvalidJsonError(f"Invalid JSON from AI: expected an object, got {type(data).__name__}")
    return data
