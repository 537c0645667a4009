"""Extract JSON objects from free-form model replies."""

import json
import math
import re

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)
_FENCE_MARKER = re.compile(r"```(?:json)?\n?", re.IGNORECASE)


class ResponseParseError(ValueError):
    """Model reply did not contain a usable JSON object."""


def strip_code_fences(content: str) -> str:
    """Drop every ``` / ```json marker and surrounding whitespace."""
    return _FENCE_MARKER.sub("", content or "").strip()


def _reject_constant(name: str):
    raise ResponseParseError(f"Non-standard JSON constant: {name}")


def _finite_float(text: str) -> float:
    value = float(text)
    if not math.isfinite(value):
        raise ResponseParseError(f"Number out of range: {text}")
    return value


def _loads_object(text: str) -> dict:
    # NaN/Infinity are not JSON and would break response serialisation
    data = json.loads(text, parse_float=_finite_float, parse_constant=_reject_constant)
    if not isinstance(data, dict):
        raise ResponseParseError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def extract_json_object(content: str) -> dict:
    """Parse a JSON object out of ``content``.

    Tries the interior of the first fenced code block, then the raw content.
    Raises ``ResponseParseError`` if neither is a JSON object.
    """
    if not content or not content.strip():
        raise ResponseParseError("Empty model response")

    candidates = []
    match = _FENCED_BLOCK.search(content)
    if match:
        candidates.append(match.group(1))
    candidates.append(content.strip())

    last_error: Exception = ResponseParseError("No JSON object found")
    for candidate in candidates:
        try:
            return _loads_object(candidate.strip())
        except (json.JSONDecodeError, ResponseParseError) as e:
            last_error = e
    raise ResponseParseError(str(last_error))


def parse_fenced_json(content: str) -> dict:
    """Strip fences then parse the remainder as a JSON object."""
    try:
        return _loads_object(strip_code_fences(content))
    except json.JSONDecodeError as e:
        raise ResponseParseError(str(e)) from e
