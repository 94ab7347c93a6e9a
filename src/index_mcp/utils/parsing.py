"""Parsing helpers for loosely formatted provider output.

Providers (LLM search, quote APIs) hand back numbers as floats, ints or
display strings such as ``"24,873.85"`` or ``"+1.5%"``. Everything here is
total: bad input degrades to a default, it never raises.
"""

import json
import math
import re
from dataclasses import dataclass
from typing import Any

# Characters stripped before float parsing: thousands separators, percent, plus
_STRIP_CHARS = re.compile(r"[,%+]")


@dataclass(frozen=True)
class ParsedNumber:
    """Parsed value plus whether parsing actually succeeded."""

    value: float
    ok: bool


def parse_number_checked(value: Any) -> ParsedNumber:
    """
    Parse a provider value into a float, reporting success.

    Args:
        value: Number, numeric text, or None

    Returns:
        ParsedNumber; ``ok`` is False for absent or unparsable input (value 0.0)
    """
    if value is None or isinstance(value, bool):
        return ParsedNumber(0.0, False)

    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return ParsedNumber(0.0, False)
        return ParsedNumber(float(value), True)

    if not isinstance(value, str):
        return ParsedNumber(0.0, False)

    clean = _STRIP_CHARS.sub("", value).strip()
    if not clean:
        return ParsedNumber(0.0, False)

    try:
        parsed = float(clean)
    except ValueError:
        return ParsedNumber(0.0, False)

    # float() accepts "nan"/"inf"; neither is a reading
    if not math.isfinite(parsed):
        return ParsedNumber(0.0, False)
    return ParsedNumber(parsed, True)


def parse_number(value: Any) -> float:
    """Parse a provider value into a float. Unparsable input becomes 0.0."""
    return parse_number_checked(value).value


def extract_json_block(text: str | None) -> dict[str, Any] | None:
    """
    Locate and decode the structured block embedded in free text.

    Takes the span from the first ``{`` to the last ``}`` (LLM answers often
    wrap the object in prose or code fences) and decodes it.

    Returns:
        Decoded dict, or None if no block is found or it is not a JSON object
    """
    if not text:
        return None

    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None

    try:
        data = json.loads(text[start : end + 1])
    except json.JSONDecodeError:
        return None

    if not isinstance(data, dict):
        return None
    return data


def sanitize_text(text: Any, max_length: int = 200) -> str | None:
    """
    Sanitize untrusted provider text (volume strings, citation titles).

    Removes control characters and truncates to max_length.
    Non-string scalars are stringified first.
    """
    if text is None:
        return None

    text = re.sub(r"[\x00-\x1f\x7f-\x9f]", "", str(text))

    if len(text) > max_length:
        text = text[:max_length] + "..."

    return text.strip()
