"""Lenient JSON extraction from completion text.

Completions asked for JSON frequently wrap it in markdown fences, surround it
with prose, or leave raw newlines inside string values. These helpers try the
direct parse first, then a fenced block, then the outermost brace span.
"""

import json
import re
from typing import Optional

# Precompiled regex for JSON extraction
_JSON_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?\s*```", re.DOTALL)

# Allows control characters (raw newlines, tabs) inside JSON strings
_LENIENT_DECODER = json.JSONDecoder(strict=False)


def _try_loads(text: str):
    """Try parsing JSON, first strictly then leniently."""
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    try:
        return _LENIENT_DECODER.decode(text)
    except json.JSONDecodeError:
        pass
    raise json.JSONDecodeError("", text, 0)


def _ensure_dict(result) -> dict:
    """Normalize a parsed payload to a dict.

    A list yields its first dict element, or is wrapped under "items".
    """
    if isinstance(result, dict):
        return result
    if isinstance(result, list):
        for item in result:
            if isinstance(item, dict):
                return item
        return {"items": result}
    return {"value": result}


def parse_json_response(text: str) -> dict:
    """Extract and parse JSON from completion text.

    Always returns a dict. Raises ValueError when nothing parses.
    """
    text = (text or "").strip()

    try:
        return _ensure_dict(_try_loads(text))
    except json.JSONDecodeError:
        pass

    match = _JSON_FENCE_RE.search(text)
    if match:
        try:
            return _ensure_dict(_try_loads(match.group(1).strip()))
        except json.JSONDecodeError:
            pass

    for start_char, end_char in [("{", "}"), ("[", "]")]:
        start = text.find(start_char)
        end = text.rfind(end_char)
        if start != -1 and end != -1 and end > start:
            try:
                return _ensure_dict(_try_loads(text[start:end + 1]))
            except json.JSONDecodeError:
                continue

    raise ValueError(f"Failed to parse JSON from LLM response: {text[:200]}...")


def try_parse_json(text: str, default: Optional[dict] = None) -> Optional[dict]:
    """Like parse_json_response, but returns `default` instead of raising."""
    try:
        return parse_json_response(text)
    except ValueError:
        return default
