"""Pull JSON payloads out of free-form model replies.

Models wrap JSON in prose or Markdown code fences; these helpers scan for the
first decodable array/object instead of trusting the reply to be pure JSON.
"""

from __future__ import annotations

import json
from typing import Any

from sitelens.errors import ParseError

_DECODER = json.JSONDecoder(strict=False)


def _first_json(text: str, opener: str, expected: type) -> Any:
    if not text:
        raise ParseError("empty model response")
    index = text.find(opener)
    while index != -1:
        try:
            value, _end = _DECODER.raw_decode(text, index)
        except ValueError:
            pass
        else:
            if isinstance(value, expected):
                return value
        index = text.find(opener, index + 1)
    kind = "array" if expected is list else "object"
    raise ParseError(f"no JSON {kind} found in model response")


def extract_json_array(text: str) -> list:
    """Return the first JSON array embedded in *text*.

    Raises:
        ParseError: If no decodable array is present.
    """
    return _first_json(text, "[", list)


def extract_json_object(text: str) -> dict:
    """Return the first JSON object embedded in *text*.

    Raises:
        ParseError: If no decodable object is present.
    """
    return _first_json(text, "{", dict)
