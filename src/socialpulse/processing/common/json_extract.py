"""Locate JSON objects embedded in free-form backend text."""

from collections.abc import Iterator
from typing import Any

import orjson


def iter_balanced_braces(text: str) -> Iterator[str]:
    """Yield every balanced ``{...}`` substring in order of its opening brace.

    Braces inside string literals do not count toward the balance.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    yield text[start : i + 1]
                    break
        start = text.find("{", start + 1)


def _first_object(text: str) -> tuple[str, dict[str, Any]] | None:
    for candidate in iter_balanced_braces(text):
        try:
            data = orjson.loads(candidate)
        except orjson.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return candidate, data
    return None


def load_json_object(text: str) -> dict[str, Any] | None:
    """Decode the first balanced candidate that is a valid JSON object.

    Backends often wrap JSON in prose or markdown fences, and the prose can
    carry brace tokens of its own (``{AAPL}``), so candidates that fail to
    decode are skipped rather than treated as the answer.
    """
    found = _first_object(text)
    return found[1] if found else None


def extract_json_object(text: str) -> str | None:
    """Return the first balanced substring that decodes to a JSON object."""
    found = _first_object(text)
    return found[0] if found else None
