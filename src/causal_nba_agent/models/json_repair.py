"""
Best-effort JSON recovery for model output.

Models wrap JSON in prose or code fences, use Python literals, single
quotes, bare keys and trailing commas. These helpers locate the payload
and repair what they can; anything still unparseable yields None.
"""

from __future__ import annotations

import ast
import json
import re
from typing import Any

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\s*```$")
_SMART_QUOTES = str.maketrans({"“": '"', "”": '"', "‘": "'", "’": "'"})

# Applied in order
_REPAIRS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r",(\s*[}\]])"), r"\1"),
    (re.compile(r"\bNone\b"), "null"),
    (re.compile(r"\bTrue\b"), "true"),
    (re.compile(r"\bFalse\b"), "false"),
    (re.compile(r"([{,]\s*)([A-Za-z_][\w\-]*)(\s*:)"), r'\1"\2"\3'),
)

_LITERAL_ERRORS = (ValueError, SyntaxError, MemoryError, RecursionError)


def balanced_span(text: str, start: int) -> str:
    """
    Cut ``text`` at the bracket that closes the one at ``start``.

    Brackets inside string literals are ignored. An unbalanced payload
    returns everything from ``start`` on.
    """
    opener = text[start]
    closer = "}" if opener == "{" else "]"
    depth = 0
    in_string = False
    escaped = False

    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif char == opener:
            depth += 1
        elif char == closer:
            depth -= 1
            if depth == 0:
                return text[start : index + 1]
    return text[start:]


def repair_json_text(text: str) -> str:
    """Apply the textual repairs without parsing."""
    text = _FENCE_CLOSE.sub("", _FENCE_OPEN.sub("", text.strip()))
    text = text.translate(_SMART_QUOTES)
    for pattern, replacement in _REPAIRS:
        text = pattern.sub(replacement, text)
    if "'" in text and '"' not in text:
        text = text.replace("'", '"')
    return text


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(v) for v in value]
    if value is ...:
        return None
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def _load_container(text: str) -> dict[str, Any] | list[Any] | None:
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, (dict, list)) else None


def parse_json_loose(raw: str) -> dict[str, Any] | list[Any] | None:
    """
    Parse a JSON object or array, repairing common model mistakes.

    Tries strict JSON, then the repaired text, then Python literal syntax.
    """
    if not raw:
        return None

    repaired = repair_json_text(raw)
    for candidate in (raw, repaired):
        parsed = _load_container(candidate)
        if parsed is not None:
            return parsed

    for candidate in (raw.strip(), repaired):
        try:
            literal = ast.literal_eval(candidate)
        except _LITERAL_ERRORS:
            continue
        if isinstance(literal, (dict, list, tuple, set)):
            return _jsonable(literal)
    return None


def extract_json_payload(content: str) -> dict[str, Any] | list[Any] | None:
    """
    Find and parse the first JSON object (or, failing that, array) in model output.

    Returns:
        Parsed dict/list, or None if nothing parseable was found.
    """
    content = (content or "").strip()
    if not content:
        return None

    start = content.find("{")
    if start == -1:
        start = content.find("[")
    if start != -1:
        parsed = parse_json_loose(balanced_span(content, start))
        if parsed is not None:
            return parsed

    return parse_json_loose(content)
