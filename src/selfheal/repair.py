from __future__ import annotations

import re
from typing import Any

import orjson
from pydantic import ValidationError

from .errors import ParsingError
from .types import HealPlan

_FENCE_OPEN = re.compile(r"^```[a-zA-Z]*[ \t]*\r?\n?", re.MULTILINE)
_FENCE_CLOSE = re.compile(r"^```[ \t]*$", re.MULTILINE)

_STRATEGY_FIELDS = ("type", "value", "selector", "role", "name", "text", "exact")
_WRAPPER_KEYS = ("result", "response", "data", "output")


def _strip_fences(text: str) -> str:
    text = _FENCE_OPEN.sub("", text)
    text = _FENCE_CLOSE.sub("", text)
    return text.strip()


def _strip_comments(text: str) -> str:
    out: list[str] = []
    in_string = False
    escaped = False
    index = 0
    length = len(text)
    while index < length:
        char = text[index]
        if in_string:
            out.append(char)
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            index += 1
            continue
        if char == '"':
            in_string = True
            out.append(char)
            index += 1
            continue
        if text.startswith("//", index):
            newline = text.find("\n", index)
            index = length if newline == -1 else newline
            continue
        if text.startswith("/*", index):
            end = text.find("*/", index + 2)
            index = length if end == -1 else end + 2
            continue
        out.append(char)
        index += 1
    return "".join(out)


def _strip_trailing_commas(text: str) -> str:
    out: list[str] = []
    in_string = False
    escaped = False
    for index, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            out.append(char)
            continue
        if char == '"':
            in_string = True
        elif char == ",":
            rest = text[index + 1 :].lstrip()
            if rest[:1] in ("}", "]"):
                continue
        out.append(char)
    return "".join(out)


def _balanced_span(text: str) -> str:
    match = re.search(r"[{\[]", text)
    if match is None:
        return text
    start = match.start()
    open_char = text[start]
    close_char = "}" if open_char == "{" else "]"
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
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
        if char == open_char:
            depth += 1
        elif char == close_char:
            depth -= 1
            if depth == 0:
                return text[start : index + 1]
    return text[start:]


def _escape_control_chars(text: str) -> str:
    replacements = {"\n": "\\n", "\r": "\\r", "\t": "\\t"}
    out: list[str] = []
    in_string = False
    escaped = False
    for char in text:
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            elif char in replacements:
                out.append(replacements[char])
                continue
        elif char == '"':
            in_string = True
        out.append(char)
    return "".join(out)


def _parses(text: str) -> bool:
    try:
        orjson.loads(text)
    except orjson.JSONDecodeError:
        return False
    return True


def clean_json(raw: str) -> str:
    """Best-effort repair of model output into parseable JSON text.

    Valid JSON, surrounding whitespace included, comes back unchanged, so the
    function can be applied repeatedly.
    """

    if _parses(raw):
        return raw

    content = _strip_fences(raw.strip())
    content = _strip_comments(content)
    content = _strip_trailing_commas(content).strip()
    if _parses(content):
        return content

    content = _balanced_span(content)
    content = _escape_control_chars(content)
    content = _strip_trailing_commas(content)
    return content.strip()


def _split_flat(item: dict[str, Any]) -> dict[str, Any]:
    strategy = {key: value for key, value in item.items() if key in _STRATEGY_FIELDS}
    rest = {key: value for key, value in item.items() if key not in _STRATEGY_FIELDS}
    return {"strategy": strategy, **rest}


def normalize_plan_payload(data: Any) -> Any:
    """Reshape common drifts of small models into the ``HealPlan`` layout."""

    if isinstance(data, list):
        return normalize_plan_payload({"candidates": data})
    if not isinstance(data, dict):
        return data

    candidates = data.get("candidates")
    if isinstance(candidates, list):
        reshaped = []
        for item in candidates:
            if isinstance(item, dict) and "strategy" not in item and item.get("type"):
                item = _split_flat(item)
            reshaped.append(item)
        return {**data, "candidates": reshaped}

    if data.get("type") and ("confidence" in data or "why" in data):
        return {"candidates": [_split_flat(data)]}

    if "strategy" in data and isinstance(data["strategy"], dict):
        return {"candidates": [data]}

    for wrapper in _WRAPPER_KEYS:
        if wrapper in data:
            return normalize_plan_payload(data[wrapper])

    return data


def decode_plan(payload: str) -> HealPlan:
    """Parse raw model text into a ``HealPlan``, repairing it when needed."""

    cleaned = clean_json(payload)
    try:
        parsed = orjson.loads(cleaned)
    except orjson.JSONDecodeError as exc:
        raise ParsingError(f"Model response is not valid JSON ({len(payload)} chars)") from exc
    try:
        return HealPlan.model_validate(normalize_plan_payload(parsed))
    except ValidationError as exc:
        raise ParsingError(
            f"Model response does not match the heal plan schema ({exc.error_count()} validation errors)"
        ) from exc
