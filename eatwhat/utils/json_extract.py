"""Locate JSON objects inside messy model output.

Models wrap JSON in prose, markdown fences or provider envelopes. The scanner
below is string-aware so braces inside quoted values never unbalance it.
"""

from __future__ import annotations

import json
from typing import Any, Iterable, List, Mapping, Sequence

_TEXT_KEYS = ("output_text", "text", "content")


def extract_json_candidates(text: str) -> List[str]:
    """Return every balanced top-level ``{...}`` substring of ``text``."""
    candidates: List[str] = []
    length = len(text)
    i = 0
    while i < length:
        if text[i] != "{":
            i += 1
            continue
        depth = 0
        in_string = False
        escaped = False
        end = -1
        for j in range(i, length):
            ch = text[j]
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
                    end = j
                    break
        if end < 0:
            # unbalanced from here; a later brace may still open a full object
            i += 1
            continue
        candidates.append(text[i:end + 1])
        i = end + 1
    return candidates


def collect_text_fields(payload: Any) -> List[str]:
    """Recursively collect non-empty string fields from a provider payload."""
    bucket: List[str] = []
    _collect(payload, bucket)
    return bucket


def _collect(value: Any, bucket: List[str]) -> None:
    if isinstance(value, str):
        text = value.strip()
        if text:
            bucket.append(text)
        return
    if isinstance(value, Mapping):
        for key, item in value.items():
            if key in _TEXT_KEYS or isinstance(item, (Mapping, list, tuple)):
                _collect(item, bucket)
        return
    if isinstance(value, (list, tuple)):
        for item in value:
            _collect(item, bucket)
        return
    # LangChain messages and pydantic responses
    content = getattr(value, "content", None)
    if content is not None:
        _collect(content, bucket)
    dump = getattr(value, "model_dump", None)
    if callable(dump):
        try:
            dumped = dump()
        except (TypeError, ValueError):
            return
        if isinstance(dumped, Mapping):
            _collect({k: v for k, v in dumped.items() if k != "content"}, bucket)


def _snippets(texts: Iterable[str]) -> Iterable[str]:
    for text in texts:
        trimmed = text.strip()
        yield trimmed
        yield from extract_json_candidates(trimmed)


def parse_json_payload(payload: Any, expected_keys: Sequence[str] = ()) -> dict:
    """First JSON object in ``payload`` whose top-level keys overlap ``expected_keys``.

    Raises:
        ValueError: when no candidate qualifies.
    """
    texts = [payload] if isinstance(payload, str) else collect_text_fields(payload)
    wanted = set(expected_keys)
    for snippet in _snippets(texts):
        try:
            parsed = json.loads(snippet)
        except (json.JSONDecodeError, TypeError):
            continue
        if not isinstance(parsed, dict):
            continue
        if not wanted or wanted.intersection(parsed):
            return parsed
    raise ValueError("Unable to parse target JSON object from model response")
