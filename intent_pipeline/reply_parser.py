"""
Model reply parsing.

Local models often wrap the requested JSON in prose, code fences or a
<think> block. We scan for balanced top-level JSON objects instead of
trusting the whole content, and refuse to choose when more than one object
parses.
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Union

from pydantic import ValidationError

from .actions import RawIntent, Rejection, RejectionKind


MAX_CONTENT_CHARS = 64_000
MAX_CANDIDATES = 16
MAX_RESCANS = 16

_THINK_BLOCK = re.compile(r"<think>[\s\S]*?</think>", re.IGNORECASE)


def _match_brace(text: str, start: int) -> int:
    """Index of the '}' closing the '{' at start, or -1 if it never closes."""
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
                return i
    return -1


def _balanced_spans(text: str) -> List[str]:
    """
    Return substrings that start with '{' at depth 0 and end at the matching '}'.

    String literals are tracked only inside an object, so quotes in the
    surrounding prose do not confuse the scan. A '{' that never closes (an
    emoticon, say) is skipped and the scan resumes right after it.
    """
    spans: List[str] = []
    rescans = 0
    start = text.find("{")

    while start != -1 and len(spans) < MAX_CANDIDATES:
        end = _match_brace(text, start)
        if end == -1:
            rescans += 1
            if rescans > MAX_RESCANS:
                break
            start = text.find("{", start + 1)
            continue
        spans.append(text[start:end + 1])
        start = text.find("{", end + 1)

    return spans


def extract_json_object(content: str) -> Union[Dict[str, Any], Rejection]:
    """Find the single JSON object embedded in a model reply."""
    text = _THINK_BLOCK.sub(" ", content or "")
    if len(text) > MAX_CONTENT_CHARS:
        return Rejection(RejectionKind.MALFORMED_REPLY, f"reply too long ({len(text)} chars)")

    candidates: List[Dict[str, Any]] = []
    for span in _balanced_spans(text):
        try:
            parsed = json.loads(span)
        except (json.JSONDecodeError, RecursionError):
            continue
        if isinstance(parsed, dict):
            candidates.append(parsed)

    if not candidates:
        return Rejection(RejectionKind.MALFORMED_REPLY, "no JSON object in reply")
    if len(candidates) > 1:
        return Rejection(RejectionKind.MALFORMED_REPLY, f"ambiguous reply: {len(candidates)} JSON objects")
    return candidates[0]


def parse_reply(content: str) -> Union[RawIntent, Rejection]:
    """Parse model content into a RawIntent, or explain why it is malformed."""
    obj = extract_json_object(content)
    if isinstance(obj, Rejection):
        return obj

    try:
        return RawIntent.model_validate(obj)
    except ValidationError as e:
        fields = ",".join(str(err["loc"][0]) for err in e.errors() if err.get("loc")) or "reply"
        return Rejection(RejectionKind.MALFORMED_REPLY, f"invalid fields: {fields}")
