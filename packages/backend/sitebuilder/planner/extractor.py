"""Structured-output extraction from free-form model text.

Strategies run in a fixed order and the first one that yields valid JSON
wins:

1. fenced code block (```json ... ```)
2. brace-depth scan that tracks string state, so braces inside quoted
   values do not change the depth
3. greedy ``{...}`` regex
4. greedy ``[...]`` regex

The result is a tagged value; callers branch on ``ok`` instead of catching
exceptions.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple

_FENCED_RE = re.compile(r"```(?:json|JSON)?\s*\n?(.*?)```", re.DOTALL)
_GREEDY_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)
_GREEDY_ARRAY_RE = re.compile(r"\[.*\]", re.DOTALL)

FENCED = "fenced"
BRACE_SCAN = "brace_scan"
GREEDY_OBJECT = "greedy_object"
GREEDY_ARRAY = "greedy_array"


@dataclass(frozen=True)
class ExtractionResult:
    ok: bool
    value: Any = None
    strategy: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, value: Any, strategy: str) -> "ExtractionResult":
        return cls(ok=True, value=value, strategy=strategy)

    @classmethod
    def failure(cls, error: str) -> "ExtractionResult":
        return cls(ok=False, error=error)


def _loads(candidate: Optional[str]) -> Tuple[bool, Any]:
    if not candidate:
        return False, None
    try:
        return True, json.loads(candidate)
    except (json.JSONDecodeError, ValueError):
        return False, None


def _fenced_candidates(text: str) -> List[str]:
    return [match.group(1).strip() for match in _FENCED_RE.finditer(text)]


def scan_balanced_objects(text: str) -> List[str]:
    """Return top-level ``{...}`` spans, ignoring braces inside JSON strings."""
    spans: List[str] = []
    depth = 0
    start = -1
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
            continue
        if char == '"':
            # Quotes outside an object are prose, not JSON strings.
            if depth > 0:
                in_string = True
            continue
        if char == "{":
            if depth == 0:
                start = index
            depth += 1
        elif char == "}" and depth > 0:
            depth -= 1
            if depth == 0 and start >= 0:
                spans.append(text[start : index + 1])
                start = -1
    return spans


def _from_fenced(text: str) -> Tuple[bool, Any]:
    for candidate in _fenced_candidates(text):
        ok, value = _loads(candidate)
        if ok and isinstance(value, (dict, list)):
            return True, value
    return False, None


def _from_brace_scan(text: str) -> Tuple[bool, Any]:
    for candidate in scan_balanced_objects(text):
        ok, value = _loads(candidate)
        if ok and isinstance(value, dict):
            return True, value
    return False, None


def _from_regex(pattern: re.Pattern[str]) -> Callable[[str], Tuple[bool, Any]]:
    def _extract(text: str) -> Tuple[bool, Any]:
        match = pattern.search(text)
        if match is None:
            return False, None
        return _loads(match.group(0))

    return _extract


_STRATEGIES: Tuple[Tuple[str, Callable[[str], Tuple[bool, Any]]], ...] = (
    (FENCED, _from_fenced),
    (BRACE_SCAN, _from_brace_scan),
    (GREEDY_OBJECT, _from_regex(_GREEDY_OBJECT_RE)),
    (GREEDY_ARRAY, _from_regex(_GREEDY_ARRAY_RE)),
)


def extract_structured(text: object) -> ExtractionResult:
    if not isinstance(text, str):
        return ExtractionResult.failure(f"expected text, got {type(text).__name__}")
    if not text.strip():
        return ExtractionResult.failure("empty response")
    for name, strategy in _STRATEGIES:
        ok, value = strategy(text)
        if ok:
            return ExtractionResult.success(value, name)
    return ExtractionResult.failure("no parseable JSON found")


__all__ = [
    "ExtractionResult",
    "extract_structured",
    "scan_balanced_objects",
    "FENCED",
    "BRACE_SCAN",
    "GREEDY_OBJECT",
    "GREEDY_ARRAY",
]
