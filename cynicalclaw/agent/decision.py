"""Structured-output parsing for model replies.

Models are asked to answer in JSON but often wrap it in prose or code fences.
``parse_decision`` parses the object opened by the first ``{``:

    parse_decision('Sure! {"action": "respond"} hope that helps')
    → Structured(fields={"action": "respond"})

    parse_decision("I refuse to speak JSON")
    → Raw(text="I refuse to speak JSON")

No network, no side effects; the loop and the tool router decide what a
``Raw`` means for them.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Optional, Union


@dataclass(frozen=True)
class Structured:
    """A reply that contained a parseable JSON object."""

    fields: dict[str, Any] = field(default_factory=dict)
    text: str = ""

    def get(self, key: str, default: Any = None) -> Any:
        return self.fields.get(key, default)


@dataclass(frozen=True)
class Raw:
    """A reply with no usable JSON object."""

    text: str


Decision = Union[Structured, Raw]


def _balanced_end(text: str, start: int) -> Optional[int]:
    """Index just past the brace that closes ``text[start]``, or None."""
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
                return i + 1
    return None


def extract_json_block(text: str) -> Optional[str]:
    """Return the region opened by the first ``{``, or None if it never closes.

    A truncated outer object yields None rather than one of its nested values.
    """
    start = text.find("{")
    if start == -1:
        return None
    end = _balanced_end(text, start)
    return text[start:end] if end is not None else None


def parse_decision(text: str) -> Decision:
    """Parse a model reply into ``Structured`` or fall back to ``Raw``."""
    block = extract_json_block(text or "")
    if block is None:
        return Raw(text)
    try:
        parsed = json.loads(block)
    except (json.JSONDecodeError, ValueError):
        return Raw(text)
    if not isinstance(parsed, dict):
        return Raw(text)
    return Structured(fields=parsed, text=text)
