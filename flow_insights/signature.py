"""Canonical signatures for event sequences.

Two occurrences of the same workflow rarely share exact DOM locators: list
items carry different indices and elements carry generated ids. Signatures
keep the event type and the structural shape of the locator so that such
occurrences collapse into one bucket. Batch mining and the real-time detector
both key on these signatures.
"""

from __future__ import annotations

import re
from typing import Any, Iterable

SEPARATOR = "|"

_INDEX = re.compile(r"\[\d+\]")
_ID = re.compile(r"#[^\s.>\[]+")
_CLASSES = re.compile(r"(\.[^\s.>\[]+)+")


def normalize_dom_path(path: str | None) -> str:
    """Strip volatile locator parts while keeping tag and class shape."""

    if not path:
        return ""
    normalized = _INDEX.sub("[]", path)
    normalized = _ID.sub("", normalized)
    return _CLASSES.sub(".class", normalized)


def event_token(event_type: object, dom_path: str | None) -> str:
    type_name = getattr(event_type, "value", event_type)
    return f"{type_name}:{normalize_dom_path(dom_path)}"


def sequence_signature(events: Iterable[Any]) -> str:
    """Join ``type:normalizedPath`` tokens into one deterministic key."""

    return SEPARATOR.join(event_token(event.type, event.dom_path) for event in events)
