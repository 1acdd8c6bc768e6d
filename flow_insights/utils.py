"""Utilities supporting Flow Insights modules."""

from __future__ import annotations

import json
import random
import string
from datetime import datetime, timezone
from typing import Any, Iterable, Optional
from urllib.parse import urlsplit


_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_id(prefix: str, *, size: int = 8) -> str:
    """Generate a short unique identifier with a readable prefix."""

    suffix = "".join(random.choice(_ID_ALPHABET) for _ in range(size))
    return f"{prefix}_{suffix}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """Coerce epoch seconds/milliseconds, ISO strings or datetimes to aware UTC."""

    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, (int, float)):
        # Capture layers report milliseconds; anything that large is not seconds.
        seconds = value / 1000 if value > 1e11 else value
        ts = datetime.fromtimestamp(seconds, tz=timezone.utc)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        ts = datetime.fromisoformat(text)
    else:
        raise ValueError(f"Unsupported timestamp value: {value!r}")
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def extract_domain(url: str) -> Optional[str]:
    """Return the URL hostname, or None when the URL cannot be parsed."""

    if not url:
        return None
    try:
        hostname = urlsplit(url).hostname
    except ValueError:
        return None
    return hostname or None


def display_domain(url: str) -> Optional[str]:
    domain = extract_domain(url)
    if domain and domain.startswith("www."):
        return domain[4:]
    return domain


def should_ignore_domain(url: str, ignored: Iterable[str]) -> bool:
    """Match a URL against an ignore-list of hostnames or host:port entries."""

    try:
        parts = urlsplit(url)
        hostname = parts.hostname
        host_with_port = parts.netloc.rsplit("@", 1)[-1]
    except ValueError:
        return False
    if not hostname:
        return False
    return any(
        hostname == entry or host_with_port == entry or entry in hostname
        for entry in ignored
    )


def serialize_json(value: Any) -> str:
    """Serialize a JSON-compatible value for persistence."""

    return json.dumps(value, ensure_ascii=True, default=_json_default)


def deserialize_json(serialized: str | None, default: Any = None) -> Any:
    """Read a value stored as JSON text."""

    if serialized is None or serialized == "":
        return default
    return json.loads(serialized)


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")
