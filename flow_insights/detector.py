"""Session-scoped real-time detection of repeated event sequences."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional

from .models import Event
from .signature import sequence_signature
from .utils import parse_timestamp, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class EventSummary:
    id: str
    type: str
    url: str
    dom_path: str
    timestamp: datetime


@dataclass(slots=True)
class DetectedPattern:
    signature: str
    sequence: List[EventSummary]
    occurrences: int
    first_seen: datetime
    last_seen: datetime
    confidence: float


@dataclass(slots=True)
class DetectorConfig:
    """Configuration for the detector ring buffer."""

    buffer_size: int = 50
    window_length: int = 3
    min_occurrences: int = 3


PatternListener = Callable[[DetectedPattern], None]


def summarize_event(event: Event | Mapping[str, Any]) -> EventSummary:
    if isinstance(event, Event):
        return EventSummary(
            id=event.id,
            type=event.type.value,
            url=event.url,
            dom_path=event.dom_path or "",
            timestamp=event.timestamp,
        )
    return EventSummary(
        id=str(event.get("id", "")),
        type=str(event["type"]),
        url=event.get("url") or "",
        dom_path=event.get("dom_path") or event.get("domPath") or event.get("element") or "",
        timestamp=_raw_timestamp(event),
    )


def _raw_timestamp(event: Mapping[str, Any]) -> datetime:
    value = event.get("timestamp", event.get("ts"))
    if value is None:
        return utcnow()
    return parse_timestamp(value)


class PatternDetector:
    """Maintains a rolling buffer and reports a sequence once it repeats.

    Each instance belongs to a single session and is driven from one thread;
    call ``reset`` when the session ends.
    """

    def __init__(
        self,
        config: DetectorConfig | None = None,
        *,
        listeners: List[PatternListener] | None = None,
    ) -> None:
        self.config = config or DetectorConfig()
        self._buffer: Deque[EventSummary] = deque(maxlen=self.config.buffer_size)
        self._detected: Dict[str, DetectedPattern] = {}
        self._listeners: List[PatternListener] = list(listeners or [])

    def subscribe(self, listener: PatternListener) -> None:
        self._listeners.append(listener)

    def add_event(self, event: Event | Mapping[str, Any]) -> DetectedPattern | None:
        """Buffer an event; return a pattern only the first time it is detected."""

        self._buffer.append(summarize_event(event))
        if len(self._buffer) < self.config.window_length:
            return None
        return self._detect()

    def _detect(self) -> DetectedPattern | None:
        length = self.config.window_length
        buffer = list(self._buffer)
        latest = buffer[-length:]
        key = sequence_signature(latest)
        matches = 0
        first_seen: datetime | None = None
        for start in range(len(buffer) - length + 1):
            candidate = buffer[start : start + length]
            if sequence_signature(candidate) != key:
                continue
            matches += 1
            if first_seen is None:
                first_seen = candidate[0].timestamp
        if matches < self.config.min_occurrences:
            return None

        confidence = self._confidence(matches, len(buffer))
        existing = self._detected.get(key)
        if existing is not None:
            existing.occurrences = matches
            existing.last_seen = latest[-1].timestamp
            existing.confidence = confidence
            return None

        pattern = DetectedPattern(
            signature=key,
            sequence=latest,
            occurrences=matches,
            first_seen=first_seen or latest[0].timestamp,
            last_seen=latest[-1].timestamp,
            confidence=confidence,
        )
        self._detected[key] = pattern
        # Listeners get a snapshot; later matches only update the tracked copy.
        emitted = replace(pattern, sequence=list(latest))
        logger.info(
            "Pattern detected: %s (occurrences=%d, confidence=%.2f)",
            " -> ".join(summary.type for summary in latest),
            matches,
            confidence,
        )
        for listener in self._listeners:
            listener(emitted)
        return emitted

    def _confidence(self, occurrences: int, buffer_len: int) -> float:
        frequency_score = min(occurrences / 10, 1.0)
        density_score = (occurrences * self.config.window_length) / buffer_len
        return min(round(frequency_score * 0.7 + density_score * 0.3, 2), 1.0)

    def detected_patterns(self) -> List[DetectedPattern]:
        return list(self._detected.values())

    def get(self, signature: str) -> DetectedPattern | None:
        return self._detected.get(signature)

    def buffer(self) -> List[EventSummary]:
        return list(self._buffer)

    def reset(self) -> None:
        self._buffer.clear()
        self._detected.clear()


class DetectorRegistry:
    """Owns one detector per live session."""

    def __init__(self, config: DetectorConfig | None = None) -> None:
        self.config = config or DetectorConfig()
        self._sessions: Dict[str, PatternDetector] = {}

    def detector(self, session_id: str) -> PatternDetector:
        detector = self._sessions.get(session_id)
        if detector is None:
            detector = PatternDetector(self.config)
            self._sessions[session_id] = detector
        return detector

    def observe(self, session_id: str, event: Event | Mapping[str, Any]) -> Optional[DetectedPattern]:
        return self.detector(session_id).add_event(event)

    def end_session(self, session_id: str) -> None:
        detector = self._sessions.pop(session_id, None)
        if detector is not None:
            detector.reset()

    def active_sessions(self) -> List[str]:
        return list(self._sessions)
