"""Frequency-based pattern mining over extracted event sequences."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from .config import InsightsConfig
from .extractor import extract_sequences
from .models import Event, EventSequence, Pattern
from .signature import sequence_signature
from .store import ActivityStore, PatternStoreError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class MiningResult:
    """Outcome of one mining run for a single user."""

    user_id: str
    patterns_found: int = 0
    patterns_stored: int = 0
    patterns: List[Pattern] = field(default_factory=list)
    message: str = ""
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(slots=True)
class _Bucket:
    events: List[Event]
    count: int
    first_seen: datetime
    last_seen: datetime


class _ConfidenceIndex:
    """Counts full-sequence and first-step occurrences over the raw stream."""

    def __init__(self, events: Sequence[Event]) -> None:
        self._events = list(events)
        self._type_counts = Counter(event.type for event in self._events)
        self._windows: Dict[int, Counter] = {}

    def _window_counts(self, length: int) -> Counter:
        counts = self._windows.get(length)
        if counts is None:
            counts = Counter(
                sequence_signature(self._events[start : start + length])
                for start in range(len(self._events) - length + 1)
            )
            self._windows[length] = counts
        return counts

    def confidence(self, sequence: Sequence[Event], signature: str) -> float:
        if not sequence:
            return 0.0
        first_count = self._type_counts.get(sequence[0].type, 0)
        if first_count == 0:
            return 0.0
        occurrences = self._window_counts(len(sequence)).get(signature, 0)
        return min(occurrences / first_count, 1.0)


class PatternMiner:
    """Mines recurring sequences for one user and upserts them."""

    def __init__(self, store: ActivityStore | None = None, config: InsightsConfig | None = None) -> None:
        self.store = store
        self.config = config or InsightsConfig()

    def mine(self, user_id: str, events: Sequence[Event]) -> List[Pattern]:
        """Return frequent patterns, most supported first, without storing them."""

        if len(events) < self.config.min_sequence_length:
            logger.info("Not enough events for pattern mining for %s (%d)", user_id, len(events))
            return []
        sequences = extract_sequences(
            events,
            min_length=self.config.min_sequence_length,
            max_length=self.config.max_sequence_length,
            max_gap_seconds=self.config.max_gap_seconds,
        )
        buckets = self._bucket(sequences)
        index = _ConfidenceIndex(events)
        patterns: List[Pattern] = []
        for signature, bucket in buckets.items():
            if bucket.count < self.config.min_support:
                continue
            patterns.append(
                Pattern(
                    id="",
                    user_id=user_id,
                    signature=signature,
                    sequence=list(bucket.events),
                    support=bucket.count,
                    confidence=round(index.confidence(bucket.events, signature), 3),
                    first_seen=bucket.first_seen,
                    last_seen=bucket.last_seen,
                )
            )
        patterns.sort(key=lambda pattern: pattern.support, reverse=True)
        logger.info(
            "Found %d frequency patterns for %s from %d candidate sequences",
            len(patterns),
            user_id,
            len(sequences),
        )
        return patterns

    def run(self, user_id: str, events: Sequence[Event]) -> MiningResult:
        """Mine and upsert; storage failures keep whatever was already stored."""

        result = MiningResult(user_id=user_id)
        if len(events) < self.config.min_sequence_length:
            result.message = f"Not enough events to mine patterns ({len(events)})"
            return result
        patterns = self.mine(user_id, events)
        result.patterns = patterns
        result.patterns_found = len(patterns)
        if not patterns:
            result.message = "No recurring sequences met the support threshold"
            return result
        if self.store is None:
            result.message = "Patterns mined without a store"
            return result
        try:
            result.patterns_stored = self.store.upsert_patterns(patterns)
        except PatternStoreError as exc:
            result.patterns_stored = exc.stored
            result.error = str(exc)
            logger.warning(
                "Stored %d of %d patterns for %s before failure",
                exc.stored,
                len(patterns),
                user_id,
            )
            return result
        result.message = f"Stored {result.patterns_stored} patterns"
        logger.info("Stored %d patterns for %s", result.patterns_stored, user_id)
        return result

    @staticmethod
    def _bucket(sequences: Sequence[EventSequence]) -> Dict[str, _Bucket]:
        buckets: Dict[str, _Bucket] = {}
        for sequence in sequences:
            start = sequence.events[0].timestamp
            end = sequence.events[-1].timestamp
            bucket = buckets.get(sequence.signature)
            if bucket is None:
                buckets[sequence.signature] = _Bucket(
                    events=sequence.events,
                    count=1,
                    first_seen=start,
                    last_seen=end,
                )
                continue
            bucket.count += 1
            bucket.first_seen = min(bucket.first_seen, start)
            bucket.last_seen = max(bucket.last_seen, end)
        return buckets
