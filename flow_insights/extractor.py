"""Candidate sequence extraction from a user's event stream."""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import timedelta
from typing import Dict, List, Sequence

from .models import Event, EventSequence
from .signature import sequence_signature
from .utils import extract_domain

logger = logging.getLogger(__name__)


def group_events_by_domain(events: Sequence[Event]) -> Dict[str, List[Event]]:
    """Bucket events by URL hostname, preserving order within each bucket."""

    grouped: Dict[str, List[Event]] = defaultdict(list)
    skipped = 0
    for event in events:
        domain = extract_domain(event.url)
        if domain is None:
            skipped += 1
            continue
        grouped[domain].append(event)
    if skipped:
        logger.debug("Skipped %d events with unparsable URLs during grouping", skipped)
    return dict(grouped)


def is_temporally_contiguous(events: Sequence[Event], *, max_gap_seconds: float = 300.0) -> bool:
    max_gap = timedelta(seconds=max_gap_seconds)
    for previous, current in zip(events, events[1:]):
        if current.timestamp - previous.timestamp > max_gap:
            return False
    return True


def extract_sequences(
    events: Sequence[Event],
    *,
    min_length: int = 3,
    max_length: int = 5,
    max_gap_seconds: float = 300.0,
) -> List[EventSequence]:
    """Slide windows of every allowed length over each domain's events."""

    if len(events) < min_length:
        return []
    sequences: List[EventSequence] = []
    for domain, domain_events in group_events_by_domain(events).items():
        for length in range(min_length, max_length + 1):
            for start in range(len(domain_events) - length + 1):
                window = domain_events[start : start + length]
                if not is_temporally_contiguous(window, max_gap_seconds=max_gap_seconds):
                    continue
                sequences.append(
                    EventSequence(
                        events=window,
                        domain=domain,
                        signature=sequence_signature(window),
                    )
                )
    return sequences
