"""Relationships between a user's stored patterns."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import numpy as np

from .models import Connection, ConnectionEvidence, ConnectionType, Pattern
from .store import ActivityStore

logger = logging.getLogger(__name__)

# Fraction of the smaller support assumed to co-occur.
OVERLAP_ESTIMATE = 0.7


@dataclass(slots=True)
class TimeProximity:
    gap_seconds: float
    occurrences: int


@dataclass(slots=True)
class CompositeWorkflow:
    category: str
    patterns: List[Pattern]
    description: str
    frequency: int


def analyze_time_proximity(first: Pattern, second: Pattern) -> TimeProximity:
    gap = abs((second.first_seen - first.last_seen).total_seconds())
    occurrences = math.floor(min(first.support, second.support) * OVERLAP_ESTIMATE)
    return TimeProximity(gap_seconds=gap, occurrences=occurrences)


def describe_pattern(pattern: Pattern) -> str:
    if pattern.inferred_goal:
        return pattern.inferred_goal
    if not pattern.sequence:
        return "Unknown workflow"
    kinds: List[str] = []
    for event in pattern.sequence:
        if event.type.value not in kinds:
            kinds.append(event.type.value)
    if len(kinds) == 1:
        return f"{kinds[0]} workflow"
    return f"{' -> '.join(kinds[:3])} workflow"


def find_sequential_patterns(patterns: Sequence[Pattern], *, max_gap_seconds: float = 300.0) -> List[Connection]:
    connections: List[Connection] = []
    for i, first in enumerate(patterns):
        for second in patterns[i + 1 :]:
            proximity = analyze_time_proximity(first, second)
            if proximity.gap_seconds >= max_gap_seconds or proximity.occurrences < 3:
                continue
            connections.append(
                Connection(
                    type=ConnectionType.SEQUENTIAL,
                    patterns=[first.id, second.id],
                    relationship=(
                        f'"{describe_pattern(first)}" is typically followed by '
                        f'"{describe_pattern(second)}"'
                    ),
                    confidence=min(proximity.occurrences / first.support, 1.0),
                    always_in_order=proximity.occurrences >= first.support * 0.8,
                    evidence=ConnectionEvidence(
                        co_occurrence_count=proximity.occurrences,
                        time_proximity_avg=proximity.gap_seconds,
                    ),
                )
            )
    return connections


def find_trigger_patterns(patterns: Sequence[Pattern], *, min_probability: float = 0.6) -> List[Connection]:
    connections: List[Connection] = []
    for i, trigger in enumerate(patterns):
        for response in patterns[i + 1 :]:
            proximity = analyze_time_proximity(trigger, response)
            probability = proximity.occurrences / trigger.support if trigger.support else 0.0
            if probability < min_probability or proximity.occurrences < 3:
                continue
            connections.append(
                Connection(
                    type=ConnectionType.TRIGGER,
                    patterns=[trigger.id, response.id],
                    relationship=(
                        f'"{describe_pattern(trigger)}" triggers "{describe_pattern(response)}" '
                        f"{probability * 100:.0f}% of the time"
                    ),
                    confidence=probability,
                    trigger_probability=probability,
                    evidence=ConnectionEvidence(
                        co_occurrence_count=proximity.occurrences,
                        time_proximity_avg=proximity.gap_seconds,
                    ),
                )
            )
    return connections


def find_parallel_approaches(patterns: Sequence[Pattern]) -> List[Connection]:
    """Pair the most consistent pattern for each goal with its alternatives."""

    groups: Dict[str, List[Pattern]] = {}
    for pattern in patterns:
        if pattern.inferred_goal:
            groups.setdefault(pattern.inferred_goal.lower(), []).append(pattern)

    connections: List[Connection] = []
    for goal, members in groups.items():
        if len(members) < 2:
            continue
        ranked = sorted(members, key=lambda item: item.confidence * item.support, reverse=True)
        preferred = ranked[0]
        for alternative in ranked[1:]:
            connections.append(
                Connection(
                    type=ConnectionType.PARALLEL,
                    patterns=[preferred.id, alternative.id],
                    relationship=f'Both achieve "{goal}" but through different methods',
                    confidence=0.8,
                    preferred_pattern=preferred.id,
                    evidence=ConnectionEvidence(co_occurrence_count=0, time_proximity_avg=0.0),
                )
            )
    return connections


def find_composite_workflows(patterns: Sequence[Pattern]) -> List[CompositeWorkflow]:
    groups: Dict[str, List[Pattern]] = {}
    for pattern in patterns:
        groups.setdefault(pattern.goal_category or "unknown", []).append(pattern)
    composites: List[CompositeWorkflow] = []
    for category, members in groups.items():
        if len(members) < 2:
            continue
        average = float(np.mean([member.support for member in members]))
        composites.append(
            CompositeWorkflow(
                category=category,
                patterns=members,
                description=f"{category} workflow with {len(members)} related patterns",
                frequency=math.floor(average),
            )
        )
    return composites


class ConnectionDetector:
    """Loads recent well-supported patterns and relates them pairwise."""

    def __init__(
        self,
        store: ActivityStore,
        *,
        min_support: int = 3,
        pattern_limit: int = 100,
    ) -> None:
        self.store = store
        self.min_support = min_support
        self.pattern_limit = pattern_limit

    def load_patterns(self, user_id: str) -> List[Pattern]:
        return self.store.fetch_patterns(
            user_id,
            min_support=self.min_support,
            limit=self.pattern_limit,
            order_by="recent",
        )

    def detect(self, user_id: str, patterns: Optional[Sequence[Pattern]] = None) -> List[Connection]:
        if patterns is None:
            patterns = self.load_patterns(user_id)
        if len(patterns) < 2:
            logger.info("Not enough patterns to detect connections for %s", user_id)
            return []
        connections = (
            find_sequential_patterns(patterns)
            + find_trigger_patterns(patterns)
            + find_parallel_approaches(patterns)
        )
        logger.info("Found %d connections between patterns for %s", len(connections), user_id)
        return connections

    def composites(self, user_id: str) -> List[CompositeWorkflow]:
        return find_composite_workflows(self.load_patterns(user_id))
