"""Runtime configuration for Flow Insights."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Optional

DEFAULT_IGNORED_DOMAINS = [
    "localhost",
    "127.0.0.1",
    "0.0.0.0",
    "localhost:3000",
    "localhost:3001",
    "localhost:3002",
    "localhost:8080",
]


@dataclass(slots=True)
class InsightsConfig:
    """Thresholds and resource settings shared by the mining pipeline."""

    db_path: str = ":memory:"
    lookback_days: int = 7
    event_limit: int = 10000
    ignored_domains: List[str] = field(default_factory=lambda: list(DEFAULT_IGNORED_DOMAINS))

    # Batch mining
    min_support: int = 3
    min_sequence_length: int = 3
    max_sequence_length: int = 5
    max_gap_seconds: float = 300.0

    # Real-time detection
    buffer_size: int = 50
    window_length: int = 3
    min_occurrences: int = 3

    # Insight synthesis
    friction_threshold: float = 0.6
    enrichment_limit: int = 100
    insight_pattern_limit: int = 50

    # Connections
    connection_min_support: int = 3
    connection_pattern_limit: int = 100

    # Goal inference collaborator
    goal_api_key: Optional[str] = None
    goal_model: str = "gpt-4o-mini"
    goal_endpoint: str = "https://api.openai.com/v1/chat/completions"
    goal_timeout: float = 10.0

    @classmethod
    def from_env(cls) -> "InsightsConfig":
        config = cls()
        config.db_path = os.getenv("FLOW_INSIGHTS_DB", config.db_path)
        config.lookback_days = _env_int("FLOW_INSIGHTS_LOOKBACK_DAYS", config.lookback_days)
        config.event_limit = _env_int("FLOW_INSIGHTS_EVENT_LIMIT", config.event_limit)
        config.min_support = _env_int("FLOW_INSIGHTS_MIN_SUPPORT", config.min_support)
        config.max_gap_seconds = _env_float("FLOW_INSIGHTS_MAX_GAP_SECONDS", config.max_gap_seconds)
        config.buffer_size = _env_int("FLOW_INSIGHTS_BUFFER_SIZE", config.buffer_size)
        config.min_occurrences = _env_int("FLOW_INSIGHTS_MIN_OCCURRENCES", config.min_occurrences)
        config.friction_threshold = _env_float(
            "FLOW_INSIGHTS_FRICTION_THRESHOLD", config.friction_threshold
        )
        ignored = os.getenv("FLOW_INSIGHTS_IGNORED_DOMAINS")
        if ignored is not None:
            config.ignored_domains = [item.strip() for item in ignored.split(",") if item.strip()]
        config.goal_api_key = os.getenv("OPENAI_API_KEY") or None
        config.goal_model = os.getenv("FLOW_INSIGHTS_GOAL_MODEL", config.goal_model)
        config.goal_timeout = _env_float("FLOW_INSIGHTS_GOAL_TIMEOUT", config.goal_timeout)
        return config


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc
