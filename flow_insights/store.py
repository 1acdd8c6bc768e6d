"""SQLite-backed storage for events, patterns, insights and friction scores."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import closing
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from .models import (
    Event,
    Evidence,
    ImpactLevel,
    InferredGoal,
    InsightStatus,
    InsightType,
    InteractionQuality,
    Pattern,
    WorkflowInsight,
    event_from_dict,
    event_to_dict,
    semantic_to_dict,
)
from .utils import (
    deserialize_json,
    display_domain,
    generate_id,
    serialize_json,
    should_ignore_domain,
    utcnow,
)

logger = logging.getLogger(__name__)


class InvalidStatusError(ValueError):
    """Raised when insight feedback carries an unknown status."""


class PatternStoreError(RuntimeError):
    """Raised when a pattern upsert fails part way through a batch."""

    def __init__(self, message: str, *, stored: int) -> None:
        super().__init__(message)
        self.stored = stored


def _to_epoch(value: datetime) -> float:
    return value.timestamp()


def _from_epoch(value: float | None) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def validate_status(status: str | InsightStatus) -> InsightStatus:
    try:
        return InsightStatus(status)
    except ValueError as exc:
        valid = ", ".join(item.value for item in InsightStatus)
        raise InvalidStatusError(f"Invalid status {status!r}; expected one of: {valid}") from exc


class ActivityStore:
    """Persist interaction events and everything mined from them."""

    def __init__(self, db_path: str | Path = ":memory:") -> None:
        self.db_path = str(db_path)
        self.conn = sqlite3.connect(self.db_path)
        self.conn.row_factory = sqlite3.Row
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        with closing(self.conn.cursor()) as cur:
            cur.executescript(
                """
                CREATE TABLE IF NOT EXISTS events (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    ts REAL NOT NULL,
                    type TEXT NOT NULL,
                    url TEXT NOT NULL,
                    domain TEXT,
                    dom_path TEXT,
                    text TEXT,
                    title TEXT,
                    metadata TEXT NOT NULL,
                    dwell_ms INTEGER,
                    semantic_context TEXT
                );
                CREATE INDEX IF NOT EXISTS idx_events_user_ts ON events(user_id, ts);
                CREATE INDEX IF NOT EXISTS idx_events_domain ON events(user_id, domain);

                CREATE TABLE IF NOT EXISTS patterns (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    signature TEXT NOT NULL,
                    sequence TEXT NOT NULL,
                    support INTEGER NOT NULL,
                    confidence REAL NOT NULL,
                    first_seen REAL NOT NULL,
                    last_seen REAL NOT NULL,
                    inferred_goal TEXT,
                    goal_category TEXT,
                    goal_confidence REAL,
                    goal_reasoning TEXT,
                    automation_potential REAL,
                    UNIQUE(user_id, signature)
                );

                CREATE TABLE IF NOT EXISTS workflow_insights (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    pattern_id TEXT NOT NULL,
                    insight_type TEXT NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL,
                    recommendation TEXT NOT NULL,
                    impact_score REAL NOT NULL,
                    impact_level TEXT NOT NULL,
                    confidence REAL NOT NULL,
                    evidence TEXT NOT NULL,
                    time_saved_estimate REAL,
                    effort_saved_estimate INTEGER,
                    status TEXT NOT NULL DEFAULT 'new',
                    created_at REAL NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_insights_user ON workflow_insights(user_id, created_at);

                CREATE TABLE IF NOT EXISTS interaction_quality (
                    event_id TEXT PRIMARY KEY,
                    user_id TEXT,
                    friction_score REAL,
                    friction_types TEXT NOT NULL DEFAULT '[]'
                );
                """
            )
            self.conn.commit()

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def add_events(self, events: Iterable[Event]) -> int:
        rows = [
            (
                event.id,
                event.user_id,
                _to_epoch(event.timestamp),
                event.type.value,
                event.url,
                display_domain(event.url),
                event.dom_path,
                event.text,
                event.title,
                serialize_json(event_to_dict(event)["metadata"]),
                event.dwell_ms,
                serialize_json(semantic_to_dict(event.semantic)) if event.semantic else None,
            )
            for event in events
        ]
        with closing(self.conn.cursor()) as cur:
            cur.executemany(
                """
                INSERT OR REPLACE INTO events (
                    id, user_id, ts, type, url, domain, dom_path, text, title,
                    metadata, dwell_ms, semantic_context
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                rows,
            )
            self.conn.commit()
        return len(rows)

    def fetch_events(
        self,
        user_id: str,
        since: datetime,
        *,
        ignored_domains: Sequence[str] = (),
        limit: int = 10000,
    ) -> List[Event]:
        """Return the user's events since ``since`` in timestamp order."""

        with closing(self.conn.cursor()) as cur:
            cur.execute(
                "SELECT * FROM events WHERE user_id = ? AND ts >= ? ORDER BY ts ASC LIMIT ?",
                (user_id, _to_epoch(since), limit),
            )
            rows = cur.fetchall()
        events = [self._row_to_event(row) for row in rows]
        filtered = [event for event in events if not should_ignore_domain(event.url, ignored_domains)]
        logger.debug(
            "Fetched %d events for %s, %d after filtering ignored domains",
            len(events),
            user_id,
            len(filtered),
        )
        return filtered

    def fetch_events_by_ids(self, event_ids: Sequence[str], *, require_semantic: bool = True) -> List[Event]:
        if not event_ids:
            return []
        placeholders = ", ".join("?" for _ in event_ids)
        query = f"SELECT * FROM events WHERE id IN ({placeholders})"
        if require_semantic:
            query += " AND semantic_context IS NOT NULL"
        query += " ORDER BY ts ASC"
        with closing(self.conn.cursor()) as cur:
            cur.execute(query, tuple(event_ids))
            rows = cur.fetchall()
        return [self._row_to_event(row) for row in rows]

    def fetch_semantic_events_by_domains(
        self, user_id: str, domains: Sequence[str], *, limit: int = 100
    ) -> List[Event]:
        if not domains:
            return []
        placeholders = ", ".join("?" for _ in domains)
        with closing(self.conn.cursor()) as cur:
            cur.execute(
                f"""
                SELECT * FROM events
                WHERE user_id = ? AND domain IN ({placeholders})
                  AND semantic_context IS NOT NULL
                ORDER BY ts DESC LIMIT ?
                """,
                (user_id, *domains, limit),
            )
            rows = cur.fetchall()
        return [self._row_to_event(row) for row in rows]

    def list_users(self, since: datetime) -> List[str]:
        with closing(self.conn.cursor()) as cur:
            cur.execute(
                "SELECT DISTINCT user_id FROM events WHERE ts >= ? ORDER BY user_id",
                (_to_epoch(since),),
            )
            return [row["user_id"] for row in cur.fetchall()]

    @staticmethod
    def _row_to_event(row: sqlite3.Row) -> Event:
        return event_from_dict(
            {
                "id": row["id"],
                "user_id": row["user_id"],
                "timestamp": _from_epoch(row["ts"]),
                "type": row["type"],
                "url": row["url"],
                "dom_path": row["dom_path"],
                "text": row["text"],
                "title": row["title"],
                "metadata": deserialize_json(row["metadata"], {}),
                "dwell_ms": row["dwell_ms"],
                "semantic": deserialize_json(row["semantic_context"]),
            }
        )

    # ------------------------------------------------------------------
    # Patterns
    # ------------------------------------------------------------------

    def upsert_pattern(self, pattern: Pattern) -> Pattern:
        """Insert or merge a pattern keyed by ``(user_id, signature)``.

        Support never decreases for an existing signature; confidence and
        last_seen follow the latest mining run.
        """

        payload = (
            pattern.id or generate_id("pat"),
            pattern.user_id,
            pattern.signature,
            serialize_json([event_to_dict(event) for event in pattern.sequence]),
            pattern.support,
            pattern.confidence,
            _to_epoch(pattern.first_seen),
            _to_epoch(pattern.last_seen),
        )
        with closing(self.conn.cursor()) as cur:
            cur.execute(
                """
                INSERT INTO patterns (
                    id, user_id, signature, sequence, support, confidence, first_seen, last_seen
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id, signature) DO UPDATE SET
                    support=MAX(patterns.support, excluded.support),
                    confidence=excluded.confidence,
                    first_seen=MIN(patterns.first_seen, excluded.first_seen),
                    last_seen=MAX(patterns.last_seen, excluded.last_seen)
                """,
                payload,
            )
            self.conn.commit()
            cur.execute(
                "SELECT * FROM patterns WHERE user_id = ? AND signature = ?",
                (pattern.user_id, pattern.signature),
            )
            row = cur.fetchone()
        return self._row_to_pattern(row)

    def upsert_patterns(self, patterns: Iterable[Pattern]) -> int:
        """Store patterns one by one, reporting partial success on failure."""

        stored = 0
        for pattern in patterns:
            try:
                self.upsert_pattern(pattern)
            except sqlite3.Error as exc:
                logger.error("Error storing pattern %s: %s", pattern.signature, exc)
                raise PatternStoreError(f"Failed to store pattern: {exc}", stored=stored) from exc
            stored += 1
        return stored

    def fetch_patterns(
        self,
        user_id: str,
        *,
        min_support: int = 1,
        limit: int = 50,
        order_by: str = "support",
    ) -> List[Pattern]:
        order = {
            "support": "support DESC, last_seen DESC",
            "recent": "last_seen DESC",
        }.get(order_by)
        if order is None:
            raise ValueError(f"Unsupported pattern ordering: {order_by}")
        with closing(self.conn.cursor()) as cur:
            cur.execute(
                f"SELECT * FROM patterns WHERE user_id = ? AND support >= ? ORDER BY {order} LIMIT ?",
                (user_id, min_support, limit),
            )
            rows = cur.fetchall()
        return [self._row_to_pattern(row) for row in rows]

    def fetch_pattern(self, pattern_id: str) -> Pattern | None:
        with closing(self.conn.cursor()) as cur:
            cur.execute("SELECT * FROM patterns WHERE id = ?", (pattern_id,))
            row = cur.fetchone()
        if not row:
            return None
        return self._row_to_pattern(row)

    def count_patterns(self, user_id: str) -> int:
        with closing(self.conn.cursor()) as cur:
            cur.execute("SELECT COUNT(*) AS total FROM patterns WHERE user_id = ?", (user_id,))
            return int(cur.fetchone()["total"])

    def update_pattern_goal(self, pattern_id: str, goal: InferredGoal) -> None:
        with closing(self.conn.cursor()) as cur:
            cur.execute(
                """
                UPDATE patterns SET
                    inferred_goal = ?, goal_category = ?, goal_confidence = ?,
                    goal_reasoning = ?, automation_potential = ?
                WHERE id = ?
                """,
                (
                    goal.goal,
                    goal.goal_category,
                    goal.confidence,
                    goal.reasoning,
                    goal.automation_potential,
                    pattern_id,
                ),
            )
            self.conn.commit()

    @staticmethod
    def _row_to_pattern(row: sqlite3.Row) -> Pattern:
        return Pattern(
            id=row["id"],
            user_id=row["user_id"],
            signature=row["signature"],
            sequence=[event_from_dict(item) for item in deserialize_json(row["sequence"], [])],
            support=row["support"],
            confidence=row["confidence"],
            first_seen=_from_epoch(row["first_seen"]),
            last_seen=_from_epoch(row["last_seen"]),
            inferred_goal=row["inferred_goal"],
            goal_category=row["goal_category"],
            goal_confidence=row["goal_confidence"],
            goal_reasoning=row["goal_reasoning"],
            automation_potential=row["automation_potential"],
        )

    # ------------------------------------------------------------------
    # Insights
    # ------------------------------------------------------------------

    def insert_insights(self, insights: Iterable[WorkflowInsight]) -> List[WorkflowInsight]:
        stored: List[WorkflowInsight] = []
        with closing(self.conn.cursor()) as cur:
            for insight in insights:
                if insight.created_at is None:
                    insight.created_at = utcnow()
                cur.execute(
                    """
                    INSERT INTO workflow_insights (
                        id, user_id, pattern_id, insight_type, title, description,
                        recommendation, impact_score, impact_level, confidence, evidence,
                        time_saved_estimate, effort_saved_estimate, status, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        insight.id,
                        insight.user_id,
                        insight.pattern_id,
                        insight.insight_type.value,
                        insight.title,
                        insight.description,
                        insight.recommendation,
                        insight.impact_score,
                        insight.impact_level.value,
                        insight.confidence,
                        serialize_json(_evidence_to_dict(insight.evidence)),
                        insight.time_saved_estimate,
                        insight.effort_saved_estimate,
                        insight.status.value,
                        _to_epoch(insight.created_at),
                    ),
                )
                stored.append(insight)
            self.conn.commit()
        return stored

    def fetch_insights(self, user_id: str, *, status: str | InsightStatus | None = None) -> List[WorkflowInsight]:
        query = "SELECT * FROM workflow_insights WHERE user_id = ?"
        params: list = [user_id]
        if status is not None:
            query += " AND status = ?"
            params.append(validate_status(status).value)
        query += " ORDER BY impact_score DESC, created_at DESC"
        with closing(self.conn.cursor()) as cur:
            cur.execute(query, params)
            rows = cur.fetchall()
        return [self._row_to_insight(row) for row in rows]

    def fetch_insight(self, insight_id: str) -> WorkflowInsight | None:
        with closing(self.conn.cursor()) as cur:
            cur.execute("SELECT * FROM workflow_insights WHERE id = ?", (insight_id,))
            row = cur.fetchone()
        if not row:
            return None
        return self._row_to_insight(row)

    def update_insight_status(self, insight_id: str, status: str | InsightStatus) -> WorkflowInsight | None:
        """Record user feedback; unknown statuses are rejected before writing."""

        validated = validate_status(status)
        with closing(self.conn.cursor()) as cur:
            cur.execute(
                "UPDATE workflow_insights SET status = ? WHERE id = ?",
                (validated.value, insight_id),
            )
            self.conn.commit()
            if cur.rowcount == 0:
                return None
        return self.fetch_insight(insight_id)

    @staticmethod
    def _row_to_insight(row: sqlite3.Row) -> WorkflowInsight:
        evidence_raw = deserialize_json(row["evidence"], {})
        return WorkflowInsight(
            id=row["id"],
            user_id=row["user_id"],
            pattern_id=row["pattern_id"],
            insight_type=InsightType(row["insight_type"]),
            title=row["title"],
            description=row["description"],
            recommendation=row["recommendation"],
            impact_score=row["impact_score"],
            impact_level=ImpactLevel(row["impact_level"]),
            confidence=row["confidence"],
            evidence=Evidence(**evidence_raw),
            time_saved_estimate=row["time_saved_estimate"],
            effort_saved_estimate=row["effort_saved_estimate"],
            status=InsightStatus(row["status"]),
            created_at=_from_epoch(row["created_at"]),
        )

    # ------------------------------------------------------------------
    # Friction scores
    # ------------------------------------------------------------------

    def record_interaction_quality(
        self,
        event_id: str,
        friction_score: float,
        friction_types: Sequence[str] = (),
        *,
        user_id: str | None = None,
    ) -> None:
        with closing(self.conn.cursor()) as cur:
            cur.execute(
                """
                INSERT INTO interaction_quality (event_id, user_id, friction_score, friction_types)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(event_id) DO UPDATE SET
                    friction_score=excluded.friction_score,
                    friction_types=excluded.friction_types
                """,
                (event_id, user_id, friction_score, serialize_json(list(friction_types))),
            )
            self.conn.commit()

    def fetch_interaction_quality(self, event_ids: Sequence[str]) -> List[InteractionQuality]:
        if not event_ids:
            return []
        placeholders = ", ".join("?" for _ in event_ids)
        with closing(self.conn.cursor()) as cur:
            cur.execute(
                f"SELECT * FROM interaction_quality WHERE event_id IN ({placeholders})",
                tuple(event_ids),
            )
            rows = cur.fetchall()
        return [
            InteractionQuality(
                event_id=row["event_id"],
                friction_score=row["friction_score"] or 0.0,
                friction_types=deserialize_json(row["friction_types"], []),
            )
            for row in rows
        ]

    def close(self) -> None:
        self.conn.close()


def _evidence_to_dict(evidence: Evidence) -> dict:
    return {
        "pattern_occurrences": evidence.pattern_occurrences,
        "total_time_spent": evidence.total_time_spent,
        "friction_events": evidence.friction_events,
        "supporting_events": list(evidence.supporting_events),
        "wasted_actions": evidence.wasted_actions,
        "wasted_time": evidence.wasted_time,
        "friction_breakdown": dict(evidence.friction_breakdown),
        "workflow_steps": evidence.workflow_steps,
    }
