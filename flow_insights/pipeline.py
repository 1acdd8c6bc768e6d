"""End-to-end orchestration for Flow Insights."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, List, Mapping

from .config import InsightsConfig
from .connections import CompositeWorkflow, ConnectionDetector
from .detector import DetectedPattern, DetectorConfig, DetectorRegistry
from .enrichment import SemanticEnricher
from .goals import GoalInferencer, OpenAIGoalBackend
from .insights import InsightSynthesizer
from .miner import MiningResult, PatternMiner
from .models import (
    Connection,
    Event,
    InferredGoal,
    InsightStatus,
    Recommendation,
    WorkflowComparison,
    WorkflowInsight,
)
from .recommendations import compare_workflows, generate_recommendation
from .reporting import insight_report
from .store import ActivityStore
from .utils import utcnow

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class InsightResult:
    user_id: str
    insights: List[WorkflowInsight] = field(default_factory=list)
    patterns_analyzed: int = 0
    message: str = ""


class FlowInsights:
    """Coordinates mining, enrichment, insight synthesis and live detection."""

    def __init__(
        self,
        config: InsightsConfig | None = None,
        *,
        store: ActivityStore | None = None,
        goal_inferencer: GoalInferencer | None = None,
        detectors: DetectorRegistry | None = None,
    ) -> None:
        self.config = config or InsightsConfig()
        self.store = store or ActivityStore(self.config.db_path)
        self.miner = PatternMiner(self.store, self.config)
        self.enricher = SemanticEnricher(self.store, domain_limit=self.config.enrichment_limit)
        if goal_inferencer is None:
            backend = OpenAIGoalBackend.from_config(self.config) if self.config.goal_api_key else None
            goal_inferencer = GoalInferencer(backend)
        self.goal_inferencer = goal_inferencer
        self.synthesizer = InsightSynthesizer(
            friction_lookup=self.store.fetch_interaction_quality,
            friction_threshold=self.config.friction_threshold,
        )
        self.connection_detector = ConnectionDetector(
            self.store,
            min_support=self.config.connection_min_support,
            pattern_limit=self.config.connection_pattern_limit,
        )
        self.detectors = detectors or DetectorRegistry(
            DetectorConfig(
                buffer_size=self.config.buffer_size,
                window_length=self.config.window_length,
                min_occurrences=self.config.min_occurrences,
            )
        )

    # ------------------------------------------------------------------
    # Batch path
    # ------------------------------------------------------------------

    def _since(self, now: datetime | None) -> datetime:
        return (now or utcnow()) - timedelta(days=self.config.lookback_days)

    def mine_patterns(self, user_id: str, now: datetime | None = None) -> MiningResult:
        events = self.store.fetch_events(
            user_id,
            self._since(now),
            ignored_domains=self.config.ignored_domains,
            limit=self.config.event_limit,
        )
        logger.info("Mining patterns for %s from %d events", user_id, len(events))
        return self.miner.run(user_id, events)

    def mine_all_users(self, now: datetime | None = None) -> List[MiningResult]:
        results = []
        for user_id in self.store.list_users(self._since(now)):
            results.append(self.mine_patterns(user_id, now))
        return results

    def infer_goals(self, user_id: str) -> List[InferredGoal]:
        """Fill goal fields on stored patterns that have none yet."""

        goals: List[InferredGoal] = []
        patterns = self.store.fetch_patterns(user_id, limit=self.config.insight_pattern_limit)
        for pattern in patterns:
            if pattern.inferred_goal:
                continue
            enriched = self.enricher.enrich(pattern)
            goal = self.goal_inferencer.infer(enriched.analysis_sequence)
            self.store.update_pattern_goal(pattern.id, goal)
            goals.append(goal)
        logger.info("Inferred %d goals for %s", len(goals), user_id)
        return goals

    def generate_insights(self, user_id: str) -> InsightResult:
        patterns = self.store.fetch_patterns(
            user_id,
            min_support=self.config.min_support,
            limit=self.config.insight_pattern_limit,
        )
        if not patterns:
            return InsightResult(user_id=user_id, message="No patterns found. Mine patterns first.")
        enriched = self.enricher.enrich_all(patterns)
        insights = self.store.insert_insights(self.synthesizer.synthesize(enriched))
        return InsightResult(
            user_id=user_id,
            insights=insights,
            patterns_analyzed=len(patterns),
            message=f"Generated {len(insights)} insights from {len(patterns)} patterns",
        )

    def detect_connections(self, user_id: str) -> List[Connection]:
        return self.connection_detector.detect(user_id)

    def composite_workflows(self, user_id: str) -> List[CompositeWorkflow]:
        return self.connection_detector.composites(user_id)

    def compare_pattern(self, pattern_id: str) -> WorkflowComparison | None:
        pattern = self.store.fetch_pattern(pattern_id)
        if pattern is None:
            return None
        return compare_workflows(pattern)

    def recommend(self, pattern_id: str) -> Recommendation | None:
        pattern = self.store.fetch_pattern(pattern_id)
        if pattern is None:
            return None
        return generate_recommendation(pattern)

    def update_insight_status(self, insight_id: str, status: str | InsightStatus) -> WorkflowInsight | None:
        return self.store.update_insight_status(insight_id, status)

    def report_text(self, user_id: str) -> str:
        insights = self.store.fetch_insights(user_id)
        patterns = self.store.fetch_patterns(user_id, limit=self.config.insight_pattern_limit)
        return insight_report(insights, patterns, title=f"Workflow Insights for {user_id}").render_text()

    # ------------------------------------------------------------------
    # Live path
    # ------------------------------------------------------------------

    def observe(self, session_id: str, event: Event | Mapping[str, Any]) -> DetectedPattern | None:
        return self.detectors.observe(session_id, event)

    def end_session(self, session_id: str) -> None:
        self.detectors.end_session(session_id)

    def close(self) -> None:
        self.store.close()
