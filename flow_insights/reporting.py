"""Plain-text digests of a user's insights and patterns."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Iterable, List

import numpy as np

from .connections import describe_pattern
from .models import InsightStatus, Pattern, WorkflowInsight


@dataclass(slots=True)
class Report:
    title: str
    summary_lines: List[str]

    def render_text(self) -> str:
        return "\n".join([self.title, "-" * len(self.title), *self.summary_lines])


def insight_report(
    insights: Iterable[WorkflowInsight],
    patterns: Iterable[Pattern],
    *,
    title: str = "Workflow Insights",
    top_patterns: int = 5,
) -> Report:
    insights = list(insights)
    patterns = list(patterns)
    if not insights and not patterns:
        return Report(title=title, summary_lines=["No activity recorded."])

    lines = [
        f"Patterns: {len(patterns)}",
        f"Insights: {len(insights)}",
    ]
    if insights:
        impact = np.array([insight.impact_score for insight in insights], dtype=float)
        lines.append(f"Impact score: total {impact.sum():.1f}, mean {impact.mean():.2f}")
        time_saved = [insight.time_saved_estimate for insight in insights if insight.time_saved_estimate]
        if time_saved:
            lines.append(f"Estimated time saved per run: {float(np.sum(time_saved)):.0f}s")

        type_counts = Counter(insight.insight_type.value for insight in insights)
        for insight_type, count in type_counts.most_common():
            lines.append(f"- {insight_type}: {count}")

        status_counts = Counter(insight.status for insight in insights)
        rated = status_counts[InsightStatus.HELPFUL] + status_counts[InsightStatus.NOT_HELPFUL]
        if rated:
            lines.append(f"Helpful rate: {status_counts[InsightStatus.HELPFUL] / rated:.0%}")
        lines.append(
            "Status: "
            + ", ".join(f"{status.value} {status_counts[status]}" for status in InsightStatus if status_counts[status])
        )

    if patterns:
        lines.append("Top patterns:")
        ranked = sorted(patterns, key=lambda pattern: pattern.support, reverse=True)
        for pattern in ranked[:top_patterns]:
            lines.append(
                f"- {describe_pattern(pattern)}: support {pattern.support}, "
                f"confidence {pattern.confidence:.2f}"
            )
    return Report(title=title, summary_lines=lines)
