"""Command line interface for Flow Insights."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Iterable, List, TextIO

from flow_insights.config import InsightsConfig
from flow_insights.models import Event, WorkflowInsight, event_from_dict
from flow_insights.pipeline import FlowInsights
from flow_insights.recommendations import generate_browser_tips, generate_keyboard_shortcuts
from flow_insights.store import InvalidStatusError

logger = logging.getLogger(__name__)


def load_payload(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {path}")
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, list):
        return {"events": data}
    return data


def ingest(app: FlowInsights, path: Path) -> None:
    payload = load_payload(path)
    events: List[Event] = [event_from_dict(item) for item in payload.get("events", [])]
    stored = app.store.add_events(events)
    friction = payload.get("friction", [])
    for item in friction:
        app.store.record_interaction_quality(
            item["event_id"],
            float(item.get("friction_score", 0.0)),
            item.get("friction_types", []),
            user_id=item.get("user_id"),
        )
    print(f"Ingested {stored} events and {len(friction)} friction scores")


def render_insight(insight: WorkflowInsight) -> str:
    lines = [
        f"[{insight.impact_level.value}] {insight.title} ({insight.id}, {insight.status.value})",
        f"  {insight.description}",
        f"  -> {insight.recommendation}",
    ]
    return "\n".join(lines)


def run_mine(app: FlowInsights, user_id: str | None) -> int:
    results = [app.mine_patterns(user_id)] if user_id else app.mine_all_users()
    if not results:
        print("No users with recent events")
    failed = False
    for result in results:
        print(f"{result.user_id}: found {result.patterns_found}, stored {result.patterns_stored}. {result.message}")
        if not result.ok:
            print(f"  error: {result.error}", file=sys.stderr)
            failed = True
    return 1 if failed else 0


def run_insights(app: FlowInsights, user_id: str, *, infer_goals: bool) -> int:
    if infer_goals:
        app.infer_goals(user_id)
    result = app.generate_insights(user_id)
    print(result.message)
    for insight in result.insights:
        print(render_insight(insight))
    return 0


def run_connections(app: FlowInsights, user_id: str) -> int:
    connections = app.detect_connections(user_id)
    if not connections:
        print("No connections found")
    for connection in connections:
        print(f"[{connection.type.value}] {connection.relationship} (confidence {connection.confidence:.2f})")
    for composite in app.composite_workflows(user_id):
        print(f"[composite] {composite.description}, frequency {composite.frequency}")
    return 0


def run_compare(app: FlowInsights, pattern_id: str) -> int:
    comparison = app.compare_pattern(pattern_id)
    recommendation = app.recommend(pattern_id)
    if comparison is None or recommendation is None:
        print(f"Pattern not found: {pattern_id}", file=sys.stderr)
        return 1
    improvement = comparison.improvement
    print(recommendation.title)
    print(recommendation.current_approach)
    print(recommendation.suggested_approach)
    print(
        f"Saves {improvement.steps_saved} steps and {improvement.time_saved:.0f}s "
        f"({improvement.efficiency_gain:.0f}% faster)"
    )
    print(comparison.explanation)
    pattern = app.store.fetch_pattern(pattern_id)
    for line in generate_browser_tips(pattern) + generate_keyboard_shortcuts(pattern):
        print(f"  {line}")
    return 0


def run_feedback(app: FlowInsights, insight_id: str, status: str) -> int:
    try:
        insight = app.update_insight_status(insight_id, status)
    except InvalidStatusError as exc:
        print(str(exc), file=sys.stderr)
        return 2
    if insight is None:
        print(f"Insight not found: {insight_id}", file=sys.stderr)
        return 1
    print(f"{insight.id} -> {insight.status.value}")
    return 0


def watch(app: FlowInsights, stream: TextIO, *, session_id: str) -> int:
    """Feed JSON-lines events through the live detector until the stream ends."""

    try:
        for line in stream:
            line = line.strip()
            if not line:
                continue
            try:
                event = event_from_dict(json.loads(line))
            except (ValueError, KeyError) as exc:
                logger.warning("Skipping malformed event line: %s", exc)
                continue
            pattern = app.observe(session_id, event)
            if pattern is not None:
                steps = " -> ".join(summary.type for summary in pattern.sequence)
                print(
                    f"[{pattern.last_seen:%H:%M:%S}] pattern {steps} "
                    f"x{pattern.occurrences} (confidence {pattern.confidence:.2f})"
                )
    except KeyboardInterrupt:
        print("\nStopped watching.")
    finally:
        app.end_session(session_id)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Flow Insights workflow miner")
    parser.add_argument(
        "--db",
        default=os.getenv("FLOW_INSIGHTS_DB", "flow_insights.db"),
        help="SQLite database path",
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    sub = parser.add_subparsers(dest="command", required=True)

    ingest_parser = sub.add_parser("ingest", help="Load events and friction scores from a JSON file")
    ingest_parser.add_argument("path", type=Path)

    mine_parser = sub.add_parser("mine", help="Mine recurring patterns")
    mine_parser.add_argument("--user", help="Only mine this user (default: every recent user)")

    insights_parser = sub.add_parser("insights", help="Generate insights for a user")
    insights_parser.add_argument("user")
    insights_parser.add_argument(
        "--skip-goals",
        action="store_true",
        help="Do not infer goals for patterns before synthesis",
    )

    connections_parser = sub.add_parser("connections", help="Show relationships between patterns")
    connections_parser.add_argument("user")

    compare_parser = sub.add_parser("compare", help="Compare a pattern with its optimised workflow")
    compare_parser.add_argument("pattern_id")

    feedback_parser = sub.add_parser("feedback", help="Record feedback on an insight")
    feedback_parser.add_argument("insight_id")
    feedback_parser.add_argument("status")

    report_parser = sub.add_parser("report", help="Print an insight digest")
    report_parser.add_argument("user")

    watch_parser = sub.add_parser("watch", help="Stream JSON-lines events through the live detector")
    watch_parser.add_argument("path", nargs="?", type=Path, help="Event file (default: stdin)")
    watch_parser.add_argument("--session", default="cli", help="Session identifier")
    return parser


def main(argv: Iterable[str] | None = None) -> int:
    args = build_parser().parse_args(list(argv) if argv is not None else None)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = InsightsConfig.from_env()
    config.db_path = args.db
    app = FlowInsights(config)
    try:
        if args.command == "ingest":
            ingest(app, args.path)
            return 0
        if args.command == "mine":
            return run_mine(app, args.user)
        if args.command == "insights":
            return run_insights(app, args.user, infer_goals=not args.skip_goals)
        if args.command == "connections":
            return run_connections(app, args.user)
        if args.command == "compare":
            return run_compare(app, args.pattern_id)
        if args.command == "feedback":
            return run_feedback(app, args.insight_id, args.status)
        if args.command == "report":
            print(app.report_text(args.user))
            return 0
        if args.path is None:
            return watch(app, sys.stdin, session_id=args.session)
        with args.path.open(encoding="utf-8") as stream:
            return watch(app, stream, session_id=args.session)
    finally:
        app.close()


if __name__ == "__main__":
    sys.exit(main())
