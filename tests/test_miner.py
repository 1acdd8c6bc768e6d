import sqlite3
from datetime import timedelta

from flow_insights.config import InsightsConfig
from flow_insights.miner import PatternMiner
from flow_insights.store import ActivityStore

from conftest import BASE_TIME


class FailingStore(ActivityStore):
    """Accepts the first upsert, then fails every following one."""

    def __init__(self) -> None:
        super().__init__(":memory:")
        self.calls = 0

    def upsert_pattern(self, pattern):
        self.calls += 1
        if self.calls > 1:
            raise sqlite3.OperationalError("database is locked")
        return super().upsert_pattern(pattern)


def test_four_bursts_yield_one_pattern_with_support_four(make_bursts):
    events = make_bursts(4)
    patterns = PatternMiner().mine("user-1", events)
    assert len(patterns) == 1
    pattern = patterns[0]
    assert pattern.support == 4
    assert len(pattern.sequence) == 3
    assert pattern.confidence == 1.0
    assert pattern.first_seen == BASE_TIME
    assert pattern.last_seen == BASE_TIME + timedelta(seconds=3 * 600 + 10)


def test_patterns_below_minimum_support_are_dropped(make_bursts):
    assert PatternMiner().mine("user-1", make_bursts(2)) == []


def test_confidence_stays_within_unit_interval(make_bursts, make_event):
    events = make_bursts(4)
    # Extra clicks dilute how often a click starts the whole sequence.
    events += [make_event(f"extra-{i}", at=5000 + i * 1000) for i in range(4)]
    patterns = PatternMiner().mine("user-1", events)
    assert patterns
    for pattern in patterns:
        assert pattern.support >= 3
        assert 0.0 <= pattern.confidence <= 1.0
    assert patterns[0].confidence == 0.5


def test_run_reports_insufficient_events(make_event):
    result = PatternMiner().run("user-1", [make_event("a")])
    assert result.ok
    assert result.patterns_found == 0
    assert "Not enough events" in result.message


def test_remining_is_idempotent(store, make_bursts):
    miner = PatternMiner(store)
    events = make_bursts(4)
    first = miner.run("user-1", events)
    second = miner.run("user-1", events)
    assert first.patterns_stored == second.patterns_stored == 1
    assert store.count_patterns("user-1") == 1
    stored = store.fetch_patterns("user-1")
    assert stored[0].support == 4


def test_support_never_decreases_on_smaller_window(store, make_bursts):
    miner = PatternMiner(store)
    miner.run("user-1", make_bursts(5))
    miner.run("user-1", make_bursts(3))
    [pattern] = store.fetch_patterns("user-1")
    assert pattern.support == 5


def test_partial_store_failure_reports_stored_count(make_bursts, make_event):
    events = make_bursts(4)
    for burst in range(4):
        start = 3000 + burst * 600
        for step, kind in enumerate(("scroll", "dwell", "click")):
            events.append(
                make_event(
                    f"docs-{burst}-{step}",
                    type=kind,
                    url="https://docs.example.com/guide",
                    at=start + step * 5,
                    dom_path="main.content",
                )
            )
    failing = FailingStore()
    try:
        result = PatternMiner(failing, InsightsConfig()).run("user-1", events)
    finally:
        failing.close()
    assert result.patterns_found == 2
    assert result.patterns_stored == 1
    assert not result.ok
    assert "database is locked" in result.error
