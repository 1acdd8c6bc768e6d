from datetime import timedelta

from flow_insights.connections import (
    ConnectionDetector,
    analyze_time_proximity,
    describe_pattern,
    find_composite_workflows,
    find_parallel_approaches,
    find_sequential_patterns,
    find_trigger_patterns,
)
from flow_insights.models import ConnectionType, Pattern

from conftest import BASE_TIME


def _pattern(pattern_id, *, support, start=0.0, end=60.0, goal=None, category=None, confidence=0.5, events=()):
    return Pattern(
        id=pattern_id,
        user_id="user-1",
        signature=pattern_id,
        sequence=list(events),
        support=support,
        confidence=confidence,
        first_seen=BASE_TIME + timedelta(seconds=start),
        last_seen=BASE_TIME + timedelta(seconds=end),
        inferred_goal=goal,
        goal_category=category,
    )


def test_time_proximity_estimates_overlap():
    proximity = analyze_time_proximity(_pattern("a", support=5), _pattern("b", support=8, start=120, end=200))
    assert proximity.gap_seconds == 60
    assert proximity.occurrences == 3


def test_close_patterns_are_sequential():
    first = _pattern("a", support=5, goal="check_inbox")
    second = _pattern("b", support=6, start=90, end=150)
    [connection] = find_sequential_patterns([first, second])
    assert connection.type is ConnectionType.SEQUENTIAL
    assert connection.patterns == ["a", "b"]
    assert connection.confidence == 0.6
    assert connection.always_in_order is False
    assert connection.evidence.co_occurrence_count == 3
    assert connection.evidence.time_proximity_avg == 30
    assert connection.relationship.startswith('"check_inbox" is typically followed by')


def test_distant_or_rare_patterns_are_not_sequential():
    first = _pattern("a", support=5)
    assert find_sequential_patterns([first, _pattern("b", support=6, start=400, end=500)]) == []
    assert find_sequential_patterns([first, _pattern("c", support=4, start=70, end=80)]) == []


def test_trigger_probability():
    trigger = _pattern("a", support=5)
    response = _pattern("b", support=9, start=5000, end=5100)
    [connection] = find_trigger_patterns([trigger, response])
    assert connection.type is ConnectionType.TRIGGER
    assert connection.trigger_probability == 0.6
    assert "60% of the time" in connection.relationship
    assert find_trigger_patterns([_pattern("big", support=20), _pattern("small", support=4)]) == []


def test_parallel_approaches_prefer_consistent_pattern():
    patterns = [
        _pattern("slow", support=4, goal="Research_Topic", confidence=0.5),
        _pattern("fast", support=8, goal="research_topic", confidence=0.9),
        _pattern("other", support=8, goal="online_purchase"),
    ]
    [connection] = find_parallel_approaches(patterns)
    assert connection.type is ConnectionType.PARALLEL
    assert connection.patterns == ["fast", "slow"]
    assert connection.preferred_pattern == "fast"
    assert connection.confidence == 0.8
    assert connection.evidence.co_occurrence_count == 0


def test_composite_workflows_group_by_category():
    patterns = [
        _pattern("a", support=5, category="learning"),
        _pattern("b", support=6, category="learning"),
        _pattern("c", support=9, category="shopping"),
    ]
    [composite] = find_composite_workflows(patterns)
    assert composite.category == "learning"
    assert composite.frequency == 5
    assert composite.description == "learning workflow with 2 related patterns"


def test_describe_pattern_fallbacks(make_event):
    assert describe_pattern(_pattern("a", support=3)) == "Unknown workflow"
    same = _pattern("b", support=3, events=[make_event("x"), make_event("y", at=1)])
    assert describe_pattern(same) == "click workflow"
    mixed = _pattern(
        "c",
        support=3,
        events=[make_event("x"), make_event("y", type="search", at=1), make_event("z", type="nav", at=2)],
    )
    assert describe_pattern(mixed) == "click -> search -> nav workflow"


def test_detector_needs_two_stored_patterns(store, make_bursts):
    detector = ConnectionDetector(store)
    assert detector.detect("user-1") == []

    first = make_bursts(1)
    second = make_bursts(1, url="https://docs.example.com/guide", offset=60)
    for events, signature in ((first, "sig-a"), (second, "sig-b")):
        store.upsert_pattern(
            Pattern(
                id="",
                user_id="user-1",
                signature=signature,
                sequence=events,
                support=6,
                confidence=0.5,
                first_seen=events[0].timestamp,
                last_seen=events[-1].timestamp,
            )
        )
    connections = detector.detect("user-1")
    kinds = sorted(connection.type.value for connection in connections)
    assert kinds == ["sequential", "trigger"]
