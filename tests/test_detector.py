from flow_insights.detector import DetectorConfig, DetectorRegistry, PatternDetector
from flow_insights.utils import utcnow

from conftest import BASE_TIME


def _cycle(make_event, count, *, prefix="e"):
    kinds = ["click", "search", "nav"]
    return [
        make_event(f"{prefix}{i}", type=kinds[i % 3], dom_path=f"li[{i}]", at=i * 2)
        for i in range(count)
    ]


def test_pattern_is_emitted_once_then_updated(make_event):
    detector = PatternDetector()
    events = _cycle(make_event, 15)
    results = [detector.add_event(event) for event in events]

    emitted = [(index, pattern) for index, pattern in enumerate(results) if pattern is not None]
    signatures = [pattern.signature for _, pattern in emitted]
    assert len(signatures) == len(set(signatures))

    first_index, first = emitted[0]
    assert first_index == 8
    assert first.signature == "click:li[]|search:li[]|nav:li[]"
    assert first.occurrences == 3
    assert first.confidence == 0.51
    assert first.first_seen == BASE_TIME

    tracked = detector.get(first.signature)
    assert tracked.occurrences == 5
    assert tracked.last_seen == events[14].timestamp
    assert 0.0 <= tracked.confidence <= 1.0


def test_listeners_receive_new_patterns(make_event):
    seen = []
    detector = PatternDetector(listeners=[seen.append])
    for event in _cycle(make_event, 15):
        detector.add_event(event)
    assert [pattern.occurrences for pattern in seen] == [3]
    assert seen[0].confidence == 0.51
    assert detector.get(seen[0].signature).occurrences == 5


def test_buffer_is_bounded(make_event):
    detector = PatternDetector(DetectorConfig(buffer_size=50))
    for event in _cycle(make_event, 60):
        detector.add_event(event)
    buffer = detector.buffer()
    assert len(buffer) == 50
    assert buffer[0].id == "e10"


def test_reset_clears_session_state(make_event):
    detector = PatternDetector()
    for event in _cycle(make_event, 12):
        detector.add_event(event)
    assert detector.detected_patterns()
    detector.reset()
    assert detector.buffer() == []
    assert detector.detected_patterns() == []


def test_accepts_raw_event_mappings():
    detector = PatternDetector(DetectorConfig(min_occurrences=2))
    detected = None
    for i in range(6):
        detected = detector.add_event(
            {
                "id": f"m{i}",
                "type": ["click", "scroll", "click"][i % 3],
                "url": "https://news.example.com/",
                "domPath": "div.story",
                "ts": 1767258000000 + i * 1000,
            }
        ) or detected
    assert detected is not None
    assert detected.occurrences == 2


def test_registry_isolates_sessions(make_event):
    registry = DetectorRegistry()
    for event in _cycle(make_event, 9, prefix="a"):
        registry.observe("tab-1", event)
    for event in _cycle(make_event, 2, prefix="b"):
        registry.observe("tab-2", event)

    assert registry.detector("tab-1").detected_patterns()
    assert registry.detector("tab-2").detected_patterns() == []
    assert sorted(registry.active_sessions()) == ["tab-1", "tab-2"]

    registry.end_session("tab-1")
    assert registry.active_sessions() == ["tab-2"]


def test_raw_mapping_without_timestamp_uses_current_time():
    detector = PatternDetector()
    before = utcnow()
    detector.add_event({"id": "x1", "type": "click", "url": "https://a.example.com/"})
    [summary] = detector.buffer()
    assert summary.timestamp >= before
