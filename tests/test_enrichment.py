from flow_insights.enrichment import SemanticEnricher, pattern_domains
from flow_insights.models import Pattern
from flow_insights.store import ActivityStore

from conftest import QUICK_BOUNCE


def _pattern(events):
    return Pattern(
        id="pat_1",
        user_id="user-1",
        signature="sig",
        sequence=events,
        support=3,
        confidence=1.0,
        first_seen=events[0].timestamp,
        last_seen=events[-1].timestamp,
    )


def test_pattern_domains_are_unique_display_domains(make_event):
    pattern = _pattern(
        [
            make_event("a", url="https://www.example.com/x"),
            make_event("b", url="https://example.com/y"),
            make_event("c", url="https://docs.example.org/z"),
        ]
    )
    assert pattern_domains(pattern) == ["example.com", "docs.example.org"]


def test_enrich_by_event_ids(store, make_event):
    events = [make_event(f"e{i}", at=i, semantic=QUICK_BOUNCE) for i in range(3)]
    store.add_events(events)
    plain = [make_event(f"e{i}", at=i) for i in range(3)]
    enriched = SemanticEnricher(store).enrich(_pattern(plain))
    assert [event.id for event in enriched.semantic_enriched_sequence] == ["e0", "e1", "e2"]
    assert all(event.semantic is not None for event in enriched.analysis_sequence)


def test_enrich_falls_back_to_domain_search(store, make_event):
    store.add_events(
        [
            make_event("x1", url="https://www.shop.example.com/a", at=100, semantic=QUICK_BOUNCE),
            make_event("x2", url="https://elsewhere.example.net/", at=101, semantic=QUICK_BOUNCE),
        ]
    )
    pattern = _pattern([make_event("unknown", url="https://shop.example.com/list")])
    enriched = SemanticEnricher(store).enrich(pattern)
    assert [event.id for event in enriched.semantic_enriched_sequence] == ["x1"]


def test_enrich_without_semantic_data_keeps_pattern(store, make_event):
    events = [make_event(f"e{i}", at=i) for i in range(3)]
    store.add_events(events)
    pattern = _pattern(events)
    enriched = SemanticEnricher(store).enrich(pattern)
    assert enriched.semantic_enriched_sequence is None
    assert enriched.analysis_sequence == events


def test_enrich_survives_storage_errors(make_event):
    closed = ActivityStore(":memory:")
    closed.close()
    pattern = _pattern([make_event("e0")])
    assert SemanticEnricher(closed).enrich(pattern) is pattern
