import pytest

from flow_insights.models import Pattern
from flow_insights.recommendations import (
    AUTOFILL,
    REFINED_SEARCH,
    calculate_time_saved,
    compare_workflows,
    describe_workflow,
    explain_improvement,
    generate_browser_tips,
    generate_keyboard_shortcuts,
    generate_recommendation,
    identify_friction_causes,
    optimize_workflow,
)


def _pattern(events, *, support=6, goal=None, category=None):
    return Pattern(
        id="pat_1",
        user_id="user-1",
        signature="sig",
        sequence=events,
        support=support,
        confidence=0.7,
        first_seen=events[0].timestamp if events else None,
        last_seen=events[-1].timestamp if events else None,
        inferred_goal=goal,
        goal_category=category,
    )


def test_describe_workflow_estimates_and_flags(make_event):
    events = [
        make_event("c", type="click", metadata={"tagName": "button"}),
        make_event("s1", type="search", at=1),
        make_event("s2", type="search", at=2),
        make_event("d", type="dwell", at=3, dwell_ms=45000),
        make_event("b", type="nav", at=4, metadata={"direction": "back"}),
        make_event("n", type="nav", url="https://docs.example.com/", at=5),
        make_event("x", type="idle", at=6),
    ]
    steps = describe_workflow(events)
    assert [step.kind for step in steps] == ["click", "search", "search", "read", "back", "nav", "other"]
    assert [step.time_estimate for step in steps] == [2, 30, 30, 45, 3, 5, 3]
    assert steps[0].action == "Click on button"
    assert steps[5].action == "Navigate to docs.example.com"
    assert [step.is_redundant for step in steps] == [False, False, True, False, False, False, False]
    assert [step.is_friction for step in steps] == [False, False, False, False, True, False, False]


def test_form_on_form_page_is_friction(make_event):
    forms = {"contentSignals": {"hasForms": True}}
    [step] = describe_workflow([make_event("f", type="form", semantic=forms)])
    assert step.is_friction
    [step] = describe_workflow([make_event("g", type="click", semantic={"purpose": "form_submission"})])
    assert step.is_friction


def test_optimize_merges_searches_and_drops_back(make_event):
    events = [
        make_event("s1", type="search"),
        make_event("s2", type="search", url="https://other.example.com/", at=1),
        make_event("b", type="nav", at=2, metadata={"direction": "back"}),
        make_event("c", type="click", at=3),
    ]
    optimized = optimize_workflow(describe_workflow(events))
    assert [step.action for step in optimized] == [REFINED_SEARCH, "Click on element"]
    assert optimized[0].time_estimate == pytest.approx(21.0)
    assert [step.step for step in optimized] == [1, 2]


def test_optimize_collapses_forms_into_autofill(make_event):
    forms = {"contentSignals": {"hasForms": True}}
    events = [
        make_event("f1", type="form", semantic=forms),
        make_event("f2", type="form", url="https://two.example.com/", at=1, semantic=forms),
        make_event("f3", type="form", url="https://three.example.com/", at=2, semantic=forms),
    ]
    current = describe_workflow(events)
    optimized = optimize_workflow(current)
    assert len(optimized) == 1
    assert optimized[0].action == AUTOFILL
    assert optimized[0].time_estimate == pytest.approx(3.0)
    assert optimized[0].is_friction is False
    assert calculate_time_saved(current, optimized) == pytest.approx(27.0)
    assert "autofill" in explain_improvement(current, optimized)


def test_compare_workflows_reports_deltas(make_event):
    events = [
        make_event("s1", type="search"),
        make_event("s2", type="search", at=1),
        make_event("b", type="nav", at=2, metadata={"direction": "back"}),
        make_event("c", type="click", at=3),
    ]
    comparison = compare_workflows(_pattern(events))
    assert comparison.pattern_id == "pat_1"
    assert comparison.current.total_steps == 4
    assert comparison.current.total_time == 65
    assert comparison.suggested.total_steps == 2
    assert comparison.suggested.total_time == pytest.approx(23.0)
    assert comparison.improvement.steps_saved == 2
    assert comparison.improvement.friction_reduced == 1
    assert comparison.improvement.efficiency_gain == pytest.approx(42 / 65 * 100)
    assert comparison.explanation.startswith("By eliminating 2 unnecessary steps")


def test_compare_empty_workflow_has_zero_gain():
    comparison = compare_workflows(_pattern([]))
    assert comparison.improvement.efficiency_gain == 0.0
    assert comparison.current.total_time == 0.0


def test_explain_improvement_default(make_event):
    steps = describe_workflow([make_event("c")])
    assert explain_improvement(steps, steps) == "Streamlines the workflow for better efficiency."


def test_generate_recommendation(make_event):
    events = [
        make_event("s1", type="search"),
        make_event("s2", type="search", at=1),
        make_event("c", type="click", at=2),
    ]
    recommendation = generate_recommendation(_pattern(events, goal="research_topic"))
    assert recommendation.title == "Optimize: research_topic"
    assert recommendation.description.startswith("You perform this workflow 6 times")
    assert recommendation.current_approach.startswith("Currently, you:")
    assert REFINED_SEARCH in recommendation.suggested_approach
    assert recommendation.effort_saved == 1
    assert recommendation.time_saved == pytest.approx(30 + 30 + 2 - (21 + 2))
    assert recommendation.confidence == 0.7
    assert generate_recommendation(_pattern(events)).title == "Streamline shop.example.com workflow"


def test_identify_friction_causes(make_event):
    events = [
        make_event("b1", type="nav", metadata={"direction": "back"}),
        make_event("b2", type="nav", at=1, metadata={"direction": "back"}),
        make_event("r", type="friction", at=2, metadata={"frictionType": "rage_click"}),
    ]
    causes = identify_friction_causes(_pattern(events))
    assert causes[0].startswith("Frequent back button usage (2x)")
    assert any("Rage clicking detected (1x)" in cause for cause in causes)
    assert len(causes) == 2


def test_browser_tips_and_shortcuts(make_event):
    events = [
        make_event("s1", type="search", url="https://a.example.com/"),
        make_event("s2", type="search", url="https://b.example.com/", at=1),
        make_event("f", type="focus", url="https://c.example.com/", at=2),
        make_event("b", type="nav", url="https://c.example.com/", at=3, metadata={"direction": "back"}),
    ]
    tips = generate_browser_tips(_pattern(events, category="shopping"))
    assert any("Pin these tabs" in tip for tip in tips)
    assert any("site:" in tip for tip in tips)
    assert any("price comparison" in tip for tip in tips)
    shortcuts = generate_keyboard_shortcuts(_pattern(events))
    assert len(shortcuts) == 3
