import pytest

from flow_insights.goals import (
    GoalInferencer,
    OpenAIGoalBackend,
    goal_from_response,
    infer_goal_heuristic,
    summarize_for_prompt,
)


def _semantic(page_type=None, purpose=None, category=None):
    return {"purpose": purpose, "pageMetadata": {"type": page_type, "category": category}}


def test_purchase_signals_infer_online_purchase(make_event):
    events = [
        make_event("a", semantic=_semantic("product", "purchase_intent")),
        make_event("b", url="https://shop.example.com/cart", at=1, semantic=_semantic("checkout")),
    ]
    goal = infer_goal_heuristic(events)
    assert goal.goal == "online_purchase"
    assert goal.goal_category == "shopping"
    assert goal.confidence == 0.8


def test_search_and_articles_infer_research(make_event):
    events = [
        make_event("a", type="search", semantic=_semantic("search")),
        make_event("b", at=1, semantic=_semantic("article")),
        make_event("c", at=2, semantic=_semantic("article")),
    ]
    assert infer_goal_heuristic(events).goal == "research_topic"


def test_dashboard_visits_infer_status_monitoring(make_event):
    events = [make_event(f"d{i}", at=i, semantic=_semantic("dashboard")) for i in range(2)]
    goal = infer_goal_heuristic(events)
    assert goal.goal == "status_monitoring"
    assert goal.automation_potential == 0.9


def test_no_signals_fall_back_to_general_browsing(make_event):
    goal = infer_goal_heuristic([make_event("a"), make_event("b", at=1)])
    assert goal.goal == "general_browsing"
    assert goal.confidence == 0.3


def test_backend_answer_is_used_and_clamped(make_event):
    inferencer = GoalInferencer(
        lambda events: {"goal": "plan_trip", "goal_category": "productivity", "confidence": 1.4}
    )
    goal = inferencer.infer([make_event("a")])
    assert goal.goal == "plan_trip"
    assert goal.confidence == 1.0
    assert goal.automation_potential == 0.5


@pytest.mark.parametrize(
    "response",
    [
        {"goal": "x"},
        {"goal": "", "goal_category": "learning", "confidence": 0.5},
        {"goal": "x", "goal_category": "learning", "confidence": "high"},
    ],
)
def test_malformed_backend_answer_raises(response):
    with pytest.raises(ValueError):
        goal_from_response(response)


def test_backend_failure_falls_back_to_heuristics(make_event):
    def timeout(events):
        raise TimeoutError("collaborator timed out")

    events = [make_event(f"d{i}", at=i, semantic=_semantic("dashboard")) for i in range(2)]
    assert GoalInferencer(timeout).infer(events).goal == "status_monitoring"


def test_backend_without_key_falls_back(make_event):
    backend = OpenAIGoalBackend(None)
    with pytest.raises(RuntimeError):
        backend([make_event("a")])
    assert GoalInferencer(backend).infer([make_event("a")]).goal == "general_browsing"


def test_prompt_summary_fields(make_event):
    events = [make_event("a", title="Lamps", semantic=_semantic("product", "purchase_intent", "shopping"))]
    [step] = summarize_for_prompt(events)
    assert step["step"] == 1
    assert step["action"] == "click"
    assert step["page_type"] == "product"
    assert step["element_purpose"] == "purchase_intent"
    assert step["url_domain"] == "shop.example.com"
