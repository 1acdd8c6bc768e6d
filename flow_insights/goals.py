"""Goal inference for mined patterns.

The language-model collaborator is optional. Whenever it is missing or
misbehaves, the ordered heuristic rules below produce the goal instead.
"""

from __future__ import annotations

import json
import logging
import urllib.request
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from .config import InsightsConfig
from .models import Event, EventType, InferredGoal
from .utils import extract_domain

logger = logging.getLogger(__name__)

GoalBackend = Callable[[Sequence[Event]], Mapping[str, Any]]


@dataclass(slots=True)
class GoalSignals:
    """Characteristics of a sequence that the heuristic rules inspect."""

    step_count: int
    page_types: List[str]
    purposes: List[str]
    categories: List[str]
    urls: List[str]
    has_search: bool

    @classmethod
    def from_events(cls, events: Sequence[Event]) -> "GoalSignals":
        page_types: List[str] = []
        purposes: List[str] = []
        categories: List[str] = []
        for event in events:
            if event.semantic is None:
                continue
            if event.semantic.page.type:
                page_types.append(event.semantic.page.type)
            if event.semantic.purpose:
                purposes.append(event.semantic.purpose)
            if event.semantic.page.category:
                categories.append(event.semantic.page.category)
        return cls(
            step_count=len(events),
            page_types=page_types,
            purposes=purposes,
            categories=categories,
            urls=[event.url for event in events],
            has_search=any(event.type == EventType.SEARCH for event in events),
        )


GoalRule = Callable[[GoalSignals], Optional[InferredGoal]]


def online_purchase_rule(signals: GoalSignals) -> InferredGoal | None:
    has_cart = any("cart" in url or "shopping" in url for url in signals.urls)
    if "product" not in signals.page_types:
        return None
    if not ("purchase_intent" in signals.purposes or has_cart or "checkout" in signals.page_types):
        return None
    return InferredGoal(
        goal="online_purchase",
        goal_category="shopping",
        confidence=0.8,
        reasoning="Pattern includes product pages with purchase signals and/or cart/checkout steps",
        automation_potential=0.7,
    )


def price_comparison_rule(signals: GoalSignals) -> InferredGoal | None:
    if "product" not in signals.page_types or signals.step_count < 3:
        return None
    if "comparison_research" not in signals.purposes:
        return None
    return InferredGoal(
        goal="price_comparison",
        goal_category="shopping",
        confidence=0.75,
        reasoning="Multiple product pages with comparison research signals",
        automation_potential=0.8,
    )


def research_topic_rule(signals: GoalSignals) -> InferredGoal | None:
    if not (signals.has_search and "article" in signals.page_types and signals.step_count >= 3):
        return None
    return InferredGoal(
        goal="research_topic",
        goal_category="learning",
        confidence=0.75,
        reasoning="Search followed by multiple article views indicates research behavior",
        automation_potential=0.5,
    )


def content_consumption_rule(signals: GoalSignals) -> InferredGoal | None:
    if "article" not in signals.page_types or signals.step_count < 2:
        return None
    return InferredGoal(
        goal="content_consumption",
        goal_category="learning",
        confidence=0.65,
        reasoning="Reading multiple articles suggests information gathering",
        automation_potential=0.4,
    )


def status_monitoring_rule(signals: GoalSignals) -> InferredGoal | None:
    if "dashboard" not in signals.page_types or signals.step_count < 2:
        return None
    return InferredGoal(
        goal="status_monitoring",
        goal_category="maintenance",
        confidence=0.7,
        reasoning="Repeated dashboard visits indicate status checking behavior",
        automation_potential=0.9,
    )


def site_navigation_rule(signals: GoalSignals) -> InferredGoal | None:
    if signals.purposes.count("navigation") < 3:
        return None
    return InferredGoal(
        goal="site_navigation",
        goal_category="productivity",
        confidence=0.6,
        reasoning="Consistent navigation pattern detected",
        automation_potential=0.7,
    )


def social_engagement_rule(signals: GoalSignals) -> InferredGoal | None:
    if "social_interaction" not in signals.purposes:
        return None
    return InferredGoal(
        goal="social_engagement",
        goal_category="entertainment",
        confidence=0.65,
        reasoning="Social interaction actions detected",
        automation_potential=0.3,
    )


def form_completion_rule(signals: GoalSignals) -> InferredGoal | None:
    if "form_submission" not in signals.purposes:
        return None
    return InferredGoal(
        goal="form_completion",
        goal_category="productivity",
        confidence=0.7,
        reasoning="Form submission pattern indicates data entry workflow",
        automation_potential=0.8,
    )


def information_lookup_rule(signals: GoalSignals) -> InferredGoal | None:
    if "information_seeking" not in signals.purposes and "reference" not in signals.categories:
        return None
    return InferredGoal(
        goal="information_lookup",
        goal_category="learning",
        confidence=0.6,
        reasoning="Information seeking behavior detected",
        automation_potential=0.5,
    )


DEFAULT_GOAL_RULES: List[GoalRule] = [
    online_purchase_rule,
    price_comparison_rule,
    research_topic_rule,
    content_consumption_rule,
    status_monitoring_rule,
    site_navigation_rule,
    social_engagement_rule,
    form_completion_rule,
    information_lookup_rule,
]


def infer_goal_heuristic(events: Sequence[Event], rules: Iterable[GoalRule] = DEFAULT_GOAL_RULES) -> InferredGoal:
    """Apply the rule cascade; the first matching rule decides the goal."""

    signals = GoalSignals.from_events(events)
    for rule in rules:
        goal = rule(signals)
        if goal is not None:
            return goal
    return InferredGoal(
        goal="general_browsing",
        goal_category="unknown",
        confidence=0.3,
        reasoning="No clear pattern detected from available signals",
        automation_potential=0.2,
    )


def summarize_for_prompt(events: Sequence[Event]) -> List[Dict[str, Any]]:
    summary: List[Dict[str, Any]] = []
    for index, event in enumerate(events, start=1):
        semantic = event.semantic
        summary.append(
            {
                "step": index,
                "action": event.type.value,
                "page_title": event.title or "",
                "page_type": (semantic.page.type if semantic else None) or "unknown",
                "page_category": (semantic.page.category if semantic else None) or "unknown",
                "element_purpose": (semantic.purpose if semantic else None) or "unknown",
                "main_heading": (semantic.page.main_heading if semantic else None) or "",
                "time_of_day": semantic.temporal.time_of_day if semantic else None,
                "is_work_hours": semantic.temporal.is_work_hours if semantic else None,
                "url_domain": extract_domain(event.url) or "unknown",
            }
        )
    return summary


_PROMPT = """You are analyzing a user's browsing behavior to understand their goal.

User Action Sequence:
{sequence}

Determine the primary goal (1-3 words, lowercase with underscores), the goal
category (shopping, learning, productivity, entertainment, maintenance), your
confidence (0.0-1.0), a one or two sentence reasoning, and the automation
potential of the workflow (0.0-1.0).

Respond with raw JSON only:
{{"goal": "...", "goal_category": "...", "confidence": 0.0, "reasoning": "...", "automation_potential": 0.0}}"""


class OpenAIGoalBackend:
    """Chat-completions client returning the collaborator's raw JSON answer."""

    def __init__(
        self,
        api_key: str | None,
        *,
        model: str = "gpt-4o-mini",
        endpoint: str = "https://api.openai.com/v1/chat/completions",
        timeout: float = 10.0,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.endpoint = endpoint
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: InsightsConfig) -> "OpenAIGoalBackend":
        return cls(
            config.goal_api_key,
            model=config.goal_model,
            endpoint=config.goal_endpoint,
            timeout=config.goal_timeout,
        )

    def __call__(self, events: Sequence[Event]) -> Mapping[str, Any]:
        if not self.api_key:
            raise RuntimeError("Goal inference API key is not configured")
        prompt = _PROMPT.format(sequence=json.dumps(summarize_for_prompt(events), indent=2))
        body = json.dumps(
            {
                "model": self.model,
                "messages": [{"role": "user", "content": prompt}],
                "temperature": 0.3,
                "max_tokens": 300,
                "response_format": {"type": "json_object"},
            }
        ).encode("utf-8")
        request = urllib.request.Request(
            self.endpoint,
            data=body,
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self.api_key}",
            },
            method="POST",
        )
        with urllib.request.urlopen(request, timeout=self.timeout) as response:
            payload = json.loads(response.read().decode("utf-8"))
        content = payload["choices"][0]["message"]["content"]
        if not content:
            raise ValueError("Empty response from goal inference service")
        return json.loads(content)


def _clamp(value: float) -> float:
    return min(max(value, 0.0), 1.0)


def goal_from_response(response: Mapping[str, Any]) -> InferredGoal:
    """Validate the collaborator's answer; raises ValueError when malformed."""

    goal = response.get("goal")
    category = response.get("goal_category")
    confidence = response.get("confidence")
    if not goal or not category or not isinstance(confidence, (int, float)):
        raise ValueError(f"Invalid goal inference response: {dict(response)!r}")
    automation = response.get("automation_potential")
    if not isinstance(automation, (int, float)):
        automation = 0.5
    return InferredGoal(
        goal=str(goal),
        goal_category=str(category),
        confidence=_clamp(float(confidence)),
        reasoning=str(response.get("reasoning") or "Model inference"),
        automation_potential=_clamp(float(automation)),
    )


class GoalInferencer:
    """Infers a pattern's goal, degrading to heuristics on any backend failure."""

    def __init__(self, backend: GoalBackend | None = None) -> None:
        self.backend = backend

    def infer(self, events: Sequence[Event]) -> InferredGoal:
        if self.backend is None:
            logger.debug("No goal inference backend configured, using heuristics")
            return infer_goal_heuristic(events)
        try:
            return goal_from_response(self.backend(events))
        except Exception as exc:  # timeouts, HTTP errors, malformed JSON
            logger.warning("Goal inference failed, falling back to heuristics: %s", exc)
            return infer_goal_heuristic(events)
