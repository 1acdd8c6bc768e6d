"""Insight synthesis over mined, optionally enriched, patterns.

Each detector family looks at one pattern at a time and yields at most one
insight for it. Inefficiency and alternative detection are ordered rule lists:
the first rule that matches decides, so a pattern never receives two
inefficiency explanations in the same run.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence

import numpy as np

from .models import (
    ContentSignals,
    Event,
    EventType,
    Evidence,
    ImpactLevel,
    InsightType,
    InteractionQuality,
    JourneyState,
    Pattern,
    SemanticContext,
    WorkflowInsight,
)
from .utils import display_domain, extract_domain, generate_id, utcnow

logger = logging.getLogger(__name__)

_NO_SEMANTIC = SemanticContext()

FRICTION_DESCRIPTIONS = {
    "rapid_scrolling": "You scrolled rapidly {count} time(s), suggesting difficulty finding information",
    "back_button": "You used the back button {count} time(s), indicating navigation confusion",
    "form_abandonment": "You abandoned forms {count} time(s), suggesting frustration with data entry",
    "error_state": "You encountered errors {count} time(s)",
    "slow_loading": "You experienced slow page loads {count} time(s)",
    "rage_clicks": "You clicked repeatedly on non-responsive elements {count} time(s)",
}

FrictionLookup = Callable[[Sequence[str]], List[InteractionQuality]]


def calculate_impact(support: int, sequence_length: int) -> ImpactLevel:
    if support >= 10 and sequence_length >= 5:
        return ImpactLevel.HIGH
    if support >= 5 or sequence_length >= 4:
        return ImpactLevel.MEDIUM
    return ImpactLevel.LOW


def _pattern_impact(pattern: Pattern) -> ImpactLevel:
    return calculate_impact(pattern.support, len(pattern.sequence))


def _semantic(event: Event) -> SemanticContext:
    return event.semantic or _NO_SEMANTIC


def _journey(event: Event) -> JourneyState:
    return _semantic(event).journey


def _signals(event: Event) -> ContentSignals:
    return _semantic(event).signals


# ----------------------------------------------------------------------
# Inefficiency rules
# ----------------------------------------------------------------------


@dataclass(slots=True)
class InefficiencyFinding:
    inefficiency_type: str
    wasted_actions: int
    wasted_time: float
    explanation: str


InefficiencyRule = Callable[[Pattern, Sequence[Event]], Optional[InefficiencyFinding]]


def quick_bounce_rule(pattern: Pattern, sequence: Sequence[Event]) -> InefficiencyFinding | None:
    bounces = 0
    for event in sequence:
        journey = _journey(event)
        if not journey.session_duration_ms or journey.session_duration_ms >= 10000:
            continue
        if (journey.scroll_depth or 0) < 20 and (journey.interaction_depth or 0) < 3:
            bounces += 1
    if bounces < 3:
        return None
    return InefficiencyFinding(
        inefficiency_type="repeated_searches",
        wasted_actions=bounces,
        wasted_time=bounces * 15,
        explanation=(
            f"You quickly bounce from {bounces} pages without engaging (< 10s, minimal scroll). "
            "This suggests difficulty finding the right content or poor search results."
        ),
    )


def form_abandonment_rule(pattern: Pattern, sequence: Sequence[Event]) -> InefficiencyFinding | None:
    abandoned = 0
    for event in sequence:
        if not _signals(event).has_forms:
            continue
        journey = _journey(event)
        if not journey.interaction_depth or journey.interaction_depth <= 3:
            continue
        if not journey.session_duration_ms or journey.session_duration_ms >= 30000:
            continue
        if _semantic(event).purpose != "form_submission":
            abandoned += 1
    if abandoned < 2:
        return None
    return InefficiencyFinding(
        inefficiency_type="form_refilling",
        wasted_actions=abandoned,
        wasted_time=abandoned * 20,
        explanation=(
            f"You started filling out forms {abandoned} times but abandoned them quickly. "
            "Forms might be too complex, ask for too much information, or have unclear requirements."
        ),
    )


def shopping_without_checkout_rule(pattern: Pattern, sequence: Sequence[Event]) -> InefficiencyFinding | None:
    shopping = [
        event
        for event in sequence
        if _semantic(event).purpose == "purchase_intent"
        or _signals(event).has_pricing
        or _semantic(event).page.type == "product"
    ]
    checkouts = [event for event in sequence if _semantic(event).page.type == "checkout"]
    if len(shopping) < 3 or checkouts:
        return None
    return InefficiencyFinding(
        inefficiency_type="repeated_searches",
        wasted_actions=len(shopping),
        wasted_time=len(shopping) * 30,
        explanation=(
            f"You viewed {len(shopping)} product/pricing pages but didn't proceed to checkout. "
            "This might indicate comparison shopping, unclear pricing, or friction in the buying process."
        ),
    )


def back_navigation_rule(pattern: Pattern, sequence: Sequence[Event]) -> InefficiencyFinding | None:
    backs = sum(1 for event in sequence if event.is_back_navigation)
    if backs < 3:
        return None
    return InefficiencyFinding(
        inefficiency_type="excessive_navigation",
        wasted_actions=backs,
        wasted_time=backs * 5,
        explanation=(
            f"You use the back button {backs}x in this workflow, suggesting navigation "
            "could be optimized with better tab management or bookmarks."
        ),
    )


def information_seeking_rule(pattern: Pattern, sequence: Sequence[Event]) -> InefficiencyFinding | None:
    seeking = sum(1 for event in sequence if _semantic(event).purpose == "information_seeking")
    if seeking < 4:
        return None
    return InefficiencyFinding(
        inefficiency_type="repeated_searches",
        wasted_actions=seeking - 1,
        wasted_time=(seeking - 1) * 25,
        explanation=(
            f"You performed {seeking} information-seeking actions. Try using more specific search "
            'terms, advanced operators (site:, "exact phrase"), or consult documentation directly.'
        ),
    )


def redundant_revisit_rule(pattern: Pattern, sequence: Sequence[Event]) -> InefficiencyFinding | None:
    # Alternating between two or three sites is treated as intentional work.
    domains = [domain for domain in (extract_domain(event.url) for event in sequence) if domain]
    total = len(domains)
    unique = len(set(domains))
    if total <= 5 or unique <= 3 or total <= unique * 2:
        return None
    redundant = total - unique
    return InefficiencyFinding(
        inefficiency_type="redundant_steps",
        wasted_actions=redundant,
        wasted_time=redundant * 15,
        explanation=(
            f"You revisit {unique} different sites {redundant} extra times in this workflow, "
            "suggesting scattered navigation."
        ),
    )


DEFAULT_INEFFICIENCY_RULES: List[InefficiencyRule] = [
    quick_bounce_rule,
    form_abandonment_rule,
    shopping_without_checkout_rule,
    back_navigation_rule,
    information_seeking_rule,
    redundant_revisit_rule,
]

_INEFFICIENCY_COPY: Dict[str, tuple[str, str]] = {
    "excessive_navigation": (
        "Excessive Back Button Usage",
        "Consider using browser tabs or bookmarks to organize your workflow, reducing the need "
        "to navigate back and forth.",
    ),
    "repeated_searches": (
        "Repeated Search Pattern",
        'Try refining your search queries or using site-specific search operators (e.g., '
        '"site:example.com") to find information faster.',
    ),
    "form_refilling": (
        "Repetitive Form Filling",
        "Enable browser autofill or use a password manager with form-filling capabilities to "
        "save time on repetitive data entry.",
    ),
    "redundant_steps": (
        "Redundant Site Visits",
        "Consider pinning frequently visited tabs or using browser workspaces to keep relevant "
        "sites accessible without redundant navigation.",
    ),
}


def analyze_inefficiency(
    pattern: Pattern, rules: Iterable[InefficiencyRule] = DEFAULT_INEFFICIENCY_RULES
) -> InefficiencyFinding | None:
    sequence = pattern.analysis_sequence
    if len(sequence) < 2:
        return None
    for rule in rules:
        finding = rule(pattern, sequence)
        if finding is not None:
            return finding
    return None


# ----------------------------------------------------------------------
# Alternative-method rules
# ----------------------------------------------------------------------


@dataclass(slots=True)
class AlternativeFinding:
    current_method: str
    better_method: str
    improvement_explanation: str
    confidence: float


AlternativeRule = Callable[[Pattern, Sequence[Event]], Optional[AlternativeFinding]]


def deep_reading_rule(pattern: Pattern, sequence: Sequence[Event]) -> AlternativeFinding | None:
    deep = 0
    for event in sequence:
        journey = _journey(event)
        if (journey.scroll_depth or 0) <= 60 or (journey.session_duration_ms or 0) <= 120000:
            continue
        if _semantic(event).page.type in ("article", "documentation"):
            deep += 1
    if deep < 2:
        return None
    return AlternativeFinding(
        current_method=f"Reading {deep} long articles in your browser",
        better_method="Use a read-later service like Pocket, Instapaper, or Reader Mode",
        improvement_explanation=(
            "You spend 2+ minutes deeply reading articles. Read-later services offer "
            "distraction-free reading, offline access, highlighting, and better typography "
            "for long-form content."
        ),
        confidence=0.8,
    )


def comparison_shopping_rule(pattern: Pattern, sequence: Sequence[Event]) -> AlternativeFinding | None:
    pricing = sum(
        1
        for event in sequence
        if _signals(event).has_pricing
        or _signals(event).has_comparison
        or _semantic(event).page.type == "product"
    )
    if pricing < 3:
        return None
    sites = len({extract_domain(event.url) for event in sequence})
    return AlternativeFinding(
        current_method=f"Manually comparing prices across {sites} sites",
        better_method="Use a price tracking extension like Honey, CamelCamelCamel, or Keepa",
        improvement_explanation=(
            f"You viewed {pricing} pricing/product pages across multiple sites. Price trackers "
            "automatically compare prices, show price history, and alert you to deals."
        ),
        confidence=0.85,
    )


def after_hours_rule(pattern: Pattern, sequence: Sequence[Event]) -> AlternativeFinding | None:
    if not pattern.inferred_goal:
        return None
    after_hours = sum(
        1
        for event in sequence
        if _semantic(event).temporal.is_work_hours is False
        and _semantic(event).page.category in ("development", "professional", "productivity")
    )
    if after_hours < 3:
        return None
    return AlternativeFinding(
        current_method=f"Working on {pattern.inferred_goal} outside of work hours",
        better_method="Set work boundaries and use time-boxing",
        improvement_explanation=(
            f"You're doing work-related activities outside work hours {after_hours} times in "
            "this pattern. Consider separate browser profiles for work and personal use, or "
            "time-tracking tools to enforce boundaries."
        ),
        confidence=0.7,
    )


def research_tool_rule(pattern: Pattern, sequence: Sequence[Event]) -> AlternativeFinding | None:
    goal = (pattern.inferred_goal or "").lower()
    if "research" not in goal and "learning" not in goal:
        return None
    seeking = sum(1 for event in sequence if _semantic(event).purpose == "information_seeking")
    if seeking < 4:
        return None
    return AlternativeFinding(
        current_method="Searching and browsing multiple sources for information",
        better_method="Use a research tool like Notion, Obsidian, or a web clipper",
        improvement_explanation=(
            f"You perform {seeking} information-seeking actions. A dedicated research tool "
            "helps you collect, organize, and connect information in one place, reducing "
            "context switching."
        ),
        confidence=0.75,
    )


def autofill_rule(pattern: Pattern, sequence: Sequence[Event]) -> AlternativeFinding | None:
    forms = sum(1 for event in sequence if _signals(event).has_forms)
    if forms < 2 or pattern.support < 2:
        return None
    return AlternativeFinding(
        current_method="Manually filling out forms repeatedly",
        better_method="Enable browser autofill or use a password manager",
        improvement_explanation=(
            f"You encounter {forms} forms in this workflow, and repeat it {pattern.support} "
            "times. Browser autofill or password managers with form-filling can save "
            "significant time."
        ),
        confidence=0.75,
    )


DEFAULT_ALTERNATIVE_RULES: List[AlternativeRule] = [
    deep_reading_rule,
    comparison_shopping_rule,
    after_hours_rule,
    research_tool_rule,
    autofill_rule,
]


def find_better_alternative(
    pattern: Pattern, rules: Iterable[AlternativeRule] = DEFAULT_ALTERNATIVE_RULES
) -> AlternativeFinding | None:
    sequence = pattern.analysis_sequence
    if len(sequence) < 2:
        return None
    for rule in rules:
        finding = rule(pattern, sequence)
        if finding is not None:
            return finding
    return None


# ----------------------------------------------------------------------
# Insight builders
# ----------------------------------------------------------------------


def _supporting_events(events: Sequence[Event]) -> List[str]:
    return [event.id for event in events if event.id]


def _site_names(events: Sequence[Event]) -> List[str]:
    names: List[str] = []
    for event in events:
        name = display_domain(event.url) or "unknown"
        if name not in names:
            names.append(name)
    return names


def insight_from_inefficiency(pattern: Pattern, finding: InefficiencyFinding) -> WorkflowInsight:
    title, recommendation = _INEFFICIENCY_COPY[finding.inefficiency_type]
    return WorkflowInsight(
        id=generate_id("ins"),
        user_id=pattern.user_id,
        pattern_id=pattern.id,
        insight_type=InsightType.INEFFICIENT_NAVIGATION,
        title=title,
        description=finding.explanation,
        recommendation=recommendation,
        impact_score=(finding.wasted_time / 60) * pattern.support,
        impact_level=_pattern_impact(pattern),
        confidence=0.75,
        evidence=Evidence(
            pattern_occurrences=pattern.support,
            total_time_spent=finding.wasted_time * pattern.support,
            friction_events=finding.wasted_actions,
            supporting_events=_supporting_events(pattern.sequence),
            wasted_actions=finding.wasted_actions,
            wasted_time=finding.wasted_time,
        ),
        time_saved_estimate=finding.wasted_time,
        effort_saved_estimate=min(finding.wasted_actions, 10),
        created_at=utcnow(),
    )


def insight_from_alternative(pattern: Pattern, finding: AlternativeFinding) -> WorkflowInsight:
    return WorkflowInsight(
        id=generate_id("ins"),
        user_id=pattern.user_id,
        pattern_id=pattern.id,
        insight_type=InsightType.BETTER_ALTERNATIVE,
        title="Better Approach Available",
        description=f"Current: {finding.current_method}",
        recommendation=f"Better: {finding.better_method}\n\n{finding.improvement_explanation}",
        impact_score=pattern.support * finding.confidence,
        impact_level=_pattern_impact(pattern),
        confidence=finding.confidence,
        evidence=Evidence(
            pattern_occurrences=pattern.support,
            supporting_events=_supporting_events(pattern.sequence),
        ),
        created_at=utcnow(),
    )


def analyze_friction(
    pattern: Pattern, quality: Sequence[InteractionQuality], *, threshold: float = 0.6
) -> WorkflowInsight | None:
    """Build a friction insight when the mean friction score reaches ``threshold``."""

    if not quality:
        return None
    scores = np.array([item.friction_score for item in quality], dtype=float)
    average = float(scores.mean())
    if average < threshold:
        return None

    breakdown = Counter(kind for item in quality for kind in item.friction_types if kind)
    sequence = pattern.analysis_sequence
    description = (
        f"This workflow on {', '.join(_site_names(sequence))} has an average friction score "
        f"of {average * 100:.0f}%."
    )
    if breakdown:
        dominant, count = breakdown.most_common(1)[0]
        template = FRICTION_DESCRIPTIONS.get(dominant, "Detected {kind} friction {count} time(s)")
        description += " " + template.format(count=count, kind=dominant) + "."

    recommendation = "Review this workflow to identify pain points."
    if pattern.inferred_goal:
        recommendation = (
            f'Your goal was "{pattern.inferred_goal}". Consider alternative tools or approaches '
            "for this task."
        )
    return WorkflowInsight(
        id=generate_id("ins"),
        user_id=pattern.user_id,
        pattern_id=pattern.id,
        insight_type=InsightType.FRICTION_POINT,
        title="High Friction Detected",
        description=description,
        recommendation=recommendation,
        impact_score=average * pattern.support,
        impact_level=_pattern_impact(pattern),
        confidence=0.85,
        evidence=Evidence(
            pattern_occurrences=pattern.support,
            friction_events=int((scores > 0.7).sum()),
            supporting_events=_supporting_events(sequence),
            friction_breakdown=dict(breakdown),
        ),
        created_at=utcnow(),
    )


def _step_label(event: Event) -> str:
    if event.type == EventType.CLICK:
        return "Click"
    if event.type == EventType.NAV:
        return "Navigate to"
    return event.type.value


def generate_productivity_insight(pattern: Pattern) -> WorkflowInsight | None:
    """Informational insight for frequent goal-bearing workflows."""

    if pattern.support < 5 or not pattern.inferred_goal or len(pattern.sequence) < 2:
        return None
    sequence = pattern.analysis_sequence
    sites = _site_names(sequence)
    site_list = ", ".join(sites[:3])

    step_lines = []
    for index, event in enumerate(sequence[:3], start=1):
        if event.title:
            title = event.title[:50] + ("..." if len(event.title) > 50 else "")
            page = f'"{title}"'
        else:
            page = display_domain(event.url) or "unknown"
        step_lines.append(f"{index}. {_step_label(event)} {page}")
    steps_text = "\n".join(step_lines)

    plural = "s" if pattern.support > 1 else ""
    description = (
        f"You perform this workflow {pattern.support} time{plural} across {len(sites)} "
        f"site{'s' if len(sites) > 1 else ''}: {site_list}{'...' if len(sites) > 3 else ''}."
        f"\n\nTypical steps:\n{steps_text}"
    )
    remaining = len(sequence) - 3
    if remaining > 0:
        description += f"\n...and {remaining} more step{'s' if remaining > 1 else ''}"

    if pattern.support >= 10:
        tips = [
            "Creating a dedicated browser workspace for this frequent task",
            "Setting up keyboard shortcuts to access these sites instantly",
            "Bookmarking the exact pages you visit most often",
        ]
    else:
        tips = [
            "Pinning these tabs to save time on navigation",
            "Bookmarking the starting point of this workflow",
            "Grouping these sites in a bookmark folder for quick access",
        ]
    recommendation = (
        f"This is a core part of your {pattern.inferred_goal} workflow. Consider:\n"
        + "\n".join(f"- {tip}" for tip in tips)
    )
    return WorkflowInsight(
        id=generate_id("ins"),
        user_id=pattern.user_id,
        pattern_id=pattern.id,
        insight_type=InsightType.WORKFLOW_IMPROVEMENT,
        title=f"Frequent Workflow: {pattern.inferred_goal}",
        description=description,
        recommendation=recommendation,
        impact_score=pattern.support * 0.5,
        impact_level=ImpactLevel.MEDIUM if pattern.support >= 10 else ImpactLevel.LOW,
        confidence=pattern.confidence,
        evidence=Evidence(
            pattern_occurrences=pattern.support,
            supporting_events=_supporting_events(sequence),
            workflow_steps=steps_text,
        ),
        created_at=utcnow(),
    )


# ----------------------------------------------------------------------
# Synthesizer
# ----------------------------------------------------------------------


class InsightSynthesizer:
    """Runs every detector family over each pattern."""

    def __init__(
        self,
        *,
        friction_lookup: FrictionLookup | None = None,
        friction_threshold: float = 0.6,
        inefficiency_rules: Iterable[InefficiencyRule] = DEFAULT_INEFFICIENCY_RULES,
        alternative_rules: Iterable[AlternativeRule] = DEFAULT_ALTERNATIVE_RULES,
    ) -> None:
        self.friction_lookup = friction_lookup
        self.friction_threshold = friction_threshold
        self.inefficiency_rules = list(inefficiency_rules)
        self.alternative_rules = list(alternative_rules)

    def synthesize_pattern(self, pattern: Pattern) -> List[WorkflowInsight]:
        insights: List[WorkflowInsight] = []

        inefficiency = analyze_inefficiency(pattern, self.inefficiency_rules)
        if inefficiency is not None:
            logger.debug("Pattern %s: inefficiency %s", pattern.id, inefficiency.inefficiency_type)
            insights.append(insight_from_inefficiency(pattern, inefficiency))

        alternative = find_better_alternative(pattern, self.alternative_rules)
        if alternative is not None:
            logger.debug("Pattern %s: alternative approach found", pattern.id)
            insights.append(insight_from_alternative(pattern, alternative))

        friction = self._friction(pattern)
        if friction is not None:
            logger.debug("Pattern %s: high friction", pattern.id)
            insights.append(friction)

        productivity = generate_productivity_insight(pattern)
        if productivity is not None:
            insights.append(productivity)
        return insights

    def synthesize(self, patterns: Iterable[Pattern]) -> List[WorkflowInsight]:
        insights: List[WorkflowInsight] = []
        count = 0
        for pattern in patterns:
            insights.extend(self.synthesize_pattern(pattern))
            count += 1
        logger.info("Generated %d insights from %d patterns", len(insights), count)
        return insights

    def _friction(self, pattern: Pattern) -> WorkflowInsight | None:
        if self.friction_lookup is None:
            return None
        event_ids = _supporting_events(pattern.analysis_sequence)
        if not event_ids:
            return None
        try:
            quality = self.friction_lookup(event_ids)
        except Exception as exc:  # sqlite errors or a failing injected lookup
            logger.warning("Friction lookup failed for pattern %s: %s", pattern.id, exc)
            return None
        return analyze_friction(pattern, quality, threshold=self.friction_threshold)
