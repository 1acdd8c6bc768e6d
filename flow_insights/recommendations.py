"""Describe a pattern as workflow steps and propose a leaner version.

Step kinds drive every decision here, never the rendered action text:

* ``click``  2 s, ``search`` 30 s, ``read`` measured dwell or 15 s
* ``scroll`` 5 s, ``form`` 10 s, ``back`` 3 s, ``nav`` 5 s, anything else 3 s
"""

from __future__ import annotations

from dataclasses import replace
from typing import List, Sequence

import numpy as np

from .models import (
    ClickPayload,
    Event,
    EventType,
    FrictionPayload,
    Pattern,
    Recommendation,
    WorkflowComparison,
    WorkflowImprovement,
    WorkflowStep,
    WorkflowSummary,
)
from .utils import extract_domain

STEP_SECONDS = {
    "click": 2.0,
    "search": 30.0,
    "read": 15.0,
    "scroll": 5.0,
    "form": 10.0,
    "back": 3.0,
    "nav": 5.0,
    "other": 3.0,
}

REFINED_SEARCH = "Perform refined search with specific keywords"
AUTOFILL = "Use browser autofill for form"

_KINDS = {
    EventType.CLICK: "click",
    EventType.SEARCH: "search",
    EventType.DWELL: "read",
    EventType.SCROLL: "scroll",
    EventType.FORM: "form",
}


def step_kind(event: Event) -> str:
    if event.type == EventType.NAV:
        return "back" if event.is_back_navigation else "nav"
    return _KINDS.get(event.type, "other")


def estimate_step_time(event: Event) -> float:
    kind = step_kind(event)
    if kind == "read" and event.dwell_ms:
        return event.dwell_ms / 1000
    return STEP_SECONDS[kind]


def _describe_action(event: Event, kind: str, domain: str, purpose: str) -> str:
    if kind == "click":
        if purpose == "navigation":
            return "Navigate to new page"
        if purpose == "purchase_intent":
            return "Click to purchase/checkout"
        tag = event.payload.tag_name if isinstance(event.payload, ClickPayload) else None
        return f"Click on {tag or 'element'}"
    if kind == "search":
        return "Search for information"
    if kind == "read":
        return f"Read/review content on {domain}"
    if kind == "scroll":
        return "Scroll through page"
    if kind == "form":
        return "Fill out form field"
    if kind == "back":
        return "Go back to previous page"
    if kind == "nav":
        return f"Navigate to {domain}"
    return f"{event.type.value} on {domain}"


def _is_friction(event: Event, purpose: str) -> bool:
    if event.type == EventType.FRICTION or event.is_back_navigation:
        return True
    if purpose == "form_submission":
        return True
    return event.type == EventType.FORM and bool(event.semantic and event.semantic.signals.has_forms)


def describe_workflow(sequence: Sequence[Event]) -> List[WorkflowStep]:
    steps: List[WorkflowStep] = []
    seen: set[tuple[str, str]] = set()
    for index, event in enumerate(sequence, start=1):
        domain = extract_domain(event.url) or "unknown"
        kind = step_kind(event)
        purpose = (event.semantic.purpose if event.semantic else None) or event.type.value
        steps.append(
            WorkflowStep(
                step=index,
                action=_describe_action(event, kind, domain, purpose),
                kind=kind,
                domain=domain,
                purpose=purpose,
                time_estimate=estimate_step_time(event),
                is_redundant=(domain, kind) in seen,
                is_friction=_is_friction(event, purpose),
            )
        )
        seen.add((domain, kind))
    return steps


def optimize_workflow(steps: Sequence[WorkflowStep]) -> List[WorkflowStep]:
    """Drop redundant and back steps, merge search runs and collapse form filling."""

    optimized: List[WorkflowStep] = []
    form_count = sum(1 for step in steps if step.kind == "form")
    autofilled = False
    index = 0
    while index < len(steps):
        step = steps[index]
        index += 1
        if step.is_redundant or step.kind == "back":
            continue
        if step.kind == "search" and index < len(steps) and steps[index].kind == "search":
            while index < len(steps) and steps[index].kind == "search":
                index += 1
            optimized.append(
                replace(
                    step,
                    step=len(optimized) + 1,
                    action=REFINED_SEARCH,
                    time_estimate=step.time_estimate * 0.7,
                )
            )
            continue
        if step.kind == "form" and form_count >= 2:
            if not autofilled:
                autofilled = True
                optimized.append(
                    replace(
                        step,
                        step=len(optimized) + 1,
                        action=AUTOFILL,
                        time_estimate=step.time_estimate * 0.3,
                        is_friction=False,
                    )
                )
            continue
        optimized.append(replace(step, step=len(optimized) + 1))
    return optimized


def total_time(steps: Sequence[WorkflowStep]) -> float:
    if not steps:
        return 0.0
    return float(np.sum([step.time_estimate for step in steps]))


def summarize_steps(steps: Sequence[WorkflowStep]) -> WorkflowSummary:
    return WorkflowSummary(
        steps=list(steps),
        total_time=total_time(steps),
        total_steps=len(steps),
        friction_points=sum(1 for step in steps if step.is_friction),
    )


def calculate_time_saved(current: Sequence[WorkflowStep], suggested: Sequence[WorkflowStep]) -> float:
    return max(0.0, total_time(current) - total_time(suggested))


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'s' if count > 1 else ''}"


def _comparison_explanation(current: Sequence[WorkflowStep], suggested: Sequence[WorkflowStep]) -> str:
    steps_saved = len(current) - len(suggested)
    redundant = sum(1 for step in current if step.is_redundant)
    friction = sum(1 for step in current if step.is_friction)
    explanation = ""
    if steps_saved > 0:
        explanation += f"By eliminating {_plural(steps_saved, 'unnecessary step')}, "
    if redundant > 0:
        explanation += f"removing {_plural(redundant, 'redundant action')}, "
    if friction > 0:
        explanation += f"and reducing {_plural(friction, 'friction point')}, "
    return explanation + "you can complete this task more efficiently."


def compare_workflows(pattern: Pattern) -> WorkflowComparison:
    current_steps = describe_workflow(pattern.sequence)
    suggested_steps = optimize_workflow(current_steps)
    current = summarize_steps(current_steps)
    suggested = summarize_steps(suggested_steps)
    time_saved = current.total_time - suggested.total_time
    gain = (time_saved / current.total_time) * 100 if current.total_time else 0.0
    return WorkflowComparison(
        pattern_id=pattern.id,
        current=current,
        suggested=suggested,
        improvement=WorkflowImprovement(
            steps_saved=current.total_steps - suggested.total_steps,
            time_saved=time_saved,
            friction_reduced=current.friction_points - suggested.friction_points,
            efficiency_gain=gain,
        ),
        explanation=_comparison_explanation(current_steps, suggested_steps),
    )


def explain_improvement(current: Sequence[WorkflowStep], suggested: Sequence[WorkflowStep]) -> str:
    improvements: List[str] = []

    steps_saved = len(current) - len(suggested)
    if steps_saved > 0:
        improvements.append(f"Eliminates {_plural(steps_saved, 'unnecessary step')}")

    redundant = sum(1 for step in current if step.is_redundant)
    if redundant > 0:
        improvements.append(f"Removes {_plural(redundant, 'redundant action')}")

    current_friction = sum(1 for step in current if step.is_friction)
    suggested_friction = sum(1 for step in suggested if step.is_friction)
    if current_friction > suggested_friction:
        improvements.append(f"Reduces {_plural(current_friction - suggested_friction, 'friction point')}")

    def count(steps: Sequence[WorkflowStep], kind: str) -> int:
        return sum(1 for step in steps if step.kind == kind)

    if count(current, "back") and not count(suggested, "back"):
        improvements.append("Eliminates need for back button navigation")
    if count(current, "search") > count(suggested, "search"):
        improvements.append("Uses more refined search queries to find information faster")
    if count(current, "form") > 1 and count(suggested, "form") <= 1:
        improvements.append("Leverages browser autofill to speed up data entry")

    if not improvements:
        return "Streamlines the workflow for better efficiency."
    return ". ".join(improvements) + "."


def _unique_domains(sequence: Sequence[Event]) -> List[str]:
    domains: List[str] = []
    for event in sequence:
        domain = extract_domain(event.url)
        if domain and domain not in domains:
            domains.append(domain)
    return domains


def _recommendation_title(pattern: Pattern) -> str:
    if pattern.inferred_goal:
        return f"Optimize: {pattern.inferred_goal}"
    domains = _unique_domains(pattern.sequence)
    if len(domains) == 1:
        return f"Streamline {domains[0]} workflow"
    if domains:
        return "Optimize multi-site workflow"
    return "Workflow optimization available"


def _step_line(step: WorkflowStep) -> str:
    if step.domain and step.domain != "unknown" and not step.action.endswith(step.domain):
        return f"- {step.action} on {step.domain}"
    return f"- {step.action}"


def _current_approach(steps: Sequence[WorkflowStep]) -> str:
    lines = ["Currently, you:"]
    lines.extend(_step_line(step) for step in [step for step in steps if not step.is_redundant][:5])
    if len(steps) > 5:
        lines.append(f"- ... and {len(steps) - 5} more steps")
    redundant = sum(1 for step in steps if step.is_redundant)
    friction = sum(1 for step in steps if step.is_friction)
    if redundant:
        lines.append(f"Includes {_plural(redundant, 'redundant step')}")
    if friction:
        lines.append(f"Includes {_plural(friction, 'friction point')}")
    return "\n".join(lines)


def _suggested_approach(steps: Sequence[WorkflowStep]) -> str:
    return "\n".join(["Suggested approach:"] + [_step_line(step) for step in steps])


def generate_recommendation(pattern: Pattern) -> Recommendation:
    current = describe_workflow(pattern.sequence)
    suggested = optimize_workflow(current)
    return Recommendation(
        title=_recommendation_title(pattern),
        description=(
            f"You perform this workflow {pattern.support} times with an average of "
            f"{len(current)} steps."
        ),
        current_approach=_current_approach(current),
        suggested_approach=_suggested_approach(suggested),
        why_better=explain_improvement(current, suggested),
        time_saved=total_time(current) - total_time(suggested),
        effort_saved=min(len(current) - len(suggested), 10),
        confidence=pattern.confidence,
    )


def _friction_count(sequence: Sequence[Event], friction_type: str) -> int:
    return sum(
        1
        for event in sequence
        if isinstance(event.payload, FrictionPayload) and event.payload.friction_type == friction_type
    )


def identify_friction_causes(pattern: Pattern) -> List[str]:
    sequence = pattern.sequence
    causes: List[str] = []
    backs = sum(1 for event in sequence if event.is_back_navigation)
    if backs >= 2:
        causes.append(f"Frequent back button usage ({backs}x) suggests poor navigation flow")
    for friction_type, message in (
        ("form_abandon", "Form abandonment detected ({count}x)"),
        ("rage_click", "Rage clicking detected ({count}x), element may not be responsive"),
        ("slow_load", "Slow page loads ({count}x) causing delays"),
        ("rapid_scroll", "Rapid scrolling ({count}x) suggests difficulty finding content"),
    ):
        count = _friction_count(sequence, friction_type)
        if count:
            causes.append(message.format(count=count))
    return causes


def _purpose(event: Event) -> str | None:
    return event.semantic.purpose if event.semantic else None


def generate_browser_tips(pattern: Pattern) -> List[str]:
    sequence = pattern.sequence
    domains = _unique_domains(sequence)
    tips: List[str] = []
    if len(domains) >= 3 and pattern.support >= 5:
        tips.append("Tip: Pin these tabs or save as a browser workspace to access them quickly")
    searches = [
        event
        for event in sequence
        if event.type == EventType.SEARCH or _purpose(event) == "information_seeking"
    ]
    if len(searches) >= 2:
        tips.append(
            'Tip: Use advanced search operators like "site:" or quotes for exact matches '
            "to find information faster"
        )
    forms = [
        event
        for event in sequence
        if event.type == EventType.FORM or _purpose(event) == "form_submission"
    ]
    if len(forms) >= 2:
        tips.append("Tip: Enable browser autofill in Settings > Autofill to save time on forms")
    if pattern.support >= 10 and len(domains) <= 2:
        tips.append("Tip: Bookmark this workflow or create a keyboard shortcut for quick access")
    if pattern.goal_category == "shopping":
        tips.append("Tip: Try a price comparison extension to check multiple sites automatically")
    if pattern.goal_category in ("research", "learning"):
        tips.append("Tip: Consider using a web clipper extension to save research in one place")
    return tips


def generate_keyboard_shortcuts(pattern: Pattern) -> List[str]:
    sequence = pattern.sequence
    shortcuts: List[str] = []
    # Focus changes are how the capture layer records tab switches.
    if any(event.type == EventType.FOCUS for event in sequence):
        shortcuts.append("Ctrl+Tab: Switch between tabs faster")
    if any(event.is_back_navigation for event in sequence):
        shortcuts.append("Alt+Left (Cmd+[ on Mac): Go back without clicking")
    if any(event.type == EventType.SEARCH for event in sequence):
        shortcuts.append("Ctrl+L (Cmd+L on Mac): Jump to address bar to search instantly")
    return shortcuts
