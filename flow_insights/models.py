"""Data models for observed events, mined patterns and derived insights."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

from .utils import parse_timestamp

TEXT_LIMIT = 500


class EventType(str, Enum):
    CLICK = "click"
    SEARCH = "search"
    FORM = "form"
    NAV = "nav"
    FOCUS = "focus"
    BLUR = "blur"
    IDLE = "idle"
    ERROR = "error"
    FRICTION = "friction"
    SCROLL = "scroll"
    DWELL = "dwell"


class InsightType(str, Enum):
    INEFFICIENT_NAVIGATION = "inefficient_navigation"
    FRICTION_POINT = "friction_point"
    BETTER_ALTERNATIVE = "better_alternative"
    WORKFLOW_IMPROVEMENT = "workflow_improvement"


class ImpactLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class InsightStatus(str, Enum):
    NEW = "new"
    ACKNOWLEDGED = "acknowledged"
    HELPFUL = "helpful"
    NOT_HELPFUL = "not_helpful"
    DISMISSED = "dismissed"


class ConnectionType(str, Enum):
    SEQUENTIAL = "sequential"
    TRIGGER = "trigger"
    PARALLEL = "parallel"


# ----------------------------------------------------------------------
# Event payload variants
# ----------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ClickPayload:
    tag_name: Optional[str] = None


@dataclass(frozen=True, slots=True)
class SearchPayload:
    query: Optional[str] = None


@dataclass(frozen=True, slots=True)
class FormPayload:
    field_name: Optional[str] = None
    action: str = "field"


@dataclass(frozen=True, slots=True)
class NavPayload:
    direction: Optional[str] = None
    from_url: Optional[str] = None

    @property
    def is_back(self) -> bool:
        return self.direction == "back"


@dataclass(frozen=True, slots=True)
class ScrollPayload:
    depth: Optional[float] = None


@dataclass(frozen=True, slots=True)
class IdlePayload:
    duration_ms: Optional[int] = None


@dataclass(frozen=True, slots=True)
class ErrorPayload:
    message: Optional[str] = None


@dataclass(frozen=True, slots=True)
class FrictionPayload:
    friction_type: Optional[str] = None


EventPayload = Union[
    ClickPayload,
    SearchPayload,
    FormPayload,
    NavPayload,
    ScrollPayload,
    IdlePayload,
    ErrorPayload,
    FrictionPayload,
]

# Raw metadata keys consumed by each payload variant, camelCase aliases included.
_PAYLOAD_KEYS: Dict[EventType, Dict[str, tuple[str, ...]]] = {
    EventType.CLICK: {"tag_name": ("tag_name", "tagName", "element")},
    EventType.SEARCH: {"query": ("query", "q")},
    EventType.FORM: {"field_name": ("field_name", "fieldName", "field"), "action": ("action",)},
    EventType.NAV: {"direction": ("direction",), "from_url": ("from_url", "fromUrl", "from")},
    EventType.SCROLL: {"depth": ("depth", "scroll_depth", "scrollDepth")},
    EventType.IDLE: {"duration_ms": ("duration_ms", "durationMs")},
    EventType.ERROR: {"message": ("message", "error")},
    EventType.FRICTION: {"friction_type": ("friction_type", "frictionType")},
}

_PAYLOAD_CLASSES: Dict[EventType, type] = {
    EventType.CLICK: ClickPayload,
    EventType.SEARCH: SearchPayload,
    EventType.FORM: FormPayload,
    EventType.NAV: NavPayload,
    EventType.SCROLL: ScrollPayload,
    EventType.IDLE: IdlePayload,
    EventType.ERROR: ErrorPayload,
    EventType.FRICTION: FrictionPayload,
}


# ----------------------------------------------------------------------
# Semantic context
# ----------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PageMetadata:
    type: Optional[str] = None
    category: Optional[str] = None
    main_heading: Optional[str] = None


@dataclass(frozen=True, slots=True)
class JourneyState:
    session_duration_ms: Optional[float] = None
    scroll_depth: Optional[float] = None
    interaction_depth: Optional[int] = None


@dataclass(frozen=True, slots=True)
class TemporalContext:
    time_of_day: Optional[int] = None
    day_of_week: Optional[int] = None
    is_work_hours: Optional[bool] = None


@dataclass(frozen=True, slots=True)
class ContentSignals:
    has_video: bool = False
    has_images: bool = False
    has_forms: bool = False
    has_pricing: bool = False
    has_reviews: bool = False
    has_comparison: bool = False


@dataclass(frozen=True, slots=True)
class SemanticContext:
    """Page and element context attached to an event by the capture layer."""

    purpose: Optional[str] = None
    page: PageMetadata = field(default_factory=PageMetadata)
    journey: JourneyState = field(default_factory=JourneyState)
    temporal: TemporalContext = field(default_factory=TemporalContext)
    signals: ContentSignals = field(default_factory=ContentSignals)


# ----------------------------------------------------------------------
# Events
# ----------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Event:
    """An immutable interaction fact recorded by the capture layer."""

    id: str
    user_id: str
    timestamp: datetime
    type: EventType
    url: str
    dom_path: Optional[str] = None
    text: Optional[str] = None
    title: Optional[str] = None
    metadata: Mapping[str, Any] = field(default_factory=dict)
    dwell_ms: Optional[int] = None
    payload: Optional[EventPayload] = None
    semantic: Optional[SemanticContext] = None

    @property
    def is_back_navigation(self) -> bool:
        return isinstance(self.payload, NavPayload) and self.payload.is_back

    def with_semantic(self, semantic: SemanticContext | None) -> "Event":
        return replace(self, semantic=semantic)


@dataclass(slots=True)
class EventSequence:
    """Contiguous window of events on one domain; never persisted."""

    events: List[Event]
    domain: str
    signature: str

    def __len__(self) -> int:
        return len(self.events)


# ----------------------------------------------------------------------
# Patterns and insights
# ----------------------------------------------------------------------


@dataclass(slots=True)
class Pattern:
    """Recurring event sequence mined for one user."""

    id: str
    user_id: str
    signature: str
    sequence: List[Event]
    support: int
    confidence: float
    first_seen: datetime
    last_seen: datetime
    inferred_goal: Optional[str] = None
    goal_category: Optional[str] = None
    goal_confidence: Optional[float] = None
    goal_reasoning: Optional[str] = None
    automation_potential: Optional[float] = None
    semantic_enriched_sequence: Optional[List[Event]] = None

    @property
    def analysis_sequence(self) -> List[Event]:
        """Enriched events when available, otherwise the stored sequence."""

        if self.semantic_enriched_sequence:
            return self.semantic_enriched_sequence
        return self.sequence

    @property
    def event_ids(self) -> List[str]:
        return [event.id for event in self.sequence if event.id]


@dataclass(slots=True)
class InteractionQuality:
    """Externally computed friction score for a single event."""

    event_id: str
    friction_score: float
    friction_types: List[str] = field(default_factory=list)


@dataclass(slots=True)
class InferredGoal:
    goal: str
    goal_category: str
    confidence: float
    reasoning: str
    automation_potential: float


@dataclass(slots=True)
class Evidence:
    pattern_occurrences: int
    total_time_spent: float = 0.0
    friction_events: int = 0
    supporting_events: List[str] = field(default_factory=list)
    wasted_actions: int = 0
    wasted_time: float = 0.0
    friction_breakdown: Dict[str, int] = field(default_factory=dict)
    workflow_steps: Optional[str] = None


@dataclass(slots=True)
class WorkflowInsight:
    """Actionable observation derived from exactly one pattern."""

    id: str
    user_id: str
    pattern_id: str
    insight_type: InsightType
    title: str
    description: str
    recommendation: str
    impact_score: float
    impact_level: ImpactLevel
    confidence: float
    evidence: Evidence
    time_saved_estimate: Optional[float] = None
    effort_saved_estimate: Optional[int] = None
    status: InsightStatus = InsightStatus.NEW
    created_at: Optional[datetime] = None


@dataclass(slots=True)
class ConnectionEvidence:
    co_occurrence_count: int
    time_proximity_avg: float


@dataclass(slots=True)
class Connection:
    """Relationship discovered between two patterns."""

    type: ConnectionType
    patterns: List[str]
    relationship: str
    confidence: float
    evidence: ConnectionEvidence
    always_in_order: Optional[bool] = None
    trigger_probability: Optional[float] = None
    preferred_pattern: Optional[str] = None


@dataclass(slots=True)
class WorkflowStep:
    step: int
    action: str
    kind: str
    domain: str
    purpose: Optional[str] = None
    time_estimate: float = 0.0
    is_redundant: bool = False
    is_friction: bool = False


@dataclass(slots=True)
class WorkflowSummary:
    steps: List[WorkflowStep]
    total_time: float
    total_steps: int
    friction_points: int


@dataclass(slots=True)
class WorkflowImprovement:
    steps_saved: int
    time_saved: float
    friction_reduced: int
    efficiency_gain: float


@dataclass(slots=True)
class WorkflowComparison:
    pattern_id: str
    current: WorkflowSummary
    suggested: WorkflowSummary
    improvement: WorkflowImprovement
    explanation: str


@dataclass(slots=True)
class Recommendation:
    title: str
    description: str
    current_approach: str
    suggested_approach: str
    why_better: str
    time_saved: float
    effort_saved: int
    confidence: float


# ----------------------------------------------------------------------
# Serialisation helpers
# ----------------------------------------------------------------------


def _first(mapping: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        if key in mapping and mapping[key] is not None:
            return mapping[key]
    return None


def _payload_from_meta(event_type: EventType, meta: Mapping[str, Any]) -> tuple[Optional[EventPayload], Dict[str, Any]]:
    keys = _PAYLOAD_KEYS.get(event_type)
    if keys is None:
        return None, dict(meta)
    consumed: set[str] = set()
    values: Dict[str, Any] = {}
    for attr, aliases in keys.items():
        value = _first(meta, aliases)
        if value is not None:
            values[attr] = value
        consumed.update(aliases)
    residual = {key: value for key, value in meta.items() if key not in consumed}
    return _PAYLOAD_CLASSES[event_type](**values), residual


def semantic_from_dict(payload: Mapping[str, Any] | None) -> Optional[SemanticContext]:
    """Build semantic context from camelCase capture output or stored snake_case."""

    if not payload:
        return None
    page_raw = payload.get("page") or payload.get("pageMetadata") or {}
    journey_raw = payload.get("journey") or payload.get("journeyState") or {}
    temporal_raw = (
        payload.get("temporal") or payload.get("temporalContext") or {}
    )
    signals_raw = payload.get("signals") or payload.get("contentSignals") or {}
    return SemanticContext(
        purpose=payload.get("purpose"),
        page=PageMetadata(
            type=page_raw.get("type"),
            category=page_raw.get("category"),
            main_heading=_first(page_raw, ("main_heading", "mainHeading", "heading")),
        ),
        journey=JourneyState(
            session_duration_ms=_first(journey_raw, ("session_duration_ms", "sessionDuration")),
            scroll_depth=_first(journey_raw, ("scroll_depth", "scrollDepth")),
            interaction_depth=_first(journey_raw, ("interaction_depth", "interactionDepth")),
        ),
        temporal=TemporalContext(
            time_of_day=_first(temporal_raw, ("time_of_day", "timeOfDay")),
            day_of_week=_first(temporal_raw, ("day_of_week", "dayOfWeek")),
            is_work_hours=_first(temporal_raw, ("is_work_hours", "isWorkHours")),
        ),
        signals=ContentSignals(
            has_video=bool(_first(signals_raw, ("has_video", "hasVideo"))),
            has_images=bool(_first(signals_raw, ("has_images", "hasImages"))),
            has_forms=bool(_first(signals_raw, ("has_forms", "hasForms"))),
            has_pricing=bool(_first(signals_raw, ("has_pricing", "hasPricing"))),
            has_reviews=bool(_first(signals_raw, ("has_reviews", "hasReviews"))),
            has_comparison=bool(_first(signals_raw, ("has_comparison", "hasComparison"))),
        ),
    )


def semantic_to_dict(semantic: SemanticContext | None) -> Optional[Dict[str, Any]]:
    if semantic is None:
        return None
    return {
        "purpose": semantic.purpose,
        "page": {
            "type": semantic.page.type,
            "category": semantic.page.category,
            "main_heading": semantic.page.main_heading,
        },
        "journey": {
            "session_duration_ms": semantic.journey.session_duration_ms,
            "scroll_depth": semantic.journey.scroll_depth,
            "interaction_depth": semantic.journey.interaction_depth,
        },
        "temporal": {
            "time_of_day": semantic.temporal.time_of_day,
            "day_of_week": semantic.temporal.day_of_week,
            "is_work_hours": semantic.temporal.is_work_hours,
        },
        "signals": {
            "has_video": semantic.signals.has_video,
            "has_images": semantic.signals.has_images,
            "has_forms": semantic.signals.has_forms,
            "has_pricing": semantic.signals.has_pricing,
            "has_reviews": semantic.signals.has_reviews,
            "has_comparison": semantic.signals.has_comparison,
        },
    }


def event_from_dict(payload: Mapping[str, Any]) -> Event:
    """Construct an event from a capture-layer or stored dictionary."""

    event_type = EventType(payload["type"])
    meta = payload.get("metadata")
    if meta is None:
        meta = payload.get("meta") or {}
    typed_payload, residual = _payload_from_meta(event_type, meta)
    text = payload.get("text")
    if text and len(text) > TEXT_LIMIT:
        text = text[:TEXT_LIMIT]
    dwell = payload.get("dwell_ms", payload.get("dwellMs"))
    semantic = payload.get("semantic")
    if semantic is None:
        semantic = payload.get("semantic_context")
    return Event(
        id=str(payload["id"]),
        user_id=str(payload.get("user_id") or payload.get("userId") or ""),
        timestamp=parse_timestamp(payload.get("timestamp", payload.get("ts"))),
        type=event_type,
        url=payload.get("url") or "",
        dom_path=payload.get("dom_path", payload.get("domPath")),
        text=text,
        title=payload.get("title"),
        metadata=residual,
        dwell_ms=int(dwell) if dwell is not None else None,
        payload=typed_payload,
        semantic=semantic if isinstance(semantic, SemanticContext) else semantic_from_dict(semantic),
    )


def event_to_dict(event: Event) -> Dict[str, Any]:
    meta: Dict[str, Any] = dict(event.metadata)
    if event.payload is not None:
        for attr in _PAYLOAD_KEYS[event.type]:
            value = getattr(event.payload, attr)
            if value is not None:
                meta[attr] = value
    return {
        "id": event.id,
        "user_id": event.user_id,
        "timestamp": event.timestamp.isoformat(),
        "type": event.type.value,
        "url": event.url,
        "dom_path": event.dom_path,
        "text": event.text,
        "title": event.title,
        "metadata": meta,
        "dwell_ms": event.dwell_ms,
        "semantic": semantic_to_dict(event.semantic),
    }
