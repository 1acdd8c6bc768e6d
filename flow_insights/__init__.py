"""Flow Insights core package mining recurring browsing workflows into insights."""

from .config import InsightsConfig
from .detector import DetectedPattern, PatternDetector
from .models import Event, Pattern, WorkflowInsight, event_from_dict
from .pipeline import FlowInsights, InsightResult
from .store import ActivityStore, InvalidStatusError

__all__ = [
    "FlowInsights",
    "InsightResult",
    "InsightsConfig",
    "ActivityStore",
    "InvalidStatusError",
    "PatternDetector",
    "DetectedPattern",
    "Event",
    "Pattern",
    "WorkflowInsight",
    "event_from_dict",
]
