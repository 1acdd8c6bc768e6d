from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from flow_insights.models import Event, event_from_dict
from flow_insights.store import ActivityStore

BASE_TIME = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

QUICK_BOUNCE = {
    "purpose": "navigation",
    "pageMetadata": {"type": "listing", "category": "shopping"},
    "journeyState": {"sessionDuration": 5000, "scrollDepth": 10, "interactionDepth": 1},
}


def build_event(
    event_id: str,
    *,
    type: str = "click",
    url: str = "https://shop.example.com/list",
    at: float = 0.0,
    user_id: str = "user-1",
    dom_path: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    semantic: Optional[Dict[str, Any]] = None,
    dwell_ms: Optional[int] = None,
    title: Optional[str] = None,
    base: datetime = BASE_TIME,
) -> Event:
    return event_from_dict(
        {
            "id": event_id,
            "user_id": user_id,
            "timestamp": base + timedelta(seconds=at),
            "type": type,
            "url": url,
            "dom_path": dom_path,
            "metadata": metadata or {},
            "semantic": semantic,
            "dwell_ms": dwell_ms,
            "title": title,
        }
    )


def build_bursts(
    bursts: int = 4,
    *,
    user_id: str = "user-1",
    url: str = "https://shop.example.com/list",
    gap: float = 600.0,
    offset: float = 0.0,
    semantic: Optional[Dict[str, Any]] = None,
    base: datetime = BASE_TIME,
) -> List[Event]:
    """Repeat click -> search -> nav on one site, bursts separated by ``gap`` seconds."""

    events: List[Event] = []
    for burst in range(bursts):
        start = offset + burst * gap
        prefix = f"{user_id}-{url.split('/')[2]}-{burst}"
        events.append(
            build_event(
                f"{prefix}-0",
                type="click",
                url=url,
                at=start,
                user_id=user_id,
                dom_path=f"ul#results-{burst}.list > li[{burst + 1}] > a.item.link",
                semantic=semantic,
                base=base,
            )
        )
        events.append(
            build_event(
                f"{prefix}-1",
                type="search",
                url=url,
                at=start + 5,
                user_id=user_id,
                dom_path="form.search > input",
                metadata={"query": f"lamp {burst}"},
                semantic=semantic,
                base=base,
            )
        )
        events.append(
            build_event(
                f"{prefix}-2",
                type="nav",
                url=url,
                at=start + 10,
                user_id=user_id,
                semantic=semantic,
                base=base,
            )
        )
    return events


@pytest.fixture
def make_event():
    return build_event


@pytest.fixture
def make_bursts():
    return build_bursts


@pytest.fixture
def store():
    activity_store = ActivityStore(":memory:")
    yield activity_store
    activity_store.close()
