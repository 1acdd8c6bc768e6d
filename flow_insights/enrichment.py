"""Attach semantic page context to mined patterns."""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import replace
from typing import List

from .models import Event, Pattern
from .store import ActivityStore
from .utils import display_domain

logger = logging.getLogger(__name__)


def pattern_domains(pattern: Pattern) -> List[str]:
    """Unique display domains of the pattern's sequence, in order of appearance."""

    domains: List[str] = []
    for event in pattern.sequence:
        domain = display_domain(event.url)
        if domain and domain not in domains:
            domains.append(domain)
    return domains


class SemanticEnricher:
    """Re-fetches a pattern's own events together with their semantic context."""

    def __init__(self, store: ActivityStore, *, domain_limit: int = 100) -> None:
        self.store = store
        self.domain_limit = domain_limit

    def enrich(self, pattern: Pattern) -> Pattern:
        """Return a copy carrying ``semantic_enriched_sequence`` when data exists."""

        try:
            events = self._fetch(pattern)
        except sqlite3.Error as exc:
            logger.warning("Semantic enrichment failed for pattern %s: %s", pattern.id, exc)
            return pattern
        if not events:
            logger.debug("Pattern %s has no semantic events yet", pattern.id)
            return pattern
        logger.debug(
            "Enriched pattern %s with %d semantic events", pattern.id, len(events)
        )
        return replace(pattern, semantic_enriched_sequence=events)

    def enrich_all(self, patterns: List[Pattern]) -> List[Pattern]:
        return [self.enrich(pattern) for pattern in patterns]

    def _fetch(self, pattern: Pattern) -> List[Event]:
        event_ids = pattern.event_ids
        if event_ids:
            events = self.store.fetch_events_by_ids(event_ids, require_semantic=True)
            if events:
                return events
        domains = pattern_domains(pattern)
        if not domains:
            return []
        logger.debug(
            "No semantic events by id for pattern %s, falling back to domain search on %s",
            pattern.id,
            domains[:3],
        )
        return self.store.fetch_semantic_events_by_domains(
            pattern.user_id, domains, limit=self.domain_limit
        )
