"""Decides which incoming Home Assistant events are persisted.

User filtering rules are evaluated first; when none matches, a built-in
heuristic keeps important or state-changing events and samples the rest.
"""

from __future__ import annotations

import logging
import random
import threading
import time
from collections import defaultdict, deque
from collections.abc import Callable, Iterable
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from src.settings import get_settings
from src.storage.entities.filter_rule import EventFilterRule, RuleAction

if TYPE_CHECKING:
    from src.ha.event_stream import HomeAssistantEvent
    from src.settings import Settings

logger = logging.getLogger(__name__)

IMPORTANT_EVENT_KEYWORDS = (
    "automation",
    "script",
    "scene",
    "service",
    "config",
    "device",
    "zone",
    "person",
)

IMPORTANT_DOMAINS = frozenset(
    {
        "binary_sensor",
        "sensor",
        "switch",
        "light",
        "climate",
        "media_player",
        "cover",
        "lock",
    }
)

_KEEP_ACTIONS = {RuleAction.ALLOW, RuleAction.PRIORITY, RuleAction.BATCH}
_DROP_ACTIONS = {RuleAction.BLOCK, RuleAction.LOG_ONLY}


class EventProcessor:
    """Event filter with per-minute frequency limits and processing stats."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        rng: Callable[[], float] = random.random,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        settings = settings or get_settings()
        self.type_limit = settings.event_type_limit_per_minute
        self.entity_limit = settings.event_entity_limit_per_minute
        self.active_start = settings.event_active_hours_start
        self.active_end = settings.event_active_hours_end
        self.sample_rate = settings.event_sample_rate
        self._rng = rng
        self._clock = clock or (lambda: datetime.now(UTC))
        self._lock = threading.Lock()

        self._minute: datetime | None = None
        self._type_counts: dict[str, int] = defaultdict(int)
        self._entity_counts: dict[str, int] = defaultdict(int)
        self._throttle_hits: dict[tuple[str, str], deque[datetime]] = defaultdict(deque)
        self.reset_stats()

    # ------------------------------------------------------------------
    # Decision
    # ------------------------------------------------------------------

    def should_store(
        self,
        event: HomeAssistantEvent,
        rules: Iterable[EventFilterRule] = (),
    ) -> bool:
        """Return True if the event should be persisted.

        Matching rules get their ``match_count`` and ``last_matched_at``
        updated in place.
        """
        started = time.perf_counter()
        now = self._clock()
        with self._lock:
            decision = self._evaluate_rules(event, rules, now)
            if decision is None:
                decision = self._heuristic(event, now)
            self._record(decision, (time.perf_counter() - started) * 1000)
        return decision

    def _evaluate_rules(
        self,
        event: HomeAssistantEvent,
        rules: Iterable[EventFilterRule],
        now: datetime,
    ) -> bool | None:
        for rule in sorted(rules, key=lambda r: r.priority):
            if not rule.enabled:
                continue
            if not rule.matches(event.event_type, event.entity_id, event.old_state, event.new_state):
                continue
            rule.record_match(now)
            if rule.action in _KEEP_ACTIONS:
                return True
            if rule.action in _DROP_ACTIONS:
                return False
            if rule.action == RuleAction.THROTTLE:
                return self._throttle(rule, event, now)
        return None

    def _throttle(self, rule: EventFilterRule, event: HomeAssistantEvent, now: datetime) -> bool:
        if not rule.frequency_limit:
            return True
        window = timedelta(minutes=rule.time_window_minutes or 60)
        hits = self._throttle_hits[(str(rule.id), event.entity_id or "")]
        while hits and now - hits[0] >= window:
            hits.popleft()
        if len(hits) >= rule.frequency_limit:
            return False
        hits.append(now)
        return True

    def _heuristic(self, event: HomeAssistantEvent, now: datetime) -> bool:
        minute = now.replace(second=0, microsecond=0)
        if self._minute != minute:
            self._minute = minute
            self._type_counts.clear()
            self._entity_counts.clear()

        self._type_counts[event.event_type] += 1
        if self._type_counts[event.event_type] > self.type_limit:
            return False
        if event.entity_id:
            self._entity_counts[event.entity_id] += 1
            if self._entity_counts[event.entity_id] > self.entity_limit:
                return False

        event_type = event.event_type.lower()
        if any(keyword in event_type for keyword in IMPORTANT_EVENT_KEYWORDS):
            return True
        if event.domain in IMPORTANT_DOMAINS:
            return True
        if event.old_state is not None and event.new_state is not None:
            return True
        if self.active_start <= now.hour < self.active_end:
            return True
        return self._rng() < self.sample_rate

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def _record(self, stored: bool, elapsed_ms: float) -> None:
        self._processed += 1
        if stored:
            self._stored += 1
        else:
            self._filtered += 1
        self._total_ms += elapsed_ms
        self._min_ms = elapsed_ms if self._min_ms is None else min(self._min_ms, elapsed_ms)
        self._max_ms = max(self._max_ms, elapsed_ms)

    def reset_stats(self) -> None:
        self._processed = 0
        self._filtered = 0
        self._stored = 0
        self._total_ms = 0.0
        self._min_ms: float | None = None
        self._max_ms = 0.0

    @property
    def stats(self) -> dict[str, Any]:
        processed = self._processed
        return {
            "total_processed": processed,
            "total_filtered": self._filtered,
            "total_stored": self._stored,
            "filter_rate": round(self._filtered / processed * 100, 2) if processed else 0.0,
            "min_processing_time_ms": round(self._min_ms or 0.0, 3),
            "max_processing_time_ms": round(self._max_ms, 3),
            "avg_processing_time_ms": round(self._total_ms / processed, 3) if processed else 0.0,
        }


_processor: EventProcessor | None = None


def get_event_processor() -> EventProcessor:
    """Process-wide processor shared by every event handler."""
    global _processor
    if _processor is None:
        _processor = EventProcessor()
    return _processor


def reset_event_processor() -> None:
    global _processor
    _processor = None


__all__ = ["EventProcessor", "get_event_processor", "reset_event_processor"]
