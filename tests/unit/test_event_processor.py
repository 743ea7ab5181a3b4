"""Unit tests for the event storage decision logic."""

from datetime import UTC, datetime, timedelta

import pytest

from src.ha.event_processor import EventProcessor, get_event_processor, reset_event_processor
from src.ha.event_stream import HomeAssistantEvent
from src.storage.entities import EventFilterRule, RuleAction, RuleType

NIGHT = datetime(2025, 1, 1, 3, 0, tzinfo=UTC)
DAY = datetime(2025, 1, 1, 12, 0, tzinfo=UTC)


class _Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def _event(**overrides) -> HomeAssistantEvent:
    data = {
        "event_type": "state_changed",
        "entity_id": "light.kitchen",
        "old_state": "off",
        "new_state": "on",
    }
    data.update(overrides)
    return HomeAssistantEvent(**data)


def _rule(action: RuleAction, **overrides) -> EventFilterRule:
    data = {
        "id": "rule-1",
        "user_id": "u1",
        "rule_name": f"{action.value.lower()} rule",
        "rule_type": RuleType.CUSTOM,
        "action": action,
        "conditions": {},
        "priority": 100,
        "enabled": True,
        "match_count": 0,
        "time_window_minutes": 60,
    }
    data.update(overrides)
    return EventFilterRule(**data)


@pytest.fixture
def clock() -> _Clock:
    return _Clock(NIGHT)


@pytest.fixture
def processor(test_settings, clock) -> EventProcessor:
    return EventProcessor(test_settings, rng=lambda: 0.99, clock=clock)


class TestRules:
    def test_block_rule_drops(self, processor):
        rule = _rule(RuleAction.BLOCK)
        assert processor.should_store(_event(), [rule]) is False
        assert rule.match_count == 1
        assert rule.last_matched_at == NIGHT

    @pytest.mark.parametrize("action", [RuleAction.ALLOW, RuleAction.PRIORITY, RuleAction.BATCH])
    def test_keep_actions(self, processor, action):
        assert processor.should_store(_event(entity_id="sun.sun", old_state=None), [_rule(action)])

    def test_log_only_drops(self, processor):
        assert processor.should_store(_event(), [_rule(RuleAction.LOG_ONLY)]) is False

    def test_lowest_priority_value_wins(self, processor):
        block = _rule(RuleAction.BLOCK, id="b", priority=50)
        allow = _rule(RuleAction.ALLOW, id="a", priority=10)
        assert processor.should_store(_event(), [block, allow]) is True
        assert allow.match_count == 1
        assert block.match_count == 0

    def test_disabled_rules_are_skipped(self, processor):
        assert processor.should_store(_event(), [_rule(RuleAction.BLOCK, enabled=False)]) is True

    def test_non_matching_rule_falls_through(self, processor):
        rule = _rule(RuleAction.BLOCK, entity_patterns="switch.*")
        assert processor.should_store(_event(), [rule]) is True
        assert rule.match_count == 0

    def test_throttle_limits_per_window(self, processor, clock):
        rule = _rule(RuleAction.THROTTLE, frequency_limit=2, time_window_minutes=10)
        results = [processor.should_store(_event(), [rule]) for _ in range(3)]
        assert results == [True, True, False]

        clock.now = NIGHT + timedelta(minutes=10)
        assert processor.should_store(_event(), [rule]) is True

    def test_throttle_counts_entities_separately(self, processor):
        rule = _rule(RuleAction.THROTTLE, frequency_limit=1)
        assert processor.should_store(_event(entity_id="light.a"), [rule])
        assert processor.should_store(_event(entity_id="light.b"), [rule])
        assert not processor.should_store(_event(entity_id="light.a"), [rule])


class TestHeuristic:
    def test_entity_limit_per_minute(self, processor):
        results = [processor.should_store(_event()) for _ in range(6)]
        assert results == [True] * 5 + [False]

    def test_type_limit_per_minute(self, processor):
        results = [
            processor.should_store(_event(entity_id=f"light.l{i}")) for i in range(11)
        ]
        assert results == [True] * 10 + [False]

    def test_counters_reset_each_minute(self, processor, clock):
        for _ in range(5):
            processor.should_store(_event())
        assert processor.should_store(_event()) is False
        clock.now = NIGHT + timedelta(minutes=1)
        assert processor.should_store(_event()) is True

    def test_important_event_type(self, processor):
        event = _event(event_type="automation_triggered", entity_id="sun.sun", old_state=None)
        assert processor.should_store(event) is True

    def test_important_domain(self, processor):
        event = _event(entity_id="lock.front_door", old_state=None, new_state="locked")
        assert processor.should_store(event) is True

    def test_state_change_is_kept(self, processor):
        assert processor.should_store(_event(entity_id="sun.sun")) is True

    def test_active_hours_keep(self, test_settings, clock):
        clock.now = DAY
        processor = EventProcessor(test_settings, rng=lambda: 0.99, clock=clock)
        assert processor.should_store(_event(entity_id="sun.sun", old_state=None)) is True

    def test_sampled_outside_active_hours(self, test_settings, clock):
        event = _event(event_type="custom_ping", entity_id="sun.sun", old_state=None)
        dropped = EventProcessor(test_settings, rng=lambda: 0.99, clock=clock)
        kept = EventProcessor(test_settings, rng=lambda: 0.0, clock=clock)
        assert dropped.should_store(event) is False
        assert kept.should_store(event) is True


class TestStats:
    def test_counts_and_filter_rate(self, processor):
        processor.should_store(_event(), [_rule(RuleAction.BLOCK)])
        processor.should_store(_event())
        stats = processor.stats
        assert stats["total_processed"] == 2
        assert stats["total_filtered"] == 1
        assert stats["total_stored"] == 1
        assert stats["filter_rate"] == 50.0
        assert stats["max_processing_time_ms"] >= stats["min_processing_time_ms"]

    def test_empty_stats(self, processor):
        assert processor.stats["filter_rate"] == 0.0
        assert processor.stats["avg_processing_time_ms"] == 0.0

    def test_reset_stats(self, processor):
        processor.should_store(_event())
        processor.reset_stats()
        assert processor.stats["total_processed"] == 0


class TestSingleton:
    def test_shared_instance(self, test_settings, monkeypatch):
        monkeypatch.setattr("src.ha.event_processor.get_settings", lambda: test_settings)
        reset_event_processor()
        try:
            assert get_event_processor() is get_event_processor()
        finally:
            reset_event_processor()
