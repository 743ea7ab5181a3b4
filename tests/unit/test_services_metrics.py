"""Unit tests for connection metrics."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from src.dal.events import EventRepository
from src.exceptions import NotFoundError, ValidationError
from src.services.metrics import MetricsService, parse_time_range
from src.storage.entities import ConnectionStatus, HAConnection

NOW = datetime(2025, 1, 2, 12, 0, tzinfo=UTC)


class TestParseTimeRange:
    @pytest.mark.parametrize(
        ("label", "expected"),
        [
            ("1h", timedelta(hours=1)),
            ("24h", timedelta(hours=24)),
            ("7d", timedelta(days=7)),
            ("1m", timedelta(days=30)),
            (None, timedelta(hours=24)),
        ],
    )
    def test_known_labels(self, label, expected):
        assert parse_time_range(label) == expected

    def test_unknown_label(self):
        with pytest.raises(ValidationError):
            parse_time_range("2w")


@pytest.fixture
def service(mock_session) -> MetricsService:
    service = MetricsService(mock_session)
    service.connections = AsyncMock()
    service.events = AsyncMock()
    service.metrics = AsyncMock()
    service.connections.get_for_user.return_value = HAConnection(
        id="conn-1",
        user_id="u1",
        name="Home",
        url="http://ha:8123",
        encrypted_token="x",
        status=ConnectionStatus.CONNECTED,
    )
    return service


@pytest.mark.asyncio
class TestGetMetrics:
    async def test_computes_rates(self, service):
        service.events.rate_stats.return_value = {
            "event_count": 4,
            "error_count": 1,
            "peak_per_minute": 3,
        }
        service.metrics.total.return_value = 360.0  # 6 minutes down in one hour
        service.metrics.average.return_value = 42.0

        metrics = await service.get_metrics("u1", "conn-1", "1h", now=NOW)

        assert metrics["event_count"] == 4
        assert metrics["start"] == NOW - timedelta(hours=1)
        assert metrics["uptime_percentage"] == 90.0
        assert metrics["error_rate"] == 25.0
        assert metrics["average_event_rate"] == round(4 / 60, 4)
        assert metrics["peak_event_rate"] == 3
        assert metrics["average_latency"] == 42.0
        start, end = service.events.rate_stats.await_args.args[1:]
        assert end - start == timedelta(hours=1)

    async def test_no_events(self, service):
        service.events.rate_stats.return_value = {
            "event_count": 0,
            "error_count": 0,
            "peak_per_minute": 0,
        }
        service.metrics.total.return_value = 0.0
        service.metrics.average.return_value = None

        metrics = await service.get_metrics("u1", "conn-1", now=NOW)

        assert metrics["time_range"] == "24h"
        assert metrics["uptime_percentage"] == 100.0
        assert metrics["error_rate"] == 0.0
        assert metrics["peak_event_rate"] == 0

    async def test_unknown_connection(self, service):
        service.connections.get_for_user.return_value = None
        with pytest.raises(NotFoundError):
            await service.get_metrics("u2", "conn-1", "1h", now=NOW)


@pytest.mark.asyncio
class TestEventRateStats:
    async def test_aggregates_in_sql(self, mock_session):
        totals = MagicMock()
        totals.one.return_value = MagicMock(events=4, errors=1)
        peak = MagicMock()
        peak.scalar.return_value = 3
        mock_session.execute.side_effect = [totals, peak]

        stats = await EventRepository(mock_session).rate_stats(
            "conn-1", NOW - timedelta(hours=1), NOW
        )

        assert stats == {"event_count": 4, "error_count": 1, "peak_per_minute": 3}
        totals_sql, peak_sql = (
            str(call.args[0].compile(dialect=postgresql.dialect()))
            for call in mock_session.execute.await_args_list
        )
        assert "FILTER (WHERE" in totals_sql
        assert "ILIKE" in totals_sql.upper()
        assert "date_trunc" in peak_sql
        assert "GROUP BY" in peak_sql

    async def test_empty_window(self, mock_session):
        totals = MagicMock()
        totals.one.return_value = MagicMock(events=0, errors=0)
        peak = MagicMock()
        peak.scalar.return_value = 0
        mock_session.execute.side_effect = [totals, peak]

        stats = await EventRepository(mock_session).rate_stats("conn-1", NOW - timedelta(days=1), NOW)

        assert stats == {"event_count": 0, "error_count": 0, "peak_per_minute": 0}
