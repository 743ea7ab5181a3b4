"""Unit tests for the maintenance scheduler and its job functions."""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.scheduler import service as scheduler_mod
from src.scheduler.service import (
    SchedulerService,
    run_due_retirements,
    run_event_retention,
    run_lifecycle_cleanup,
    run_wizard_expiry,
)


@pytest.fixture
def committing_session(monkeypatch) -> AsyncMock:
    session = AsyncMock()

    @asynccontextmanager
    async def _session():
        yield session

    monkeypatch.setattr("src.storage.get_committing_session", _session)
    return session


@pytest.fixture
def failing_session(monkeypatch) -> None:
    @asynccontextmanager
    async def _session():
        raise RuntimeError("database unavailable")
        yield

    monkeypatch.setattr("src.storage.get_committing_session", _session)


@pytest.fixture
def scheduler_settings(test_settings, monkeypatch):
    settings = test_settings.model_copy(update={"scheduler_enabled": True})
    monkeypatch.setattr(scheduler_mod, "get_settings", lambda: settings)
    return settings


@pytest.mark.asyncio
class TestSchedulerService:
    @pytest.mark.asyncio
    async def test_disabled_does_not_start(self, test_settings, monkeypatch):
        monkeypatch.setattr(scheduler_mod, "get_settings", lambda: test_settings)
        scheduler = SchedulerService()

        await scheduler.start()

        assert scheduler.running is False
        assert scheduler.job_ids() == []
        assert SchedulerService.get_instance() is None

    @pytest.mark.asyncio
    async def test_start_registers_jobs(self, scheduler_settings):
        scheduler = SchedulerService()
        scheduler._scheduler = MagicMock()
        scheduler._scheduler.get_jobs.return_value = []

        await scheduler.start()

        ids = {call.kwargs["id"] for call in scheduler._scheduler.add_job.call_args_list}
        assert ids == {
            "lifecycle:nightly_cleanup",
            "retention:nightly_event_purge",
            "wizard:session_expiry",
            "retirement:due_sweep",
        }
        assert scheduler.running is True
        assert SchedulerService.get_instance() is scheduler

        await scheduler.stop()

        scheduler._scheduler.shutdown.assert_called_once_with(wait=False)
        assert scheduler.running is False
        assert SchedulerService.get_instance() is None

    @pytest.mark.asyncio
    async def test_stop_when_not_running(self, test_settings, monkeypatch):
        monkeypatch.setattr(scheduler_mod, "get_settings", lambda: test_settings)
        scheduler = SchedulerService()
        scheduler._scheduler = MagicMock()

        await scheduler.stop()

        scheduler._scheduler.shutdown.assert_not_called()


@pytest.mark.asyncio
class TestJobs:
    async def test_lifecycle_cleanup(self, committing_session, scheduler_settings):
        backups = AsyncMock()
        backups.cleanup_old_backups.return_value = 4
        versions = AsyncMock()
        versions.cleanup_old_versions.return_value = 2

        with (
            patch("src.lifecycle.BackupService", return_value=backups),
            patch("src.lifecycle.VersionService", return_value=versions),
        ):
            result = await run_lifecycle_cleanup()

        assert result == {"backups": 4, "versions": 2}
        backups.cleanup_old_backups.assert_awaited_once_with(scheduler_settings.max_backups_per_automation)
        versions.cleanup_old_versions.assert_awaited_once_with(scheduler_settings.max_versions_per_automation)

    async def test_lifecycle_cleanup_failure(self, failing_session, scheduler_settings):
        assert await run_lifecycle_cleanup() == {"backups": 0, "versions": 0}

    async def test_event_retention(self, committing_session, scheduler_settings):
        repo = AsyncMock()
        repo.purge_older_than.return_value = 120

        with patch("src.dal.EventRepository", return_value=repo):
            assert await run_event_retention() == 120

        repo.purge_older_than.assert_awaited_once()

    async def test_event_retention_failure(self, failing_session, scheduler_settings):
        assert await run_event_retention() == 0

    async def test_wizard_expiry(self):
        wizard = MagicMock()
        wizard.cleanup_expired.return_value = 3

        with patch("src.lifecycle.get_wizard", return_value=wizard):
            assert await run_wizard_expiry() == 3

    async def test_due_retirements(self, committing_session):
        service = AsyncMock()
        service.execute_due_retirements.return_value = {"completed": 1, "failed": 0}

        with patch("src.lifecycle.RetirementService", return_value=service):
            assert await run_due_retirements() == {"completed": 1, "failed": 0}

    async def test_due_retirements_failure(self, failing_session):
        assert await run_due_retirements() == {"completed": 0, "failed": 0}
