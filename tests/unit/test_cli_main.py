"""Unit tests for the tappha CLI."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
from typer.testing import CliRunner

from src import __version__
from src.cli.main import app
from src.storage.entities import LifecycleState

runner = CliRunner()


class TestCliApp:
    def test_app_name(self):
        assert app.info.name == "tappha"

    def test_no_args_shows_help(self):
        result = runner.invoke(app, [])

        assert "serve" in result.output
        assert "automations" in result.output

    def test_version(self):
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert __version__ in result.output


class TestServe:
    def test_uses_settings_defaults(self, mock_settings):
        with (
            patch("src.cli.main.get_settings", return_value=mock_settings),
            patch("uvicorn.run") as run,
        ):
            result = runner.invoke(app, ["serve"])

        assert result.exit_code == 0
        kwargs = run.call_args.kwargs
        assert kwargs["host"] == mock_settings.api_host
        assert kwargs["port"] == mock_settings.api_port
        assert run.call_args.args[0] == "src.api.main:app"

    def test_reload_forces_single_worker(self, mock_settings):
        with (
            patch("src.cli.main.get_settings", return_value=mock_settings),
            patch("uvicorn.run") as run,
        ):
            runner.invoke(app, ["serve", "--port", "9000", "--reload", "--workers", "4"])

        assert run.call_args.kwargs["port"] == 9000
        assert run.call_args.kwargs["workers"] == 1


class TestAutomations:
    def test_unknown_state(self):
        result = runner.invoke(app, ["automations", "--state", "bogus"])

        assert result.exit_code == 1
        assert "Unknown state" in result.output

    def test_lists_rows(self, managed_automation):
        repo = AsyncMock()
        repo.list_all.return_value = [managed_automation]
        session_cm = MagicMock()
        session_cm.__aenter__ = AsyncMock(return_value=AsyncMock())
        session_cm.__aexit__ = AsyncMock(return_value=False)

        with (
            patch("src.storage.get_session", return_value=session_cm),
            patch("src.dal.ManagedAutomationRepository", return_value=repo),
        ):
            result = runner.invoke(app, ["automations", "--state", "active"])

        assert result.exit_code == 0
        assert "morning_lights" in result.output
        assert repo.list_all.await_args.kwargs["lifecycle_state"] == LifecycleState.ACTIVE


class TestStatus:
    def test_falls_back_to_database(self, mock_settings):
        with (
            patch("src.cli.main.get_settings", return_value=mock_settings),
            patch("src.cli.main.httpx.AsyncClient") as client_cls,
            patch("src.cli.main._check_database", new=AsyncMock()) as check_db,
        ):
            client = client_cls.return_value.__aenter__.return_value
            client.get = AsyncMock(side_effect=httpx.ConnectError("refused"))
            result = runner.invoke(app, ["status"])

        assert result.exit_code == 0
        assert "API server not running" in result.output
        check_db.assert_awaited_once()

    def test_displays_api_status(self, mock_settings):
        response = MagicMock(status_code=200)
        response.json.return_value = {
            "status": "healthy",
            "environment": "testing",
            "version": __version__,
            "components": [{"name": "database", "status": "healthy", "latency_ms": 1.2}],
        }
        with (
            patch("src.cli.main.get_settings", return_value=mock_settings),
            patch("src.cli.main.httpx.AsyncClient") as client_cls,
        ):
            client_cls.return_value.__aenter__.return_value.get = AsyncMock(return_value=response)
            result = runner.invoke(app, ["status"])

        assert result.exit_code == 0
        assert "HEALTHY" in result.output
        assert "database" in result.output


class TestCleanup:
    def test_runs_all_jobs(self):
        with (
            patch(
                "src.scheduler.service.run_lifecycle_cleanup",
                new=AsyncMock(return_value={"backups": 2, "versions": 1}),
            ),
            patch(
                "src.scheduler.service.run_due_retirements",
                new=AsyncMock(return_value={"completed": 1, "failed": 0}),
            ),
            patch("src.scheduler.service.run_wizard_expiry", new=AsyncMock(return_value=0)),
            patch("src.scheduler.service.run_event_retention", new=AsyncMock(return_value=7)) as purge,
        ):
            result = runner.invoke(app, ["cleanup"])

        assert result.exit_code == 0
        assert "Events purged" in result.output
        purge.assert_awaited_once()

    def test_skip_events(self):
        lifecycle = AsyncMock(return_value={"backups": 0, "versions": 0})
        retirements = AsyncMock(return_value={"completed": 0, "failed": 0})
        with (
            patch("src.scheduler.service.run_lifecycle_cleanup", new=lifecycle),
            patch("src.scheduler.service.run_due_retirements", new=retirements),
            patch("src.scheduler.service.run_wizard_expiry", new=AsyncMock(return_value=0)),
            patch("src.scheduler.service.run_event_retention", new=AsyncMock(return_value=7)) as purge,
        ):
            result = runner.invoke(app, ["cleanup", "--no-events"])

        assert result.exit_code == 0
        purge.assert_not_awaited()
