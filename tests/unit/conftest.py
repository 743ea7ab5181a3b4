"""Unit-test conftest: database isolation.

Every unit test runs with the storage accessors replaced by guards that
raise immediately, so a missing mock shows up as a clear error instead of
a hang on an unreachable Postgres.  Tests that need a session patch
``get_session`` (or the repository) themselves.
"""

from __future__ import annotations

import pytest

import src.storage as _storage_mod

_GUARD_MESSAGE = (
    "Unit test attempted a real DB connection via {name}(). "
    "Mock the session or the repository instead."
)


def _guard(name: str):
    def _raise(*args, **kwargs):
        raise RuntimeError(_GUARD_MESSAGE.format(name=name))

    return _raise


def _install_db_guard(monkeypatch: pytest.MonkeyPatch | None = None) -> None:
    """Replace the storage accessors with guards."""
    for name in ("get_engine", "get_session_factory", "get_session"):
        if monkeypatch:
            monkeypatch.setattr(_storage_mod, name, _guard(name))
        else:
            setattr(_storage_mod, name, _guard(name))


def pytest_configure() -> None:
    """Install DB guards before unit test modules are imported."""
    _storage_mod._engine = None  # type: ignore[attr-defined]
    _storage_mod._session_factory = None  # type: ignore[attr-defined]
    _install_db_guard()


@pytest.fixture(autouse=True)
def _isolate_db(monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset storage singletons and guard the accessors for each test."""
    monkeypatch.setattr(_storage_mod, "_engine", None)
    monkeypatch.setattr(_storage_mod, "_session_factory", None)
    _install_db_guard(monkeypatch)
