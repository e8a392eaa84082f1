# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from taskmaster.cli.bootstrap import wire_state
from taskmaster.core.state import AppState

from .fakes import FakeAuth, FakeStore


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and core modules.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated from the developer's environment / .env.
    """
    return SimpleNamespace(
        app_name="TaskMaster",
        log_level="INFO",
        supabase_url="https://example.supabase.co",
        supabase_anon_key="anon-key",
        tasks_table="todos",
        data_dir=tmp_path,
        session_path=tmp_path / "session.json",
        remember_session=False,
        http_connect_timeout_seconds=1.0,
        http_read_timeout_seconds=1.0,
        realtime_enabled=True,
        realtime_heartbeat_seconds=25.0,
        realtime_reconnect_seconds=0.0,
        refresh_after_write=False,
    )


@pytest.fixture()
def auth() -> FakeAuth:
    return FakeAuth()


@pytest.fixture()
def store(auth: FakeAuth) -> FakeStore:
    return FakeStore(auth=auth)


@pytest.fixture()
def state(settings: SimpleNamespace, auth: FakeAuth, store: FakeStore) -> AppState:
    """AppState wired with in-memory fakes for auth, rows and the change feed."""
    return wire_state(settings, auth=auth, rows=store, feed=store)
