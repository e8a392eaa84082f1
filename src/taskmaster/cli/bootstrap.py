# src/taskmaster/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- validates backend settings before anything touches the network,
- wires the concrete backend adapters (auth / rest / realtime) into the core,
- connects session changes to the task synchronizer,
- runs the boot-time schema check and restores a persisted session.
"""

from __future__ import annotations

import logging

import httpx

from ..backend.auth_client import AuthClient
from ..backend.http import create_http_client
from ..backend.realtime import RealtimeFeed
from ..backend.rest_client import RestClient
from ..backend.setup_check import check_schema
from ..config import get_settings, validate_backend_config
from ..core.ports import AuthBackend, ChangeFeed, TaskBackend
from ..core.state import AppState
from ..session.session_file import SessionFile
from ..session.session_manager import SessionManager
from ..tasks.task_sync import TaskSynchronizer

logger = logging.getLogger(__name__)


def wire_state(
        settings,
        *,
        auth: AuthBackend,
        rows: TaskBackend,
        feed: ChangeFeed | None,
        session_file: SessionFile | None = None,
) -> AppState:
    """Build AppState from already-constructed ports (tests pass fakes here)."""
    session = SessionManager(auth, session_file=session_file)
    tasks = TaskSynchronizer(
        rows,
        feed,
        session.access_token,
        refresh_after_write=bool(getattr(settings, "refresh_after_write", False)),
    )
    session.on_identity_change(tasks.handle_identity_change)
    return AppState(settings=settings, session=session, tasks=tasks, rows=rows)


def create_initial_state(
        *,
        settings=None,
        transport: httpx.AsyncBaseTransport | None = None,
) -> AppState:
    """
    Create AppState backed by the hosted service.

    Raises ConfigError before any network call if credentials are missing.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    validate_backend_config(settings)

    http = create_http_client(settings, transport=transport)
    rows = RestClient(http, table=settings.tasks_table)
    feed = RealtimeFeed(settings) if settings.realtime_enabled else None
    session_file = SessionFile(settings.session_path) if settings.remember_session else None

    state = wire_state(
        settings,
        auth=AuthClient(http),
        rows=rows,
        feed=feed,
        session_file=session_file,
    )
    state.resources.append(http)
    return state


async def boot(state: AppState) -> None:
    """
    Startup checks + session restore.

    Raises SchemaError when the todos table is missing; never raises for a bad
    stored session (the user just has to sign in again).
    """
    if isinstance(state.rows, RestClient):
        await check_schema(state.rows)

    # A restored identity triggers the synchronizer bind through the session listener.
    await state.session.restore()
    await state.tasks.wait_idle()
