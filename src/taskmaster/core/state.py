# src/taskmaster/core/state.py

from __future__ import annotations

import contextlib
import logging
from dataclasses import dataclass, field
from typing import Any

from ..session.session_manager import SessionManager
from ..tasks.task_sync import TaskSynchronizer
from .ports import TaskBackend

logger = logging.getLogger(__name__)


@dataclass
class AppState:
    """
    Explicit application context passed to connectors and commands.

    There is no process-wide session singleton: whoever needs the identity or the
    todo list gets it from here.
    """

    settings: Any
    session: SessionManager
    tasks: TaskSynchronizer
    rows: TaskBackend

    # Closed on shutdown (e.g. the shared httpx.AsyncClient).
    resources: list[Any] = field(default_factory=list)

    async def aclose(self) -> None:
        """Best-effort shutdown (no exceptions should escape)."""
        try:
            await self.tasks.close()
        except Exception:
            logger.exception("Synchronizer close failed.")

        for res in self.resources:
            close = getattr(res, "aclose", None)
            if close is None:
                continue
            with contextlib.suppress(Exception):
                await close()
