# src/taskmaster/session/session_file.py

"""
Persisted session (session.json) so a restart does not require signing in again.

The file contains tokens and must never be committed: it lives under the
gitignored data dir and is chmod 600 where the platform allows it.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
from pathlib import Path
from typing import Any

from ..tasks.task_models import Identity, Session

logger = logging.getLogger(__name__)


class SessionFile:
    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Session | None:
        """Best-effort read; a missing or corrupt file means "no session"."""
        if not self._path.exists():
            return None
        try:
            data = json.loads(self._path.read_text("utf-8"))
        except (OSError, ValueError):
            logger.warning("Ignoring unreadable session file %s", self._path)
            return None
        if not isinstance(data, dict):
            return None
        return _session_from_json(data)

    def save(self, session: Session) -> None:
        data: dict[str, Any] = {
            "user": {"id": session.identity.id, "email": session.identity.email},
            "access_token": session.access_token,
            "refresh_token": session.refresh_token,
            "expires_at": session.expires_at,
        }
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self._path.with_suffix(".tmp")
            tmp.write_text(json.dumps(data), "utf-8")
            os.replace(tmp, self._path)
            with contextlib.suppress(OSError):
                os.chmod(self._path, 0o600)
        except OSError:
            logger.exception("Failed to save session to %s", self._path)

    def clear(self) -> None:
        with contextlib.suppress(FileNotFoundError):
            self._path.unlink()


def _session_from_json(data: dict[str, Any]) -> Session | None:
    user = data.get("user")
    token = data.get("access_token")
    if not isinstance(user, dict) or not user.get("id") or not isinstance(token, str) or not token:
        return None

    expires_raw = data.get("expires_at")
    try:
        expires_at = float(expires_raw) if expires_raw is not None else None
    except (TypeError, ValueError):
        expires_at = None

    refresh = data.get("refresh_token")
    return Session(
        identity=Identity.from_user(user),
        access_token=token,
        refresh_token=refresh if isinstance(refresh, str) and refresh else None,
        expires_at=expires_at,
    )
