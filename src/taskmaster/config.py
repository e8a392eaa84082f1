# src/taskmaster/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- No secrets required at import time; backend credentials are validated at boot.
- Accept the conventional SUPABASE_* / VITE_SUPABASE_* names next to our own prefix.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

from .errors import ConfigError

ENV_PREFIX = "TASKMASTER"

# Values shipped in .env templates; treated the same as "not configured".
PLACEHOLDER_URLS = frozenset({"your-supabase-url", "https://placeholder-url.supabase.co"})
PLACEHOLDER_KEYS = frozenset({"your-supabase-anon-key", "placeholder-key"})


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv() -> None:
    """Load .env from the working directory without overriding the real environment."""
    from dotenv import load_dotenv

    load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Backend ----
    supabase_url: str
    supabase_anon_key: str
    tasks_table: str

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    session_path: Path
    remember_session: bool

    # ---- HTTP ----
    http_connect_timeout_seconds: float
    http_read_timeout_seconds: float

    # ---- Realtime ----
    realtime_enabled: bool
    realtime_heartbeat_seconds: float
    realtime_reconnect_seconds: float

    # ---- Sync ----
    refresh_after_write: bool

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "TaskMaster") or "TaskMaster"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        supabase_url = (
            _first_env(_k("SUPABASE_URL"), "SUPABASE_URL", "VITE_SUPABASE_URL", default="") or ""
        ).strip()
        supabase_anon_key = (
            _first_env(
                _k("SUPABASE_ANON_KEY"),
                "SUPABASE_ANON_KEY",
                "VITE_SUPABASE_ANON_KEY",
                default="",
            )
            or ""
        ).strip()
        tasks_table = _env(_k("TASKS_TABLE"), "todos").strip() or "todos"

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/taskmaster"))
        session_path = _env_path(_k("SESSION_PATH"), data_dir / "session.json")
        remember_session = _env_bool(_k("REMEMBER_SESSION"), True)

        connect_timeout = _env_float(_k("HTTP_CONNECT_TIMEOUT_SECONDS"), 5.0)
        read_timeout = _env_float(_k("HTTP_READ_TIMEOUT_SECONDS"), 15.0)

        realtime_enabled = _env_bool(_k("REALTIME_ENABLED"), True)
        heartbeat = _env_float(_k("REALTIME_HEARTBEAT_SECONDS"), 25.0)
        reconnect = _env_float(_k("REALTIME_RECONNECT_SECONDS"), 5.0)

        refresh_after_write = _env_bool(_k("REFRESH_AFTER_WRITE"), False)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            supabase_url=supabase_url.rstrip("/"),
            supabase_anon_key=supabase_anon_key,
            tasks_table=tasks_table,
            data_dir=data_dir,
            session_path=session_path,
            remember_session=remember_session,
            http_connect_timeout_seconds=max(0.5, connect_timeout),
            http_read_timeout_seconds=max(1.0, read_timeout),
            realtime_enabled=realtime_enabled,
            realtime_heartbeat_seconds=max(1.0, heartbeat),
            realtime_reconnect_seconds=max(0.0, reconnect),
            refresh_after_write=refresh_after_write,
        )


_settings: Settings | None = None


def get_settings() -> Settings:
    """Load settings once (reads .env on first call)."""
    global _settings
    if _settings is None:
        _load_dotenv()
        _settings = Settings.from_env()
    return _settings


def validate_backend_config(settings) -> None:
    """
    Fail fast when backend credentials are missing or still placeholders.

    Must run before any auth or data call.
    """
    url = (getattr(settings, "supabase_url", "") or "").strip()
    key = (getattr(settings, "supabase_anon_key", "") or "").strip()

    missing: list[str] = []
    if not url or url in PLACEHOLDER_URLS:
        missing.append(_k("SUPABASE_URL"))
    if not key or key in PLACEHOLDER_KEYS:
        missing.append(_k("SUPABASE_ANON_KEY"))

    if missing:
        raise ConfigError(
            "Backend environment variables are not properly configured: "
            + ", ".join(missing)
            + ". Update your .env file with valid Supabase credentials.",
            missing=missing,
        )

    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigError(
            f"Backend URL must be an http(s) URL, got {url!r}. Check {_k('SUPABASE_URL')}.",
            missing=[_k("SUPABASE_URL")],
        )
