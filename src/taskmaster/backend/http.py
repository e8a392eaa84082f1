# src/taskmaster/backend/http.py

"""
Shared HTTP plumbing for the hosted backend.

- one httpx.AsyncClient per app, created lazily by the composition root,
- explicit timeouts on every request (no "hang forever" on a dead network),
- no automatic retries anywhere: a failed call is reported to the caller once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)


def make_timeout(settings) -> httpx.Timeout:
    connect_s = float(getattr(settings, "http_connect_timeout_seconds", 5.0))
    read_s = float(getattr(settings, "http_read_timeout_seconds", 15.0))
    return httpx.Timeout(connect=connect_s, read=read_s, write=10.0, pool=connect_s)


def create_http_client(settings, *, transport: httpx.AsyncBaseTransport | None = None) -> httpx.AsyncClient:
    """
    Build the AsyncClient used by the auth and rest adapters.

    `transport` is injectable so tests can use httpx.MockTransport.
    """
    base_url = str(getattr(settings, "supabase_url", "") or "").rstrip("/")
    anon_key = str(getattr(settings, "supabase_anon_key", "") or "")
    return httpx.AsyncClient(
        base_url=base_url,
        headers={"apikey": anon_key, "Content-Type": "application/json"},
        timeout=make_timeout(settings),
        transport=transport,
    )


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@dataclass(slots=True, frozen=True)
class ErrorBody:
    """Normalized error payload from either the auth or the rest service."""

    status: int
    message: str
    code: str | None = None


def parse_error(response: httpx.Response) -> ErrorBody:
    """
    Pull a human-readable message out of an error response.

    The auth service uses error_description / msg / error; the rest service
    uses message + code (+ details/hint).
    """
    data: Any
    try:
        data = response.json()
    except ValueError:
        data = None

    message = ""
    code: str | None = None
    if isinstance(data, dict):
        for key in ("error_description", "msg", "message", "error"):
            val = data.get(key)
            if isinstance(val, str) and val.strip():
                message = val.strip()
                break
        raw_code = data.get("code", data.get("error_code"))
        if raw_code is not None:
            code = str(raw_code)

    if not message:
        message = (response.text or "").strip()[:200] or f"HTTP {response.status_code}"

    return ErrorBody(status=response.status_code, message=message, code=code)


def describe_transport_error(exc: httpx.HTTPError) -> str:
    if isinstance(exc, httpx.TimeoutException):
        return "The request timed out. Check your connection and try again."
    return f"Network error ({exc.__class__.__name__}). Check your connection and try again."
