# src/taskmaster/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The session manager and the task synchronizer depend on Protocols instead of
concrete HTTP/websocket clients. This keeps the hosted backend swappable and
makes testing easier (tests/fakes.py implements all three in memory).
"""

from collections.abc import Callable, Mapping
from typing import Any, Awaitable, Protocol

from ..tasks.task_models import Session

Row = dict[str, Any]
# Raw row as returned by the storage service: {"id": ..., "user_id": ..., "title": ..., ...}

ChangeCallback = Callable[[], None]
# Change-feed callback. Events carry no payload the core relies on.


class AuthBackend(Protocol):
    """Hosted authentication. Raises AuthError on any failure."""

    def authenticate(self, email: str, password: str) -> Awaitable[Session]: ...

    def register(self, email: str, password: str) -> Awaitable[Session | None]: ...
    # None means the account exists but must be confirmed before signing in.

    def deauthenticate(self, access_token: str) -> Awaitable[None]: ...

    def get_user(self, access_token: str) -> Awaitable[Mapping[str, Any]]: ...

    def refresh_session(self, refresh_token: str) -> Awaitable[Session]: ...


class TaskBackend(Protocol):
    """Row-secured storage for task rows. Raises DataError / SchemaError."""

    def query(self, *, access_token: str, owner_id: str) -> Awaitable[list[Row]]: ...
    # Rows owned by owner_id, ordered by created_at descending.

    def insert(self, *, access_token: str, record: Row) -> Awaitable[None]: ...

    def update(self, *, access_token: str, task_id: str, fields: Row) -> Awaitable[None]: ...

    def delete(self, *, access_token: str, task_id: str) -> Awaitable[None]: ...


class Subscription(Protocol):
    """Handle for an open change-feed subscription."""

    def close(self) -> Awaitable[None]: ...


class ChangeFeed(Protocol):
    def subscribe(
            self,
            *,
            access_token: str,
            owner_id: str,
            on_event: ChangeCallback,
    ) -> Awaitable[Subscription]: ...
