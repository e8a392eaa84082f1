# src/taskmaster/tasks/task_models.py

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


@dataclass(slots=True, frozen=True)
class Identity:
    """Authenticated principal. Compared by id only."""

    id: str
    email: str = field(default="", compare=False)

    @classmethod
    def from_user(cls, user: Mapping[str, Any]) -> Identity:
        return cls(id=str(user["id"]), email=str(user.get("email") or ""))


@dataclass(slots=True)
class Session:
    """Identity plus the tokens used for data calls. Never logged."""

    identity: Identity
    access_token: str
    refresh_token: str | None = None
    expires_at: float | None = None

    def is_expired(self, now_ts: float, *, leeway_seconds: float = 30.0) -> bool:
        if self.expires_at is None:
            return False
        return now_ts + leeway_seconds >= self.expires_at


def parse_timestamp(raw: Any) -> datetime:
    """
    Parse a timestamptz value as returned by the backend.

    Accepts 'Z' suffixes and naive values (treated as UTC).
    Unparseable values map to the epoch so sorting stays total.
    """
    if isinstance(raw, datetime):
        dt = raw
    else:
        s = str(raw or "").strip()
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            return datetime.fromtimestamp(0, tz=UTC)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt


@dataclass(slots=True, frozen=True)
class TaskItem:
    id: str
    user_id: str
    title: str
    completed: bool
    created_at: datetime

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> TaskItem:
        return cls(
            id=str(row["id"]),
            user_id=str(row.get("user_id") or ""),
            title=str(row.get("title") or ""),
            completed=bool(row.get("completed") or False),
            created_at=parse_timestamp(row.get("created_at")),
        )


@dataclass(slots=True, frozen=True)
class TaskCollection:
    """
    Cached view of one identity's items, newest first.

    Immutable: a refresh builds a new collection instead of patching this one.
    """

    owner_id: str | None = None
    items: tuple[TaskItem, ...] = ()

    @classmethod
    def from_items(cls, owner_id: str | None, items: Iterable[TaskItem]) -> TaskCollection:
        ordered = sorted(items, key=lambda t: t.created_at, reverse=True)
        return cls(owner_id=owner_id, items=tuple(ordered))

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[TaskItem]:
        return iter(self.items)

    def __getitem__(self, index: int) -> TaskItem:
        return self.items[index]

    @property
    def is_empty(self) -> bool:
        return not self.items

    def get(self, task_id: str) -> TaskItem | None:
        for item in self.items:
            if item.id == task_id:
                return item
        return None
