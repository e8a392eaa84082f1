# src/taskmaster/tasks/task_sync.py

"""
Task synchronizer.

Keeps a display snapshot of the bound identity's todos converged with the backend:
- full re-fetch on bind (mount) and on every change-feed event,
- mutations go straight to the backend; the cache is NOT updated optimistically,
  the change feed (or the next refresh) brings the new state back.

Concurrency (single asyncio loop):
- overlapping refresh() calls are allowed; the cache ends at whichever read
  *completes* last, not whichever was issued last. There is no generation stamp
  per read, only per identity scope.
- a read that completes after a re-bind (sign-out / account switch) is dropped,
  so an old identity's rows never land in the new identity's cache.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from enum import StrEnum
from typing import Any

from ..core.ports import ChangeCallback, ChangeFeed, Subscription, TaskBackend
from ..errors import DataError, TaskmasterError
from .task_models import Identity, TaskCollection, TaskItem

logger = logging.getLogger(__name__)

CollectionListener = Callable[[TaskCollection], None]
TokenProvider = Callable[[], str | None]


class SubscriptionState(StrEnum):
    UNSUBSCRIBED = "unsubscribed"
    SUBSCRIBING = "subscribing"
    SUBSCRIBED = "subscribed"


class TaskSynchronizer:
    def __init__(
            self,
            backend: TaskBackend,
            feed: ChangeFeed | None,
            token_provider: TokenProvider,
            *,
            refresh_after_write: bool = False,
    ) -> None:
        self._backend = backend
        self._feed = feed
        self._token_provider = token_provider
        self._refresh_after_write = refresh_after_write

        self._identity: Identity | None = None
        self._scope = 0
        self._collection = TaskCollection()
        self._loading = 0
        self._listeners: list[CollectionListener] = []

        self._subscription: Subscription | None = None
        self._subscription_state = SubscriptionState.UNSUBSCRIBED

        self._pending: set[asyncio.Task[Any]] = set()

    # ---- reactive reads ----

    @property
    def identity(self) -> Identity | None:
        return self._identity

    @property
    def collection(self) -> TaskCollection:
        return self._collection

    @property
    def is_loading(self) -> bool:
        return self._loading > 0

    @property
    def subscription_state(self) -> SubscriptionState:
        return self._subscription_state

    def on_collection_change(self, listener: CollectionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    # ---- identity binding ----

    def handle_identity_change(self, identity: Identity | None) -> None:
        """SessionManager listener: re-scope in the background."""
        self._spawn(self.bind(identity))

    async def bind(self, identity: Identity | None) -> None:
        """
        Scope the synchronizer to `identity` (None = signed out).

        Drops the cache and the old subscription, then subscribes and does the
        initial refresh for the new identity.
        """
        if identity == self._identity:
            return

        self._scope += 1
        scope = self._scope
        self._identity = identity
        self._replace(TaskCollection(owner_id=identity.id if identity else None))

        await self.unsubscribe()

        if identity is None:
            logger.info("Synchronizer unbound")
            return

        logger.info("Synchronizer bound user_id=%s", identity.id)
        try:
            await self.subscribe(identity.id, self._on_feed_event)
        except DataError as e:
            logger.error("Change feed unavailable user_id=%s: %s", identity.id, e.message)

        if scope != self._scope:
            return
        await self._refresh_quietly()

    # ---- change feed ----

    async def subscribe(self, identity_id: str, on_change: ChangeCallback) -> None:
        """
        Open a change-feed subscription filtered to rows owned by identity_id.

        Every insert/update/delete calls on_change; payloads are not inspected.
        Events that arrive after the synchronizer moved to another identity are ignored.
        """
        if self._feed is None:
            logger.info("Realtime disabled; list updates only on refresh")
            return

        await self.unsubscribe()

        token = self._token_provider()
        if not token:
            raise DataError("Not signed in.")

        scope = self._scope

        def _scoped_event() -> None:
            if self._identity is None or self._identity.id != identity_id:
                logger.debug("Ignoring change event for stale scope user_id=%s", identity_id)
                return
            on_change()

        self._subscription_state = SubscriptionState.SUBSCRIBING
        try:
            handle = await self._feed.subscribe(
                access_token=token,
                owner_id=identity_id,
                on_event=_scoped_event,
            )
        except TaskmasterError as e:
            if scope == self._scope:
                self._subscription_state = SubscriptionState.UNSUBSCRIBED
            raise _as_data_error(e) from e

        if scope != self._scope:
            # Identity changed while we were joining; the re-bind owns the state now.
            await handle.close()
            return

        self._subscription = handle
        self._subscription_state = SubscriptionState.SUBSCRIBED
        logger.info("Subscribed to changes user_id=%s", identity_id)

    async def unsubscribe(self) -> None:
        handle = self._subscription
        self._subscription = None
        self._subscription_state = SubscriptionState.UNSUBSCRIBED
        if handle is None:
            return
        try:
            await handle.close()
        except Exception:
            logger.exception("Failed to close change subscription")

    def _on_feed_event(self) -> None:
        self._spawn(self._refresh_quietly())

    # ---- reads ----

    async def refresh(self) -> TaskCollection:
        """Full re-read of the bound identity's todos; replaces the cache wholesale."""
        identity, token = self._require_session()
        scope = self._scope

        self._loading += 1
        try:
            rows = await self._backend.query(access_token=token, owner_id=identity.id)
        except TaskmasterError as e:
            logger.error("Error fetching todos user_id=%s: %s", identity.id, e.message)
            raise _as_data_error(e) from e
        finally:
            self._loading -= 1

        collection = TaskCollection.from_items(identity.id, (TaskItem.from_row(r) for r in rows))

        if scope != self._scope:
            logger.debug("Dropping refresh result for stale scope user_id=%s", identity.id)
            return collection

        self._replace(collection)
        logger.debug("Refreshed todos user_id=%s count=%d", identity.id, len(collection))
        return collection

    async def _refresh_quietly(self) -> None:
        try:
            await self.refresh()
        except DataError:
            # Already logged in refresh().
            pass

    # ---- mutations ----

    async def create(self, title: str) -> None:
        clean = (title or "").strip()
        if not clean:
            raise DataError("Task title cannot be empty.")

        identity, token = self._require_session()
        try:
            await self._backend.insert(
                access_token=token,
                record={"title": clean, "user_id": identity.id},
            )
        except TaskmasterError as e:
            logger.error("Error adding todo user_id=%s: %s", identity.id, e.message)
            raise _as_data_error(e) from e
        logger.info("Added todo user_id=%s", identity.id)
        await self._after_write()

    async def set_completed(self, task_id: str, completed: bool) -> None:
        _, token = self._require_session()
        try:
            await self._backend.update(
                access_token=token,
                task_id=task_id,
                fields={"completed": bool(completed)},
            )
        except TaskmasterError as e:
            logger.error("Error toggling todo id=%s: %s", task_id, e.message)
            raise _as_data_error(e) from e
        logger.info("Set completed=%s id=%s", bool(completed), task_id)
        await self._after_write()

    async def rename(self, task_id: str, title: str) -> bool:
        """Returns False (and sends nothing) when the trimmed title equals the cached one."""
        clean = (title or "").strip()
        current = self._collection.get(task_id)
        if current is not None and current.title == clean:
            return False
        if not clean:
            raise DataError("Task title cannot be empty.")

        _, token = self._require_session()
        try:
            await self._backend.update(access_token=token, task_id=task_id, fields={"title": clean})
        except TaskmasterError as e:
            logger.error("Error editing todo id=%s: %s", task_id, e.message)
            raise _as_data_error(e) from e
        logger.info("Renamed todo id=%s", task_id)
        await self._after_write()
        return True

    async def delete(self, task_id: str) -> None:
        _, token = self._require_session()
        try:
            await self._backend.delete(access_token=token, task_id=task_id)
        except TaskmasterError as e:
            logger.error("Error deleting todo id=%s: %s", task_id, e.message)
            raise _as_data_error(e) from e
        logger.info("Deleted todo id=%s", task_id)
        await self._after_write()

    # ---- lifecycle ----

    async def wait_idle(self) -> None:
        """Wait for background binds/refreshes (including ones they schedule)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        self._scope += 1
        for task in list(self._pending):
            task.cancel()
        await asyncio.gather(*list(self._pending), return_exceptions=True)
        await self.unsubscribe()

    # ---- internals ----

    def _require_session(self) -> tuple[Identity, str]:
        identity = self._identity
        token = self._token_provider()
        if identity is None or not token:
            raise DataError("Not signed in.")
        return identity, token

    async def _after_write(self) -> None:
        if self._refresh_after_write:
            await self._refresh_quietly()

    def _replace(self, collection: TaskCollection) -> None:
        self._collection = collection
        for listener in list(self._listeners):
            try:
                listener(collection)
            except Exception:
                logger.exception("Collection listener failed")

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)


def _as_data_error(err: TaskmasterError) -> DataError:
    return DataError(err.message, code=getattr(err, "code", None))
