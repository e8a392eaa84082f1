# src/taskmaster/backend/realtime.py

"""
Change feed over the backend's realtime websocket (Phoenix channel protocol).

One websocket per subscription:
- join a channel with a postgres_changes config for public.<table>, filtered to one owner,
- send a heartbeat every N seconds,
- every postgres_changes message fires the callback (payload is not inspected),
- on a dropped connection, rejoin after a fixed delay and fire the callback once,
  so the listener re-fetches whatever it missed while disconnected.

No exponential backoff: if the backend keeps refusing, we keep logging and waiting.
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import json
import logging
from collections.abc import Callable
from typing import Any
from urllib.parse import urlencode, urlsplit

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import WebSocketException

from ..core.ports import ChangeCallback
from ..errors import DataError

logger = logging.getLogger(__name__)

REALTIME_PATH = "/realtime/v1/websocket"
PROTOCOL_VSN = "1.0.0"
CHANGE_EVENTS = frozenset({"postgres_changes", "INSERT", "UPDATE", "DELETE"})


class _ChannelLost(Exception):
    """Server closed or errored our channel while the socket stayed open."""


def realtime_url(base_url: str, anon_key: str) -> str:
    parts = urlsplit(base_url.rstrip("/"))
    scheme = "wss" if parts.scheme == "https" else "ws"
    query = urlencode({"apikey": anon_key, "vsn": PROTOCOL_VSN})
    return f"{scheme}://{parts.netloc}{REALTIME_PATH}?{query}"


def channel_topic(table: str, owner_id: str) -> str:
    return f"realtime:{table}-changes-{owner_id}"


def build_join(
        *,
        topic: str,
        table: str,
        owner_id: str,
        access_token: str,
        ref: str,
) -> dict[str, Any]:
    return {
        "topic": topic,
        "event": "phx_join",
        "payload": {
            "config": {
                "broadcast": {"ack": False, "self": False},
                "presence": {"key": ""},
                "postgres_changes": [
                    {
                        "event": "*",
                        "schema": "public",
                        "table": table,
                        "filter": f"user_id=eq.{owner_id}",
                    }
                ],
                "private": False,
            },
            "access_token": access_token,
        },
        "ref": ref,
        "join_ref": ref,
    }


def build_heartbeat(ref: str) -> dict[str, Any]:
    return {"topic": "phoenix", "event": "heartbeat", "payload": {}, "ref": ref}


def build_leave(topic: str, ref: str) -> dict[str, Any]:
    return {"topic": topic, "event": "phx_leave", "payload": {}, "ref": ref}


def is_change_event(msg: dict[str, Any], topic: str) -> bool:
    return msg.get("topic") == topic and msg.get("event") in CHANGE_EVENTS


class RealtimeSubscription:
    def __init__(
            self,
            *,
            url: str,
            table: str,
            owner_id: str,
            access_token: str,
            on_event: ChangeCallback,
            heartbeat_seconds: float,
            reconnect_seconds: float,
            join_timeout_seconds: float,
            connect: Callable[[str], Any],
    ) -> None:
        self._url = url
        self._table = table
        self._owner_id = owner_id
        self._access_token = access_token
        self._on_event = on_event
        self._heartbeat_s = heartbeat_seconds
        self._reconnect_s = reconnect_seconds
        self._join_timeout_s = join_timeout_seconds
        self._connect = connect

        self._topic = channel_topic(table, owner_id)
        self._refs = itertools.count(1)
        self._ws: Any = None
        self._closed = False
        self._task: asyncio.Task[None] | None = None
        self._first_join: asyncio.Future[None] | None = None

    @property
    def topic(self) -> str:
        return self._topic

    async def start(self) -> None:
        """Connect and join; raises DataError if the first join fails."""
        loop = asyncio.get_running_loop()
        self._first_join = loop.create_future()
        self._task = loop.create_task(self._run())
        try:
            await asyncio.wait_for(asyncio.shield(self._first_join), self._join_timeout_s)
        except TimeoutError:
            await self.close()
            raise DataError("Timed out subscribing to live updates.") from None
        except (DataError, asyncio.CancelledError):
            # Caller gets no handle on failure, so the background loop must not outlive this call.
            await self.close()
            raise

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        ws = self._ws
        if ws is not None:
            with contextlib.suppress(Exception):
                await ws.send(json.dumps(build_leave(self._topic, self._next_ref())))
            with contextlib.suppress(Exception):
                await ws.close()

        task = self._task
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        logger.info("Change feed closed topic=%s", self._topic)

    # ---- internals ----

    def _next_ref(self) -> str:
        return str(next(self._refs))

    def _resolve_first_join(self, exc: BaseException | None = None) -> bool:
        """Returns True if this was the first join attempt."""
        fut = self._first_join
        if fut is None or fut.done():
            return False
        if exc is None:
            fut.set_result(None)
        else:
            fut.set_exception(exc)
        return True

    async def _run(self) -> None:
        while not self._closed:
            try:
                async with self._connect(self._url) as ws:
                    self._ws = ws
                    await self._join(ws)
                    if not self._resolve_first_join():
                        logger.info("Change feed rejoined topic=%s", self._topic)
                        self._fire()
                    await self._pump(ws)
            except asyncio.CancelledError:
                raise
            except DataError as e:
                if self._resolve_first_join(e):
                    return
                logger.warning("Change feed join refused topic=%s: %s", self._topic, e.message)
            except (WebSocketException, OSError, TimeoutError, _ChannelLost) as e:
                if self._resolve_first_join(DataError(f"Live updates unavailable ({e.__class__.__name__})")):
                    return
                logger.warning("Change feed dropped topic=%s error=%s", self._topic, e.__class__.__name__)
            finally:
                self._ws = None

            if self._closed:
                return
            if self._reconnect_s <= 0:
                logger.warning("Change feed lost; reconnect disabled topic=%s", self._topic)
                return
            await asyncio.sleep(self._reconnect_s)

    async def _join(self, ws: Any) -> None:
        ref = self._next_ref()
        msg = build_join(
            topic=self._topic,
            table=self._table,
            owner_id=self._owner_id,
            access_token=self._access_token,
            ref=ref,
        )
        await ws.send(json.dumps(msg))

        async with asyncio.timeout(self._join_timeout_s):
            while True:
                reply = _decode(await ws.recv())
                if reply is None:
                    continue
                if reply.get("event") != "phx_reply" or reply.get("ref") != ref:
                    continue
                payload = reply.get("payload") or {}
                if payload.get("status") == "ok":
                    logger.debug("Joined channel topic=%s", self._topic)
                    return
                response = payload.get("response") or {}
                reason = response.get("reason") if isinstance(response, dict) else None
                raise DataError(f"Live updates refused: {reason or 'join rejected'}")

    async def _pump(self, ws: Any) -> None:
        heartbeat = asyncio.create_task(self._heartbeat(ws))
        try:
            async for raw in ws:
                msg = _decode(raw)
                if msg is None:
                    continue
                if is_change_event(msg, self._topic):
                    self._fire()
                    continue
                event = msg.get("event")
                if msg.get("topic") == self._topic and event in ("phx_error", "phx_close"):
                    raise _ChannelLost(event)
                if event == "system":
                    payload = msg.get("payload") or {}
                    if payload.get("status") == "error":
                        logger.warning("Change feed system error topic=%s: %s", self._topic, payload.get("message"))
        finally:
            heartbeat.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await heartbeat

    async def _heartbeat(self, ws: Any) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_s)
            await ws.send(json.dumps(build_heartbeat(self._next_ref())))
            logger.debug("heartbeat topic=%s", self._topic)

    def _fire(self) -> None:
        try:
            self._on_event()
        except Exception:
            logger.exception("Change callback failed topic=%s", self._topic)


class RealtimeFeed:
    """ChangeFeed implementation backed by the realtime websocket service."""

    def __init__(self, settings, *, connect: Callable[[str], Any] | None = None) -> None:
        self._url = realtime_url(settings.supabase_url, settings.supabase_anon_key)
        self._table = str(getattr(settings, "tasks_table", "todos"))
        self._heartbeat_s = float(getattr(settings, "realtime_heartbeat_seconds", 25.0))
        self._reconnect_s = float(getattr(settings, "realtime_reconnect_seconds", 5.0))
        self._join_timeout_s = float(getattr(settings, "http_read_timeout_seconds", 15.0))
        open_timeout = float(getattr(settings, "http_connect_timeout_seconds", 5.0))
        self._connect = connect or (
            lambda url: ws_connect(url, open_timeout=open_timeout, ping_interval=None)
        )

    async def subscribe(
            self,
            *,
            access_token: str,
            owner_id: str,
            on_event: ChangeCallback,
    ) -> RealtimeSubscription:
        sub = RealtimeSubscription(
            url=self._url,
            table=self._table,
            owner_id=owner_id,
            access_token=access_token,
            on_event=on_event,
            heartbeat_seconds=self._heartbeat_s,
            reconnect_seconds=self._reconnect_s,
            join_timeout_seconds=self._join_timeout_s,
            connect=self._connect,
        )
        await sub.start()
        logger.info("Change feed joined topic=%s", sub.topic)
        return sub


def _decode(raw: Any) -> dict[str, Any] | None:
    try:
        msg = json.loads(raw)
    except (TypeError, ValueError):
        logger.debug("Ignoring non-JSON realtime frame")
        return None
    return msg if isinstance(msg, dict) else None
