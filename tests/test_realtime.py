# tests/test_realtime.py

from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace
from typing import Any

import pytest

from taskmaster.backend.realtime import (
    RealtimeFeed,
    build_join,
    channel_topic,
    is_change_event,
    realtime_url,
)
from taskmaster.errors import DataError

_CLOSED = object()


class FakeWebSocket:
    """
    Minimal stand-in for a websockets client connection.

    Replies to phx_join automatically (ok, or error when refuse_join is set),
    unless silent is set.
    Pushing _CLOSED ends iteration, like the server hanging up.
    """

    def __init__(self, *, refuse_join: bool = False, silent: bool = False) -> None:
        self.refuse_join = refuse_join
        self.silent = silent
        self.sent: list[dict[str, Any]] = []
        self.closed = False
        self._inbox: asyncio.Queue[Any] = asyncio.Queue()

    async def __aenter__(self) -> FakeWebSocket:
        return self

    async def __aexit__(self, *exc: object) -> None:
        self.closed = True

    async def send(self, text: str) -> None:
        msg = json.loads(text)
        self.sent.append(msg)
        if msg["event"] == "phx_join" and not self.silent:
            status = "error" if self.refuse_join else "ok"
            payload: dict[str, Any] = {"status": status, "response": {}}
            if self.refuse_join:
                payload["response"] = {"reason": "unauthorized"}
            self.push({"topic": msg["topic"], "event": "phx_reply", "payload": payload, "ref": msg["ref"]})

    async def recv(self) -> str:
        item = await self._inbox.get()
        if item is _CLOSED:
            raise ConnectionResetError("closed")
        return item

    def __aiter__(self) -> FakeWebSocket:
        return self

    async def __anext__(self) -> str:
        item = await self._inbox.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    async def close(self) -> None:
        self.closed = True

    def push(self, msg: Any) -> None:
        self._inbox.put_nowait(msg if msg is _CLOSED else json.dumps(msg))


class Connector:
    def __init__(self, **ws_kwargs: Any) -> None:
        self.ws_kwargs = ws_kwargs
        self.sockets: list[FakeWebSocket] = []
        self.urls: list[str] = []

    def __call__(self, url: str) -> FakeWebSocket:
        self.urls.append(url)
        ws = FakeWebSocket(**self.ws_kwargs)
        self.sockets.append(ws)
        return ws


def _change(topic: str) -> dict[str, Any]:
    return {
        "topic": topic,
        "event": "postgres_changes",
        "payload": {"data": {"type": "INSERT", "record": {"id": "t1"}}},
        "ref": None,
    }


def test_realtime_url_and_join_message() -> None:
    assert realtime_url("https://abc.supabase.co/", "k") == (
        "wss://abc.supabase.co/realtime/v1/websocket?apikey=k&vsn=1.0.0"
    )
    assert realtime_url("http://localhost:54321", "k").startswith("ws://localhost:54321/")

    msg = build_join(topic="realtime:t", table="todos", owner_id="u-1", access_token="at", ref="1")
    change = msg["payload"]["config"]["postgres_changes"][0]
    assert msg["event"] == "phx_join"
    assert change == {"event": "*", "schema": "public", "table": "todos", "filter": "user_id=eq.u-1"}
    assert msg["payload"]["access_token"] == "at"


def test_change_events_are_matched_by_topic() -> None:
    topic = channel_topic("todos", "u-1")
    assert is_change_event(_change(topic), topic)
    assert not is_change_event(_change(channel_topic("todos", "u-2")), topic)
    assert not is_change_event({"topic": topic, "event": "phx_reply"}, topic)


@pytest.mark.asyncio
async def test_subscription_fires_callback_per_event_and_leaves_on_close(settings: SimpleNamespace) -> None:
    connector = Connector()
    feed = RealtimeFeed(settings, connect=connector)
    fired = asyncio.Queue()

    sub = await feed.subscribe(access_token="at", owner_id="u-1", on_event=lambda: fired.put_nowait(1))
    ws = connector.sockets[0]
    assert "apikey=anon-key" in connector.urls[0]

    ws.push(_change(sub.topic))
    ws.push(_change(channel_topic("todos", "someone-else")))
    ws.push(_change(sub.topic))
    await asyncio.wait_for(fired.get(), 1.0)
    await asyncio.wait_for(fired.get(), 1.0)
    await asyncio.sleep(0)
    assert fired.empty()

    await sub.close()
    assert ws.sent[-1]["event"] == "phx_leave"
    assert ws.closed


@pytest.mark.asyncio
async def test_refused_join_raises_data_error(settings: SimpleNamespace) -> None:
    feed = RealtimeFeed(settings, connect=Connector(refuse_join=True))

    with pytest.raises(DataError) as exc:
        await feed.subscribe(access_token="at", owner_id="u-1", on_event=lambda: None)

    assert "unauthorized" in exc.value.message


@pytest.mark.asyncio
async def test_dropped_connection_rejoins_and_fires_once(settings: SimpleNamespace) -> None:
    settings.realtime_reconnect_seconds = 0.01
    connector = Connector()
    feed = RealtimeFeed(settings, connect=connector)
    fired = asyncio.Queue()

    sub = await feed.subscribe(access_token="at", owner_id="u-1", on_event=lambda: fired.put_nowait(1))
    connector.sockets[0].push(_CLOSED)

    # Catch-up event after the rejoin, so missed changes get re-fetched.
    await asyncio.wait_for(fired.get(), 1.0)
    assert len(connector.sockets) == 2
    assert connector.sockets[1].sent[0]["event"] == "phx_join"

    await sub.close()


@pytest.mark.asyncio
async def test_cancelled_subscribe_stops_the_background_loop(settings: SimpleNamespace) -> None:
    settings.http_read_timeout_seconds = 30.0
    connector = Connector(silent=True)
    feed = RealtimeFeed(settings, connect=connector)

    pending = asyncio.create_task(feed.subscribe(access_token="at", owner_id="u-1", on_event=lambda: None))
    while not (connector.sockets and connector.sockets[0].sent):
        await asyncio.sleep(0)

    pending.cancel()
    with pytest.raises(asyncio.CancelledError):
        await pending

    loops = [t for t in asyncio.all_tasks() if t.get_coro().__qualname__ == "RealtimeSubscription._run"]
    assert loops == []
    assert connector.sockets[0].closed
