# tests/test_commands.py

from __future__ import annotations

import pytest

from taskmaster.cli.commands import (
    EMPTY_LIST_TEXT,
    CommandRegistry,
    registry,
    render_collection,
    resolve_task_id,
)
from taskmaster.core.state import AppState
from taskmaster.errors import AuthError, DataError
from taskmaster.tasks.task_models import TaskCollection, TaskItem

from .fakes import FakeAuth, FakeStore


@pytest.mark.asyncio
async def test_command_registry_routes_with_and_without_emit(state: AppState) -> None:
    reg = CommandRegistry()
    notes: list[str] = []

    async def handler(state, args, emit):
        if emit is not None:
            emit("note")
        return "got " + ",".join(args)

    reg.register("a", handler, "a", aliases=["alpha"])

    assert await reg.handle(state, "/a x y") == "got x,y"
    assert await reg.handle(state, "/ALPHA z", emit=notes.append) == "got z"
    assert notes == ["note"]


@pytest.mark.asyncio
async def test_command_registry_unknown_and_non_command(state: AppState) -> None:
    reg = CommandRegistry()
    assert await reg.handle(state, "hello") is None
    assert "Unknown command" in (await reg.handle(state, "/nope") or "")
    assert "Empty command" in (await reg.handle(state, "/") or "")


def _item(task_id: str, title: str, completed: bool = False) -> TaskItem:
    return TaskItem.from_row(
        {"id": task_id, "user_id": "u1", "title": title, "completed": completed, "created_at": None}
    )


def test_render_collection_marks_completed_items() -> None:
    collection = TaskCollection(owner_id="u1", items=(_item("t1", "milk", True), _item("t2", "eggs")))

    text = render_collection(collection, email="a@x.com")

    assert text.splitlines() == ["My Todo List (a@x.com)", "   1. [x] milk", "   2. [ ] eggs"]
    assert EMPTY_LIST_TEXT in render_collection(TaskCollection(owner_id="u1"))


def test_resolve_task_id_accepts_position_or_raw_id() -> None:
    collection = TaskCollection(owner_id="u1", items=(_item("t1", "milk"), _item("t2", "eggs")))

    assert resolve_task_id(collection, "2") == "t2"
    assert resolve_task_id(collection, " t1 ") == "t1"
    assert resolve_task_id(collection, "some-uuid") == "some-uuid"
    with pytest.raises(DataError):
        resolve_task_id(collection, "3")


@pytest.mark.asyncio
async def test_console_flow_add_list_done_delete(state: AppState, auth: FakeAuth, store: FakeStore) -> None:
    auth.add_user("a@x.com", "pw")

    assert "Welcome back" in await registry.handle(state, "/signin a@x.com pw")
    await state.tasks.wait_idle()

    await registry.handle(state, "/add buy milk")
    await state.tasks.wait_idle()
    listing = await registry.handle(state, "/list")
    assert "1. [ ] buy milk" in listing

    assert await registry.handle(state, "/toggle 1") == "Marked as complete."
    await state.tasks.wait_idle()
    assert "1. [x] buy milk" in await registry.handle(state, "/ls")

    assert await registry.handle(state, "/rename 1 buy milk") == "Title unchanged."
    assert await registry.handle(state, "/rm 1") == "Deleted."
    await state.tasks.wait_idle()
    assert EMPTY_LIST_TEXT in await registry.handle(state, "/list")

    assert await registry.handle(state, "/logout") == "Signed out."
    assert "not signed in" in await registry.handle(state, "/status")


@pytest.mark.asyncio
async def test_commands_surface_core_errors(state: AppState) -> None:
    with pytest.raises(AuthError):
        await registry.handle(state, "/list")
    with pytest.raises(DataError) as exc:
        await registry.handle(state, "/signin only-email")
    assert "Usage" in exc.value.message


@pytest.mark.asyncio
async def test_max_args_keeps_the_tail_verbatim(state: AppState) -> None:
    reg = CommandRegistry()
    seen: list[list[str]] = []

    async def handler(state, args, emit):
        seen.append(args)
        return "ok"

    reg.register("pair", handler, "pair", aliases=["p"], max_args=2)
    reg.register("words", handler, "words")

    await reg.handle(state, "/pair first  second   third ")
    await reg.handle(state, "/p only")
    await reg.handle(state, "/words a   b")

    assert seen == [["first", "second   third "], ["only"], ["a", "b"]]


@pytest.mark.asyncio
async def test_signin_and_signup_pass_passwords_through_unchanged(state: AppState, auth: FakeAuth) -> None:
    auth.add_user("a@x.com", "two  spaces ")

    assert "Welcome back" in await registry.handle(state, "/signin a@x.com two  spaces ")
    await registry.handle(state, "/signout")

    assert "Account created" in await registry.handle(state, "/signup b@x.com \tpass word")
    assert auth.users["b@x.com"][0] == "pass word"
    await state.tasks.wait_idle()


@pytest.mark.asyncio
async def test_add_and_rename_keep_inner_spacing(state: AppState, auth: FakeAuth, store: FakeStore) -> None:
    auth.add_user("a@x.com", "pw")
    await registry.handle(state, "/signin a@x.com pw")
    await state.tasks.wait_idle()

    await registry.handle(state, "/add buy  milk ")
    await state.tasks.wait_idle()
    assert store.inserts[-1]["title"] == "buy  milk"

    assert await registry.handle(state, "/rename 1 buy  milk") == "Title unchanged."
    assert await registry.handle(state, "/rename 1 buy  oat   milk") == "Renamed."
    assert store.updates[-1][1] == {"title": "buy  oat   milk"}
