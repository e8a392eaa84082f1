# src/taskmaster/cli/commands.py

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from ..core.state import AppState
from ..errors import AuthError, DataError
from ..tasks.task_models import TaskCollection, TaskItem

CommandEmitter = Callable[[str], None]
CommandHandler = Callable[[AppState, list[str], CommandEmitter | None], Awaitable[str]]

logger = logging.getLogger(__name__)

EMPTY_LIST_TEXT = "You don't have any todos yet. Add one to get started!"


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /add, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}
        self._max_args: dict[str, int] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
        max_args: int | None = None,
    ) -> None:
        """
        max_args caps how many whitespace-separated args are split off; the last
        one keeps the rest of the line verbatim (passwords, titles).
        """
        aliases = aliases or []
        key = name.lower()
        self._help[key] = help_text
        for k in [key, *(a.lower() for a in aliases)]:
            self._handlers[k] = handler
            if max_args is not None:
                self._max_args[k] = max_args

    async def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        Errors from the core (AuthError, DataError) propagate to the caller.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split(maxsplit=1)
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        rest = parts[1] if len(parts) > 1 else ""

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        max_args = self._max_args.get(name)
        args = rest.split() if max_args is None else rest.split(maxsplit=max_args - 1)
        return await handler(state, args, emit)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def render_collection(collection: TaskCollection, *, email: str = "") -> str:
    header = f"My Todo List ({email})" if email else "My Todo List"
    if collection.is_empty:
        return f"{header}\n  {EMPTY_LIST_TEXT}"
    lines = [header]
    for i, item in enumerate(collection, start=1):
        mark = "x" if item.completed else " "
        lines.append(f"  {i:>2}. [{mark}] {item.title}")
    return "\n".join(lines)


def resolve_task_id(collection: TaskCollection, ref: str) -> str:
    """
    Accept a 1-based list position or a raw id.

    Raw ids are passed through even if they are not cached: ownership is the
    backend's job, not ours.
    """
    ref = ref.strip()
    if ref.isdigit():
        n = int(ref)
        if 1 <= n <= len(collection):
            return collection[n - 1].id
        if collection.get(ref) is None:
            raise DataError(f"No task #{n}. Use /list to see your todos.")
    return ref


def _require_args(args: list[str], count: int, usage: str) -> None:
    if len(args) < count:
        raise DataError(f"Usage: {usage}")


def _email(state: AppState) -> str:
    identity = state.session.current_identity()
    return identity.email if identity is not None else ""


def _cached(state: AppState, task_id: str) -> TaskItem | None:
    return state.tasks.collection.get(task_id)


async def cmd_help(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    return registry.build_help()


async def cmd_status(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    identity = state.session.current_identity()
    who = f"{identity.email} ({identity.id})" if identity is not None else "not signed in"
    backend = str(getattr(state.settings, "supabase_url", ""))
    return (
        "Status:\n"
        f"  Backend: {backend}\n"
        f"  User: {who}\n"
        f"  Live updates: {state.tasks.subscription_state.value}\n"
        f"  Loading: {'yes' if state.tasks.is_loading else 'no'}\n"
        f"  Cached todos: {len(state.tasks.collection)}"
    )


async def cmd_signin(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    _require_args(args, 2, "/signin <email> <password>")
    identity = await state.session.sign_in(args[0], args[1])
    return f"Welcome back, {identity.email or identity.id}."


async def cmd_signup(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    _require_args(args, 2, "/signup <email> <password>")
    identity = await state.session.sign_up(args[0], args[1])
    return f"Account created. Signed in as {identity.email or identity.id}."


async def cmd_signout(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if state.session.current_identity() is None:
        return "You are not signed in."
    await state.session.sign_out()
    return "Signed out."


async def cmd_whoami(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    identity = state.session.current_identity()
    if identity is None:
        return "Not signed in. Use /signin <email> <password> or /signup <email> <password>."
    return f"{identity.email} ({identity.id})"


async def cmd_list(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if state.session.current_identity() is None:
        raise AuthError("Sign in to access your todos.")
    if state.tasks.is_loading and state.tasks.collection.is_empty:
        return "Loading your todos..."
    return render_collection(state.tasks.collection, email=_email(state))


async def cmd_refresh(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    collection = await state.tasks.refresh()
    return render_collection(collection, email=_email(state))


async def cmd_add(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    await state.tasks.create(args[0] if args else "")
    return "Added."


async def _set_completed(state: AppState, args: list[str], completed: bool | None, usage: str) -> str:
    _require_args(args, 1, usage)
    task_id = resolve_task_id(state.tasks.collection, args[0])
    if completed is None:
        item = _cached(state, task_id)
        if item is None:
            raise DataError("Unknown task; use /done or /undo with an id.")
        completed = not item.completed
    await state.tasks.set_completed(task_id, completed)
    return "Marked as complete." if completed else "Marked as incomplete."


async def cmd_done(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    return await _set_completed(state, args, True, "/done <n|id>")


async def cmd_undo(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    return await _set_completed(state, args, False, "/undo <n|id>")


async def cmd_toggle(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    return await _set_completed(state, args, None, "/toggle <n|id>")


async def cmd_rename(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    _require_args(args, 2, "/rename <n|id> <new title>")
    task_id = resolve_task_id(state.tasks.collection, args[0])
    if not await state.tasks.rename(task_id, args[1]):
        return "Title unchanged."
    return "Renamed."


async def cmd_delete(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    _require_args(args, 1, "/delete <n|id>")
    task_id = resolve_task_id(state.tasks.collection, args[0])
    await state.tasks.delete(task_id)
    return "Deleted."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show backend, user and live-update status.")
registry.register(
    "signin", cmd_signin, help_text="Sign in: /signin <email> <password>.", aliases=["login"], max_args=2
)
registry.register("signup", cmd_signup, help_text="Create an account: /signup <email> <password>.", max_args=2)
registry.register("signout", cmd_signout, help_text="Sign out.", aliases=["logout"])
registry.register("whoami", cmd_whoami, help_text="Show the signed-in user.")
registry.register("list", cmd_list, help_text="Show your todos.", aliases=["ls"])
registry.register("refresh", cmd_refresh, help_text="Re-fetch your todos from the backend.")
registry.register("add", cmd_add, help_text="Add a todo: /add <title> (or just type the title).", max_args=1)
registry.register("done", cmd_done, help_text="Mark complete: /done <n|id>.")
registry.register("undo", cmd_undo, help_text="Mark incomplete: /undo <n|id>.")
registry.register("toggle", cmd_toggle, help_text="Flip completion: /toggle <n|id>.")
registry.register(
    "rename", cmd_rename, help_text="Edit title: /rename <n|id> <new title>.", aliases=["edit"], max_args=2
)
registry.register("delete", cmd_delete, help_text="Delete a todo: /delete <n|id>.", aliases=["rm"])
