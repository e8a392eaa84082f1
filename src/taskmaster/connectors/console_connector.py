# src/taskmaster/connectors/console_connector.py

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..cli.commands import render_collection
from ..core.state import AppState
from ..errors import TaskmasterError, friendly_error_message
from ..tasks.task_models import TaskCollection

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


def _prompt(state: AppState) -> str:
    identity = state.session.current_identity()
    return f"{identity.email or 'you'}> " if identity is not None else "guest> "


async def run_console_loop(state: AppState) -> None:
    """
    Interactive console.

    input() runs in a worker thread so change-feed events keep being processed
    (and the list re-rendered) while the user is typing.
    """
    app_name = str(getattr(state.settings, "app_name", "TaskMaster"))
    logger.info("Console connector started.")
    _print_ts(f"[{app_name}] Your personal todo manager. Use /help for commands. Use /exit to quit.")

    def _on_collection(collection: TaskCollection) -> None:
        # Re-render on every cache replacement (including live updates from other sessions).
        identity = state.session.current_identity()
        if identity is None:
            return
        print()
        _print_ts(render_collection(collection, email=identity.email))

    remove_listener = state.tasks.on_collection_change(_on_collection)

    if state.session.current_identity() is None:
        _print_ts("Sign in with /signin <email> <password> or create an account with /signup.")

    def emit(text: str) -> None:
        _print_ts(text)

    try:
        while True:
            try:
                # Trailing whitespace may be part of a password.
                line = (await asyncio.to_thread(input, _prompt(state))).lstrip()
            except EOFError:
                logger.info("Console EOF received, exiting.")
                break
            except KeyboardInterrupt:
                logger.info("Console KeyboardInterrupt, exiting.")
                print()
                break

            if not line.strip():
                continue

            if line.strip().lower() in ("/exit", "/quit"):
                logger.info("Console exit command received.")
                break

            # Plain text while signed in is shorthand for /add.
            if not line.startswith("/") and state.session.current_identity() is not None:
                line = f"/add {line}"

            try:
                response = await command_registry.handle(state, line, emit=emit)
            except TaskmasterError as e:
                response = friendly_error_message(e)
            except Exception:
                logger.exception("Command handler crashed.")
                response = "Internal error while handling a command."

            if response is None:
                response = "Not signed in. Use /signin <email> <password> or /signup <email> <password>."
            _print_ts(response)
    finally:
        remove_listener()

    logger.info("Console connector finished.")
