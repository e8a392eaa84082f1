# src/taskmaster/cli/main.py

"""
CLI entrypoint.

Initializes logging, validates backend settings, builds AppState, runs the
boot checks, then hands over to the console connector.

Setup problems (missing credentials, missing table) print a setup screen and
exit with status 2 instead of crashing with a traceback.
"""

from __future__ import annotations

import asyncio
import logging
import sys

from ..backend.setup_check import render_config_error, render_schema_error
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..core.state import AppState
from ..errors import ConfigError, SchemaError
from ..logging_setup import setup_logging
from .bootstrap import boot, create_initial_state

logger = logging.getLogger(__name__)

EXIT_SETUP_ERROR = 2


async def _run(state: AppState) -> None:
    try:
        await boot(state)
        await run_console_loop(state)
    finally:
        await state.aclose()


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = max(getattr(logging, level_name, logging.INFO), logging.WARNING)

    log_dir = getattr(settings, "data_dir", ".local/taskmaster")
    setup_logging(log_dir=log_dir, console_level=console_level)

    logger.info("Starting %s...", getattr(settings, "app_name", "TaskMaster"))

    try:
        state = create_initial_state(settings=settings)
    except ConfigError as e:
        logger.error("Configuration error: %s", e.message)
        print(render_config_error(e), file=sys.stderr)
        sys.exit(EXIT_SETUP_ERROR)

    try:
        asyncio.run(_run(state))
    except SchemaError as e:
        logger.error("Schema error: %s", e.message)
        print(render_schema_error(e), file=sys.stderr)
        sys.exit(EXIT_SETUP_ERROR)
    except KeyboardInterrupt:
        logger.info("Interrupted.")

    logger.info("Bye.")


if __name__ == "__main__":
    main()
