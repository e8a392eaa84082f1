# tests/test_logging_setup.py

from __future__ import annotations

import logging

from taskmaster.logging_setup import _ConsoleNoiseFilter


def _record(name: str, level: int) -> logging.LogRecord:
    return logging.LogRecord(name, level, __file__, 1, "msg", None, None)


def test_console_filter_floors() -> None:
    f = _ConsoleNoiseFilter()

    assert f.filter(_record("taskmaster.tasks.task_sync", logging.DEBUG))
    assert not f.filter(_record("taskmaster.backend.realtime", logging.INFO))
    assert f.filter(_record("taskmaster.backend.realtime", logging.WARNING))
    assert not f.filter(_record("httpx", logging.WARNING))
    assert f.filter(_record("websockets.client", logging.ERROR))
