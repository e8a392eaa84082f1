# src/taskmaster/errors.py

"""
Error taxonomy.

- ConfigError / SchemaError: boot-time setup problems, rendered as a setup screen.
- AuthError: sign-in / sign-up / session problems, shown inline and retryable by the user.
- DataError: any list/insert/update/delete failure; logged and surfaced as one line.

None of these are retried automatically.
"""

from __future__ import annotations


class TaskmasterError(RuntimeError):
    """Base class for user-displayable errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigError(TaskmasterError):
    def __init__(self, message: str, *, missing: list[str] | None = None) -> None:
        super().__init__(message)
        self.missing = list(missing or [])


class SchemaError(TaskmasterError):
    """Expected storage relation is absent on the backend."""

    def __init__(self, message: str, *, relation: str = "todos") -> None:
        super().__init__(message)
        self.relation = relation


class AuthError(TaskmasterError):
    pass


class DataError(TaskmasterError):
    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


def friendly_error_message(err: Exception) -> str:
    """One line suitable for the console, whatever the exception type."""
    if isinstance(err, TaskmasterError):
        return err.message
    msg = str(err).strip()
    if not msg:
        return f"Unexpected error ({err.__class__.__name__})."
    return msg
