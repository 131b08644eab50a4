"""Error types raised by the sandbox."""

from __future__ import annotations


class InterpreterError(Exception):
    """The single error kind surfaced by the sandbox to its callers."""

    def __init__(self, message: str, logs: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.logs = logs


class SandboxSyntaxError(InterpreterError):
    """Submitted code failed to parse."""

    def __init__(
        self,
        message: str,
        lineno: int | None = None,
        offset: int | None = None,
    ) -> None:
        super().__init__(message)
        self.lineno = lineno
        self.offset = offset


class CapabilityDenied(InterpreterError, ImportError):
    """Use of a module or name outside the session's capability set.

    Also an ``ImportError`` so that sandboxed code can guard optional imports
    the usual way.
    """

    def __init__(self, message: str, name: str | None = None) -> None:
        InterpreterError.__init__(self, message)
        self.denied_name = name


class ExecutionTimeout(InterpreterError):
    """Wall-clock budget exceeded."""


class OperationLimitExceeded(InterpreterError):
    """Instrumented operation counter exceeded."""


def ensure_interpreter_error(exc: BaseException, prefix: str) -> InterpreterError:
    """Wrap ``exc`` unless it already is an ``InterpreterError``."""
    if isinstance(exc, InterpreterError):
        return exc
    return InterpreterError(f"{prefix}: {exc.__class__.__name__}: {exc}")
