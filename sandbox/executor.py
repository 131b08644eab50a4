"""
In-process sandbox executor for untrusted, model-generated code.
"""

from __future__ import annotations

import builtins
import logging
import threading
import time
from collections.abc import Iterator, Mapping, MutableMapping
from dataclasses import dataclass
from types import CodeType, TracebackType
from typing import Final, cast

from sandbox.capture import MAX_LEN_OUTPUT, OutputCapturer, truncate_content
from sandbox.errors import (
    ExecutionTimeout,
    InterpreterError,
    OperationLimitExceeded,
)
from sandbox.guard import RESULT_NAME, SOURCE_NAME, TICK_NAME, prepare
from sandbox.policy import ModuleAllowList, build_capability_set, build_import_guard

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS: Final[float] = 5.0
MAX_OPERATIONS: Final[int] = 10_000_000
PRINT_OUTPUTS_KEY: Final[str] = "_print_outputs"

_NAMESPACE_INTERNALS: Final[frozenset[str]] = frozenset(
    {"__builtins__", "__name__", "state", RESULT_NAME, PRINT_OUTPUTS_KEY}
)

# Budget and capturer of the execution running on the current worker thread.
# Functions defined in an earlier call keep their original globals, so print
# and the budget check are resolved per thread instead of per namespace.
_context = threading.local()


@dataclass
class ExecutionResult:
    value: object
    logs: str
    runtime_ms: float
    operations: int = 0


class _BudgetExhausted(BaseException):
    """Raised inside the worker to unwind sandboxed code.

    Derives from BaseException so ``except Exception`` in user code does not
    swallow it.
    """


class _ExecutionBudget:
    """Operation counter and wall-clock deadline for one call."""

    def __init__(self, timeout_seconds: float, max_operations: int) -> None:
        self.deadline = time.monotonic() + timeout_seconds
        self.max_operations = max_operations
        self.operations = 0
        self.cancelled = threading.Event()

    def tick(self) -> bool:
        self.operations += 1
        if self.cancelled.is_set() or time.monotonic() > self.deadline:
            raise _BudgetExhausted()
        if self.operations > self.max_operations:
            raise OperationLimitExceeded(
                f"Reached the max number of operations of {self.max_operations}. "
                "Maybe there is an infinite loop somewhere in the code, "
                "or you're just asking too many calculations."
            )
        return True


class StateView(MutableMapping[str, object]):
    """The ``state`` object seen by sandboxed code.

    Reads and writes go straight to the caller's mapping, so changes are
    visible by reference. Keys are also reachable as attributes
    (``state.x = 1``). Once the call has timed out, writes unwind the worker
    instead of landing in the caller's state.
    """

    __slots__ = ("_target", "_budget")

    def __init__(
        self, target: MutableMapping[str, object], budget: _ExecutionBudget
    ) -> None:
        object.__setattr__(self, "_target", target)
        object.__setattr__(self, "_budget", budget)

    def __getattribute__(self, name: str) -> object:
        if name.startswith("_") and not (name.startswith("__") and name.endswith("__")):
            raise AttributeError(name)
        try:
            return object.__getattribute__(self, name)
        except AttributeError:
            pass
        target: MutableMapping[str, object] = object.__getattribute__(self, "_target")
        try:
            return target[name]
        except KeyError:
            raise AttributeError(f"state has no variable '{name}'") from None

    def __setattr__(self, name: str, value: object) -> None:
        if name.startswith("_"):
            raise AttributeError(f"Cannot set private state attribute '{name}'")
        self[name] = value

    def __delattr__(self, name: str) -> None:
        try:
            del self[name]
        except KeyError:
            raise AttributeError(f"state has no variable '{name}'") from None

    def _check_writable(self) -> None:
        budget: _ExecutionBudget = object.__getattribute__(self, "_budget")
        if budget.cancelled.is_set():
            raise _BudgetExhausted()

    def __getitem__(self, key: str) -> object:
        return object.__getattribute__(self, "_target")[key]

    def __setitem__(self, key: str, value: object) -> None:
        object.__getattribute__(self, "_check_writable")()
        object.__getattribute__(self, "_target")[key] = value

    def __delitem__(self, key: str) -> None:
        object.__getattribute__(self, "_check_writable")()
        del object.__getattribute__(self, "_target")[key]

    def __iter__(self) -> Iterator[str]:
        return iter(object.__getattribute__(self, "_target"))

    def __len__(self) -> int:
        return len(object.__getattribute__(self, "_target"))

    def __repr__(self) -> str:
        return f"state({object.__getattribute__(self, '_target')!r})"


def _sandbox_tick() -> bool:
    budget: _ExecutionBudget | None = getattr(_context, "budget", None)
    if budget is None:
        return True
    return budget.tick()


def _sandbox_print(
    *values: object,
    sep: str | None = " ",
    end: str | None = "\n",
    file: object = None,
    flush: bool = False,
) -> None:
    capturer: OutputCapturer | None = getattr(_context, "capturer", None)
    if capturer is None:
        logger.debug("Dropping sandbox output printed outside an execution")
        return
    capturer.print(*values, sep=sep, end=end)


def _sandbox_lineno(tb: TracebackType | None) -> int | None:
    lineno: int | None = None
    while tb is not None:
        if tb.tb_frame.f_code.co_filename == SOURCE_NAME:
            lineno = tb.tb_lineno
        tb = tb.tb_next
    return lineno


def _format_runtime_error(exc: BaseException, code: str) -> str:
    lineno = _sandbox_lineno(exc.__traceback__)
    detail = f"{exc.__class__.__name__}: {exc}"
    if lineno is None:
        return f"Code execution failed: {detail}"
    lines = code.splitlines()
    source = lines[lineno - 1].strip() if 0 < lineno <= len(lines) else ""
    if source:
        return f"Code execution failed at line {lineno} '{source}' due to: {detail}"
    return f"Code execution failed at line {lineno} due to: {detail}"


class SandboxExecutor:
    """
    Evaluate untrusted Python code against an explicit capability set.

    Each call gets a fresh namespace seeded with the capability table, the
    caller's bindings and the persistent state; the code runs in a daemon
    worker thread and is unwound through instrumented budget checks when the
    wall-clock timeout or operation limit is reached. Long-running C calls
    cannot be interrupted this way; the caller still gets its timeout, the
    worker finishes in the background and its later writes through ``state``
    are refused.
    """

    def __init__(
        self,
        allow_list: ModuleAllowList | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_operations: int = MAX_OPERATIONS,
        max_print_outputs_length: int = MAX_LEN_OUTPUT,
    ) -> None:
        self.allow_list = allow_list or ModuleAllowList.build()
        self.timeout_seconds = timeout_seconds
        self.max_operations = max_operations
        self.max_print_outputs_length = max_print_outputs_length
        self.capabilities = build_capability_set(self.allow_list)

        sandbox_builtins: dict[str, object] = dict(self.capabilities)
        sandbox_builtins["print"] = _sandbox_print
        sandbox_builtins["__import__"] = build_import_guard(self.allow_list)
        sandbox_builtins["__build_class__"] = builtins.__build_class__
        sandbox_builtins[TICK_NAME] = _sandbox_tick
        self._builtins = sandbox_builtins

    def run(
        self,
        code: str,
        state: MutableMapping[str, object],
        bindings: Mapping[str, object] | None = None,
    ) -> ExecutionResult:
        bindings = bindings or {}
        tree = prepare(code)
        compiled = cast(CodeType, compile(tree, SOURCE_NAME, "exec"))

        capturer = OutputCapturer()
        budget = _ExecutionBudget(self.timeout_seconds, self.max_operations)
        namespace = self._build_namespace(state, bindings, budget)
        seeded = dict(namespace)

        logger.debug("Executing %d chars of sandboxed code", len(code))
        start = time.perf_counter()
        try:
            timed_out, error = self._run_in_worker(compiled, namespace, budget, capturer)
        finally:
            logs = self._finalize(namespace, seeded, state, capturer)
        runtime_ms = (time.perf_counter() - start) * 1000

        if timed_out:
            logger.warning("Sandboxed code timed out after %.0f ms", runtime_ms)
            raise ExecutionTimeout(
                f"Code execution timed out after {self.timeout_seconds} seconds. "
                "Execution was aborted; state changes made before the timeout persist.",
                logs=logs,
            )
        if error is not None:
            normalized = (
                error
                if isinstance(error, InterpreterError)
                else InterpreterError(_format_runtime_error(error, code))
            )
            normalized.logs = logs
            logger.debug("Sandboxed code failed: %s", normalized.message)
            raise normalized

        logger.debug(
            "Sandboxed code finished in %.1f ms (%d operations)",
            runtime_ms,
            budget.operations,
        )
        return ExecutionResult(
            value=namespace.get(RESULT_NAME),
            logs=logs,
            runtime_ms=runtime_ms,
            operations=budget.operations,
        )

    def _build_namespace(
        self,
        state: MutableMapping[str, object],
        bindings: Mapping[str, object],
        budget: _ExecutionBudget,
    ) -> dict[str, object]:
        namespace: dict[str, object] = {
            "__builtins__": self._builtins,
            "__name__": "__sandbox__",
        }
        for name, value in state.items():
            if name.isidentifier() and name not in _NAMESPACE_INTERNALS:
                namespace[name] = value
        namespace.update(bindings)
        namespace["state"] = StateView(state, budget)
        return namespace

    def _run_in_worker(
        self,
        compiled: CodeType,
        namespace: dict[str, object],
        budget: _ExecutionBudget,
        capturer: OutputCapturer,
    ) -> tuple[bool, BaseException | None]:
        error_container: dict[str, BaseException] = {}
        completed = threading.Event()

        def runner() -> None:
            _context.budget = budget
            _context.capturer = capturer
            try:
                exec(compiled, namespace)  # noqa: S102 - guarded and instrumented AST
            except BaseException as exc:  # noqa: BLE001 - forwarded to the caller
                error_container["error"] = exc
            finally:
                _context.budget = None
                _context.capturer = None
                completed.set()

        worker = threading.Thread(target=runner, name="sandbox-worker", daemon=True)
        worker.start()
        _ = completed.wait(self.timeout_seconds)
        if not completed.is_set():
            budget.cancelled.set()
            return True, None
        error = error_container.get("error")
        if isinstance(error, _BudgetExhausted):
            return True, None
        return False, error

    def _finalize(
        self,
        namespace: dict[str, object],
        seeded: Mapping[str, object],
        state: MutableMapping[str, object],
        capturer: OutputCapturer,
    ) -> str:
        # Names the code rebound persist into state even when the call failed
        # or timed out; there is no rollback. Names still holding their seeded
        # value are skipped so writes made through ``state`` are kept.
        for name, value in list(namespace.items()):
            if name in _NAMESPACE_INTERNALS or name.startswith("__"):
                continue
            if name in seeded and seeded[name] is value:
                continue
            state[name] = value
        logs = truncate_content(capturer.drain(), self.max_print_outputs_length)
        state[PRINT_OUTPUTS_KEY] = logs
        return logs


def evaluate_code(
    code: str,
    state: MutableMapping[str, object] | None = None,
    bindings: Mapping[str, object] | None = None,
    authorized_imports: ModuleAllowList | list[str] | None = None,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    max_operations: int = MAX_OPERATIONS,
    max_print_outputs_length: int = MAX_LEN_OUTPUT,
) -> object:
    """Run ``code`` once and return its completion value.

    ``authorized_imports`` given as a plain list is used as-is, without the
    base modules being added.
    """
    if isinstance(authorized_imports, ModuleAllowList):
        allow_list = authorized_imports
    elif authorized_imports is None:
        allow_list = ModuleAllowList.build()
    else:
        allow_list = ModuleAllowList(tuple(dict.fromkeys(authorized_imports)))
    executor = SandboxExecutor(
        allow_list=allow_list,
        timeout_seconds=timeout_seconds,
        max_operations=max_operations,
        max_print_outputs_length=max_print_outputs_length,
    )
    return executor.run(code, state if state is not None else {}, bindings).value
