"""Stateful interpreter session held by a calling agent."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING

from sandbox.capture import MAX_LEN_OUTPUT
from sandbox.errors import InterpreterError, ensure_interpreter_error
from sandbox.executor import (
    DEFAULT_TIMEOUT_SECONDS,
    MAX_OPERATIONS,
    PRINT_OUTPUTS_KEY,
    SandboxExecutor,
)
from sandbox.policy import ModuleAllowList
from tools.adapter import ToolsLike, to_callable_bindings

if TYPE_CHECKING:
    from runtime.config import RuntimeConfig

logger = logging.getLogger(__name__)


class ExecutionState(dict[str, object]):
    """Persistent variables of one session.

    Keys are also reachable as attributes (``state.x = 1``); names starting
    with an underscore are only reachable by key. Sandboxed code works on it
    through a ``StateView``.
    """

    __slots__ = ()

    def __getattr__(self, name: str) -> object:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self[name]
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


class InterpreterSession:
    """
    Owns the persistent state and tool bindings across sandboxed calls.

    Calls on one session are serialized; two sessions never share state.
    """

    def __init__(
        self,
        additional_authorized_imports: Iterable[str] = (),
        tools: ToolsLike | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_print_outputs_length: int = MAX_LEN_OUTPUT,
        max_operations: int = MAX_OPERATIONS,
    ) -> None:
        self.additional_authorized_imports = list(additional_authorized_imports)
        self.allow_list = ModuleAllowList.build(self.additional_authorized_imports)
        self.executor = SandboxExecutor(
            allow_list=self.allow_list,
            timeout_seconds=timeout_seconds,
            max_operations=max_operations,
            max_print_outputs_length=max_print_outputs_length,
        )
        self.static_tools = to_callable_bindings(tools or {})
        shadowed = sorted(set(self.static_tools) & set(self.executor.capabilities))
        if shadowed:
            raise ValueError(f"Tool names shadow built-in capabilities: {shadowed}")
        self._state = ExecutionState()
        self._lock = threading.Lock()

    @classmethod
    def from_config(
        cls,
        config: RuntimeConfig,
        tools: ToolsLike | None = None,
    ) -> InterpreterSession:
        return cls(
            additional_authorized_imports=config.additional_authorized_imports,
            tools=tools,
            timeout_seconds=config.timeout_seconds,
            max_print_outputs_length=config.max_print_outputs_length,
            max_operations=config.max_operations,
        )

    @property
    def authorized_imports(self) -> list[str]:
        return list(self.allow_list)

    @property
    def state(self) -> ExecutionState:
        return self._state

    def execute(
        self,
        code: str,
        additional_variables: Mapping[str, object] | None = None,
    ) -> tuple[object, str]:
        """Run ``code`` and return ``(result, logs)``.

        ``additional_variables`` overwrite state entries of the same name
        before the code runs.
        """
        with self._lock:
            if additional_variables:
                self._state.update(additional_variables)
            try:
                result = self.executor.run(code, self._state, self.static_tools)
            except InterpreterError:
                raise
            except Exception as exc:  # noqa: BLE001 - normalized for callers
                logger.exception("Unexpected failure while executing sandboxed code")
                raise ensure_interpreter_error(exc, "Execution failed") from exc
            logs = self._state.get(PRINT_OUTPUTS_KEY, "")
            return result.value, str(logs)

    __call__ = execute
