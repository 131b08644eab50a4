"""
Converts Tool objects into plain callables that can be injected into the
sandbox.
"""

from __future__ import annotations

import inspect
from collections.abc import Callable, Iterable, Mapping
from typing import Union

from tools.base import Tool, ToolValidationError, Toolbox

ToolCallable = Callable[..., object]
ToolsLike = Union[Mapping[str, Union[Tool, ToolCallable]], Toolbox, Iterable[Union[Tool, ToolCallable]]]


def _parameter_names(signature: inspect.Signature) -> list[str]:
    return [
        parameter.name
        for parameter in signature.parameters.values()
        if parameter.kind not in (parameter.VAR_POSITIONAL, parameter.VAR_KEYWORD)
    ]


def check_tool_interface(item: Tool) -> None:
    """Declared inputs must be exactly the parameters the tool accepts."""
    declared = list(item.inputs)
    accepted = _parameter_names(item.signature())
    violations: list[str] = []
    missing = [name for name in declared if name not in accepted]
    extra = [name for name in accepted if name not in declared]
    if missing:
        violations.append(f"- declared inputs not accepted by forward: {missing}")
    if extra:
        violations.append(f"- forward parameters not declared as inputs: {extra}")
    if violations:
        raise ToolValidationError(violations, item.name)


def _tool_to_callable(item: Tool) -> ToolCallable:
    check_tool_interface(item)
    signature = item.signature()

    def invoke(*args: object, **kwargs: object) -> object:
        return item(*args, **kwargs)

    invoke.__name__ = item.name
    invoke.__qualname__ = item.name
    invoke.__doc__ = item.description
    invoke.__signature__ = signature  # type: ignore[attr-defined]
    return invoke


def _named(name: str | None, value: Tool | ToolCallable) -> tuple[str, ToolCallable]:
    if isinstance(value, Tool):
        return name or value.name, _tool_to_callable(value)
    if not callable(value):
        raise TypeError(f"Tool binding {name!r} is not callable: {value!r}")
    binding_name = name or getattr(value, "__name__", "")
    if not binding_name or not binding_name.isidentifier():
        raise ValueError(f"Cannot derive a binding name for {value!r}")
    return binding_name, value


def to_callable_bindings(tools: ToolsLike) -> dict[str, ToolCallable]:
    """Map each tool to a plain callable keyed by the name code will use."""
    pairs: list[tuple[str, ToolCallable]]
    if isinstance(tools, Mapping):
        pairs = [_named(str(key), value) for key, value in tools.items()]
    else:
        pairs = [_named(None, value) for value in tools]

    bindings: dict[str, ToolCallable] = {}
    for name, func in pairs:
        if name in bindings:
            raise ValueError(f"Duplicate tool binding: {name}")
        bindings[name] = func
    return bindings
