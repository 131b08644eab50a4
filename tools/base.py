"""Tool objects, the ``tool`` decorator and the Toolbox registry."""

from __future__ import annotations

import inspect
from collections.abc import Callable, Iterable, Iterator, Mapping
from typing import overload

from pydantic import ValidationError

from tools.schemas import ToolSpec


class ToolValidationError(ValueError):
    """A tool definition violates the tool authoring rules."""

    def __init__(self, violations: Iterable[str], subject: str | None = None) -> None:
        self.violations = list(violations)
        self.subject = subject
        header = "Tool validation failed"
        if subject:
            header += f" for {subject}"
        super().__init__(header + ":\n" + "\n".join(self.violations))


def _format_validation_error(error: ValidationError) -> list[str]:
    violations: list[str] = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ()))
        violations.append(f"- {location or 'tool'}: {item.get('msg', 'invalid value')}")
    return violations


class Tool:
    """Base class for capabilities exposed to sandboxed code.

    Subclasses declare ``name``, ``description``, ``inputs`` and
    ``output_type`` as class attributes and implement ``forward`` with exactly
    the declared input names as parameters.
    """

    name: str = ""
    description: str = ""
    inputs: dict[str, dict[str, object]] = {}
    output_type: str = "any"

    def __init__(self) -> None:
        self.is_initialized = False
        self.validate_arguments()

    @property
    def spec(self) -> ToolSpec:
        return ToolSpec.from_dict(
            {
                "name": self.name,
                "description": self.description,
                "inputs": self.inputs,
                "output_type": self.output_type,
            }
        )

    def validate_arguments(self) -> None:
        try:
            _ = self.spec
        except ValidationError as exc:
            subject = self.name or self.__class__.__name__
            raise ToolValidationError(_format_validation_error(exc), subject) from exc

    def signature(self) -> inspect.Signature:
        """Signature of the callable that performs the tool's effect."""
        return inspect.signature(self.forward)

    def setup(self) -> None:
        """Expensive initialization, run once before the first call."""
        self.is_initialized = True

    def forward(self, *args: object, **kwargs: object) -> object:
        raise NotImplementedError("Tool must implement forward()")

    def __call__(self, *args: object, **kwargs: object) -> object:
        if not self.is_initialized:
            self.setup()
        return self.forward(*args, **kwargs)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"


def _first_paragraph(doc: str | None) -> str:
    if not doc:
        return ""
    return inspect.cleandoc(doc).split("\n\n")[0].strip()


def _inputs_from_signature(func: Callable[..., object]) -> dict[str, dict[str, object]]:
    inputs: dict[str, dict[str, object]] = {}
    for parameter in inspect.signature(func).parameters.values():
        if parameter.kind in (parameter.VAR_POSITIONAL, parameter.VAR_KEYWORD):
            continue
        inputs[parameter.name] = {
            "type": "any",
            "description": f"The {parameter.name.replace('_', ' ')} argument.",
            "nullable": parameter.default is None,
        }
    return inputs


class FunctionTool(Tool):
    """Tool wrapping an ordinary function."""

    def __init__(
        self,
        func: Callable[..., object],
        name: str | None = None,
        description: str | None = None,
        inputs: Mapping[str, Mapping[str, object]] | None = None,
        output_type: str = "any",
    ) -> None:
        self.func = func
        # Instance attributes shadow the class-level declarations.
        self.name = name or func.__name__
        self.description = description or _first_paragraph(func.__doc__)
        self.inputs = (
            {key: dict(value) for key, value in inputs.items()}
            if inputs is not None
            else _inputs_from_signature(func)
        )
        self.output_type = output_type
        super().__init__()

    def signature(self) -> inspect.Signature:
        return inspect.signature(self.func)

    def forward(self, *args: object, **kwargs: object) -> object:
        return self.func(*args, **kwargs)


@overload
def tool(func: Callable[..., object]) -> FunctionTool: ...


@overload
def tool(
    func: None = None,
    *,
    name: str | None = None,
    description: str | None = None,
    inputs: Mapping[str, Mapping[str, object]] | None = None,
    output_type: str = "any",
) -> Callable[[Callable[..., object]], FunctionTool]: ...


def tool(
    func: Callable[..., object] | None = None,
    *,
    name: str | None = None,
    description: str | None = None,
    inputs: Mapping[str, Mapping[str, object]] | None = None,
    output_type: str = "any",
) -> FunctionTool | Callable[[Callable[..., object]], FunctionTool]:
    """Turn a plain function into a ``Tool``.

    Usable bare (``@tool``) or with explicit interface metadata
    (``@tool(description=..., inputs=..., output_type="string")``).
    """

    def decorate(target: Callable[..., object]) -> FunctionTool:
        return FunctionTool(
            target,
            name=name,
            description=description,
            inputs=inputs,
            output_type=output_type,
        )

    if func is None:
        return decorate
    return decorate(func)


class Toolbox:
    """Ordered registry of tools keyed by name."""

    def __init__(self, tools: Iterable[Tool] = ()) -> None:
        self._tools: dict[str, Tool] = {}
        for item in tools:
            self.add_tool(item)

    @property
    def tools(self) -> dict[str, Tool]:
        return self._tools

    def add_tool(self, item: Tool) -> None:
        if item.name in self._tools:
            raise ValueError(f"Tool {item.name} already exists")
        self._tools[item.name] = item

    def remove_tool(self, tool_name: str) -> None:
        if tool_name not in self._tools:
            raise KeyError(f"Tool {tool_name} not found")
        del self._tools[tool_name]

    def update_tool(self, item: Tool) -> None:
        if item.name not in self._tools:
            raise KeyError(f"Tool {item.name} not found")
        self._tools[item.name] = item

    def clear_toolbox(self) -> None:
        self._tools.clear()

    def show_tool_descriptions(self) -> str:
        lines = ["Toolbox contents:"]
        for tool_name, item in self._tools.items():
            lines.append(f"\t{tool_name}: {item.description}")
        return "\n".join(lines) + "\n"

    def __contains__(self, tool_name: object) -> bool:
        return tool_name in self._tools

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)
