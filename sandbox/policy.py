"""
Sandbox policy definitions: the capability table and the import allow-list.
"""

from __future__ import annotations

import builtins
import importlib
import json
import math
from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from types import MappingProxyType, ModuleType
from typing import Final

from sandbox.errors import CapabilityDenied

BASE_BUILTIN_MODULES: Final[tuple[str, ...]] = (
    "collections",
    "datetime",
    "itertools",
    "math",
    "queue",
    "random",
    "re",
    "stat",
    "statistics",
    "time",
    "unicodedata",
)

# Names that are never copied into the capability table, even if someone
# adds them to SAFE_BUILTIN_NAMES by mistake.
BLOCKED_BUILTINS: Final[frozenset[str]] = frozenset(
    {
        "__import__",
        "breakpoint",
        "compile",
        "delattr",
        "dir",
        "eval",
        "exec",
        "exit",
        "getattr",
        "globals",
        "help",
        "input",
        "locals",
        "memoryview",
        "object",
        "open",
        "quit",
        "setattr",
        "super",
        "type",
        "vars",
    }
)

SAFE_BUILTIN_NAMES: Final[tuple[str, ...]] = (
    # Type constructors
    "bool",
    "bytes",
    "complex",
    "dict",
    "enumerate",
    "filter",
    "float",
    "frozenset",
    "int",
    "list",
    "map",
    "range",
    "reversed",
    "set",
    "slice",
    "str",
    "tuple",
    "zip",
    # Numeric helpers
    "abs",
    "divmod",
    "max",
    "min",
    "pow",
    "round",
    "sum",
    # String and collection helpers
    "all",
    "any",
    "ascii",
    "bin",
    "callable",
    "chr",
    "format",
    "hash",
    "hex",
    "isinstance",
    "issubclass",
    "iter",
    "len",
    "next",
    "oct",
    "ord",
    "repr",
    "sorted",
    # Exceptions
    "ArithmeticError",
    "AssertionError",
    "AttributeError",
    "Exception",
    "ImportError",
    "IndexError",
    "KeyError",
    "LookupError",
    "ModuleNotFoundError",
    "NameError",
    "NotImplementedError",
    "OverflowError",
    "RuntimeError",
    "StopIteration",
    "TypeError",
    "UnicodeError",
    "ValueError",
    "ZeroDivisionError",
    # Constants
    "True",
    "False",
    "None",
    "NotImplemented",
)

# Attributes that lead from an ordinary object back to frames, code objects or
# module globals. Dunder attributes are rejected separately by the guard.
FORBIDDEN_ATTRIBUTES: Final[frozenset[str]] = frozenset(
    {
        "ag_code",
        "ag_frame",
        "cr_code",
        "cr_frame",
        "f_back",
        "f_builtins",
        "f_code",
        "f_globals",
        "f_locals",
        "gi_code",
        "gi_frame",
        "gi_yieldfrom",
        "mro",
        "tb_frame",
        "tb_next",
    }
)

# Module attributes that are never reachable through a proxy.
_MODULE_FORBIDDEN_ATTRS: Final[frozenset[str]] = frozenset(
    {"builtins", "importlib", "os", "posix", "nt", "subprocess", "sys"}
)


class _NotFound:
    _instance: _NotFound | None = None

    def __new__(cls) -> _NotFound:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NOT_FOUND"

    def __bool__(self) -> bool:
        return False


NOT_FOUND: Final = _NotFound()


def _normalize_modules(modules: Iterable[str] | None) -> list[str]:
    seen: list[str] = []
    for name in modules or []:
        cleaned = str(name).strip()
        if cleaned and cleaned not in seen:
            seen.append(cleaned)
    return seen


@dataclass(frozen=True)
class ModuleAllowList:
    """Ordered, immutable set of module identifiers a session may import."""

    modules: tuple[str, ...]

    @classmethod
    def build(cls, additional: Iterable[str] | None = None) -> ModuleAllowList:
        """Union of the fixed base list and caller-supplied additions."""
        merged = _normalize_modules([*BASE_BUILTIN_MODULES, *(additional or [])])
        return cls(tuple(merged))

    def __contains__(self, name: object) -> bool:
        return name in self.modules

    def __iter__(self) -> Iterator[str]:
        return iter(self.modules)

    def __len__(self) -> int:
        return len(self.modules)

    def allows(self, name: str) -> bool:
        root = name.split(".")[0]
        return name in self.modules or root in self.modules

    def denial_message(self, name: str) -> str:
        return (
            f"Import of '{name}' is not allowed. "
            f"Authorized imports are: {list(self.modules)}"
        )

    def resolve_import(self, name: str) -> ModuleProxy:
        """Import ``name`` if authorized and return it wrapped in a proxy."""
        if not self.allows(name):
            raise CapabilityDenied(self.denial_message(name), name=name)
        return ModuleProxy(importlib.import_module(name), self)


class ModuleProxy:
    """Read-only view on an allow-listed module.

    Private attributes and attributes that reach into process-level modules
    are hidden; submodules are proxied and must themselves be allowed.
    """

    __slots__ = ("_module", "_allow_list", "_allowed_attrs")

    def __init__(
        self,
        module: ModuleType,
        allow_list: ModuleAllowList,
        allowed_attrs: Iterable[str] | None = None,
    ) -> None:
        object.__setattr__(self, "_module", module)
        object.__setattr__(self, "_allow_list", allow_list)
        object.__setattr__(
            self,
            "_allowed_attrs",
            frozenset(allowed_attrs) if allowed_attrs is not None else None,
        )

    def __getattribute__(self, name: str) -> object:
        module: ModuleType = object.__getattribute__(self, "_module")
        allow_list: ModuleAllowList = object.__getattribute__(self, "_allow_list")
        allowed_attrs: frozenset[str] | None = object.__getattribute__(
            self, "_allowed_attrs"
        )
        if name.startswith("_") or name in _MODULE_FORBIDDEN_ATTRS:
            raise AttributeError(
                f"Access to '{name}' on module '{module.__name__}' is forbidden"
            )
        if allowed_attrs is not None and name not in allowed_attrs:
            raise AttributeError(
                f"module '{module.__name__}' has no attribute '{name}'"
            )
        value = getattr(module, name)
        if isinstance(value, ModuleType):
            if not allow_list.allows(value.__name__):
                raise CapabilityDenied(
                    allow_list.denial_message(value.__name__),
                    name=value.__name__,
                )
            return ModuleProxy(value, allow_list)
        return value

    def __setattr__(self, name: str, value: object) -> None:
        raise AttributeError("Cannot set attributes on a sandboxed module")

    def __delattr__(self, name: str) -> None:
        raise AttributeError("Cannot delete attributes on a sandboxed module")

    def __dir__(self) -> list[str]:
        module: ModuleType = object.__getattribute__(self, "_module")
        allowed_attrs = object.__getattribute__(self, "_allowed_attrs")
        names = allowed_attrs if allowed_attrs is not None else dir(module)
        return sorted(name for name in names if not name.startswith("_"))

    def __repr__(self) -> str:
        module: ModuleType = object.__getattribute__(self, "_module")
        return f"<module '{module.__name__}' (sandboxed)>"


_IMPORT_HOOK = Callable[
    [str, Mapping[str, object] | None, Mapping[str, object] | None, Sequence[str], int],
    object,
]


def build_import_guard(allow_list: ModuleAllowList) -> _IMPORT_HOOK:
    """
    Build a restricted __import__ hook that only allows allowlisted modules.
    """

    def guarded_import(
        name: str,
        globals: Mapping[str, object] | None = None,
        locals: Mapping[str, object] | None = None,
        fromlist: Sequence[str] = (),
        level: int = 0,
    ) -> object:
        if level:
            raise CapabilityDenied("Relative imports are not allowed", name=name)
        proxy = allow_list.resolve_import(name)
        if fromlist or "." not in name:
            return proxy
        # ``import a.b`` binds ``a``; the submodule is reached through the proxy.
        root = name.split(".")[0]
        return allow_list.resolve_import(root)

    return guarded_import


def _math_helpers() -> dict[str, object]:
    names = (
        "ceil",
        "floor",
        "sqrt",
        "log",
        "log10",
        "log2",
        "exp",
        "sin",
        "cos",
        "tan",
        "asin",
        "acos",
        "atan",
        "atan2",
        "degrees",
        "radians",
        "isclose",
        "isfinite",
        "isnan",
    )
    helpers: dict[str, object] = {name: getattr(math, name) for name in names}
    helpers["pi"] = math.pi
    helpers["e"] = math.e
    helpers["inf"] = math.inf
    return helpers


def build_capability_set(
    allow_list: ModuleAllowList | None = None,
) -> Mapping[str, object]:
    """Enumerate the safe bindings visible to sandboxed code.

    Built from explicit names only; nothing is picked up from the hosting
    process's globals.
    """
    allow_list = allow_list or ModuleAllowList.build()
    table: dict[str, object] = {}
    for name in SAFE_BUILTIN_NAMES:
        if name in BLOCKED_BUILTINS:
            continue
        table[name] = getattr(builtins, name)
    table.update(_math_helpers())
    table["math"] = ModuleProxy(math, allow_list)
    table["json"] = ModuleProxy(
        json, allow_list, allowed_attrs=("loads", "dumps", "JSONDecodeError")
    )
    return MappingProxyType(table)


BASE_PYTHON_TOOLS: Final[Mapping[str, object]] = build_capability_set()


def resolve_binding(
    name: str, capabilities: Mapping[str, object] = BASE_PYTHON_TOOLS
) -> object:
    """Return the safe binding called ``name`` or ``NOT_FOUND``."""
    return capabilities.get(name, NOT_FOUND)
