"""
Static validation of tool class source written by trusted tool authors.

The validator parses source text handed over by the authoring workflow; it
never executes it and never decompiles live objects.
"""

from __future__ import annotations

import ast
import builtins
from collections.abc import Iterable
from typing import Final

from sandbox.policy import BASE_BUILTIN_MODULES
from tools.base import ToolValidationError

BUILTIN_NAMES: Final[frozenset[str]] = frozenset(dir(builtins))
RECEIVER_NAMES: Final[frozenset[str]] = frozenset({"self", "cls"})


def is_simple_literal(node: ast.AST | None) -> bool:
    """Literals, or lists/tuples/sets/dicts composed only of literals."""
    if node is None:
        return False
    if isinstance(node, ast.Constant):
        return True
    if isinstance(node, ast.UnaryOp) and isinstance(node.op, (ast.USub, ast.UAdd)):
        return isinstance(node.operand, ast.Constant)
    if isinstance(node, (ast.List, ast.Tuple, ast.Set)):
        return all(is_simple_literal(element) for element in node.elts)
    if isinstance(node, ast.Dict):
        return all(
            key is not None and is_simple_literal(key) for key in node.keys
        ) and all(is_simple_literal(value) for value in node.values)
    return False


def _argument_names(arguments: ast.arguments) -> list[str]:
    names = [arg.arg for arg in (*arguments.posonlyargs, *arguments.args, *arguments.kwonlyargs)]
    if arguments.vararg is not None:
        names.append(arguments.vararg.arg)
    if arguments.kwarg is not None:
        names.append(arguments.kwarg.arg)
    return names


def _imported_root(module: str) -> str:
    return module.split(".")[0]


class MethodChecker:
    """Resolves every name a method body reads against what it may use."""

    def __init__(
        self,
        module_names: set[str],
        authorized_imports: Iterable[str],
        check_imports: bool = True,
    ) -> None:
        self.module_names = module_names
        self.authorized_imports = list(authorized_imports)
        self.check_imports = check_imports
        self.arg_names: set[str] = set()
        self.assigned_names: set[str] = set()
        self.imports: dict[str, str] = {}
        self.undefined_names: list[str] = []
        self.errors: list[str] = []

    def check(self, method: ast.FunctionDef | ast.AsyncFunctionDef) -> list[str]:
        self.arg_names.update(_argument_names(method.args))
        nodes = [
            node
            for statement in (*method.args.defaults, *method.args.kw_defaults, *method.body)
            if statement is not None
            for node in ast.walk(statement)
        ]
        for node in nodes:
            self._collect(node)
        for node in nodes:
            if isinstance(node, ast.Name) and isinstance(node.ctx, ast.Load):
                self._check_name(node.id)
        return self.errors

    def _collect(self, node: ast.AST) -> None:
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            self.assigned_names.add(node.name)
            self.arg_names.update(_argument_names(node.args))
        elif isinstance(node, ast.Lambda):
            self.arg_names.update(_argument_names(node.args))
        elif isinstance(node, ast.ClassDef):
            self.assigned_names.add(node.name)
        elif isinstance(node, ast.Name) and isinstance(node.ctx, (ast.Store, ast.Del)):
            self.assigned_names.add(node.id)
        elif isinstance(node, ast.ExceptHandler) and node.name:
            self.assigned_names.add(node.name)
        elif isinstance(node, (ast.MatchAs, ast.MatchStar)) and node.name:
            self.assigned_names.add(node.name)
        elif isinstance(node, ast.Import):
            for alias in node.names:
                bound = alias.asname or _imported_root(alias.name)
                self.imports[bound] = alias.name
                self._check_import(alias.name)
        elif isinstance(node, ast.ImportFrom):
            module = "." * node.level + (node.module or "")
            for alias in node.names:
                self.imports[alias.asname or alias.name] = module
            self._check_import(module)

    def _check_import(self, module: str) -> None:
        if not self.check_imports:
            return
        if module.startswith(".") or _imported_root(module) not in self.authorized_imports:
            self.errors.append(f"Unauthorized import '{module}'.")

    def _check_name(self, name: str) -> None:
        if self.is_defined_name(name) or name in self.undefined_names:
            return
        self.undefined_names.append(name)
        self.errors.append(f"Name '{name}' is undefined.")

    def is_defined_name(self, name: str) -> bool:
        return (
            name in BUILTIN_NAMES
            or name in RECEIVER_NAMES
            or name in self.arg_names
            or name in self.assigned_names
            or name in self.imports
            or name in self.module_names
            or name in self.authorized_imports
        )


def _module_level_names(
    tree: ast.Module,
    authorized_imports: list[str],
    check_imports: bool,
) -> tuple[set[str], list[str]]:
    names: set[str] = set()
    errors: list[str] = []
    for statement in tree.body:
        if isinstance(statement, ast.Import):
            for alias in statement.names:
                names.add(alias.asname or _imported_root(alias.name))
                if check_imports and _imported_root(alias.name) not in authorized_imports:
                    errors.append(f"- <module>: Unauthorized import '{alias.name}'.")
        elif isinstance(statement, ast.ImportFrom):
            module = "." * statement.level + (statement.module or "")
            for alias in statement.names:
                names.add(alias.asname or alias.name)
            if check_imports and (
                statement.level or _imported_root(module) not in authorized_imports
            ):
                errors.append(f"- <module>: Unauthorized import '{module}'.")
    return names, errors


def _init_parameter_count(init: ast.FunctionDef | ast.AsyncFunctionDef) -> int:
    names = _argument_names(init.args)
    if names and names[0] in RECEIVER_NAMES and (init.args.posonlyargs or init.args.args):
        return len(names) - 1
    return len(names)


def validate_tool_source(
    source: str,
    check_imports: bool = True,
    authorized_imports: Iterable[str] | None = None,
) -> None:
    """
    Check that a tool class is self-contained.

    Raises:
        ToolValidationError: with one bullet per violation.
    """
    authorized = list(dict.fromkeys([*BASE_BUILTIN_MODULES, *(authorized_imports or [])]))
    try:
        tree = ast.parse(source)
    except SyntaxError as exc:
        raise ToolValidationError(
            [f"- Failed to parse class: {exc.msg} (line {exc.lineno})"]
        ) from None

    class_node = next(
        (statement for statement in tree.body if isinstance(statement, ast.ClassDef)),
        None,
    )
    if class_node is None:
        raise ToolValidationError(["- Source code must define a class"])

    module_names, errors = _module_level_names(tree, authorized, check_imports)
    module_names.add(class_node.name)

    complex_attributes: list[str] = []
    methods: list[ast.FunctionDef | ast.AsyncFunctionDef] = []
    for statement in class_node.body:
        if isinstance(statement, ast.Assign):
            targets = [target.id for target in statement.targets if isinstance(target, ast.Name)]
            if not is_simple_literal(statement.value):
                complex_attributes.extend(targets)
        elif isinstance(statement, ast.AnnAssign) and isinstance(statement.target, ast.Name):
            if statement.value is not None and not is_simple_literal(statement.value):
                complex_attributes.append(statement.target.id)
        elif isinstance(statement, (ast.FunctionDef, ast.AsyncFunctionDef)):
            methods.append(statement)

    for method in methods:
        if method.name == "__init__":
            extra = _init_parameter_count(method)
            if extra:
                errors.append(
                    f"- This tool has additional args specified in __init__(...): {extra}. "
                    "Make sure it does not, all values should be hardcoded!"
                )
        checker = MethodChecker(module_names, authorized, check_imports)
        errors.extend(f"- {method.name}: {error}" for error in checker.check(method))

    if complex_attributes:
        errors.append(
            "- Complex attributes should be defined in __init__, not as class "
            f"attributes: {', '.join(complex_attributes)}"
        )

    if errors:
        raise ToolValidationError(errors, class_node.name)
