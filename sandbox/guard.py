"""
Static checks and AST instrumentation applied to code before it runs.
"""

from __future__ import annotations

import ast
from typing import Final

from sandbox.errors import CapabilityDenied, SandboxSyntaxError
from sandbox.policy import FORBIDDEN_ATTRIBUTES

SOURCE_NAME: Final[str] = "<sandbox>"
TICK_NAME: Final[str] = "__sandbox_tick__"
RESULT_NAME: Final[str] = "__sandbox_result__"

RESERVED_NAMES: Final[frozenset[str]] = frozenset(
    {"__builtins__", "__import__", "__loader__", "__spec__", TICK_NAME, RESULT_NAME}
)


def _is_dunder(name: str) -> bool:
    return len(name) > 4 and name.startswith("__") and name.endswith("__")


def parse_code(code: str) -> ast.Module:
    """Parse ``code`` or raise ``SandboxSyntaxError`` with a caret hint."""
    try:
        return ast.parse(code, filename=SOURCE_NAME, mode="exec")
    except SyntaxError as exc:
        text = (exc.text or "").rstrip("\n")
        caret = " " * max((exc.offset or 1) - 1, 0) + "^"
        message = (
            f"Code parsing failed on line {exc.lineno} due to: "
            f"{exc.__class__.__name__}\n{text}\n{caret}\nError: {exc.msg}"
        )
        raise SandboxSyntaxError(message, lineno=exc.lineno, offset=exc.offset) from None


class _CodeGuard(ast.NodeVisitor):
    """Rejects reflection escapes: dunder attributes and reserved names."""

    def visit_Attribute(self, node: ast.Attribute) -> None:
        if _is_dunder(node.attr) or node.attr in FORBIDDEN_ATTRIBUTES:
            raise CapabilityDenied(
                f"Forbidden access to attribute '{node.attr}' on line {node.lineno}",
                name=node.attr,
            )
        self.generic_visit(node)

    def visit_Name(self, node: ast.Name) -> None:
        if node.id in RESERVED_NAMES:
            raise CapabilityDenied(
                f"Forbidden access to name '{node.id}' on line {node.lineno}",
                name=node.id,
            )

    def visit_Global(self, node: ast.Global) -> None:
        self._check_declared(node.names, node.lineno)

    def visit_Nonlocal(self, node: ast.Nonlocal) -> None:
        self._check_declared(node.names, node.lineno)

    def _check_declared(self, names: list[str], lineno: int) -> None:
        for name in names:
            if name in RESERVED_NAMES:
                raise CapabilityDenied(
                    f"Forbidden access to name '{name}' on line {lineno}", name=name
                )


def check_code(tree: ast.AST) -> None:
    _CodeGuard().visit(tree)


def _tick_call() -> ast.Call:
    return ast.Call(func=ast.Name(id=TICK_NAME, ctx=ast.Load()), args=[], keywords=[])


class _Instrumenter(ast.NodeTransformer):
    """Inserts budget checks into every loop, function body and comprehension."""

    def _prepend_tick(self, body: list[ast.stmt], anchor: ast.AST) -> None:
        index = 0
        if (
            isinstance(anchor, (ast.FunctionDef, ast.AsyncFunctionDef))
            and body
            and isinstance(body[0], ast.Expr)
            and isinstance(body[0].value, ast.Constant)
            and isinstance(body[0].value.value, str)
        ):
            index = 1  # keep the docstring first
        statement = ast.copy_location(ast.Expr(value=_tick_call()), anchor)
        body.insert(index, statement)

    def _visit_loop(self, node: ast.For | ast.AsyncFor | ast.While) -> ast.AST:
        self.generic_visit(node)
        self._prepend_tick(node.body, node)
        return node

    visit_For = _visit_loop
    visit_AsyncFor = _visit_loop
    visit_While = _visit_loop

    def _visit_function(self, node: ast.FunctionDef | ast.AsyncFunctionDef) -> ast.AST:
        self.generic_visit(node)
        self._prepend_tick(node.body, node)
        return node

    visit_FunctionDef = _visit_function
    visit_AsyncFunctionDef = _visit_function

    def _visit_comprehension(
        self, node: ast.ListComp | ast.SetComp | ast.DictComp | ast.GeneratorExp
    ) -> ast.AST:
        self.generic_visit(node)
        for generator in node.generators:
            generator.ifs.insert(0, ast.copy_location(_tick_call(), node))
        return node

    visit_ListComp = _visit_comprehension
    visit_SetComp = _visit_comprehension
    visit_DictComp = _visit_comprehension
    visit_GeneratorExp = _visit_comprehension


def instrument(tree: ast.Module) -> ast.Module:
    """Add budget checks and capture the completion value.

    A trailing top-level expression statement is rewritten into an assignment
    to ``RESULT_NAME`` so its value can be read back after execution.
    """
    tree = _Instrumenter().visit(tree)
    if tree.body and isinstance(tree.body[-1], ast.Expr):
        last = tree.body[-1]
        assign = ast.Assign(
            targets=[ast.Name(id=RESULT_NAME, ctx=ast.Store())],
            value=last.value,
        )
        tree.body[-1] = ast.copy_location(assign, last)
    return ast.fix_missing_locations(tree)


def prepare(code: str) -> ast.Module:
    """Parse, check and instrument ``code``."""
    tree = parse_code(code)
    check_code(tree)
    return instrument(tree)
