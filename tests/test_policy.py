"""Tests for the capability table, import allow-list, guard and output capture."""

from __future__ import annotations

import ast
import logging

import pytest

from sandbox.capture import OutputCapturer, truncate_content, truncation_marker
from sandbox.errors import CapabilityDenied, SandboxSyntaxError
from sandbox.guard import RESULT_NAME, TICK_NAME, check_code, instrument, parse_code
from sandbox.policy import (
    BASE_BUILTIN_MODULES,
    BASE_PYTHON_TOOLS,
    NOT_FOUND,
    ModuleAllowList,
    build_import_guard,
    resolve_binding,
)


class TestCapabilitySet:
    def test_safe_builtins_are_bound(self) -> None:
        assert resolve_binding("len") is len
        assert resolve_binding("sorted") is sorted
        assert resolve_binding("ceil")(1.2) == 2
        assert resolve_binding("pi") == pytest.approx(3.14159, rel=1e-4)

    @pytest.mark.parametrize("name", ["open", "eval", "exec", "compile", "__import__", "getattr", "globals"])
    def test_dangerous_builtins_are_absent(self, name: str) -> None:
        assert resolve_binding(name) is NOT_FOUND
        assert name not in BASE_PYTHON_TOOLS

    def test_not_found_is_falsy(self) -> None:
        assert not NOT_FOUND
        assert repr(NOT_FOUND) == "NOT_FOUND"

    def test_capability_table_is_read_only(self) -> None:
        with pytest.raises(TypeError):
            BASE_PYTHON_TOOLS["open"] = open  # type: ignore[index]

    def test_json_exposes_only_codec_functions(self) -> None:
        json_proxy = BASE_PYTHON_TOOLS["json"]
        assert json_proxy.loads('{"a": 1}') == {"a": 1}  # type: ignore[attr-defined]
        with pytest.raises(AttributeError):
            _ = json_proxy.load  # type: ignore[attr-defined]


class TestModuleAllowList:
    def test_build_starts_with_base_modules(self) -> None:
        allow_list = ModuleAllowList.build(["numpy", "math", "numpy"])
        assert list(allow_list)[: len(BASE_BUILTIN_MODULES)] == list(BASE_BUILTIN_MODULES)
        assert list(allow_list).count("math") == 1
        assert list(allow_list)[-1] == "numpy"
        assert len(allow_list) == len(BASE_BUILTIN_MODULES) + 1

    def test_submodules_of_allowed_packages_are_allowed(self) -> None:
        allow_list = ModuleAllowList.build()
        assert allow_list.allows("collections.abc")
        assert not allow_list.allows("os.path")

    def test_denial_names_module_and_lists_authorized(self) -> None:
        allow_list = ModuleAllowList.build()
        with pytest.raises(CapabilityDenied) as exc_info:
            allow_list.resolve_import("os")
        assert exc_info.value.denied_name == "os"
        assert "'os'" in exc_info.value.message
        assert "'collections'" in exc_info.value.message
        assert isinstance(exc_info.value, ImportError)

    def test_proxy_forwards_public_attributes(self) -> None:
        proxy = ModuleAllowList.build().resolve_import("math")
        assert proxy.sqrt(16) == 4.0  # type: ignore[attr-defined]
        assert "sqrt" in dir(proxy)
        assert repr(proxy) == "<module 'math' (sandboxed)>"

    def test_proxy_hides_private_attributes(self) -> None:
        proxy = ModuleAllowList.build().resolve_import("random")
        with pytest.raises(AttributeError):
            _ = proxy._inst  # type: ignore[attr-defined]
        with pytest.raises(AttributeError):
            _ = proxy._module  # type: ignore[attr-defined]

    def test_proxy_is_read_only(self) -> None:
        proxy = ModuleAllowList.build().resolve_import("math")
        with pytest.raises(AttributeError):
            proxy.pi = 3  # type: ignore[attr-defined]

    def test_proxy_denies_unlisted_submodules(self) -> None:
        proxy = ModuleAllowList.build().resolve_import("queue")
        with pytest.raises(CapabilityDenied):
            _ = proxy.threading  # type: ignore[attr-defined]

    def test_import_guard_binds_root_for_dotted_imports(self) -> None:
        guard = build_import_guard(ModuleAllowList.build())
        root = guard("collections.abc", None, None, (), 0)
        assert repr(root) == "<module 'collections' (sandboxed)>"
        leaf = guard("collections.abc", None, None, ("Mapping",), 0)
        assert repr(leaf) == "<module 'collections.abc' (sandboxed)>"

    def test_import_guard_rejects_relative_imports(self) -> None:
        guard = build_import_guard(ModuleAllowList.build())
        with pytest.raises(CapabilityDenied):
            guard("sibling", None, None, (), 1)


class TestTruncation:
    def test_short_content_is_unchanged(self) -> None:
        assert truncate_content("abc", 10) == "abc"
        assert truncate_content("a" * 10, 10) == "a" * 10

    def test_long_content_keeps_head_and_tail(self) -> None:
        content = "a" * 50 + "b" * 50
        truncated = truncate_content(content, 20)
        assert truncated.startswith("a" * 10)
        assert truncated.endswith("b" * 10)
        assert truncated.count(truncation_marker(20)) == 1
        assert len(truncated) <= 20 + len(truncation_marker(20))

    def test_zero_length_budget_keeps_only_marker(self) -> None:
        assert truncate_content("abcdef", 1) == truncation_marker(1)


class TestOutputCapturer:
    def test_print_formats_like_builtin(self) -> None:
        capturer = OutputCapturer()
        capturer.print("a", 1, sep="-", end="!")
        capturer.print()
        assert capturer.drain() == "a-1!\n"

    def test_record_failure_is_logged_not_raised(self, caplog: pytest.LogCaptureFixture) -> None:
        class Unprintable:
            def __str__(self) -> str:
                raise RuntimeError("boom")

        capturer = OutputCapturer()
        with caplog.at_level(logging.WARNING, logger="sandbox.capture"):
            capturer.record(Unprintable())  # type: ignore[arg-type]
        assert capturer.drain() == ""
        assert "Failed to record sandbox output" in caplog.text


class TestGuard:
    def test_parse_error_has_caret_hint(self) -> None:
        with pytest.raises(SandboxSyntaxError) as exc_info:
            parse_code("x = (1,\n")
        assert exc_info.value.message.startswith("Code parsing failed on line")
        assert "^" in exc_info.value.message

    @pytest.mark.parametrize(
        "code",
        [
            "().__class__",
            "f.__globals__",
            "g.gi_frame",
            "__builtins__",
            "__sandbox_tick__()",
            "global __sandbox_result__",
        ],
    )
    def test_escapes_are_rejected(self, code: str) -> None:
        with pytest.raises(CapabilityDenied) as exc_info:
            check_code(parse_code(code))
        assert "Forbidden access" in exc_info.value.message

    def test_instrument_captures_trailing_expression(self) -> None:
        tree = instrument(parse_code("x = 1\nx + 1"))
        last = tree.body[-1]
        assert isinstance(last, ast.Assign)
        assert isinstance(last.targets[0], ast.Name)
        assert last.targets[0].id == RESULT_NAME

    def test_instrument_ticks_loops_and_functions(self) -> None:
        code = 'def f():\n    """doc"""\n    return 1\nwhile True:\n    break\n'
        tree = instrument(parse_code(code))
        function, loop = tree.body
        assert isinstance(function, ast.FunctionDef)
        assert isinstance(function.body[0], ast.Expr)
        assert function.body[0].value.value == "doc"  # type: ignore[attr-defined]
        assert TICK_NAME in ast.dump(function.body[1])
        assert isinstance(loop, ast.While)
        assert TICK_NAME in ast.dump(loop.body[0])
