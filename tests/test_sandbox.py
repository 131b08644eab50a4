import time

import pytest

from sandbox.errors import (
    CapabilityDenied,
    ExecutionTimeout,
    InterpreterError,
    OperationLimitExceeded,
    SandboxSyntaxError,
)
from sandbox.executor import PRINT_OUTPUTS_KEY, SandboxExecutor, evaluate_code


def test_infinite_loop_times_out():
    executor = SandboxExecutor(timeout_seconds=1.0)
    code = """
while True:
    pass
"""
    start = time.perf_counter()
    with pytest.raises(ExecutionTimeout) as exc_info:
        executor.run(code, {})
    elapsed = time.perf_counter() - start

    assert elapsed < 2.0
    assert "timed out" in exc_info.value.message


def test_swallowing_exceptions_does_not_escape_timeout():
    executor = SandboxExecutor(timeout_seconds=0.5)
    code = """
while True:
    try:
        x = 1
    except Exception:
        pass
"""
    with pytest.raises(ExecutionTimeout):
        executor.run(code, {})


def test_blocking_call_times_out_without_hanging():
    executor = SandboxExecutor(timeout_seconds=0.5)
    code = """
import time
time.sleep(3)
"""
    start = time.perf_counter()
    with pytest.raises(ExecutionTimeout):
        executor.run(code, {})
    assert time.perf_counter() - start < 1.5


def test_import_socket_fails():
    executor = SandboxExecutor()
    code = """
import socket
"""
    with pytest.raises(CapabilityDenied) as exc_info:
        executor.run(code, {})
    assert "socket" in exc_info.value.message
    assert "Authorized imports are" in exc_info.value.message


def test_open_fails():
    executor = SandboxExecutor()
    code = """
open('x', 'w')
"""
    with pytest.raises(InterpreterError) as exc_info:
        executor.run(code, {})
    assert "NameError" in exc_info.value.message
    assert "open" in exc_info.value.message


def test_valid_code_returns_completion_value():
    executor = SandboxExecutor()
    code = """
import math

def score(item_size, remaining_capacity):
    return float(item_size) / (remaining_capacity + 1) + math.sqrt(4)

score(3, 9)
"""
    result = executor.run(code, {})
    assert result.value == pytest.approx(2.3)
    assert result.logs == ""
    assert result.runtime_ms >= 0


def test_code_without_trailing_expression_returns_none():
    executor = SandboxExecutor()
    result = executor.run("x = 1", {})
    assert result.value is None


def test_syntax_error_is_caught():
    executor = SandboxExecutor()
    code = """
def score(item_size, remaining_capacity)
    return 1.0
"""
    with pytest.raises(SandboxSyntaxError) as exc_info:
        executor.run(code, {})
    assert "SyntaxError" in exc_info.value.message
    assert exc_info.value.lineno == 2


def test_runtime_error_reports_line():
    executor = SandboxExecutor()
    code = """
a = 1
b = a / 0
"""
    with pytest.raises(InterpreterError) as exc_info:
        executor.run(code, {})
    message = exc_info.value.message
    assert "ZeroDivisionError" in message
    assert "line 3" in message
    assert "b = a / 0" in message


def test_dunder_attribute_access_is_denied():
    executor = SandboxExecutor()
    with pytest.raises(CapabilityDenied) as exc_info:
        executor.run("().__class__", {})
    assert "__class__" in exc_info.value.message


def test_frame_attribute_access_is_denied():
    executor = SandboxExecutor()
    code = """
gen = (i for i in range(3))
gen.gi_frame
"""
    with pytest.raises(CapabilityDenied):
        executor.run(code, {})


def test_builtins_name_is_denied():
    executor = SandboxExecutor()
    with pytest.raises(CapabilityDenied):
        executor.run("__builtins__", {})


def test_print_is_captured_and_stored_in_state():
    executor = SandboxExecutor()
    state: dict[str, object] = {}
    result = executor.run("print('hi', 'there', sep='-')\n42", state)
    assert result.value == 42
    assert result.logs == "hi-there\n"
    assert state[PRINT_OUTPUTS_KEY] == "hi-there\n"


def test_captured_output_is_truncated():
    executor = SandboxExecutor(max_print_outputs_length=100)
    result = executor.run("print('a' * 500)", {})
    assert result.logs.count("truncated to stay below 100 characters") == 1
    assert result.logs.startswith("a" * 50)


def test_operation_limit():
    executor = SandboxExecutor(max_operations=100)
    code = """
total = 0
for i in range(1000):
    total += i
"""
    with pytest.raises(OperationLimitExceeded) as exc_info:
        executor.run(code, {})
    assert "max number of operations" in exc_info.value.message


def test_comprehensions_are_counted():
    executor = SandboxExecutor(max_operations=50)
    with pytest.raises(OperationLimitExceeded):
        executor.run("[i for i in range(1000)]", {})


def test_state_mutation_is_visible_to_caller():
    executor = SandboxExecutor()
    state: dict[str, object] = {"items": [1]}
    executor.run("items.append(2)\ncount = len(items)", state)
    assert state["items"] == [1, 2]
    assert state["count"] == 2


def test_writes_through_state_are_not_overwritten():
    executor = SandboxExecutor()
    state: dict[str, object] = {"x": 1, "gone": True}
    executor.run("state['x'] = 2\nstate.y = 3\ndel state['gone']", state)
    assert state["x"] == 2
    assert state["y"] == 3
    assert "gone" not in state


def test_timeout_is_not_transactional():
    executor = SandboxExecutor(timeout_seconds=0.5)
    state: dict[str, object] = {}
    code = """
before = 1
while True:
    pass
"""
    with pytest.raises(ExecutionTimeout):
        executor.run(code, state)
    assert state["before"] == 1


def test_logs_are_attached_to_errors():
    executor = SandboxExecutor()
    with pytest.raises(InterpreterError) as exc_info:
        executor.run("print('partial')\n1 / 0", {})
    assert "partial" in exc_info.value.logs


def test_classes_can_be_defined():
    executor = SandboxExecutor()
    code = """
class Point:
    def __init__(self, x):
        self.x = x

Point(3).x
"""
    assert executor.run(code, {}).value == 3


def test_bindings_are_callable_and_not_persisted():
    executor = SandboxExecutor()
    state: dict[str, object] = {}

    def get_weather(city):
        return f"Sunny in {city}"

    result = executor.run("get_weather('Paris')", state, {"get_weather": get_weather})
    assert result.value == "Sunny in Paris"
    assert "get_weather" not in state


def test_evaluate_code_uses_given_import_list_verbatim():
    assert evaluate_code("import math\nmath.floor(2.5)", authorized_imports=["math"]) == 2
    with pytest.raises(CapabilityDenied):
        evaluate_code("import random", authorized_imports=["math"])
